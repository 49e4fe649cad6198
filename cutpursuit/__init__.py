"""Cut-pursuit for graph total variation with quadratic, l1 and box terms."""
