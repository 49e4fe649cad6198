# %%
import numpy as np


def sorted_median(idx, values, weights=None):
    """
    Median of ``values[idx]`` when ``idx`` is already sorted by value.

    With weights, the median is the first element whose cumulative weight
    reaches half of the total weight; without, it is the element at position
    ``len(idx) // 2``.

    Parameters:
        idx: np.ndarray - indices into values, sorted by increasing value
        values: np.ndarray - the values
        weights: np.ndarray or None - nonnegative weights, indexed like values
    """
    if len(idx) == 0:
        raise ValueError("Median of an empty set is undefined.")
    if weights is None:
        return values[idx[len(idx) // 2]]
    cumulated = np.cumsum(weights[idx])
    pos = int(np.searchsorted(cumulated, 0.5 * cumulated[-1], side="left"))
    return values[idx[min(pos, len(idx) - 1)]]


def wth_element(idx, values, weights=None):
    """
    Weighted median of ``values[idx]``, reordering ``idx`` in place.

    After the call, ``idx`` is sorted by value (stable), so that a later call
    to ``sorted_median`` on the same segment returns the same median without
    selection.

    Parameters:
        idx: np.ndarray - indices into values, modified in place
        values: np.ndarray - the values
        weights: np.ndarray or None - nonnegative weights, indexed like values
    """
    if len(idx) == 0:
        raise ValueError("Median of an empty set is undefined.")
    order = np.argsort(values[idx], kind="stable")
    idx[:] = idx[order]
    return sorted_median(idx, values, weights)


def weighted_median(values, weights=None):
    """Weighted median of a plain sequence of values."""
    values = np.asarray(values, dtype=float)
    if weights is not None:
        weights = np.asarray(weights, dtype=float)
    return wth_element(np.arange(values.size), values, weights)


# %%
if __name__ == "__main__":
    vals = np.array([3.0, -1.0, 7.0, 2.0])
    w = np.array([1.0, 1.0, 5.0, 1.0])
    print(weighted_median(vals, w))
    print(weighted_median(vals))
