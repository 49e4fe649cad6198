"""Partition of the vertices of a graph into piecewise-constant regions."""

from __future__ import annotations

import numpy as np
import scipy.sparse as sp
from scipy.sparse.csgraph import connected_components

from cutpursuit._graph_utils import forward_star_sources


class Partition:
    """
    Regions of a graph given in forward-star form, stored as a CSR arena.

    ``comp_list[first_vertex[rv]:first_vertex[rv + 1]]`` lists the vertices of
    region ``rv`` and ``comp_assign[v]`` is the region of vertex ``v``. Each
    undirected edge ``e`` is stored once, from ``edge_sources[e]`` to
    ``adj_vertices[e]``; an edge is *active* when it is a known boundary
    between regions. Regions are the connected components of the graph
    restricted to inactive edges.

    Per-region flags: ``saturated`` marks regions believed converged,
    ``median_cached`` marks regions whose segment of ``comp_list`` is still
    sorted by l1 target since the last weighted median selection.
    """

    def __init__(self, first_edge, adj_vertices, edge_weights=None, homo_edge_weight=1.0):
        self.first_edge = np.asarray(first_edge, dtype=np.int64).reshape(-1)
        self.adj_vertices = np.asarray(adj_vertices, dtype=np.int64).reshape(-1)
        self.V = self.first_edge.size - 1
        self.E = self.adj_vertices.size
        if self.V < 1:
            raise ValueError("A graph needs at least one vertex.")
        if self.first_edge[0] != 0 or self.first_edge[-1] != self.E:
            raise ValueError(
                f"Forward-star index must run from 0 to {self.E}, "
                f"got {self.first_edge[0]} to {self.first_edge[-1]}."
            )
        if self.E and (self.adj_vertices.min() < 0 or self.adj_vertices.max() >= self.V):
            raise ValueError(f"Adjacent vertices must lie in [0, {self.V}).")
        self.edge_sources = forward_star_sources(self.first_edge)
        self.set_edge_weights(edge_weights, homo_edge_weight)

        self.active = np.zeros(self.E, dtype=bool)
        self.comp_assign = np.zeros(self.V, dtype=np.int64)
        self.comp_list = np.arange(self.V, dtype=np.int64)
        self.first_vertex = np.array([0, self.V], dtype=np.int64)
        self.saturated = np.zeros(1, dtype=bool)
        self.median_cached = np.zeros(1, dtype=bool)
        self.reduced_edges = np.zeros((0, 2), dtype=np.int64)
        self.reduced_edge_weights = np.zeros(0)
        self.last_comp_assign = None

    def set_edge_weights(self, edge_weights=None, homo_edge_weight=1.0):
        if edge_weights is None:
            if homo_edge_weight < 0:
                raise ValueError(
                    f"Negative homogeneous edge weight ({homo_edge_weight})."
                )
            self.edge_weights = None
        else:
            edge_weights = np.asarray(edge_weights, dtype=float).reshape(-1)
            if edge_weights.shape != (self.E,):
                raise ValueError(
                    f"Expected edge weights with shape ({self.E},), got {edge_weights.shape}."
                )
            if np.any(edge_weights < 0):
                raise ValueError("Edge weights must be nonnegative.")
            self.edge_weights = edge_weights
        self.homo_edge_weight = float(homo_edge_weight)

    @property
    def rV(self):
        return self.first_vertex.size - 1

    @property
    def rE(self):
        return self.reduced_edges.shape[0]

    def weights(self, edges=None):
        """Total-variation weights of the given edges (all edges by default)."""
        if self.edge_weights is None:
            size = self.E if edges is None else len(edges)
            return np.full(size, self.homo_edge_weight)
        return self.edge_weights if edges is None else self.edge_weights[edges]

    def sizes(self):
        return np.diff(self.first_vertex)

    def vertices(self, rv):
        """View on the vertices of region ``rv``; reordering it reorders comp_list."""
        return self.comp_list[self.first_vertex[rv] : self.first_vertex[rv + 1]]

    def edges_from(self, vertices):
        """Indices of the edges stored from the given vertices."""
        starts = self.first_edge[vertices]
        counts = self.first_edge[np.asarray(vertices) + 1] - starts
        total = int(counts.sum())
        if total == 0:
            return np.zeros(0, dtype=np.int64)
        offsets = np.repeat(starts - np.cumsum(counts) + counts, counts)
        return offsets + np.arange(total)

    def indicator(self):
        """Sparse V x rV matrix with a one at (v, comp_assign[v])."""
        return sp.csr_matrix(
            (np.ones(self.V), (np.arange(self.V), self.comp_assign)),
            shape=(self.V, self.rV),
        )

    def region_sums(self, values):
        return np.bincount(self.comp_assign, weights=values, minlength=self.rV)

    def region_max(self, values):
        return np.maximum.reduceat(values[self.comp_list], self.first_vertex[:-1])

    def region_min(self, values):
        return np.minimum.reduceat(values[self.comp_list], self.first_vertex[:-1])

    def expand(self, rX):
        """Full per-vertex vector of a piecewise-constant iterate."""
        return np.asarray(rX)[self.comp_assign]

    def save_assignment(self):
        self.last_comp_assign = self.comp_assign.copy()

    def compute_connected_components(self):
        """Rebuild regions as connected components of the inactive-edge graph.

        Regions whose vertex set is unchanged keep their vertex order in
        ``comp_list`` and their saturation and median cache flags.
        """
        inactive = ~self.active
        graph = sp.coo_matrix(
            (
                np.ones(int(inactive.sum())),
                (self.edge_sources[inactive], self.adj_vertices[inactive]),
            ),
            shape=(self.V, self.V),
        )
        num_comps, labels = connected_components(graph, directed=False)

        # number new regions by first appearance along the current arena
        old_list = self.comp_list
        _, first_pos = np.unique(labels[old_list], return_index=True)
        relabel = np.empty(num_comps, dtype=np.int64)
        relabel[np.argsort(first_pos)] = np.arange(num_comps)
        comp_assign = relabel[labels]

        comp_list = old_list[np.argsort(comp_assign[old_list], kind="stable")]
        first_vertex = np.zeros(num_comps + 1, dtype=np.int64)
        np.cumsum(np.bincount(comp_assign, minlength=num_comps), out=first_vertex[1:])

        # new regions are subsets of old ones; equal size means unchanged
        old_sizes = self.sizes()
        old_first = old_list[self.first_vertex[:-1]]
        new_of_old = comp_assign[old_first]
        unchanged = np.diff(first_vertex)[new_of_old] == old_sizes
        saturated = np.zeros(num_comps, dtype=bool)
        median_cached = np.zeros(num_comps, dtype=bool)
        saturated[new_of_old[unchanged]] = self.saturated[unchanged]
        median_cached[new_of_old[unchanged]] = self.median_cached[unchanged]

        self.comp_assign = comp_assign
        self.comp_list = comp_list
        self.first_vertex = first_vertex
        self.saturated = saturated
        self.median_cached = median_cached
        return num_comps

    def compute_reduced_graph(self):
        """Aggregate active edges into weighted edges between distinct regions."""
        act = np.flatnonzero(self.active)
        cu = self.comp_assign[self.edge_sources[act]]
        cv = self.comp_assign[self.adj_vertices[act]]
        internal = cu == cv
        if internal.any():  # boundaries that no longer separate anything
            self.active[act[internal]] = False
            act, cu, cv = act[~internal], cu[~internal], cv[~internal]

        rV = self.rV
        keys = np.minimum(cu, cv) * rV + np.maximum(cu, cv)
        uniq, inverse = np.unique(keys, return_inverse=True)
        self.reduced_edge_weights = np.bincount(
            inverse.reshape(-1), weights=self.weights(act), minlength=uniq.size
        )
        self.reduced_edges = np.column_stack((uniq // rV, uniq % rV)).astype(np.int64)
        return self.rE

    def merge(self, rX, merge_tol=0.0):
        """Merge adjacent regions with values equal up to ``merge_tol`` (relative).

        Edges between merged regions are deactivated. Returns the iterate on the
        new regions (size-weighted mean of merged values) and the number of
        regions removed.
        """
        rX = np.asarray(rX, dtype=float)
        if self.rE == 0:
            return rX, 0
        ru, rv = self.reduced_edges[:, 0], self.reduced_edges[:, 1]
        a, b = rX[ru], rX[rv]
        close = np.abs(a - b) <= merge_tol * np.maximum(np.abs(a), np.abs(b))
        if not close.any():
            return rX, 0

        rV = self.rV
        chains = sp.coo_matrix(
            (np.ones(int(close.sum())), (ru[close], rv[close])), shape=(rV, rV)
        )
        _, group = connected_components(chains, directed=False)
        act = np.flatnonzero(self.active)
        gu = group[self.comp_assign[self.edge_sources[act]]]
        gv = group[self.comp_assign[self.adj_vertices[act]]]
        self.active[act[gu == gv]] = False

        x = rX[self.comp_assign]
        self.compute_connected_components()
        self.compute_reduced_graph()
        new_rX = self.region_sums(x) / self.sizes()
        return new_rX, rV - self.rV
