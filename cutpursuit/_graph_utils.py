"""Shared graph helpers used across the cut-pursuit solvers."""

from __future__ import annotations

from typing import Sequence

import networkx as nx
import numpy as np


def vertex_array(
    values: float | Sequence[float] | np.ndarray | None, num_vertices: int, name: str
) -> np.ndarray | None:
    """Validate a per-vertex array; scalars and None are passed through as None."""
    if values is None or np.ndim(values) == 0:
        return None
    arr = np.asarray(values, dtype=float).reshape(-1)
    if arr.shape != (num_vertices,):
        raise ValueError(
            f"Expected '{name}' with shape ({num_vertices},), got {arr.shape}."
        )
    return arr


def edge_list_to_forward_star(
    num_vertices: int, source: Sequence[int], target: Sequence[int]
) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Convert an undirected edge list into forward-star (CSR) adjacency.

    Each edge is stored once, from its source vertex. Returns ``first_edge``
    (length ``num_vertices + 1``), ``adj_vertices`` (one entry per edge) and
    ``order``, the permutation mapping forward-star positions back to the
    input edge list, so that per-edge arrays can be reordered with
    ``weights[order]``.
    """
    source = np.asarray(source, dtype=np.int64).reshape(-1)
    target = np.asarray(target, dtype=np.int64).reshape(-1)
    if source.shape != target.shape:
        raise ValueError(
            f"Source and target lists differ in length ({source.size} != {target.size})."
        )
    if source.size and (
        min(source.min(), target.min()) < 0
        or max(source.max(), target.max()) >= num_vertices
    ):
        raise ValueError(f"Edge endpoints must lie in [0, {num_vertices}).")

    order = np.argsort(source, kind="stable")
    counts = np.bincount(source, minlength=num_vertices)
    first_edge = np.zeros(num_vertices + 1, dtype=np.int64)
    np.cumsum(counts, out=first_edge[1:])
    adj_vertices = target[order]
    return first_edge, adj_vertices, order


def forward_star_sources(first_edge: np.ndarray) -> np.ndarray:
    """Return the start vertex of every edge of a forward-star adjacency."""
    first_edge = np.asarray(first_edge, dtype=np.int64)
    return np.repeat(np.arange(first_edge.size - 1), np.diff(first_edge))


def graph_to_forward_star(
    graph: nx.Graph, weight: str | None = "weight", default: float = 1.0
) -> tuple[list, np.ndarray, np.ndarray, np.ndarray]:
    """Convert a networkx graph to forward-star adjacency with edge weights.

    Returns the node list (defining the vertex indices), ``first_edge``,
    ``adj_vertices`` and the edge weights in forward-star order. Edges without
    the ``weight`` attribute get ``default``; self-loops are dropped since they
    carry no total variation.
    """
    if graph.is_directed():
        graph = graph.to_undirected()
    nodes = list(graph.nodes)
    index = {n: i for i, n in enumerate(nodes)}

    source, target, weights = [], [], []
    for u, v, d in graph.edges(data=True):
        if u == v:
            continue
        source.append(index[u])
        target.append(index[v])
        weights.append(d.get(weight, default) if weight is not None else default)

    first_edge, adj_vertices, order = edge_list_to_forward_star(
        len(nodes), source, target
    )
    edge_weights = np.asarray(weights, dtype=float)[order]
    return nodes, first_edge, adj_vertices, edge_weights
