# %%
import networkx as nx
import numpy as np
import pytest

from cutpursuit import _graph_utils as gu


def test_edge_list_to_forward_star_orders_by_source():
    first_edge, adj_vertices, order = gu.edge_list_to_forward_star(
        4, [2, 0, 1, 0], [3, 1, 2, 2]
    )
    assert first_edge.tolist() == [0, 2, 3, 4, 4]
    assert adj_vertices.tolist() == [1, 2, 2, 3]
    weights = np.array([30.0, 1.0, 12.0, 2.0])
    assert weights[order].tolist() == [1.0, 2.0, 12.0, 30.0]


def test_forward_star_sources():
    assert gu.forward_star_sources([0, 2, 3, 4, 4]).tolist() == [0, 0, 1, 2]


def test_graph_to_forward_star_drops_self_loops():
    G = nx.DiGraph()
    G.add_edge("x", "y", weight=2.0)
    G.add_edge("y", "y", weight=5.0)
    G.add_edge("y", "z")
    nodes, first_edge, adj_vertices, edge_weights = gu.graph_to_forward_star(G)
    assert nodes == ["x", "y", "z"]
    assert first_edge.tolist() == [0, 1, 2, 2]
    assert adj_vertices.tolist() == [1, 2]
    assert edge_weights.tolist() == [2.0, 1.0]


def test_vertex_array():
    assert gu.vertex_array(None, 3, "a") is None
    assert gu.vertex_array(2.0, 3, "a") is None
    assert gu.vertex_array([1, 2, 3], 3, "a").dtype == float
    with pytest.raises(ValueError):
        gu.vertex_array([1.0, 2.0], 3, "a")


def test_invalid_edge_lists():
    with pytest.raises(ValueError):
        gu.edge_list_to_forward_star(3, [0, 1], [1])
    with pytest.raises(ValueError):
        gu.edge_list_to_forward_star(3, [0], [3])
