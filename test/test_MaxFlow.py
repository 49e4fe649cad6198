# %%
import numpy as np
import pytest

from cutpursuit.MaxFlow import FlowGraph


def test_two_plateaus_are_separated():
    fg = FlowGraph([0, 1, 2, 3])
    fg.set_term_capacities([0, 1, 2, 3], [5.0, 5.0, -5.0, -5.0])
    fg.set_edge_capacities([0, 1, 2], [1, 2, 3], 1.0, 1.0)
    is_sink = fg.maxflow()
    assert is_sink.tolist() == [False, False, True, True]
    assert fg.cut_value == pytest.approx(1.0)
    assert fg.sink_side([3, 0]).tolist() == [True, False]


def test_infinite_terminal_capacity_pins_vertex():
    fg = FlowGraph([7, 4])
    fg.set_term_capacities([7, 4], [np.inf, -1.0])
    fg.set_edge_capacities(7, 4, 10.0, 10.0)
    assert fg.maxflow().tolist() == [False, False]
    assert fg.cut_value == pytest.approx(1.0)

    fg.set_term_capacities(7, -np.inf)
    assert fg.maxflow().tolist() == [True, True]


def test_free_vertices_stay_on_source_side():
    fg = FlowGraph([0, 1, 2])
    fg.set_edge_capacities([0, 1], [1, 2], 1.0, 1.0)
    assert fg.maxflow().tolist() == [False, False, False]
    assert fg.cut_value == 0


@pytest.mark.parametrize("seed", [0, 1, 2])
def test_cut_is_minimal_on_small_instances(seed):
    rng = np.random.default_rng(seed)
    n = 5
    term = rng.normal(size=n)
    u, v = np.triu_indices(n, 1)
    w = rng.uniform(0.1, 1.0, size=u.size)

    fg = FlowGraph(np.arange(n))
    fg.set_term_capacities(np.arange(n), term)
    fg.set_edge_capacities(u, v, w, w)
    is_sink = fg.maxflow()

    def cost(sink):
        return (
            np.sum(np.maximum(term, 0)[sink])
            + np.sum(np.maximum(-term, 0)[~sink])
            + np.sum(w[sink[u] != sink[v]])
        )

    best = min(
        cost(np.array([(mask >> i) & 1 for i in range(n)], dtype=bool))
        for mask in range(2**n)
    )
    assert cost(is_sink) == pytest.approx(best)
    assert fg.cut_value == pytest.approx(best)
