# %%
import numpy as np
import pytest

from cutpursuit import _parallel as par


@pytest.mark.parametrize(
    "num_ops, num_units, max_num_threads, expected",
    [
        (0, 10, 0, 1),
        (5e4, 10, 8, 5),
        (1e7, 3, 8, 3),
        (1e7, 100, 2, 2),
    ],
)
def test_num_jobs(num_ops, num_units, max_num_threads, expected):
    assert par.num_jobs(num_ops, num_units, max_num_threads) == expected


@pytest.mark.parametrize("num_ops", [0, 1e7])
def test_parallel_map_keeps_order(num_ops):
    squares = par.parallel_map(lambda k: k * k, range(6), num_ops, max_num_threads=2)
    assert squares == [0, 1, 4, 9, 16, 25]


def test_parallel_map_writes_disjoint_slices():
    arena = np.arange(12)[::-1].copy()
    bounds = [(0, 4), (4, 8), (8, 12)]

    def sort_slice(b):
        arena[b[0] : b[1]].sort()
        return b[1] - b[0]

    sizes = par.parallel_map(sort_slice, bounds, 1e7, max_num_threads=3)
    assert sizes == [4, 4, 4]
    assert arena.tolist() == [8, 9, 10, 11, 4, 5, 6, 7, 0, 1, 2, 3]
