# %%
import numpy as np
import pytest

from cutpursuit import WeightedMedian as wm


def weighted_deviation(values, weights, m):
    return np.sum(weights * np.abs(values - m))


@pytest.mark.parametrize("seed", [0, 1, 2, 3])
def test_weighted_median_minimizes_deviation(seed):
    rng = np.random.default_rng(seed)
    values = rng.normal(size=15)
    weights = rng.uniform(0.1, 2.0, size=15)

    m = wm.weighted_median(values, weights)
    best = min(weighted_deviation(values, weights, c) for c in values)
    assert weighted_deviation(values, weights, m) <= best + 1e-12, (
        "Weighted median does not minimize the weighted absolute deviation"
    )


def test_weighted_median_tie_is_order_independent():
    # half of the weight on each side of [1, 2]
    values = np.array([2.0, 1.0, 2.0, 1.0])
    weights = np.array([1.0, 1.0, 1.0, 1.0])
    first = wm.weighted_median(values, weights)
    for perm in ([3, 2, 1, 0], [1, 3, 0, 2], [0, 2, 1, 3]):
        assert wm.weighted_median(values[perm], weights[perm]) == first
    assert first == 1.0


@pytest.mark.parametrize("seed", [5, 6])
def test_weighted_median_permutation_invariance(seed):
    rng = np.random.default_rng(seed)
    values = rng.integers(0, 5, size=20).astype(float)
    weights = rng.integers(1, 4, size=20).astype(float)
    m = wm.weighted_median(values, weights)
    for _ in range(5):
        perm = rng.permutation(20)
        assert wm.weighted_median(values[perm], weights[perm]) == m


def test_unweighted_median_position():
    assert wm.weighted_median([3.0, 1.0, 2.0]) == 2.0
    # upper median for an even count
    assert wm.weighted_median([4.0, 1.0, 3.0, 2.0]) == 3.0


def test_wth_element_sorts_in_place_and_sorted_median_agrees():
    values = np.array([5.0, -1.0, 3.0, 0.0, 8.0])
    weights = np.array([1.0, 2.0, 1.0, 1.0, 4.0])
    idx = np.array([4, 0, 2, 1, 3])
    m = wm.wth_element(idx, values, weights)

    assert np.all(np.diff(values[idx]) >= 0), "Index segment not sorted by value"
    assert sorted(idx.tolist()) == [0, 1, 2, 3, 4]
    assert wm.sorted_median(idx, values, weights) == m


def test_wth_element_on_a_segment_view():
    values = np.array([9.0, 7.0, 8.0, 1.0])
    arena = np.array([3, 0, 1, 2])
    m = wm.wth_element(arena[1:], values)
    assert m == 8.0
    assert arena.tolist() == [3, 1, 2, 0], "Only the segment should be reordered"


def test_empty_median_raises():
    with pytest.raises(ValueError):
        wm.wth_element(np.array([], dtype=np.int64), np.zeros(3))
    with pytest.raises(ValueError):
        wm.sorted_median(np.array([], dtype=np.int64), np.zeros(3))
