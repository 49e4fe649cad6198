# %%
import numpy as np
import pytest

from cutpursuit import QuadraticForm as qf
from cutpursuit.Partition import Partition


@pytest.fixture
def partition():
    # path 0-1-2-3-4-5 cut between 2 and 3
    P = Partition([0, 1, 2, 3, 4, 5, 5], [1, 2, 3, 4, 5])
    P.active[2] = True
    P.compute_connected_components()
    P.compute_reduced_graph()
    return P


@pytest.fixture
def design():
    rng = np.random.default_rng(42)
    A = rng.normal(size=(8, 6))
    Y = rng.normal(size=8)
    return A, Y


def test_representation_inference(design):
    A, Y = design
    assert qf.quadratic_form(Y[:6], 2.0).representation == "identity"
    assert qf.quadratic_form(Y[:6], None, a=0.0).representation == "none"
    assert qf.quadratic_form(Y[:6], np.ones(6)).representation == "diagonal"
    assert qf.quadratic_form(Y, A).representation == "direct"
    assert qf.quadratic_form(A.T @ Y, A.T @ A, representation="gram").representation == "gram"


def test_identity_scale(design):
    _, Y = design
    form = qf.quadratic_form(Y[:6], 3.0)
    y, aa, column = form.univertex_stats()
    assert aa == pytest.approx(18.0)
    assert y == pytest.approx(Y[:6].sum())
    assert column is None


@pytest.mark.parametrize("representation", ["identity", "diagonal", "gram", "direct"])
def test_univertex_stats_match_summed_columns(design, representation):
    A, Y = design
    if representation == "identity":
        A = np.eye(6)
        Y = Y[:6]
    elif representation == "diagonal":
        A = np.diag(np.linspace(0.5, 2.0, 6))
        Y = Y[:6]
    column = A.sum(axis=1)

    if representation == "identity":
        form = qf.quadratic_form(Y, 1.0)
    elif representation == "diagonal":
        form = qf.quadratic_form(A.T @ Y, np.diag(A.T @ A))
    elif representation == "gram":
        form = qf.quadratic_form(A.T @ Y, A.T @ A, representation="gram")
    else:
        form = qf.quadratic_form(Y, A)

    y, aa, _ = form.univertex_stats()
    assert y == pytest.approx(column @ Y)
    assert aa == pytest.approx(column @ column)


@pytest.mark.parametrize("representation", ["identity", "diagonal", "gram"])
def test_reduced_value_matches_full_value(design, partition, representation):
    A, Y = design
    if representation == "identity":
        form = qf.quadratic_form(Y[:6], 2.0)
    elif representation == "diagonal":
        form = qf.quadratic_form(Y[:6], np.linspace(1.0, 2.0, 6))
    else:
        form = qf.quadratic_form(A.T @ Y, A.T @ A, representation="gram")

    rX = np.array([1.5, -0.5])
    reduced, rA = form.reduce(partition)
    assert rA is None
    assert reduced.size == 2
    assert reduced.value(rX) == pytest.approx(form.value(partition.expand(rX)))
    assert form.objective(partition, rX) == pytest.approx(form.value(partition.expand(rX)))


@pytest.mark.parametrize("premultiply", [True, False])
def test_direct_reduction(design, partition, premultiply):
    A, Y = design
    form = qf.quadratic_form(Y, A)
    rX = np.array([0.3, -1.2])
    x = partition.expand(rX)

    reduced, rA = form.reduce(partition, premultiply=premultiply)
    assert rA.shape == (8, 2)
    assert np.allclose(rA @ rX, A @ x)
    if premultiply:
        assert reduced.representation == "gram"
        # premultiplied value drops the constant 1/2 ||Y||^2
        assert reduced.value(rX) == pytest.approx(form.value(x) - 0.5 * Y @ Y)
        assert np.allclose(reduced.A, reduced.A.T)
    else:
        assert reduced.representation == "direct"
        assert reduced.value(rX) == pytest.approx(form.value(x))


def test_gradients_at_piecewise_constant_iterate(design, partition):
    A, Y = design
    rX = np.array([0.0, 2.0])
    x = partition.expand(rX)

    gram = qf.quadratic_form(A.T @ Y, A.T @ A, representation="gram")
    assert np.allclose(gram.gradient(partition, rX), A.T @ A @ x - A.T @ Y)

    direct = qf.quadratic_form(Y, A)
    residual = direct.residual(x)
    assert np.allclose(direct.gradient(partition, rX, residual), A.T @ (A @ x - Y))
    assert direct.objective(partition, rX, residual) == pytest.approx(0.5 * residual @ residual)
    assert np.allclose(direct.apply_gradient(x), A.T @ (A @ x - Y))


def test_gram_gradient_skips_zero_regions(design, partition):
    A, Y = design
    gram = qf.quadratic_form(A.T @ Y, A.T @ A, representation="gram")
    assert np.allclose(gram.gradient(partition, np.zeros(2)), -A.T @ Y)
    rX = np.array([-1.5, 0.0])
    x = partition.expand(rX)
    assert np.allclose(gram.gradient(partition, rX), A.T @ A @ x - A.T @ Y)


def test_diagonal_majorant_dominates_hessian(design):
    A, Y = design
    for form in (
        qf.quadratic_form(Y, A),
        qf.quadratic_form(A.T @ Y, A.T @ A, representation="gram"),
    ):
        H = A.T @ A
        D = np.diag(form.diagonal_majorant())
        assert np.linalg.eigvalsh(D - H).min() >= -1e-10


def test_premultiply_heuristic():
    # 2 N i / (N + i) = 2 * 1000 * 100 / 1100 ~ 181.8
    assert qf.premultiply_reduced(1000, 10, 100)
    assert not qf.premultiply_reduced(1000, 500, 100)
    assert not qf.premultiply_reduced(1000, 10, 0)


def test_symmetrize_upper():
    M = np.array([[1.0, 2.0], [99.0, 3.0]])
    assert np.array_equal(qf.symmetrize_upper(M), np.array([[1.0, 2.0], [2.0, 3.0]]))


def test_nonsymmetric_gram_warns():
    with pytest.warns(UserWarning):
        form = qf.quadratic_form(
            np.zeros(2), np.array([[1.0, 0.5], [0.0, 1.0]]), representation="gram"
        )
    assert np.allclose(form.A, form.A.T)


def test_invalid_quadratic_forms(design):
    A, Y = design
    with pytest.raises(ValueError):
        qf.quadratic_form(Y, A, representation="cholesky")
    with pytest.raises(ValueError):
        qf.quadratic_form(Y, A, representation="gram")
    with pytest.raises(ValueError):
        qf.quadratic_form(Y[:5], A)
    with pytest.raises(ValueError):
        qf.quadratic_form(Y[:5], np.ones(6))
    with pytest.raises(ValueError):
        qf.quadratic_form(Y, A, num_vertices=5)
    with pytest.raises(ValueError):
        qf.quadratic_form(None, None, representation="diagonal", num_vertices=6)
