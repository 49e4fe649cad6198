# %%
import time

import cvxpy as cp
import numpy as np

from cutpursuit._graph_utils import forward_star_sources
from cutpursuit.Pfdr import _bounds_array, _l1_arrays


def _d1_ql1b_problem(x, edges, edge_weights, quadratic, l1_weights, Yl1, low_bnd, upp_bnd):
    n = quadratic.size
    edges = np.asarray(edges, dtype=np.int64).reshape(-1, 2)
    edge_weights = np.broadcast_to(np.asarray(edge_weights, dtype=float), (edges.shape[0],))
    l1_weights, Yl1 = _l1_arrays(l1_weights, Yl1, n)
    low = _bounds_array(low_bnd, n, -np.inf)
    upp = _bounds_array(upp_bnd, n, np.inf)

    objective = quadratic.cvxpy_expression(x)
    if edges.shape[0]:
        objective = objective + edge_weights @ cp.abs(x[edges[:, 0]] - x[edges[:, 1]])
    if l1_weights is not None:
        objective = objective + l1_weights @ cp.abs(x - Yl1)

    constraints = []
    if np.isfinite(low).any():
        finite = np.flatnonzero(np.isfinite(low))
        constraints.append(x[finite] >= low[finite])
    if np.isfinite(upp).any():
        finite = np.flatnonzero(np.isfinite(upp))
        constraints.append(x[finite] <= upp[finite])
    return cp.Problem(cp.Minimize(objective), constraints)


def cvxpy_d1_ql1b(
    edges,
    edge_weights,
    quadratic,
    l1_weights=None,
    Yl1=None,
    low_bnd=None,
    upp_bnd=None,
    rho=1.0,
    cond_min=1e-3,
    dif_rcd=0.0,
    dif_tol=1e-4,
    it_max=1000,
    verbose=False,
    init=None,
):
    """
    Solve the graph d1 + quadratic + l1 + bounds problem with CVXPY.

    Same signature and return value as Pfdr.pfdr_d1_ql1b; the splitting
    parameters have no meaning here except ``verbose`` and ``init`` (warm
    start); the solver runs with its own stopping criteria.

    Returns:
        x: np.ndarray - the solution
        it: int - number of solver iterations, 0 when not reported
    """
    x = cp.Variable(quadratic.size)
    if init is not None:
        x.value = np.asarray(init, dtype=float)
    problem = _d1_ql1b_problem(
        x, edges, edge_weights, quadratic, l1_weights, Yl1, low_bnd, upp_bnd
    )

    start_time = time.time()
    problem.solve(verbose=False)
    if problem.status not in (cp.OPTIMAL, cp.OPTIMAL_INACCURATE):
        raise RuntimeError(f"CVXPY could not solve the problem (status {problem.status}).")
    if verbose:
        print("Time:", time.time() - start_time, "s")
        print("Minimum:", problem.value)

    it = problem.solver_stats.num_iters if problem.solver_stats is not None else None
    return np.asarray(x.value, dtype=float).reshape(-1), int(it or 0)


def solve_full_problem(
    first_edge,
    adj_vertices,
    quadratic,
    edge_weights=1.0,
    l1_weights=None,
    Yl1=None,
    low_bnd=None,
    upp_bnd=None,
    **kwargs,
):
    """Solve the whole problem on the original graph, without cut-pursuit."""
    edges = np.column_stack(
        (forward_star_sources(first_edge), np.asarray(adj_vertices, dtype=np.int64))
    )
    x = cp.Variable(quadratic.size)
    problem = _d1_ql1b_problem(
        x, edges, edge_weights, quadratic, l1_weights, Yl1, low_bnd, upp_bnd
    )
    problem.solve(**kwargs)
    return np.asarray(x.value, dtype=float).reshape(-1), problem.value
