# %%
"""
Cut-pursuit for quadratic + graph total variation + l1 + box problems

    min_x 1/2 ||Y - A x||^2 + sum_{(u,v)} w_uv |x_u - x_v|
          + sum_v l1_v |x_v - Yl1_v| + sum_v i[low_v <= x_v <= upp_v]

The quadratic term is given in one of the representations of QuadraticForm;
reduced problems are solved with preconditioned forward-Douglas-Rachford
splitting (or cvxpy).

When Yl1 is not constant over a region, the reduced problems only approximate
the l1 term: the weighted sum of distances to Yl1 is replaced by the distance
to the weighted median of Yl1 over the region.
"""

import numpy as np

from cutpursuit import QuadraticForm as qf
from cutpursuit._graph_utils import graph_to_forward_star, vertex_array
from cutpursuit._parallel import parallel_map
from cutpursuit.ConvexOptimization import cvxpy_d1_ql1b
from cutpursuit.CutPursuit import CutPursuit
from cutpursuit.MaxFlow import FlowGraph
from cutpursuit.Pfdr import pfdr_d1_ql1b
from cutpursuit.WeightedMedian import sorted_median, wth_element

BACKENDS = {"pfdr": pfdr_d1_ql1b, "cvxpy": cvxpy_d1_ql1b}


class CutPursuitQL1B(CutPursuit):
    """
    Cut-pursuit solver for the d1 + quadratic + l1 + bounds problem.

    Configure with ``set_quadratic``, ``set_l1``, ``set_bounds`` and
    ``set_pfdr_param``, then run ``cut_pursuit()``; the solution is
    ``rX[partition.comp_assign]``.

    Parameters:
        first_edge: (V + 1,) int array - forward-star index of the graph
        adj_vertices: (E,) int array - end vertex of each edge, each undirected
            edge being stored once
        edge_weights: (E,) array or None - total variation weights
        homo_edge_weight: float - weight of all edges when edge_weights is None
    """

    def __init__(self, first_edge, adj_vertices, edge_weights=None, homo_edge_weight=1.0):
        super().__init__(first_edge, adj_vertices, edge_weights, homo_edge_weight)
        self.quadratic = qf.NoQuadratic(self.V)
        self.R = None
        self.l1_weights = None
        self.homo_l1_weight = 0.0
        self.Yl1 = None
        self.low_bnd = None
        self.homo_low_bnd = -np.inf
        self.upp_bnd = None
        self.homo_upp_bnd = np.inf
        self.set_pfdr_param()

    # configuration

    def set_quadratic(self, Y=None, A=None, a=1.0, representation=None):
        self.quadratic = qf.quadratic_form(Y, A, a, representation, num_vertices=self.V)
        self.R = None

    def set_l1(self, l1_weights=None, homo_l1_weight=0.0, Yl1=None):
        l1_weights = vertex_array(l1_weights, self.V, "l1_weights")
        if Yl1 is not None and np.ndim(Yl1) == 0:
            Yl1 = np.full(self.V, float(Yl1))
        Yl1 = vertex_array(Yl1, self.V, "Yl1")
        if l1_weights is None and homo_l1_weight < 0:
            raise ValueError(f"Negative homogeneous l1 weight ({homo_l1_weight}).")
        if l1_weights is not None and np.any(l1_weights < 0):
            raise ValueError("l1 weights must be nonnegative.")
        self.l1_weights = l1_weights
        self.homo_l1_weight = float(homo_l1_weight)
        self.Yl1 = Yl1

    def set_bounds(self, low_bnd=None, homo_low_bnd=-np.inf, upp_bnd=None, homo_upp_bnd=np.inf):
        low_bnd = vertex_array(low_bnd, self.V, "low_bnd")
        upp_bnd = vertex_array(upp_bnd, self.V, "upp_bnd")
        low = homo_low_bnd if low_bnd is None else low_bnd
        upp = homo_upp_bnd if upp_bnd is None else upp_bnd
        if np.any(np.asarray(low) > np.asarray(upp)):
            if low_bnd is None and upp_bnd is None:
                raise ValueError(
                    f"Homogeneous lower bound ({homo_low_bnd}) greater than "
                    f"upper bound ({homo_upp_bnd})."
                )
            raise ValueError("Lower bounds greater than upper bounds at some vertices.")
        self.low_bnd = low_bnd
        self.homo_low_bnd = float(homo_low_bnd)
        self.upp_bnd = upp_bnd
        self.homo_upp_bnd = float(homo_upp_bnd)

    def set_pfdr_param(
        self, rho=1.0, cond_min=1e-3, dif_rcd=0.0, it_max=10000, dif_tol=None, backend="pfdr"
    ):
        """
        Parameters of the reduced problem solver.

        dif_tol defaults to 1e-3 times the cut-pursuit tolerance.
        """
        if not 0.0 < rho < 2.0:
            raise ValueError(f"Relaxation parameter must lie in (0, 2), got {rho}.")
        if not 0.0 < cond_min <= 1.0:
            raise ValueError(f"Minimum conditioning must lie in (0, 1], got {cond_min}.")
        if backend not in BACKENDS:
            raise ValueError(f"Unknown backend '{backend}', expected one of {list(BACKENDS)}.")
        self.pfdr_rho = float(rho)
        self.pfdr_cond_min = float(cond_min)
        self.pfdr_dif_rcd = float(dif_rcd)
        self.pfdr_it_max = int(it_max)
        self.pfdr_dif_tol = dif_tol
        self.pfdr_it = self.pfdr_it_max
        self.backend = backend

    # per-vertex views of the configuration

    def _l1_array(self):
        if self.l1_weights is not None:
            return self.l1_weights
        if self.homo_l1_weight > 0:
            return np.full(self.V, self.homo_l1_weight)
        return None

    def _Yl1_array(self):
        return np.zeros(self.V) if self.Yl1 is None else self.Yl1

    def _low_array(self):
        if self.low_bnd is not None:
            return self.low_bnd
        if self.homo_low_bnd > -np.inf:
            return np.full(self.V, self.homo_low_bnd)
        return None

    def _upp_array(self):
        if self.upp_bnd is not None:
            return self.upp_bnd
        if self.homo_upp_bnd < np.inf:
            return np.full(self.V, self.homo_upp_bnd)
        return None

    # cut-pursuit steps

    def solve_univertex_problem(self):
        """Closed-form optimal constant value over the whole graph."""
        P = self.partition
        y, aa, column = self.quadratic.univertex_stats()

        yl1 = wl1 = 0.0
        if self.l1_weights is not None or self.homo_l1_weight:
            if self.l1_weights is not None:
                wl1 = float(self.l1_weights.sum())
            else:
                wl1 = self.V * self.homo_l1_weight
            if self.Yl1 is not None:
                yl1 = wth_element(P.vertices(0), self.Yl1, self.l1_weights)
                P.median_cached[0] = True
                P.saturated[0] = False

        # soft thresholding around the median
        if y - wl1 > aa * yl1:
            uX = (y - wl1) / aa
        elif y + wl1 < aa * yl1:
            uX = (y + wl1) / aa
        else:
            uX = yl1

        # aggregated bounds
        low = self.low_bnd.max() if self.low_bnd is not None else self.homo_low_bnd
        upp = self.upp_bnd.min() if self.upp_bnd is not None else self.homo_upp_bnd
        uX = float(min(max(uX, low), upp))

        if self.quadratic.is_direct:
            self.R = self.quadratic.Y - column * uX
        return uX

    def _reduced_l1(self):
        P = self.partition
        if self.l1_weights is not None:
            rl1_weights = P.region_sums(self.l1_weights)
        elif self.homo_l1_weight:
            rl1_weights = self.homo_l1_weight * P.sizes().astype(float)
        else:
            return None, None
        if self.Yl1 is None:
            return rl1_weights, None

        weights = self.l1_weights

        def region_median(rv):
            idx = P.vertices(rv)
            if P.saturated[rv] and P.median_cached[rv]:
                return sorted_median(idx, self.Yl1, weights)
            return wth_element(idx, self.Yl1, weights)

        rYl1 = np.array(
            parallel_map(region_median, range(P.rV), P.V, self.max_num_threads)
        )
        P.median_cached[:] = True
        return rl1_weights, rYl1

    def _warm_start(self):
        """Previous iterate on the current regions, None before the first split."""
        P = self.partition
        if self.last_rX is None or P.last_comp_assign is None:
            return None
        first = P.comp_list[P.first_vertex[:-1]]
        return self.last_rX[P.last_comp_assign[first]]

    def solve_reduced_problem(self):
        P = self.partition
        premultiply = True
        if self.quadratic.is_direct:
            premultiply = qf.premultiply_reduced(self.quadratic.N, P.rV, self.pfdr_it)
        reduced, rA = self.quadratic.reduce(P, premultiply)

        rl1_weights, rYl1 = self._reduced_l1()
        rlow = P.region_max(self.low_bnd) if self.low_bnd is not None else self.homo_low_bnd
        rupp = P.region_min(self.upp_bnd) if self.upp_bnd is not None else self.homo_upp_bnd
        init = self._warm_start()

        dif_tol = self.pfdr_dif_tol
        if dif_tol is None:
            dif_tol = 1e-3 * self.dif_tol

        self.rX, self.pfdr_it = BACKENDS[self.backend](
            P.reduced_edges,
            P.reduced_edge_weights,
            reduced,
            rl1_weights,
            rYl1,
            rlow,
            rupp,
            rho=self.pfdr_rho,
            cond_min=self.pfdr_cond_min,
            dif_rcd=self.pfdr_dif_rcd,
            dif_tol=dif_tol,
            it_max=self.pfdr_it_max,
            init=init,
        )

        if self.quadratic.is_direct:
            self.R = self.quadratic.Y - rA @ self.rX

    def merged(self):
        if self.quadratic.is_direct:
            self.R = self.quadratic.residual(self.partition.expand(self.rX))

    def gradient(self):
        """
        Gradient of the differentiable part of the objective at the current
        iterate: quadratic term, total variation across active edges, l1 term
        away from the targets.
        """
        P = self.partition
        grad = np.array(self.quadratic.gradient(P, self.rX, self.R), dtype=float)
        x = P.expand(self.rX)

        act = np.flatnonzero(P.active)
        if act.size:
            u, v = P.edge_sources[act], P.adj_vertices[act]
            w = P.weights(act)
            grad_d1 = np.where(x[u] > x[v], w, -w)
            np.add.at(grad, u, grad_d1)
            np.add.at(grad, v, -grad_d1)

        l1_weights = self._l1_array()
        if l1_weights is not None:
            grad += l1_weights * np.sign(x - self._Yl1_array())
        return grad

    def _split_region(self, rv, grad, l1_weights, Yl1, low, upp, single_cut):
        """Edges to activate in region ``rv``, from one or two min cuts."""
        P = self.partition
        vertices = P.vertices(rv).copy()
        if vertices.size < 2:
            return np.zeros(0, dtype=np.int64)
        edges = P.edges_from(vertices)
        edges = edges[~P.active[edges]]
        if edges.size == 0:
            return edges
        xr = self.rX[rv]
        at_target = None
        if l1_weights is not None:
            at_target = Yl1[vertices] == xr

        # directions +1_U: sink side is the set moved up
        term = grad[vertices].copy()
        if at_target is not None:
            term[at_target] += l1_weights[vertices][at_target]
        if upp is not None:
            term[upp[vertices] == xr] = np.inf
        activated = self._cut(vertices, term, edges)
        if single_cut:
            return activated

        # directions -1_U: source side is the set moved down
        remaining = np.setdiff1d(edges, activated, assume_unique=True)
        if remaining.size == 0:
            return activated
        term = grad[vertices].copy()
        if at_target is not None:
            term[at_target] -= l1_weights[vertices][at_target]
        if low is not None:
            term[low[vertices] == xr] = -np.inf
        return np.concatenate((activated, self._cut(vertices, term, remaining)))

    def _cut(self, vertices, term, edges):
        P = self.partition
        u, v = P.edge_sources[edges], P.adj_vertices[edges]
        w = P.weights(edges)
        flow = FlowGraph(vertices)
        flow.set_term_capacities(vertices, term)
        flow.set_edge_capacities(u, v, w, w)
        flow.maxflow()
        return edges[flow.sink_side(u) != flow.sink_side(v)]

    def split(self):
        """
        Test every non-saturated region for a descent direction constant on
        the sides of a cut of the region, activate the edges along the cuts.

        Returns:
            activation: int - number of newly activated edges
        """
        P = self.partition
        grad = self.gradient()
        l1_weights = self._l1_array()
        Yl1 = self._Yl1_array()
        low, upp = self._low_array(), self._upp_array()
        # with total variation as the only nonsmooth term both cuts agree
        single_cut = l1_weights is None and low is None and upp is None

        regions = np.flatnonzero(~P.saturated)
        results = parallel_map(
            lambda rv: self._split_region(rv, grad, l1_weights, Yl1, low, upp, single_cut),
            regions,
            num_ops=2 * P.V + 5 * P.E,
            max_num_threads=self.max_num_threads,
        )

        activation = 0
        for rv, edges in zip(regions, results):
            P.active[edges] = True
            P.saturated[rv] = edges.size == 0
            activation += edges.size
        return activation

    def compute_evolution(self):
        """
        Relative change of the iterate since the last saved assignment,
        ||x - last_x|| / ||x||, with the amplitude floored at eps.

        Saturated regions are compared through their first vertex only and
        lose their saturation when their value moved by more than dif_tol
        (relative).
        """
        P = self.partition
        sizes = P.sizes()
        last_x = self.last_rX[P.last_comp_assign]

        saturated = P.saturated.copy()
        sat = np.flatnonzero(saturated)
        first = P.comp_list[P.first_vertex[sat]]
        sat_dif = np.abs(self.rX[sat] - last_x[first])
        P.saturated[sat[sat_dif > np.abs(self.rX[sat]) * self.dif_tol]] = False

        dif = float(np.sum(sat_dif**2 * sizes[sat]))
        unsat_vertices = ~saturated[P.comp_assign]
        dif += float(
            np.sum((P.expand(self.rX)[unsat_vertices] - last_x[unsat_vertices]) ** 2)
        )
        amp = float(np.sum(self.rX**2 * sizes))

        dif, amp = np.sqrt(dif), np.sqrt(amp)
        return dif / amp if amp > self.eps else dif / self.eps

    def compute_objective(self):
        P = self.partition
        obj = self.quadratic.objective(P, self.rX, self.R)
        obj += self.compute_graph_d1()
        l1_weights = self._l1_array()
        if l1_weights is not None:
            obj += float(np.sum(l1_weights * np.abs(P.expand(self.rX) - self._Yl1_array())))
        return obj


def _homogeneous(values, default=0.0):
    """Split a scalar-or-array argument into (array or None, scalar)."""
    if np.ndim(values) == 0:
        return None, float(values)
    return values, default


def cp_d1_ql1b(
    Y,
    first_edge,
    adj_vertices,
    edge_weights=1.0,
    A=1.0,
    l1_weights=0.0,
    Yl1=None,
    low_bnd=-np.inf,
    upp_bnd=np.inf,
    representation=None,
    cp_dif_tol=1e-4,
    cp_it_max=10,
    pfdr_rho=1.0,
    pfdr_cond_min=1e-3,
    pfdr_dif_rcd=0.0,
    pfdr_dif_tol=None,
    pfdr_it_max=10000,
    backend="pfdr",
    merge_tol=0.0,
    max_num_threads=0,
    verbose=False,
    compute_obj=False,
    compute_time=False,
    compute_dif=False,
):
    """
    Cut-pursuit minimization of quadratic + graph total variation + l1 + bounds.

    Scalars are homogeneous values; arrays give one value per vertex (l1
    weights, Yl1, bounds) or per edge in forward-star order (edge weights).
    A scalar A stands for the identity scaled by A (no quadratic term when 0),
    a vector for the diagonal of A^t A, a matrix for a direct N x V design
    matrix, or for A^t A with representation="gram".

    The identity scale is a true factor: the quadratic term is
    1/2 a ||x||^2 - <Y, x>, so a constant solution is (sum Y) / (a V) before
    the l1 and bound terms, and results depend on A even when it is scalar.

    Returns:
        comp_assign: (V,) int array - region of each vertex
        rX: (rV,) array - value of each region
        it: int - number of cut-pursuit iterations
        obj, time, dif: lists, only when the corresponding compute_* flag is
            set; objective, elapsed time and relative evolution at each
            iteration (the first two also at initialization)
    """
    edge_weights, homo_edge_weight = _homogeneous(edge_weights)
    solver = CutPursuitQL1B(first_edge, adj_vertices, edge_weights, homo_edge_weight)
    solver.set_cp_param(cp_dif_tol, cp_it_max, verbose, max_num_threads, merge_tol)
    solver.set_quadratic(Y, A, representation=representation)
    l1_weights, homo_l1_weight = _homogeneous(l1_weights)
    solver.set_l1(l1_weights, homo_l1_weight, Yl1)
    low_bnd, homo_low_bnd = _homogeneous(low_bnd, -np.inf)
    upp_bnd, homo_upp_bnd = _homogeneous(upp_bnd, np.inf)
    solver.set_bounds(low_bnd, homo_low_bnd, upp_bnd, homo_upp_bnd)
    solver.set_pfdr_param(
        pfdr_rho, pfdr_cond_min, pfdr_dif_rcd, pfdr_it_max, pfdr_dif_tol, backend
    )

    it = solver.cut_pursuit(compute_obj=compute_obj, compute_time=compute_time)

    out = [solver.partition.comp_assign.copy(), np.asarray(solver.rX, dtype=float), it]
    if compute_obj:
        out.append(solver.objective_values)
    if compute_time:
        out.append(solver.iteration_times)
    if compute_dif:
        out.append(solver.evolution_values)
    return tuple(out)


def cp_d1_ql1b_graph(G, Y, weight="weight", **kwargs):
    """
    Run cp_d1_ql1b on a networkx graph.

    Y and all per-vertex arguments follow the order of G.nodes. Edge weights
    are read from the ``weight`` attribute (1 when missing), unless a
    homogeneous ``edge_weights`` is given.

    Returns:
        x: dict - solution value of each node
        followed by the outputs of cp_d1_ql1b (comp_assign in G.nodes order,
        rX, it, ...)
    """
    nodes, first_edge, adj_vertices, edge_weights = graph_to_forward_star(G, weight)
    kwargs.setdefault("edge_weights", edge_weights)
    comp_assign, rX, *rest = cp_d1_ql1b(Y, first_edge, adj_vertices, **kwargs)
    x = rX[comp_assign]
    return ({n: float(x[i]) for i, n in enumerate(nodes)}, comp_assign, rX, *rest)


# %%
if __name__ == "__main__":
    # two plateaus on a path of four vertices
    first_edge = np.array([0, 1, 2, 3, 3])
    adj_vertices = np.array([1, 2, 3])
    Y = np.array([0.0, 0.0, 10.0, 10.0])

    comp_assign, rX, it, obj = cp_d1_ql1b(
        Y, first_edge, adj_vertices, compute_obj=True, verbose=True
    )
    print(comp_assign, rX, it, obj)
