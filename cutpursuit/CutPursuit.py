"""Generic cut-pursuit loop over a graph with a total variation (d1) term."""

from __future__ import annotations

import time
import warnings

import numpy as np

from cutpursuit.Partition import Partition


class CutPursuit:
    """
    Alternate between optimizing a piecewise-constant iterate over a fixed
    partition and refining the partition with min cuts.

    Subclasses provide the problem-specific steps: ``solve_univertex_problem``,
    ``solve_reduced_problem``, ``split``, ``compute_evolution`` and
    ``compute_objective``. The iterate ``rX`` holds one value per region of
    ``self.partition``.
    """

    def __init__(self, first_edge, adj_vertices, edge_weights=None, homo_edge_weight=1.0):
        self.partition = Partition(first_edge, adj_vertices, edge_weights, homo_edge_weight)
        self.V = self.partition.V
        self.E = self.partition.E
        self.rX = None
        self.last_rX = None
        self.eps = np.finfo(float).eps
        self.monitor_evolution = True
        self.set_cp_param()
        self.objective_values = []
        self.iteration_times = []
        self.evolution_values = []

    def set_cp_param(
        self, dif_tol=1e-4, it_max=10, verbose=False, max_num_threads=0, merge_tol=0.0
    ):
        if dif_tol < 0:
            raise ValueError(f"Negative cut-pursuit tolerance ({dif_tol}).")
        if merge_tol < 0:
            raise ValueError(f"Negative merge tolerance ({merge_tol}).")
        self.dif_tol = float(dif_tol)
        self.it_max = int(it_max)
        self.verbose = verbose
        self.max_num_threads = int(max_num_threads)
        self.merge_tol = float(merge_tol)

    def set_edge_weights(self, edge_weights=None, homo_edge_weight=1.0):
        self.partition.set_edge_weights(edge_weights, homo_edge_weight)

    # problem-specific steps

    def solve_univertex_problem(self):
        raise NotImplementedError

    def solve_reduced_problem(self):
        raise NotImplementedError

    def split(self):
        raise NotImplementedError

    def compute_evolution(self):
        raise NotImplementedError

    def compute_objective(self):
        raise NotImplementedError

    def merged(self):
        """Called after regions have been merged and rX recomputed."""

    # generic steps

    def compute_graph_d1(self):
        """Total variation of the current iterate; only boundary edges contribute."""
        P = self.partition
        if P.rE == 0:
            return 0.0
        ru, rv = P.reduced_edges[:, 0], P.reduced_edges[:, 1]
        return float(np.sum(P.reduced_edge_weights * np.abs(self.rX[ru] - self.rX[rv])))

    def initialize(self):
        P = self.partition
        self.last_rX = None
        P.active[:] = False
        P.compute_connected_components()
        P.saturated[:] = False
        P.median_cached[:] = False
        P.compute_reduced_graph()
        if P.rV == 1:
            self.rX = np.array([self.solve_univertex_problem()])
        else:
            self.solve_reduced_problem()

    def merge(self):
        self.rX, num_merged = self.partition.merge(self.rX, self.merge_tol)
        if num_merged:
            self.merged()
        return num_merged

    def _record(self, start_time, compute_obj, compute_time, dif=None):
        if compute_obj:
            self.objective_values.append(self.compute_objective())
        if compute_time:
            self.iteration_times.append(time.time() - start_time)
        if dif is not None:
            self.evolution_values.append(dif)

    def cut_pursuit(self, init=True, compute_obj=False, compute_time=False):
        """
        Run the cut-pursuit iterations.

        Stops when the split finds no new boundary, when the relative evolution
        of the iterate drops to ``dif_tol``, or after ``it_max`` iterations.

        Returns:
            it: int - number of completed iterations
        """
        start_time = time.time()
        self.objective_values, self.iteration_times, self.evolution_values = [], [], []
        if init:
            self.initialize()
        self._record(start_time, compute_obj, compute_time)

        P = self.partition
        it = 0
        dif = np.inf
        while it < self.it_max:
            if self.monitor_evolution and dif <= self.dif_tol:
                break
            self.last_rX = self.rX.copy()
            P.save_assignment()

            activation = self.split()
            if activation == 0:
                break

            P.compute_connected_components()
            P.compute_reduced_graph()
            self.solve_reduced_problem()
            num_merged = self.merge()
            dif = self.compute_evolution()
            it += 1
            self._record(start_time, compute_obj, compute_time, dif)

            if self.verbose:
                print(
                    f"Cut-pursuit iteration {it} (max. {self.it_max}): "
                    f"{activation} new boundary edges, {num_merged} merges, "
                    f"{P.rV} components, {P.rE} reduced edges, "
                    f"relative evolution {dif:.2e}"
                )
        else:
            if self.monitor_evolution and self.it_max > 0 and dif > self.dif_tol:
                warnings.warn(
                    f"Cut-pursuit stopped after {self.it_max} iterations "
                    f"without convergence (relative evolution {dif:.2e})."
                )

        if self.verbose:
            print("Time:", time.time() - start_time, "s")
        return it
