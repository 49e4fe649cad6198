# %%
import networkx as nx
import numpy as np
from networkx.algorithms.flow import boykov_kolmogorov

SOURCE = "source"
SINK = "sink"


class FlowGraph:
    """
    Source/sink min-cut instance over the subgraph induced by a set of vertices.

    A positive terminal capacity c at vertex v links the source to v (putting
    v on the sink side costs c), a negative one links v to the sink (putting v
    on the source side costs -c). Infinite capacities are allowed on terminal
    links. Instances over disjoint vertex sets are independent.
    """

    def __init__(self, vertices):
        self.vertices = np.asarray(vertices)
        self.index = {int(v): i for i, v in enumerate(self.vertices)}
        self.term = np.zeros(self.vertices.size)
        self.edges = {}
        self.is_sink = None
        self.cut_value = None

    def _local(self, v):
        return np.array([self.index[int(u)] for u in np.atleast_1d(v)], dtype=np.int64)

    def set_term_capacities(self, v, cap):
        self.term[self._local(v)] = cap

    def set_edge_capacities(self, u, v, cap_uv, cap_vu):
        """Add capacities between pairs of vertices, in both directions."""
        for a, b, c_ab, c_ba in np.broadcast(
            np.atleast_1d(u), np.atleast_1d(v), cap_uv, cap_vu
        ):
            a, b = int(a), int(b)
            self.edges[(a, b)] = self.edges.get((a, b), 0.0) + float(c_ab)
            self.edges[(b, a)] = self.edges.get((b, a), 0.0) + float(c_ba)

    def flow_graph(self):
        G = nx.DiGraph()
        G.add_node(SOURCE)
        G.add_node(SINK)
        G.add_nodes_from(int(v) for v in self.vertices)
        for v, c in zip(self.vertices, self.term):
            if c > 0:
                G.add_edge(SOURCE, int(v), capacity=float(c))
            elif c < 0:
                G.add_edge(int(v), SINK, capacity=float(-c))
        G.add_edges_from(
            (a, b, {"capacity": c}) for (a, b), c in self.edges.items() if c > 0
        )
        return G

    def sink_side(self, v):
        """
        Side of the last cut for the given vertices (True on the sink side).

        Vertices with no path to the sink in the residual graph, free vertices
        included, are on the source side.
        """
        return self.is_sink[self._local(v)]

    def maxflow(self):
        """
        Compute a min cut; return, per vertex, whether it is on the sink side.

        The sink side is the set of vertices that can still reach the sink in
        the residual graph; free vertices go to the source side.
        """
        G = self.flow_graph()
        self.cut_value, (reachable, _) = nx.minimum_cut(
            G, SOURCE, SINK, flow_func=boykov_kolmogorov
        )
        self.is_sink = np.array([int(v) not in reachable for v in self.vertices])
        return self.is_sink


# %%
if __name__ == "__main__":
    fg = FlowGraph([0, 1, 2, 3])
    fg.set_term_capacities([0, 1, 2, 3], [5.0, 5.0, -5.0, -5.0])
    fg.set_edge_capacities([0, 1, 2], [1, 2, 3], 1.0, 1.0)
    print(fg.maxflow(), fg.cut_value)
