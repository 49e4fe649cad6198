# %%
import networkx as nx
import numpy as np

from cutpursuit._graph_utils import graph_to_forward_star


def _set_weights(U, weight, seed):
    if weight == "random":
        rng = np.random.default_rng(seed)
        weight = rng.uniform(0.1, 1, U.number_of_edges())
    if isinstance(weight, (int, float)):
        weight = weight * np.ones(U.number_of_edges())
    nx.set_edge_attributes(U, dict(zip(U.edges, weight)), "weight")


def path_graph(num_nodes, weight=1.0, seed=42):
    U = nx.path_graph(num_nodes)
    _set_weights(U, weight, seed)
    nx.set_node_attributes(U, {n: (float(n), 0.0) for n in U.nodes}, "pos")
    return U


def grid_graph(rows, cols, weight=1.0, seed=42):
    """Grid graph with integer node labels in row-major order and a 'pos' attribute."""
    U = nx.grid_2d_graph(rows, cols)
    pos = {(i, j): (float(j), float(-i)) for i, j in U.nodes}
    nx.set_node_attributes(U, pos, "pos")
    U = nx.convert_node_labels_to_integers(U, ordering="sorted")
    _set_weights(U, weight, seed)
    return U


def random_graph(num_nodes=10, num_edges=15, seed=42, weight=1.0):
    """Connected random graph with at least num_edges edges."""
    connected = False
    if num_edges < num_nodes - 1:
        num_edges = num_nodes - 1

    while not connected:
        U = nx.gnm_random_graph(num_nodes, num_edges, seed=seed)
        connected = nx.is_connected(U)
        num_edges += 1

    _set_weights(U, weight, seed)
    pos = nx.spring_layout(U, seed=seed)
    nx.set_node_attributes(U, pos, "pos")
    return U


def piecewise_constant_signal(G, num_regions=3, noise=0.1, seed=42, low=0.0, high=10.0):
    """
    Noisy observation of a signal constant over connected regions of G.

    Regions are the Voronoi cells (hop distance) of randomly drawn centers;
    each gets a value uniform in [low, high].

    Parameters:
        G: nx.Graph - the graph
        num_regions: int - number of regions
        noise: float - standard deviation of the gaussian noise
        seed: int - random seed

    Returns:
        x: np.ndarray - true signal, in G.nodes order
        Y: np.ndarray - noisy observation
        labels: np.ndarray - region of each node
    """
    rng = np.random.default_rng(seed)
    nodes = list(G.nodes)
    num_regions = min(num_regions, len(nodes))
    centers = rng.choice(len(nodes), size=num_regions, replace=False)
    cells = nx.voronoi_cells(G, {nodes[c] for c in centers}, weight=lambda u, v, d: 1)

    index = {n: i for i, n in enumerate(nodes)}
    labels = np.zeros(len(nodes), dtype=np.int64)
    for label, center in enumerate(nodes[c] for c in centers):
        labels[[index[n] for n in cells[center]]] = label
    values = rng.uniform(low, high, num_regions)

    x = values[labels]
    Y = x + noise * rng.standard_normal(len(nodes))
    return x, Y, labels


def forward_star(G, weight="weight"):
    """Forward-star arrays (first_edge, adj_vertices, edge_weights) of G."""
    _, first_edge, adj_vertices, edge_weights = graph_to_forward_star(G, weight)
    return first_edge, adj_vertices, edge_weights


# %%
if __name__ == "__main__":
    G = grid_graph(5, 5)
    x, Y, labels = piecewise_constant_signal(G, num_regions=3, noise=0.5)
    print(labels.reshape(5, 5))
    print(np.round(Y.reshape(5, 5), 2))
    first_edge, adj_vertices, edge_weights = forward_star(G)
    print(first_edge, adj_vertices)
