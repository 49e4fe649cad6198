# %%
import matplotlib as mpl
import matplotlib.pyplot as plt
import networkx as nx
import numpy as np

np.set_printoptions(precision=3, suppress=True)


def graphPlot(
    graph,
    x,
    ax=None,
    comp_assign=None,
    cmap="cividis",
    cbar=True,
    show_labels=False,
    title=None,
    edgewidth=2,
    **kwargs,
):
    """
    Draw a graph with nodes colored by value; with comp_assign, edges between
    different regions are drawn in red.

    Parameters:
        graph: nx.Graph - graph with a 'pos' node attribute (spring layout otherwise)
        x: array or dict - value of each node, array in graph.nodes order
        comp_assign: array or None - region of each node, in graph.nodes order
    """
    if ax is None:
        fig, ax = plt.subplots(figsize=(6, 4))

    pos = nx.get_node_attributes(graph, "pos")
    if len(pos) != graph.number_of_nodes():
        pos = nx.spring_layout(graph, seed=42)

    if isinstance(x, dict):
        x = np.array([x[n] for n in graph.nodes()])
    x = np.asarray(x, dtype=float)

    cmap = plt.get_cmap(cmap)
    norm = mpl.colors.Normalize(vmin=x.min(), vmax=x.max())

    edge_colors = ["lightgrey"] * graph.number_of_edges()
    if comp_assign is not None:
        region = dict(zip(graph.nodes(), comp_assign))
        edge_colors = [
            "red" if region[u] != region[v] else "lightgrey" for u, v in graph.edges()
        ]

    nx.draw_networkx_edges(graph, pos, ax=ax, edge_color=edge_colors, width=edgewidth)
    nx.draw_networkx_nodes(
        graph, pos, ax=ax, node_color=[cmap(norm(v)) for v in x], **kwargs
    )
    if len(graph.nodes) < 25 or show_labels:
        nx.draw_networkx_labels(graph, pos, ax=ax)

    if cbar:
        sm = plt.cm.ScalarMappable(cmap=cmap, norm=norm)
        sm.set_array([])
        plt.colorbar(sm, ax=ax, label="value")

    if title is not None:
        ax.set_title(title)
    ax.axis("off")
    return ax


def convergencePlot(obj=None, dif=None, times=None, ax=None):
    """Objective and relative evolution along the cut-pursuit iterations."""
    if ax is None:
        fig, ax = plt.subplots(figsize=(6, 4))

    xlabel = "iteration"
    if obj is not None:
        xs = np.arange(len(obj)) if times is None else np.asarray(times)
        ax.plot(xs, obj, "o-", color="black", label="objective")
        ax.set_ylabel("objective")
    if dif is not None:
        ax2 = ax.twinx() if obj is not None else ax
        xs = np.arange(1, len(dif) + 1) if times is None else np.asarray(times)[1:]
        ax2.semilogy(xs, np.maximum(dif, np.finfo(float).tiny), "s--", color="red")
        ax2.set_ylabel("relative evolution")
    if times is not None:
        xlabel = "time (s)"
    ax.set_xlabel(xlabel)
    return ax


# %%
if __name__ == "__main__":
    from cutpursuit import GraphGenerator as gg
    from cutpursuit.CutPursuitQL1B import cp_d1_ql1b_graph

    G = gg.grid_graph(8, 8)
    x_true, Y, labels = gg.piecewise_constant_signal(G, num_regions=4, noise=1.0)
    x, comp_assign, rX, it, obj, dif = cp_d1_ql1b_graph(
        G, Y, compute_obj=True, compute_dif=True
    )

    fig, axs = plt.subplots(1, 3, figsize=(15, 4))
    graphPlot(G, Y, ax=axs[0], title="observation")
    graphPlot(G, x, ax=axs[1], comp_assign=comp_assign, title="cut-pursuit")
    convergencePlot(obj, dif, ax=axs[2])
    plt.show()
