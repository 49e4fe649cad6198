# %%
import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt
import numpy as np

from cutpursuit import GraphGenerator as gg
from cutpursuit import Plotting as pl


def test_graph_plot_marks_boundaries():
    G = gg.path_graph(4)
    fig, ax = plt.subplots()
    out = pl.graphPlot(G, [0.5, 0.5, 9.5, 9.5], ax=ax, comp_assign=[0, 0, 1, 1])
    assert out is ax
    assert len(ax.collections) >= 2
    plt.close(fig)


def test_graph_plot_accepts_dict():
    G = gg.grid_graph(3, 3)
    x = {n: float(n) for n in G.nodes}
    ax = pl.graphPlot(G, x, cbar=False, title="grid")
    assert ax.get_title() == "grid"
    plt.close("all")


def test_convergence_plot():
    ax = pl.convergencePlot(obj=[3.0, 1.0, 0.5], dif=[0.1, 1e-3])
    assert ax.get_xlabel() == "iteration"
    ax = pl.convergencePlot(dif=[0.1, 0.0], times=np.array([0.0, 0.1, 0.2]))
    assert ax.get_xlabel() == "time (s)"
    plt.close("all")
