"""
FLOWSWATH Plotting
==================

Matplotlib rendering of swath profiles.
"""

from typing import Optional

import numpy as np
import matplotlib.pyplot as plt

from .swath import DisplayMode, SwathResult


def plot_swath(
    result: SwathResult,
    vex: float = 10.0,
    mode: Optional[DisplayMode] = None,
    ax: Optional[plt.Axes] = None,
    cmap: str = "viridis",
):
    """
    Draw a swath profile.

    The envelope display fills the min-max band and draws the mean; the
    scatter display plots every sample against its station distance; the
    heatmap display shows per-station observation counts, leaving bins
    outside the local elevation range blank, with the min and max lines on
    top. The x axis spans the swath from 0 to the last station. Bends are
    drawn as vertical lines. Vertical exaggeration is applied through the
    axes aspect ratio.

    Args:
        result: Output of make_topo_swath
        vex: Vertical exaggeration
        mode: Display mode, default the one stored on the result
        ax: Axes to draw into, default a new figure
        cmap: Colormap for the heatmap display

    Returns:
        matplotlib Figure
    """
    mode = mode or result.display_mode
    if ax is None:
        fig, ax = plt.subplots(figsize=(12, 4))
    else:
        fig = ax.figure

    swath = result.swath
    matrix = result.swath_matrix
    distance = matrix[:, 0]

    if mode is DisplayMode.SCATTER:
        dist = np.broadcast_to(swath.distx, swath.z.shape)
        valid = ~np.isnan(swath.z)
        ax.scatter(dist[valid], swath.z[valid], s=1, c="black", alpha=0.3)

    elif mode is DisplayMode.HEATMAP:
        grid = result.heatmap
        if grid is None:
            from .swath_statistics import heatmap

            grid = heatmap(swath.distx, swath.z)
        order = np.argsort(grid.distance, kind="stable")
        mesh = ax.pcolormesh(
            grid.distance[order],
            grid.centers,
            grid.masked()[:, order],
            cmap=cmap,
            shading="nearest",
        )
        fig.colorbar(mesh, ax=ax, label="Observations")
        ax.plot(distance, matrix[:, 1], color="white", linewidth=0.8)
        ax.plot(distance, matrix[:, 3], color="white", linewidth=0.8)

    else:
        ax.fill_between(distance, matrix[:, 1], matrix[:, 3], color="0.8", label="Min-max")
        ax.plot(distance, matrix[:, 1], color="0.4", linewidth=0.5)
        ax.plot(distance, matrix[:, 3], color="0.4", linewidth=0.5)

    if mode is not DisplayMode.HEATMAP:
        ax.plot(distance, matrix[:, 2], color="tab:red", linewidth=1.0, label="Mean")

    if len(swath.points) > 2:
        for bend in result.bends:
            ax.axvline(bend, color="tab:blue", linestyle="--", linewidth=0.8)

    ax.set_xlim(0, np.nanmax(distance))
    ax.set_aspect(vex)
    ax.set_xlabel(f"Distance along swath (m) : VEX = {vex:g}")
    ax.set_ylabel("Elevation (m)")
    if mode is not DisplayMode.HEATMAP:
        ax.legend(loc="best")

    return fig
