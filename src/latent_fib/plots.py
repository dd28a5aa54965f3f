"""
Visualization functions for fitted latent contamination models.

Functions
---------
contamination_index_plot
    Plot the fitted contamination index of each observation, grouped by event.
sensitivity_plot
    Bar chart of category sensitivities, highlighting human-specific categories.
"""
from __future__ import annotations

from pathlib import Path
from typing import Optional

import matplotlib.pyplot as plt
import numpy as np

from .latent import LatentFitResult


def contamination_index_plot(
    result: LatentFitResult,
    *,
    title: Optional[str] = None,
    outpath: Optional[str | Path] = None,
    dpi: int = 200,
):
    """Plot the fitted contamination index (gamma) by observation.

    Observations are drawn in their original order and colored by event,
    with a dashed line at each event's mean index.

    Parameters
    ----------
    result : LatentFitResult
        Fitted model.
    title : str or None, default None
        Plot title.
    outpath : str, Path, or None, default None
        If provided, save the figure to this path.
    dpi : int, default 200
        Resolution for saved figure.

    Returns
    -------
    fig : matplotlib.figure.Figure
        The matplotlib figure object.
    ax : matplotlib.axes.Axes
        The matplotlib axes object.
    """
    gamma = result.gamma.to_numpy(dtype=float)
    codes = result.event_codes
    labels = list(result.alpha.index)
    x = np.arange(gamma.size)

    fig, ax = plt.subplots(figsize=(max(6.0, 0.12 * gamma.size), 4.0))
    cmap = plt.get_cmap("tab10")
    for k, label in enumerate(labels):
        sel = codes == k
        color = cmap(k % 10)
        ax.scatter(x[sel], gamma[sel], s=14, color=color, label=str(label))
        ax.hlines(gamma[sel].mean(), x[sel].min(), x[sel].max(),
                  colors=color, linestyles="--", linewidth=0.8)

    ax.set_xlabel("Observation")
    ax.set_ylabel("Contamination index")
    ax.legend(title="Event", fontsize=8, frameon=False)
    if title:
        ax.set_title(title)

    fig.tight_layout()
    if outpath is not None:
        outpath = Path(outpath)
        outpath.parent.mkdir(parents=True, exist_ok=True)
        fig.savefig(outpath, dpi=dpi, bbox_inches="tight")
    return fig, ax


def sensitivity_plot(
    result: LatentFitResult,
    *,
    title: Optional[str] = None,
    outpath: Optional[str | Path] = None,
    dpi: int = 200,
):
    """Bar chart of fitted sensitivities (beta).

    Human-specific categories are drawn in red, others in blue.

    Returns
    -------
    fig : matplotlib.figure.Figure
    ax : matplotlib.axes.Axes
    """
    beta = result.beta
    colors = np.where(result.specific, "#e34a33", "#3182bd")  # red / blue

    fig, ax = plt.subplots()
    ax.bar(np.arange(beta.size), beta.to_numpy(dtype=float), color=colors)
    ax.set_xticks(np.arange(beta.size))
    ax.set_xticklabels([str(c) for c in beta.index], rotation=45, ha="right")
    ax.axhline(0.0, color="gray", linewidth=0.8)
    ax.set_ylabel(r"Sensitivity $\beta$")
    if title:
        ax.set_title(title)

    fig.tight_layout()
    if outpath is not None:
        outpath = Path(outpath)
        outpath.parent.mkdir(parents=True, exist_ok=True)
        fig.savefig(outpath, dpi=dpi, bbox_inches="tight")
    return fig, ax
