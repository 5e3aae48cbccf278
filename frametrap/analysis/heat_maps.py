"""Sensitivity heat maps.

    build_sensitivity_matrix(results, side)       — (actions, labels, values, matrix)
    plot_sensitivity_heatmap(results, side, ...)  — matplotlib figure

Matrix convention:
    Shape  : (n_actions, n_samples) — rows = the side's actions in the
             node's declared order, cols = swept parameter values
    Values : action probability in [0, 1]; np.nan where a sample does not
             report that action
"""

from __future__ import annotations

from typing import Sequence

import matplotlib
import matplotlib.colors
import matplotlib.figure
import matplotlib.pyplot as plt
import numpy as np

from frametrap.analysis.sensitivity import PLAYER_SIDE, SensitivityResult

# ─── Constants ────────────────────────────────────────────────────────────────

_NAN_COLOR: str = "#cccccc"
# Above this many columns the per-cell annotations become unreadable.
_MAX_ANNOTATED_COLUMNS: int = 12


def _make_continuous_cmap() -> matplotlib.colors.Colormap:
    """Viridis gradient for probabilities, grey for absent cells."""
    cmap = matplotlib.colormaps["viridis"].copy()
    cmap.set_bad(color=_NAN_COLOR)
    return cmap


_CONTINUOUS_CMAP: matplotlib.colors.Colormap = _make_continuous_cmap()


# ─── Data builder ─────────────────────────────────────────────────────────────


def build_sensitivity_matrix(
    results: Sequence[SensitivityResult],
    side: str = PLAYER_SIDE,
) -> tuple[list[int], list[str], list[float], np.ndarray]:
    """Return (action_ids, action_labels, parameter_values, matrix).

    Args:
        results: Successful sweep samples, in sweep order.
        side:    ``"player"`` or ``"opponent"``.

    Returns:
        ``matrix`` has shape (n_actions, n_samples) and dtype float64. With
        no results every list is empty and the matrix has shape (0, 0).
    """
    if not results:
        return [], [], [], np.empty((0, 0))

    first = results[0].strategies(side)
    action_ids = [e.action_id for e in first]
    labels = [e.name or f"Action {e.action_id}" for e in first]
    values = [r.parameter_value for r in results]

    matrix = np.full((len(action_ids), len(results)), np.nan)
    row_of = {action_id: r for r, action_id in enumerate(action_ids)}
    for c, result in enumerate(results):
        for entry in result.strategies(side):
            r = row_of.get(entry.action_id)
            if r is not None:
                matrix[r, c] = entry.probability
    return action_ids, labels, values, matrix


# ─── Public plot function ─────────────────────────────────────────────────────


def plot_sensitivity_heatmap(
    results: Sequence[SensitivityResult],
    side: str = PLAYER_SIDE,
    *,
    title: str = "",
    parameter_label: str = "Parameter value",
    show: bool = True,
    save_path: str | None = None,
) -> matplotlib.figure.Figure:
    """Plot action probability by sweep value as a heat map.

    Args:
        results:         Successful sweep samples, in sweep order.
        side:            ``"player"`` or ``"opponent"``.
        title:           Figure title; defaults to "Sensitivity: <side> strategy".
        parameter_label: x-axis label.
        show:            If True, call plt.show() after rendering.
        save_path:       If not None, save the figure to this path before showing.

    Returns:
        matplotlib.figure.Figure.
    """
    _, labels, values, matrix = build_sensitivity_matrix(results, side)

    fig, ax = plt.subplots(figsize=(max(6.0, 0.6 * len(values) + 3.0), 1.0 + 0.6 * max(len(labels), 2)))
    ax.set_title(title or f"Sensitivity: {side} strategy", fontsize=12, fontweight="bold")

    if matrix.size:
        masked = np.ma.masked_invalid(matrix)
        im = ax.imshow(masked, cmap=_CONTINUOUS_CMAP, vmin=0.0, vmax=1.0, aspect="auto")
        ax.set_xticks(range(len(values)))
        ax.set_xticklabels([f"{v:g}" for v in values], fontsize=8, rotation=45)
        ax.set_yticks(range(len(labels)))
        ax.set_yticklabels(labels, fontsize=9)

        if len(values) <= _MAX_ANNOTATED_COLUMNS:
            for r in range(matrix.shape[0]):
                for c in range(matrix.shape[1]):
                    val = matrix[r, c]
                    if np.isnan(val):
                        continue
                    ax.text(
                        c,
                        r,
                        f"{val:.2f}",
                        ha="center",
                        va="center",
                        fontsize=8,
                        color="black" if val > 0.6 else "white",
                    )
        plt.colorbar(im, ax=ax, label="Probability", fraction=0.046, pad=0.04)

    ax.set_xlabel(parameter_label, fontsize=9)
    plt.tight_layout()

    if save_path is not None:
        fig.savefig(save_path, bbox_inches="tight", dpi=120)
    if show:
        plt.show()

    return fig
