"""Interactive Plotly charts for solved frame-trap trees.

Three public functions:

    build_sensitivity_figure(results, side)
        — One line per action: probability vs the swept resource value.
    build_strategy_bar_figure(data, title)
        — Grouped bars of both sides' mixed strategy at one node.
    save_figure_html(fig, path)
        — Export any figure to a self-contained HTML file.

Hover over a point or bar to see the action name and exact probability.
"""

from __future__ import annotations

from typing import Sequence

import plotly.graph_objects as go
from plotly.subplots import make_subplots

from frametrap.analysis.sensitivity import PLAYER_SIDE, SensitivityResult
from frametrap.solvers.protocol import ActionProbability, StrategyData

# ─── Constants ────────────────────────────────────────────────────────────────

_PLAYER_COLOR: str = "#1f77b4"
_OPPONENT_COLOR: str = "#d62728"


def _action_label(entry: ActionProbability) -> str:
    return entry.name or f"Action {entry.action_id}"


# ─── Public figure builders ───────────────────────────────────────────────────


def build_sensitivity_figure(
    results: Sequence[SensitivityResult],
    side: str = PLAYER_SIDE,
    *,
    parameter_label: str = "Parameter value",
) -> go.Figure:
    """Line chart of each action's probability across a sensitivity sweep.

    Actions are taken from the first result, in the node's declared order;
    an action missing from a later sample plots as 0.

    Args:
        results:         Successful sweep samples, in sweep order.
        side:            ``"player"`` or ``"opponent"``.
        parameter_label: x-axis title (e.g. the swept resource name).

    Returns:
        go.Figure with one Scatter trace per action.

    Raises:
        ValueError: If ``side`` is not a known side.
    """
    fig = go.Figure()
    if results:
        xs = [r.parameter_value for r in results]
        for entry in results[0].strategies(side):
            ys = [
                next(
                    (a.probability for a in r.strategies(side) if a.action_id == entry.action_id),
                    0.0,
                )
                for r in results
            ]
            fig.add_trace(
                go.Scatter(
                    x=xs,
                    y=ys,
                    mode="lines+markers",
                    name=_action_label(entry),
                    hovertemplate=(
                        f"{_action_label(entry)}<br>{parameter_label}: %{{x}}"
                        "<br>P: <b>%{y:.3f}</b><extra></extra>"
                    ),
                )
            )

    fig.update_layout(
        title_text=f"Sensitivity: {side} strategy",
        title_font_size=15,
        height=420,
        width=780,
    )
    fig.update_xaxes(title_text=parameter_label)
    fig.update_yaxes(title_text="Probability", range=[0.0, 1.0])
    return fig


def build_strategy_bar_figure(data: StrategyData, title: str = "") -> go.Figure:
    """Side-by-side bar charts of the player and opponent strategy at a node.

    Args:
        data:  StrategyData for one node (from a solver or CompleteResult).
        title: Figure title; defaults to the node id.

    Returns:
        go.Figure with two Bar traces in a 1×2 subplot layout.
    """
    fig = make_subplots(
        rows=1,
        cols=2,
        subplot_titles=["Player", "Opponent"],
        horizontal_spacing=0.12,
    )
    panels = [
        (1, data.player_strategy, "Player", _PLAYER_COLOR),
        (2, data.opponent_strategy, "Opponent", _OPPONENT_COLOR),
    ]
    for col, entries, name, color in panels:
        fig.add_trace(
            go.Bar(
                x=[_action_label(e) for e in entries],
                y=[e.probability for e in entries],
                name=name,
                marker_color=color,
                hovertemplate="%{x}<br>P: <b>%{y:.3f}</b><extra></extra>",
            ),
            row=1,
            col=col,
        )

    fig.update_layout(
        title_text=title or f"Strategy at {data.node_id}",
        title_font_size=15,
        height=420,
        width=780,
        showlegend=False,
    )
    fig.update_yaxes(title_text="Probability", range=[0.0, 1.0], col=1)
    fig.update_yaxes(range=[0.0, 1.0], col=2)
    return fig


# ─── HTML export ───────────────────────────────────────────────────────────────


def save_figure_html(fig: go.Figure, path: str) -> None:
    """Save a Plotly figure to a self-contained HTML file (Plotly JS from CDN)."""
    fig.write_html(path, include_plotlyjs="cdn")
