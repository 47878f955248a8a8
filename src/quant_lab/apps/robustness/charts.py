# pyright: reportMissingTypeStubs=false, reportUnknownMemberType=false, reportUnknownArgumentType=false, reportUnknownVariableType=false
"""Interactive Plotly charts for robustness reports.

Provide a score breakdown chart, per-fold walk-forward expectancy, the
Monte Carlo distribution summary, and per-regime net R. All charts use a
consistent dark theme and can be displayed in the browser or saved to a
single HTML file.
"""

from __future__ import annotations

import tempfile
import webbrowser
from typing import TYPE_CHECKING

import plotly.graph_objects as go

if TYPE_CHECKING:
    from pathlib import Path

    from quant_lab.apps.robustness.monte_carlo import MonteCarloResult
    from quant_lab.apps.robustness.regime import RegimeResult
    from quant_lab.apps.robustness.suite import RobustnessResult
    from quant_lab.apps.robustness.walk_forward import WalkForwardResult

_BG_COLOR = "#1e1e2f"
_PAPER_COLOR = "#1e1e2f"
_GRID_COLOR = "#2e2e3e"
_TEXT_COLOR = "#e0e0e0"
_GREEN = "#00c853"
_RED = "#ff1744"
_AMBER = "#ffab00"
_REFERENCE_DASH = "dash"
_PASS_SCORE = 50.0


def _apply_dark_theme(fig: go.Figure) -> go.Figure:
    """Apply a consistent dark theme to a Plotly figure.

    Args:
        fig: The Plotly figure to style.

    Returns:
        The same figure, mutated in place, for chaining convenience.

    """
    fig.update_layout(
        template="plotly_dark",
        plot_bgcolor=_BG_COLOR,
        paper_bgcolor=_PAPER_COLOR,
        font_color=_TEXT_COLOR,
        legend={"bgcolor": "rgba(0,0,0,0)"},
        margin={"l": 60, "r": 30, "t": 50, "b": 40},
    )
    fig.update_xaxes(gridcolor=_GRID_COLOR, zeroline=False)
    fig.update_yaxes(gridcolor=_GRID_COLOR, zeroline=False)
    return fig


def create_score_breakdown_chart(result: RobustnessResult) -> go.Figure:
    """Create a bar chart of every check's sub-score with the composite total.

    Bars at or above 50 are green, lower ones amber. A dashed line marks
    the weighted total.
    """
    components = result.breakdown.components
    labels = [c.check.value.replace("_", " ").title() for c in components]
    scores = [c.score for c in components]
    colors = [_GREEN if s >= _PASS_SCORE else _AMBER for s in scores]
    hover = [f"weight {c.weight:.2f}, contributes {c.contribution:.2f}" for c in components]

    fig = go.Figure()
    fig.add_trace(go.Bar(x=labels, y=scores, marker_color=colors, hovertext=hover, name="Score"))
    fig.add_hline(
        y=result.score,
        line_dash=_REFERENCE_DASH,
        line_color=_TEXT_COLOR,
        opacity=0.6,
        annotation_text=f"Total {result.score:.2f} ({result.grade})",
    )
    fig.update_layout(
        title=f"Robustness: {result.strategy_id} on {result.segment}",
        xaxis_title="Check",
        yaxis_title="Score",
        yaxis_range=[0, 100],
    )
    return _apply_dark_theme(fig)


def create_walk_forward_chart(wf_result: WalkForwardResult) -> go.Figure:
    """Create a bar chart of out-of-sample expectancy per fold."""
    labels = [f"Fold {f.fold_index}" for f in wf_result.folds]
    expectancies = [float(f.out_of_sample_kpis.expectancy_r) for f in wf_result.folds]
    trades = [f"{f.out_of_sample_kpis.trades} trades" for f in wf_result.folds]
    colors = [_GREEN if e >= 0 else _RED for e in expectancies]

    fig = go.Figure()
    fig.add_trace(
        go.Bar(
            x=labels,
            y=expectancies,
            marker_color=colors,
            text=trades,
            textposition="outside",
            name="OOS expectancy (R)",
        )
    )
    fig.update_layout(
        title_text=f"Walk-Forward (score {wf_result.score:.2f})",
        xaxis_title="Fold",
        yaxis_title="Expectancy (R)",
    )
    return _apply_dark_theme(fig)


def create_monte_carlo_chart(mc_result: MonteCarloResult) -> go.Figure:
    """Create a grouped bar chart of the bootstrap net R and drawdown summary."""
    fig = go.Figure()
    fig.add_trace(
        go.Bar(
            x=["Tail", "Median", "Mean"],
            y=[mc_result.tail_net_r, mc_result.median_net_r, mc_result.mean_net_r],
            name="Net R",
            marker_color=_GREEN,
        )
    )
    fig.add_trace(
        go.Bar(
            x=["Tail", "Median"],
            y=[mc_result.tail_drawdown_r, mc_result.median_drawdown_r],
            name="Max drawdown (R)",
            marker_color=_RED,
        )
    )
    fig.update_layout(
        title_text=(
            f"Monte Carlo: {mc_result.trials} trials, "
            f"P(net R > 0) = {mc_result.probability_positive:.2%}"
        ),
        barmode="group",
        yaxis_title="R",
    )
    return _apply_dark_theme(fig)


def create_regime_chart(regime_result: RegimeResult) -> go.Figure:
    """Create a bar chart of net R earned in each volatility regime."""
    labels = [b.regime.value for b in regime_result.buckets]
    net_rs = [float(b.net_r) for b in regime_result.buckets]
    colors = [_GREEN if r >= 0 else _RED for r in net_rs]
    text = [f"{b.trades} trades" for b in regime_result.buckets]

    fig = go.Figure()
    fig.add_trace(
        go.Bar(x=labels, y=net_rs, marker_color=colors, text=text, textposition="outside")
    )
    fig.update_layout(
        title_text=(
            f"Regime Stability (score {regime_result.score:.2f}, "
            f"max share {regime_result.max_profit_share:.0%})"
        ),
        xaxis_title="Volatility regime",
        yaxis_title="Net R",
    )
    return _apply_dark_theme(fig)


def build_report_charts(result: RobustnessResult) -> list[go.Figure]:
    """Create every chart applicable to a robustness result."""
    figs = [create_score_breakdown_chart(result)]
    if result.walk_forward is not None and result.walk_forward.folds:
        figs.append(create_walk_forward_chart(result.walk_forward))
    if result.monte_carlo is not None:
        figs.append(create_monte_carlo_chart(result.monte_carlo))
    if result.regime_stability is not None:
        figs.append(create_regime_chart(result.regime_stability))
    return figs


def _to_html(figs: list[go.Figure]) -> str:
    html_parts = [
        "<html><head><title>Robustness Report</title></head><body>",
        *[fig.to_html(full_html=False, include_plotlyjs="cdn") for fig in figs],
        "</body></html>",
    ]
    return "\n".join(html_parts)


def show_charts(figs: list[go.Figure]) -> None:
    """Write figures to a temporary HTML file and open it in the browser.

    The temp file is not automatically deleted, allowing the browser to
    load it fully.
    """
    with tempfile.NamedTemporaryFile(
        mode="w", suffix=".html", delete=False, prefix="robustness_"
    ) as tmp:
        tmp.write(_to_html(figs))
        tmp_path = tmp.name

    webbrowser.open(f"file://{tmp_path}")


def save_charts(figs: list[go.Figure], output_path: Path) -> None:
    """Save figures to a single HTML file at the given path.

    Raises:
        ValueError: If the output path does not end with ``.html``.

    """
    if output_path.suffix.lower() != ".html":
        msg = f"Output path must end with .html, got: {output_path}"
        raise ValueError(msg)
    output_path.write_text(_to_html(figs))
