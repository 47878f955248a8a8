"""Terminal output formatters and chart rendering for the robustness CLI."""

from __future__ import annotations

from typing import TYPE_CHECKING

import typer

from quant_lab.apps.robustness.charts import build_report_charts, save_charts, show_charts
from quant_lab.core.timestamps import format_timestamp

if TYPE_CHECKING:
    from pathlib import Path

    from quant_lab.apps.robustness.runs import RunRecord
    from quant_lab.apps.robustness.suite import RobustnessResult


def print_result(run_id: str, result: RobustnessResult) -> None:
    """Print the graded robustness result with its score breakdown."""
    kpis = result.baseline_kpis
    typer.echo(f"\n{'=' * 60}")
    typer.echo(f"Run:             {run_id}")
    typer.echo(f"Strategy:        {result.strategy_id}")
    typer.echo(f"Segment:         {result.segment}")
    start, end = format_timestamp(result.start_ts), format_timestamp(result.end_ts)
    typer.echo(f"Range:           {start} .. {end}")
    typer.echo(f"Policy:          {result.policy_version} ({result.profile.value})")
    typer.echo(
        f"Baseline trades: {kpis.trades}  net R {kpis.net_r:.2f}  "
        f"expectancy {kpis.expectancy_r:.3f}"
    )
    typer.echo(f"\n{'--- Score breakdown ---':^60}")
    header = f"  {'Check':<20} {'Score':>8} {'Weight':>8} {'Contrib':>9}"
    typer.echo(header)
    for component in result.breakdown.components:
        typer.echo(
            f"  {component.check.value:<20} {component.score:>8.2f} "
            f"{component.weight:>8.3f} {component.contribution:>9.2f}"
        )
    typer.echo(f"\n  {'Total':<20} {result.score:>8.2f}   Grade {result.grade}")
    typer.echo(f"{'=' * 60}\n")


def print_record(record: RunRecord) -> None:
    """Print a stored run record."""
    typer.echo(f"\n{'=' * 50}")
    typer.echo(f"Run:       {record.run_id}")
    typer.echo(f"Status:    {record.status.value}")
    typer.echo(f"Strategy:  {record.params.get('strategy_id', '-')}")
    typer.echo(f"Segment:   {record.params.get('segment', '-')}")
    if record.result is not None:
        breakdown = record.result.get("breakdown", {})
        typer.echo(f"Score:     {breakdown.get('total', '-')}")
        typer.echo(f"Grade:     {record.result.get('grade', '-')}")
    if record.error is not None:
        typer.echo(f"Error:     {record.error}")
    typer.echo(f"{'=' * 50}\n")


def render_charts(result: RobustnessResult, chart_output: Path | None) -> None:
    """Save the report charts to ``chart_output`` or open them in the browser."""
    figs = build_report_charts(result)
    if chart_output is not None:
        save_charts(figs, chart_output)
        typer.echo(f"Charts saved to {chart_output}")
    else:
        show_charts(figs)
