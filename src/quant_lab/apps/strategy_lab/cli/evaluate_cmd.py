"""CLI command and async helper for the ``evaluate`` ranking command.

Replay every selected strategy over the same CSV candle and snapshot
series for one segment and print them ranked by final score.
"""

import asyncio
from pathlib import Path
from typing import Annotated

import typer

from quant_lab.apps.strategy_lab.cli._helpers import (
    build_provider,
    parse_strategy_ids,
    resolve_costs,
    resolve_profile,
    resolve_range,
    validate_profile,
)
from quant_lab.apps.strategy_lab.cli._output import print_activity, print_rankings
from quant_lab.apps.strategy_lab.ranking import StrategyEvaluation, evaluate_segment
from quant_lab.core.exceptions import QuantLabError


def evaluate(  # noqa: PLR0913
    candles: Annotated[Path, typer.Option(help="Path to one-minute candle CSV")],
    start: Annotated[str, typer.Option(help="Start date (YYYY-MM-DD) or Unix timestamp")],
    end: Annotated[str, typer.Option(help="End date (YYYY-MM-DD) or Unix timestamp")],
    segment: Annotated[str, typer.Option(help="Segment (underlying) identifier")] = "NIFTY",
    snapshots: Annotated[Path | None, typer.Option(help="Path to snapshot CSV")] = None,
    profile: Annotated[
        str | None,
        typer.Option(help="Execution profile: strict or balanced", callback=validate_profile),
    ] = None,
    strategies: Annotated[
        str | None, typer.Option(help="Comma-separated strategy ids (default: all)")
    ] = None,
    slippage_multiplier: Annotated[
        float | None, typer.Option(help="Multiplier on the liquidity slippage penalty")
    ] = None,
    brokerage_points: Annotated[
        float | None, typer.Option(help="Flat brokerage per trade in points")
    ] = None,
    activity: Annotated[bool, typer.Option(help="Print activity diagnostics")] = False,  # noqa: FBT002
) -> None:
    """Rank strategies for a segment on historical CSV data."""
    evaluations = asyncio.run(
        run_evaluation(
            candles=candles,
            snapshots=snapshots,
            segment=segment,
            start=start,
            end=end,
            profile=profile,
            strategies=strategies,
            slippage_multiplier=slippage_multiplier,
            brokerage_points=brokerage_points,
        )
    )
    print_rankings(segment, evaluations)
    if activity:
        for evaluation in evaluations:
            print_activity(evaluation)


async def run_evaluation(  # noqa: PLR0913
    *,
    candles: Path,
    snapshots: Path | None,
    segment: str,
    start: str,
    end: str,
    profile: str | None,
    strategies: str | None,
    slippage_multiplier: float | None,
    brokerage_points: float | None,
) -> list[StrategyEvaluation]:
    """Resolve the CLI options and rank the selected strategies."""
    start_ts, end_ts = resolve_range(start, end)
    provider = build_provider(candles, snapshots)
    try:
        return await evaluate_segment(
            provider,
            segment,
            start_ts,
            end_ts,
            strategy_ids=parse_strategy_ids(strategies),
            profile=resolve_profile(profile),
            costs=resolve_costs(slippage_multiplier, brokerage_points),
        )
    except QuantLabError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from exc
