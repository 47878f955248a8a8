"""CLI command and async helper for the ``run`` robustness command.

Submit one strategy/segment/date-range run, execute the full suite on
CSV data, and print the graded result. With ``--persist`` (or an explicit
``--db-url``) the run record, report, and audit events are written to the
SQL store; otherwise they live in memory for the command's duration.
"""

import asyncio
from pathlib import Path
from typing import Annotated

import typer

from quant_lab.apps.robustness.cli._helpers import (
    close_store,
    open_store,
    parse_checks,
    resolve_db_url,
    resolve_robustness_config,
)
from quant_lab.apps.robustness.cli._output import print_record, print_result, render_charts
from quant_lab.apps.robustness.executor import RunExecutor
from quant_lab.apps.robustness.runs import RunRequest, RunStatus
from quant_lab.apps.strategy_lab.cli._helpers import (
    build_provider,
    resolve_costs,
    resolve_profile,
    resolve_range,
    validate_profile,
    validate_strategy,
)


def run(  # noqa: PLR0913
    strategy: Annotated[str, typer.Option(help="Strategy id", callback=validate_strategy)],
    candles: Annotated[Path, typer.Option(help="Path to one-minute candle CSV")],
    start: Annotated[str, typer.Option(help="Start date (YYYY-MM-DD) or Unix timestamp")],
    end: Annotated[str, typer.Option(help="End date (YYYY-MM-DD) or Unix timestamp")],
    segment: Annotated[str, typer.Option(help="Segment (underlying) identifier")] = "NIFTY",
    snapshots: Annotated[Path | None, typer.Option(help="Path to snapshot CSV")] = None,
    profile: Annotated[
        str | None,
        typer.Option(help="Execution profile: strict or balanced", callback=validate_profile),
    ] = None,
    checks: Annotated[
        str | None, typer.Option(help="Comma-separated checks to run (default: all)")
    ] = None,
    trials: Annotated[int | None, typer.Option(help="Monte Carlo trials")] = None,
    seed: Annotated[int | None, typer.Option(help="Monte Carlo seed")] = None,
    folds: Annotated[int | None, typer.Option(help="Walk-forward folds")] = None,
    slippage_multiplier: Annotated[
        float | None, typer.Option(help="Baseline multiplier on the slippage penalty")
    ] = None,
    brokerage_points: Annotated[
        float | None, typer.Option(help="Baseline flat brokerage per trade in points")
    ] = None,
    persist: Annotated[bool, typer.Option(help="Persist the run to the SQL store")] = False,  # noqa: FBT002
    db_url: Annotated[str | None, typer.Option(help="SQLAlchemy async database URL")] = None,
    chart: Annotated[bool, typer.Option(help="Generate interactive charts")] = False,  # noqa: FBT002
    chart_output: Annotated[
        Path | None, typer.Option(help="Save charts to HTML file instead of browser")
    ] = None,
) -> None:
    """Run the robustness suite for one strategy on historical CSV data."""
    start_ts, end_ts = resolve_range(start, end)
    request = RunRequest(
        strategy_id=strategy,
        segment=segment,
        start_ts=start_ts,
        end_ts=end_ts,
        profile=resolve_profile(profile),
        costs=resolve_costs(slippage_multiplier, brokerage_points),
        checks=parse_checks(checks),
    )
    asyncio.run(
        run_robustness(
            request=request,
            candles=candles,
            snapshots=snapshots,
            trials=trials,
            seed=seed,
            folds=folds,
            db_url=resolve_db_url(db_url) if persist or db_url else None,
            chart=chart,
            chart_output=chart_output,
        )
    )


async def run_robustness(  # noqa: PLR0913
    *,
    request: RunRequest,
    candles: Path,
    snapshots: Path | None,
    trials: int | None,
    seed: int | None,
    folds: int | None,
    db_url: str | None,
    chart: bool,
    chart_output: Path | None,
) -> None:
    """Submit and execute one run, then print and optionally chart the outcome."""
    config = resolve_robustness_config(trials, seed, folds)
    provider = build_provider(candles, snapshots)
    store = await open_store(db_url)
    try:
        executor = RunExecutor(store, provider, config)
        submitted = await executor.submit(request)
        record = await executor.execute(submitted.run_id)
    finally:
        await close_store(store)

    if record is None or record.status is not RunStatus.COMPLETED:
        if record is not None:
            print_record(record)
        raise typer.Exit(code=1)

    result = executor.result_for(record.run_id)
    if result is None:
        print_record(record)
        return
    print_result(record.run_id, result)
    if chart or chart_output:
        render_charts(result, chart_output)
