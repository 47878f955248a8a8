"""Terminal output formatters for the strategy lab CLI."""

from __future__ import annotations

from typing import TYPE_CHECKING

import typer

from quant_lab.apps.strategy_lab.metrics import INFINITE_PROFIT_FACTOR

if TYPE_CHECKING:
    from collections.abc import Sequence
    from decimal import Decimal

    from quant_lab.apps.strategy_lab.ranking import StrategyEvaluation
    from quant_lab.apps.strategy_lab.rules import StrategyRuleSpec


def _format_pf(value: Decimal) -> str:
    return "inf" if value == INFINITE_PROFIT_FACTOR else f"{value:.2f}"


def print_rankings(segment: str, evaluations: Sequence[StrategyEvaluation]) -> None:
    """Print the ranked strategies as a fixed-width table."""
    typer.echo(f"\n{'=' * 96}")
    profile = evaluations[0].profile.value if evaluations else "-"
    typer.echo(f"Strategy ranking: {segment} ({profile} profile)")
    typer.echo(f"{'=' * 96}")

    header = (
        f"{'#':<3} {'Strategy':<36} {'Trades':>6} {'Win%':>7} {'Net R':>8} "
        f"{'PF':>6} {'MaxDD R':>8} {'Base':>7} {'Final':>7}"
    )
    typer.echo(header)
    typer.echo("-" * len(header))
    for rank, evaluation in enumerate(evaluations, start=1):
        kpis = evaluation.kpis
        typer.echo(
            f"{rank:<3} {evaluation.strategy_id:<36} {kpis.trades:>6} "
            f"{kpis.win_rate * 100:>6.1f}% {kpis.net_r:>8.2f} "
            f"{_format_pf(kpis.profit_factor):>6} {kpis.max_drawdown_r:>8.2f} "
            f"{evaluation.base_score:>7.2f} {evaluation.final_score:>7.2f}"
        )
    typer.echo(f"{'=' * 96}\n")


def print_activity(evaluation: StrategyEvaluation) -> None:
    """Print the activity diagnostics of one evaluation."""
    activity = evaluation.activity
    typer.echo(f"\n{'--- Activity: ' + evaluation.strategy_id + ' ---':^50}")
    typer.echo(f"  {'bars evaluated':24s}: {activity.bars_evaluated}")
    typer.echo(f"  {'signal candidates':24s}: {activity.signal_candidates}")
    typer.echo(f"  {'entries taken':24s}: {activity.entries_taken}")
    typer.echo(f"  {'blocked by daily risk':24s}: {activity.blocked_by_daily_risk}")
    typer.echo(f"  {'blocked by spacing':24s}: {activity.blocked_by_spacing}")
    typer.echo(f"  {'blocked by risk filter':24s}: {activity.blocked_by_risk_filter}")
    typer.echo(f"  {'blocked by exposure':24s}: {activity.blocked_by_exposure}")
    top = sorted(activity.rejection_reasons.items(), key=lambda kv: kv[1], reverse=True)[:5]
    for reason, count in top:
        typer.echo(f"    {reason:22s}: {count}")


def print_strategies(rules: Sequence[StrategyRuleSpec]) -> None:
    """Print the registered strategy rule specs."""
    typer.echo(f"\n{'=' * 50}")
    for rule in rules:
        engine = rule.engine
        typer.echo(f"{rule.id} [{rule.quality_rating}]")
        typer.echo(f"  {rule.name}")
        typer.echo(
            f"  {engine.execution_interval_min}m exec, ATR {engine.atr_period}, "
            f"stop {engine.stop_atr_mult}x ATR, target {engine.target_r}R"
        )
    typer.echo(f"{'=' * 50}\n")
