"""Transaction-cost stress checks.

Re-run the strategy with inflated slippage or brokerage and measure how
much of the baseline expectancy survives. Both checks share one scoring
shape: full marks when stressed expectancy holds up, zero when it is gone
or there was no positive baseline edge to begin with.
"""

from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal

from quant_lab.apps.strategy_lab.engine import EvaluationEngine
from quant_lab.core.models import Candle, ExecutionCosts, MarketSnapshot


@dataclass(frozen=True)
class StressResult:
    """Baseline versus stressed expectancy and the stress sub-score."""

    slippage_multiplier: Decimal
    brokerage_points: Decimal
    baseline_expectancy_r: float
    stressed_expectancy_r: float
    stressed_trades: int
    degradation: float
    score: float


def stress_score(baseline_expectancy: float, stressed_expectancy: float) -> tuple[float, float]:
    """Return ``(score, relative_degradation)`` for a stressed re-run."""
    if baseline_expectancy <= 0:
        return 0.0, 0.0
    degradation = (baseline_expectancy - stressed_expectancy) / baseline_expectancy
    score = 100 * (1 - max(0.0, degradation))
    return max(0.0, min(100.0, score)), degradation


def _run_stress(
    engine: EvaluationEngine,
    costs: ExecutionCosts,
    candles: Sequence[Candle],
    snapshots: Sequence[MarketSnapshot],
    baseline_expectancy: Decimal,
) -> StressResult:
    stressed = engine.with_costs(costs).simulate(candles, snapshots)
    base = float(baseline_expectancy)
    stressed_expectancy = float(stressed.kpis.expectancy_r)
    score, degradation = stress_score(base, stressed_expectancy)
    return StressResult(
        slippage_multiplier=costs.slippage_multiplier,
        brokerage_points=costs.brokerage_points,
        baseline_expectancy_r=round(base, 4),
        stressed_expectancy_r=round(stressed_expectancy, 4),
        stressed_trades=stressed.kpis.trades,
        degradation=round(degradation, 4),
        score=round(score, 2),
    )


def run_slippage_stress(
    engine: EvaluationEngine,
    candles: Sequence[Candle],
    snapshots: Sequence[MarketSnapshot],
    baseline_expectancy: Decimal,
    multiplier: Decimal,
) -> StressResult:
    """Re-run with the slippage penalty scaled by ``multiplier``."""
    base = engine.costs
    costs = ExecutionCosts(
        slippage_multiplier=base.slippage_multiplier * multiplier,
        brokerage_points=base.brokerage_points,
    )
    return _run_stress(engine, costs, candles, snapshots, baseline_expectancy)


def run_brokerage_stress(
    engine: EvaluationEngine,
    candles: Sequence[Candle],
    snapshots: Sequence[MarketSnapshot],
    baseline_expectancy: Decimal,
    extra_points: Decimal,
) -> StressResult:
    """Re-run with ``extra_points`` added to the flat brokerage per trade."""
    base = engine.costs
    costs = ExecutionCosts(
        slippage_multiplier=base.slippage_multiplier,
        brokerage_points=base.brokerage_points + extra_points,
    )
    return _run_stress(engine, costs, candles, snapshots, baseline_expectancy)
