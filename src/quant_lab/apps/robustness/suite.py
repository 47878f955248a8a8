"""Robustness suite orchestration.

Run the baseline evaluation, then every enabled check concurrently in
worker threads against the same read-only candle and snapshot data, and
fuse the sub-scores into one graded ``RobustnessResult``. Any failing
sub-run aborts the whole suite with ``SuiteAbortedError``; a partial,
unlabeled score is never returned.
"""

import asyncio
import logging
import threading
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any

from quant_lab.apps.robustness.config import CheckName, RobustnessConfig
from quant_lab.apps.robustness.monte_carlo import MonteCarloResult, run_monte_carlo
from quant_lab.apps.robustness.regime import RegimeResult, run_regime_stability
from quant_lab.apps.robustness.scoring import ScoreBreakdown, fuse_scores, grade_for
from quant_lab.apps.robustness.stress import (
    StressResult,
    run_brokerage_stress,
    run_slippage_stress,
)
from quant_lab.apps.robustness.walk_forward import WalkForwardResult, run_walk_forward
from quant_lab.apps.strategy_lab.engine import EvaluationEngine, EvaluationResult
from quant_lab.apps.strategy_lab.rules import StrategyRuleSpec
from quant_lab.core.exceptions import RunCancelledError, SuiteAbortedError
from quant_lab.core.models import (
    Candle,
    ExecutionCosts,
    ExecutionProfile,
    MarketSnapshot,
    StrategyKPIs,
)
from quant_lab.core.protocols import MarketDataProvider

logger = logging.getLogger(__name__)

BASELINE_STEP = "baseline"
DATA_STEP = "data"


@dataclass(frozen=True)
class RobustnessResult:
    """Graded outcome of one robustness suite.

    Check results are ``None`` for checks that were not enabled.
    """

    strategy_id: str
    segment: str
    start_ts: int
    end_ts: int
    policy_version: str
    profile: ExecutionProfile
    baseline_kpis: StrategyKPIs
    walk_forward: WalkForwardResult | None
    monte_carlo: MonteCarloResult | None
    slippage_stress: StressResult | None
    brokerage_stress: StressResult | None
    regime_stability: RegimeResult | None
    breakdown: ScoreBreakdown
    grade: str

    @property
    def score(self) -> float:
        """Return the composite score."""
        return self.breakdown.total


def _check_cancelled(cancel_event: threading.Event | None) -> None:
    if cancel_event is not None and cancel_event.is_set():
        msg = "Robustness run was cancelled"
        raise RunCancelledError(msg)


def _check_runners(
    engine: EvaluationEngine,
    baseline: EvaluationResult,
    candles: Sequence[Candle],
    snapshots: Sequence[MarketSnapshot],
    config: RobustnessConfig,
) -> dict[CheckName, Callable[[], Any]]:
    """Bind each check to its inputs as a zero-argument callable."""
    expectancy = baseline.kpis.expectancy_r
    return {
        CheckName.WALK_FORWARD: lambda: run_walk_forward(
            engine, candles, snapshots, config.walk_forward_folds
        ),
        CheckName.MONTE_CARLO: lambda: run_monte_carlo(
            [t.pnl_r for t in baseline.trades],
            trials=config.monte_carlo_trials,
            seed=config.seed,
            tail_percentile=config.tail_percentile,
            drawdown_budget_r=config.drawdown_budget_r,
        ),
        CheckName.SLIPPAGE_STRESS: lambda: run_slippage_stress(
            engine, candles, snapshots, expectancy, config.slippage_stress_multiplier
        ),
        CheckName.BROKERAGE_STRESS: lambda: run_brokerage_stress(
            engine, candles, snapshots, expectancy, config.brokerage_stress_points
        ),
        CheckName.REGIME_STABILITY: lambda: run_regime_stability(
            baseline.trades, baseline.candles, config.regime_lookback_bars
        ),
    }


async def run_robustness_suite(  # noqa: PLR0913
    rule: StrategyRuleSpec,
    candles: Sequence[Candle],
    snapshots: Sequence[MarketSnapshot] = (),
    *,
    config: RobustnessConfig | None = None,
    profile: ExecutionProfile = ExecutionProfile.BALANCED,
    costs: ExecutionCosts | None = None,
    segment: str = "",
    start_ts: int | None = None,
    end_ts: int | None = None,
    cancel_event: threading.Event | None = None,
) -> RobustnessResult:
    """Run every enabled robustness check and grade the strategy.

    Args:
        rule: Strategy rule spec under test.
        candles: One-minute candles for the date range.
        snapshots: Snapshots for the date range.
        config: Suite configuration; policy defaults when omitted.
        profile: Execution profile for every sub-run.
        costs: Baseline execution costs; stress checks scale these.
        segment: Segment identifier recorded in the result.
        start_ts: Range start recorded in the result (first candle if omitted).
        end_ts: Range end recorded in the result (last candle if omitted).
        cancel_event: Cooperative cancellation flag checked before each step.

    Returns:
        The graded ``RobustnessResult``. A low grade is a valid result.

    Raises:
        SuiteAbortedError: If the baseline or any check raised.
        RunCancelledError: If ``cancel_event`` was set while running.

    """
    config = config or RobustnessConfig()
    engine = EvaluationEngine(
        rule,
        profile=profile,
        costs=costs,
        max_open_trades=config.max_open_trades,
        scratch_band_r=config.scratch_band_r,
    )
    _check_cancelled(cancel_event)
    try:
        baseline = await asyncio.to_thread(engine.simulate, candles, snapshots)
    except Exception as exc:
        raise SuiteAbortedError(BASELINE_STEP, str(exc)) from exc

    runners = _check_runners(engine, baseline, candles, snapshots, config)

    def guarded(check: CheckName) -> Any:
        _check_cancelled(cancel_event)
        return runners[check]()

    outcomes = await asyncio.gather(
        *(asyncio.to_thread(guarded, check) for check in config.checks),
        return_exceptions=True,
    )
    _check_cancelled(cancel_event)

    results: dict[CheckName, Any] = {}
    for check, outcome in zip(config.checks, outcomes, strict=True):
        if isinstance(outcome, RunCancelledError):
            raise outcome
        if isinstance(outcome, BaseException):
            logger.warning("Robustness check %s failed: %s", check.value, outcome)
            raise SuiteAbortedError(check.value, str(outcome)) from outcome
        logger.debug("Robustness check %s scored %.2f", check.value, outcome.score)
        results[check] = outcome

    breakdown = fuse_scores(
        {check: float(result.score) for check, result in results.items()}, config.weights
    )
    grade = grade_for(breakdown.total, config.grade_thresholds)
    return RobustnessResult(
        strategy_id=rule.id,
        segment=segment,
        start_ts=start_ts if start_ts is not None else (candles[0].timestamp if candles else 0),
        end_ts=end_ts if end_ts is not None else (candles[-1].timestamp if candles else 0),
        policy_version=config.policy_version,
        profile=profile,
        baseline_kpis=baseline.kpis,
        walk_forward=results.get(CheckName.WALK_FORWARD),
        monte_carlo=results.get(CheckName.MONTE_CARLO),
        slippage_stress=results.get(CheckName.SLIPPAGE_STRESS),
        brokerage_stress=results.get(CheckName.BROKERAGE_STRESS),
        regime_stability=results.get(CheckName.REGIME_STABILITY),
        breakdown=breakdown,
        grade=grade,
    )


async def run_robustness_for_segment(  # noqa: PLR0913
    provider: MarketDataProvider,
    rule: StrategyRuleSpec,
    segment: str,
    start_ts: int,
    end_ts: int,
    *,
    config: RobustnessConfig | None = None,
    profile: ExecutionProfile = ExecutionProfile.BALANCED,
    costs: ExecutionCosts | None = None,
    cancel_event: threading.Event | None = None,
) -> RobustnessResult:
    """Fetch one-minute candles and snapshots, then run the suite.

    Raises:
        SuiteAbortedError: If fetching the data or any sub-run failed.
        RunCancelledError: If ``cancel_event`` was set while running.

    """
    try:
        candles = await provider.fetch_candles(segment, start_ts, end_ts, 1)
        snapshots = await provider.fetch_snapshots(segment, start_ts, end_ts)
    except Exception as exc:
        raise SuiteAbortedError(DATA_STEP, str(exc)) from exc
    return await run_robustness_suite(
        rule,
        candles,
        snapshots,
        config=config,
        profile=profile,
        costs=costs,
        segment=segment,
        start_ts=start_ts,
        end_ts=end_ts,
        cancel_event=cancel_event,
    )
