"""Tests for the slippage and brokerage stress checks."""

from collections.abc import Callable
from decimal import Decimal

import pytest

from quant_lab.apps.robustness.stress import (
    run_brokerage_stress,
    run_slippage_stress,
    stress_score,
)
from quant_lab.apps.strategy_lab.engine import EvaluationEngine
from quant_lab.apps.strategy_lab.rules import StrategyRuleSpec
from quant_lab.core.models import Candle

_SESSION = [True, True, False, True, True, False]

CandleBuilder = Callable[..., list[Candle]]


class TestStressScore:
    """Tests for stress_score."""

    def test_no_baseline_edge(self) -> None:
        """A non-positive baseline scores zero."""
        assert stress_score(0.0, 0.5) == (0.0, 0.0)
        assert stress_score(-0.3, -0.5) == (0.0, 0.0)

    def test_half_the_edge_survives(self) -> None:
        """Losing half the expectancy scores 50."""
        score, degradation = stress_score(1.0, 0.5)
        assert score == pytest.approx(50.0)
        assert degradation == pytest.approx(0.5)

    def test_improvement_is_capped(self) -> None:
        """A stressed run that does better still scores at most 100."""
        score, degradation = stress_score(1.0, 1.2)
        assert score == 100.0  # noqa: PLR2004
        assert degradation == pytest.approx(-0.2)

    def test_edge_wiped_out(self) -> None:
        """Turning a profit into a loss scores zero."""
        score, _ = stress_score(1.0, -0.5)
        assert score == 0.0


class TestStressRuns:
    """Tests for the stressed re-runs."""

    def test_slippage_stress_lowers_expectancy(
        self, breakout_rule: StrategyRuleSpec, breakout_candles: CandleBuilder
    ) -> None:
        """Inflated slippage costs some but not all of the edge."""
        engine = EvaluationEngine(breakout_rule)
        candles = breakout_candles(_SESSION)
        baseline = engine.simulate(candles)
        result = run_slippage_stress(
            engine, candles, (), baseline.kpis.expectancy_r, Decimal("2.5")
        )
        assert result.slippage_multiplier == Decimal("2.5")
        assert result.stressed_trades == baseline.kpis.trades
        assert result.stressed_expectancy_r < result.baseline_expectancy_r
        assert result.degradation > 0
        assert 0 < result.score < 100  # noqa: PLR2004

    def test_brokerage_stress_lowers_expectancy(
        self, breakout_rule: StrategyRuleSpec, breakout_candles: CandleBuilder
    ) -> None:
        """Extra points per trade come straight off the expectancy."""
        engine = EvaluationEngine(breakout_rule)
        candles = breakout_candles(_SESSION)
        baseline = engine.simulate(candles)
        result = run_brokerage_stress(
            engine, candles, (), baseline.kpis.expectancy_r, Decimal(2)
        )
        assert result.brokerage_points == Decimal(2)
        assert result.stressed_trades == baseline.kpis.trades
        assert result.stressed_expectancy_r < result.baseline_expectancy_r
        assert 0 <= result.score < 100  # noqa: PLR2004

    def test_losing_baseline_scores_zero(
        self, breakout_rule: StrategyRuleSpec, breakout_candles: CandleBuilder
    ) -> None:
        """Without a positive baseline there is no edge to stress."""
        engine = EvaluationEngine(breakout_rule)
        candles = breakout_candles([False, False, False])
        baseline = engine.simulate(candles)
        result = run_slippage_stress(
            engine, candles, (), baseline.kpis.expectancy_r, Decimal("2.5")
        )
        assert result.baseline_expectancy_r < 0
        assert result.score == 0.0
