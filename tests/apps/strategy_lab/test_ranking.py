"""Tests for strategy scoring and ranking."""

from collections.abc import Callable
from dataclasses import replace
from decimal import Decimal

import pytest

from quant_lab.apps.strategy_lab.metrics import INFINITE_PROFIT_FACTOR
from quant_lab.apps.strategy_lab.ranking import (
    WEEK_SECONDS,
    WindowEvaluation,
    consistency_metrics,
    evaluate_segment,
    evaluate_strategy,
    evaluation_score,
    reliability_score,
    weekly_windows,
)
from quant_lab.apps.strategy_lab.rules import StrategyRuleSpec
from quant_lab.core.exceptions import ConfigError
from quant_lab.core.models import Candle, ExecutionProfile, MarketSnapshot, StrategyKPIs

_DAY = 86_400
_EXPECTED_WINDOWS = 2
_EXPECTED_TRADES = 3

CandleBuilder = Callable[..., list[Candle]]


def _kpis(**overrides: object) -> StrategyKPIs:
    return replace(StrategyKPIs.empty(), **overrides)  # type: ignore[arg-type]


def _window(net_r: str, trades: int = 1) -> WindowEvaluation:
    return WindowEvaluation(
        start_ts=0,
        end_ts=WEEK_SECONDS,
        kpis=_kpis(trades=trades, net_r=Decimal(net_r)),
        score=Decimal(0),
    )


class TestEvaluationScore:
    """Tests for evaluation_score."""

    def test_empty_sample_is_penalised(self) -> None:
        """No trades scores the discounted quality bonus minus the thin penalty."""
        assert evaluation_score(StrategyKPIs.empty(), "A+") == Decimal("-9.10")

    def test_infinite_profit_factor_capped(self) -> None:
        """The infinity sentinel scores like a profit factor of four."""
        capped = _kpis(trades=5, profit_factor=Decimal(4))
        infinite = _kpis(trades=5, profit_factor=INFINITE_PROFIT_FACTOR)
        assert evaluation_score(infinite, "A") == evaluation_score(capped, "A")

    def test_quality_bonus_orders_ratings(self) -> None:
        """Higher desk ratings add a larger bonus."""
        kpis = _kpis(trades=10)
        assert evaluation_score(kpis, "A+") > evaluation_score(kpis, "A")
        assert evaluation_score(kpis, "A") > evaluation_score(kpis, "B+")

    def test_drawdown_lowers_score(self) -> None:
        """Deeper drawdown lowers the score."""
        shallow = _kpis(trades=10, max_drawdown_r=Decimal(1))
        deep = _kpis(trades=10, max_drawdown_r=Decimal(5))
        assert evaluation_score(deep, "A") < evaluation_score(shallow, "A")


class TestWeeklyWindows:
    """Tests for weekly_windows."""

    def test_truncates_last_window(self) -> None:
        """The final window ends at the range end."""
        assert weekly_windows(0, 10 * _DAY) == [(0, WEEK_SECONDS), (WEEK_SECONDS, 10 * _DAY)]

    def test_empty_range(self) -> None:
        """An empty or inverted range has no windows."""
        assert weekly_windows(100, 100) == []
        assert weekly_windows(200, 100) == []


class TestConsistency:
    """Tests for consistency_metrics."""

    def test_no_windows(self) -> None:
        """No windows scores zero."""
        metrics = consistency_metrics([])
        assert metrics.windows == 0
        assert metrics.score == Decimal(0)

    def test_counts_positive_windows(self) -> None:
        """Positive windows and median net R are reported."""
        metrics = consistency_metrics([_window("2"), _window("-1"), _window("3")])
        assert metrics.windows == 3  # noqa: PLR2004
        assert metrics.positive_windows == _EXPECTED_WINDOWS
        assert metrics.median_net_r == Decimal(2)

    def test_steady_beats_erratic(self) -> None:
        """Even results score higher than the same total spread unevenly."""
        steady = consistency_metrics([_window("1"), _window("1"), _window("1")])
        erratic = consistency_metrics([_window("5"), _window("-1"), _window("-1")])
        assert steady.score > erratic.score


class TestReliability:
    """Tests for reliability_score."""

    def test_empty_sample(self) -> None:
        """Only the drawdown guard counts, halved for a thin sample."""
        assert reliability_score(StrategyKPIs.empty(), [], 0, _DAY) == Decimal("7.50")

    def test_bounded(self) -> None:
        """Reliability stays within 0 to 100."""
        kpis = _kpis(trades=200)
        score = reliability_score(kpis, [_window("1", trades=200)], 0, 7 * _DAY)
        assert Decimal(0) <= score <= Decimal(100)


class TestEvaluateStrategy:
    """Tests for evaluate_strategy."""

    def test_scores_simulated_trades(
        self, breakout_rule: StrategyRuleSpec, breakout_candles: CandleBuilder
    ) -> None:
        """Simulate the rule and report KPIs, windows, and a final score."""
        candles = breakout_candles([True, False, True])
        evaluation = evaluate_strategy(breakout_rule, candles, profile=ExecutionProfile.STRICT)
        assert evaluation.strategy_id == breakout_rule.id
        assert evaluation.kpis.trades == _EXPECTED_TRADES
        assert len(evaluation.windows) == 1
        assert evaluation.windows[0].kpis.trades == _EXPECTED_TRADES
        assert evaluation.trades[0].entry_time >= candles[0].timestamp

    def test_empty_candles(self, breakout_rule: StrategyRuleSpec) -> None:
        """No candles produce an evaluation with no windows."""
        evaluation = evaluate_strategy(breakout_rule, [])
        assert evaluation.kpis.trades == 0
        assert evaluation.windows == ()


class _StubProvider:
    """Stub data provider returning fixed candles."""

    def __init__(self, candles: list[Candle]) -> None:
        self._candles = candles
        self.candle_calls = 0

    async def fetch_candles(
        self,
        segment: str,  # noqa: ARG002
        start_ts: int,  # noqa: ARG002
        end_ts: int,  # noqa: ARG002
        interval_min: int = 1,  # noqa: ARG002
    ) -> list[Candle]:
        self.candle_calls += 1
        return self._candles

    async def fetch_snapshots(
        self,
        segment: str,  # noqa: ARG002
        start_ts: int,  # noqa: ARG002
        end_ts: int,  # noqa: ARG002
    ) -> list[MarketSnapshot]:
        return []


class TestEvaluateSegment:
    """Tests for evaluate_segment."""

    @pytest.mark.asyncio
    async def test_ranks_by_final_score(self, breakout_candles: CandleBuilder) -> None:
        """Evaluations come back best first from a single data fetch."""
        candles = breakout_candles([True, False, True, True])
        provider = _StubProvider(candles)
        evaluations = await evaluate_segment(
            provider,
            "NIFTY",
            candles[0].timestamp,
            candles[-1].timestamp,
            strategy_ids=["channel_adx_breakout", "vwap_delta_reversion"],
        )
        assert len(evaluations) == 2  # noqa: PLR2004
        scores = [e.final_score for e in evaluations]
        assert scores == sorted(scores, reverse=True)
        assert provider.candle_calls == 1

    @pytest.mark.asyncio
    async def test_all_strategies_by_default(self) -> None:
        """No identifiers evaluates every registered strategy."""
        evaluations = await evaluate_segment(_StubProvider([]), "NIFTY", 0, _DAY)
        assert len(evaluations) == len({e.strategy_id for e in evaluations})
        assert len(evaluations) == 7  # noqa: PLR2004

    @pytest.mark.asyncio
    async def test_unknown_strategy(self) -> None:
        """Unknown identifiers raise before any data is fetched."""
        provider = _StubProvider([])
        with pytest.raises(ConfigError):
            await evaluate_segment(provider, "NIFTY", 0, _DAY, strategy_ids=["nope"])
        assert provider.candle_calls == 0
