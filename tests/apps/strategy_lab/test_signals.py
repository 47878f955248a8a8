"""Tests for strategy rules and signal detectors."""

from decimal import Decimal

import pytest

from quant_lab.apps.strategy_lab import signals
from quant_lab.apps.strategy_lab.rules import (
    RULES_BY_ID,
    STRATEGY_IDS,
    STRATEGY_RULES,
    get_rule,
)
from quant_lab.apps.strategy_lab.series import prepare_series
from quant_lab.core.exceptions import ConfigError
from quant_lab.core.models import (
    Candle,
    Direction,
    ExecutionProfile,
    StrategyEngineConfig,
)

_START = 1_704_164_400
_RULE_COUNT = 7


def _ramp(count: int, step: int = 2) -> list[Candle]:
    out = []
    for i in range(count):
        c = Decimal(100 + i * step)
        out.append(
            Candle(
                timestamp=_START + i * 60,
                open=c - 1,
                high=c + 1,
                low=c - 2,
                close=c,
                volume=Decimal(1000),
            )
        )
    return out


def _config(higher: tuple[int, ...] = ()) -> StrategyEngineConfig:
    return StrategyEngineConfig(
        execution_interval_min=1,
        higher_intervals_min=higher,
        atr_period=14,
        stop_atr_mult=Decimal(1),
        target_r=Decimal(2),
        max_bars_in_trade=10,
        min_bars_between_trades=1,
        risk_per_trade_pct=Decimal("0.5"),
        daily_risk_cap_pct=Decimal(2),
    )


class TestRuleRegistry:
    """Tests for the strategy rule registry."""

    def test_ids_are_unique(self) -> None:
        """Every registered strategy has a distinct identifier."""
        assert len(STRATEGY_IDS) == _RULE_COUNT
        assert len(set(STRATEGY_IDS)) == len(STRATEGY_IDS)
        assert set(RULES_BY_ID) == set(STRATEGY_IDS)

    def test_every_rule_has_a_detector(self) -> None:
        """Each rule's identifier resolves to a detector."""
        for rule in STRATEGY_RULES:
            assert rule.id in signals.DETECTORS

    def test_every_rule_describes_itself(self) -> None:
        """Rules carry entry and invalidation text for reports."""
        for rule in STRATEGY_RULES:
            assert rule.name
            assert rule.long_entry_rules
            assert rule.invalidation_rules

    def test_get_rule(self) -> None:
        """Look up a rule by identifier."""
        assert get_rule("channel_adx_breakout").name

    def test_get_rule_unknown(self) -> None:
        """Unknown identifiers are configuration errors."""
        with pytest.raises(ConfigError, match="Unknown strategy"):
            get_rule("does_not_exist")


class TestDetect:
    """Tests for the detector dispatch."""

    def test_unsupported_strategy(self) -> None:
        """An identifier with no detector is rejected, not raised."""
        series = prepare_series(_ramp(40), [], _config())
        result = signals.detect("unknown", series, _config(), 30, ExecutionProfile.STRICT)
        assert result == signals.Rejection("unsupported_strategy")

    def test_insufficient_bars(self) -> None:
        """The first bars never produce a signal."""
        series = prepare_series(_ramp(40), [], _config())
        result = signals.detect(
            "ema_macd_trend_acceleration", series, _config(), 1, ExecutionProfile.STRICT
        )
        assert result == signals.Rejection("insufficient_bars")

    def test_balanced_trend_entry_on_ramp(self) -> None:
        """A steady advance satisfies the balanced EMA-MACD confluence."""
        config = _config()
        series = prepare_series(_ramp(60), [], config)
        result = signals.detect(
            "ema_macd_trend_acceleration", series, config, 50, ExecutionProfile.BALANCED
        )
        assert isinstance(result, signals.SignalCandidate)
        assert result.direction is Direction.LONG
        assert 40 <= result.confidence <= 95  # noqa: PLR2004

    def test_no_short_signal_on_ramp(self) -> None:
        """A rising market never yields a short from the trend detector."""
        config = _config()
        series = prepare_series(_ramp(60), [], config)
        for i in range(30, 59):
            result = signals.detect(
                "ema_macd_trend_acceleration", series, config, i, ExecutionProfile.BALANCED
            )
            if isinstance(result, signals.SignalCandidate):
                assert result.direction is Direction.LONG


class TestHigherAlignment:
    """Tests for multi-timeframe alignment."""

    def test_no_higher_intervals_aligns_both_ways(self) -> None:
        """Without higher intervals both directions are aligned."""
        config = _config()
        series = prepare_series(_ramp(30), [], config)
        assert signals.higher_alignment(series, config, 20, ExecutionProfile.STRICT) == (
            True,
            True,
        )

    def test_unclosed_higher_bar_is_not_aligned(self) -> None:
        """Before the first higher bar closes nothing is aligned."""
        config = _config(higher=(60,))
        series = prepare_series(_ramp(50), [], config)
        assert signals.higher_alignment(series, config, 10, ExecutionProfile.STRICT) == (
            False,
            False,
        )


class TestVwapFailedReclaim:
    """Tests for the VWAP reversion invalidator."""

    def test_entry_bar_never_invalidates(self) -> None:
        """The bar after entry is too early to invalidate."""
        series = prepare_series(_ramp(30), [], _config())
        assert not signals.vwap_failed_reclaim(series, Direction.LONG, 10, 11)

    def test_long_above_vwap_holds(self) -> None:
        """A long with price above VWAP stays valid."""
        series = prepare_series(_ramp(30), [], _config())
        assert not signals.vwap_failed_reclaim(series, Direction.LONG, 10, 20)

    def test_short_above_vwap_fails(self) -> None:
        """A short with price back above VWAP is invalidated."""
        series = prepare_series(_ramp(30), [], _config())
        assert signals.vwap_failed_reclaim(series, Direction.SHORT, 10, 20)
