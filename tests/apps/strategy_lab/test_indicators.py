"""Tests for strategy lab indicators."""

from decimal import Decimal

import pytest

from quant_lab.apps.strategy_lab import indicators
from quant_lab.core.models import Candle

_FLAT_ATR = Decimal(2)
_NEUTRAL = Decimal(50)
_HUNDRED = Decimal(100)


def _candle(ts: int, close: str, high: str | None = None, low: str | None = None) -> Candle:
    c = Decimal(close)
    return Candle(
        timestamp=ts,
        open=c,
        high=Decimal(high) if high else c + 1,
        low=Decimal(low) if low else c - 1,
        close=c,
        volume=Decimal(100),
    )


def _closes(*values: int) -> list[Decimal]:
    return [Decimal(v) for v in values]


class TestMovingAverages:
    """Tests for EMA and SMA."""

    def test_ema_seeds_with_first_value(self) -> None:
        """The first EMA value equals the first input."""
        out = indicators.ema(_closes(10, 20, 30), 3)
        assert out[0] == Decimal(10)
        assert out[1] == Decimal(15)
        assert out[2] == Decimal("22.5")

    def test_ema_empty(self) -> None:
        """An empty input yields an empty series."""
        assert indicators.ema([], 5) == []

    def test_sma_partial_window(self) -> None:
        """Before the window fills the SMA averages what it has."""
        out = indicators.sma(_closes(2, 4, 6, 8), 3)
        assert out == [Decimal(2), Decimal(3), Decimal(4), Decimal(6)]

    @pytest.mark.parametrize("func", [indicators.ema, indicators.sma, indicators.rsi])
    def test_rejects_non_positive_period(self, func: object) -> None:
        """A zero period is rejected."""
        with pytest.raises(ValueError, match="period must be positive"):
            func(_closes(1, 2, 3), 0)  # type: ignore[operator]


class TestRsi:
    """Tests for RSI."""

    def test_short_series_is_neutral(self) -> None:
        """Fewer than period + 1 closes give a neutral series."""
        assert indicators.rsi(_closes(1, 2, 3), 14) == [_NEUTRAL] * 3

    def test_only_gains_is_hundred(self) -> None:
        """A series with no losses has RSI 100."""
        out = indicators.rsi(_closes(*range(1, 20)), 14)
        assert all(v == _HUNDRED for v in out[14:])

    def test_warm_up_is_neutral(self) -> None:
        """Values before the first full window stay at 50."""
        out = indicators.rsi(_closes(*range(1, 20)), 14)
        assert out[:14] == [_NEUTRAL] * 14

    def test_warm_up_ignores_later_closes(self) -> None:
        """Changing the seeding close leaves every earlier value unchanged."""
        rising = _closes(*range(100, 115))
        dropped = [*rising[:14], Decimal(50)]
        assert indicators.rsi(rising, 14)[:14] == indicators.rsi(dropped, 14)[:14]
        assert indicators.rsi(rising, 14)[14] == _HUNDRED
        assert indicators.rsi(dropped, 14)[14] < _NEUTRAL


class TestVolatility:
    """Tests for true range and ATR."""

    def test_true_range_uses_previous_close(self) -> None:
        """A gap up widens the true range past the bar's own range."""
        candles = [_candle(0, "100"), _candle(60, "110", high="111", low="109")]
        assert indicators.true_range(candles) == [Decimal(2), Decimal(11)]

    def test_flat_series_atr(self) -> None:
        """Constant bar ranges give a constant ATR."""
        candles = [_candle(i * 60, "100") for i in range(20)]
        assert all(v == _FLAT_ATR for v in indicators.atr(candles, 14))

    def test_adx_short_series(self) -> None:
        """A single candle has zero ADX."""
        assert indicators.adx([_candle(0, "100")]) == [Decimal(0)]

    def test_adx_trending_is_positive(self) -> None:
        """A steady advance produces a positive ADX."""
        candles = [_candle(i * 60, str(100 + i * 2)) for i in range(30)]
        assert indicators.adx(candles)[-1] > Decimal(25)


class TestSessionVwap:
    """Tests for session VWAP."""

    def test_resets_each_day(self) -> None:
        """The first bar of a new UTC day starts a fresh average."""
        day = 86_400
        candles = [_candle(0, "100"), _candle(60, "110"), _candle(day, "200")]
        out = indicators.session_vwap(candles)
        assert out[1] == Decimal(105)
        assert out[2] == Decimal(200)


class TestWindowHelpers:
    """Tests for highest, lowest and crossing helpers."""

    def test_highest_and_lowest(self) -> None:
        """Window extremes end at the given index inclusive."""
        values = _closes(5, 9, 3, 7, 1)
        assert indicators.highest(values, 3, 2) == Decimal(7)
        assert indicators.lowest(values, 3, 3) == Decimal(3)

    def test_crossed_above(self) -> None:
        """Detect a cross from at-or-below to above."""
        a = _closes(1, 3)
        b = _closes(2, 2)
        assert indicators.crossed_above(a, b, 1)
        assert not indicators.crossed_below(a, b, 1)
        assert not indicators.crossed_above(a, b, 0)


class TestSupertrend:
    """Tests for the Supertrend indicator."""

    def test_empty(self) -> None:
        """No candles yield empty series."""
        result = indicators.supertrend([])
        assert result.line == []
        assert result.trend == []

    def test_flips_down_on_collapse(self) -> None:
        """A sharp fall through the lower band turns the trend down."""
        candles = [_candle(i * 60, "100") for i in range(15)]
        candles.append(_candle(15 * 60, "80", high="101", low="79"))
        result = indicators.supertrend(candles, 10, Decimal(3))
        assert result.trend[0] == 1
        assert result.trend[-1] == -1
