"""Tests for candle validation, resampling, and series preparation."""

from decimal import Decimal

import pytest

from quant_lab.apps.strategy_lab.series import (
    align_higher,
    align_snapshots,
    prepare_series,
    realized_volatility,
    resample_candles,
    validate_candles,
    validate_snapshots,
)
from quant_lab.core.exceptions import InputDataError
from quant_lab.core.models import Candle, MarketSnapshot, StrategyEngineConfig

_START = 1_704_164_400
_MINUTE = 60
_FIVE_MIN_BARS = 3


def _candle(
    ts: int,
    close: str,
    open_: str | None = None,
    high: str | None = None,
    low: str | None = None,
    volume: str = "10",
) -> Candle:
    c = Decimal(close)
    return Candle(
        timestamp=ts,
        open=Decimal(open_) if open_ else c,
        high=Decimal(high) if high else c + 1,
        low=Decimal(low) if low else c - 1,
        close=c,
        volume=Decimal(volume),
    )


def _minutes(count: int, start_price: int = 100) -> list[Candle]:
    return [_candle(_START + i * _MINUTE, str(start_price + i)) for i in range(count)]


def _config(**overrides: object) -> StrategyEngineConfig:
    kwargs: dict[str, object] = {
        "execution_interval_min": 5,
        "higher_intervals_min": (15,),
        "atr_period": 14,
        "stop_atr_mult": Decimal(1),
        "target_r": Decimal(2),
        "max_bars_in_trade": 10,
        "min_bars_between_trades": 1,
        "risk_per_trade_pct": Decimal("0.5"),
        "daily_risk_cap_pct": Decimal(2),
    }
    kwargs.update(overrides)
    return StrategyEngineConfig(**kwargs)  # type: ignore[arg-type]


class TestValidateCandles:
    """Tests for validate_candles."""

    def test_accepts_valid_series(self) -> None:
        """A well-formed series passes."""
        validate_candles(_minutes(5))

    def test_rejects_duplicate_timestamp(self) -> None:
        """Timestamps must strictly increase."""
        candles = [_candle(_START, "100"), _candle(_START, "101")]
        with pytest.raises(InputDataError, match="not after"):
            validate_candles(candles)

    def test_rejects_inverted_range(self) -> None:
        """High below low is malformed."""
        candles = [_candle(_START, "100", open_="100", high="99", low="101")]
        with pytest.raises(InputDataError, match="below low"):
            validate_candles(candles)

    def test_rejects_close_outside_range(self) -> None:
        """Close above the high is malformed."""
        candles = [_candle(_START, "105", high="104", low="99")]
        with pytest.raises(InputDataError, match="outside"):
            validate_candles(candles)

    def test_rejects_non_finite(self) -> None:
        """NaN prices are malformed."""
        candles = [_candle(_START, "NaN", open_="100", high="101", low="99")]
        with pytest.raises(InputDataError, match="non-finite"):
            validate_candles(candles)

    def test_rejects_negative_volume(self) -> None:
        """Volume must not be negative."""
        with pytest.raises(InputDataError, match="negative volume"):
            validate_candles([_candle(_START, "100", volume="-1")])


class TestValidateSnapshots:
    """Tests for validate_snapshots."""

    def test_missing_fields_are_valid(self) -> None:
        """Absent analytics are a valid state."""
        validate_snapshots([MarketSnapshot(timestamp=1), MarketSnapshot(timestamp=1)])

    def test_rejects_decreasing_timestamps(self) -> None:
        """Snapshots must not go back in time."""
        with pytest.raises(InputDataError, match="before"):
            validate_snapshots([MarketSnapshot(timestamp=2), MarketSnapshot(timestamp=1)])


class TestResample:
    """Tests for resample_candles."""

    def test_one_minute_is_identity(self) -> None:
        """An interval of one returns the input bars."""
        candles = _minutes(4)
        assert resample_candles(candles, 1) == candles

    def test_five_minute_buckets(self) -> None:
        """Bars merge by epoch-aligned bucket."""
        out = resample_candles(_minutes(15), 5)
        assert len(out) == _FIVE_MIN_BARS
        first = out[0]
        assert first.timestamp == _START
        assert first.open == Decimal(100)
        assert first.close == Decimal(104)
        assert first.high == Decimal(105)
        assert first.low == Decimal(99)
        assert first.volume == Decimal(50)

    def test_gaps_produce_no_bar(self) -> None:
        """A missing bucket is skipped rather than filled."""
        candles = [_candle(_START, "100"), _candle(_START + 11 * _MINUTE, "101")]
        out = resample_candles(candles, 5)
        assert [c.timestamp for c in out] == [_START, _START + 10 * _MINUTE]


class TestAlignment:
    """Tests for snapshot and higher-timeframe alignment."""

    def test_align_snapshots_uses_latest_at_or_before(self) -> None:
        """Each time sees the newest snapshot not after it."""
        snaps = [MarketSnapshot(timestamp=10), MarketSnapshot(timestamp=20)]
        out = align_snapshots([5, 10, 15, 25], snaps)
        assert out == [None, snaps[0], snaps[0], snaps[1]]

    def test_higher_bar_visible_only_after_close(self) -> None:
        """A 15-minute bar is hidden until its last five-minute bar closes."""
        base = _minutes(30)
        execution = resample_candles(base, 5)
        higher = align_higher(base, execution, 5, 15)
        assert higher.close[0] is None
        assert higher.close[1] is None
        assert higher.close[2] == Decimal(114)
        assert higher.close[5] == Decimal(129)

    def test_higher_values_never_come_from_the_future(self) -> None:
        """Changing future bars leaves earlier higher values unchanged."""
        base = _minutes(60)
        changed = [*base[:30], *_minutes(30, start_price=500)]
        changed = [
            Candle(_START + i * _MINUTE, c.open, c.high, c.low, c.close, c.volume)
            for i, c in enumerate(changed)
        ]
        original = align_higher(base, resample_candles(base, 5), 5, 15)
        altered = align_higher(changed, resample_candles(changed, 5), 5, 15)
        assert original.ema9[:6] == altered.ema9[:6]
        assert original.close[:6] == altered.close[:6]


class TestPrepareSeries:
    """Tests for prepare_series."""

    def test_series_are_index_aligned(self) -> None:
        """Every indicator series has one value per execution bar."""
        series = prepare_series(_minutes(60), [], _config())
        count = len(series)
        assert count == 60 // 5
        for values in (series.ema9, series.atr, series.adx14, series.vwap, series.volume_sma20):
            assert len(values) == count
        assert len(series.higher[15].close) == count
        assert series.snapshots == [None] * count


class TestRealizedVolatility:
    """Tests for realized_volatility."""

    def test_undefined_before_lookback(self) -> None:
        """Values are None until enough returns exist."""
        closes = [Decimal(100 + i) for i in range(6)]
        out = realized_volatility(closes, 3)
        assert out[:3] == [None, None, None]
        assert all(v is not None for v in out[3:])

    def test_flat_series_has_zero_volatility(self) -> None:
        """Constant closes have zero volatility."""
        out = realized_volatility([Decimal(100)] * 5, 2)
        assert out[2:] == [0.0, 0.0, 0.0]
