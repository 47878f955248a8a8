"""Candle validation, resampling, and indicator preparation.

Turn a raw one-minute candle series (plus optional derivative snapshots)
into a ``PreparedSeries``: the execution-interval bars together with every
indicator series the signal detectors read, all aligned index-for-index.
Higher-timeframe confirmation series only ever expose higher bars that had
fully closed by the close of the execution bar reading them.
"""

import math
from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal

from quant_lab.apps.strategy_lab import indicators
from quant_lab.core.exceptions import InputDataError
from quant_lab.core.models import ZERO, Candle, MarketSnapshot, StrategyEngineConfig
from quant_lab.core.timestamps import SECONDS_PER_MINUTE, bucket_start, day_key

_DEFAULT_SUPERTREND_PERIOD = Decimal(10)
_DEFAULT_SUPERTREND_FACTOR = Decimal(3)
_MIN_SUPERTREND_PERIOD = 7
_MIN_SUPERTREND_FACTOR = Decimal("1.5")
_VOLUME_SMA_PERIOD = 20


def validate_candles(candles: Sequence[Candle]) -> None:
    """Reject malformed candle data before any simulation starts.

    Raises:
        InputDataError: If timestamps are not strictly increasing, a price
            or volume is not finite, ``high < low``, open or close fall
            outside ``[low, high]``, or volume is negative.

    """
    prev_ts: int | None = None
    for idx, c in enumerate(candles):
        if prev_ts is not None and c.timestamp <= prev_ts:
            msg = f"candle {idx}: timestamp {c.timestamp} is not after {prev_ts}"
            raise InputDataError(msg)
        prev_ts = c.timestamp
        values = (c.open, c.high, c.low, c.close, c.volume)
        if not all(v.is_finite() for v in values):
            msg = f"candle {idx} at {c.timestamp}: non-finite price or volume"
            raise InputDataError(msg)
        if c.high < c.low:
            msg = f"candle {idx} at {c.timestamp}: high {c.high} is below low {c.low}"
            raise InputDataError(msg)
        if not (c.low <= c.open <= c.high and c.low <= c.close <= c.high):
            msg = f"candle {idx} at {c.timestamp}: open/close outside the high-low range"
            raise InputDataError(msg)
        if c.volume < ZERO:
            msg = f"candle {idx} at {c.timestamp}: negative volume {c.volume}"
            raise InputDataError(msg)


def validate_snapshots(snapshots: Sequence[MarketSnapshot]) -> None:
    """Reject snapshot series that are out of order or carry impossible values.

    Raises:
        InputDataError: If timestamps decrease or a present quantity is
            negative or not finite.

    """
    prev_ts: int | None = None
    for idx, s in enumerate(snapshots):
        if prev_ts is not None and s.timestamp < prev_ts:
            msg = f"snapshot {idx}: timestamp {s.timestamp} is before {prev_ts}"
            raise InputDataError(msg)
        prev_ts = s.timestamp
        for name in ("pcr", "buy_qty", "sell_qty", "trade_volume", "max_pain", "ltp"):
            value: Decimal | None = getattr(s, name)
            if value is not None and (not value.is_finite() or value < ZERO):
                msg = f"snapshot {idx} at {s.timestamp}: invalid {name} {value}"
                raise InputDataError(msg)


def resample_candles(candles: Sequence[Candle], interval_min: int) -> list[Candle]:
    """Bucket candles into ``interval_min``-minute bars aligned to the epoch.

    Each output bar opens with the first input open, closes with the last
    input close, spans the extreme high and low, and sums volume. Empty
    buckets (gaps) produce no bar.
    """
    if interval_min <= 1 or not candles:
        return list(candles)
    out: list[Candle] = []
    chunk: list[Candle] = []
    current: int | None = None
    for candle in candles:
        bucket = bucket_start(candle.timestamp, interval_min)
        if current is not None and bucket != current:
            out.append(_merge(current, chunk))
            chunk = []
        current = bucket
        chunk.append(candle)
    if current is not None:
        out.append(_merge(current, chunk))
    return out


def _merge(bucket: int, chunk: list[Candle]) -> Candle:
    return Candle(
        timestamp=bucket,
        open=chunk[0].open,
        high=max(c.high for c in chunk),
        low=min(c.low for c in chunk),
        close=chunk[-1].close,
        volume=sum((c.volume for c in chunk), ZERO),
    )


def align_snapshots(
    times: Sequence[int], snapshots: Sequence[MarketSnapshot]
) -> list[MarketSnapshot | None]:
    """Return, for each time, the latest snapshot at or before it (``None`` if none)."""
    out: list[MarketSnapshot | None] = []
    pointer = -1
    for t in times:
        while pointer + 1 < len(snapshots) and snapshots[pointer + 1].timestamp <= t:
            pointer += 1
        out.append(snapshots[pointer] if pointer >= 0 else None)
    return out


@dataclass(frozen=True)
class HigherTimeframe:
    """Higher-timeframe EMA stack, ADX, and close aligned to execution bars.

    Entries are ``None`` until the first higher bar has closed.
    """

    interval_min: int
    ema9: list[Decimal | None]
    ema21: list[Decimal | None]
    adx: list[Decimal | None]
    close: list[Decimal | None]

    def is_bullish(self, i: int) -> bool:
        """Return whether the EMA stack points up and price holds above EMA21."""
        e9, e21, c = self.ema9[i], self.ema21[i], self.close[i]
        return e9 is not None and e21 is not None and c is not None and e9 > e21 and c >= e21

    def is_bearish(self, i: int) -> bool:
        """Return whether the EMA stack points down and price holds below EMA21."""
        e9, e21, c = self.ema9[i], self.ema21[i], self.close[i]
        return e9 is not None and e21 is not None and c is not None and e9 < e21 and c <= e21


def align_higher(
    base: Sequence[Candle],
    execution: Sequence[Candle],
    execution_interval_min: int,
    higher_interval_min: int,
) -> HigherTimeframe:
    """Build a higher-timeframe confirmation series for the execution bars.

    A higher bar is visible to execution bar ``i`` only once it has closed,
    i.e. when its start plus its width is at or before the close of bar ``i``.
    """
    higher = resample_candles(base, higher_interval_min)
    closes = [c.close for c in higher]
    h_ema9 = indicators.ema(closes, 9)
    h_ema21 = indicators.ema(closes, 21)
    h_adx = indicators.adx(higher, 14)
    higher_width = higher_interval_min * SECONDS_PER_MINUTE
    exec_width = execution_interval_min * SECONDS_PER_MINUTE

    ema9: list[Decimal | None] = []
    ema21: list[Decimal | None] = []
    adx: list[Decimal | None] = []
    close: list[Decimal | None] = []
    j = -1
    for bar in execution:
        bar_close = bar.timestamp + exec_width
        while j + 1 < len(higher) and higher[j + 1].timestamp + higher_width <= bar_close:
            j += 1
        if j < 0:
            ema9.append(None)
            ema21.append(None)
            adx.append(None)
            close.append(None)
        else:
            ema9.append(h_ema9[j])
            ema21.append(h_ema21[j])
            adx.append(h_adx[j])
            close.append(closes[j])
    return HigherTimeframe(
        interval_min=higher_interval_min, ema9=ema9, ema21=ema21, adx=adx, close=close
    )


@dataclass(frozen=True)
class PreparedSeries:
    """Execution-interval bars plus every indicator series the detectors use."""

    candles: list[Candle]
    timestamps: list[int]
    days: list[str]
    open: list[Decimal]
    high: list[Decimal]
    low: list[Decimal]
    close: list[Decimal]
    volume: list[Decimal]
    ema9: list[Decimal]
    ema21: list[Decimal]
    rsi14: list[Decimal]
    atr: list[Decimal]
    adx14: list[Decimal]
    macd: indicators.MacdSeries
    bollinger: indicators.BollingerSeries
    obv: list[Decimal]
    supertrend: indicators.SupertrendSeries
    stochastic: indicators.StochasticSeries
    vwap: list[Decimal]
    volume_sma20: list[Decimal]
    snapshots: list[MarketSnapshot | None]
    higher: dict[int, HigherTimeframe]

    def __len__(self) -> int:
        """Return the number of execution bars."""
        return len(self.candles)


def prepare_series(
    base: Sequence[Candle],
    snapshots: Sequence[MarketSnapshot],
    config: StrategyEngineConfig,
) -> PreparedSeries:
    """Resample to the execution interval and compute all indicator series.

    Args:
        base: Validated one-minute candles in time order.
        snapshots: Derivative snapshots in time order (may be empty).
        config: Engine configuration of the strategy being prepared.

    Returns:
        A ``PreparedSeries`` aligned to the execution-interval bars.

    """
    candles = resample_candles(base, config.execution_interval_min)
    close = [c.close for c in candles]
    volume = [c.volume for c in candles]
    st_period = max(
        _MIN_SUPERTREND_PERIOD,
        int(config.param("supertrend_atr_period", _DEFAULT_SUPERTREND_PERIOD)),
    )
    st_factor = max(
        _MIN_SUPERTREND_FACTOR, config.param("supertrend_factor", _DEFAULT_SUPERTREND_FACTOR)
    )
    timestamps = [c.timestamp for c in candles]
    return PreparedSeries(
        candles=candles,
        timestamps=timestamps,
        days=[day_key(ts) for ts in timestamps],
        open=[c.open for c in candles],
        high=[c.high for c in candles],
        low=[c.low for c in candles],
        close=close,
        volume=volume,
        ema9=indicators.ema(close, 9),
        ema21=indicators.ema(close, 21),
        rsi14=indicators.rsi(close, 14),
        atr=indicators.atr(candles, config.atr_period),
        adx14=indicators.adx(candles, 14),
        macd=indicators.macd(close, 12, 26, 9),
        bollinger=indicators.bollinger(close, 20),
        obv=indicators.obv(candles),
        supertrend=indicators.supertrend(candles, st_period, st_factor),
        stochastic=indicators.stochastic(candles, 14, 3, 3),
        vwap=indicators.session_vwap(candles),
        volume_sma20=indicators.sma(volume, _VOLUME_SMA_PERIOD),
        snapshots=align_snapshots(timestamps, snapshots),
        higher={
            tf: align_higher(base, candles, config.execution_interval_min, tf)
            for tf in config.higher_intervals_min
        },
    )


def realized_volatility(close: Sequence[Decimal], lookback: int) -> list[float | None]:
    """Return the rolling population std of close-to-close returns.

    Entries are ``None`` until ``lookback`` returns are available.
    """
    returns: list[float] = [0.0]
    for prev, cur in zip(close, close[1:], strict=False):
        returns.append(float((cur - prev) / prev) if prev != ZERO else 0.0)
    out: list[float | None] = []
    for i in range(len(close)):
        if i < lookback:
            out.append(None)
            continue
        window = returns[i - lookback + 1 : i + 1]
        mean = sum(window) / lookback
        out.append(math.sqrt(sum((r - mean) ** 2 for r in window) / lookback))
    return out
