"""Technical indicator series for the strategy lab.

Provide pure functions that compute indicator series aligned index-for-index
with their input. Every value at index ``i`` depends only on inputs at
indices ``<= i``, so the evaluation engine can read ``series[i]`` on bar
``i`` without looking ahead. All functions use ``Decimal`` arithmetic.

Short inputs never raise: warm-up values are seeded from the data that is
available (EMA starts at the first value, SMA averages what it has, RSI is
neutral at 50) and the signal detectors simply fail their checks until the
series have matured. Non-positive periods raise ``ValueError``.
"""

from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal

from quant_lab.core.models import HUNDRED, ONE, TWO, ZERO, Candle
from quant_lab.core.timestamps import day_key

_NEUTRAL_RSI = Decimal(50)
_MIN_BANDWIDTH_MID = Decimal("0.00001")
THREE = Decimal(3)


def _check_period(name: str, period: int) -> None:
    if period <= 0:
        msg = f"{name} period must be positive, got {period}"
        raise ValueError(msg)


@dataclass(frozen=True)
class MacdSeries:
    """MACD line, signal line, and histogram series."""

    line: list[Decimal]
    signal: list[Decimal]
    histogram: list[Decimal]


@dataclass(frozen=True)
class BollingerSeries:
    """Bollinger middle, upper, and lower bands plus relative bandwidth."""

    middle: list[Decimal]
    upper: list[Decimal]
    lower: list[Decimal]
    bandwidth_pct: list[Decimal]


@dataclass(frozen=True)
class SupertrendSeries:
    """Supertrend line and trend direction (``1`` bullish, ``-1`` bearish)."""

    line: list[Decimal]
    trend: list[int]


@dataclass(frozen=True)
class StochasticSeries:
    """Smoothed stochastic %K and its %D signal line."""

    k: list[Decimal]
    d: list[Decimal]


def ema(values: Sequence[Decimal], period: int) -> list[Decimal]:
    """Compute the exponential moving average series.

    Seed with the first value and apply ``ema = prev + k * (value - prev)``
    where ``k = 2 / (period + 1)``.

    Args:
        values: Input series.
        period: Lookback window for the EMA.

    Returns:
        EMA series of the same length as ``values``.

    Raises:
        ValueError: If ``period`` is not positive.

    """
    _check_period("EMA", period)
    if not values:
        return []
    multiplier = TWO / (Decimal(period) + ONE)
    out = [values[0]]
    for val in values[1:]:
        prev = out[-1]
        out.append(prev + multiplier * (val - prev))
    return out


def sma(values: Sequence[Decimal], period: int) -> list[Decimal]:
    """Compute the simple moving average series.

    Before ``period`` values are available the average covers all values
    seen so far.
    """
    _check_period("SMA", period)
    out: list[Decimal] = []
    rolling = ZERO
    for i, val in enumerate(values):
        rolling += val
        if i >= period:
            rolling -= values[i - period]
        out.append(rolling / Decimal(min(i + 1, period)))
    return out


def rolling_std(values: Sequence[Decimal], period: int) -> list[Decimal]:
    """Compute the rolling population standard deviation series."""
    _check_period("rolling_std", period)
    out: list[Decimal] = []
    for i in range(len(values)):
        window = values[max(0, i - period + 1) : i + 1]
        mean = sum(window, ZERO) / Decimal(len(window))
        variance = sum(((v - mean) ** 2 for v in window), ZERO) / Decimal(len(window))
        out.append(variance.sqrt())
    return out


def rsi(closes: Sequence[Decimal], period: int = 14) -> list[Decimal]:
    """Compute the Relative Strength Index series using Wilder's smoothing.

    The first ``period`` values stay at a neutral 50 until enough closes
    exist to seed the averages, so no value reads a later close.

    Args:
        closes: Close prices.
        period: Lookback window for the RSI calculation.

    Returns:
        RSI series between 0 and 100.

    """
    _check_period("RSI", period)
    if len(closes) < period + 1:
        return [_NEUTRAL_RSI for _ in closes]

    dec_period = Decimal(period)
    out = [_NEUTRAL_RSI] * len(closes)
    deltas = [closes[i] - closes[i - 1] for i in range(1, period + 1)]
    avg_gain = sum((max(d, ZERO) for d in deltas), ZERO) / dec_period
    avg_loss = sum((max(-d, ZERO) for d in deltas), ZERO) / dec_period
    out[period] = _rsi_value(avg_gain, avg_loss)

    for i in range(period + 1, len(closes)):
        delta = closes[i] - closes[i - 1]
        avg_gain = (avg_gain * (dec_period - ONE) + max(delta, ZERO)) / dec_period
        avg_loss = (avg_loss * (dec_period - ONE) + max(-delta, ZERO)) / dec_period
        out[i] = _rsi_value(avg_gain, avg_loss)
    return out


def _rsi_value(avg_gain: Decimal, avg_loss: Decimal) -> Decimal:
    if avg_loss == ZERO:
        return HUNDRED
    return HUNDRED - HUNDRED / (ONE + avg_gain / avg_loss)


def macd(
    closes: Sequence[Decimal],
    fast_period: int = 12,
    slow_period: int = 26,
    signal_period: int = 9,
) -> MacdSeries:
    """Compute MACD line (fast EMA minus slow EMA), its signal EMA, and histogram."""
    fast = ema(closes, fast_period)
    slow = ema(closes, slow_period)
    line = [f - s for f, s in zip(fast, slow, strict=True)]
    signal = ema(line, signal_period)
    histogram = [v - s for v, s in zip(line, signal, strict=True)]
    return MacdSeries(line=line, signal=signal, histogram=histogram)


def true_range(candles: Sequence[Candle]) -> list[Decimal]:
    """Compute the true range series.

    True Range for each candle is the maximum of ``high - low``,
    ``|high - prev_close|`` and ``|low - prev_close|``. The first candle
    has no previous close and uses ``high - low``.
    """
    if not candles:
        return []
    out = [candles[0].high - candles[0].low]
    for prev, cur in zip(candles, candles[1:], strict=False):
        out.append(
            max(cur.high - cur.low, abs(cur.high - prev.close), abs(cur.low - prev.close))
        )
    return out


def atr(candles: Sequence[Candle], period: int = 14) -> list[Decimal]:
    """Compute the Average True Range series as an EMA of true range."""
    return ema(true_range(candles), period)


def adx(candles: Sequence[Candle], period: int = 14) -> list[Decimal]:
    """Compute the Average Directional Index series.

    Directional movement and true range are smoothed with the same EMA
    used elsewhere in this module, so the series is defined from the first
    bar. Values above 25 typically indicate a trending market.

    Args:
        candles: Candle series.
        period: Smoothing period for DI and ADX.

    Returns:
        ADX series between 0 and 100 (all zeros for fewer than two candles).

    """
    _check_period("ADX", period)
    if len(candles) < 2:  # noqa: PLR2004
        return [ZERO for _ in candles]

    plus_dm = [ZERO]
    minus_dm = [ZERO]
    for prev, cur in zip(candles, candles[1:], strict=False):
        up_move = cur.high - prev.high
        down_move = prev.low - cur.low
        plus_dm.append(up_move if up_move > down_move and up_move > ZERO else ZERO)
        minus_dm.append(down_move if down_move > up_move and down_move > ZERO else ZERO)

    atr_series = atr(candles, period)
    plus_smoothed = ema(plus_dm, period)
    minus_smoothed = ema(minus_dm, period)

    dx: list[Decimal] = []
    for p, m, a in zip(plus_smoothed, minus_smoothed, atr_series, strict=True):
        denom = a if a != ZERO else ONE
        plus_di = HUNDRED * p / denom
        minus_di = HUNDRED * m / denom
        di_sum = plus_di + minus_di
        dx.append(ZERO if di_sum <= ZERO else HUNDRED * abs(plus_di - minus_di) / di_sum)
    return ema(dx, period)


def bollinger(closes: Sequence[Decimal], period: int = 20, mult: Decimal = TWO) -> BollingerSeries:
    """Compute Bollinger bands and bandwidth relative to the middle band."""
    middle = sma(closes, period)
    std = rolling_std(closes, period)
    upper = [m + mult * s for m, s in zip(middle, std, strict=True)]
    lower = [m - mult * s for m, s in zip(middle, std, strict=True)]
    bandwidth = [
        (u - lo) / max(_MIN_BANDWIDTH_MID, m) for u, lo, m in zip(upper, lower, middle, strict=True)
    ]
    return BollingerSeries(middle=middle, upper=upper, lower=lower, bandwidth_pct=bandwidth)


def obv(candles: Sequence[Candle]) -> list[Decimal]:
    """Compute the On-Balance Volume series."""
    if not candles:
        return []
    out = [ZERO]
    for prev, cur in zip(candles, candles[1:], strict=False):
        if cur.close > prev.close:
            out.append(out[-1] + cur.volume)
        elif cur.close < prev.close:
            out.append(out[-1] - cur.volume)
        else:
            out.append(out[-1])
    return out


def supertrend(
    candles: Sequence[Candle], period: int = 10, factor: Decimal = THREE
) -> SupertrendSeries:
    """Compute the Supertrend line and direction.

    The final bands ratchet toward price and only reset when the previous
    close breaks through them. The trend flips when the close crosses the
    opposite band; the line is the lower band in an uptrend and the upper
    band in a downtrend.
    """
    if not candles:
        return SupertrendSeries(line=[], trend=[])
    atr_series = atr(candles, period)
    mids = [(c.high + c.low) / TWO for c in candles]
    upper_basic = [m + factor * a for m, a in zip(mids, atr_series, strict=True)]
    lower_basic = [m - factor * a for m, a in zip(mids, atr_series, strict=True)]

    final_upper = [upper_basic[0]]
    final_lower = [lower_basic[0]]
    trend = [1]
    line = [lower_basic[0]]
    for i in range(1, len(candles)):
        prev_close = candles[i - 1].close
        if upper_basic[i] < final_upper[-1] or prev_close > final_upper[-1]:
            final_upper.append(upper_basic[i])
        else:
            final_upper.append(final_upper[-1])
        if lower_basic[i] > final_lower[-1] or prev_close < final_lower[-1]:
            final_lower.append(lower_basic[i])
        else:
            final_lower.append(final_lower[-1])

        close = candles[i].close
        if trend[-1] == -1 and close > final_upper[i]:
            trend.append(1)
        elif trend[-1] == 1 and close < final_lower[i]:
            trend.append(-1)
        else:
            trend.append(trend[-1])
        line.append(final_lower[i] if trend[i] == 1 else final_upper[i])
    return SupertrendSeries(line=line, trend=trend)


def session_vwap(candles: Sequence[Candle]) -> list[Decimal]:
    """Compute the volume-weighted average price, reset every UTC day.

    Bars with no cumulative volume yet fall back to their own close.
    """
    out: list[Decimal] = []
    cumulative_tpv = ZERO
    cumulative_volume = ZERO
    session = ""
    for candle in candles:
        key = day_key(candle.timestamp)
        if key != session:
            session = key
            cumulative_tpv = ZERO
            cumulative_volume = ZERO
        typical = (candle.high + candle.low + candle.close) / THREE
        cumulative_tpv += typical * candle.volume
        cumulative_volume += candle.volume
        out.append(cumulative_tpv / cumulative_volume if cumulative_volume > ZERO else candle.close)
    return out


def stochastic(
    candles: Sequence[Candle], k_period: int = 14, k_smooth: int = 3, d_period: int = 3
) -> StochasticSeries:
    """Compute the slow stochastic oscillator.

    Raw %K locates the close within the ``k_period`` high-low range (50
    when the range is flat), is smoothed over ``k_smooth`` bars, and %D is
    the SMA of smoothed %K over ``d_period`` bars.
    """
    _check_period("stochastic", k_period)
    raw: list[Decimal] = []
    for i, candle in enumerate(candles):
        window = candles[max(0, i - k_period + 1) : i + 1]
        hh = max(c.high for c in window)
        ll = min(c.low for c in window)
        span = hh - ll
        raw.append(HUNDRED * (candle.close - ll) / span if span > ZERO else _NEUTRAL_RSI)
    k = sma(raw, k_smooth)
    return StochasticSeries(k=k, d=sma(k, d_period))


def crossed_above(a: Sequence[Decimal], b: Sequence[Decimal], i: int) -> bool:
    """Return whether ``a`` crossed from at-or-below ``b`` to above it on bar ``i``."""
    if i < 1 or i >= len(a) or i >= len(b):
        return False
    return a[i - 1] <= b[i - 1] and a[i] > b[i]


def crossed_below(a: Sequence[Decimal], b: Sequence[Decimal], i: int) -> bool:
    """Return whether ``a`` crossed from at-or-above ``b`` to below it on bar ``i``."""
    if i < 1 or i >= len(a) or i >= len(b):
        return False
    return a[i - 1] >= b[i - 1] and a[i] < b[i]


def highest(values: Sequence[Decimal], index: int, length: int) -> Decimal:
    """Return the maximum of the ``length`` values ending at ``index`` inclusive."""
    start = max(0, index - length + 1)
    window = values[start : index + 1]
    return max(window) if window else Decimal("-Infinity")


def lowest(values: Sequence[Decimal], index: int, length: int) -> Decimal:
    """Return the minimum of the ``length`` values ending at ``index`` inclusive."""
    start = max(0, index - length + 1)
    window = values[start : index + 1]
    return min(window) if window else Decimal("Infinity")


def _pivot_indices(values: Sequence[Decimal], start: int, end: int, *, low: bool) -> list[int]:
    """Return indices in ``[start, end]`` that are local lows (or highs)."""
    out: list[int] = []
    for i in range(max(1, start), min(len(values) - 2, end) + 1):
        if low and values[i] <= values[i - 1] and values[i] <= values[i + 1]:
            out.append(i)
        elif not low and values[i] >= values[i - 1] and values[i] >= values[i + 1]:
            out.append(i)
    return out


def bullish_divergence(
    prices: Sequence[Decimal], oscillator: Sequence[Decimal], index: int, lookback: int = 20
) -> bool:
    """Return whether the last two pivot lows show a lower price low with a higher oscillator low.

    Only pivots confirmed by bar ``index`` are considered.
    """
    pivots = _pivot_indices(prices, index - lookback, index - 1, low=True)
    if len(pivots) < 2:  # noqa: PLR2004
        return False
    a, b = pivots[-2], pivots[-1]
    return prices[b] < prices[a] and oscillator[b] > oscillator[a]


def bearish_divergence(
    prices: Sequence[Decimal], oscillator: Sequence[Decimal], index: int, lookback: int = 20
) -> bool:
    """Return whether the last two pivot highs show a higher price but a lower oscillator."""
    pivots = _pivot_indices(prices, index - lookback, index - 1, low=False)
    if len(pivots) < 2:  # noqa: PLR2004
        return False
    a, b = pivots[-2], pivots[-1]
    return prices[b] > prices[a] and oscillator[b] < oscillator[a]
