"""Signal detectors for the registered strategies.

Each detector inspects bar ``i`` of a ``PreparedSeries`` (reading only
indices ``<= i``) and returns either a ``SignalCandidate`` or a
``Rejection`` naming why no entry fired. A detector builds a list of
boolean confluence checks per direction; the execution profile decides how
many must pass. Stop and target prices are not chosen here: the engine
derives them from ATR and the strategy's reward multiple.

``DETECTORS`` maps strategy identifiers to detectors and ``INVALIDATORS``
maps identifiers to optional post-entry invalidation tests.
"""

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from decimal import ROUND_CEILING, ROUND_HALF_UP, Decimal

from quant_lab.apps.strategy_lab import indicators
from quant_lab.apps.strategy_lab.series import PreparedSeries
from quant_lab.core.models import (
    ONE,
    ZERO,
    Direction,
    ExecutionProfile,
    MarketSnapshot,
    StrategyEngineConfig,
    TrailingMode,
)

_MIN_BARS = 3
_MIN_CONFIDENCE = 40
_MAX_CONFIDENCE = 95
_CONFIDENCE_SPAN = Decimal(30)
_MIN_ATR = Decimal("0.01")
_BALANCED_HIGHER_SHARE = Decimal("0.6")
_POST_ENTRY_VALIDATION_BARS = 3
_CHANNEL_POST_ADX_FLOOR = Decimal(18)
_CHANNEL_POST_ADX_GAP = Decimal(4)
_MIN_CHANNEL_LOOKBACK = 6
_STRETCH_WINDOW = 5
_OBV_BREAK_LOOKBACK = 12
_GAMMA_BREAK_LOOKBACK = 8
_RANGE_VWAP_ATR = Decimal("1.3")
_STOCH_CROSS_BAND = Decimal(12)


@dataclass(frozen=True)
class SignalCandidate:
    """An entry the engine should take on the current bar's close.

    Attributes:
        direction: Position direction.
        confidence: Confluence confidence between 40 and 95.
        reason: Human-readable setup description.
        trailing_mode: Line the stop trails once the trade reaches +1R.
        validate_within_bars: If set, ADX must reach ``post_entry_adx_min``
            by this many bars after entry or the trade is invalidated.
        post_entry_adx_min: ADX floor used by the post-entry validation.

    """

    direction: Direction
    confidence: int
    reason: str
    trailing_mode: TrailingMode = TrailingMode.NONE
    validate_within_bars: int | None = None
    post_entry_adx_min: Decimal | None = None


@dataclass(frozen=True)
class Rejection:
    """No entry on this bar, with a short machine-readable reason."""

    reason: str


Detection = SignalCandidate | Rejection
Detector = Callable[[PreparedSeries, StrategyEngineConfig, int, ExecutionProfile], Detection]
Invalidator = Callable[[PreparedSeries, Direction, int, int], bool]


def _adjusted(profile: ExecutionProfile, strict_value: Decimal, balanced_value: Decimal) -> Decimal:
    """Pick the strict or balanced variant of a threshold."""
    return strict_value if profile is ExecutionProfile.STRICT else balanced_value


def _relaxed_floor(profile: ExecutionProfile, value: Decimal, balanced: Decimal) -> Decimal:
    """Return a lower bound that the balanced profile may only loosen."""
    return _adjusted(profile, value, min(value, balanced))


def _relaxed_ceiling(profile: ExecutionProfile, value: Decimal, balanced: Decimal) -> Decimal:
    """Return an upper bound that the balanced profile may only loosen."""
    return _adjusted(profile, value, max(value, balanced))


def _passes_checks(
    profile: ExecutionProfile,
    checks: Sequence[bool],
    required: Sequence[int],
    balanced_min: int,
) -> bool:
    """Return whether a confluence check list qualifies under the profile.

    Every ``required`` index must pass. Strict then needs all checks to
    pass; balanced needs at least ``balanced_min``.
    """
    if not all(checks[idx] for idx in required):
        return False
    needed = len(checks) if profile is ExecutionProfile.STRICT else balanced_min
    return sum(checks) >= needed


def _confidence(base: int, checks: Sequence[bool]) -> int:
    ok = Decimal(sum(checks))
    total = Decimal(max(1, len(checks)))
    raw = (Decimal(base) + ok / total * _CONFIDENCE_SPAN).quantize(ONE, rounding=ROUND_HALF_UP)
    return min(_MAX_CONFIDENCE, max(_MIN_CONFIDENCE, int(raw)))


def higher_alignment(
    series: PreparedSeries, config: StrategyEngineConfig, i: int, profile: ExecutionProfile
) -> tuple[bool, bool]:
    """Return ``(bullish, bearish)`` multi-timeframe alignment on bar ``i``.

    With no higher intervals configured both directions are aligned.
    Strict requires every higher timeframe to agree; balanced requires
    ``max(1, ceil(0.6 * n))`` of them.
    """
    intervals = config.higher_intervals_min
    if not intervals:
        return True, True
    if profile is ExecutionProfile.STRICT:
        required = len(intervals)
    else:
        share = (Decimal(len(intervals)) * _BALANCED_HIGHER_SHARE).to_integral_value(
            rounding=ROUND_CEILING
        )
        required = max(1, int(share))
    bull = sum(1 for tf in intervals if series.higher[tf].is_bullish(i))
    bear = sum(1 for tf in intervals if series.higher[tf].is_bearish(i))
    return bull >= required, bear >= required


def _atr(series: PreparedSeries, i: int) -> Decimal:
    return max(_MIN_ATR, series.atr[i])


def _flow(snapshot: MarketSnapshot | None) -> tuple[Decimal, Decimal]:
    if snapshot is None:
        return ZERO, ZERO
    return snapshot.buy_qty or ZERO, snapshot.sell_qty or ZERO


def detect_ema_macd_trend(
    series: PreparedSeries, config: StrategyEngineConfig, i: int, profile: ExecutionProfile
) -> Detection:
    """EMA stack with accelerating MACD histogram and trending ADX."""
    min_adx = _relaxed_floor(profile, config.param("min_adx", Decimal(25)), Decimal(20))
    invalidation_adx = _relaxed_floor(
        profile, config.param("invalidation_adx", Decimal(20)), Decimal(16)
    )
    min_slope = _relaxed_floor(
        profile, config.param("min_macd_hist_slope", Decimal("0.02")), ZERO
    )
    adx_now = series.adx14[i]
    if adx_now < invalidation_adx:
        return Rejection("adx_too_low")

    bull, bear = higher_alignment(series, config, i, profile)
    close, ema9, ema21 = series.close[i], series.ema9[i], series.ema21[i]
    hist, hist_prev = series.macd.histogram[i], series.macd.histogram[i - 1]
    line, signal = series.macd.line, series.macd.signal

    long_checks = [
        bull,
        close > ema9 > ema21,
        adx_now >= min_adx,
        hist > ZERO and hist > hist_prev + min_slope,
        line[i] > signal[i],
    ]
    if _passes_checks(profile, long_checks, [0, 1], 4):
        return SignalCandidate(
            direction=Direction.LONG,
            confidence=_confidence(62, long_checks),
            reason="EMA stack + MACD acceleration + ADX expansion",
            trailing_mode=TrailingMode.EMA9,
        )
    short_checks = [
        bear,
        close < ema9 < ema21,
        adx_now >= min_adx,
        hist < ZERO and hist < hist_prev - min_slope,
        line[i] < signal[i],
    ]
    if _passes_checks(profile, short_checks, [0, 1], 4):
        return SignalCandidate(
            direction=Direction.SHORT,
            confidence=_confidence(62, short_checks),
            reason="EMA stack + MACD downside acceleration + ADX expansion",
            trailing_mode=TrailingMode.EMA9,
        )
    return Rejection("trend_acceleration_confluence_missing")


def detect_supertrend_continuation(
    series: PreparedSeries, config: StrategyEngineConfig, i: int, profile: ExecutionProfile
) -> Detection:
    """Supertrend flip with rising ADX and a strong higher-timeframe trend."""
    min_adx = _relaxed_floor(profile, config.param("min_adx", Decimal(24)), Decimal(20))
    higher_adx = _relaxed_floor(profile, config.param("higher_tf_adx", Decimal(30)), Decimal(24))
    adx_now, adx_prev = series.adx14[i], series.adx14[i - 1]

    higher_bull = True
    higher_bear = True
    for tf in config.higher_intervals_min:
        h = series.higher[tf]
        h_adx = h.adx[i]
        strong = h_adx is not None and h_adx >= higher_adx
        higher_bull = higher_bull and strong and h.is_bullish(i)
        higher_bear = higher_bear and strong and h.is_bearish(i)

    trend = series.supertrend.trend
    flip_bull = trend[i] == 1 and trend[i - 1] == -1
    flip_bear = trend[i] == -1 and trend[i - 1] == 1
    adx_rising = adx_now >= min_adx and adx_now > adx_prev
    close, ema21 = series.close[i], series.ema21[i]

    long_checks = [higher_bull, flip_bull, adx_rising, close > ema21, close > series.high[i - 1]]
    if _passes_checks(profile, long_checks, [1, 3], 4):
        return SignalCandidate(
            direction=Direction.LONG,
            confidence=_confidence(60, long_checks),
            reason="Supertrend bullish flip with rising ADX",
            trailing_mode=TrailingMode.SUPERTREND,
        )
    short_checks = [higher_bear, flip_bear, adx_rising, close < ema21, close < series.low[i - 1]]
    if _passes_checks(profile, short_checks, [1, 3], 4):
        return SignalCandidate(
            direction=Direction.SHORT,
            confidence=_confidence(60, short_checks),
            reason="Supertrend bearish flip with rising ADX",
            trailing_mode=TrailingMode.SUPERTREND,
        )
    return Rejection("supertrend_confluence_missing")


def detect_vwap_reversion(
    series: PreparedSeries, config: StrategyEngineConfig, i: int, profile: ExecutionProfile
) -> Detection:
    """VWAP reclaim or rejection after a stretched liquidity sweep."""
    stretch = _relaxed_floor(profile, config.param("vwap_stretch_atr", ONE), Decimal("0.8"))
    lookback = int(config.param("rsi_divergence_lookback", Decimal(18)))
    pcr_upper = _relaxed_floor(
        profile, config.param("pcr_upper_extreme", Decimal("1.3")), Decimal("1.2")
    )
    pcr_lower = _relaxed_ceiling(
        profile, config.param("pcr_lower_extreme", Decimal("0.75")), Decimal("0.8")
    )
    snapshot = series.snapshots[i]
    pcr = snapshot.pcr if snapshot is not None else None
    buy, sell = _flow(snapshot)

    stretched_down = False
    stretched_up = False
    for j in range(max(1, i - _STRETCH_WINDOW), i):
        band = _atr(series, j) * stretch
        stretched_down = stretched_down or series.low[j] < series.vwap[j] - band
        stretched_up = stretched_up or series.high[j] > series.vwap[j] + band

    hist, hist_prev = series.macd.histogram[i], series.macd.histogram[i - 1]
    long_checks = [
        stretched_down,
        indicators.crossed_above(series.close, series.vwap, i),
        indicators.bullish_divergence(series.low, series.rsi14, i, lookback),
        sell > buy or (pcr is not None and pcr >= pcr_upper),
        hist > hist_prev,
    ]
    if _passes_checks(profile, long_checks, [0, 1], 3):
        return SignalCandidate(
            direction=Direction.LONG,
            confidence=_confidence(58, long_checks),
            reason="VWAP reclaim after oversold liquidity sweep",
            trailing_mode=TrailingMode.EMA9,
        )
    short_checks = [
        stretched_up,
        indicators.crossed_below(series.close, series.vwap, i),
        indicators.bearish_divergence(series.high, series.rsi14, i, lookback),
        buy > sell or (pcr is not None and pcr <= pcr_lower),
        hist < hist_prev,
    ]
    if _passes_checks(profile, short_checks, [0, 1], 3):
        return SignalCandidate(
            direction=Direction.SHORT,
            confidence=_confidence(58, short_checks),
            reason="VWAP rejection after overbought liquidity sweep",
            trailing_mode=TrailingMode.EMA9,
        )
    return Rejection("vwap_reversion_confluence_missing")


def detect_gamma_breakout(
    series: PreparedSeries, config: StrategyEngineConfig, i: int, profile: ExecutionProfile
) -> Detection:
    """Bollinger squeeze release confirmed by OBV, volume, and an ADX hook."""
    squeeze = _relaxed_ceiling(
        profile, config.param("squeeze_bandwidth_pct", Decimal("0.015")), Decimal("0.02")
    )
    adx_pre_max = config.param("pre_break_adx_max", Decimal(20))
    adx_post_min = _relaxed_floor(
        profile, config.param("post_break_adx_min", Decimal(25)), Decimal(20)
    )
    vol_mult = _relaxed_floor(
        profile, config.param("breakout_volume_mult", Decimal("1.5")), Decimal("1.1")
    )
    adx_now, adx_prev = series.adx14[i], series.adx14[i - 1]
    bull, bear = higher_alignment(series, config, i, profile)
    close = series.close[i]

    is_squeeze = series.bollinger.bandwidth_pct[i] <= squeeze
    adx_hooking = adx_prev <= adx_pre_max and adx_now > adx_prev
    volume_ok = series.volume[i] > series.volume_sma20[i] * vol_mult

    long_checks = [
        is_squeeze,
        adx_hooking,
        series.obv[i] > indicators.highest(series.obv, i - 1, _OBV_BREAK_LOOKBACK),
        close > series.bollinger.upper[i],
        series.ema9[i] > series.ema21[i],
        close > indicators.highest(series.high, i - 1, _GAMMA_BREAK_LOOKBACK),
        volume_ok,
        bull,
    ]
    if _passes_checks(profile, long_checks, [0, 3], 5):
        return SignalCandidate(
            direction=Direction.LONG,
            confidence=_confidence(64, long_checks),
            reason="Squeeze breakout with OBV and ADX expansion",
            trailing_mode=TrailingMode.EMA9,
            validate_within_bars=_POST_ENTRY_VALIDATION_BARS,
            post_entry_adx_min=adx_post_min,
        )
    short_checks = [
        is_squeeze,
        adx_hooking,
        series.obv[i] < indicators.lowest(series.obv, i - 1, _OBV_BREAK_LOOKBACK),
        close < series.bollinger.lower[i],
        series.ema9[i] < series.ema21[i],
        close < indicators.lowest(series.low, i - 1, _GAMMA_BREAK_LOOKBACK),
        volume_ok,
        bear,
    ]
    if _passes_checks(profile, short_checks, [0, 3], 5):
        return SignalCandidate(
            direction=Direction.SHORT,
            confidence=_confidence(64, short_checks),
            reason="Squeeze breakdown with OBV and ADX expansion",
            trailing_mode=TrailingMode.EMA9,
            validate_within_bars=_POST_ENTRY_VALIDATION_BARS,
            post_entry_adx_min=adx_post_min,
        )
    return Rejection("gamma_breakout_confluence_missing")


def detect_pcr_reversal(
    series: PreparedSeries, config: StrategyEngineConfig, i: int, profile: ExecutionProfile
) -> Detection:
    """Fade crowded put-call positioning once momentum turns."""
    snapshot = series.snapshots[i]
    if snapshot is None or snapshot.pcr is None:
        return Rejection("missing_pcr_data")
    pcr_upper = _relaxed_floor(
        profile, config.param("pcr_upper_extreme", Decimal("1.35")), Decimal("1.2")
    )
    pcr_lower = _relaxed_ceiling(
        profile, config.param("pcr_lower_extreme", Decimal("0.72")), Decimal("0.82")
    )
    rsi_long = _adjusted(
        profile, config.param("min_rsi_for_long_recovery", Decimal(32)), Decimal(30)
    )
    rsi_short = _adjusted(profile, config.param("max_rsi_for_short_fade", Decimal(68)), Decimal(70))
    pcr = snapshot.pcr
    buy, sell = _flow(snapshot)
    rsi, rsi_prev = series.rsi14[i], series.rsi14[i - 1]
    hist, hist_prev = series.macd.histogram[i], series.macd.histogram[i - 1]
    close, ema9, ema21 = series.close[i], series.ema9[i], series.ema21[i]

    long_checks = [
        pcr >= pcr_upper,
        sell >= buy,
        rsi > rsi_long >= rsi_prev,
        hist > hist_prev,
        close > ema9 > ema21,
    ]
    if _passes_checks(profile, long_checks, [0], 4):
        return SignalCandidate(
            direction=Direction.LONG,
            confidence=_confidence(56, long_checks),
            reason="PCR extreme unwind with momentum recovery",
            trailing_mode=TrailingMode.EMA21,
        )
    short_checks = [
        pcr <= pcr_lower,
        buy >= sell,
        rsi < rsi_short <= rsi_prev,
        hist < hist_prev,
        close < ema9 < ema21,
    ]
    if _passes_checks(profile, short_checks, [0], 4):
        return SignalCandidate(
            direction=Direction.SHORT,
            confidence=_confidence(56, short_checks),
            reason="PCR extreme fade with momentum rollover",
            trailing_mode=TrailingMode.EMA21,
        )
    return Rejection("pcr_reversal_confluence_missing")


def detect_range_crossover(
    series: PreparedSeries, config: StrategyEngineConfig, i: int, profile: ExecutionProfile
) -> Detection:
    """Stochastic and MACD turn inside a low-ADX range near VWAP."""
    adx_range_max = _relaxed_ceiling(
        profile, config.param("adx_range_max", Decimal(20)), Decimal(24)
    )
    oversold = _relaxed_ceiling(profile, config.param("stoch_oversold", Decimal(25)), Decimal(30))
    overbought = _relaxed_floor(profile, config.param("stoch_overbought", Decimal(75)), Decimal(70))
    close = series.close[i]
    in_range = (
        series.adx14[i] <= adx_range_max
        and abs(close - series.vwap[i]) <= _atr(series, i) * _RANGE_VWAP_ATR
    )
    k, d = series.stochastic.k, series.stochastic.d
    cross_up = indicators.crossed_above(k, d, i) and k[i] <= oversold + _STOCH_CROSS_BAND
    cross_down = indicators.crossed_below(k, d, i) and k[i] >= overbought - _STOCH_CROSS_BAND
    line, signal = series.macd.line, series.macd.signal
    hist, hist_prev = series.macd.histogram[i], series.macd.histogram[i - 1]

    long_checks = [in_range, cross_up or k[i] <= oversold, line[i] > signal[i], hist >= hist_prev]
    if _passes_checks(profile, long_checks, [0, 1], 3):
        return SignalCandidate(
            direction=Direction.LONG,
            confidence=_confidence(52, long_checks),
            reason="Range bounce with stochastic and MACD alignment",
            trailing_mode=TrailingMode.EMA9,
        )
    short_checks = [
        in_range,
        cross_down or k[i] >= overbought,
        line[i] < signal[i],
        hist <= hist_prev,
    ]
    if _passes_checks(profile, short_checks, [0, 1], 3):
        return SignalCandidate(
            direction=Direction.SHORT,
            confidence=_confidence(52, short_checks),
            reason="Range fade with stochastic and MACD alignment",
            trailing_mode=TrailingMode.EMA9,
        )
    return Rejection("range_crossover_missing")


def detect_channel_breakout(
    series: PreparedSeries, config: StrategyEngineConfig, i: int, profile: ExecutionProfile
) -> Detection:
    """Close through the prior price channel with rising ADX and participation."""
    lookback = max(_MIN_CHANNEL_LOOKBACK, int(config.param("channel_lookback_bars", Decimal(9))))
    min_adx = _relaxed_floor(profile, config.param("min_adx", Decimal(28)), Decimal(24))
    skew = _relaxed_floor(
        profile, config.param("participation_skew_min", Decimal("0.05")), Decimal("0.02")
    )
    vol_mult = _relaxed_floor(
        profile, config.param("breakout_volume_mult", Decimal("1.1")), Decimal("1.02")
    )
    bull, bear = higher_alignment(series, config, i, profile)
    close = series.close[i]
    adx_now, adx_prev = series.adx14[i], series.adx14[i - 1]
    adx_trend = adx_now >= min_adx and adx_now > adx_prev
    buy, sell = _flow(series.snapshots[i])
    volume_ok = series.volume[i] >= series.volume_sma20[i] * vol_mult
    post_adx = max(_CHANNEL_POST_ADX_FLOOR, min_adx - _CHANNEL_POST_ADX_GAP)

    long_checks = [
        bull,
        close > indicators.highest(series.high, i - 1, lookback),
        adx_trend,
        buy > sell * (ONE + skew),
        close > series.vwap[i],
        volume_ok,
    ]
    if _passes_checks(profile, long_checks, [1, 2], 4):
        return SignalCandidate(
            direction=Direction.LONG,
            confidence=_confidence(60, long_checks),
            reason="Channel breakout with ADX and participation",
            trailing_mode=TrailingMode.EMA9,
            validate_within_bars=_POST_ENTRY_VALIDATION_BARS,
            post_entry_adx_min=post_adx,
        )
    short_checks = [
        bear,
        close < indicators.lowest(series.low, i - 1, lookback),
        adx_trend,
        sell > buy * (ONE + skew),
        close < series.vwap[i],
        volume_ok,
    ]
    if _passes_checks(profile, short_checks, [1, 2], 4):
        return SignalCandidate(
            direction=Direction.SHORT,
            confidence=_confidence(60, short_checks),
            reason="Channel breakdown with ADX and participation",
            trailing_mode=TrailingMode.EMA9,
            validate_within_bars=_POST_ENTRY_VALIDATION_BARS,
            post_entry_adx_min=post_adx,
        )
    return Rejection("channel_adx_confluence_missing")


def vwap_failed_reclaim(
    series: PreparedSeries, direction: Direction, entry_index: int, i: int
) -> bool:
    """Return whether a VWAP reversion trade lost VWAP again after its entry bar."""
    if i <= entry_index + 1:
        return False
    if direction is Direction.LONG:
        return series.close[i] < series.vwap[i]
    return series.close[i] > series.vwap[i]


def detect(
    strategy_id: str,
    series: PreparedSeries,
    config: StrategyEngineConfig,
    i: int,
    profile: ExecutionProfile,
) -> Detection:
    """Run the registered detector for ``strategy_id`` on bar ``i``."""
    if i < _MIN_BARS:
        return Rejection("insufficient_bars")
    detector = DETECTORS.get(strategy_id)
    if detector is None:
        return Rejection("unsupported_strategy")
    return detector(series, config, i, profile)


DETECTORS: dict[str, Detector] = {
    "ema_macd_trend_acceleration": detect_ema_macd_trend,
    "supertrend_adx_continuation": detect_supertrend_continuation,
    "vwap_delta_reversion": detect_vwap_reversion,
    "gamma_expansion_breakout": detect_gamma_breakout,
    "pcr_oi_sentiment_reversal": detect_pcr_reversal,
    "stochastic_macd_range_crossover": detect_range_crossover,
    "channel_adx_breakout": detect_channel_breakout,
}

INVALIDATORS: dict[str, Invalidator] = {
    "vwap_delta_reversion": vwap_failed_reclaim,
}
