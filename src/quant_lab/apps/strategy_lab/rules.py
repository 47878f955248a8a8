"""Strategy rule registry for the strategy lab.

Each strategy is a declarative ``StrategyRuleSpec`` record: human-readable
entry and invalidation rules for reports, plus the ``StrategyEngineConfig``
the evaluation engine simulates with. The detector functions that turn a
record into signals live in ``signals``, keyed by the same identifier.
"""

from dataclasses import dataclass
from decimal import Decimal

from quant_lab.core.exceptions import ConfigError
from quant_lab.core.models import StrategyEngineConfig

DEFAULT_WARMUP_BARS = 35


@dataclass(frozen=True)
class StrategyRuleSpec:
    """Declarative description of one intraday options strategy.

    Attributes:
        id: Registry identifier, also the detector key.
        name: Display name.
        quality_rating: Desk quality rating (``A+``, ``A``, ``B+``).
        market_environment: Market condition the strategy targets.
        indicators: Indicator names the strategy reads.
        long_entry_rules: Human-readable long entry conditions.
        short_entry_rules: Human-readable short entry conditions.
        invalidation_rules: Human-readable invalidation conditions.
        engine: Simulation parameters.
        warmup_bars: Execution bars skipped before the first entry check.

    """

    id: str
    name: str
    quality_rating: str
    market_environment: str
    indicators: tuple[str, ...]
    long_entry_rules: tuple[str, ...]
    short_entry_rules: tuple[str, ...]
    invalidation_rules: tuple[str, ...]
    engine: StrategyEngineConfig
    warmup_bars: int = DEFAULT_WARMUP_BARS


def _d(value: str) -> Decimal:
    return Decimal(value)


STRATEGY_RULES: tuple[StrategyRuleSpec, ...] = (
    StrategyRuleSpec(
        id="ema_macd_trend_acceleration",
        name="EMA-MACD Trend Acceleration",
        quality_rating="A+",
        market_environment="Trending expansion",
        indicators=("EMA (9/21)", "MACD", "ADX", "ATR"),
        long_entry_rules=(
            "Price closes above 9 EMA and 21 EMA on 5m.",
            "MACD histogram is above zero and expanding vs prior bar.",
            "MACD line is above its signal line.",
            "ADX is above 25 on execution timeframe.",
        ),
        short_entry_rules=(
            "Price closes below 9 EMA and 21 EMA on 5m.",
            "MACD histogram is below zero and expanding downward.",
            "MACD line is below its signal line.",
            "ADX is above 25 on execution timeframe.",
        ),
        invalidation_rules=(
            "ADX below 20 on the trigger bar.",
            "Higher timeframe EMA stack loses directional alignment.",
        ),
        engine=StrategyEngineConfig(
            execution_interval_min=5,
            higher_intervals_min=(15, 60),
            atr_period=14,
            stop_atr_mult=_d("1"),
            target_r=_d("2.2"),
            max_bars_in_trade=30,
            min_bars_between_trades=3,
            risk_per_trade_pct=_d("0.5"),
            daily_risk_cap_pct=_d("2"),
            params={
                "min_adx": _d("25"),
                "invalidation_adx": _d("20"),
                "min_macd_hist_slope": _d("0.02"),
            },
        ),
    ),
    StrategyRuleSpec(
        id="supertrend_adx_continuation",
        name="Supertrend-ADX Continuation",
        quality_rating="A+",
        market_environment="Directional continuation after pullback",
        indicators=("Supertrend", "ADX", "EMA (21)", "ATR"),
        long_entry_rules=(
            "Supertrend flips bullish on 5m.",
            "Price closes above 21 EMA and above prior candle high.",
            "ADX is rising and above threshold.",
        ),
        short_entry_rules=(
            "Supertrend flips bearish on 5m.",
            "Price closes below 21 EMA and below prior candle low.",
            "ADX is rising and above threshold.",
        ),
        invalidation_rules=(
            "ADX turns down before trigger close.",
            "Price fails to hold above/below 21 EMA after flip.",
        ),
        engine=StrategyEngineConfig(
            execution_interval_min=5,
            higher_intervals_min=(60,),
            atr_period=14,
            stop_atr_mult=_d("1"),
            target_r=_d("2"),
            max_bars_in_trade=36,
            min_bars_between_trades=4,
            risk_per_trade_pct=_d("0.6"),
            daily_risk_cap_pct=_d("2"),
            params={
                "supertrend_factor": _d("3"),
                "supertrend_atr_period": _d("10"),
                "min_adx": _d("24"),
                "higher_tf_adx": _d("30"),
            },
        ),
    ),
    StrategyRuleSpec(
        id="vwap_delta_reversion",
        name="VWAP Delta Reversion",
        quality_rating="A",
        market_environment="Liquidity sweep reversal / opening drive exhaustion",
        indicators=("VWAP", "RSI", "MACD", "ATR", "PCR", "Buy/Sell flow proxy"),
        long_entry_rules=(
            "Price stretches below session VWAP by at least 1 ATR then reclaims VWAP.",
            "RSI shows bullish divergence near sweep low.",
            "PCR is elevated or sell flow dominates.",
            "MACD histogram is rising on the trigger bar.",
        ),
        short_entry_rules=(
            "Price stretches above session VWAP by at least 1 ATR then loses VWAP.",
            "RSI shows bearish divergence near sweep high.",
            "PCR is depressed or buy flow dominates.",
            "MACD histogram is falling on the trigger bar.",
        ),
        invalidation_rules=("VWAP reclaim/rejection fails after the entry bar.",),
        engine=StrategyEngineConfig(
            execution_interval_min=3,
            higher_intervals_min=(60,),
            atr_period=14,
            stop_atr_mult=_d("0.8"),
            target_r=_d("1.8"),
            max_bars_in_trade=22,
            min_bars_between_trades=5,
            risk_per_trade_pct=_d("0.35"),
            daily_risk_cap_pct=_d("1.5"),
            params={
                "vwap_stretch_atr": _d("1"),
                "rsi_divergence_lookback": _d("18"),
                "pcr_upper_extreme": _d("1.3"),
                "pcr_lower_extreme": _d("0.75"),
            },
        ),
    ),
    StrategyRuleSpec(
        id="gamma_expansion_breakout",
        name="Gamma Expansion Breakout",
        quality_rating="A+",
        market_environment="Compression to volatility expansion",
        indicators=("Bollinger Bands", "ADX", "OBV", "EMA (9/21)", "ATR"),
        long_entry_rules=(
            "Bollinger bandwidth is in compression state.",
            "ADX is below 20 and hooks higher pre-breakout.",
            "OBV breaks local resistance before or with price breakout.",
            "Candle closes above upper Bollinger band with EMA9 above EMA21.",
        ),
        short_entry_rules=(
            "Bollinger bandwidth is in compression state.",
            "ADX is below 20 and hooks higher pre-breakdown.",
            "OBV breaks local support before or with price breakdown.",
            "Candle closes below lower Bollinger band with EMA9 below EMA21.",
        ),
        invalidation_rules=("ADX does not clear 25 within three bars after trigger.",),
        engine=StrategyEngineConfig(
            execution_interval_min=5,
            higher_intervals_min=(15,),
            atr_period=14,
            stop_atr_mult=_d("1.5"),
            target_r=_d("2.4"),
            max_bars_in_trade=24,
            min_bars_between_trades=6,
            risk_per_trade_pct=_d("1"),
            daily_risk_cap_pct=_d("2"),
            params={
                "squeeze_bandwidth_pct": _d("0.015"),
                "pre_break_adx_max": _d("20"),
                "post_break_adx_min": _d("25"),
                "breakout_volume_mult": _d("1.5"),
            },
        ),
    ),
    StrategyRuleSpec(
        id="pcr_oi_sentiment_reversal",
        name="PCR-OI Sentiment Reversal",
        quality_rating="A",
        market_environment="Sentiment extremes with momentum reversal",
        indicators=("PCR", "Order flow", "RSI", "MACD", "EMA (9/21)", "ATR"),
        long_entry_rules=(
            "PCR is at bullish-reversal extreme (crowded bearish side).",
            "Sell flow dominates the latest snapshot.",
            "RSI recovers from oversold and MACD histogram turns up.",
            "Price reclaims EMA9 above EMA21 on trigger bar.",
        ),
        short_entry_rules=(
            "PCR is at bearish-reversal extreme (crowded bullish side).",
            "Buy flow dominates the latest snapshot.",
            "RSI rolls from overbought and MACD histogram turns down.",
            "Price loses EMA9 below EMA21 on trigger bar.",
        ),
        invalidation_rules=("PCR stays pinned in extreme without any RSI/MACD confirmation.",),
        engine=StrategyEngineConfig(
            execution_interval_min=5,
            higher_intervals_min=(60,),
            atr_period=14,
            stop_atr_mult=_d("1"),
            target_r=_d("2"),
            max_bars_in_trade=30,
            min_bars_between_trades=8,
            risk_per_trade_pct=_d("0.4"),
            daily_risk_cap_pct=_d("1.5"),
            params={
                "pcr_upper_extreme": _d("1.35"),
                "pcr_lower_extreme": _d("0.72"),
                "min_rsi_for_long_recovery": _d("32"),
                "max_rsi_for_short_fade": _d("68"),
            },
        ),
    ),
    StrategyRuleSpec(
        id="stochastic_macd_range_crossover",
        name="Stochastic-MACD Range Crossover",
        quality_rating="B+",
        market_environment="Range compression and mean-reversion swings",
        indicators=("Stochastic", "MACD", "ADX", "VWAP", "ATR"),
        long_entry_rules=(
            "Range regime active (low ADX, price near VWAP).",
            "Stochastic %K crosses above %D from oversold zone.",
            "MACD line turns up with improving histogram.",
        ),
        short_entry_rules=(
            "Range regime active (low ADX, price near VWAP).",
            "Stochastic %K crosses below %D from overbought zone.",
            "MACD line turns down with weakening histogram.",
        ),
        invalidation_rules=("Range breaks into trend before entry.",),
        engine=StrategyEngineConfig(
            execution_interval_min=3,
            higher_intervals_min=(60,),
            atr_period=14,
            stop_atr_mult=_d("0.9"),
            target_r=_d("1.7"),
            max_bars_in_trade=22,
            min_bars_between_trades=4,
            risk_per_trade_pct=_d("0.4"),
            daily_risk_cap_pct=_d("1.7"),
            params={
                "adx_range_max": _d("20"),
                "stoch_oversold": _d("25"),
                "stoch_overbought": _d("75"),
            },
        ),
    ),
    StrategyRuleSpec(
        id="channel_adx_breakout",
        name="Channel-ADX Breakout",
        quality_rating="A",
        market_environment="Range release into directional trend",
        indicators=("Price channel", "ADX", "VWAP", "Volume", "Order flow", "ATR"),
        long_entry_rules=(
            "Close breaks above the prior channel high.",
            "ADX is rising and above threshold.",
            "Buy participation outweighs sell participation.",
            "Close holds above VWAP with above-average volume.",
        ),
        short_entry_rules=(
            "Close breaks below the prior channel low.",
            "ADX is rising and above threshold.",
            "Sell participation outweighs buy participation.",
            "Close holds below VWAP with above-average volume.",
        ),
        invalidation_rules=("ADX fails to hold its expansion floor within three bars.",),
        engine=StrategyEngineConfig(
            execution_interval_min=5,
            higher_intervals_min=(15,),
            atr_period=14,
            stop_atr_mult=_d("1"),
            target_r=_d("2"),
            max_bars_in_trade=24,
            min_bars_between_trades=4,
            risk_per_trade_pct=_d("0.5"),
            daily_risk_cap_pct=_d("2"),
            params={
                "channel_lookback_bars": _d("9"),
                "min_adx": _d("28"),
                "participation_skew_min": _d("0.05"),
                "breakout_volume_mult": _d("1.1"),
            },
        ),
    ),
)

RULES_BY_ID: dict[str, StrategyRuleSpec] = {rule.id: rule for rule in STRATEGY_RULES}

STRATEGY_IDS: tuple[str, ...] = tuple(rule.id for rule in STRATEGY_RULES)


def get_rule(strategy_id: str) -> StrategyRuleSpec:
    """Look up a strategy rule by identifier.

    Raises:
        ConfigError: If the identifier is not registered.

    """
    try:
        return RULES_BY_ID[strategy_id]
    except KeyError as exc:
        msg = f"Unknown strategy: {strategy_id!r}. Choose from {', '.join(STRATEGY_IDS)}"
        raise ConfigError(msg) from exc
