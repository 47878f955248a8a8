"""Shared fixtures for strategy lab and robustness tests.

The ``breakout_rule`` fixture registers a deterministic detector that goes
long whenever a bar closes above the prior bar's high. ``breakout_candles``
builds one-minute sessions where every breakout is followed by a bar that
either reaches the 2R target or hits the 1 ATR stop.
"""

from collections.abc import Callable, Sequence
from decimal import Decimal

import pytest

from quant_lab.apps.strategy_lab import signals
from quant_lab.apps.strategy_lab.rules import StrategyRuleSpec
from quant_lab.apps.strategy_lab.series import PreparedSeries
from quant_lab.core.models import (
    Candle,
    Direction,
    ExecutionProfile,
    StrategyEngineConfig,
)

BREAKOUT_ID = "test_prior_high_breakout"
SESSION_START = 1_704_164_400  # 2024-01-02 03:00 UTC
MINUTE = 60
FLAT_BARS = 12
LEAD_IN_BARS = 20
START_PRICE = Decimal(200)
BAR_VOLUME = Decimal(1_000_000)


def _bar(ts: int, open_: Decimal, high: Decimal, low: Decimal, close: Decimal) -> Candle:
    return Candle(
        timestamp=ts, open=open_, high=high, low=low, close=close, volume=BAR_VOLUME
    )


def _flat(ts: int, price: Decimal) -> Candle:
    return _bar(ts, price, price + 1, price - 1, price)


def build_breakout_candles(
    outcomes: Sequence[bool],
    *,
    lead_in: int = LEAD_IN_BARS,
    flat_bars: int = FLAT_BARS,
    start_ts: int = SESSION_START,
    start_price: Decimal = START_PRICE,
) -> list[Candle]:
    """Build a one-minute session with one breakout per outcome.

    Each ``True`` outcome is a breakout followed by a bar through the 2R
    target; each ``False`` is a breakout followed by a bar through the stop.
    """
    candles: list[Candle] = []
    ts = start_ts
    price = start_price

    def add(candle: Candle) -> None:
        nonlocal ts
        candles.append(candle)
        ts += MINUTE

    for _ in range(lead_in):
        add(_flat(ts, price))
    for won in outcomes:
        add(_bar(ts, price, price + 3, price - Decimal("0.5"), price + 3))
        if won:
            add(_bar(ts, price + 3, price + 9, price + Decimal("2.5"), price + 8))
            price += 8
        else:
            add(_bar(ts, price + 3, price + Decimal("3.5"), price - 3, price - Decimal("2.5")))
            price -= Decimal("2.5")
        for _ in range(flat_bars):
            add(_flat(ts, price))
    return candles


def breakout_detector(
    series: PreparedSeries,
    config: StrategyEngineConfig,  # noqa: ARG001
    i: int,
    profile: ExecutionProfile,  # noqa: ARG001
) -> signals.Detection:
    """Go long when the bar closes above the prior bar's high."""
    if series.close[i] > series.high[i - 1]:
        return signals.SignalCandidate(
            direction=Direction.LONG, confidence=70, reason="Close above prior high"
        )
    return signals.Rejection("no_breakout")


def make_breakout_rule(**engine_overrides: object) -> StrategyRuleSpec:
    """Build a one-minute breakout rule with a 1 ATR stop and a 2R target."""
    engine_kwargs: dict[str, object] = {
        "execution_interval_min": 1,
        "higher_intervals_min": (),
        "atr_period": 14,
        "stop_atr_mult": Decimal(1),
        "target_r": Decimal(2),
        "max_bars_in_trade": 30,
        "min_bars_between_trades": 1,
        "risk_per_trade_pct": Decimal("0.5"),
        "daily_risk_cap_pct": Decimal(100),
    }
    engine_kwargs.update(engine_overrides)
    return StrategyRuleSpec(
        id=BREAKOUT_ID,
        name="Prior High Breakout",
        quality_rating="A",
        market_environment="Synthetic breakout",
        indicators=("ATR",),
        long_entry_rules=("Close above the prior bar's high.",),
        short_entry_rules=(),
        invalidation_rules=(),
        engine=StrategyEngineConfig(**engine_kwargs),  # type: ignore[arg-type]
        warmup_bars=15,
    )


@pytest.fixture
def breakout_rule(monkeypatch: pytest.MonkeyPatch) -> StrategyRuleSpec:
    """Register the breakout detector and return its rule spec."""
    monkeypatch.setitem(signals.DETECTORS, BREAKOUT_ID, breakout_detector)
    return make_breakout_rule()


@pytest.fixture
def breakout_candles() -> Callable[..., list[Candle]]:
    """Return the breakout session builder."""
    return build_breakout_candles


@pytest.fixture
def breakout_rule_factory(
    monkeypatch: pytest.MonkeyPatch,
) -> Callable[..., StrategyRuleSpec]:
    """Register the breakout detector and return a rule builder taking engine overrides."""
    monkeypatch.setitem(signals.DETECTORS, BREAKOUT_ID, breakout_detector)
    return make_breakout_rule
