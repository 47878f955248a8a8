"""Regime stability check.

Classify every execution bar into a low, mid, or high volatility regime by
the tercile of its trailing realized volatility, attribute each trade to
the regime of its entry bar, and penalise strategies that earn all their
profit in a single regime.
"""

from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from quant_lab.apps.strategy_lab.series import realized_volatility
from quant_lab.core.models import ZERO, Candle, SimulatedTrade


class Regime(Enum):
    """Realized volatility tercile."""

    LOW = "LOW"
    MID = "MID"
    HIGH = "HIGH"


@dataclass(frozen=True)
class RegimeBucket:
    """Trades and net R attributed to one regime."""

    regime: Regime
    bars: int
    trades: int
    net_r: Decimal


@dataclass(frozen=True)
class RegimeResult:
    """Per-regime attribution and the regime stability sub-score."""

    buckets: tuple[RegimeBucket, ...]
    regimes_traded: int
    max_profit_share: float
    unclassified_trades: int
    score: float


def classify_regimes(candles: Sequence[Candle], lookback: int) -> list[Regime | None]:
    """Assign a volatility regime to every bar.

    Tercile cut points come from the distribution of defined volatility
    values over the whole series. Bars inside the lookback warm-up are
    ``None``.
    """
    vols = realized_volatility([c.close for c in candles], lookback)
    defined = sorted(v for v in vols if v is not None)
    if not defined:
        return [None] * len(candles)
    n = len(defined)
    low_cut = defined[min(n - 1, n // 3)]
    high_cut = defined[min(n - 1, 2 * n // 3)]
    regimes: list[Regime | None] = []
    for vol in vols:
        if vol is None:
            regimes.append(None)
        elif vol < low_cut:
            regimes.append(Regime.LOW)
        elif vol < high_cut:
            regimes.append(Regime.MID)
        else:
            regimes.append(Regime.HIGH)
    return regimes


def regime_score(net_by_regime: Sequence[Decimal], regimes_traded: int) -> tuple[float, float]:
    """Return ``(score, max_profit_share)`` for per-regime net R.

    Zero when no regime is net profitable or only one regime hosted
    trades; 100 when positive net R is spread evenly across the traded
    regimes.
    """
    positives = [float(max(ZERO, net)) for net in net_by_regime]
    total = sum(positives)
    if total <= 0:
        return 0.0, 0.0
    max_share = max(positives) / total
    if regimes_traded <= 1:
        return 0.0, max_share
    score = 100 * (1 - max_share) / (1 - 1 / regimes_traded)
    return max(0.0, min(100.0, score)), max_share


def run_regime_stability(
    trades: Sequence[SimulatedTrade],
    candles: Sequence[Candle],
    lookback: int = 20,
) -> RegimeResult:
    """Attribute trades to volatility regimes and score the concentration.

    Args:
        trades: Trades of the baseline pass.
        candles: Execution-interval candles the baseline pass replayed.
        lookback: Realized volatility lookback in bars.

    Returns:
        A ``RegimeResult`` with one bucket per regime.

    """
    regimes = classify_regimes(candles, lookback)
    index_by_time = {c.timestamp: i for i, c in enumerate(candles)}
    trade_counts = dict.fromkeys(Regime, 0)
    net_r = dict.fromkeys(Regime, ZERO)
    unclassified = 0
    for trade in trades:
        index = index_by_time.get(trade.entry_time)
        regime = regimes[index] if index is not None else None
        if regime is None:
            unclassified += 1
            continue
        trade_counts[regime] += 1
        net_r[regime] += trade.pnl_r

    traded = sum(1 for regime in Regime if trade_counts[regime] > 0)
    score, max_share = regime_score([net_r[regime] for regime in Regime], traded)
    buckets = tuple(
        RegimeBucket(
            regime=regime,
            bars=sum(1 for r in regimes if r is regime),
            trades=trade_counts[regime],
            net_r=net_r[regime],
        )
        for regime in Regime
    )
    return RegimeResult(
        buckets=buckets,
        regimes_traded=traded,
        max_profit_share=round(max_share, 4),
        unclassified_trades=unclassified,
        score=round(score, 2),
    )
