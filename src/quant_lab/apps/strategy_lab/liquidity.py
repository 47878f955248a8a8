"""Liquidity model for simulated option fills.

Estimate the bid-ask spread and the slippage haircut for an option premium
and the traded volume behind it. Thin volume and cheap premiums widen the
assumed spread; the effect saturates inside fixed bands so that a single
illiquid bar cannot dominate a backtest.
"""

from dataclasses import dataclass
from decimal import Decimal

from quant_lab.core.models import ONE, TWO, ZERO

MIN_PREMIUM = ONE
MISSING_VOLUME_PENALTY = Decimal("0.003")
VOLUME_PENALTY_BASE = Decimal("0.0025")
VOLUME_PENALTY_SCALE = Decimal(5_000_000)
VOLUME_PENALTY_MIN = Decimal("0.0005")
VOLUME_PENALTY_MAX = Decimal("0.003")
LOW_PREMIUM_THRESHOLD = Decimal(80)
HIGH_PREMIUM_THRESHOLD = Decimal(350)
LOW_PREMIUM_PENALTY = Decimal("0.002")
HIGH_PREMIUM_PENALTY = Decimal("0.0008")
MID_PREMIUM_PENALTY = Decimal("0.0012")
SPREAD_MIN = Decimal("0.001")
SPREAD_MAX = Decimal("0.007")
SLIPPAGE_MIN = Decimal("0.0005")
SLIPPAGE_MAX = Decimal("0.004")


@dataclass(frozen=True)
class LiquidityEstimate:
    """Expected spread and slippage as fractions of the premium."""

    spread_pct: Decimal
    slippage_penalty_pct: Decimal


def _clamp(value: Decimal, low: Decimal, high: Decimal) -> Decimal:
    return max(low, min(high, value))


def estimate_liquidity(premium: Decimal, market_volume: Decimal | None = None) -> LiquidityEstimate:
    """Estimate the spread and slippage penalty for one fill.

    Args:
        premium: Option premium (or price) being filled. Values below 1
            are treated as 1.
        market_volume: Traded volume behind the fill, or ``None`` when
            unknown. Missing or non-positive volume gets the conservative
            fixed penalty.

    Returns:
        A ``LiquidityEstimate`` whose slippage is half the spread, each
        clamped to its band, so slippage never exceeds spread.

    """
    premium = max(MIN_PREMIUM, premium)
    if market_volume is None or market_volume <= ZERO:
        volume_penalty = MISSING_VOLUME_PENALTY
    else:
        volume_penalty = _clamp(
            VOLUME_PENALTY_BASE - market_volume / VOLUME_PENALTY_SCALE,
            VOLUME_PENALTY_MIN,
            VOLUME_PENALTY_MAX,
        )

    if premium < LOW_PREMIUM_THRESHOLD:
        premium_penalty = LOW_PREMIUM_PENALTY
    elif premium > HIGH_PREMIUM_THRESHOLD:
        premium_penalty = HIGH_PREMIUM_PENALTY
    else:
        premium_penalty = MID_PREMIUM_PENALTY

    spread = _clamp(volume_penalty + premium_penalty, SPREAD_MIN, SPREAD_MAX)
    slippage = _clamp(spread / TWO, SLIPPAGE_MIN, SLIPPAGE_MAX)
    return LiquidityEstimate(spread_pct=spread, slippage_penalty_pct=slippage)
