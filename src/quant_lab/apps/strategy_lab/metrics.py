"""Performance statistics over simulated trades.

Provide standalone functions that each compute a single statistic from a
list of ``SimulatedTrade`` objects (or their R-multiples). The
``compute_kpis`` convenience function runs all of them and returns a
``StrategyKPIs``. Degenerate inputs (no trades, zero variance, no losers)
produce the documented neutral values instead of raising.
"""

from collections.abc import Sequence
from decimal import Decimal

from quant_lab.core.models import ZERO, SimulatedTrade, StrategyKPIs, TradeOutcome

INFINITE_PROFIT_FACTOR = Decimal("Infinity")
_MIN_TRADES_FOR_SHARPE = 2


def win_rate(trades: Sequence[SimulatedTrade]) -> Decimal:
    """Return the fraction of trades classified as wins (0.0 to 1.0)."""
    if not trades:
        return ZERO
    wins = sum(1 for t in trades if t.outcome is TradeOutcome.WIN)
    return Decimal(wins) / Decimal(len(trades))


def profit_factor(trades: Sequence[SimulatedTrade]) -> Decimal:
    """Return gross profit points divided by gross loss points.

    Return ``Infinity`` when there are winners and no losers, and zero
    when there is nothing on either side.
    """
    gross_profit = sum((t.pnl_points for t in trades if t.pnl_points > ZERO), ZERO)
    gross_loss = abs(sum((t.pnl_points for t in trades if t.pnl_points < ZERO), ZERO))
    if gross_loss == ZERO:
        return INFINITE_PROFIT_FACTOR if gross_profit > ZERO else ZERO
    return gross_profit / gross_loss


def max_drawdown_r(r_values: Sequence[Decimal]) -> Decimal:
    """Return the largest drop of cumulative R from its running peak.

    The peak starts at zero, so an opening losing streak counts as
    drawdown.
    """
    equity = ZERO
    peak = ZERO
    max_dd = ZERO
    for r in r_values:
        equity += r
        peak = max(peak, equity)
        max_dd = max(max_dd, peak - equity)
    return max_dd


def sharpe_like(r_values: Sequence[Decimal]) -> Decimal:
    """Return mean R over the sample standard deviation of R.

    Return zero when there are fewer than 2 trades or the standard
    deviation is zero.
    """
    if len(r_values) < _MIN_TRADES_FOR_SHARPE:
        return ZERO
    mean = sum(r_values, ZERO) / Decimal(len(r_values))
    variance = sum(((r - mean) ** 2 for r in r_values), ZERO) / Decimal(len(r_values) - 1)
    if variance == ZERO:
        return ZERO
    return mean / variance.sqrt()


def compute_kpis(trades: Sequence[SimulatedTrade]) -> StrategyKPIs:
    """Compute the full KPI set for a trade list."""
    if not trades:
        return StrategyKPIs.empty()
    r_values = [t.pnl_r for t in trades]
    count = Decimal(len(trades))
    net_r = sum(r_values, ZERO)
    avg_r = net_r / count
    return StrategyKPIs(
        trades=len(trades),
        wins=sum(1 for t in trades if t.outcome is TradeOutcome.WIN),
        losses=sum(1 for t in trades if t.outcome is TradeOutcome.LOSS),
        scratches=sum(1 for t in trades if t.outcome is TradeOutcome.SCRATCH),
        win_rate=win_rate(trades),
        net_points=sum((t.pnl_points for t in trades), ZERO),
        net_r=net_r,
        avg_r=avg_r,
        expectancy_r=avg_r,
        profit_factor=profit_factor(trades),
        max_drawdown_r=max_drawdown_r(r_values),
        sharpe_like=sharpe_like(r_values),
    )
