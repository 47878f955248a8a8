"""Tests for strategy lab performance statistics."""

from decimal import Decimal

from quant_lab.apps.strategy_lab.metrics import (
    INFINITE_PROFIT_FACTOR,
    compute_kpis,
    max_drawdown_r,
    profit_factor,
    sharpe_like,
    win_rate,
)
from quant_lab.core.models import (
    Direction,
    ExitReason,
    SimulatedTrade,
    StrategyKPIs,
    TradeOutcome,
)

ZERO = Decimal(0)
EXPECTED_TOTAL_TRADES = 3


def _trade(pnl_r: str, outcome: TradeOutcome) -> SimulatedTrade:
    r = Decimal(pnl_r)
    return SimulatedTrade(
        direction=Direction.LONG,
        entry_time=1000,
        exit_time=2000,
        entry_price=Decimal(100),
        exit_price=Decimal(100) + r * 2,
        bars_held=5,
        stop_loss=Decimal(98),
        take_profit=Decimal(104),
        risk_points=Decimal(2),
        pnl_points=r * 2,
        pnl_r=r,
        outcome=outcome,
        exit_reason=ExitReason.TIME_STOP,
    )


def _win(pnl_r: str = "2") -> SimulatedTrade:
    return _trade(pnl_r, TradeOutcome.WIN)


def _loss(pnl_r: str = "-1") -> SimulatedTrade:
    return _trade(pnl_r, TradeOutcome.LOSS)


class TestWinRate:
    """Tests for win_rate."""

    def test_empty(self) -> None:
        """Test win rate with no trades."""
        assert win_rate([]) == ZERO

    def test_scratch_is_not_a_win(self) -> None:
        """Scratches count in the denominator only."""
        trades = [_win(), _trade("0.1", TradeOutcome.SCRATCH)]
        assert win_rate(trades) == Decimal("0.5")


class TestProfitFactor:
    """Tests for profit_factor."""

    def test_mixed(self) -> None:
        """Gross profit over gross loss."""
        assert profit_factor([_win("2"), _loss("-1")]) == Decimal(2)

    def test_no_losers_is_infinite(self) -> None:
        """Winners without losers return the infinity sentinel."""
        assert profit_factor([_win()]) == INFINITE_PROFIT_FACTOR

    def test_nothing_is_zero(self) -> None:
        """No trades gives zero."""
        assert profit_factor([]) == ZERO


class TestMaxDrawdownR:
    """Tests for max_drawdown_r."""

    def test_opening_losses_count(self) -> None:
        """A losing start is drawdown from the zero peak."""
        assert max_drawdown_r([Decimal(-1), Decimal(-1), Decimal(3)]) == Decimal(2)

    def test_peak_to_trough(self) -> None:
        """Measure the largest drop from a running peak."""
        values = [Decimal(2), Decimal(-1), Decimal(-2), Decimal(4), Decimal(-1)]
        assert max_drawdown_r(values) == Decimal(3)


class TestSharpeLike:
    """Tests for sharpe_like."""

    def test_single_trade_is_zero(self) -> None:
        """Fewer than two trades gives zero."""
        assert sharpe_like([Decimal(2)]) == ZERO

    def test_zero_variance_is_zero(self) -> None:
        """Identical R values give zero."""
        assert sharpe_like([Decimal(1), Decimal(1)]) == ZERO

    def test_uses_sample_std(self) -> None:
        """Mean over sample standard deviation."""
        assert sharpe_like([Decimal(1), Decimal(3)]) == Decimal(2) / Decimal(2).sqrt()


class TestComputeKpis:
    """Tests for compute_kpis."""

    def test_empty_is_neutral(self) -> None:
        """No trades gives the empty KPI set."""
        assert compute_kpis([]) == StrategyKPIs.empty()

    def test_counts_and_totals(self) -> None:
        """Counts partition the trades and totals add up."""
        trades = [_win("2"), _loss("-1"), _trade("0", TradeOutcome.SCRATCH)]
        kpis = compute_kpis(trades)
        assert kpis.trades == EXPECTED_TOTAL_TRADES
        assert kpis.wins + kpis.losses + kpis.scratches == kpis.trades
        assert kpis.net_r == Decimal(1)
        assert kpis.net_points == Decimal(2)
        assert kpis.expectancy_r == kpis.avg_r == Decimal(1) / Decimal(3)
        assert kpis.profit_factor == Decimal(2)
