"""Core data models shared across the strategy lab and robustness engine.

Define the immutable value objects (Candle, MarketSnapshot, SignalEvent,
SimulatedTrade, StrategyKPIs, StrategyEngineConfig) and the mutable
``RiskState`` that flow between the data providers, the evaluation engine,
and the robustness checks. Prices, points, and R-multiples are ``Decimal``
so that replaying the same series always produces the same trades.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from types import MappingProxyType

from quant_lab.core.exceptions import ConfigError

ZERO = Decimal(0)
ONE = Decimal(1)
TWO = Decimal(2)
HUNDRED = Decimal(100)

_MAX_CONFIDENCE = 100


class Direction(Enum):
    """Direction of a simulated position."""

    LONG = "LONG"
    SHORT = "SHORT"


class TradeOutcome(Enum):
    """Classification of a closed trade by its R-multiple."""

    WIN = "WIN"
    LOSS = "LOSS"
    SCRATCH = "SCRATCH"


class ExitReason(Enum):
    """Why a simulated position was closed.

    The first four members are checked in this priority order on every
    bar while a position is open. ``SESSION_CLOSE`` and ``RANGE_END``
    flatten positions that would otherwise be carried past the end of a
    trading day or the end of the replayed series.
    """

    STOP_LOSS = "Stop loss hit"
    TAKE_PROFIT = "Target hit"
    TIME_STOP = "Time stop"
    INVALIDATION = "Invalidation"
    SESSION_CLOSE = "Session close"
    RANGE_END = "Range end"


class ExecutionProfile(Enum):
    """Confluence strictness used when detecting entries.

    ``STRICT`` requires every confluence check to pass. ``BALANCED``
    requires only the mandatory checks plus a minimum count, and relaxes
    risk sizing, daily cap, and trade spacing slightly.
    """

    STRICT = "strict"
    BALANCED = "balanced"


class TrailingMode(Enum):
    """Indicator line that a stop trails once a trade has moved +1R."""

    NONE = "NONE"
    EMA9 = "EMA9"
    EMA21 = "EMA21"
    SUPERTREND = "SUPERTREND"


@dataclass(frozen=True)
class Candle:
    """Immutable OHLCV bar for one interval of a segment's underlying.

    Timestamps are Unix seconds marking the start of the bar.
    """

    timestamp: int
    open: Decimal
    high: Decimal
    low: Decimal
    close: Decimal
    volume: Decimal


@dataclass(frozen=True)
class MarketSnapshot:
    """Point-in-time derivative analytics for a segment.

    Every field other than the timestamp may be missing; absent data is a
    valid state and strategies treat it as "no information".
    """

    timestamp: int
    pcr: Decimal | None = None
    buy_qty: Decimal | None = None
    sell_qty: Decimal | None = None
    trade_volume: Decimal | None = None
    max_pain: Decimal | None = None
    ltp: Decimal | None = None


def _empty_params() -> Mapping[str, Decimal]:
    """Create an empty strategy parameter map."""
    return {}


@dataclass(frozen=True)
class StrategyEngineConfig:
    """Immutable simulation parameters for one strategy.

    Percentages (``risk_per_trade_pct``, ``daily_risk_cap_pct``) are
    expressed in percent units (``0.5`` means half a percent). ``params``
    holds strategy-specific thresholds looked up by the signal detectors.

    Raises:
        ConfigError: From ``__post_init__`` when any parameter is out of range.

    """

    execution_interval_min: int
    higher_intervals_min: tuple[int, ...]
    atr_period: int
    stop_atr_mult: Decimal
    target_r: Decimal
    max_bars_in_trade: int
    min_bars_between_trades: int
    risk_per_trade_pct: Decimal
    daily_risk_cap_pct: Decimal
    params: Mapping[str, Decimal] = field(default_factory=_empty_params)

    def __post_init__(self) -> None:
        """Validate ranges and freeze the parameter map."""
        if self.execution_interval_min <= 0:
            msg = f"execution_interval_min must be positive, got {self.execution_interval_min}"
            raise ConfigError(msg)
        if any(tf <= 0 for tf in self.higher_intervals_min):
            msg = f"higher_intervals_min must all be positive, got {self.higher_intervals_min}"
            raise ConfigError(msg)
        if self.atr_period <= 0:
            msg = f"atr_period must be positive, got {self.atr_period}"
            raise ConfigError(msg)
        if self.stop_atr_mult <= ZERO:
            msg = f"stop_atr_mult must be positive, got {self.stop_atr_mult}"
            raise ConfigError(msg)
        if self.target_r <= ZERO:
            msg = f"target_r must be positive, got {self.target_r}"
            raise ConfigError(msg)
        if self.max_bars_in_trade <= 0:
            msg = f"max_bars_in_trade must be positive, got {self.max_bars_in_trade}"
            raise ConfigError(msg)
        if self.min_bars_between_trades < 0:
            msg = (
                "min_bars_between_trades must not be negative, "
                f"got {self.min_bars_between_trades}"
            )
            raise ConfigError(msg)
        if self.risk_per_trade_pct < ZERO or self.daily_risk_cap_pct < ZERO:
            msg = (
                "risk percentages must not be negative, got "
                f"risk_per_trade_pct={self.risk_per_trade_pct}, "
                f"daily_risk_cap_pct={self.daily_risk_cap_pct}"
            )
            raise ConfigError(msg)
        object.__setattr__(self, "params", MappingProxyType(dict(self.params)))

    def param(self, name: str, default: Decimal) -> Decimal:
        """Return a strategy parameter, falling back to ``default`` when unset."""
        return self.params.get(name, default)


@dataclass(frozen=True)
class ExecutionCosts:
    """Transaction-cost assumptions applied to every simulated exit.

    ``slippage_multiplier`` scales the liquidity model's slippage penalty
    (``1`` is the baseline assumption). ``brokerage_points`` is a flat
    per-trade charge deducted from each trade's P&L in price points.
    """

    slippage_multiplier: Decimal = ONE
    brokerage_points: Decimal = ZERO

    def __post_init__(self) -> None:
        """Reject negative cost assumptions."""
        if self.slippage_multiplier < ZERO or self.brokerage_points < ZERO:
            msg = (
                "execution costs must not be negative, got "
                f"slippage_multiplier={self.slippage_multiplier}, "
                f"brokerage_points={self.brokerage_points}"
            )
            raise ConfigError(msg)


@dataclass(frozen=True)
class SignalEvent:
    """A detected entry opportunity on one bar.

    Produced by the evaluation engine from a strategy's detector output
    and consumed immediately to open a position.
    """

    time: int
    direction: Direction
    confidence: int
    reason: str
    entry_price: Decimal
    stop_loss: Decimal
    take_profit: Decimal

    def __post_init__(self) -> None:
        """Validate confidence is between 0 and 100."""
        if not (0 <= self.confidence <= _MAX_CONFIDENCE):
            msg = f"confidence must be between 0 and 100, got {self.confidence}"
            raise ValueError(msg)

    @property
    def risk_points(self) -> Decimal:
        """Return the entry-to-stop distance in price points."""
        return abs(self.entry_price - self.stop_loss)


@dataclass(frozen=True)
class SimulatedTrade:
    """Immutable record of a closed simulated trade.

    ``pnl_points`` is net of slippage and brokerage. ``pnl_r`` expresses
    the same result in multiples of the initial risk.
    """

    direction: Direction
    entry_time: int
    exit_time: int
    entry_price: Decimal
    exit_price: Decimal
    bars_held: int
    stop_loss: Decimal
    take_profit: Decimal
    risk_points: Decimal
    pnl_points: Decimal
    pnl_r: Decimal
    outcome: TradeOutcome
    exit_reason: ExitReason
    signal_reason: str = ""


@dataclass(frozen=True)
class StrategyKPIs:
    """Aggregate statistics over a set of simulated trades.

    ``win_rate`` is a fraction between 0 and 1. ``profit_factor`` is
    ``Decimal("Infinity")`` when there are winners and no losers.
    """

    trades: int
    wins: int
    losses: int
    scratches: int
    win_rate: Decimal
    net_points: Decimal
    net_r: Decimal
    avg_r: Decimal
    expectancy_r: Decimal
    profit_factor: Decimal
    max_drawdown_r: Decimal
    sharpe_like: Decimal

    @classmethod
    def empty(cls) -> "StrategyKPIs":
        """Return the neutral KPI set for an empty trade list."""
        return cls(
            trades=0,
            wins=0,
            losses=0,
            scratches=0,
            win_rate=ZERO,
            net_points=ZERO,
            net_r=ZERO,
            avg_r=ZERO,
            expectancy_r=ZERO,
            profit_factor=ZERO,
            max_drawdown_r=ZERO,
            sharpe_like=ZERO,
        )


@dataclass
class RiskState:
    """Mutable concurrent-exposure counter owned by one simulation pass."""

    open_trades: int = 0

    def reset(self) -> None:
        """Clear all open exposure at the start of a pass."""
        self.open_trades = 0
