"""Bar-by-bar evaluation engine for strategy rule specs.

Replay a one-minute candle series (plus optional snapshots) through one
``StrategyRuleSpec`` and return the simulated trades, their KPIs, and
activity diagnostics. The pass is a single loop over execution-interval
bars that reads indicator values only at indices up to the current bar,
holds at most one position at a time, and applies the liquidity model's
slippage and a flat brokerage charge to every exit.
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from decimal import Decimal

from quant_lab.apps.strategy_lab import signals
from quant_lab.apps.strategy_lab.exposure import DEFAULT_MAX_OPEN_TRADES, exposure_state
from quant_lab.apps.strategy_lab.liquidity import estimate_liquidity
from quant_lab.apps.strategy_lab.metrics import compute_kpis
from quant_lab.apps.strategy_lab.rules import StrategyRuleSpec
from quant_lab.apps.strategy_lab.series import (
    PreparedSeries,
    prepare_series,
    validate_candles,
    validate_snapshots,
)
from quant_lab.core.config import ConfigLoader, get_config
from quant_lab.core.exceptions import ConfigError
from quant_lab.core.models import (
    ONE,
    ZERO,
    Candle,
    Direction,
    ExecutionCosts,
    ExecutionProfile,
    ExitReason,
    MarketSnapshot,
    RiskState,
    SignalEvent,
    SimulatedTrade,
    StrategyKPIs,
    TradeOutcome,
    TrailingMode,
)
from quant_lab.core.protocols import MarketDataProvider

logger = logging.getLogger(__name__)

DEFAULT_SCRATCH_BAND_R = Decimal("0.15")
_MIN_ATR = Decimal("0.01")
_MIN_RISK_POINTS = Decimal("0.05")
_MIN_RISK_FRACTION = Decimal("0.0002")
_BALANCED_RISK_SCALE = Decimal("0.85")
_BALANCED_CAP_SCALE = Decimal("1.25")
_RECORD_QUANT = Decimal("0.0001")


@dataclass
class ActivityDiagnostics:
    """Counters explaining what the engine did with each evaluated bar."""

    bars_evaluated: int = 0
    signal_candidates: int = 0
    entries_taken: int = 0
    blocked_by_daily_risk: int = 0
    blocked_by_spacing: int = 0
    blocked_by_risk_filter: int = 0
    blocked_by_exposure: int = 0
    rejection_reasons: dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class EvaluationResult:
    """Outcome of one evaluation pass.

    ``candles`` holds the execution-interval bars the pass replayed.
    """

    strategy_id: str
    trades: tuple[SimulatedTrade, ...]
    kpis: StrategyKPIs
    activity: ActivityDiagnostics
    candles: tuple[Candle, ...] = ()


@dataclass
class _OpenPosition:
    direction: Direction
    entry_index: int
    entry_time: int
    entry_price: Decimal
    stop_loss: Decimal
    take_profit: Decimal
    risk_points: Decimal
    trailing_mode: TrailingMode
    signal_reason: str
    validation_deadline: int | None = None
    required_adx: Decimal | None = None
    reached_one_r: bool = False


class EvaluationEngine:
    """Simulate one strategy over a candle series.

    The engine is stateless between passes: every call to ``simulate``
    owns a fresh ``RiskState`` and daily risk ledger, so one engine may be
    shared by concurrent robustness checks.
    """

    def __init__(
        self,
        rule: StrategyRuleSpec,
        profile: ExecutionProfile = ExecutionProfile.STRICT,
        costs: ExecutionCosts | None = None,
        max_open_trades: int = DEFAULT_MAX_OPEN_TRADES,
        scratch_band_r: Decimal = DEFAULT_SCRATCH_BAND_R,
    ) -> None:
        """Initialize the evaluation engine.

        Args:
            rule: Strategy rule spec to simulate.
            profile: Confluence strictness for entries.
            costs: Slippage and brokerage assumptions (baseline if omitted).
            max_open_trades: Concurrent exposure cap.
            scratch_band_r: Half-width of the R band classified as SCRATCH.

        Raises:
            ConfigError: If the exposure cap or scratch band is invalid.

        """
        if max_open_trades < 1:
            msg = f"max_open_trades must be at least 1, got {max_open_trades}"
            raise ConfigError(msg)
        if scratch_band_r < ZERO:
            msg = f"scratch_band_r must not be negative, got {scratch_band_r}"
            raise ConfigError(msg)
        self._rule = rule
        self._profile = profile
        self._costs = costs or ExecutionCosts()
        self._max_open_trades = max_open_trades
        self._scratch_band = scratch_band_r

    @classmethod
    def from_settings(
        cls,
        rule: StrategyRuleSpec,
        profile: ExecutionProfile = ExecutionProfile.STRICT,
        costs: ExecutionCosts | None = None,
        loader: ConfigLoader | None = None,
    ) -> "EvaluationEngine":
        """Build an engine with the exposure cap and scratch band from settings.

        Reads ``strategy_lab.max_open_trades`` and ``strategy_lab.scratch_band_r``,
        keeping the module defaults for missing keys.

        Raises:
            ConfigError: If either setting is not numeric or out of range.

        """
        loader = loader or get_config()
        raw_cap = loader.get("strategy_lab.max_open_trades", DEFAULT_MAX_OPEN_TRADES)
        try:
            max_open_trades = int(raw_cap)
        except (TypeError, ValueError) as exc:
            msg = f"strategy_lab.max_open_trades must be an integer, got {raw_cap!r}"
            raise ConfigError(msg) from exc
        return cls(
            rule,
            profile=profile,
            costs=costs,
            max_open_trades=max_open_trades,
            scratch_band_r=loader.get_decimal(
                "strategy_lab.scratch_band_r", DEFAULT_SCRATCH_BAND_R
            ),
        )

    @property
    def rule(self) -> StrategyRuleSpec:
        """Return the strategy rule spec being simulated."""
        return self._rule

    @property
    def profile(self) -> ExecutionProfile:
        """Return the execution profile."""
        return self._profile

    @property
    def costs(self) -> ExecutionCosts:
        """Return the execution cost assumptions."""
        return self._costs

    def with_costs(self, costs: ExecutionCosts) -> "EvaluationEngine":
        """Return a copy of this engine with different execution costs."""
        return EvaluationEngine(
            self._rule,
            profile=self._profile,
            costs=costs,
            max_open_trades=self._max_open_trades,
            scratch_band_r=self._scratch_band,
        )

    async def run(
        self,
        provider: MarketDataProvider,
        segment: str,
        start_ts: int,
        end_ts: int,
    ) -> EvaluationResult:
        """Fetch one-minute candles and snapshots, then simulate.

        Args:
            provider: Market data source.
            segment: Segment (underlying) identifier.
            start_ts: Start Unix timestamp in seconds (inclusive).
            end_ts: End Unix timestamp in seconds (inclusive).

        Returns:
            The ``EvaluationResult`` of a single pass.

        """
        candles = await provider.fetch_candles(segment, start_ts, end_ts, 1)
        snapshots = await provider.fetch_snapshots(segment, start_ts, end_ts)
        return self.simulate(candles, snapshots)

    def simulate(
        self,
        candles: Sequence[Candle],
        snapshots: Sequence[MarketSnapshot] = (),
    ) -> EvaluationResult:
        """Replay ``candles`` through the strategy in a single pass.

        Args:
            candles: One-minute candles in strictly increasing time order.
            snapshots: Derivative snapshots in time order.

        Returns:
            Trades in exit order (which is also entry order), KPIs, and
            activity diagnostics. An empty series yields no trades.

        Raises:
            InputDataError: If the candles or snapshots are malformed.

        """
        validate_candles(candles)
        validate_snapshots(snapshots)
        activity = ActivityDiagnostics()
        if not candles:
            return EvaluationResult(
                strategy_id=self._rule.id,
                trades=(),
                kpis=StrategyKPIs.empty(),
                activity=activity,
            )

        config = self._rule.engine
        series = prepare_series(candles, snapshots, config)
        trades = self._simulate_series(series, activity)
        logger.debug(
            "Strategy %s produced %d trades over %d bars",
            self._rule.id,
            len(trades),
            len(series),
        )
        return EvaluationResult(
            strategy_id=self._rule.id,
            trades=tuple(trades),
            kpis=compute_kpis(trades),
            activity=activity,
            candles=tuple(series.candles),
        )

    def _effective_limits(self) -> tuple[Decimal, Decimal, int]:
        """Return ``(risk_per_trade, daily_cap, min_bars_between)`` for the profile."""
        config = self._rule.engine
        if self._profile is ExecutionProfile.STRICT:
            return (
                config.risk_per_trade_pct,
                config.daily_risk_cap_pct,
                config.min_bars_between_trades,
            )
        return (
            config.risk_per_trade_pct * _BALANCED_RISK_SCALE,
            config.daily_risk_cap_pct * _BALANCED_CAP_SCALE,
            max(1, config.min_bars_between_trades - 1),
        )

    def _simulate_series(
        self, series: PreparedSeries, activity: ActivityDiagnostics
    ) -> list[SimulatedTrade]:
        config = self._rule.engine
        risk_per_trade, daily_cap, min_spacing = self._effective_limits()
        last_index = len(series) - 1
        warmup = max(config.atr_period + 1, self._rule.warmup_bars)

        risk_state = RiskState()
        risk_state.reset()
        daily_risk: dict[str, Decimal] = {}
        trades: list[SimulatedTrade] = []
        position: _OpenPosition | None = None
        last_exit_index: int | None = None

        for i in range(warmup, last_index + 1):
            if position is not None:
                exit_signal = self._check_exit(position, series, i)
                if exit_signal is None:
                    self._trail_stop(position, series, i)
                    continue
                reason, raw_price = exit_signal
                trades.append(self._close(position, series, i, raw_price, reason))
                risk_state.open_trades -= 1
                position = None
                last_exit_index = i
                continue

            if i == last_index:
                break
            activity.bars_evaluated += 1
            if last_exit_index is not None and i - last_exit_index < min_spacing:
                activity.blocked_by_spacing += 1
                continue
            if not exposure_state(risk_state, self._max_open_trades).can_open_new_position:
                activity.blocked_by_exposure += 1
                continue
            day = series.days[i]
            used = daily_risk.get(day, ZERO)
            if used + risk_per_trade > daily_cap:
                activity.blocked_by_daily_risk += 1
                continue

            detection = signals.detect(self._rule.id, series, config, i, self._profile)
            if isinstance(detection, signals.Rejection):
                reasons = activity.rejection_reasons
                reasons[detection.reason] = reasons.get(detection.reason, 0) + 1
                continue
            activity.signal_candidates += 1

            event = self._signal_event(detection, series, i)
            if event.risk_points <= max(_MIN_RISK_POINTS, event.entry_price * _MIN_RISK_FRACTION):
                activity.blocked_by_risk_filter += 1
                continue

            position = _OpenPosition(
                direction=event.direction,
                entry_index=i,
                entry_time=event.time,
                entry_price=event.entry_price,
                stop_loss=event.stop_loss,
                take_profit=event.take_profit,
                risk_points=event.risk_points,
                trailing_mode=detection.trailing_mode,
                signal_reason=event.reason,
                validation_deadline=(
                    i + detection.validate_within_bars
                    if detection.validate_within_bars is not None
                    else None
                ),
                required_adx=detection.post_entry_adx_min,
            )
            risk_state.open_trades += 1
            daily_risk[day] = used + risk_per_trade
            activity.entries_taken += 1

        if position is not None:
            trades.append(
                self._close(
                    position, series, last_index, series.close[last_index], ExitReason.RANGE_END
                )
            )
            risk_state.open_trades -= 1
        return trades

    def _signal_event(
        self, candidate: signals.SignalCandidate, series: PreparedSeries, i: int
    ) -> SignalEvent:
        """Price a detector candidate: entry at close, ATR stop, R-multiple target."""
        config = self._rule.engine
        entry = series.close[i]
        stop_distance = config.stop_atr_mult * max(_MIN_ATR, series.atr[i])
        if candidate.direction is Direction.LONG:
            stop = entry - stop_distance
            target = entry + config.target_r * stop_distance
        else:
            stop = entry + stop_distance
            target = entry - config.target_r * stop_distance
        return SignalEvent(
            time=series.timestamps[i],
            direction=candidate.direction,
            confidence=candidate.confidence,
            reason=candidate.reason,
            entry_price=entry,
            stop_loss=stop,
            take_profit=target,
        )

    def _check_exit(
        self, position: _OpenPosition, series: PreparedSeries, i: int
    ) -> tuple[ExitReason, Decimal] | None:
        """Return the first exit condition met on bar ``i`` and its raw price.

        Priority: stop loss (wins a same-bar tie with the target), take
        profit, time stop, invalidation, session close, range end.
        """
        candle = series.candles[i]
        if position.direction is Direction.LONG:
            stop_hit = candle.low <= position.stop_loss
            target_hit = candle.high >= position.take_profit
        else:
            stop_hit = candle.high >= position.stop_loss
            target_hit = candle.low <= position.take_profit

        if stop_hit:
            return ExitReason.STOP_LOSS, position.stop_loss
        if target_hit:
            return ExitReason.TAKE_PROFIT, position.take_profit
        if i - position.entry_index >= self._rule.engine.max_bars_in_trade:
            return ExitReason.TIME_STOP, candle.close
        if self._invalidated(position, series, i):
            return ExitReason.INVALIDATION, candle.close
        if i + 1 < len(series) and series.days[i + 1] != series.days[i]:
            return ExitReason.SESSION_CLOSE, candle.close
        if i == len(series) - 1:
            return ExitReason.RANGE_END, candle.close
        return None

    def _invalidated(self, position: _OpenPosition, series: PreparedSeries, i: int) -> bool:
        if (
            position.required_adx is not None
            and position.validation_deadline is not None
            and i >= position.validation_deadline
            and series.adx14[i] < position.required_adx
        ):
            return True
        invalidator = signals.INVALIDATORS.get(self._rule.id)
        return invalidator is not None and invalidator(
            series, position.direction, position.entry_index, i
        )

    @staticmethod
    def _trail_stop(position: _OpenPosition, series: PreparedSeries, i: int) -> None:
        """Tighten the stop toward the trailing line once the close reaches +1R."""
        close = series.close[i]
        if position.direction is Direction.LONG:
            favorable = close - position.entry_price
        else:
            favorable = position.entry_price - close
        if favorable >= position.risk_points:
            position.reached_one_r = True
        if not position.reached_one_r:
            return

        if position.trailing_mode is TrailingMode.EMA9:
            line = series.ema9[i]
        elif position.trailing_mode is TrailingMode.EMA21:
            line = series.ema21[i]
        elif position.trailing_mode is TrailingMode.SUPERTREND:
            line = series.supertrend.line[i]
        else:
            return
        if position.direction is Direction.LONG:
            position.stop_loss = max(position.stop_loss, line)
        else:
            position.stop_loss = min(position.stop_loss, line)

    def _close(
        self,
        position: _OpenPosition,
        series: PreparedSeries,
        i: int,
        raw_price: Decimal,
        reason: ExitReason,
    ) -> SimulatedTrade:
        """Fill the exit with adverse slippage and brokerage, then record the trade."""
        liquidity = estimate_liquidity(raw_price, series.volume[i])
        slippage = liquidity.slippage_penalty_pct * self._costs.slippage_multiplier
        if position.direction is Direction.LONG:
            exit_price = raw_price * (ONE - slippage)
            gross = exit_price - position.entry_price
        else:
            exit_price = raw_price * (ONE + slippage)
            gross = position.entry_price - exit_price
        pnl_points = gross - self._costs.brokerage_points
        pnl_r = pnl_points / position.risk_points

        if pnl_r > self._scratch_band:
            outcome = TradeOutcome.WIN
        elif pnl_r < -self._scratch_band:
            outcome = TradeOutcome.LOSS
        else:
            outcome = TradeOutcome.SCRATCH

        return SimulatedTrade(
            direction=position.direction,
            entry_time=position.entry_time,
            exit_time=series.timestamps[i],
            entry_price=position.entry_price.quantize(_RECORD_QUANT),
            exit_price=exit_price.quantize(_RECORD_QUANT),
            bars_held=i - position.entry_index,
            stop_loss=position.stop_loss.quantize(_RECORD_QUANT),
            take_profit=position.take_profit.quantize(_RECORD_QUANT),
            risk_points=position.risk_points.quantize(_RECORD_QUANT),
            pnl_points=pnl_points.quantize(_RECORD_QUANT),
            pnl_r=pnl_r.quantize(_RECORD_QUANT),
            outcome=outcome,
            exit_reason=reason,
            signal_reason=position.signal_reason,
        )
