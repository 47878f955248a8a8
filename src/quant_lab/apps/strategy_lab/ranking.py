"""Strategy ranking for a segment.

Score each strategy's single-pass KPIs, its week-by-week consistency, and
the reliability of its sample, then blend them into one final score so
that strategies evaluated on identical data can be ranked. Weekly windows
start at the beginning of the requested range and bucket trades by entry
time.
"""

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal

from quant_lab.apps.strategy_lab.engine import ActivityDiagnostics, EvaluationEngine
from quant_lab.apps.strategy_lab.metrics import INFINITE_PROFIT_FACTOR, compute_kpis
from quant_lab.apps.strategy_lab.rules import STRATEGY_RULES, StrategyRuleSpec, get_rule
from quant_lab.core.models import (
    HUNDRED,
    ONE,
    ZERO,
    Candle,
    ExecutionCosts,
    ExecutionProfile,
    MarketSnapshot,
    SimulatedTrade,
    StrategyKPIs,
)
from quant_lab.core.protocols import MarketDataProvider
from quant_lab.core.timestamps import SECONDS_PER_DAY

WEEK_SECONDS = 7 * SECONDS_PER_DAY
BASE_WEIGHT = Decimal("0.40")
CONSISTENCY_WEIGHT = Decimal("0.38")
RELIABILITY_WEIGHT = Decimal("0.22")

_QUALITY_BONUS = {"A+": Decimal(2), "A": Decimal("1.3")}
_DEFAULT_QUALITY_BONUS = Decimal("0.8")
_PF_CAP = Decimal(4)
_SHARPE_CAP = Decimal(3)
_FULL_SAMPLE_TRADES = Decimal(14)
_THIN_SAMPLE = 3
_SMALL_SAMPLE = 6
_LARGE_SAMPLE = 40
_CENT = Decimal("0.01")


@dataclass(frozen=True)
class WindowEvaluation:
    """KPIs and evaluation score for one weekly window."""

    start_ts: int
    end_ts: int
    kpis: StrategyKPIs
    score: Decimal


@dataclass(frozen=True)
class ConsistencyMetrics:
    """Week-over-week stability of a strategy's net R."""

    windows: int
    positive_windows: int
    positive_window_rate: Decimal
    median_net_r: Decimal
    net_r_std: Decimal
    score: Decimal


@dataclass(frozen=True)
class StrategyEvaluation:
    """Ranked evaluation of one strategy on one segment."""

    strategy_id: str
    strategy_name: str
    quality_rating: str
    profile: ExecutionProfile
    kpis: StrategyKPIs
    base_score: Decimal
    consistency: ConsistencyMetrics
    reliability_score: Decimal
    final_score: Decimal
    activity: ActivityDiagnostics
    windows: tuple[WindowEvaluation, ...]
    trades: tuple[SimulatedTrade, ...]


def _clamp(value: Decimal, low: Decimal, high: Decimal) -> Decimal:
    return max(low, min(high, value))


def _round2(value: Decimal) -> Decimal:
    return value.quantize(_CENT) if value.is_finite() else ZERO


def _median(values: Sequence[Decimal]) -> Decimal:
    if not values:
        return ZERO
    ordered = sorted(values)
    mid = len(ordered) // 2
    if len(ordered) % 2 == 1:
        return ordered[mid]
    return (ordered[mid - 1] + ordered[mid]) / 2


def _sample_std(values: Sequence[Decimal]) -> Decimal:
    if len(values) < 2:  # noqa: PLR2004
        return ZERO
    mean = sum(values, ZERO) / Decimal(len(values))
    variance = sum(((v - mean) ** 2 for v in values), ZERO) / Decimal(len(values) - 1)
    return variance.sqrt()


def evaluation_score(kpis: StrategyKPIs, quality_rating: str) -> Decimal:
    """Score a KPI set, discounting small samples.

    Profit factor is capped at 4 (so the infinite sentinel scores as 4) and
    the Sharpe-like ratio is clamped to [-3, 3].
    """
    capped_pf = _PF_CAP if kpis.profit_factor == INFINITE_PROFIT_FACTOR else min(
        _PF_CAP, kpis.profit_factor
    )
    capped_sharpe = _clamp(kpis.sharpe_like, -_SHARPE_CAP, _SHARPE_CAP)
    raw = (
        kpis.net_r * 6
        + kpis.win_rate * 16
        + capped_pf * 5
        + kpis.expectancy_r * 10
        + capped_sharpe * 4
        - kpis.max_drawdown_r * 6
        + _QUALITY_BONUS.get(quality_rating, _DEFAULT_QUALITY_BONUS)
    )
    sample_confidence = _clamp(Decimal(kpis.trades) / _FULL_SAMPLE_TRADES, ZERO, ONE)
    score = raw * (Decimal("0.45") + sample_confidence * Decimal("0.55"))
    if kpis.trades < _THIN_SAMPLE:
        score -= 10
    elif kpis.trades < _SMALL_SAMPLE:
        score -= 4
    if kpis.trades > _LARGE_SAMPLE:
        score += 2
    return _round2(score)


def weekly_windows(start_ts: int, end_ts: int) -> list[tuple[int, int]]:
    """Split ``[start_ts, end_ts)`` into consecutive 7-day windows.

    The last window is truncated at ``end_ts``. An empty or inverted range
    has no windows.
    """
    windows: list[tuple[int, int]] = []
    current = start_ts
    while current < end_ts:
        windows.append((current, min(end_ts, current + WEEK_SECONDS)))
        current += WEEK_SECONDS
    return windows


def rolling_windows(
    trades: Sequence[SimulatedTrade], start_ts: int, end_ts: int, quality_rating: str
) -> list[WindowEvaluation]:
    """Evaluate the trades entered within each weekly window."""
    out: list[WindowEvaluation] = []
    for w_start, w_end in weekly_windows(start_ts, end_ts):
        window_trades = [t for t in trades if w_start <= t.entry_time < w_end]
        kpis = compute_kpis(window_trades)
        out.append(
            WindowEvaluation(
                start_ts=w_start,
                end_ts=w_end,
                kpis=kpis,
                score=evaluation_score(kpis, quality_rating),
            )
        )
    return out


def consistency_metrics(windows: Sequence[WindowEvaluation]) -> ConsistencyMetrics:
    """Summarise how evenly net R is spread across weekly windows."""
    if not windows:
        return ConsistencyMetrics(0, 0, ZERO, ZERO, ZERO, ZERO)
    net_rs = [w.kpis.net_r for w in windows]
    count = Decimal(len(windows))
    positive = sum(1 for r in net_rs if r > ZERO)
    positive_rate = Decimal(positive) / count
    activity_rate = Decimal(sum(1 for w in windows if w.kpis.trades > 0)) / count
    median_net_r = _median(net_rs)
    net_r_std = _sample_std(net_rs)
    score = positive_rate * 40 + activity_rate * 20 + median_net_r * 10 - net_r_std * 8
    return ConsistencyMetrics(
        windows=len(windows),
        positive_windows=positive,
        positive_window_rate=_round2(positive_rate),
        median_net_r=_round2(median_net_r),
        net_r_std=_round2(net_r_std),
        score=_round2(score),
    )


def _density_score(trades_per_day: Decimal) -> Decimal:
    """Piecewise reward for trade frequency, peaking around 3 to 6 trades a day."""
    if trades_per_day <= Decimal("0.5"):
        return trades_per_day / Decimal("0.5") * 25
    if trades_per_day <= 3:  # noqa: PLR2004
        return 25 + (trades_per_day - Decimal("0.5")) / Decimal("2.5") * 55
    if trades_per_day <= 6:  # noqa: PLR2004
        return 80 + (trades_per_day - 3) / 3 * 15
    if trades_per_day <= 10:  # noqa: PLR2004
        return 95 - (trades_per_day - 6) / 4 * 25
    return max(Decimal(35), 70 - (trades_per_day - 10) * 3)


def reliability_score(
    kpis: StrategyKPIs, windows: Sequence[WindowEvaluation], start_ts: int, end_ts: int
) -> Decimal:
    """Score how trustworthy a KPI set is given its density, coverage, and size."""
    days = max(ONE, Decimal(end_ts - start_ts) / SECONDS_PER_DAY) if end_ts > start_ts else ONE
    density = _clamp(_density_score(Decimal(kpis.trades) / days), ZERO, HUNDRED)
    if windows:
        active = sum(1 for w in windows if w.kpis.trades > 0)
        coverage = Decimal(active) / Decimal(len(windows)) * HUNDRED
    else:
        coverage = HUNDRED if kpis.trades > 0 else ZERO
    sample = _clamp(Decimal(kpis.trades * 4), ZERO, HUNDRED)
    drawdown_guard = _clamp(HUNDRED - kpis.max_drawdown_r * 12, ZERO, HUNDRED)

    reliability = (
        density * Decimal("0.35")
        + coverage * Decimal("0.3")
        + sample * Decimal("0.2")
        + drawdown_guard * Decimal("0.15")
    )
    if kpis.trades < _THIN_SAMPLE:
        reliability *= Decimal("0.5")
    elif kpis.trades < _SMALL_SAMPLE:
        reliability *= Decimal("0.75")
    return _round2(_clamp(reliability, ZERO, HUNDRED))


def evaluate_strategy(  # noqa: PLR0913
    rule: StrategyRuleSpec,
    candles: Sequence[Candle],
    snapshots: Sequence[MarketSnapshot] = (),
    *,
    profile: ExecutionProfile = ExecutionProfile.BALANCED,
    costs: ExecutionCosts | None = None,
    start_ts: int | None = None,
    end_ts: int | None = None,
) -> StrategyEvaluation:
    """Simulate one strategy and score it for ranking.

    The window range defaults to the first and last candle timestamps.
    """
    engine = EvaluationEngine.from_settings(rule, profile=profile, costs=costs)
    result = engine.simulate(candles, snapshots)
    range_start = start_ts if start_ts is not None else (candles[0].timestamp if candles else 0)
    range_end = end_ts if end_ts is not None else (candles[-1].timestamp if candles else 0)

    base = evaluation_score(result.kpis, rule.quality_rating)
    windows = rolling_windows(result.trades, range_start, range_end, rule.quality_rating)
    consistency = consistency_metrics(windows)
    reliability = reliability_score(result.kpis, windows, range_start, range_end)
    final = _round2(
        base * BASE_WEIGHT
        + consistency.score * CONSISTENCY_WEIGHT
        + reliability * RELIABILITY_WEIGHT
    )
    return StrategyEvaluation(
        strategy_id=rule.id,
        strategy_name=rule.name,
        quality_rating=rule.quality_rating,
        profile=profile,
        kpis=result.kpis,
        base_score=base,
        consistency=consistency,
        reliability_score=reliability,
        final_score=final,
        activity=result.activity,
        windows=tuple(windows),
        trades=result.trades,
    )


async def evaluate_segment(  # noqa: PLR0913
    provider: MarketDataProvider,
    segment: str,
    start_ts: int,
    end_ts: int,
    *,
    strategy_ids: Sequence[str] | None = None,
    profile: ExecutionProfile = ExecutionProfile.BALANCED,
    costs: ExecutionCosts | None = None,
) -> list[StrategyEvaluation]:
    """Evaluate the selected strategies on identical data and rank them.

    Args:
        provider: Market data source.
        segment: Segment identifier.
        start_ts: Start Unix timestamp in seconds (inclusive).
        end_ts: End Unix timestamp in seconds (inclusive).
        strategy_ids: Strategies to evaluate; all registered ones if empty.
        profile: Execution profile for every strategy.
        costs: Execution costs for every strategy.

    Returns:
        Evaluations sorted by final score, best first.

    Raises:
        ConfigError: If a strategy identifier is unknown.

    """
    rules = [get_rule(sid) for sid in strategy_ids] if strategy_ids else list(STRATEGY_RULES)
    candles = await provider.fetch_candles(segment, start_ts, end_ts, 1)
    snapshots = await provider.fetch_snapshots(segment, start_ts, end_ts)
    evaluations = await asyncio.gather(
        *(
            asyncio.to_thread(
                evaluate_strategy,
                rule,
                candles,
                snapshots,
                profile=profile,
                costs=costs,
                start_ts=start_ts,
                end_ts=end_ts,
            )
            for rule in rules
        )
    )
    return sorted(evaluations, key=lambda e: e.final_score, reverse=True)
