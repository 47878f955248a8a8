"""Walk-forward consistency check.

Split the candle history into ``folds + 1`` contiguous blocks of equal
length. Fold ``k`` replays block ``k`` followed by block ``k + 1`` so the
in-sample block warms up indicators and positions, and only trades
entered inside block ``k + 1`` count as out-of-sample. Strategy rules are
fixed, so nothing is fit on the in-sample block; the check asks whether
out-of-sample expectancy keeps its sign and rough size across folds.
"""

import statistics
from collections.abc import Sequence
from dataclasses import dataclass

from quant_lab.apps.strategy_lab.engine import EvaluationEngine
from quant_lab.apps.strategy_lab.metrics import compute_kpis
from quant_lab.core.models import Candle, MarketSnapshot, StrategyKPIs

_MIN_DISPERSION_MEAN = 0.25
_POSITIVE_WEIGHT = 60.0
_STABILITY_WEIGHT = 40.0


@dataclass(frozen=True)
class WalkForwardFold:
    """In-sample and out-of-sample KPIs of one fold."""

    fold_index: int
    in_sample_start: int
    out_of_sample_start: int
    out_of_sample_end: int
    in_sample_kpis: StrategyKPIs
    out_of_sample_kpis: StrategyKPIs


@dataclass(frozen=True)
class WalkForwardResult:
    """Per-fold KPIs and the walk-forward sub-score (0 to 100)."""

    folds: tuple[WalkForwardFold, ...]
    positive_window_rate: float
    mean_expectancy_r: float
    dispersion: float
    score: float


def split_blocks(candles: Sequence[Candle], count: int) -> list[list[Candle]]:
    """Split ``candles`` into ``count`` contiguous blocks of near-equal length.

    Blocks differ in length by at most one candle. With fewer candles than
    blocks some blocks are empty.
    """
    n = len(candles)
    bounds = [n * k // count for k in range(count + 1)]
    return [list(candles[bounds[k] : bounds[k + 1]]) for k in range(count)]


def walk_forward_score(
    expectancies: Sequence[float], traded_folds: int
) -> tuple[float, float, float]:
    """Score out-of-sample expectancies across folds.

    Args:
        expectancies: Out-of-sample expectancy (R) of every fold, with
            zero for folds without trades.
        traded_folds: Number of folds with at least one out-of-sample trade.

    Returns:
        ``(score, positive_window_rate, dispersion)``. The score is zero
        when no fold traded and is halved when mean expectancy is not
        positive.

    """
    if not expectancies or traded_folds == 0:
        return 0.0, 0.0, 0.0
    mean = statistics.fmean(expectancies)
    positive_rate = sum(1 for e in expectancies if e > 0) / len(expectancies)
    dispersion = statistics.pstdev(expectancies) / max(abs(mean), _MIN_DISPERSION_MEAN)
    score = _POSITIVE_WEIGHT * positive_rate + _STABILITY_WEIGHT * max(0.0, 1 - dispersion / 2)
    if mean <= 0:
        score /= 2
    return max(0.0, min(100.0, score)), positive_rate, dispersion


def run_walk_forward(
    engine: EvaluationEngine,
    candles: Sequence[Candle],
    snapshots: Sequence[MarketSnapshot] = (),
    folds: int = 4,
) -> WalkForwardResult:
    """Evaluate out-of-sample consistency of a fixed strategy.

    Args:
        engine: Engine configured with the strategy, profile, and costs.
        candles: One-minute candles for the whole date range.
        snapshots: Snapshots for the whole date range.
        folds: Number of in-sample/out-of-sample pairs.

    Returns:
        A ``WalkForwardResult`` with one entry per fold whose
        out-of-sample block is not empty.

    Raises:
        InputDataError: If the candles or snapshots are malformed.

    """
    blocks = split_blocks(candles, folds + 1)
    results: list[WalkForwardFold] = []
    for k in range(folds):
        in_sample, out_of_sample = blocks[k], blocks[k + 1]
        if not out_of_sample:
            continue
        window = in_sample + out_of_sample
        window_start = window[0].timestamp
        window_end = window[-1].timestamp
        oos_start = out_of_sample[0].timestamp
        window_snapshots = [s for s in snapshots if s.timestamp <= window_end]
        evaluation = engine.simulate(window, window_snapshots)
        oos_trades = [t for t in evaluation.trades if t.entry_time >= oos_start]
        is_trades = [t for t in evaluation.trades if t.entry_time < oos_start]
        results.append(
            WalkForwardFold(
                fold_index=k,
                in_sample_start=window_start,
                out_of_sample_start=oos_start,
                out_of_sample_end=window_end,
                in_sample_kpis=compute_kpis(is_trades),
                out_of_sample_kpis=compute_kpis(oos_trades),
            )
        )

    expectancies = [float(f.out_of_sample_kpis.expectancy_r) for f in results]
    traded = sum(1 for f in results if f.out_of_sample_kpis.trades > 0)
    score, positive_rate, dispersion = walk_forward_score(expectancies, traded)
    return WalkForwardResult(
        folds=tuple(results),
        positive_window_rate=round(positive_rate, 4),
        mean_expectancy_r=round(statistics.fmean(expectancies), 4) if expectancies else 0.0,
        dispersion=round(dispersion, 4),
        score=round(score, 2),
    )
