"""Monte Carlo bootstrap of the realized trade sequence.

Resample the trade R-multiples with replacement to build distributions of
terminal net R and maximum drawdown. A strategy whose result survives
reshuffled and resampled luck keeps a high probability of finishing
positive with a tolerable tail drawdown.

Every trial draws from one ``random.Random`` seeded from the config, so
the same trades and seed always produce the same distributions.
"""

import random
from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal

_MIN_TRADES = 2
_POSITIVE_WEIGHT = 50.0
_TAIL_WEIGHT = 30.0
_DISPERSION_WEIGHT = 20.0


@dataclass(frozen=True)
class MonteCarloResult:
    """Bootstrap distribution summary and the Monte Carlo sub-score.

    ``tail_net_r`` is the low-tail percentile of terminal net R and
    ``tail_drawdown_r`` the matching high-tail percentile of max drawdown.
    """

    trials: int
    seed: int
    trades: int
    mean_net_r: float
    std_net_r: float
    median_net_r: float
    probability_positive: float
    tail_net_r: float
    median_drawdown_r: float
    tail_drawdown_r: float
    score: float


def _percentile(sorted_values: list[float], pct: float) -> float:
    """Compute the p-th percentile from a pre-sorted list using nearest-rank."""
    idx = max(0, min(len(sorted_values) - 1, int(len(sorted_values) * pct / 100)))
    return sorted_values[idx]


def _max_drawdown(r_values: Sequence[float]) -> float:
    equity = 0.0
    peak = 0.0
    max_dd = 0.0
    for r in r_values:
        equity += r
        peak = max(peak, equity)
        max_dd = max(max_dd, peak - equity)
    return max_dd


def monte_carlo_score(
    probability_positive: float,
    tail_drawdown_r: float,
    mean_net_r: float,
    std_net_r: float,
    drawdown_budget_r: float,
) -> float:
    """Combine the bootstrap summary into a 0 to 100 sub-score."""
    score = (
        _POSITIVE_WEIGHT * probability_positive
        + _TAIL_WEIGHT * max(0.0, 1 - tail_drawdown_r / drawdown_budget_r)
        + _DISPERSION_WEIGHT * max(0.0, 1 - std_net_r / max(abs(mean_net_r), 1.0))
    )
    return max(0.0, min(100.0, score))


def run_monte_carlo(
    r_values: Sequence[Decimal],
    *,
    trials: int = 1000,
    seed: int = 42,
    tail_percentile: int = 5,
    drawdown_budget_r: float = 10.0,
) -> MonteCarloResult:
    """Bootstrap the trade sequence and score the resulting distributions.

    Args:
        r_values: R-multiple of each realized trade, in trade order.
        trials: Number of bootstrap samples.
        seed: RNG seed for reproducibility.
        tail_percentile: Percentile used for the tail statistics.
        drawdown_budget_r: Tail drawdown that drives the tail term to zero.

    Returns:
        A ``MonteCarloResult``. With fewer than 2 trades the distributions
        are degenerate and the score is zero.

    """
    values = [float(r) for r in r_values]
    if len(values) < _MIN_TRADES:
        total = sum(values)
        drawdown = _max_drawdown(values)
        return MonteCarloResult(
            trials=0,
            seed=seed,
            trades=len(values),
            mean_net_r=round(total, 4),
            std_net_r=0.0,
            median_net_r=round(total, 4),
            probability_positive=1.0 if total > 0 else 0.0,
            tail_net_r=round(total, 4),
            median_drawdown_r=round(drawdown, 4),
            tail_drawdown_r=round(drawdown, 4),
            score=0.0,
        )

    rng = random.Random(seed)  # noqa: S311
    net_rs: list[float] = []
    drawdowns: list[float] = []
    for _ in range(trials):
        sample = rng.choices(values, k=len(values))
        net_rs.append(sum(sample))
        drawdowns.append(_max_drawdown(sample))

    n = len(net_rs)
    mean = sum(net_rs) / n
    std = (sum((v - mean) ** 2 for v in net_rs) / n) ** 0.5
    probability_positive = sum(1 for v in net_rs if v > 0) / n
    sorted_net = sorted(net_rs)
    sorted_dd = sorted(drawdowns)
    tail_dd = _percentile(sorted_dd, 100 - tail_percentile)
    score = monte_carlo_score(probability_positive, tail_dd, mean, std, drawdown_budget_r)
    return MonteCarloResult(
        trials=trials,
        seed=seed,
        trades=len(values),
        mean_net_r=round(mean, 4),
        std_net_r=round(std, 4),
        median_net_r=round(_percentile(sorted_net, 50), 4),
        probability_positive=round(probability_positive, 4),
        tail_net_r=round(_percentile(sorted_net, tail_percentile), 4),
        median_drawdown_r=round(_percentile(sorted_dd, 50), 4),
        tail_drawdown_r=round(tail_dd, 4),
        score=round(score, 2),
    )
