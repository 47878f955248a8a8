"""Fuse robustness sub-scores into a composite score and letter grade."""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass

from quant_lab.apps.robustness.config import CheckName, ScoreWeights
from quant_lab.core.exceptions import ConfigError

FAILING_GRADE = "F"


@dataclass(frozen=True)
class CheckScore:
    """One check's sub-score, its effective weight, and its contribution."""

    check: CheckName
    score: float
    weight: float
    contribution: float


@dataclass(frozen=True)
class ScoreBreakdown:
    """Per-check contributions and the weighted total (0 to 100)."""

    components: tuple[CheckScore, ...]
    total: float


def fuse_scores(scores: Mapping[CheckName, float], weights: ScoreWeights) -> ScoreBreakdown:
    """Combine sub-scores with the configured weights.

    The weights of the checks present in ``scores`` are renormalised to
    sum to 1, so disabling a check does not cap the attainable total.
    Components are listed in check declaration order, which keeps the
    total independent of the order in which the checks finished.

    Args:
        scores: Sub-score (0 to 100) of every check that ran.
        weights: Policy weights of all checks.

    Returns:
        The ``ScoreBreakdown``; the total is rounded to 2 decimal places.

    Raises:
        ConfigError: If no check ran or the enabled checks carry no weight.

    """
    present = [check for check in CheckName if check in scores]
    weight_sum = sum(weights.weight_for(check) for check in present)
    if not present or weight_sum <= 0:
        msg = f"cannot fuse scores without weighted checks, got {[c.value for c in present]}"
        raise ConfigError(msg)
    components: list[CheckScore] = []
    total = 0.0
    for check in present:
        weight = weights.weight_for(check) / weight_sum
        score = max(0.0, min(100.0, scores[check]))
        total += score * weight
        components.append(
            CheckScore(
                check=check,
                score=round(score, 2),
                weight=round(weight, 6),
                contribution=round(score * weight, 4),
            )
        )
    return ScoreBreakdown(components=tuple(components), total=round(max(0.0, min(100.0, total)), 2))


def grade_for(total: float, thresholds: Sequence[tuple[str, float]]) -> str:
    """Return the first grade whose minimum ``total`` reaches, else ``F``."""
    for grade, minimum in thresholds:
        if total >= minimum:
            return grade
    return FAILING_GRADE
