"""Robustness policy configuration.

Bundle the enabled checks, their parameters, the score weights, and the
grade thresholds into one immutable, versioned ``RobustnessConfig``. The
defaults are policy ``robustness-v1``; ``from_settings`` reads overrides
from the ``robustness`` section of the YAML settings, plus the
exposure cap and scratch band shared with the ``strategy_lab`` section.
"""

from dataclasses import dataclass, field, replace
from decimal import Decimal
from enum import Enum
from typing import Any

from quant_lab.apps.strategy_lab.engine import DEFAULT_SCRATCH_BAND_R
from quant_lab.apps.strategy_lab.exposure import DEFAULT_MAX_OPEN_TRADES
from quant_lab.core.config import ConfigLoader, get_config
from quant_lab.core.exceptions import ConfigError

POLICY_VERSION = "robustness-v1"
_WEIGHT_TOLERANCE = 1e-9
_MAX_TAIL_PERCENTILE = 50
_MIN_REGIME_LOOKBACK = 2


class CheckName(Enum):
    """Identifier of a robustness check."""

    WALK_FORWARD = "walk_forward"
    MONTE_CARLO = "monte_carlo"
    SLIPPAGE_STRESS = "slippage_stress"
    BROKERAGE_STRESS = "brokerage_stress"
    REGIME_STABILITY = "regime_stability"


ALL_CHECKS = tuple(CheckName)


@dataclass(frozen=True)
class ScoreWeights:
    """Weight of each check in the composite score.

    Raises:
        ConfigError: From ``__post_init__`` when a weight is negative or
            the weights do not sum to 1.

    """

    walk_forward: float = 0.25
    monte_carlo: float = 0.25
    slippage_stress: float = 0.15
    brokerage_stress: float = 0.10
    regime_stability: float = 0.25

    def __post_init__(self) -> None:
        """Validate the weights form a distribution."""
        values = [self.weight_for(check) for check in ALL_CHECKS]
        if any(v < 0 for v in values):
            msg = f"score weights must not be negative, got {values}"
            raise ConfigError(msg)
        if abs(sum(values) - 1.0) > _WEIGHT_TOLERANCE:
            msg = f"score weights must sum to 1, got {sum(values)}"
            raise ConfigError(msg)

    def weight_for(self, check: CheckName) -> float:
        """Return the configured weight of ``check``."""
        return float(getattr(self, check.value))


def _default_grades() -> tuple[tuple[str, float], ...]:
    return (("A", 80.0), ("B", 65.0), ("C", 50.0), ("D", 35.0))


@dataclass(frozen=True)
class RobustnessConfig:
    """Immutable configuration of one robustness suite run.

    Attributes:
        policy_version: Version label persisted with every report.
        checks: Enabled checks, in reporting order.
        walk_forward_folds: Number of in-sample/out-of-sample fold pairs.
        monte_carlo_trials: Bootstrap trials over the trade R sequence.
        seed: Seed for the Monte Carlo generator.
        tail_percentile: Percentile used for tail drawdown and tail net R.
        drawdown_budget_r: Tail drawdown (in R) that scores zero.
        slippage_stress_multiplier: Factor applied to the slippage penalty.
        brokerage_stress_points: Extra flat charge per trade, in points.
        regime_lookback_bars: Realized volatility lookback for regimes.
        max_open_trades: Exposure cap for every simulation in the suite.
        scratch_band_r: Half-width of the R band classified as SCRATCH.
        weights: Weight of each check in the composite score.
        grade_thresholds: ``(grade, minimum total)`` pairs, best first;
            totals below the last threshold grade ``F``.

    """

    policy_version: str = POLICY_VERSION
    checks: tuple[CheckName, ...] = ALL_CHECKS
    walk_forward_folds: int = 4
    monte_carlo_trials: int = 1000
    seed: int = 42
    tail_percentile: int = 5
    drawdown_budget_r: float = 10.0
    slippage_stress_multiplier: Decimal = Decimal("2.5")
    brokerage_stress_points: Decimal = Decimal(2)
    regime_lookback_bars: int = 20
    max_open_trades: int = DEFAULT_MAX_OPEN_TRADES
    scratch_band_r: Decimal = DEFAULT_SCRATCH_BAND_R
    weights: ScoreWeights = field(default_factory=ScoreWeights)
    grade_thresholds: tuple[tuple[str, float], ...] = field(default_factory=_default_grades)

    def __post_init__(self) -> None:  # noqa: C901
        """Validate the suite parameters."""
        if not self.checks:
            msg = "at least one robustness check must be enabled"
            raise ConfigError(msg)
        if len(set(self.checks)) != len(self.checks):
            msg = f"robustness checks must be unique, got {[c.value for c in self.checks]}"
            raise ConfigError(msg)
        if self.walk_forward_folds < 1:
            msg = f"walk_forward_folds must be at least 1, got {self.walk_forward_folds}"
            raise ConfigError(msg)
        if self.monte_carlo_trials < 1:
            msg = f"monte_carlo_trials must be at least 1, got {self.monte_carlo_trials}"
            raise ConfigError(msg)
        if not 0 < self.tail_percentile < _MAX_TAIL_PERCENTILE:
            msg = f"tail_percentile must be between 0 and 50, got {self.tail_percentile}"
            raise ConfigError(msg)
        if self.drawdown_budget_r <= 0:
            msg = f"drawdown_budget_r must be positive, got {self.drawdown_budget_r}"
            raise ConfigError(msg)
        if self.slippage_stress_multiplier < 1:
            msg = (
                "slippage_stress_multiplier must be at least 1, "
                f"got {self.slippage_stress_multiplier}"
            )
            raise ConfigError(msg)
        if self.brokerage_stress_points < 0:
            msg = (
                "brokerage_stress_points must not be negative, "
                f"got {self.brokerage_stress_points}"
            )
            raise ConfigError(msg)
        if self.regime_lookback_bars < _MIN_REGIME_LOOKBACK:
            msg = f"regime_lookback_bars must be at least 2, got {self.regime_lookback_bars}"
            raise ConfigError(msg)
        if self.max_open_trades < 1:
            msg = f"max_open_trades must be at least 1, got {self.max_open_trades}"
            raise ConfigError(msg)
        if self.scratch_band_r < 0:
            msg = f"scratch_band_r must not be negative, got {self.scratch_band_r}"
            raise ConfigError(msg)
        minimums = [minimum for _, minimum in self.grade_thresholds]
        if not minimums or minimums != sorted(minimums, reverse=True):
            msg = f"grade_thresholds must be non-empty and descending, got {self.grade_thresholds}"
            raise ConfigError(msg)

    @classmethod
    def from_settings(cls, loader: ConfigLoader | None = None) -> "RobustnessConfig":
        """Build the configuration from the ``robustness`` settings section.

        Args:
            loader: Settings loader; the process-wide one when omitted.

        Returns:
            A validated ``RobustnessConfig``. Missing keys keep their defaults.

        Raises:
            ConfigError: If a key has an invalid value.

        """
        loader = loader or get_config()
        section = loader.get_section("robustness")
        defaults = cls()
        try:
            names = section.get("checks", [c.value for c in ALL_CHECKS])
            checks = tuple(CheckName(str(name)) for name in names)
            weights_section: dict[str, Any] = loader.get_section("robustness.weights")
            weights = ScoreWeights(
                **{
                    check.value: float(weights_section[check.value])
                    for check in ALL_CHECKS
                    if check.value in weights_section
                }
            )
            grades_section: dict[str, Any] = loader.get_section("robustness.grade_thresholds")
            grades = (
                tuple(
                    sorted(
                        ((str(g), float(v)) for g, v in grades_section.items()),
                        key=lambda item: item[1],
                        reverse=True,
                    )
                )
                if grades_section
                else defaults.grade_thresholds
            )
            return cls(
                policy_version=str(section.get("policy_version", defaults.policy_version)),
                checks=checks,
                walk_forward_folds=int(
                    section.get("walk_forward_folds", defaults.walk_forward_folds)
                ),
                monte_carlo_trials=int(
                    section.get("monte_carlo_trials", defaults.monte_carlo_trials)
                ),
                seed=int(section.get("seed", defaults.seed)),
                tail_percentile=int(section.get("tail_percentile", defaults.tail_percentile)),
                drawdown_budget_r=float(
                    section.get("drawdown_budget_r", defaults.drawdown_budget_r)
                ),
                slippage_stress_multiplier=loader.get_decimal(
                    "robustness.slippage_stress_multiplier", defaults.slippage_stress_multiplier
                ),
                brokerage_stress_points=loader.get_decimal(
                    "robustness.brokerage_stress_points", defaults.brokerage_stress_points
                ),
                regime_lookback_bars=int(
                    section.get("regime_lookback_bars", defaults.regime_lookback_bars)
                ),
                max_open_trades=int(
                    loader.get("strategy_lab.max_open_trades", defaults.max_open_trades)
                ),
                scratch_band_r=loader.get_decimal(
                    "strategy_lab.scratch_band_r", defaults.scratch_band_r
                ),
                weights=weights,
                grade_thresholds=grades,
            )
        except (TypeError, ValueError) as exc:
            msg = f"Invalid robustness settings: {exc}"
            raise ConfigError(msg) from exc

    def with_checks(self, checks: tuple[CheckName, ...]) -> "RobustnessConfig":
        """Return a copy of this configuration running only ``checks``."""
        return replace(self, checks=checks)
