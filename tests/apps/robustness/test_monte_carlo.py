"""Tests for the Monte Carlo bootstrap check."""

from decimal import Decimal

import pytest

from quant_lab.apps.robustness.monte_carlo import monte_carlo_score, run_monte_carlo

_TRIALS = 300
_SEED = 11
_MIXED = [Decimal(v) for v in ("2", "-1", "1.5", "-1", "2", "0.2", "-1", "1.8")]
_WINNERS = [Decimal(v) for v in ("1", "2", "1.5", "1.2", "1.8", "1", "2", "1.4", "1.6", "1.1")]
_LOSERS = [Decimal(-1)] * 10


class TestMonteCarloScore:
    """Tests for monte_carlo_score."""

    def test_perfect(self) -> None:
        """Certain profit with no drawdown and no dispersion scores 100."""
        assert monte_carlo_score(1.0, 0.0, 5.0, 0.0, 10.0) == pytest.approx(100.0)

    def test_worst(self) -> None:
        """Certain loss beyond the drawdown budget scores zero."""
        assert monte_carlo_score(0.0, 20.0, 0.0, 5.0, 10.0) == 0.0

    def test_tail_term_scales_with_budget(self) -> None:
        """Half the drawdown budget keeps half the tail term."""
        assert monte_carlo_score(0.0, 5.0, 0.0, 5.0, 10.0) == pytest.approx(15.0)


class TestRunMonteCarlo:
    """Tests for run_monte_carlo."""

    def test_deterministic_for_seed(self) -> None:
        """The same trades and seed reproduce the same distributions."""
        first = run_monte_carlo(_MIXED, trials=_TRIALS, seed=_SEED)
        second = run_monte_carlo(_MIXED, trials=_TRIALS, seed=_SEED)
        assert first == second
        assert first.trials == _TRIALS
        assert first.seed == _SEED
        assert first.trades == len(_MIXED)

    def test_percentiles_are_ordered(self) -> None:
        """The low tail of net R sits below the median, drawdowns the other way."""
        result = run_monte_carlo(_MIXED, trials=_TRIALS, seed=_SEED)
        assert result.tail_net_r <= result.median_net_r
        assert result.median_drawdown_r <= result.tail_drawdown_r
        assert 0.0 <= result.probability_positive <= 1.0
        assert 0.0 <= result.score <= 100.0  # noqa: PLR2004

    def test_consistent_winners_score_high(self) -> None:
        """Resampling only winners keeps every trial positive."""
        result = run_monte_carlo(_WINNERS, trials=_TRIALS, seed=_SEED)
        assert result.probability_positive == 1.0
        assert result.tail_drawdown_r == 0.0
        assert result.score >= 80  # noqa: PLR2004

    def test_consistent_losers_score_low(self) -> None:
        """Resampling only losers never finishes positive."""
        result = run_monte_carlo(_LOSERS, trials=_TRIALS, seed=_SEED)
        assert result.probability_positive == 0.0
        assert result.mean_net_r == pytest.approx(-10.0)
        assert result.score < 50  # noqa: PLR2004

    @pytest.mark.parametrize("r_values", [[], [Decimal(2)]])
    def test_too_few_trades(self, r_values: list[Decimal]) -> None:
        """Fewer than two trades skip the bootstrap and score zero."""
        result = run_monte_carlo(r_values, trials=_TRIALS, seed=_SEED)
        assert result.trials == 0
        assert result.score == 0.0
        assert result.trades == len(r_values)
