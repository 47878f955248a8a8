"""Tests for the robustness ``run`` CLI command."""

from collections.abc import Callable
from pathlib import Path

import pytest
from typer.testing import CliRunner

from quant_lab.apps.robustness.cli import app
from quant_lab.core.models import Candle

runner = CliRunner()

_STRATEGY = "channel_adx_breakout"
_SESSION = [True, False, True, True, False, True]

CandleBuilder = Callable[..., list[Candle]]


@pytest.fixture
def candle_csv(tmp_path: Path, breakout_candles: CandleBuilder) -> tuple[Path, int, int]:
    """Write a breakout session to CSV and return its path and time range."""
    candles = breakout_candles(_SESSION)
    lines = ["segment,timestamp,open,high,low,close,volume"]
    lines.extend(
        f"NIFTY,{c.timestamp},{c.open},{c.high},{c.low},{c.close},{c.volume}" for c in candles
    )
    path = tmp_path / "candles.csv"
    path.write_text("\n".join(lines) + "\n")
    return path, candles[0].timestamp, candles[-1].timestamp


def _run_args(csv: tuple[Path, int, int], *extra: str) -> list[str]:
    path, start, end = csv
    return [
        "run",
        "--strategy",
        _STRATEGY,
        "--candles",
        str(path),
        "--start",
        str(start),
        "--end",
        str(end),
        "--trials",
        "50",
        "--folds",
        "2",
        *extra,
    ]


class TestRunCommand:
    """Tests for the run command."""

    def test_prints_graded_result(self, candle_csv: tuple[Path, int, int]) -> None:
        """Print the score breakdown and grade of a completed run."""
        result = runner.invoke(app, _run_args(candle_csv))
        assert result.exit_code == 0, result.output
        assert f"Strategy:        {_STRATEGY}" in result.output
        assert "Score breakdown" in result.output
        assert "walk_forward" in result.output
        assert "Grade" in result.output

    def test_selected_checks(self, candle_csv: tuple[Path, int, int]) -> None:
        """Only the requested checks appear in the breakdown."""
        result = runner.invoke(app, _run_args(candle_csv, "--checks", "monte_carlo"))
        assert result.exit_code == 0, result.output
        assert "monte_carlo" in result.output
        assert "walk_forward" not in result.output

    def test_unknown_check(self, candle_csv: tuple[Path, int, int]) -> None:
        """Reject unknown check names."""
        result = runner.invoke(app, _run_args(candle_csv, "--checks", "astrology"))
        assert result.exit_code != 0

    def test_unknown_strategy(self, candle_csv: tuple[Path, int, int]) -> None:
        """Reject unregistered strategies."""
        args = _run_args(candle_csv)
        args[args.index(_STRATEGY)] = "nope"
        result = runner.invoke(app, args)
        assert result.exit_code != 0

    def test_invalid_trials(self, candle_csv: tuple[Path, int, int]) -> None:
        """Reject a non-positive trial count."""
        args = _run_args(candle_csv)
        args[args.index("--trials") + 1] = "0"
        result = runner.invoke(app, args)
        assert result.exit_code != 0

    def test_malformed_data_fails_run(self, tmp_path: Path) -> None:
        """A run whose data cannot be read is reported as failed."""
        path = tmp_path / "bad.csv"
        path.write_text("segment,timestamp,open,high,low,close,volume\nNIFTY,1,x,1,1,1,1\n")
        result = runner.invoke(app, _run_args((path, 0, 100)))
        assert result.exit_code == 1
        assert "FAILED" in result.output

    def test_saves_charts(self, tmp_path: Path, candle_csv: tuple[Path, int, int]) -> None:
        """Write the report charts to an HTML file."""
        output = tmp_path / "report.html"
        result = runner.invoke(app, _run_args(candle_csv, "--chart-output", str(output)))
        assert result.exit_code == 0, result.output
        assert output.exists()
        assert "Charts saved" in result.output

    def test_persists_run(self, tmp_path: Path, candle_csv: tuple[Path, int, int]) -> None:
        """A persisted run can be shown afterwards."""
        db_url = f"sqlite+aiosqlite:///{tmp_path / 'runs.db'}"
        result = runner.invoke(app, _run_args(candle_csv, "--db-url", db_url))
        assert result.exit_code == 0, result.output
        run_line = next(line for line in result.output.splitlines() if line.startswith("Run:"))
        run_id = run_line.split()[-1]

        shown = runner.invoke(app, ["show", run_id, "--db-url", db_url])
        assert shown.exit_code == 0, shown.output
        assert "Status:    COMPLETED" in shown.output
        assert f"Strategy:  {_STRATEGY}" in shown.output
