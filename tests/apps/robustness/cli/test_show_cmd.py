"""Tests for the robustness ``show`` CLI command."""

import asyncio
from pathlib import Path

from typer.testing import CliRunner

from quant_lab.apps.robustness.cli import app
from quant_lab.apps.robustness.repository import SqlRunStore

runner = CliRunner()

_RUN_ID = "rob_1704067200000_deadbeef"
_PARAMS = {"strategy_id": "vwap_delta_reversion", "segment": "BANKNIFTY"}


async def _seed_failed_run(db_url: str) -> None:
    store = SqlRunStore(db_url)
    await store.init_db()
    await store.create_run(_PARAMS, run_id=_RUN_ID)
    await store.mark_running(_RUN_ID)
    await store.mark_failed(_RUN_ID, "walk_forward: not enough candles")
    await store.close()


class TestShowCommand:
    """Tests for the show command."""

    def test_shows_failed_run(self, tmp_path: Path) -> None:
        """Print the status and error of a stored run."""
        db_url = f"sqlite+aiosqlite:///{tmp_path / 'runs.db'}"
        asyncio.run(_seed_failed_run(db_url))
        result = runner.invoke(app, ["show", _RUN_ID, "--db-url", db_url])
        assert result.exit_code == 0, result.output
        assert "Status:    FAILED" in result.output
        assert "Segment:   BANKNIFTY" in result.output
        assert "Error:     walk_forward: not enough candles" in result.output

    def test_unknown_run(self, tmp_path: Path) -> None:
        """An unknown run identifier exits with an error."""
        db_url = f"sqlite+aiosqlite:///{tmp_path / 'runs.db'}"
        result = runner.invoke(app, ["show", "rob_missing", "--db-url", db_url])
        assert result.exit_code == 1
        assert "No robustness run" in result.output
