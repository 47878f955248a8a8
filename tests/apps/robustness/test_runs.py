"""Tests for run records and the in-memory run store."""

import asyncio
from decimal import Decimal

import pytest

from quant_lab.apps.robustness.config import CheckName
from quant_lab.apps.robustness.protocols import RunStore
from quant_lab.apps.robustness.runs import (
    ExecutionEvent,
    InMemoryRunStore,
    RobustnessReport,
    RunRequest,
    RunStatus,
    new_run_id,
)
from quant_lab.core.exceptions import ConfigError
from quant_lab.core.models import ExecutionCosts, ExecutionProfile

_PARAMS = {"strategy_id": "channel_adx_breakout", "segment": "NIFTY"}
_RESULT = {"grade": "B"}
_RUN_ID = "rob_test_1"


def _report(status: RunStatus = RunStatus.COMPLETED, segment: str = "NIFTY") -> RobustnessReport:
    return RobustnessReport(
        run_id=_RUN_ID, segment=segment, status=status, config={}, result=_RESULT
    )


class TestRunStatus:
    """Tests for RunStatus."""

    @pytest.mark.parametrize(
        ("status", "terminal"),
        [
            (RunStatus.PENDING, False),
            (RunStatus.RUNNING, False),
            (RunStatus.COMPLETED, True),
            (RunStatus.FAILED, True),
        ],
    )
    def test_is_terminal(self, status: RunStatus, terminal: bool) -> None:  # noqa: FBT001
        """Only completed and failed runs are terminal."""
        assert status.is_terminal is terminal


class TestRunRequest:
    """Tests for RunRequest params serialisation."""

    def test_params_roundtrip(self) -> None:
        """A request survives storage in run params."""
        request = RunRequest(
            strategy_id="channel_adx_breakout",
            segment="BANKNIFTY",
            start_ts=1_704_067_200,
            end_ts=1_704_153_600,
            profile=ExecutionProfile.STRICT,
            costs=ExecutionCosts(
                slippage_multiplier=Decimal("1.5"), brokerage_points=Decimal("0.5")
            ),
            checks=(CheckName.MONTE_CARLO,),
        )
        params = request.to_params()
        assert params["profile"] == "strict"
        assert params["checks"] == ["monte_carlo"]
        assert RunRequest.from_params(params) == request

    def test_defaults_when_optional_keys_missing(self) -> None:
        """Profile, costs, and checks fall back to defaults."""
        request = RunRequest.from_params(
            {"strategy_id": "x", "segment": "NIFTY", "start_ts": 1, "end_ts": 2}
        )
        assert request.profile is ExecutionProfile.BALANCED
        assert request.costs == ExecutionCosts()
        assert request.checks is None

    @pytest.mark.parametrize(
        "params",
        [
            {"segment": "NIFTY", "start_ts": 1, "end_ts": 2},
            {"strategy_id": "x", "segment": "NIFTY", "start_ts": "soon", "end_ts": 2},
            {"strategy_id": "x", "segment": "NIFTY", "start_ts": 1, "end_ts": 2, "profile": "yolo"},
            {"strategy_id": "x", "segment": "NIFTY", "start_ts": 1, "end_ts": 2, "checks": ["x"]},
            {
                "strategy_id": "x",
                "segment": "NIFTY",
                "start_ts": 1,
                "end_ts": 2,
                "brokerage_points": "lots",
            },
        ],
    )
    def test_invalid_params(self, params: dict[str, object]) -> None:
        """Missing or malformed params are configuration errors."""
        with pytest.raises(ConfigError, match="Invalid run params"):
            RunRequest.from_params(params)


class TestNewRunId:
    """Tests for new_run_id."""

    def test_unique_and_prefixed(self) -> None:
        """Run identifiers are prefixed and do not repeat."""
        ids = {new_run_id() for _ in range(50)}
        assert len(ids) == 50  # noqa: PLR2004
        assert all(run_id.startswith("rob_") for run_id in ids)


class TestInMemoryRunStore:
    """Tests for InMemoryRunStore lifecycle transitions."""

    def test_satisfies_protocol(self) -> None:
        """The in-memory store implements RunStore."""
        assert isinstance(InMemoryRunStore(), RunStore)

    @pytest.mark.asyncio
    async def test_create_and_get(self) -> None:
        """A created run is pending and can be read back."""
        store = InMemoryRunStore()
        record = await store.create_run(_PARAMS, run_id=_RUN_ID)
        assert record.status is RunStatus.PENDING
        assert record.started_at is None
        assert await store.get_run(_RUN_ID) == record
        assert await store.get_run("missing") is None

    @pytest.mark.asyncio
    async def test_duplicate_run_id(self) -> None:
        """Run identifiers are unique."""
        store = InMemoryRunStore()
        await store.create_run(_PARAMS, run_id=_RUN_ID)
        with pytest.raises(ValueError, match="already exists"):
            await store.create_run(_PARAMS, run_id=_RUN_ID)

    @pytest.mark.asyncio
    async def test_generates_run_id(self) -> None:
        """Omitting the identifier generates one."""
        record = await InMemoryRunStore().create_run(_PARAMS)
        assert record.run_id.startswith("rob_")

    @pytest.mark.asyncio
    async def test_full_lifecycle(self) -> None:
        """Pending runs move to running and then complete."""
        store = InMemoryRunStore()
        await store.create_run(_PARAMS, run_id=_RUN_ID)
        running, started = await store.mark_running(_RUN_ID)
        assert started is True
        assert running is not None
        assert running.status is RunStatus.RUNNING
        assert running.started_at is not None
        done = await store.mark_completed(_RUN_ID, _RESULT)
        assert done is not None
        assert done.status is RunStatus.COMPLETED
        assert done.result == _RESULT
        assert done.completed_at is not None

    @pytest.mark.asyncio
    async def test_terminal_record_never_changes(self) -> None:
        """Transitions on a terminal run return it unchanged."""
        store = InMemoryRunStore()
        await store.create_run(_PARAMS, run_id=_RUN_ID)
        failed = await store.mark_failed(_RUN_ID, "boom")
        assert failed is not None
        assert failed.status is RunStatus.FAILED
        assert await store.mark_completed(_RUN_ID, _RESULT) == failed
        assert await store.mark_failed(_RUN_ID, "again") == failed
        assert await store.mark_running(_RUN_ID) == (failed, False)

    @pytest.mark.asyncio
    async def test_mark_running_is_idempotent(self) -> None:
        """A running run stays as it is, and only the first call starts it."""
        store = InMemoryRunStore()
        await store.create_run(_PARAMS, run_id=_RUN_ID)
        first, first_started = await store.mark_running(_RUN_ID)
        assert first_started is True
        assert await store.mark_running(_RUN_ID) == (first, False)

    @pytest.mark.asyncio
    async def test_concurrent_starts_have_one_winner(self) -> None:
        """Simultaneous starts of one pending run report a single owner."""
        store = InMemoryRunStore()
        await store.create_run(_PARAMS, run_id=_RUN_ID)
        outcomes = await asyncio.gather(*(store.mark_running(_RUN_ID) for _ in range(3)))
        assert [started for _, started in outcomes].count(True) == 1

    @pytest.mark.asyncio
    async def test_unknown_run_transitions(self) -> None:
        """Transitions on an unknown run return None."""
        store = InMemoryRunStore()
        assert await store.mark_running("missing") == (None, False)
        assert await store.mark_completed("missing", _RESULT) is None
        assert await store.mark_failed("missing", "boom") is None

    @pytest.mark.asyncio
    async def test_first_report_wins(self) -> None:
        """Only the first report of a run is stored."""
        store = InMemoryRunStore()
        assert await store.save_report(_report()) is True
        assert await store.save_report(_report(RunStatus.FAILED)) is False
        stored = await store.get_report(_RUN_ID)
        assert stored is not None
        assert stored.status is RunStatus.COMPLETED
        assert await store.get_report("missing") is None

    @pytest.mark.asyncio
    async def test_execution_events_by_segment(self) -> None:
        """Audit events are listed in order and filtered by segment."""
        store = InMemoryRunStore()
        await store.record_execution_event(ExecutionEvent("NIFTY", "paper", "A"))
        await store.record_execution_event(ExecutionEvent("BANKNIFTY", "paper", "B"))
        await store.record_execution_event(ExecutionEvent("NIFTY", "paper", "C"))
        assert [e.status for e in await store.list_execution_events()] == ["A", "B", "C"]
        nifty = await store.list_execution_events("NIFTY")
        assert [e.status for e in nifty] == ["A", "C"]
