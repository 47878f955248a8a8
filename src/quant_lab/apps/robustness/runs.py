"""Run lifecycle records and the in-memory run store.

A robustness run is created ``PENDING`` by whoever submits it, moves to
``RUNNING`` when execution starts, and reaches ``COMPLETED`` or ``FAILED``
exactly once. Terminal records never change again: every transition
applied to a terminal record is a no-op that returns it unchanged.
Reports are written at most once per run and audit events are appended.
"""

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field, replace
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any

from quant_lab.apps.robustness.config import CheckName
from quant_lab.core.exceptions import ConfigError
from quant_lab.core.models import ONE, ZERO, ExecutionCosts, ExecutionProfile

logger = logging.getLogger(__name__)

_MS_PER_SECOND = 1000
EXECUTION_MODE = "paper"


class RunStatus(Enum):
    """Lifecycle state of a robustness run."""

    PENDING = "PENDING"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        """Return whether no further transition is allowed."""
        return self in (RunStatus.COMPLETED, RunStatus.FAILED)


def now_ms() -> int:
    """Return the current time as epoch milliseconds."""
    return int(time.time() * _MS_PER_SECOND)


def new_run_id() -> str:
    """Return a fresh run identifier such as ``rob_1704067200000_3f9a1c2e``."""
    return f"rob_{now_ms()}_{uuid.uuid4().hex[:8]}"


def _empty_payload() -> dict[str, Any]:
    return {}


@dataclass(frozen=True)
class RunRequest:
    """What a robustness run evaluates.

    Serialised into the run record's ``params`` so that any process with
    access to the store can execute the run.
    """

    strategy_id: str
    segment: str
    start_ts: int
    end_ts: int
    profile: ExecutionProfile = ExecutionProfile.BALANCED
    costs: ExecutionCosts = field(default_factory=ExecutionCosts)
    checks: tuple[CheckName, ...] | None = None

    def to_params(self) -> dict[str, Any]:
        """Return the JSON-compatible params stored on the run record."""
        params: dict[str, Any] = {
            "strategy_id": self.strategy_id,
            "segment": self.segment,
            "start_ts": self.start_ts,
            "end_ts": self.end_ts,
            "profile": self.profile.value,
            "slippage_multiplier": str(self.costs.slippage_multiplier),
            "brokerage_points": str(self.costs.brokerage_points),
        }
        if self.checks is not None:
            params["checks"] = [check.value for check in self.checks]
        return params

    @classmethod
    def from_params(cls, params: dict[str, Any]) -> "RunRequest":
        """Rebuild a request from stored run params.

        Raises:
            ConfigError: If a key is missing or has an invalid value.

        """
        try:
            checks = params.get("checks")
            return cls(
                strategy_id=str(params["strategy_id"]),
                segment=str(params["segment"]),
                start_ts=int(params["start_ts"]),
                end_ts=int(params["end_ts"]),
                profile=ExecutionProfile(params.get("profile", ExecutionProfile.BALANCED.value)),
                costs=ExecutionCosts(
                    slippage_multiplier=Decimal(str(params.get("slippage_multiplier", ONE))),
                    brokerage_points=Decimal(str(params.get("brokerage_points", ZERO))),
                ),
                checks=tuple(CheckName(c) for c in checks) if checks is not None else None,
            )
        except (KeyError, TypeError, ValueError, InvalidOperation) as exc:
            msg = f"Invalid run params: {exc}"
            raise ConfigError(msg) from exc


@dataclass(frozen=True)
class RunRecord:
    """Persisted state of one robustness run. Times are epoch milliseconds."""

    run_id: str
    status: RunStatus
    params: dict[str, Any]
    created_at: int
    started_at: int | None = None
    completed_at: int | None = None
    result: dict[str, Any] | None = None
    error: str | None = None


@dataclass(frozen=True)
class RobustnessReport:
    """Terminal report of a run, written at most once."""

    run_id: str
    segment: str
    status: RunStatus
    config: dict[str, Any]
    result: dict[str, Any] | None
    error: str | None = None
    created_at: int = field(default_factory=now_ms)


@dataclass(frozen=True)
class ExecutionEvent:
    """Audit trail entry for a run outcome."""

    segment: str
    mode: str
    status: str
    request_payload: dict[str, Any] = field(default_factory=_empty_payload)
    response_payload: dict[str, Any] = field(default_factory=_empty_payload)
    created_at: int = field(default_factory=now_ms)


class InMemoryRunStore:
    """Process-local run store guarded by an ``asyncio.Lock``.

    Suitable for tests and single-process CLI runs. ``SqlRunStore``
    implements the same interface on a database.
    """

    def __init__(self) -> None:
        """Initialize an empty store."""
        self._runs: dict[str, RunRecord] = {}
        self._reports: dict[str, RobustnessReport] = {}
        self._events: list[ExecutionEvent] = []
        self._lock = asyncio.Lock()

    async def create_run(self, params: dict[str, Any], run_id: str | None = None) -> RunRecord:
        """Create a ``PENDING`` run record.

        Raises:
            ValueError: If ``run_id`` is already taken.

        """
        async with self._lock:
            run_id = run_id or new_run_id()
            if run_id in self._runs:
                msg = f"Run {run_id} already exists"
                raise ValueError(msg)
            record = RunRecord(
                run_id=run_id, status=RunStatus.PENDING, params=dict(params), created_at=now_ms()
            )
            self._runs[run_id] = record
            return record

    async def get_run(self, run_id: str) -> RunRecord | None:
        """Return the run record, or ``None`` if unknown."""
        async with self._lock:
            return self._runs.get(run_id)

    async def mark_running(self, run_id: str) -> tuple[RunRecord | None, bool]:
        """Move a ``PENDING`` run to ``RUNNING``; other states are unchanged.

        Returns:
            The stored record and whether this call made the transition.

        """
        async with self._lock:
            record = self._runs.get(run_id)
            if record is None or record.status is not RunStatus.PENDING:
                return record, False
            record = replace(record, status=RunStatus.RUNNING, started_at=now_ms())
            self._runs[run_id] = record
            return record, True

    async def mark_completed(self, run_id: str, result: dict[str, Any]) -> RunRecord | None:
        """Complete a non-terminal run with ``result``."""
        return await self._finish(run_id, RunStatus.COMPLETED, result=result)

    async def mark_failed(self, run_id: str, reason: str) -> RunRecord | None:
        """Fail a non-terminal run with ``reason``."""
        return await self._finish(run_id, RunStatus.FAILED, error=reason)

    async def _finish(
        self,
        run_id: str,
        status: RunStatus,
        result: dict[str, Any] | None = None,
        error: str | None = None,
    ) -> RunRecord | None:
        async with self._lock:
            record = self._runs.get(run_id)
            if record is None or record.status.is_terminal:
                return record
            record = replace(
                record, status=status, completed_at=now_ms(), result=result, error=error
            )
            self._runs[run_id] = record
            logger.info("Run %s %s", run_id, status.value.lower())
            return record

    async def save_report(self, report: RobustnessReport) -> bool:
        """Store ``report`` unless one exists for the run; return whether it was written."""
        async with self._lock:
            if report.run_id in self._reports:
                return False
            self._reports[report.run_id] = report
            return True

    async def get_report(self, run_id: str) -> RobustnessReport | None:
        """Return the stored report for the run, or ``None``."""
        async with self._lock:
            return self._reports.get(run_id)

    async def record_execution_event(self, event: ExecutionEvent) -> None:
        """Append an audit event."""
        async with self._lock:
            self._events.append(event)

    async def list_execution_events(self, segment: str | None = None) -> list[ExecutionEvent]:
        """Return audit events in insertion order, optionally for one segment."""
        async with self._lock:
            return [e for e in self._events if segment is None or e.segment == segment]
