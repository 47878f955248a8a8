"""Structural protocol for the robustness run store.

Define the ``RunStore`` interface that the run executor depends on. Both
``InMemoryRunStore`` and ``SqlRunStore`` satisfy it without inheritance.
"""

from typing import Any, Protocol, runtime_checkable

from quant_lab.apps.robustness.runs import ExecutionEvent, RobustnessReport, RunRecord


@runtime_checkable
class RunStore(Protocol):
    """Async persistence of run records, reports, and audit events.

    Every transition is a no-op returning the stored record unchanged once
    the run is terminal, and returns ``None`` for an unknown run.
    """

    async def create_run(self, params: dict[str, Any], run_id: str | None = None) -> RunRecord:
        """Create a ``PENDING`` run record."""
        ...

    async def get_run(self, run_id: str) -> RunRecord | None:
        """Return the run record, or ``None`` if unknown."""
        ...

    async def mark_running(self, run_id: str) -> tuple[RunRecord | None, bool]:
        """Move a ``PENDING`` run to ``RUNNING``; report whether this call did."""
        ...

    async def mark_completed(self, run_id: str, result: dict[str, Any]) -> RunRecord | None:
        """Complete a non-terminal run."""
        ...

    async def mark_failed(self, run_id: str, reason: str) -> RunRecord | None:
        """Fail a non-terminal run."""
        ...

    async def save_report(self, report: RobustnessReport) -> bool:
        """Store the run's report once; return whether it was written."""
        ...

    async def get_report(self, run_id: str) -> RobustnessReport | None:
        """Return the stored report, or ``None``."""
        ...

    async def record_execution_event(self, event: ExecutionEvent) -> None:
        """Append an audit event."""
        ...

    async def list_execution_events(self, segment: str | None = None) -> list[ExecutionEvent]:
        """Return audit events, optionally for one segment."""
        ...
