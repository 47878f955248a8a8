"""Async SQL implementation of the robustness run store.

Wrap SQLAlchemy async engine and session management. Lifecycle
transitions run inside one transaction that re-reads the row, so a
terminal record is never overwritten even by a concurrent writer on the
same database. Starting a run is a conditional update, so exactly one
caller sharing the database moves it from ``PENDING`` to ``RUNNING``.
Swap SQLite for PostgreSQL by changing the connection string.
"""

import logging
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from quant_lab.apps.robustness.models import Base, ExecutionEventRow, ReportRow, RunRow
from quant_lab.apps.robustness.runs import (
    ExecutionEvent,
    RobustnessReport,
    RunRecord,
    RunStatus,
    new_run_id,
    now_ms,
)

logger = logging.getLogger(__name__)


def _to_record(row: RunRow) -> RunRecord:
    return RunRecord(
        run_id=row.run_id,
        status=RunStatus(row.status),
        params=dict(row.params),
        created_at=row.created_at,
        started_at=row.started_at,
        completed_at=row.completed_at,
        result=row.result,
        error=row.error,
    )


def _to_report(row: ReportRow) -> RobustnessReport:
    return RobustnessReport(
        run_id=row.run_id,
        segment=row.segment,
        status=RunStatus(row.status),
        config=dict(row.config),
        result=row.result,
        error=row.error,
        created_at=row.created_at,
    )


class SqlRunStore:
    """Async repository for run records, reports, and audit events.

    Args:
        db_url: SQLAlchemy async connection string
            (e.g. ``sqlite+aiosqlite:///quant_lab.db``).

    """

    def __init__(self, db_url: str) -> None:
        """Initialize the store with an async database engine.

        Args:
            db_url: SQLAlchemy async connection string.

        """
        self._engine: AsyncEngine = create_async_engine(db_url, echo=False)
        self._session_factory = async_sessionmaker(
            self._engine, class_=AsyncSession, expire_on_commit=False
        )

    async def init_db(self) -> None:
        """Create all tables if they do not already exist.

        Idempotent, safe to call on every startup.
        """
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Run store tables initialised")

    async def create_run(self, params: dict[str, Any], run_id: str | None = None) -> RunRecord:
        """Create a ``PENDING`` run record.

        Raises:
            ValueError: If ``run_id`` is already taken.

        """
        row = RunRow(
            run_id=run_id or new_run_id(),
            status=RunStatus.PENDING.value,
            params=dict(params),
            created_at=now_ms(),
        )
        try:
            async with self._session_factory() as session, session.begin():
                session.add(row)
        except IntegrityError as exc:
            msg = f"Run {row.run_id} already exists"
            raise ValueError(msg) from exc
        return _to_record(row)

    async def get_run(self, run_id: str) -> RunRecord | None:
        """Return the run record, or ``None`` if unknown."""
        async with self._session_factory() as session:
            row = await session.get(RunRow, run_id)
            return _to_record(row) if row is not None else None

    async def mark_running(self, run_id: str) -> tuple[RunRecord | None, bool]:
        """Move a ``PENDING`` run to ``RUNNING``; other states are unchanged.

        Returns:
            The stored record and whether this call made the transition.

        """
        claim = (
            update(RunRow)
            .where(RunRow.run_id == run_id, RunRow.status == RunStatus.PENDING.value)
            .values(status=RunStatus.RUNNING.value, started_at=now_ms())
        )
        async with self._session_factory() as session, session.begin():
            outcome = await session.execute(claim)
            row = await session.get(RunRow, run_id)
            if row is None:
                return None, False
            return _to_record(row), outcome.rowcount == 1

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
        async with self._session_factory() as session, session.begin():
            row = await session.get(RunRow, run_id, with_for_update=True)
            if row is None:
                return None
            if not RunStatus(row.status).is_terminal:
                row.status = status.value
                row.completed_at = now_ms()
                row.result = result
                row.error = error
                logger.info("Run %s %s", run_id, status.value.lower())
            return _to_record(row)

    async def save_report(self, report: RobustnessReport) -> bool:
        """Store ``report`` unless one exists for the run; return whether it was written."""
        async with self._session_factory() as session, session.begin():
            if await session.get(ReportRow, report.run_id) is not None:
                return False
            session.add(
                ReportRow(
                    run_id=report.run_id,
                    segment=report.segment,
                    status=report.status.value,
                    config=report.config,
                    result=report.result,
                    error=report.error,
                    created_at=report.created_at,
                )
            )
        return True

    async def get_report(self, run_id: str) -> RobustnessReport | None:
        """Return the stored report for the run, or ``None``."""
        async with self._session_factory() as session:
            row = await session.get(ReportRow, run_id)
            return _to_report(row) if row is not None else None

    async def record_execution_event(self, event: ExecutionEvent) -> None:
        """Append an audit event."""
        async with self._session_factory() as session, session.begin():
            session.add(
                ExecutionEventRow(
                    segment=event.segment,
                    mode=event.mode,
                    status=event.status,
                    request_payload=event.request_payload,
                    response_payload=event.response_payload,
                    created_at=event.created_at,
                )
            )
        logger.debug("Recorded execution event %s for %s", event.status, event.segment)

    async def list_execution_events(self, segment: str | None = None) -> list[ExecutionEvent]:
        """Return audit events in insertion order, optionally for one segment."""
        stmt = select(ExecutionEventRow).order_by(ExecutionEventRow.id)
        if segment is not None:
            stmt = stmt.where(ExecutionEventRow.segment == segment)
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return [
                ExecutionEvent(
                    segment=row.segment,
                    mode=row.mode,
                    status=row.status,
                    request_payload=dict(row.request_payload),
                    response_payload=dict(row.response_payload),
                    created_at=row.created_at,
                )
                for row in result.scalars().all()
            ]

    async def close(self) -> None:
        """Dispose the async engine and release all connections."""
        await self._engine.dispose()
        logger.info("Run store engine disposed")
