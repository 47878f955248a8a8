"""Run executor for robustness suites.

Drive a run record through its lifecycle: look it up, return it unchanged
if it is already terminal, move it to ``RUNNING``, run the suite, and
persist the terminal record, the report, and an audit event. Concurrent
``execute`` calls for the same run share one task, and a caller that
loses the ``PENDING`` to ``RUNNING`` move to another executor on the same
store waits for that owner instead of running the suite again. A run
cancelled (or terminated elsewhere) while its suite is in flight never
receives a result or report from that task.
"""

import asyncio
import logging
import threading
from typing import Any

from quant_lab.apps.robustness.config import RobustnessConfig
from quant_lab.apps.robustness.protocols import RunStore
from quant_lab.apps.robustness.runs import (
    EXECUTION_MODE,
    ExecutionEvent,
    RobustnessReport,
    RunRecord,
    RunRequest,
    RunStatus,
)
from quant_lab.apps.robustness.suite import RobustnessResult, run_robustness_for_segment
from quant_lab.apps.strategy_lab.rules import get_rule
from quant_lab.core.exceptions import ConfigError, RunCancelledError
from quant_lab.core.protocols import MarketDataProvider
from quant_lab.core.serialization import to_jsonable

logger = logging.getLogger(__name__)

COMPLETED_EVENT = "ROBUSTNESS_COMPLETED"
FAILED_EVENT = "ROBUSTNESS_FAILED"
DEFAULT_CANCEL_REASON = "Run cancelled"
DEFAULT_POLL_INTERVAL = 0.5
DEFAULT_OWNER_WAIT = 600.0


class RunExecutor:
    """Execute robustness runs against an injected store and data provider.

    Args:
        store: Run, report, and audit persistence.
        provider: Market data source for every run.
        config: Suite policy; runs may narrow its checks via their request.
        poll_interval: Seconds between store reads while another caller
            owns a run.
        owner_wait: Longest wait, in seconds, for another caller to
            finish a run before returning its current record.

    """

    def __init__(
        self,
        store: RunStore,
        provider: MarketDataProvider,
        config: RobustnessConfig | None = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        owner_wait: float = DEFAULT_OWNER_WAIT,
    ) -> None:
        """Initialize the executor."""
        self._store = store
        self._provider = provider
        self._config = config or RobustnessConfig()
        self._poll_interval = poll_interval
        self._owner_wait = owner_wait
        self._in_flight: dict[str, asyncio.Task[RunRecord | None]] = {}
        self._cancel_events: dict[str, threading.Event] = {}
        self._results: dict[str, RobustnessResult] = {}

    async def submit(self, request: RunRequest) -> RunRecord:
        """Create a ``PENDING`` run for ``request``."""
        record = await self._store.create_run(request.to_params())
        logger.info("Submitted robustness run %s for %s", record.run_id, request.strategy_id)
        return record

    async def execute(self, run_id: str) -> RunRecord | None:
        """Execute the run and return its final record.

        Returns ``None`` for an unknown run and the stored record unchanged
        for a terminal one. A call made while the same run is in flight
        waits for and returns the original execution's outcome.
        """
        task = self._in_flight.get(run_id)
        if task is None:
            task = asyncio.create_task(self._execute(run_id))
            self._in_flight[run_id] = task
            task.add_done_callback(lambda _: self._in_flight.pop(run_id, None))
        return await asyncio.shield(task)

    def result_for(self, run_id: str) -> RobustnessResult | None:
        """Return the in-process result of a run this executor completed."""
        return self._results.get(run_id)

    async def cancel(self, run_id: str, reason: str = DEFAULT_CANCEL_REASON) -> RunRecord | None:
        """Mark the run as no longer needed.

        Signal the in-flight suite, if any, to stop, and fail the record with
        ``reason``. The cancelling call writes the failed report and audit
        event. A terminal record is returned unchanged.
        """
        event = self._cancel_events.get(run_id)
        if event is not None:
            event.set()
        before = await self._store.get_run(run_id)
        record = await self._store.mark_failed(run_id, reason)
        if before is None or before.status.is_terminal or record is None:
            return record
        logger.info("Cancelled robustness run %s: %s", run_id, reason)
        if record.status is RunStatus.FAILED and record.error == reason:
            try:
                config = self._config_for(RunRequest.from_params(record.params))
            except ConfigError:
                config = self._config
            await self._write_failure(
                run_id, str(record.params.get("segment", "")), record.params, config, reason
            )
        return record

    def _config_for(self, request: RunRequest) -> RobustnessConfig:
        return self._config.with_checks(request.checks) if request.checks else self._config

    async def _execute(self, run_id: str) -> RunRecord | None:
        record = await self._store.get_run(run_id)
        if record is None or record.status.is_terminal:
            return record
        record, started = await self._store.mark_running(run_id)
        if record is None or record.status.is_terminal:
            return record
        if not started:
            logger.info("Robustness run %s is owned by another caller", run_id)
            return await self._await_owner(run_id)
        logger.info("Robustness run %s started", run_id)

        cancel_event = threading.Event()
        self._cancel_events[run_id] = cancel_event
        segment = str(record.params.get("segment", ""))
        config = self._config
        try:
            request = RunRequest.from_params(record.params)
            config = self._config_for(request)
            result = await run_robustness_for_segment(
                self._provider,
                get_rule(request.strategy_id),
                request.segment,
                request.start_ts,
                request.end_ts,
                config=config,
                profile=request.profile,
                costs=request.costs,
                cancel_event=cancel_event,
            )
        except RunCancelledError:
            logger.info("Robustness run %s stopped after cancellation", run_id)
            return await self._store.get_run(run_id)
        except Exception as exc:
            logger.warning("Robustness run %s failed: %s", run_id, exc)
            return await self._fail(run_id, segment, record.params, config, str(exc), cancel_event)
        else:
            return await self._complete(run_id, record.params, config, result, cancel_event)
        finally:
            self._cancel_events.pop(run_id, None)

    async def _await_owner(self, run_id: str) -> RunRecord | None:
        """Poll the store until the owning caller finishes the run or the wait runs out."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._owner_wait
        record = await self._store.get_run(run_id)
        while record is not None and not record.status.is_terminal and loop.time() < deadline:
            await asyncio.sleep(self._poll_interval)
            record = await self._store.get_run(run_id)
        return record

    async def _writable(self, run_id: str, cancel_event: threading.Event) -> RunRecord | None:
        """Return the current record if this task may still write its outcome."""
        current = await self._store.get_run(run_id)
        if cancel_event.is_set() or current is None or current.status.is_terminal:
            return None
        return current

    async def _complete(
        self,
        run_id: str,
        params: dict[str, Any],
        config: RobustnessConfig,
        result: RobustnessResult,
        cancel_event: threading.Event,
    ) -> RunRecord | None:
        if await self._writable(run_id, cancel_event) is None:
            logger.info("Discarding result of robustness run %s", run_id)
            return await self._store.get_run(run_id)
        payload: dict[str, Any] = to_jsonable(result)
        record = await self._store.mark_completed(run_id, payload)
        if record is None or record.status is not RunStatus.COMPLETED or record.result != payload:
            return record
        self._results[run_id] = result
        await self._store.save_report(
            RobustnessReport(
                run_id=run_id,
                segment=result.segment,
                status=RunStatus.COMPLETED,
                config={"policy": to_jsonable(config), "request": params},
                result=payload,
            )
        )
        await self._record_event(
            result.segment,
            COMPLETED_EVENT,
            params,
            {"runId": run_id, "grade": result.grade, "score": result.score},
        )
        logger.info(
            "Robustness run %s completed: grade %s (%.2f)", run_id, result.grade, result.score
        )
        return record

    async def _fail(
        self,
        run_id: str,
        segment: str,
        params: dict[str, Any],
        config: RobustnessConfig,
        reason: str,
        cancel_event: threading.Event,
    ) -> RunRecord | None:
        if await self._writable(run_id, cancel_event) is None:
            return await self._store.get_run(run_id)
        record = await self._store.mark_failed(run_id, reason)
        if record is None or record.status is not RunStatus.FAILED or record.error != reason:
            return record
        await self._write_failure(run_id, segment, params, config, reason)
        return record

    async def _write_failure(
        self,
        run_id: str,
        segment: str,
        params: dict[str, Any],
        config: RobustnessConfig,
        reason: str,
    ) -> None:
        await self._store.save_report(
            RobustnessReport(
                run_id=run_id,
                segment=segment,
                status=RunStatus.FAILED,
                config={"policy": to_jsonable(config), "request": params},
                result=None,
                error=reason,
            )
        )
        await self._record_event(segment, FAILED_EVENT, params, {"runId": run_id, "error": reason})

    async def _record_event(
        self,
        segment: str,
        status: str,
        request_payload: dict[str, Any],
        response_payload: dict[str, Any],
    ) -> None:
        """Write an audit event; failures are logged and never propagate."""
        try:
            await self._store.record_execution_event(
                ExecutionEvent(
                    segment=segment,
                    mode=EXECUTION_MODE,
                    status=status,
                    request_payload=request_payload,
                    response_payload=response_payload,
                )
            )
        except Exception:
            logger.warning("Failed to record execution event %s", status, exc_info=True)
