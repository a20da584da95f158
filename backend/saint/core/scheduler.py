"""Bounded-concurrency execution scheduler.

The scheduler is the only owner of the active set and the FIFO queue. Both
are mutated in plain synchronous steps between awaits, so the event loop
serializes admission, completion and promotion without locks.

Each admitted request runs as one task through
``admitted -> workspace_ready -> running -> collecting -> completed | failed``.
"""

from __future__ import annotations

import asyncio
import logging
import re
from collections import deque
from collections.abc import Coroutine
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any
from uuid import uuid4

from saint.core.exceptions import (
    AdmissionError,
    DependencyInstallError,
    DuplicateSessionError,
    ProcessSpawnError,
)
from saint.core.tracing import add_span_event, create_span
from saint.schemas.execution import (
    ActiveExecutionInfo,
    ExecutionRequest,
    ExecutionResult,
    ExecutionState,
    SchedulerStatus,
    Submission,
    SubmissionStatus,
    TestDefinition,
)

if TYPE_CHECKING:
    from saint.core.artifacts import ArtifactCollector
    from saint.core.process import ProcessRunner
    from saint.core.workspace import WorkspaceBuilder
    from saint.services.store import RecordStore
    from saint.streaming import StreamingHub

logger = logging.getLogger(__name__)

SESSION_ID_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]{0,127}$")

# failures the runner has already announced with their own error event
_RUNNER_REPORTED = (DependencyInstallError, ProcessSpawnError)


@dataclass
class ActiveExecution:
    """Scheduler-owned record of a running execution."""

    execution_id: str
    session_id: str
    definition: TestDefinition
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    state: ExecutionState = ExecutionState.ADMITTED

    def info(self) -> ActiveExecutionInfo:
        return ActiveExecutionInfo(
            session_id=self.session_id,
            execution_id=self.execution_id,
            state=self.state,
            started_at=self.started_at,
            test_id=self.definition.id,
        )


class ExecutionScheduler:
    """Admits execution requests up to a concurrency ceiling and queues the rest."""

    def __init__(
        self,
        *,
        capacity: int,
        hub: StreamingHub,
        workspace_builder: WorkspaceBuilder,
        runner: ProcessRunner,
        collector: ArtifactCollector,
        store: RecordStore | None = None,
    ) -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self.hub = hub
        self.workspace_builder = workspace_builder
        self.runner = runner
        self.collector = collector
        self.store = store

        self._active: dict[str, ActiveExecution] = {}
        self._queue: deque[ExecutionRequest] = deque()
        self._outcomes: dict[str, asyncio.Future[ExecutionResult]] = {}
        self._tasks: set[asyncio.Task[None]] = set()

    # ── Introspection ─────────────────────────────────────────────────────

    @property
    def active_count(self) -> int:
        return len(self._active)

    @property
    def queued_count(self) -> int:
        return len(self._queue)

    def is_active(self, session_id: str) -> bool:
        return session_id in self._active

    def queued_sessions(self) -> list[str]:
        return [request.session_id for request in self._queue]

    def status(self) -> SchedulerStatus:
        return SchedulerStatus(
            active=len(self._active),
            queued=len(self._queue),
            max_concurrent=self.capacity,
            executions=[execution.info() for execution in self._active.values()],
        )

    # ── Submission ────────────────────────────────────────────────────────

    def _validate(self, definition: TestDefinition | None, session_id: str | None) -> None:
        if definition is None or not session_id:
            raise AdmissionError("Test data and session ID are required", session_id)
        if not definition.code.strip():
            raise AdmissionError("Test definition has no generated code", session_id)
        if not SESSION_ID_RE.match(session_id):
            raise AdmissionError(f"Malformed session ID: {session_id!r}", session_id)
        if session_id in self._outcomes:
            raise DuplicateSessionError(f"Session {session_id} is already in flight", session_id)

    async def submit(self, definition: TestDefinition | None, session_id: str | None) -> Submission:
        """Admit the request now or append it to the FIFO queue.

        Raises AdmissionError for malformed requests and
        DuplicateSessionError when *session_id* is already active or queued.
        """
        self._validate(definition, session_id)
        assert definition is not None and session_id is not None

        request = ExecutionRequest(definition=definition, session_id=session_id)
        self._outcomes[session_id] = asyncio.get_running_loop().create_future()

        if len(self._active) < self.capacity:
            self._admit(request)
            return Submission(
                status=SubmissionStatus.STARTED,
                session_id=session_id,
                message="Test execution started. Monitor via WebSocket for real-time updates.",
            )

        self._queue.append(request)
        position = len(self._queue)
        logger.info("scheduler: queued %s at position %d", session_id, position)
        await self.hub.broadcast({
            "type": "execution-queued",
            "session_id": session_id,
            "position": position,
            "message": "Test queued for execution",
        })
        return Submission(
            status=SubmissionStatus.QUEUED,
            session_id=session_id,
            position=position,
            message="Test queued for execution",
        )

    def wait_for(self, session_id: str) -> asyncio.Future[ExecutionResult]:
        """Future resolving to the result (or terminal error) of *session_id*."""
        try:
            return self._outcomes[session_id]
        except KeyError:
            raise KeyError(f"No execution in flight for session {session_id}") from None

    async def execute(self, definition: TestDefinition, session_id: str) -> ExecutionResult:
        """Submit and wait for the terminal outcome."""
        await self.submit(definition, session_id)
        return await self.wait_for(session_id)

    def track(self, coro: Coroutine[Any, Any, None], *, name: str | None = None) -> asyncio.Task[None]:
        """Run *coro* as a task that ``shutdown`` waits for."""
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def shutdown(self) -> None:
        """Wait for every admitted execution and tracked task to settle."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ── Admission and promotion ───────────────────────────────────────────

    def _admit(self, request: ExecutionRequest) -> None:
        execution = ActiveExecution(
            execution_id=str(uuid4()),
            session_id=request.session_id,
            definition=request.definition,
        )
        self._active[request.session_id] = execution
        self.track(self._run(execution), name=f"execution-{request.session_id}")
        logger.info(
            "scheduler: admitted %s (%d/%d active)",
            request.session_id,
            len(self._active),
            self.capacity,
        )

    def _release(self, session_id: str) -> None:
        """Free the slot held by *session_id* and promote queued requests."""
        self._active.pop(session_id, None)
        while self._queue and len(self._active) < self.capacity:
            self._admit(self._queue.popleft())

    # ── Execution state machine ───────────────────────────────────────────

    async def _run(self, execution: ActiveExecution) -> None:
        session_id = execution.session_id
        definition = execution.definition
        workspace: Path | None = None
        result: ExecutionResult | None = None
        error: BaseException | None = None

        try:
            with create_span(
                "execution.run",
                {"saint.session_id": session_id, "saint.test_id": definition.id},
            ):
                await self.hub.broadcast({
                    "type": "execution-started",
                    "session_id": session_id,
                    "execution_id": execution.execution_id,
                    "test_id": definition.id,
                    "timestamp": execution.started_at.isoformat(),
                })

                workspace = await self.workspace_builder.build(definition, session_id)
                self._transition(execution, ExecutionState.WORKSPACE_READY)

                self._transition(execution, ExecutionState.RUNNING)
                raw = await self.runner.run(
                    workspace,
                    session_id,
                    test_id=definition.id,
                    execution_id=execution.execution_id,
                )

                self._transition(execution, ExecutionState.COLLECTING)
                result = await self.collector.process(raw)
                result = await self._persist(result)
                self._transition(execution, ExecutionState.COMPLETED)
        except Exception as exc:
            error = exc
            self._transition(execution, ExecutionState.FAILED)
            logger.error("scheduler: execution %s failed: %s", session_id, exc)
            if not isinstance(exc, _RUNNER_REPORTED):
                await self.hub.broadcast({
                    "type": "test-execution-error",
                    "session_id": session_id,
                    "error": str(exc),
                })
        finally:
            # a failed build may leave a partial directory behind
            await self.workspace_builder.teardown(
                workspace or self.workspace_builder.workspace_path(session_id)
            )
            self._release(session_id)
            outcome = self._outcomes.pop(session_id)

        if error is None:
            outcome.set_result(result)  # type: ignore[arg-type]
            return
        outcome.set_exception(error)
        # mark retrieved; nobody is required to await the outcome
        outcome.exception()

    def _transition(self, execution: ActiveExecution, state: ExecutionState) -> None:
        logger.debug("scheduler: %s %s -> %s", execution.session_id, execution.state.value, state.value)
        execution.state = state
        add_span_event(f"execution.{state.value}")

    async def _persist(self, result: ExecutionResult) -> ExecutionResult:
        if self.store is None:
            return result
        try:
            await self.store.save_result(result)
        except Exception as exc:
            logger.exception("scheduler: could not persist result for %s", result.session_id)
            return result.model_copy(
                update={"processing_error": result.processing_error or f"Result not persisted: {exc}"}
            )
        return result
