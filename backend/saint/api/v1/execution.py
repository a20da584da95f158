"""Test execution API endpoints."""

import asyncio
import logging

from fastapi import APIRouter, Depends, HTTPException, status

from saint.api.deps import get_hub, get_scheduler
from saint.core.exceptions import AdmissionError, DuplicateSessionError
from saint.core.scheduler import ExecutionScheduler
from saint.schemas.execution import ExecuteTestRequest, ExecutionResult, SchedulerStatus, Submission
from saint.streaming import StreamingHub

logger = logging.getLogger(__name__)

router = APIRouter()


async def report_outcome(
    outcome: "asyncio.Future[ExecutionResult]", hub: StreamingHub, session_id: str
) -> None:
    """Broadcast the terminal outcome of *session_id* once it resolves."""
    try:
        result = await outcome
    except Exception as exc:
        await hub.broadcast({
            "type": "execution-error",
            "session_id": session_id,
            "error": str(exc),
        })
        return
    await hub.broadcast({
        "type": "execution-completed",
        "session_id": session_id,
        "result": result.model_dump(mode="json"),
    })


@router.post("/test", response_model=Submission)
async def execute_test(
    body: ExecuteTestRequest,
    scheduler: ExecutionScheduler = Depends(get_scheduler),
    hub: StreamingHub = Depends(get_hub),
) -> Submission:
    """Submit a test for execution. Progress is streamed over ``/ws``."""
    try:
        submission = await scheduler.submit(body.test_data, body.session_id)
    except DuplicateSessionError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=exc.message) from exc
    except AdmissionError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=exc.message) from exc

    session_id = submission.session_id
    scheduler.track(
        report_outcome(scheduler.wait_for(session_id), hub, session_id),
        name=f"report-{session_id}",
    )
    logger.info("api: %s %s", submission.session_id, submission.status.value)
    return submission


@router.get("/status", response_model=SchedulerStatus)
async def execution_status(
    scheduler: ExecutionScheduler = Depends(get_scheduler),
) -> SchedulerStatus:
    """Active and queued executions."""
    return scheduler.status()
