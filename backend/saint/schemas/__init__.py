"""Pydantic schemas for API validation and execution records."""

from saint.schemas.execution import (
    Artifact,
    ArtifactKind,
    ArtifactManifest,
    ExecuteTestRequest,
    ExecutionResult,
    ExecutionState,
    ExecutionStatus,
    RunConfig,
    SchedulerStatus,
    Submission,
    SubmissionStatus,
    TestDefinition,
    TestKind,
)
from saint.schemas.records import TestCreate, TestDocument

__all__ = [
    "Artifact",
    "ArtifactKind",
    "ArtifactManifest",
    "ExecuteTestRequest",
    "ExecutionResult",
    "ExecutionState",
    "ExecutionStatus",
    "RunConfig",
    "SchedulerStatus",
    "Submission",
    "SubmissionStatus",
    "TestDefinition",
    "TestCreate",
    "TestDocument",
    "TestKind",
]
