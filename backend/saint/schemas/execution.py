"""Pydantic schemas for test definitions, executions and their results."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TestKind(str, Enum):
    """Kind of generated test."""

    UI = "ui"
    API = "api"
    VISUAL = "visual"
    MIXED = "mixed"


class ExecutionStatus(str, Enum):
    """Outcome of a finished test process."""

    PASSED = "passed"
    FAILED = "failed"


class ExecutionState(str, Enum):
    """Lifecycle of one admitted execution."""

    PENDING = "pending"
    ADMITTED = "admitted"
    WORKSPACE_READY = "workspace_ready"
    RUNNING = "running"
    COLLECTING = "collecting"
    COMPLETED = "completed"
    FAILED = "failed"


class ArtifactKind(str, Enum):
    """Closed set of artifact variants."""

    SCREENSHOT = "screenshot"
    VIDEO = "video"
    TRACE = "trace"
    REPORT = "report"


class Viewport(BaseModel):
    """Browser viewport dimensions."""

    model_config = ConfigDict(frozen=True)

    width: int = Field(default=1920, gt=0)
    height: int = Field(default=1080, gt=0)


class RunConfig(BaseModel):
    """Resolved execution parameters attached to a TestDefinition.

    Every field carries its default here so nothing downstream has to guess.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    timeout: int = Field(default=30000, gt=0)
    retries: int = Field(default=1, ge=0)
    workers: int = Field(default=1, ge=1)
    headless: bool = True
    screenshot: Literal["on", "off", "only-on-failure"] = "only-on-failure"
    video: Literal["on", "off", "retain-on-failure", "on-first-retry"] = "retain-on-failure"
    trace: Literal[
        "on",
        "off",
        "retain-on-failure",
        "on-first-retry",
        "on-all-retries",
        "retain-on-first-failure",
    ] = "retain-on-failure"
    browser: str = "chromium"
    viewport: Viewport = Field(default_factory=Viewport)
    tags: list[str] = Field(default_factory=list)


class TestDefinition(BaseModel):
    """Immutable unit of work produced by the generation step."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(min_length=1)
    prompt: str = ""
    test_type: TestKind = Field(
        default=TestKind.UI,
        validation_alias=AliasChoices("test_type", "testType"),
    )
    code: str = Field(min_length=1)
    run_config: RunConfig = Field(
        default_factory=RunConfig,
        validation_alias=AliasChoices("run_config", "mcp_config", "mcpConfig"),
    )


class ExecutionRequest(BaseModel):
    """A submission waiting for admission."""

    definition: TestDefinition
    session_id: str
    submitted_at: datetime = Field(default_factory=utcnow)


class Artifact(BaseModel):
    """A durable byproduct of a run."""

    model_config = ConfigDict(frozen=True)

    filename: str
    path: str
    url: str
    size: int
    captured_at: datetime = Field(default_factory=utcnow)
    kind: ArtifactKind


class ArtifactManifest(BaseModel):
    """Artifacts of one execution, grouped by kind."""

    screenshots: list[Artifact] = Field(default_factory=list)
    videos: list[Artifact] = Field(default_factory=list)
    traces: list[Artifact] = Field(default_factory=list)
    reports: list[Artifact] = Field(default_factory=list)

    def add(self, artifact: Artifact) -> None:
        {
            ArtifactKind.SCREENSHOT: self.screenshots,
            ArtifactKind.VIDEO: self.videos,
            ArtifactKind.TRACE: self.traces,
            ArtifactKind.REPORT: self.reports,
        }[artifact.kind].append(artifact)

    def counts(self) -> dict[str, int]:
        return {
            "screenshots": len(self.screenshots),
            "videos": len(self.videos),
            "traces": len(self.traces),
            "reports": len(self.reports),
        }


class PerformanceSummary(BaseModel):
    execution_time_ms: int = 0
    avg_test_time_ms: float = 0


class ExecutionSummary(BaseModel):
    """Derived counts for one execution."""

    status: ExecutionStatus
    duration_ms: int
    exit_code: int | None
    test_count: int = 0
    passed_count: int = 0
    failed_count: int = 0
    skipped_count: int = 0
    artifact_counts: dict[str, int] = Field(default_factory=dict)
    performance: PerformanceSummary = Field(default_factory=PerformanceSummary)


class ExecutionResult(BaseModel):
    """Terminal record of one admitted execution."""

    model_config = ConfigDict(frozen=True)

    session_id: str
    execution_id: str
    test_id: str
    exit_code: int | None
    status: ExecutionStatus
    started_at: datetime
    ended_at: datetime
    duration_ms: int
    stdout: str = ""
    stderr: str = ""
    timed_out: bool = False
    detailed_results: dict[str, Any] | None = None
    artifacts: ArtifactManifest = Field(default_factory=ArtifactManifest)
    summary: ExecutionSummary | None = None
    processing_error: str | None = None


class SubmissionStatus(str, Enum):
    STARTED = "started"
    QUEUED = "queued"


class Submission(BaseModel):
    """Acknowledgement returned to the caller of ``submit``."""

    status: SubmissionStatus
    session_id: str
    position: int | None = None
    message: str = ""


class ExecuteTestRequest(BaseModel):
    """Body of ``POST /api/execute/test``."""

    model_config = ConfigDict(populate_by_name=True)

    test_data: TestDefinition | None = Field(
        default=None,
        validation_alias=AliasChoices("test_data", "testData"),
    )
    session_id: str | None = Field(
        default=None,
        validation_alias=AliasChoices("session_id", "sessionId"),
    )


class ActiveExecutionInfo(BaseModel):
    session_id: str
    execution_id: str
    state: ExecutionState
    started_at: datetime
    test_id: str


class SchedulerStatus(BaseModel):
    """Snapshot of the scheduler's active set and queue."""

    active: int
    queued: int
    max_concurrent: int
    executions: list[ActiveExecutionInfo] = Field(default_factory=list)
