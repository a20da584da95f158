"""Schemas for stored test documents."""

from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from saint.schemas.execution import RunConfig, TestKind


class TestCreate(BaseModel):
    """Body of ``POST /api/tests``; ``id`` is assigned when omitted."""

    model_config = ConfigDict(populate_by_name=True)

    id: str | None = None
    prompt: str = ""
    summary: str | None = None
    test_type: TestKind = Field(
        default=TestKind.UI,
        validation_alias=AliasChoices("test_type", "testType"),
    )
    code: str = ""
    run_config: RunConfig = Field(
        default_factory=RunConfig,
        validation_alias=AliasChoices("run_config", "mcp_config", "mcpConfig"),
    )
    metadata: dict[str, Any] = Field(default_factory=dict)


class TestDocument(TestCreate):
    """A test as returned by the record store."""

    id: str
    created: str
    updated: str
    version: str
