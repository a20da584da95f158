"""Keyed record store for tests and execution results."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from saint.models.records import ResultRecord, TestRecord
from saint.schemas.execution import ExecutionResult

logger = logging.getLogger(__name__)

RECORD_VERSION = "1.0.0"


class RecordNotFoundError(LookupError):
    """No record exists for the requested key."""


def _as_utc(value: datetime | None) -> datetime | None:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _parse_datetime(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        return _as_utc(value)
    if isinstance(value, str):
        try:
            return _as_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))
        except ValueError:
            return None
    return None


class RecordStore:
    """Two JSON-document collections (tests, results) behind an async session factory."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    # ── Tests ─────────────────────────────────────────────────────────────

    async def save_test(self, payload: dict[str, Any]) -> dict[str, Any]:
        """Insert or replace a test document; an update keeps its ``created`` stamp."""
        now = datetime.now(timezone.utc).isoformat()
        document = {
            **payload,
            "id": payload.get("id") or str(uuid4()),
            "created": now,
            "updated": now,
            "version": RECORD_VERSION,
        }
        run_config = document.get("run_config") or {}

        async with self.session_factory() as session:
            record = await session.get(TestRecord, document["id"])
            if record is None:
                record = TestRecord(id=document["id"])
                session.add(record)
            else:
                document["created"] = record.payload.get("created", now)
            record.test_type = document.get("test_type")
            record.browser = run_config.get("browser") if isinstance(run_config, dict) else None
            record.payload = document
            await session.commit()

        logger.debug("store: saved test %s", document["id"])
        return document

    async def get_test(self, test_id: str) -> dict[str, Any] | None:
        async with self.session_factory() as session:
            record = await session.get(TestRecord, test_id)
            return dict(record.payload) if record else None

    async def list_tests(self) -> list[dict[str, Any]]:
        async with self.session_factory() as session:
            result = await session.execute(select(TestRecord).order_by(TestRecord.created_at))
            return [dict(r.payload) for r in result.scalars().all()]

    async def delete_test(self, test_id: str) -> None:
        async with self.session_factory() as session:
            result = await session.execute(delete(TestRecord).where(TestRecord.id == test_id))
            await session.commit()
        if result.rowcount == 0:
            raise RecordNotFoundError(f"Test not found: {test_id}")

    async def search_tests(
        self,
        query: str | None = None,
        *,
        test_type: str | None = None,
        browser: str | None = None,
        tags: list[str] | None = None,
        date_from: datetime | None = None,
        date_to: datetime | None = None,
    ) -> list[dict[str, Any]]:
        """Filter saved tests by text, type, browser, tags and creation date."""
        date_from = _as_utc(date_from)
        date_to = _as_utc(date_to)
        tests = await self.list_tests()

        def _config(test: dict[str, Any]) -> dict[str, Any]:
            cfg = test.get("run_config")
            return cfg if isinstance(cfg, dict) else {}

        if query:
            q = query.lower()
            tests = [
                t for t in tests
                if q in str(t.get("prompt", "")).lower()
                or q in str(t.get("summary", "")).lower()
                or any(q in str(tag).lower() for tag in _config(t).get("tags", []))
            ]
        if test_type:
            tests = [t for t in tests if t.get("test_type") == test_type]
        if browser:
            tests = [t for t in tests if _config(t).get("browser") == browser]
        if tags:
            tests = [t for t in tests if any(tag in _config(t).get("tags", []) for tag in tags)]
        if date_from:
            tests = [t for t in tests if (c := _parse_datetime(t.get("created"))) and c >= date_from]
        if date_to:
            tests = [t for t in tests if (c := _parse_datetime(t.get("created"))) and c <= date_to]
        return tests

    # ── Results ───────────────────────────────────────────────────────────

    async def save_result(self, result: ExecutionResult) -> dict[str, Any]:
        """Persist one ExecutionResult document."""
        document = result.model_dump(mode="json")
        document["saved"] = datetime.now(timezone.utc).isoformat()

        async with self.session_factory() as session:
            session.add(
                ResultRecord(
                    session_id=result.session_id,
                    status=result.status.value,
                    started_at=result.started_at,
                    duration_ms=result.duration_ms,
                    payload=document,
                )
            )
            await session.commit()

        logger.debug("store: saved result for session %s", result.session_id)
        return document

    async def get_result(self, session_id: str) -> dict[str, Any] | None:
        async with self.session_factory() as session:
            result = await session.execute(
                select(ResultRecord)
                .where(ResultRecord.session_id == session_id)
                .order_by(ResultRecord.created_at.desc())
                .limit(1)
            )
            record = result.scalar_one_or_none()
            return dict(record.payload) if record else None

    async def list_results(self) -> list[dict[str, Any]]:
        async with self.session_factory() as session:
            result = await session.execute(select(ResultRecord).order_by(ResultRecord.created_at))
            return [dict(r.payload) for r in result.scalars().all()]
