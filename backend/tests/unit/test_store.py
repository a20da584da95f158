"""Unit tests for RecordStore against a temporary SQLite database."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from saint.schemas.execution import ExecutionResult, ExecutionStatus
from saint.services.store import RecordNotFoundError


def _test_payload(test_id: str, **overrides) -> dict:
    payload = {
        "id": test_id,
        "prompt": "Log in and open the dashboard",
        "test_type": "ui",
        "code": "test('x', async () => {})",
        "run_config": {"browser": "chromium", "tags": ["smoke"]},
    }
    payload.update(overrides)
    return payload


class TestTests:
    async def test_save_and_get(self, store):
        saved = await store.save_test(_test_payload("t-1"))

        assert saved["version"] == "1.0.0"
        assert saved["created"] == saved["updated"]
        assert await store.get_test("t-1") == saved

    async def test_save_assigns_id(self, store):
        saved = await store.save_test(_test_payload(None))
        assert saved["id"]
        assert await store.get_test(saved["id"]) is not None

    async def test_update_keeps_created(self, store):
        first = await store.save_test(_test_payload("t-1"))
        second = await store.save_test(_test_payload("t-1", prompt="changed"))

        assert second["created"] == first["created"]
        assert (await store.get_test("t-1"))["prompt"] == "changed"
        assert len(await store.list_tests()) == 1

    async def test_delete(self, store):
        await store.save_test(_test_payload("t-1"))
        await store.delete_test("t-1")

        assert await store.get_test("t-1") is None
        with pytest.raises(RecordNotFoundError):
            await store.delete_test("t-1")

    async def test_search_filters(self, store):
        await store.save_test(_test_payload("t-1"))
        await store.save_test(_test_payload(
            "t-2",
            prompt="Checkout with a coupon",
            test_type="api",
            run_config={"browser": "firefox", "tags": ["checkout"]},
        ))

        assert [t["id"] for t in await store.search_tests("coupon")] == ["t-2"]
        assert [t["id"] for t in await store.search_tests("SMOKE")] == ["t-1"]
        assert [t["id"] for t in await store.search_tests(test_type="api")] == ["t-2"]
        assert [t["id"] for t in await store.search_tests(browser="chromium")] == ["t-1"]
        assert [t["id"] for t in await store.search_tests(tags=["checkout", "nope"])] == ["t-2"]

        tomorrow = datetime.now(timezone.utc) + timedelta(days=1)
        assert await store.search_tests(date_from=tomorrow) == []
        assert len(await store.search_tests(date_to=tomorrow.replace(tzinfo=None))) == 2


class TestResults:
    async def test_save_and_get_result(self, store):
        now = datetime.now(timezone.utc)
        result = ExecutionResult(
            session_id="s-1",
            execution_id="e-1",
            test_id="t-1",
            exit_code=1,
            status=ExecutionStatus.FAILED,
            started_at=now,
            ended_at=now,
            duration_ms=1200,
            stderr="TimeoutError: locator.click",
        )

        document = await store.save_result(result)

        assert document["saved"]
        stored = await store.get_result("s-1")
        assert stored["status"] == "failed"
        assert stored["duration_ms"] == 1200
        assert [r["session_id"] for r in await store.list_results()] == ["s-1"]
        assert await store.get_result("missing") is None

    async def test_latest_result_wins_for_reused_session(self, store):
        now = datetime.now(timezone.utc)
        for execution_id in ("e-old", "e-new"):
            await store.save_result(ExecutionResult(
                session_id="s-again",
                execution_id=execution_id,
                test_id="t-1",
                exit_code=0,
                status=ExecutionStatus.PASSED,
                started_at=now,
                ended_at=now,
                duration_ms=10,
            ))

        stored = await store.get_result("s-again")
        assert stored["execution_id"] == "e-new"
