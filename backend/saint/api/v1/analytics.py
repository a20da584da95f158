"""Dashboard analytics endpoint."""

from typing import Any

from fastapi import APIRouter, Depends

from saint.api.deps import get_store
from saint.reports.analytics import DashboardAnalytics
from saint.services.store import RecordStore

router = APIRouter()


@router.get("/dashboard")
async def dashboard(store: RecordStore = Depends(get_store)) -> dict[str, Any]:
    tests = await store.list_tests()
    results = await store.list_results()
    return DashboardAnalytics().build(tests, results)
