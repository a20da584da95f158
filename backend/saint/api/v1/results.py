"""Execution result API endpoints."""

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status

from saint.api.deps import get_store
from saint.services.store import RecordStore

router = APIRouter()


@router.get("")
async def list_results(
    limit: int = 100,
    store: RecordStore = Depends(get_store),
) -> list[dict[str, Any]]:
    """Most recent execution results first."""
    results = await store.list_results()
    return list(reversed(results))[:limit]


@router.get("/{session_id}")
async def get_result(
    session_id: str,
    store: RecordStore = Depends(get_store),
) -> dict[str, Any]:
    result = await store.get_result(session_id)
    if result is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Result not found")
    return result
