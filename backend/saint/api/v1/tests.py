"""Saved test API endpoints."""

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, status

from saint.api.deps import get_store
from saint.schemas.records import TestCreate, TestDocument
from saint.services.store import RecordNotFoundError, RecordStore

router = APIRouter()


@router.get("", response_model=list[TestDocument])
async def list_tests(
    q: str | None = None,
    test_type: str | None = None,
    browser: str | None = None,
    tags: list[str] | None = Query(default=None),
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    store: RecordStore = Depends(get_store),
) -> list[dict[str, Any]]:
    """List saved tests, optionally filtered."""
    if not any([q, test_type, browser, tags, date_from, date_to]):
        return await store.list_tests()
    return await store.search_tests(
        q,
        test_type=test_type,
        browser=browser,
        tags=tags,
        date_from=date_from,
        date_to=date_to,
    )


@router.post("", response_model=TestDocument, status_code=status.HTTP_201_CREATED)
async def save_test(
    test_in: TestCreate,
    store: RecordStore = Depends(get_store),
) -> dict[str, Any]:
    """Create or replace a saved test."""
    return await store.save_test(test_in.model_dump(mode="json"))


@router.get("/{test_id}", response_model=TestDocument)
async def get_test(
    test_id: str,
    store: RecordStore = Depends(get_store),
) -> dict[str, Any]:
    test = await store.get_test(test_id)
    if test is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Test not found")
    return test


@router.delete("/{test_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_test(
    test_id: str,
    store: RecordStore = Depends(get_store),
) -> None:
    try:
        await store.delete_test(test_id)
    except RecordNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
