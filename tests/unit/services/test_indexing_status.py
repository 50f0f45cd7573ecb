from __future__ import annotations

import pytest

from doclens.services.indexing_status import InMemoryIndexingStatusStore


@pytest.mark.asyncio
async def test_unknown_document_has_no_status() -> None:
    assert await InMemoryIndexingStatusStore().get_status("missing") is None


@pytest.mark.asyncio
async def test_latest_update_replaces_previous() -> None:
    store = InMemoryIndexingStatusStore()

    first = await store.update_status(document_id="doc-1", status="extracting", progress=10)
    second = await store.update_status(
        document_id="doc-1", status="error", progress=0, error="boom"
    )

    current = await store.get_status("doc-1")
    assert current == second
    assert current is not None
    assert current.error == "boom"
    assert current.updated_at >= first.updated_at


@pytest.mark.asyncio
async def test_status_serializes_with_camel_case_keys() -> None:
    store = InMemoryIndexingStatusStore()

    status = await store.update_status(
        document_id="doc-1", status="ready", progress=100, message="Indexing complete"
    )

    payload = status.model_dump(mode="json", by_alias=True)
    assert payload["documentId"] == "doc-1"
    assert payload["status"] == "ready"
    assert payload["progress"] == 100
    assert "updatedAt" in payload
