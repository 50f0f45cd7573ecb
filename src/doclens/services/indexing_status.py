from __future__ import annotations

import threading
from datetime import UTC, datetime

from doclens.schemas.indexing import IndexingJobStatus, IndexingStage


class IndexingStatusStore:
    """Store interface for per-document indexing status."""

    async def update_status(
        self,
        *,
        document_id: str,
        status: IndexingStage,
        progress: int,
        message: str | None = None,
        error: str | None = None,
    ) -> IndexingJobStatus:  # pragma: no cover
        raise NotImplementedError

    async def get_status(self, document_id: str) -> IndexingJobStatus | None:  # pragma: no cover
        raise NotImplementedError


class InMemoryIndexingStatusStore(IndexingStatusStore):
    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._statuses: dict[str, IndexingJobStatus] = {}

    async def update_status(
        self,
        *,
        document_id: str,
        status: IndexingStage,
        progress: int,
        message: str | None = None,
        error: str | None = None,
    ) -> IndexingJobStatus:
        record = IndexingJobStatus(
            document_id=document_id,
            status=status,
            progress=progress,
            message=message,
            error=error,
            updated_at=datetime.now(UTC),
        )
        with self._lock:
            self._statuses[document_id] = record
        return record

    async def get_status(self, document_id: str) -> IndexingJobStatus | None:
        with self._lock:
            return self._statuses.get(document_id)
