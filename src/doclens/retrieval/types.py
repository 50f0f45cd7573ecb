from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Protocol

from doclens.retrieval.index_schema import FIELD_CHUNK_INDEX, FIELD_DOCUMENT_ID, IndexDefinition

SearchDocument = dict[str, Any]


@dataclass(frozen=True)
class SearchFilter:
    """Exact-match filter: one document, optionally restricted to chunk indices."""

    document_id: str
    chunk_indices: tuple[int, ...] | None = None

    def matches(self, document: SearchDocument) -> bool:
        if document.get(FIELD_DOCUMENT_ID) != self.document_id:
            return False
        if self.chunk_indices is None:
            return True
        return document.get(FIELD_CHUNK_INDEX) in self.chunk_indices


@dataclass(frozen=True)
class SearchHit:
    document: SearchDocument
    score: float


class SearchIndex(Protocol):
    """Hybrid (keyword + vector) search index holding document chunks."""

    async def create_or_update_index(self, definition: IndexDefinition) -> None: ...

    async def upload_documents(self, documents: Sequence[SearchDocument]) -> None: ...

    async def hybrid_search(
        self,
        *,
        search_text: str,
        vector: Sequence[float],
        k_nearest: int,
        search_filter: SearchFilter,
        top: int,
        select: Sequence[str],
    ) -> list[SearchHit]: ...

    async def filter_documents(
        self,
        *,
        search_filter: SearchFilter,
        select: Sequence[str],
    ) -> list[SearchHit]: ...
