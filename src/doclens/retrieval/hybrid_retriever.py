from __future__ import annotations

import logging
from collections.abc import Sequence

from doclens.retrieval.index_schema import (
    FIELD_CHUNK_INDEX,
    FIELD_CONTENT,
    FIELD_CONTENT_VECTOR,
    FIELD_DOCUMENT_ID,
    FIELD_ID,
    FIELD_PAGE_NUMBER,
    FIELD_POSITIONS_JSON,
    RETRIEVABLE_FIELDS,
    IndexDefinition,
)
from doclens.retrieval.types import SearchDocument, SearchFilter, SearchIndex
from doclens.schemas.documents import ChunkSearchResult, DocumentChunk

logger = logging.getLogger(__name__)

DEFAULT_TOP_K = 5
DEFAULT_CONTEXT_WINDOW = 1
DEFAULT_NEIGHBOR_DECAY = 0.2
DEFAULT_FALLBACK_SCORE = 0.1


def _to_search_document(chunk: DocumentChunk) -> SearchDocument:
    return {
        FIELD_ID: chunk.id,
        FIELD_DOCUMENT_ID: chunk.document_id,
        FIELD_CHUNK_INDEX: chunk.chunk_index,
        FIELD_PAGE_NUMBER: chunk.page_number,
        FIELD_CONTENT: chunk.content,
        FIELD_CONTENT_VECTOR: list(chunk.content_vector),
        FIELD_POSITIONS_JSON: chunk.positions_json,
    }


def _from_search_document(document: SearchDocument) -> DocumentChunk:
    return DocumentChunk(
        id=str(document[FIELD_ID]),
        document_id=str(document[FIELD_DOCUMENT_ID]),
        chunk_index=int(document[FIELD_CHUNK_INDEX]),
        page_number=int(document[FIELD_PAGE_NUMBER]),
        content=str(document.get(FIELD_CONTENT) or ""),
        positions_json=document.get(FIELD_POSITIONS_JSON),
    )


class HybridRetriever:
    """Index chunks and run hybrid queries with context-window expansion."""

    def __init__(
        self,
        *,
        index: SearchIndex,
        definition: IndexDefinition,
        neighbor_decay: float = DEFAULT_NEIGHBOR_DECAY,
        fallback_score: float = DEFAULT_FALLBACK_SCORE,
    ) -> None:
        self._index = index
        self._definition = definition
        self._neighbor_decay = neighbor_decay
        self._fallback_score = fallback_score

    @property
    def definition(self) -> IndexDefinition:
        return self._definition

    async def ensure_index_exists(self) -> None:
        await self._index.create_or_update_index(self._definition)

    async def index_chunks(self, chunks: Sequence[DocumentChunk]) -> None:
        if not chunks:
            return
        await self._index.upload_documents([_to_search_document(chunk) for chunk in chunks])
        logger.info("Indexed %d chunks into %s", len(chunks), self._definition.name)

    async def search(
        self,
        query_text: str,
        query_vector: Sequence[float],
        document_id: str,
        top_k: int = DEFAULT_TOP_K,
        context_window: int = DEFAULT_CONTEXT_WINDOW,
    ) -> list[ChunkSearchResult]:
        """Return chunks relevant to the query.

        With ``context_window <= 0`` (or no matches) the fused hits come back
        best first. Otherwise neighbours within the window are fetched too and
        the whole set is returned in ``chunk_index`` order.
        """

        hits = await self._index.hybrid_search(
            search_text=query_text,
            vector=query_vector,
            k_nearest=top_k,
            search_filter=SearchFilter(document_id=document_id),
            top=top_k,
            select=RETRIEVABLE_FIELDS,
        )
        matches = [
            ChunkSearchResult(chunk=_from_search_document(hit.document), score=hit.score)
            for hit in hits
        ]
        # Stores are not required to return hits pre-sorted.
        matches.sort(key=lambda result: -result.score)

        if context_window <= 0 or not matches:
            return matches

        return await self._expand_context(
            document_id=document_id, matches=matches, context_window=context_window
        )

    async def _expand_context(
        self,
        *,
        document_id: str,
        matches: list[ChunkSearchResult],
        context_window: int,
    ) -> list[ChunkSearchResult]:
        needed: set[int] = set()
        for match in matches:
            index = match.chunk.chunk_index
            needed.update(range(max(0, index - context_window), index + context_window + 1))

        hits = await self._index.filter_documents(
            search_filter=SearchFilter(
                document_id=document_id, chunk_indices=tuple(sorted(needed))
            ),
            select=RETRIEVABLE_FIELDS,
        )

        match_scores: dict[int, float] = {}
        for match in matches:
            match_scores.setdefault(match.chunk.chunk_index, match.score)

        expanded: list[ChunkSearchResult] = []
        seen: set[int] = set()
        for hit in hits:
            chunk = _from_search_document(hit.document)
            if chunk.chunk_index in seen:
                continue
            seen.add(chunk.chunk_index)

            score = match_scores.get(chunk.chunk_index)
            if score is None:
                score = self._neighbor_score(chunk.chunk_index, matches, context_window)
            expanded.append(ChunkSearchResult(chunk=chunk, score=score))

        expanded.sort(key=lambda result: result.chunk.chunk_index)
        logger.debug(
            "Expanded %d matches to %d chunks (window=%d)",
            len(matches),
            len(expanded),
            context_window,
        )
        return expanded

    def _neighbor_score(
        self, chunk_index: int, matches: list[ChunkSearchResult], context_window: int
    ) -> float:
        nearest: ChunkSearchResult | None = None
        nearest_distance = 0
        for match in matches:
            distance = abs(match.chunk.chunk_index - chunk_index)
            if distance > context_window:
                continue
            # Closest match wins; among equally close ones the higher score.
            if nearest is None or (distance, -match.score) < (nearest_distance, -nearest.score):
                nearest = match
                nearest_distance = distance

        if nearest is None:
            return self._fallback_score
        return nearest.score * (1 - self._neighbor_decay * nearest_distance)
