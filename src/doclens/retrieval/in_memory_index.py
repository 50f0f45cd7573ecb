from __future__ import annotations

import logging
import math
import re
import threading
from collections.abc import Sequence

from rank_bm25 import BM25Plus

from doclens.errors import SearchIndexError
from doclens.retrieval.fusion import reciprocal_rank_fusion
from doclens.retrieval.index_schema import (
    FIELD_CONTENT,
    FIELD_CONTENT_VECTOR,
    FIELD_DOCUMENT_ID,
    IndexDefinition,
)
from doclens.retrieval.types import SearchDocument, SearchFilter, SearchHit

logger = logging.getLogger(__name__)

_TOKEN_RE = re.compile(r"[A-Za-z0-9_]+")

# Lucene's English stop set.
_ENGLISH_STOP_WORDS = frozenset(
    {
        "a", "an", "and", "are", "as", "at", "be", "but", "by", "for", "if", "in",
        "into", "is", "it", "no", "not", "of", "on", "or", "such", "that", "the",
        "their", "then", "there", "these", "they", "this", "to", "was", "will", "with",
    }
)  # fmt: skip


def tokenize(text: str) -> list[str]:
    tokens: list[str] = []
    for raw in _TOKEN_RE.findall(text):
        token = raw.lower()
        if token in _ENGLISH_STOP_WORDS:
            continue
        tokens.append(token)
    return tokens


def cosine_similarity(left: Sequence[float], right: Sequence[float]) -> float:
    dot = sum(a * b for a, b in zip(left, right, strict=True))
    left_norm = math.sqrt(sum(a * a for a in left))
    right_norm = math.sqrt(sum(b * b for b in right))
    if left_norm == 0.0 or right_norm == 0.0:
        return 0.0
    return dot / (left_norm * right_norm)


class _KeywordIndex:
    """BM25+ ranking over the chunks of one document."""

    def __init__(self, *, keys: list[str], contents: list[str]) -> None:
        self._keys = keys
        tokenized = [tokenize(content) for content in contents]
        self._vocabularies = [frozenset(tokens) for tokens in tokenized]
        # BM25+ keeps idf positive for terms present in most chunks.
        self._bm25 = BM25Plus(tokenized) if any(tokenized) else None

    def rank(self, query: str) -> list[str]:
        query_tokens = tokenize(query)
        if self._bm25 is None or not query_tokens:
            return []

        scores = self._bm25.get_scores(query_tokens)
        wanted = set(query_tokens)
        scored = [
            (key, float(score))
            for key, score, vocabulary in zip(
                self._keys, scores, self._vocabularies, strict=True
            )
            if not wanted.isdisjoint(vocabulary)
        ]
        scored.sort(key=lambda pair: (-pair[1], pair[0]))
        return [key for key, _ in scored]


class InMemorySearchIndex:
    """Thread-safe, in-process hybrid search index.

    Keyword relevance comes from BM25 over an English-aware tokenizer, vector
    relevance from exact cosine similarity; both rankings are fused with
    reciprocal rank fusion, which makes scores comparable across queries but
    not bounded to ``[0, 1]``.
    """

    def __init__(self, *, rrf_k: int = 60) -> None:
        self._lock = threading.RLock()
        self._rrf_k = rrf_k
        self._definition: IndexDefinition | None = None
        self._documents: dict[str, SearchDocument] = {}
        self._keyword_indexes: dict[str, _KeywordIndex] = {}

    @property
    def definition(self) -> IndexDefinition | None:
        with self._lock:
            return self._definition

    async def create_or_update_index(self, definition: IndexDefinition) -> None:
        with self._lock:
            if self._definition is not None and self._definition != definition:
                current = self._definition.vector_dimensions
                if current != definition.vector_dimensions and self._documents:
                    raise SearchIndexError(
                        f"Index {definition.name!r} already holds {current}-dimension vectors"
                    )
            self._definition = definition

    async def upload_documents(self, documents: Sequence[SearchDocument]) -> None:
        with self._lock:
            definition = self._require_definition()
            key_name = definition.key_field.name
            dimensions = definition.vector_dimensions

            touched: set[str] = set()
            for document in documents:
                key = document.get(key_name)
                if not key:
                    raise SearchIndexError(f"Document is missing its key field {key_name!r}")

                vector = document.get(FIELD_CONTENT_VECTOR) or []
                if len(vector) != dimensions:
                    raise SearchIndexError(
                        f"Vector for {key!r} has {len(vector)} dimensions, expected {dimensions}"
                    )

                self._documents[str(key)] = dict(document)
                touched.add(str(document.get(FIELD_DOCUMENT_ID, "")))

            for document_id in touched:
                self._keyword_indexes.pop(document_id, None)

    async def hybrid_search(
        self,
        *,
        search_text: str,
        vector: Sequence[float],
        k_nearest: int,
        search_filter: SearchFilter,
        top: int,
        select: Sequence[str],
    ) -> list[SearchHit]:
        with self._lock:
            definition = self._require_definition()
            key_name = definition.key_field.name
            candidates = {
                str(document[key_name]): document
                for document in self._documents.values()
                if search_filter.matches(document)
            }
            if not candidates:
                return []

            keyword_ranking = [
                key
                for key in self._keyword_index(search_filter.document_id).rank(search_text)
                if key in candidates
            ]
            vector_ranking = self._vector_ranking(candidates, vector, k_nearest)

            fused = reciprocal_rank_fusion(
                [keyword_ranking, vector_ranking], k=self._rrf_k
            )
            hits = [
                SearchHit(document=_project(candidates[key], select), score=score)
                for key, score in fused[: max(0, top)]
            ]

        logger.debug(
            "Hybrid search over %d chunks: %d keyword, %d vector, %d fused hits",
            len(candidates),
            len(keyword_ranking),
            len(vector_ranking),
            len(hits),
        )
        return hits

    async def filter_documents(
        self,
        *,
        search_filter: SearchFilter,
        select: Sequence[str],
    ) -> list[SearchHit]:
        with self._lock:
            self._require_definition()
            return [
                SearchHit(document=_project(document, select), score=1.0)
                for document in self._documents.values()
                if search_filter.matches(document)
            ]

    def document_count(self) -> int:
        with self._lock:
            return len(self._documents)

    def _require_definition(self) -> IndexDefinition:
        if self._definition is None:
            raise SearchIndexError("Search index has not been created")
        return self._definition

    def _keyword_index(self, document_id: str) -> _KeywordIndex:
        existing = self._keyword_indexes.get(document_id)
        if existing is not None:
            return existing

        key_name = self._require_definition().key_field.name
        documents = sorted(
            (
                document
                for document in self._documents.values()
                if document.get(FIELD_DOCUMENT_ID) == document_id
            ),
            key=lambda document: str(document[key_name]),
        )
        index = _KeywordIndex(
            keys=[str(document[key_name]) for document in documents],
            contents=[str(document.get(FIELD_CONTENT, "")) for document in documents],
        )
        self._keyword_indexes[document_id] = index
        return index

    @staticmethod
    def _vector_ranking(
        candidates: dict[str, SearchDocument],
        vector: Sequence[float],
        k_nearest: int,
    ) -> list[str]:
        if not vector or k_nearest <= 0:
            return []

        scored: list[tuple[str, float]] = []
        for key, document in candidates.items():
            stored = document.get(FIELD_CONTENT_VECTOR) or []
            if len(stored) != len(vector):
                raise SearchIndexError(
                    f"Query vector has {len(vector)} dimensions, index stores {len(stored)}"
                )
            scored.append((key, cosine_similarity(vector, stored)))

        scored.sort(key=lambda pair: (-pair[1], pair[0]))
        return [key for key, _ in scored[:k_nearest]]


def _project(document: SearchDocument, select: Sequence[str]) -> SearchDocument:
    return {name: document.get(name) for name in select}
