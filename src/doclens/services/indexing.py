from __future__ import annotations

import logging
from typing import Final

from doclens.retrieval.hybrid_retriever import HybridRetriever
from doclens.schemas.documents import DocumentChunk, PositionCodec
from doclens.schemas.indexing import IndexingJobStatus, IndexingStage
from doclens.services.chunker import DEFAULT_MAX_CHUNK_SIZE, DEFAULT_OVERLAP_SIZE, chunk_document
from doclens.services.embedding_batcher import EmbeddingBatcher
from doclens.services.indexing_status import IndexingStatusStore
from doclens.services.providers import DocumentExtractor

logger = logging.getLogger(__name__)

NO_TEXT_CONTENT_ERROR: Final[str] = "No text content found in document"

_STAGE_PROGRESS: Final[dict[IndexingStage, tuple[int, str]]] = {
    "pending": (0, "Queued for indexing"),
    "extracting": (10, "Extracting text from PDF..."),
    "chunking": (30, "Splitting into chunks..."),
    "embedding": (50, "Generating embeddings..."),
    "indexing": (80, "Indexing in search..."),
    "ready": (100, "Indexing complete"),
}


class IndexingOrchestrator:
    """Run extraction, chunking, embedding and indexing for one document."""

    def __init__(
        self,
        *,
        extractor: DocumentExtractor,
        embedding_batcher: EmbeddingBatcher,
        retriever: HybridRetriever,
        status_store: IndexingStatusStore,
        codec: PositionCodec,
        max_chunk_size: int = DEFAULT_MAX_CHUNK_SIZE,
        overlap_size: int = DEFAULT_OVERLAP_SIZE,
    ) -> None:
        self._extractor = extractor
        self._embedding_batcher = embedding_batcher
        self._retriever = retriever
        self._status_store = status_store
        self._codec = codec
        self._max_chunk_size = max_chunk_size
        self._overlap_size = overlap_size

    async def mark_pending(self, document_id: str) -> IndexingJobStatus:
        return await self._advance(document_id, "pending")

    async def index_document(self, document_id: str, data: bytes) -> IndexingJobStatus:
        """Index one uploaded document, recording progress per stage.

        Failures are logged, recorded as an ``error`` status and re-raised.
        Cancellation is not recorded; the last written stage stays visible.
        """

        logger.info("Indexing started for document_id=%s (%d bytes)", document_id, len(data))
        try:
            await self._retriever.ensure_index_exists()

            await self._advance(document_id, "extracting")
            document = await self._extractor.extract(data, document_id)

            await self._advance(document_id, "chunking")
            chunks = chunk_document(
                document,
                max_chunk_size=self._max_chunk_size,
                overlap_size=self._overlap_size,
            )
            if not chunks:
                logger.warning("No text content found for document_id=%s", document_id)
                return await self._status_store.update_status(
                    document_id=document_id,
                    status="error",
                    progress=0,
                    error=NO_TEXT_CONTENT_ERROR,
                )
            logger.info(
                "Created %d chunks from %d pages for document_id=%s",
                len(chunks),
                len(document.pages),
                document_id,
            )

            await self._advance(document_id, "embedding")
            vectors = await self._embedding_batcher.generate_embeddings(
                [chunk.content for chunk in chunks]
            )

            document_chunks = [
                DocumentChunk.create(
                    document_id=document_id, chunk=chunk, vector=vector, codec=self._codec
                )
                for chunk, vector in zip(chunks, vectors, strict=True)
            ]
            logger.info(
                "%d of %d chunks carry position data for document_id=%s",
                sum(1 for chunk in document_chunks if chunk.positions_json),
                len(document_chunks),
                document_id,
            )

            await self._advance(document_id, "indexing")
            await self._retriever.index_chunks(document_chunks)

            status = await self._advance(document_id, "ready")
            logger.info("Indexing complete for document_id=%s", document_id)
            return status
        except Exception as exc:
            logger.exception("Indexing failed for document_id=%s", document_id)
            await self._status_store.update_status(
                document_id=document_id,
                status="error",
                progress=0,
                error=str(exc) or exc.__class__.__name__,
            )
            raise

    async def index_in_background(self, document_id: str, data: bytes) -> None:
        try:
            await self.index_document(document_id, data)
        except Exception:
            logger.warning(
                "Background indexing ended with an error status for document_id=%s", document_id
            )

    async def _advance(self, document_id: str, stage: IndexingStage) -> IndexingJobStatus:
        progress, message = _STAGE_PROGRESS[stage]
        return await self._status_store.update_status(
            document_id=document_id,
            status=stage,
            progress=progress,
            message=message,
        )
