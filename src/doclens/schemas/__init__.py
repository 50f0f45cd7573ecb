"""Pydantic schemas and records for the doclens API and pipeline."""

from doclens.schemas.documents import (
    BoundingBox,
    ChunkSearchResult,
    DocumentChunk,
    ExtractedDocument,
    ExtractedPage,
    ExtractedParagraph,
    PositionCodec,
    TextChunk,
    TextPosition,
)
from doclens.schemas.indexing import DocumentUploadResponse, IndexingJobStatus, IndexingStage
from doclens.schemas.rag_chat import (
    AskRequest,
    AskStreamEvent,
    ChatHistoryResponse,
    ChatMessage,
    ChatRole,
    ChatSession,
    ChatSessionSummary,
    PromptContext,
    SourceReference,
)

__all__ = [
    "AskRequest",
    "AskStreamEvent",
    "BoundingBox",
    "ChatHistoryResponse",
    "ChatMessage",
    "ChatRole",
    "ChatSession",
    "ChatSessionSummary",
    "ChunkSearchResult",
    "DocumentChunk",
    "DocumentUploadResponse",
    "ExtractedDocument",
    "ExtractedPage",
    "ExtractedParagraph",
    "IndexingJobStatus",
    "IndexingStage",
    "PositionCodec",
    "PromptContext",
    "SourceReference",
    "TextChunk",
    "TextPosition",
]
