from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from doclens.schemas.documents import ChunkSearchResult, TextPosition

ChatRole = Literal["user", "assistant"]

_WIRE_CONFIG = ConfigDict(extra="forbid", alias_generator=to_camel, populate_by_name=True)


class AskRequest(BaseModel):
    model_config = _WIRE_CONFIG

    question: str | None = Field(default=None, description="Question about the document")
    session_id: str | None = Field(
        default=None, description="Existing chat session to continue; omitted starts a new one"
    )


class SourceReference(BaseModel):
    model_config = _WIRE_CONFIG

    page: int = Field(..., ge=1)
    text: str = Field(..., description="Preview of the cited chunk")
    positions: list[TextPosition] | None = None
    relevance_score: float


class ChatMessage(BaseModel):
    model_config = _WIRE_CONFIG

    role: ChatRole
    content: str
    timestamp: datetime
    sources: list[SourceReference] | None = None


class ChatSession(BaseModel):
    model_config = _WIRE_CONFIG

    session_id: str
    document_id: str
    messages: list[ChatMessage] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


class ChatSessionSummary(BaseModel):
    model_config = _WIRE_CONFIG

    session_id: str
    document_id: str
    message_count: int = Field(..., ge=0)
    created_at: datetime
    updated_at: datetime


class ChatSessionsResponse(BaseModel):
    model_config = _WIRE_CONFIG

    document_id: str
    sessions: list[ChatSessionSummary]


class ChatHistoryResponse(BaseModel):
    model_config = _WIRE_CONFIG

    session_id: str
    document_id: str
    messages: list[ChatMessage]


@dataclass(frozen=True)
class PromptContext:
    question: str
    relevant_chunks: list[ChunkSearchResult]
    chat_history: list[ChatMessage] | None = None


# Stream events for the ask operation. ``event`` names the SSE event; the rest
# of the model is the event's JSON data.


class ChunkEvent(BaseModel):
    model_config = _WIRE_CONFIG

    event: Literal["chunk"] = "chunk"
    content: str


class SourcesEvent(BaseModel):
    model_config = _WIRE_CONFIG

    event: Literal["sources"] = "sources"
    sources: list[SourceReference]


class DoneEvent(BaseModel):
    model_config = _WIRE_CONFIG

    event: Literal["done"] = "done"
    session_id: str


class ErrorEvent(BaseModel):
    model_config = _WIRE_CONFIG

    event: Literal["error"] = "error"
    error: str


AskStreamEvent = ChunkEvent | SourcesEvent | DoneEvent | ErrorEvent


def format_sse(event: AskStreamEvent) -> str:
    data = event.model_dump_json(by_alias=True, exclude={"event"})
    return f"event: {event.event}\ndata: {data}\n\n"
