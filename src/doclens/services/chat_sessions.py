from __future__ import annotations

import threading
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime

from doclens.errors import SessionNotFoundError
from doclens.schemas.rag_chat import (
    ChatMessage,
    ChatSession,
    ChatSessionSummary,
    SourceReference,
)

DEFAULT_HISTORY_MESSAGES = 10


class ChatSessionStore:
    """Store interface for chat sessions and their messages."""

    async def create_session(
        self, document_id: str, *, session_id: str | None = None
    ) -> ChatSession:  # pragma: no cover
        raise NotImplementedError

    async def get_session(self, session_id: str) -> ChatSession | None:  # pragma: no cover
        raise NotImplementedError

    async def add_message(
        self, session_id: str, message: ChatMessage
    ) -> None:  # pragma: no cover
        raise NotImplementedError

    async def get_history(
        self, session_id: str, *, max_messages: int = DEFAULT_HISTORY_MESSAGES
    ) -> list[ChatMessage]:  # pragma: no cover
        raise NotImplementedError

    async def list_sessions(self, document_id: str) -> list[ChatSessionSummary]:  # pragma: no cover
        raise NotImplementedError


def compact_sources(sources: list[SourceReference] | None) -> list[SourceReference] | None:
    """Reduce stored assistant sources to page and score."""

    if sources is None:
        return None
    return [
        SourceReference(page=source.page, text="", relevance_score=source.relevance_score)
        for source in sources
    ]


@dataclass
class _SessionRecord:
    session_id: str
    document_id: str
    created_at: datetime
    updated_at: datetime
    messages: list[ChatMessage] = field(default_factory=list)
    revision: int = 0

    def snapshot(self) -> ChatSession:
        return ChatSession(
            session_id=self.session_id,
            document_id=self.document_id,
            messages=list(self.messages),
            created_at=self.created_at,
            updated_at=self.updated_at,
        )

    def summary(self) -> ChatSessionSummary:
        return ChatSessionSummary(
            session_id=self.session_id,
            document_id=self.document_id,
            message_count=len(self.messages),
            created_at=self.created_at,
            updated_at=self.updated_at,
        )


class InMemoryChatSessionStore(ChatSessionStore):
    """In-memory conversation store keyed by session id."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._sessions: dict[str, _SessionRecord] = {}
        self._revision = 0

    async def create_session(
        self, document_id: str, *, session_id: str | None = None
    ) -> ChatSession:
        now = datetime.now(UTC)
        record = _SessionRecord(
            session_id=session_id or uuid.uuid4().hex,
            document_id=document_id,
            created_at=now,
            updated_at=now,
        )
        with self._lock:
            self._revision += 1
            record.revision = self._revision
            self._sessions[record.session_id] = record
            return record.snapshot()

    async def get_session(self, session_id: str) -> ChatSession | None:
        with self._lock:
            record = self._sessions.get(session_id)
            return record.snapshot() if record is not None else None

    async def add_message(self, session_id: str, message: ChatMessage) -> None:
        if message.role == "assistant" and message.sources:
            message = message.model_copy(update={"sources": compact_sources(message.sources)})

        with self._lock:
            record = self._sessions.get(session_id)
            if record is None:
                raise SessionNotFoundError(session_id)
            record.messages.append(message)
            record.updated_at = datetime.now(UTC)
            self._revision += 1
            record.revision = self._revision

    async def get_history(
        self, session_id: str, *, max_messages: int = DEFAULT_HISTORY_MESSAGES
    ) -> list[ChatMessage]:
        with self._lock:
            record = self._sessions.get(session_id)
            if record is None or max_messages <= 0:
                return []
            return list(record.messages[-max_messages:])

    async def list_sessions(self, document_id: str) -> list[ChatSessionSummary]:
        with self._lock:
            records = [
                record for record in self._sessions.values() if record.document_id == document_id
            ]
            records.sort(key=lambda record: (record.updated_at, record.revision), reverse=True)
            return [record.summary() for record in records]
