from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import aclosing
from datetime import UTC, datetime
from typing import Final

from doclens.schemas.rag_chat import (
    AskStreamEvent,
    ChatMessage,
    ChunkEvent,
    DoneEvent,
    ErrorEvent,
    SourcesEvent,
)
from doclens.services.chat_sessions import DEFAULT_HISTORY_MESSAGES, ChatSessionStore
from doclens.services.prompting import PromptingService

logger = logging.getLogger(__name__)

GENERIC_ERROR_MESSAGE: Final[str] = "Failed to generate answer"


class QuestionAnsweringService:
    """Answer a question about one document as a stream of events.

    Events arrive as ``chunk`` fragments, then one ``sources`` event, then
    ``done`` with the session id. A failure ends the stream with a single
    ``error`` event; details go to the log only.
    """

    def __init__(
        self,
        *,
        prompting: PromptingService,
        sessions: ChatSessionStore,
        history_limit: int = DEFAULT_HISTORY_MESSAGES,
    ) -> None:
        self._prompting = prompting
        self._sessions = sessions
        self._history_limit = history_limit

    async def ask(
        self,
        *,
        document_id: str,
        question: str,
        session_id: str | None = None,
    ) -> AsyncGenerator[AskStreamEvent, None]:
        try:
            history: list[ChatMessage] | None = None
            if session_id:
                existing = await self._sessions.get_session(session_id)
                if existing is None:
                    await self._sessions.create_session(document_id, session_id=session_id)
                elif existing.document_id != document_id:
                    logger.info(
                        "Session %s belongs to another document; starting a new one for %s",
                        session_id,
                        document_id,
                    )
                    session_id = (await self._sessions.create_session(document_id)).session_id
                else:
                    history = await self._sessions.get_history(
                        session_id, max_messages=self._history_limit
                    )
            else:
                session_id = (await self._sessions.create_session(document_id)).session_id

            context = await self._prompting.build_context(document_id, question, history or None)

            await self._sessions.add_message(
                session_id,
                ChatMessage(role="user", content=question, timestamp=datetime.now(UTC)),
            )

            answer: list[str] = []
            async with aclosing(self._prompting.generate_answer_stream(context)) as fragments:
                async for fragment in fragments:
                    answer.append(fragment)
                    yield ChunkEvent(content=fragment)

            sources = self._prompting.get_source_references(context)
            await self._sessions.add_message(
                session_id,
                ChatMessage(
                    role="assistant",
                    content="".join(answer),
                    timestamp=datetime.now(UTC),
                    sources=sources,
                ),
            )

            yield SourcesEvent(sources=sources)
            yield DoneEvent(session_id=session_id)
            logger.info(
                "Answered question for document_id=%s session_id=%s (%d sources)",
                document_id,
                session_id,
                len(sources),
            )
        except Exception:
            logger.exception(
                "Failed to answer question for document_id=%s session_id=%s",
                document_id,
                session_id,
            )
            yield ErrorEvent(error=GENERIC_ERROR_MESSAGE)
