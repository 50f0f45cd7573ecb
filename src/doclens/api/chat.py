from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import aclosing
from typing import Annotated, cast

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import StreamingResponse

from doclens.schemas.errors import ApiErrorResponse, error_json
from doclens.schemas.rag_chat import (
    AskRequest,
    ChatHistoryResponse,
    ChatSessionsResponse,
    format_sse,
)
from doclens.services.chat_sessions import ChatSessionStore
from doclens.services.question_answering import QuestionAnsweringService

_SSE_HEADERS = {
    "cache-control": "no-cache",
    "x-accel-buffering": "no",
}


def _get_question_answering(request: Request) -> QuestionAnsweringService:
    service = getattr(request.app.state, "question_answering", None)
    if service is None:  # pragma: no cover
        raise RuntimeError("Question answering service not configured")
    return cast(QuestionAnsweringService, service)


def _get_session_store(request: Request) -> ChatSessionStore:
    store = getattr(request.app.state, "session_store", None)
    if store is None:  # pragma: no cover
        raise RuntimeError("Chat session store not configured")
    return cast(ChatSessionStore, store)


def build_chat_router() -> APIRouter:
    router = APIRouter(prefix="/v1", tags=["chat"])

    @router.post(
        "/documents/{document_id}/ask",
        response_model=None,
        responses={
            200: {"content": {"text/event-stream": {}}},
            400: {"model": ApiErrorResponse},
        },
        summary="Ask a question about a document (server-sent events)",
    )
    async def ask_question(
        document_id: str,
        request: AskRequest,
        service: Annotated[QuestionAnsweringService, Depends(_get_question_answering)],
    ) -> Response:
        question = (request.question or "").strip()
        if not question:
            return error_json(
                status_code=400, code="question_required", message="Question is required"
            )

        session_id = (request.session_id or "").strip() or None

        async def event_stream() -> AsyncIterator[str]:
            async with aclosing(
                service.ask(document_id=document_id, question=question, session_id=session_id)
            ) as events:
                async for event in events:
                    yield format_sse(event)

        return StreamingResponse(
            event_stream(),
            media_type="text/event-stream",
            headers=_SSE_HEADERS,
        )

    @router.get(
        "/documents/{document_id}/chat-sessions",
        response_model=ChatSessionsResponse,
        summary="List chat sessions for a document, most recent first",
    )
    async def list_chat_sessions(
        document_id: str,
        sessions: Annotated[ChatSessionStore, Depends(_get_session_store)],
    ) -> ChatSessionsResponse:
        return ChatSessionsResponse(
            document_id=document_id,
            sessions=await sessions.list_sessions(document_id),
        )

    @router.get(
        "/chat-sessions/{session_id}",
        response_model=ChatHistoryResponse,
        responses={404: {"model": ApiErrorResponse}},
        summary="Get the messages of a chat session",
    )
    async def get_chat_session(
        session_id: str,
        sessions: Annotated[ChatSessionStore, Depends(_get_session_store)],
    ) -> ChatHistoryResponse | Response:
        session = await sessions.get_session(session_id)
        if session is None:
            return error_json(
                status_code=404, code="session_not_found", message="Chat session not found"
            )
        return ChatHistoryResponse(
            session_id=session.session_id,
            document_id=session.document_id,
            messages=session.messages,
        )

    return router
