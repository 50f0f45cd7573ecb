from __future__ import annotations

import logging
from collections.abc import AsyncGenerator

import pytest

from doclens.schemas.rag_chat import (
    AskStreamEvent,
    ChatMessage,
    ChunkEvent,
    DoneEvent,
    ErrorEvent,
    PromptContext,
    SourceReference,
    SourcesEvent,
)
from doclens.services.chat_sessions import InMemoryChatSessionStore
from doclens.services.question_answering import GENERIC_ERROR_MESSAGE, QuestionAnsweringService


class _StubPrompting:
    def __init__(
        self,
        *,
        fragments: tuple[str, ...] = ("Revenue ", "grew."),
        fail_in_context: bool = False,
        fail_after: int | None = None,
    ) -> None:
        self._fragments = fragments
        self._fail_in_context = fail_in_context
        self._fail_after = fail_after
        self.histories: list[list[ChatMessage] | None] = []

    async def build_context(
        self,
        document_id: str,
        question: str,
        chat_history: list[ChatMessage] | None = None,
    ) -> PromptContext:
        if self._fail_in_context:
            raise RuntimeError("search backend exploded with secret details")
        self.histories.append(chat_history)
        return PromptContext(question=question, relevant_chunks=[], chat_history=chat_history)

    async def generate_answer_stream(self, context: PromptContext) -> AsyncGenerator[str, None]:
        for position, fragment in enumerate(self._fragments):
            if self._fail_after is not None and position >= self._fail_after:
                raise RuntimeError("model stream dropped")
            yield fragment

    def get_source_references(self, context: PromptContext) -> list[SourceReference]:
        return [SourceReference(page=2, text="Revenue grew 12%.", relevance_score=0.9)]


def _service(
    prompting: _StubPrompting, sessions: InMemoryChatSessionStore | None = None
) -> tuple[QuestionAnsweringService, InMemoryChatSessionStore]:
    store = sessions or InMemoryChatSessionStore()
    service = QuestionAnsweringService(
        prompting=prompting,  # type: ignore[arg-type]
        sessions=store,
        history_limit=10,
    )
    return service, store


async def _collect(stream: AsyncGenerator[AskStreamEvent, None]) -> list[AskStreamEvent]:
    return [event async for event in stream]


@pytest.mark.asyncio
async def test_events_stream_chunks_then_sources_then_done() -> None:
    service, store = _service(_StubPrompting())

    events = await _collect(service.ask(document_id="doc-1", question="How did revenue do?"))

    assert [event.event for event in events] == ["chunk", "chunk", "sources", "done"]
    assert [event.content for event in events if isinstance(event, ChunkEvent)] == [
        "Revenue ",
        "grew.",
    ]
    sources = events[2]
    assert isinstance(sources, SourcesEvent)
    assert sources.sources[0].text == "Revenue grew 12%."

    done = events[-1]
    assert isinstance(done, DoneEvent)
    session = await store.get_session(done.session_id)
    assert session is not None
    assert session.document_id == "doc-1"
    assert [(message.role, message.content) for message in session.messages] == [
        ("user", "How did revenue do?"),
        ("assistant", "Revenue grew."),
    ]
    # Stored assistant sources keep page and score only.
    assert session.messages[1].sources == [
        SourceReference(page=2, text="", relevance_score=0.9)
    ]


@pytest.mark.asyncio
async def test_existing_session_passes_history_and_keeps_id() -> None:
    prompting = _StubPrompting()
    service, store = _service(prompting)
    first = await _collect(service.ask(document_id="doc-1", question="First?"))
    session_id = first[-1].session_id  # type: ignore[union-attr]

    second = await _collect(
        service.ask(document_id="doc-1", question="Second?", session_id=session_id)
    )

    assert second[-1] == DoneEvent(session_id=session_id)
    assert prompting.histories[0] is None
    history = prompting.histories[1]
    assert history is not None
    assert [message.content for message in history] == ["First?", "Revenue grew."]

    session = await store.get_session(session_id)
    assert session is not None
    assert len(session.messages) == 4


@pytest.mark.asyncio
async def test_unknown_session_id_starts_session_under_that_id() -> None:
    prompting = _StubPrompting()
    service, store = _service(prompting)

    events = await _collect(
        service.ask(document_id="doc-1", question="Hi?", session_id="client-chosen")
    )

    assert events[-1] == DoneEvent(session_id="client-chosen")
    assert prompting.histories == [None]
    session = await store.get_session("client-chosen")
    assert session is not None
    assert session.document_id == "doc-1"


@pytest.mark.asyncio
async def test_session_of_another_document_is_not_reused() -> None:
    prompting = _StubPrompting()
    service, store = _service(prompting)
    first = await _collect(service.ask(document_id="doc-1", question="First?"))
    foreign_id = first[-1].session_id  # type: ignore[union-attr]

    events = await _collect(
        service.ask(document_id="doc-2", question="Other?", session_id=foreign_id)
    )

    done = events[-1]
    assert isinstance(done, DoneEvent)
    assert done.session_id != foreign_id
    assert prompting.histories == [None, None]

    fresh = await store.get_session(done.session_id)
    assert fresh is not None
    assert fresh.document_id == "doc-2"
    assert [message.content for message in fresh.messages] == ["Other?", "Revenue grew."]
    original = await store.get_session(foreign_id)
    assert original is not None
    assert len(original.messages) == 2


@pytest.mark.asyncio
async def test_failure_before_streaming_yields_single_generic_error(caplog) -> None:
    service, _ = _service(_StubPrompting(fail_in_context=True))

    with caplog.at_level(logging.ERROR, logger="doclens.services.question_answering"):
        events = await _collect(service.ask(document_id="doc-1", question="Q?"))

    assert events == [ErrorEvent(error=GENERIC_ERROR_MESSAGE)]
    assert "secret details" not in events[0].model_dump_json()
    assert any("Failed to answer question" in record.message for record in caplog.records)


@pytest.mark.asyncio
async def test_failure_mid_stream_ends_with_error_and_no_done() -> None:
    service, store = _service(_StubPrompting(fragments=("a", "b", "c"), fail_after=1))

    events = await _collect(service.ask(document_id="doc-1", question="Q?"))

    assert [event.event for event in events] == ["chunk", "error"]
    sessions = await store.list_sessions("doc-1")
    assert len(sessions) == 1
    # The question is kept; no assistant message is recorded.
    assert sessions[0].message_count == 1
