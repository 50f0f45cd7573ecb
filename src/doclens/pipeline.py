from __future__ import annotations

import asyncio
from dataclasses import dataclass

from openai import AsyncOpenAI

from doclens.config import Settings
from doclens.retrieval.hybrid_retriever import HybridRetriever
from doclens.retrieval.in_memory_index import InMemorySearchIndex
from doclens.retrieval.index_schema import build_chunk_index_definition
from doclens.retrieval.types import SearchIndex
from doclens.schemas.documents import PositionCodec
from doclens.services.chat_sessions import ChatSessionStore, InMemoryChatSessionStore
from doclens.services.embedding_batcher import EmbeddingBatcher, Sleep
from doclens.services.indexing import IndexingOrchestrator
from doclens.services.indexing_status import IndexingStatusStore, InMemoryIndexingStatusStore
from doclens.services.pdf_extraction import PdfExtractor
from doclens.services.prompting import PromptingService
from doclens.services.providers import (
    ChatCompletionProvider,
    DocumentExtractor,
    EmbeddingProvider,
    OpenAIChatCompletionProvider,
    OpenAIEmbeddingProvider,
    build_openai_client,
)
from doclens.services.question_answering import QuestionAnsweringService


@dataclass(frozen=True)
class Pipeline:
    settings: Settings
    codec: PositionCodec
    retriever: HybridRetriever
    embedding_batcher: EmbeddingBatcher
    status_store: IndexingStatusStore
    session_store: ChatSessionStore
    indexing: IndexingOrchestrator
    prompting: PromptingService
    question_answering: QuestionAnsweringService


def build_pipeline(
    settings: Settings,
    *,
    embedding_provider: EmbeddingProvider | None = None,
    chat_provider: ChatCompletionProvider | None = None,
    extractor: DocumentExtractor | None = None,
    search_index: SearchIndex | None = None,
    status_store: IndexingStatusStore | None = None,
    session_store: ChatSessionStore | None = None,
    sleep: Sleep = asyncio.sleep,
) -> Pipeline:
    """Wire the indexing and question-answering services.

    Any collaborator left as ``None`` gets its default: OpenAI providers
    (which need an API key), PyMuPDF extraction and in-memory stores.
    """

    client: AsyncOpenAI | None = None
    if embedding_provider is None or chat_provider is None:
        client = build_openai_client(settings)

    if embedding_provider is None:
        assert client is not None
        embedding_provider = OpenAIEmbeddingProvider(
            client=client,
            model=settings.embedding_model,
            dimensions=settings.embedding_dimensions,
        )
    if chat_provider is None:
        assert client is not None
        chat_provider = OpenAIChatCompletionProvider(client=client, model=settings.chat_model)

    codec = PositionCodec()
    retriever = HybridRetriever(
        index=search_index or InMemorySearchIndex(),
        definition=build_chunk_index_definition(dimensions=settings.embedding_dimensions),
    )
    embedding_batcher = EmbeddingBatcher(
        provider=embedding_provider,
        batch_size=settings.embedding_batch_size,
        inter_batch_delay=settings.embedding_batch_delay_seconds,
        max_attempts=settings.embedding_max_attempts,
        backoff_floor=settings.embedding_backoff_seconds,
        backoff_cap=settings.embedding_max_backoff_seconds,
        sleep=sleep,
    )
    statuses = status_store or InMemoryIndexingStatusStore()
    sessions = session_store or InMemoryChatSessionStore()

    prompting = PromptingService(
        embedding_batcher=embedding_batcher,
        retriever=retriever,
        chat_provider=chat_provider,
        codec=codec,
        top_k=settings.top_k,
        context_window=settings.context_window,
    )
    return Pipeline(
        settings=settings,
        codec=codec,
        retriever=retriever,
        embedding_batcher=embedding_batcher,
        status_store=statuses,
        session_store=sessions,
        indexing=IndexingOrchestrator(
            extractor=extractor or PdfExtractor(),
            embedding_batcher=embedding_batcher,
            retriever=retriever,
            status_store=statuses,
            codec=codec,
            max_chunk_size=settings.max_chunk_size,
            overlap_size=settings.chunk_overlap,
        ),
        prompting=prompting,
        question_answering=QuestionAnsweringService(
            prompting=prompting,
            sessions=sessions,
            history_limit=settings.history_messages,
        ),
    )
