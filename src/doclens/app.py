from __future__ import annotations

import asyncio
from typing import Final

import uvicorn
from fastapi import FastAPI

from doclens import __version__
from doclens.api import build_chat_router, build_documents_router, build_health_router
from doclens.config import Settings, load_settings
from doclens.logging_config import configure_logging
from doclens.pipeline import build_pipeline
from doclens.retrieval.types import SearchIndex
from doclens.services.chat_sessions import ChatSessionStore
from doclens.services.embedding_batcher import Sleep
from doclens.services.indexing_status import IndexingStatusStore
from doclens.services.providers import (
    ChatCompletionProvider,
    DocumentExtractor,
    EmbeddingProvider,
)

DEFAULT_SERVICE_NAME: Final[str] = "doclens"


def create_app(
    *,
    service_name: str = DEFAULT_SERVICE_NAME,
    settings: Settings | None = None,
    embedding_provider: EmbeddingProvider | None = None,
    chat_provider: ChatCompletionProvider | None = None,
    extractor: DocumentExtractor | None = None,
    search_index: SearchIndex | None = None,
    status_store: IndexingStatusStore | None = None,
    session_store: ChatSessionStore | None = None,
    sleep: Sleep = asyncio.sleep,
) -> FastAPI:
    normalized_service_name = service_name.strip()
    if not normalized_service_name:
        raise ValueError("service_name must not be empty")

    app = FastAPI(
        title="doclens",
        version=__version__,
    )

    # Shared state.
    pipeline = build_pipeline(
        settings or load_settings(),
        embedding_provider=embedding_provider,
        chat_provider=chat_provider,
        extractor=extractor,
        search_index=search_index,
        status_store=status_store,
        session_store=session_store,
        sleep=sleep,
    )
    app.state.pipeline = pipeline
    app.state.indexing = pipeline.indexing
    app.state.status_store = pipeline.status_store
    app.state.session_store = pipeline.session_store
    app.state.question_answering = pipeline.question_answering

    app.include_router(
        build_health_router(service_name=normalized_service_name, version=__version__)
    )
    app.include_router(build_documents_router())
    app.include_router(build_chat_router())
    return app


def main() -> None:
    settings = load_settings()
    configure_logging(level=settings.log_level)
    settings.require_openai_api_key()

    uvicorn.run(
        "doclens.app:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        reload=False,
        log_config=None,
    )
