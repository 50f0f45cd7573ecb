from __future__ import annotations

import asyncio
import re
import zlib
from collections.abc import AsyncGenerator, AsyncIterator, Callable, Sequence

import pymupdf
import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from doclens.app import create_app
from doclens.config import Settings
from doclens.services.providers import PromptMessage

TEST_DIMENSIONS = 16

_WORD_RE = re.compile(r"[a-z0-9]+")


def embed_text(text: str, dimensions: int = TEST_DIMENSIONS) -> list[float]:
    """Bag-of-words vector: texts sharing words end up close in cosine terms."""

    vector = [0.0] * dimensions
    for word in _WORD_RE.findall(text.lower()):
        vector[zlib.crc32(word.encode("utf-8")) % dimensions] += 1.0
    return vector


class FakeEmbeddingProvider:
    def __init__(self, *, dimensions: int = TEST_DIMENSIONS) -> None:
        self._dimensions = dimensions
        self.calls: list[list[str]] = []

    async def embed(self, texts: Sequence[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        return [embed_text(text, self._dimensions) for text in texts]


class FakeChatProvider:
    def __init__(self, *, fragments: Sequence[str] = ("The answer ", "is on page 1.")) -> None:
        self._fragments = list(fragments)
        self.calls: list[list[PromptMessage]] = []
        self.closed = 0

    async def stream(self, messages: Sequence[PromptMessage]) -> AsyncGenerator[str, None]:
        self.calls.append(list(messages))
        try:
            for fragment in self._fragments:
                await asyncio.sleep(0)
                yield fragment
        finally:
            self.closed += 1


def build_pdf(pages: Sequence[Sequence[str]]) -> bytes:
    """Build a PDF where each inner sequence is one page of paragraphs."""

    document = pymupdf.open()
    try:
        for paragraphs in pages:
            page = document.new_page()
            top = 72.0
            for paragraph in paragraphs:
                page.insert_textbox(pymupdf.Rect(72, top, 523, top + 110), paragraph, fontsize=10)
                top += 140.0
        return document.tobytes()
    finally:
        document.close()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        openai_api_key="test-key",
        embedding_dimensions=TEST_DIMENSIONS,
        embedding_batch_delay_seconds=0.0,
    )


@pytest.fixture
def embedding_provider() -> FakeEmbeddingProvider:
    return FakeEmbeddingProvider()


@pytest.fixture
def chat_provider() -> FakeChatProvider:
    return FakeChatProvider()


@pytest.fixture
def make_pdf() -> Callable[[Sequence[Sequence[str]]], bytes]:
    return build_pdf


@pytest.fixture
def app(
    settings: Settings,
    embedding_provider: FakeEmbeddingProvider,
    chat_provider: FakeChatProvider,
) -> FastAPI:
    return create_app(
        service_name="doclens-test",
        settings=settings,
        embedding_provider=embedding_provider,
        chat_provider=chat_provider,
    )


@pytest_asyncio.fixture()
async def client(app: FastAPI) -> AsyncIterator[AsyncClient]:
    transport = ASGITransport(app=app)
    async with AsyncClient(
        transport=transport,
        base_url="http://testserver",
    ) as async_client:
        yield async_client
