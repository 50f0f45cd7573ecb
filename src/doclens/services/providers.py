"""Capabilities the pipeline calls out to, plus their OpenAI implementations."""

from __future__ import annotations

from collections.abc import AsyncGenerator, Sequence
from dataclasses import dataclass
from typing import Any, Literal, Protocol

import httpx
from openai import AsyncOpenAI

from doclens.config import Settings
from doclens.schemas.documents import ExtractedDocument

PromptRole = Literal["system", "user", "assistant"]


@dataclass(frozen=True)
class PromptMessage:
    role: PromptRole
    content: str


class DocumentExtractor(Protocol):
    async def extract(self, data: bytes, document_id: str) -> ExtractedDocument: ...


class EmbeddingProvider(Protocol):
    async def embed(self, texts: Sequence[str]) -> list[list[float]]: ...


class ChatCompletionProvider(Protocol):
    def stream(self, messages: Sequence[PromptMessage]) -> AsyncGenerator[str, None]: ...


def build_openai_client(
    settings: Settings, *, http_client: httpx.AsyncClient | None = None
) -> AsyncOpenAI:
    # EmbeddingBatcher is the only retry layer.
    kwargs: dict[str, Any] = {"api_key": settings.require_openai_api_key(), "max_retries": 0}
    if http_client is not None:
        kwargs["http_client"] = http_client
    if settings.openai_base_url:
        kwargs["base_url"] = settings.openai_base_url
    return AsyncOpenAI(**kwargs)


class OpenAIEmbeddingProvider:
    def __init__(self, *, client: AsyncOpenAI, model: str, dimensions: int | None = None) -> None:
        self._client = client
        self._model = model
        self._dimensions = dimensions

    async def embed(self, texts: Sequence[str]) -> list[list[float]]:
        params: dict[str, Any] = {"model": self._model, "input": list(texts)}
        # Only the text-embedding-3 family accepts an explicit dimension count.
        if self._dimensions and self._model.startswith("text-embedding-3"):
            params["dimensions"] = self._dimensions

        response = await self._client.embeddings.create(**params)
        data = sorted(response.data, key=lambda item: item.index)
        return [list(item.embedding) for item in data]


class OpenAIChatCompletionProvider:
    def __init__(self, *, client: AsyncOpenAI, model: str) -> None:
        self._client = client
        self._model = model

    async def stream(self, messages: Sequence[PromptMessage]) -> AsyncGenerator[str, None]:
        stream = await self._client.chat.completions.create(
            model=self._model,
            messages=[  # type: ignore[misc]
                {"role": message.role, "content": message.content} for message in messages
            ],
            stream=True,
        )
        try:
            async for chunk in stream:
                delta = chunk.choices[0].delta if chunk.choices else None
                if delta is not None and delta.content:
                    yield delta.content
        finally:
            await stream.close()
