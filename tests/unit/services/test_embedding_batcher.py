from __future__ import annotations

from collections.abc import Sequence

import httpx
import openai
import pytest

from doclens.config import Settings
from doclens.services.embedding_batcher import (
    EmbeddingBatcher,
    is_rate_limit_error,
    parse_retry_after,
)
from doclens.services.providers import OpenAIEmbeddingProvider, build_openai_client


class _RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


class _ScriptedProvider:
    """Raises the queued errors first, then returns one-element vectors."""

    def __init__(self, errors: Sequence[BaseException] = ()) -> None:
        self._errors = list(errors)
        self.calls: list[list[str]] = []

    async def embed(self, texts: Sequence[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        if self._errors:
            raise self._errors.pop(0)
        return [[float(len(text))] for text in texts]


class _ShortProvider:
    async def embed(self, texts: Sequence[str]) -> list[list[float]]:
        return [[0.0]]


def _openai_rate_limit(*, retry_after: str | None = None) -> openai.RateLimitError:
    headers = {"retry-after": retry_after} if retry_after is not None else {}
    request = httpx.Request("POST", "https://api.openai.com/v1/embeddings")
    response = httpx.Response(429, headers=headers, request=request)
    return openai.RateLimitError("Too Many Requests", response=response, body=None)


@pytest.mark.asyncio
async def test_empty_input_makes_no_calls() -> None:
    provider = _ScriptedProvider()
    sleep = _RecordingSleep()
    batcher = EmbeddingBatcher(provider=provider, sleep=sleep)

    assert await batcher.generate_embeddings([]) == []
    assert provider.calls == []
    assert sleep.delays == []


@pytest.mark.asyncio
async def test_twenty_texts_are_sent_as_two_ordered_batches() -> None:
    provider = _ScriptedProvider()
    sleep = _RecordingSleep()
    batcher = EmbeddingBatcher(provider=provider, batch_size=16, inter_batch_delay=0.5, sleep=sleep)
    texts = ["x" * (index + 1) for index in range(20)]

    vectors = await batcher.generate_embeddings(texts)

    assert [len(call) for call in provider.calls] == [16, 4]
    assert provider.calls[0] + provider.calls[1] == texts
    assert vectors == [[float(index + 1)] for index in range(20)]
    # Delay only between batches, never after the last one.
    assert sleep.delays == [0.5]


@pytest.mark.asyncio
async def test_single_batch_never_sleeps() -> None:
    sleep = _RecordingSleep()
    batcher = EmbeddingBatcher(provider=_ScriptedProvider(), sleep=sleep)

    await batcher.generate_embeddings(["a", "b", "c"])

    assert sleep.delays == []


@pytest.mark.asyncio
async def test_rate_limit_retries_with_hint_from_message() -> None:
    provider = _ScriptedProvider(
        [RuntimeError("429 Too Many Requests: please retry after 7 seconds")]
    )
    sleep = _RecordingSleep()
    batcher = EmbeddingBatcher(provider=provider, sleep=sleep)

    vectors = await batcher.generate_embeddings(["hello"])

    assert vectors == [[5.0]]
    assert len(provider.calls) == 2
    assert sleep.delays == [7.0]


@pytest.mark.asyncio
async def test_rate_limit_without_hint_backs_off_sixty_seconds() -> None:
    provider = _ScriptedProvider([RuntimeError("rate limit exceeded")] * 2)
    sleep = _RecordingSleep()
    batcher = EmbeddingBatcher(provider=provider, sleep=sleep)

    await batcher.generate_embeddings(["hello"])

    assert sleep.delays == [60.0, 60.0]


@pytest.mark.asyncio
async def test_openai_rate_limit_uses_retry_after_header() -> None:
    provider = _ScriptedProvider([_openai_rate_limit(retry_after="3")])
    sleep = _RecordingSleep()
    batcher = EmbeddingBatcher(provider=provider, sleep=sleep)

    await batcher.generate_embeddings(["hello"])

    assert sleep.delays == [3.0]


@pytest.mark.asyncio
async def test_exhausted_retries_reraise_the_last_error() -> None:
    errors = [RuntimeError(f"rate limit hit #{attempt}") for attempt in range(10)]
    provider = _ScriptedProvider(errors)
    sleep = _RecordingSleep()
    batcher = EmbeddingBatcher(provider=provider, max_attempts=5, sleep=sleep)

    with pytest.raises(RuntimeError, match="rate limit hit #4"):
        await batcher.generate_embeddings(["hello"])

    assert len(provider.calls) == 5
    assert len(sleep.delays) == 4


@pytest.mark.asyncio
async def test_each_attempt_is_a_single_http_request() -> None:
    requests: list[httpx.Request] = []

    def throttled(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(
            429,
            headers={"retry-after": "2"},
            json={"error": {"message": "Rate limit reached", "type": "requests"}},
        )

    client = build_openai_client(
        Settings(openai_api_key="sk-test"),
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(throttled)),
    )
    provider = OpenAIEmbeddingProvider(client=client, model="text-embedding-3-small")
    sleep = _RecordingSleep()
    batcher = EmbeddingBatcher(provider=provider, max_attempts=5, sleep=sleep)

    with pytest.raises(openai.RateLimitError):
        await batcher.generate_embeddings(["hello"])

    assert client.max_retries == 0
    assert [request.url.path for request in requests] == ["/v1/embeddings"] * 5
    assert sleep.delays == [2.0, 2.0, 2.0, 2.0]


@pytest.mark.asyncio
async def test_other_errors_are_not_retried() -> None:
    provider = _ScriptedProvider([ValueError("bad input")])
    sleep = _RecordingSleep()
    batcher = EmbeddingBatcher(provider=provider, sleep=sleep)

    with pytest.raises(ValueError, match="bad input"):
        await batcher.generate_embeddings(["hello"])

    assert len(provider.calls) == 1
    assert sleep.delays == []


@pytest.mark.asyncio
async def test_vector_count_mismatch_is_rejected() -> None:
    batcher = EmbeddingBatcher(provider=_ShortProvider(), sleep=_RecordingSleep())

    with pytest.raises(ValueError, match="returned 1 vectors"):
        await batcher.generate_embeddings(["a", "b"])


@pytest.mark.parametrize(
    ("kwargs", "message"),
    [
        ({"batch_size": 0}, "batch_size"),
        ({"max_attempts": 0}, "max_attempts"),
    ],
)
def test_invalid_configuration_is_rejected(kwargs: dict[str, int], message: str) -> None:
    with pytest.raises(ValueError, match=message):
        EmbeddingBatcher(provider=_ScriptedProvider(), **kwargs)


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("Rate limit reached. Please retry after 20 seconds.", 20.0),
        ("Retry-After: 1.5", 1.5),
        ("Please try again in 250ms.", 0.25),
        ("quota exceeded", None),
    ],
)
def test_parse_retry_after_reads_message_hints(text: str, expected: float | None) -> None:
    assert parse_retry_after(RuntimeError(text)) == expected


def test_parse_retry_after_falls_back_to_header() -> None:
    assert parse_retry_after(_openai_rate_limit(retry_after="12")) == 12.0
    assert parse_retry_after(_openai_rate_limit()) is None


def test_rate_limit_detection() -> None:
    assert is_rate_limit_error(_openai_rate_limit())
    assert is_rate_limit_error(RuntimeError("Too Many Requests"))
    assert is_rate_limit_error(RuntimeError("RateLimit exceeded for tier"))
    assert not is_rate_limit_error(RuntimeError("connection reset"))
