from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Awaitable, Callable, Sequence

import openai
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)
from tenacity.wait import wait_base

from doclens.services.providers import EmbeddingProvider

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]

_RATE_LIMIT_STATUS = 429
_RATE_LIMIT_MARKERS = ("rate limit", "ratelimit", "too many requests", "quota")
_RETRY_AFTER_RE = re.compile(
    r"(?:retry[\s-]*after|try again in)\s*:?\s*(\d+(?:\.\d+)?)\s*(ms|milliseconds?)?",
    re.IGNORECASE,
)


def is_rate_limit_error(exc: BaseException) -> bool:
    if isinstance(exc, openai.RateLimitError):
        return True
    if getattr(exc, "status_code", None) == _RATE_LIMIT_STATUS:
        return True
    message = str(exc).lower()
    return any(marker in message for marker in _RATE_LIMIT_MARKERS)


def parse_retry_after(exc: BaseException) -> float | None:
    """Seconds the provider asked us to wait, if the error says so."""

    match = _RETRY_AFTER_RE.search(str(exc))
    if match is not None:
        seconds = float(match.group(1))
        if match.group(2):
            seconds /= 1000.0
        return seconds

    response = getattr(exc, "response", None)
    headers = getattr(response, "headers", None)
    if headers is not None:
        header = headers.get("retry-after")
        if header:
            try:
                return float(header)
            except ValueError:
                return None
    return None


class wait_retry_after(wait_base):
    """Wait for the provider's retry-after hint, else back off exponentially."""

    def __init__(self, *, floor: float, cap: float) -> None:
        self._fallback = wait_exponential(multiplier=floor, max=cap)

    def __call__(self, retry_state: RetryCallState) -> float:
        outcome = retry_state.outcome
        if outcome is not None and outcome.failed:
            exc = outcome.exception()
            if exc is not None:
                hint = parse_retry_after(exc)
                if hint is not None:
                    return hint
        return self._fallback(retry_state)


class EmbeddingBatcher:
    """Embed arbitrarily long text lists in sequential, rate-limited batches."""

    def __init__(
        self,
        *,
        provider: EmbeddingProvider,
        batch_size: int = 16,
        inter_batch_delay: float = 0.5,
        max_attempts: int = 5,
        backoff_floor: float = 60.0,
        backoff_cap: float = 60.0,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        if batch_size <= 0:
            raise ValueError("batch_size must be greater than zero")
        if max_attempts <= 0:
            raise ValueError("max_attempts must be greater than zero")

        self._provider = provider
        self._batch_size = batch_size
        self._inter_batch_delay = inter_batch_delay
        self._max_attempts = max_attempts
        self._backoff_floor = backoff_floor
        self._backoff_cap = backoff_cap
        self._sleep = sleep

    async def generate_embeddings(self, texts: Sequence[str]) -> list[list[float]]:
        if not texts:
            return []

        batches = [
            list(texts[offset : offset + self._batch_size])
            for offset in range(0, len(texts), self._batch_size)
        ]

        vectors: list[list[float]] = []
        for number, batch in enumerate(batches, start=1):
            if number > 1:
                await self._sleep(self._inter_batch_delay)

            batch_vectors = await self._embed_batch(batch)
            if len(batch_vectors) != len(batch):
                raise ValueError(
                    f"Embedding provider returned {len(batch_vectors)} vectors "
                    f"for a batch of {len(batch)} texts"
                )
            vectors.extend(batch_vectors)
            logger.debug("Embedded batch %d/%d (%d texts)", number, len(batches), len(batch))

        return vectors

    async def _embed_batch(self, batch: list[str]) -> list[list[float]]:
        retrying = AsyncRetrying(
            retry=retry_if_exception(is_rate_limit_error),
            stop=stop_after_attempt(self._max_attempts),
            wait=wait_retry_after(floor=self._backoff_floor, cap=self._backoff_cap),
            sleep=self._sleep,
            before_sleep=_log_rate_limited,
            reraise=True,
        )
        return await retrying(self._provider.embed, batch)


def _log_rate_limited(retry_state: RetryCallState) -> None:
    wait = retry_state.next_action.sleep if retry_state.next_action else 0.0
    logger.warning(
        "Embedding rate limited (attempt %d); retrying in %.1fs",
        retry_state.attempt_number,
        wait,
    )
