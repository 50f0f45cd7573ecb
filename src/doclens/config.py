from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Final

from doclens.errors import ConfigurationError

DEFAULT_EMBEDDING_MODEL: Final[str] = "text-embedding-3-small"
DEFAULT_EMBEDDING_DIMENSIONS: Final[int] = 1536
DEFAULT_CHAT_MODEL: Final[str] = "gpt-4o-mini"
DEFAULT_HOST: Final[str] = "0.0.0.0"
DEFAULT_PORT: Final[int] = 8000

_OPENAI_API_KEY_ENV = "OPENAI_API_KEY"
_AZURE_OPENAI_API_KEY_ENV = "AZURE_OPENAI_API_KEY"
_OPENAI_BASE_URL_ENV = "OPENAI_BASE_URL"
_AZURE_OPENAI_ENDPOINT_ENV = "AZURE_OPENAI_ENDPOINT"


@dataclass(frozen=True)
class Settings:
    openai_api_key: str | None = None
    openai_base_url: str | None = None
    embedding_model: str = DEFAULT_EMBEDDING_MODEL
    embedding_dimensions: int = DEFAULT_EMBEDDING_DIMENSIONS
    chat_model: str = DEFAULT_CHAT_MODEL
    embedding_batch_size: int = 16
    embedding_batch_delay_seconds: float = 0.5
    embedding_max_attempts: int = 5
    embedding_backoff_seconds: float = 60.0
    embedding_max_backoff_seconds: float = 60.0
    max_chunk_size: int = 2000
    chunk_overlap: int = 200
    top_k: int = 5
    context_window: int = 1
    history_messages: int = 10
    log_level: str = "INFO"
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT

    def require_openai_api_key(self) -> str:
        if not self.openai_api_key:
            raise ConfigurationError(
                "Missing OpenAI API key. Set OPENAI_API_KEY or AZURE_OPENAI_API_KEY."
            )
        return self.openai_api_key


def _read_non_empty(env: Mapping[str, str], *names: str) -> str | None:
    for name in names:
        value = env.get(name, "").strip()
        if value:
            return value
    return None


def _read_str(env: Mapping[str, str], name: str, default: str) -> str:
    configured = env.get(name, default).strip()
    if not configured:
        raise ConfigurationError(f"{name} must not be empty")
    return configured


def _read_int(env: Mapping[str, str], name: str, default: int, *, minimum: int = 1) -> int:
    configured = _read_str(env, name, str(default))
    try:
        value = int(configured)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be an integer, got {configured!r}") from exc

    if value < minimum:
        raise ConfigurationError(f"{name} must be at least {minimum}")
    return value


def _read_float(
    env: Mapping[str, str], name: str, default: float, *, minimum: float = 0.0
) -> float:
    configured = _read_str(env, name, str(default))
    try:
        value = float(configured)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be a number, got {configured!r}") from exc

    if value < minimum:
        raise ConfigurationError(f"{name} must be at least {minimum}")
    return value


def _azure_endpoint_to_base_url(endpoint: str) -> str:
    normalized = endpoint.strip().rstrip("/")
    if normalized.endswith("/openai/v1"):
        return normalized + "/"
    if normalized.endswith("/openai"):
        return normalized + "/v1/"
    return normalized + "/openai/v1/"


def _resolve_base_url(env: Mapping[str, str]) -> str | None:
    configured = _read_non_empty(env, _OPENAI_BASE_URL_ENV)
    if configured:
        return configured

    azure_endpoint = _read_non_empty(env, _AZURE_OPENAI_ENDPOINT_ENV)
    if azure_endpoint:
        return _azure_endpoint_to_base_url(azure_endpoint)

    return None


def load_settings(environ: Mapping[str, str] | None = None) -> Settings:
    """Read settings from the environment.

    Missing variables fall back to the defaults on ``Settings``; present but
    empty or out-of-range values raise ``ConfigurationError``.
    """

    env = os.environ if environ is None else environ
    return Settings(
        openai_api_key=_read_non_empty(env, _OPENAI_API_KEY_ENV, _AZURE_OPENAI_API_KEY_ENV),
        openai_base_url=_resolve_base_url(env),
        embedding_model=_read_str(env, "DOCLENS_EMBEDDING_MODEL", DEFAULT_EMBEDDING_MODEL),
        embedding_dimensions=_read_int(
            env, "DOCLENS_EMBEDDING_DIMENSIONS", DEFAULT_EMBEDDING_DIMENSIONS
        ),
        chat_model=_read_str(env, "DOCLENS_CHAT_MODEL", DEFAULT_CHAT_MODEL),
        embedding_batch_size=_read_int(env, "DOCLENS_EMBEDDING_BATCH_SIZE", 16),
        embedding_batch_delay_seconds=_read_float(
            env, "DOCLENS_EMBEDDING_BATCH_DELAY_SECONDS", 0.5
        ),
        embedding_max_attempts=_read_int(env, "DOCLENS_EMBEDDING_MAX_ATTEMPTS", 5),
        embedding_backoff_seconds=_read_float(env, "DOCLENS_EMBEDDING_BACKOFF_SECONDS", 60.0),
        embedding_max_backoff_seconds=_read_float(
            env, "DOCLENS_EMBEDDING_MAX_BACKOFF_SECONDS", 60.0
        ),
        max_chunk_size=_read_int(env, "DOCLENS_MAX_CHUNK_SIZE", 2000),
        chunk_overlap=_read_int(env, "DOCLENS_CHUNK_OVERLAP", 200, minimum=0),
        top_k=_read_int(env, "DOCLENS_TOP_K", 5),
        context_window=_read_int(env, "DOCLENS_CONTEXT_WINDOW", 1, minimum=0),
        history_messages=_read_int(env, "DOCLENS_HISTORY_MESSAGES", 10, minimum=0),
        log_level=_read_str(env, "DOCLENS_LOG_LEVEL", "INFO").upper(),
        host=_read_str(env, "DOCLENS_HOST", DEFAULT_HOST),
        port=_read_int(env, "DOCLENS_PORT", DEFAULT_PORT),
    )
