"""doclens: ask questions about PDF documents and get cited answers."""

from doclens.errors import (
    ConfigurationError,
    DocLensError,
    DocumentEncryptedError,
    DocumentExtractionError,
    SearchIndexError,
    SessionNotFoundError,
)

__version__ = "0.1.0"

__all__ = [
    "ConfigurationError",
    "DocLensError",
    "DocumentEncryptedError",
    "DocumentExtractionError",
    "SearchIndexError",
    "SessionNotFoundError",
    "__version__",
]
