from __future__ import annotations


class DocLensError(RuntimeError):
    """Base error for doclens."""


class ConfigurationError(DocLensError):
    """Raised when doclens is misconfigured (e.g., missing API key)."""


class DocumentExtractionError(DocLensError):
    """Raised when a document cannot be parsed into pages."""


class DocumentEncryptedError(DocumentExtractionError):
    """Raised when an encrypted/password-protected document is uploaded."""


class SearchIndexError(DocLensError):
    """Raised when the search index cannot be created, written or queried."""

    def __init__(self, message: str, *, cause: Exception | None = None) -> None:
        super().__init__(message)
        self.__cause__ = cause


class SessionNotFoundError(DocLensError):
    """Raised when a message is appended to a chat session that does not exist."""

    def __init__(self, session_id: str) -> None:
        super().__init__(f"Chat session not found: {session_id}")
        self.session_id = session_id
