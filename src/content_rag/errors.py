"""
Exception types raised by the RAG core.
"""

from __future__ import annotations


class RagError(Exception):
    """Base class for errors raised by content_rag."""


class InvalidInputError(RagError, ValueError):
    """Raised when non-empty text is required but none was given."""


class DimensionMismatchError(RagError, ValueError):
    """Raised when two vectors of different lengths are compared."""


class CredentialError(RagError):
    """Raised when no usable embedding API key can be resolved."""


class NotFoundError(RagError, LookupError):
    """Raised when a document is missing or not owned by the caller."""


class ProviderError(RagError):
    """Raised when the embedding provider fails or answers with a malformed body."""

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code

    def __repr__(self) -> str:
        return (
            f"ProviderError(message={self.message!r}, code={self.code!r}, "
            f"status_code={self.status_code!r})"
        )
