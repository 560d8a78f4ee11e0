"""
Exceptions for the codebase indexing engine.

Per-item failures (a file that cannot be read, a chunk that cannot be
embedded) are collected into ProcessingStats.errors by the indexer; the
exceptions below are what reaches callers for systemic failures.
"""

from typing import Optional


class CodeIndexError(Exception):
    """Base exception for codeindex errors."""
    pass


class ConfigurationError(CodeIndexError):
    """Raised when the indexer configuration is missing or invalid."""
    pass


class WalkError(CodeIndexError):
    """Raised when the project root itself cannot be enumerated."""
    pass


class StoreError(CodeIndexError):
    """Raised when the vector record store cannot be read or written."""
    pass


class RequestCancelledError(CodeIndexError):
    """Raised when a streaming request is cancelled by the caller."""
    pass


class EmbeddingError(CodeIndexError):
    """Base class for failures talking to the model server."""
    pass


class ServiceUnavailableError(EmbeddingError):
    """Raised when the model server cannot be reached at all."""

    def __init__(self, base_url: str, reason: Optional[str] = None):
        message = (
            f"Unable to connect to the model service at {base_url}. "
            f"Make sure Ollama is running and listening on {base_url}"
        )
        if reason:
            message += f" ({reason})"
        super().__init__(message)
        self.base_url = base_url


class EmbeddingTimeoutError(EmbeddingError):
    """Raised when the model server accepted the request but did not answer in time."""

    def __init__(self, base_url: str, timeout: float):
        super().__init__(f"Request to {base_url} timed out after {timeout:g}s")
        self.base_url = base_url
        self.timeout = timeout


class EmbeddingAPIError(EmbeddingError):
    """Raised when the model server answers with a non-2xx status."""

    def __init__(self, status_code: int, reason: str = "", url: str = ""):
        message = f"Ollama API error: {status_code}"
        if reason:
            message += f" {reason}"
        if url:
            message += f" ({url})"
        super().__init__(message)
        self.status_code = status_code
        self.reason = reason
        self.url = url


class EmbeddingProtocolError(EmbeddingError):
    """Raised when the model server response does not have the expected shape."""
    pass
