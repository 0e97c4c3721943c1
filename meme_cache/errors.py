"""Exception classes for meme-cache."""

from __future__ import annotations


class MemeCacheError(Exception):
    """Base exception for all meme-cache errors."""

    def __init__(
        self,
        message: str,
        *,
        code: str,
        status: int | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.status = status


class AuthenticationError(MemeCacheError):
    """Raised for 401 Unauthorized responses."""

    pass


class ValidationError(MemeCacheError):
    """Raised for 400 Bad Request responses and rejected request arguments."""

    pass


class NotFoundError(MemeCacheError):
    """Raised for 404 Not Found responses."""

    pass


class RateLimitError(MemeCacheError):
    """Raised for 429 Too Many Requests responses."""

    def __init__(
        self,
        message: str,
        *,
        code: str,
        status: int | None = None,
        retry_after: int | None = None,
    ) -> None:
        super().__init__(message, code=code, status=status)
        self.retry_after = retry_after


class ServerError(MemeCacheError):
    """Raised for 5xx server errors and unsuccessful operation bodies."""

    pass


class NetworkError(MemeCacheError):
    """Raised for connection failures, timeouts, etc."""

    pass


class PoolTimeoutError(MemeCacheError):
    """Raised when a pooled request exceeds its timeout."""

    pass


class RealtimeConnectionError(MemeCacheError):
    """Raised when the real-time transport cannot connect or has closed."""

    pass
