"""HTTP helpers shared by the API client and the real-time transport."""

from __future__ import annotations

import contextlib
import sys
from typing import Any

from meme_cache.errors import (
    AuthenticationError,
    MemeCacheError,
    NotFoundError,
    RateLimitError,
    ServerError,
    ValidationError,
)

VERSION = "0.1.0"


def map_status_to_error(
    status: int,
    body: dict[str, Any],
    headers: dict[str, str],
) -> MemeCacheError:
    """Map HTTP status code to appropriate exception.

    Args:
        status: HTTP status code.
        body: Response body as dict.
        headers: Response headers.

    Returns:
        Appropriate MemeCacheError subclass instance.
    """
    message = body.get("error", "Unknown error")

    if status == 400:
        return ValidationError(
            message=message,
            code="validation_error",
            status=status,
        )
    elif status == 401:
        return AuthenticationError(
            message=message,
            code="authentication_error",
            status=status,
        )
    elif status == 404:
        return NotFoundError(
            message=message,
            code="not_found",
            status=status,
        )
    elif status == 429:
        retry_after: int | None = None
        retry_after_header = headers.get("retry-after")
        if retry_after_header is not None:
            with contextlib.suppress(ValueError):
                retry_after = int(retry_after_header)
        return RateLimitError(
            message=message,
            code="rate_limit_error",
            status=status,
            retry_after=retry_after,
        )
    elif status >= 500:
        return ServerError(
            message=message,
            code="server_error",
            status=status,
        )
    else:
        return MemeCacheError(
            message=message,
            code="unknown_error",
            status=status,
        )


def build_headers(api_key: str | None = None) -> dict[str, str]:
    """Build HTTP request headers.

    Args:
        api_key: Optional bearer token.

    Returns:
        Dict of headers to include in requests.
    """
    python_version = f"{sys.version_info.major}.{sys.version_info.minor}"
    headers = {
        "Content-Type": "application/json",
        "Accept": "application/json",
        "User-Agent": f"meme-cache/{VERSION} python/{python_version}",
    }
    if api_key:
        headers["Authorization"] = f"Bearer {api_key}"
    return headers
