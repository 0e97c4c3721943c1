"""Retry and reconnect delay schedules."""

from __future__ import annotations

import random
from typing import Any

RETRY_CONFIG: dict[str, Any] = {
    "base_delay": 1.0,  # 1 second
    "max_delay": 30.0,  # 30 seconds cap
    "jitter_factor": 0.2,  # ±20% randomization
    "retryable_statuses": [429, 500, 502, 503, 504],
}

RECONNECT_BASE_DELAY = 1.0
RECONNECT_MAX_DELAY = 16.0


def calculate_delay(attempt: int) -> float:
    """Calculate delay for an HTTP retry with exponential backoff and jitter.

    Args:
        attempt: The retry attempt number (0-indexed).

    Returns:
        Delay in seconds with jitter applied.
    """
    base_delay: float = RETRY_CONFIG["base_delay"]
    max_delay: float = RETRY_CONFIG["max_delay"]
    jitter_factor: float = RETRY_CONFIG["jitter_factor"]

    delay: float = min(base_delay * (2**attempt), max_delay)

    jitter: float = delay * jitter_factor * (2 * random.random() - 1)
    return delay + jitter


def reconnect_delay(attempt: int) -> float:
    """Delay before a real-time reconnect attempt.

    Deterministic (no jitter): 1, 2, 4, 8, 16 seconds for attempts 1-5,
    then 16 seconds for every later attempt.

    Args:
        attempt: The reconnect attempt number (1-indexed).

    Returns:
        Delay in seconds.

    Raises:
        ValueError: If attempt is less than 1.
    """
    if attempt < 1:
        raise ValueError(f"attempt must be >= 1, got {attempt}")
    exponent = min(attempt - 1, 16)
    return min(RECONNECT_BASE_DELAY * (2**exponent), RECONNECT_MAX_DELAY)
