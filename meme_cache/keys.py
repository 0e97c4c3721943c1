"""Cache key generation."""

import json
import struct
from typing import Any, Optional

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def hash_string(text: str) -> str:
    """Fold text into a short base-36 token.

    Fast, non-cryptographic 31-multiplier hash over UTF-16 code units,
    truncated to a signed 32-bit integer at every step. The result matches
    the keys produced by the web client, so both sides can share a cache.

    Args:
        text: Arbitrary-length input

    Returns:
        Base-36 string of the absolute hash value
    """
    if not text:
        return "0"

    encoded = text.encode("utf-16-le", "surrogatepass")
    units = struct.unpack(f"<{len(encoded) // 2}H", encoded)

    h = 0
    for unit in units:
        h = ((h << 5) - h + unit) & 0xFFFFFFFF
    # back to signed 32-bit
    if h >= 0x80000000:
        h -= 0x100000000
    return _to_base36(abs(h))


def canonical_json(value: Any) -> str:
    """JSON encoding with sorted keys so equal mappings give equal keys."""
    return json.dumps(value, sort_keys=True, separators=(",", ":"), default=str)


def text_embedding_key(text: str) -> str:
    return f"txt:{hash_string(text)}"


def image_embedding_key(checksum: str) -> str:
    return f"img:{checksum}"


def search_results_key(user_id: str, query: str, filters: Optional[dict] = None) -> str:
    filter_key = canonical_json(filters or {})
    return f"search:{user_id}:{hash_string(query)}:{hash_string(filter_key)}"


def asset_list_key(user_id: str, params: Optional[dict] = None) -> str:
    return f"assets:{user_id}:{hash_string(canonical_json(params or {}))}"


def user_key_prefixes(user_id: str) -> list[str]:
    """Prefixes of the multi-entry key families scoped to one user."""
    return [f"search:{user_id}:", f"assets:{user_id}:"]


def user_keys(user_id: str) -> list[str]:
    """Single keys scoped to one user; matched exactly, never as prefixes."""
    return [f"count:{user_id}", f"recent:{user_id}"]
