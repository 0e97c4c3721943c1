"""Metadata arena for in-flight file payloads."""

import time
import uuid
from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional

FILE_STATUSES = ("pending", "queued", "uploading", "success", "error", "duplicate")


@dataclass(frozen=True)
class FileMetadata:
    """Display-relevant facts about a file; never holds the file bytes."""

    id: str
    name: str
    size: int
    status: str = "pending"
    progress: float = 0.0
    error: Optional[str] = None
    asset_id: Optional[str] = None
    embedding_status: Optional[str] = None
    added_at: float = field(default_factory=time.time)


class FileMetadataRegistry:
    """Keeps small metadata records apart from large payloads.

    Payloads are held only until ``release()`` or ``remove()`` is called for
    their id; metadata survives a release so finished items can still be
    listed.
    """

    def __init__(self) -> None:
        self._metadata: Dict[str, FileMetadata] = {}
        self._payloads: Dict[str, bytes] = {}

    def add(self, name: str, payload: bytes, *, item_id: Optional[str] = None) -> FileMetadata:
        item_id = item_id or uuid.uuid4().hex
        if item_id in self._metadata:
            raise KeyError(f"Duplicate file id {item_id}")

        metadata = FileMetadata(id=item_id, name=name[:255], size=len(payload))
        self._metadata[item_id] = metadata
        self._payloads[item_id] = payload
        return metadata

    def get(self, item_id: str) -> Optional[FileMetadata]:
        return self._metadata.get(item_id)

    def payload(self, item_id: str) -> Optional[bytes]:
        return self._payloads.get(item_id)

    def update(self, item_id: str, **changes) -> FileMetadata:
        if "status" in changes and changes["status"] not in FILE_STATUSES:
            raise ValueError(f"Unknown file status {changes['status']!r}")
        current = self._metadata.get(item_id)
        if current is None:
            raise KeyError(item_id)
        updated = replace(current, **changes)
        self._metadata[item_id] = updated
        return updated

    def release(self, item_id: str) -> bool:
        """Drop the payload, keeping the metadata."""
        return self._payloads.pop(item_id, None) is not None

    def remove(self, item_id: str) -> bool:
        self._payloads.pop(item_id, None)
        return self._metadata.pop(item_id, None) is not None

    def all(self) -> List[FileMetadata]:
        return sorted(self._metadata.values(), key=lambda m: m.added_at)

    def stats(self) -> Dict[str, int]:
        by_status: Dict[str, int] = {}
        for metadata in self._metadata.values():
            by_status[metadata.status] = by_status.get(metadata.status, 0) + 1
        return {
            "total": len(self._metadata),
            "payloads_held": len(self._payloads),
            "payload_bytes": sum(len(p) for p in self._payloads.values()),
            **{f"status_{status}": count for status, count in by_status.items()},
        }
