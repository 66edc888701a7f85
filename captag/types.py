"""
Data types for the caption workbench.
"""

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional


def utc_now() -> str:
    """Current UTC timestamp in canonical format: YYYY-MM-DDTHH:MM:SS.

    All timestamps are UTC, stored without timezone suffix.
    """
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S")


MAX_ID_LENGTH = 256

# Blocked: control chars, DEL, path separators and shell/HTML metacharacters
_ID_BLOCKED_RE = re.compile(r'[\x00-\x1f\x7f\\/`<>|;"\']')


def validate_id(id: str) -> None:
    """Validate an item ID: length and blocked characters."""
    if not id or len(id) > MAX_ID_LENGTH:
        raise ValueError(f"ID must be 1-{MAX_ID_LENGTH} characters")
    if _ID_BLOCKED_RE.search(id):
        raise ValueError(f"ID contains invalid characters: {id!r}")


@dataclass(frozen=True)
class Item:
    """
    One image-and-caption record.

    This is a read-only snapshot. To change the caption, go through the
    collection store (or EngineState.set_caption), which returns fresh
    snapshots on the next read.

    Attributes:
        id: Stable opaque identifier, unique within a store
        filename: Original file name of the image (used for caption pairing)
        caption: Free-text, comma-delimited caption
        content_type: MIME type of the image bytes, if known
        created: Timestamp when the item was added
        updated: Timestamp of the last caption change
    """
    id: str
    filename: str
    caption: str = ""
    content_type: Optional[str] = None
    created: Optional[str] = None
    updated: Optional[str] = None

    @property
    def has_caption(self) -> bool:
        return bool(self.caption and self.caption.strip())

    def to_dict(self) -> dict:
        """Serialize to JSON-ready dict."""
        from dataclasses import asdict
        return asdict(self)

    def __str__(self) -> str:
        return f"{self.id} {self.filename}: {self.caption[:60]}"
