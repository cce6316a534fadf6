"""Data structures passed between the source, the transformer and the sink.

`RawDocument` is the canonical form of a source record: every accepted
upstream field spelling is resolved once, in `RawDocument.from_record`, so
nothing downstream needs to guess key names.
"""
from __future__ import annotations

import enum
import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

# Upstream spellings accepted for each canonical field, in priority order.
FIELD_ALIASES: Dict[str, tuple] = {
    "id": ("id",),
    "title": ("title", "name"),
    "content": ("content", "body"),
    "url": ("url", "source"),
    "created_at": ("createdAt", "created_at"),
    "updated_at": ("updatedAt", "updated_at"),
    "author": ("author",),
    "category": ("category",),
    "tags": ("tags",),
}

CONTENT_TYPE_PLAIN_TEXT = "PLAIN_TEXT"


def _first_present(record: Mapping[str, Any], keys: tuple) -> Any:
    for key in keys:
        value = record.get(key)
        if value is not None and value != "":
            return value
    return None


@dataclass(slots=True)
class RawDocument:
    """A source record after normalization.

    Attributes
    ----------
    id: str | None
        Source identifier, stringified. None when the source provides none.
    title, content, url: str | None
        Resolved from ``title|name``, ``content|body`` and ``url|source``.
    created_at, updated_at: str | None
        Timestamps as sent by the source (``createdAt|created_at`` etc.).
    author, category: Any
        Optional pass-through attributes.
    tags: Any
        Optional tag list, passed through verbatim.
    extra: dict
        Every upstream field not consumed above.
    """

    id: Optional[str] = None
    title: Optional[str] = None
    content: Optional[str] = None
    url: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    author: Any = None
    category: Any = None
    tags: Any = None
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "RawDocument":
        values: Dict[str, Any] = {}
        consumed: set = set()
        for name, keys in FIELD_ALIASES.items():
            consumed.update(keys)
            values[name] = _first_present(record, keys)
        if values["id"] is not None:
            values["id"] = str(values["id"])
        for name in ("title", "content", "url"):
            if values[name] is not None and not isinstance(values[name], str):
                values[name] = str(values[name])
        extra = {k: v for k, v in record.items() if k not in consumed}
        return cls(extra=extra, **values)

    def to_dict(self) -> Dict[str, Any]:
        """Plain mapping of the populated fields, extras included."""
        out: Dict[str, Any] = {}
        for name in FIELD_ALIASES:
            value = getattr(self, name)
            if value is not None:
                out[name] = value
        out.update(self.extra)
        return out

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True, default=str)


@dataclass(slots=True)
class SinkDocument:
    """A document in the shape accepted by the indexing service."""

    id: str
    title: str
    content: bytes
    content_type: str = CONTENT_TYPE_PLAIN_TEXT
    attributes: Dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class SourcePage:
    documents: List[RawDocument] = field(default_factory=list)
    has_more: bool = False
    total_count: int = 0


@dataclass(slots=True)
class FailedDocument:
    """A document the sink rejected inside an otherwise successful batch call."""

    id: Optional[str]
    error_code: Optional[str] = None
    error_message: Optional[str] = None


@dataclass(slots=True)
class BatchPutResult:
    failed_documents: List[FailedDocument] = field(default_factory=list)


class SyncStage(str, enum.Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    TRANSFORMING = "transforming"
    UPLOADING = "uploading"
    DONE = "done"
    FAILED = "failed"


@dataclass
class SyncRun:
    """Ephemeral record of a single synchronization pass. Never persisted."""

    stage: SyncStage = SyncStage.IDLE
    fetched: int = 0
    transformed: int = 0
    total_batches: int = 0
    uploaded_batches: int = 0
    failed_documents: List[FailedDocument] = field(default_factory=list)
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    error: Optional[BaseException] = None

    @property
    def succeeded(self) -> bool:
        return self.stage is SyncStage.DONE
