"""Maps normalized source records onto the indexing service document shape.

Transformation never fails: missing fields fall back to defaults. Generated
ids embed the wall-clock time, so the sync manager transforms each record
once per run and re-sends the same `SinkDocument` on every retry.
"""
from __future__ import annotations

import hashlib
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from qconnector.models import CONTENT_TYPE_PLAIN_TEXT, RawDocument, SinkDocument

DEFAULT_TITLE = "Untitled"
CUSTOM_ATTRIBUTES = ("author", "category", "tags")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DocumentTransformer:
    def __init__(self, plugin_name: str, *, clock: Optional[Callable[[], datetime]] = None) -> None:
        self.plugin_name = plugin_name
        self._clock = clock or _utcnow

    def transform(self, raw: RawDocument) -> SinkDocument:
        now = self._clock().isoformat()
        attributes: Dict[str, Any] = {
            "_source_uri": raw.url or "",
            "_created_at": raw.created_at or now,
            "_updated_at": raw.updated_at or now,
        }
        attributes.update(self.extract_custom_attributes(raw))
        return SinkDocument(
            id=raw.id or self.generate_document_id(raw),
            title=raw.title or DEFAULT_TITLE,
            content=(raw.content or "").encode("utf-8"),
            content_type=CONTENT_TYPE_PLAIN_TEXT,
            attributes=attributes,
        )

    @staticmethod
    def extract_custom_attributes(raw: RawDocument) -> Dict[str, Any]:
        return {name: getattr(raw, name) for name in CUSTOM_ATTRIBUTES if getattr(raw, name)}

    def generate_document_id(self, raw: RawDocument) -> str:
        """Return ``<plugin>-<epoch millis>-<8 hex chars of md5(json)>``."""
        timestamp = int(self._clock().timestamp() * 1000)
        digest = hashlib.md5(raw.to_json().encode("utf-8")).hexdigest()[:8]
        return f"{self.plugin_name}-{timestamp}-{digest}"
