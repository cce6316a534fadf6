"""Indexing-service sinks.

`QBusinessSink` submits batches through the Amazon Q Business
``BatchPutDocument`` API using an aioboto3 session. Re-submitting a document
with the same id overwrites it, so retrying a whole batch is safe.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

import aioboto3
import structlog
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from qconnector.exceptions import SinkUploadError
from qconnector.models import BatchPutResult, FailedDocument, SinkDocument

logger = structlog.get_logger()

DATE_ATTRIBUTES = ("_created_at", "_updated_at")


class BaseSink(ABC):
    """Abstract batch-put destination."""

    @abstractmethod
    async def batch_put(self, documents: Sequence[SinkDocument]) -> BatchPutResult:
        """Upload one ordered batch; return documents rejected by the service."""
        raise NotImplementedError


def _parse_date(value: str) -> Optional[datetime]:
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def attribute_value(name: str, value: Any) -> Dict[str, Any]:
    """Encode an attribute as a Q Business ``DocumentAttributeValue``."""
    if isinstance(value, datetime):
        return {"dateValue": value}
    if isinstance(value, bool):
        return {"stringValue": str(value).lower()}
    if isinstance(value, int):
        return {"longValue": value}
    if isinstance(value, (list, tuple, set)):
        return {"stringListValue": [str(v) for v in value]}
    if name in DATE_ATTRIBUTES and isinstance(value, str):
        parsed = _parse_date(value)
        if parsed is not None:
            return {"dateValue": parsed}
    return {"stringValue": str(value)}


def to_request_document(doc: SinkDocument) -> Dict[str, Any]:
    return {
        "id": doc.id,
        "title": doc.title,
        "content": {"blob": doc.content},
        "contentType": doc.content_type,
        "attributes": [
            {"name": name, "value": attribute_value(name, value)}
            for name, value in doc.attributes.items()
        ],
    }


def parse_failed_documents(response: Dict[str, Any]) -> List[FailedDocument]:
    failed: List[FailedDocument] = []
    for item in response.get("failedDocuments") or []:
        if not isinstance(item, dict):
            continue
        error = item.get("error") if isinstance(item.get("error"), dict) else {}
        failed.append(
            FailedDocument(
                id=item.get("id"),
                error_code=error.get("errorCode"),
                error_message=error.get("errorMessage"),
            )
        )
    return failed


class QBusinessSink(BaseSink):
    def __init__(
        self,
        *,
        application_id: str,
        index_id: Optional[str],
        region: str = "us-east-1",
        role_arn: Optional[str] = None,
        data_source_sync_id: Optional[str] = None,
        timeout: float = 30.0,
        session: Optional[aioboto3.Session] = None,
    ) -> None:
        self.application_id = application_id
        self.index_id = index_id
        self.region = region
        self.role_arn = role_arn
        self.data_source_sync_id = data_source_sync_id
        self.timeout = timeout
        self.session = session or aioboto3.Session()

    def client_config(self) -> Config:
        # Single wire attempt per call; SyncManager.retry_batch owns retries.
        return Config(
            connect_timeout=self.timeout,
            read_timeout=self.timeout,
            retries={"total_max_attempts": 1},
        )

    def build_request(self, documents: Sequence[SinkDocument]) -> Dict[str, Any]:
        request: Dict[str, Any] = {
            "applicationId": self.application_id,
            "indexId": self.index_id,
            "documents": [to_request_document(d) for d in documents],
        }
        if self.role_arn:
            request["roleArn"] = self.role_arn
        if self.data_source_sync_id:
            request["dataSourceSyncId"] = self.data_source_sync_id
        return request

    async def batch_put(self, documents: Sequence[SinkDocument]) -> BatchPutResult:
        request = self.build_request(documents)
        try:
            async with self.session.client(
                "qbusiness", region_name=self.region, config=self.client_config()
            ) as client:
                response = await client.batch_put_document(**request)
        except (ClientError, BotoCoreError) as exc:
            raise SinkUploadError(f"BatchPutDocument failed: {exc}") from exc
        return BatchPutResult(failed_documents=parse_failed_documents(response or {}))
