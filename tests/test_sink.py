from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple

import pytest
from botocore.config import Config
from botocore.exceptions import ClientError, EndpointConnectionError

from qconnector.exceptions import SinkUploadError
from qconnector.models import SinkDocument
from qconnector.sync.sink import QBusinessSink, attribute_value

# ---------- Helpers ----------


class FakeQBusinessClient:
    def __init__(self, response: Optional[Dict[str, Any]] = None, error: Optional[Exception] = None) -> None:
        self.response = response if response is not None else {"failedDocuments": []}
        self.error = error
        self.requests: List[Dict[str, Any]] = []

    async def batch_put_document(self, **kwargs: Any) -> Dict[str, Any]:
        self.requests.append(kwargs)
        if self.error:
            raise self.error
        return self.response


class FakeSession:
    def __init__(self, client: FakeQBusinessClient) -> None:
        self._client = client
        self.opened: List[Tuple[str, Optional[str]]] = []
        self.configs: List[Optional[Config]] = []

    @asynccontextmanager
    async def client(
        self, service_name: str, region_name: Optional[str] = None, config: Optional[Config] = None
    ) -> AsyncIterator[FakeQBusinessClient]:
        self.opened.append((service_name, region_name))
        self.configs.append(config)
        yield self._client


def make_sink(client: FakeQBusinessClient, **kwargs: Any) -> Tuple[QBusinessSink, FakeSession]:
    session = FakeSession(client)
    sink = QBusinessSink(
        application_id="test-app-id",
        index_id="test-index-id",
        region="eu-west-1",
        session=session,  # type: ignore[arg-type]
        **kwargs,
    )
    return sink, session


def sample_document() -> SinkDocument:
    return SinkDocument(
        id="doc-1",
        title="Hello",
        content=b"body",
        attributes={
            "_source_uri": "https://example.com/1",
            "_created_at": "2024-01-01T00:00:00Z",
            "_updated_at": "not-a-date",
            "tags": ["a", "b"],
            "views": 42,
        },
    )


# ---------- Tests ----------


@pytest.mark.asyncio
async def test_batch_put_builds_service_request() -> None:
    client = FakeQBusinessClient()
    sink, session = make_sink(client, role_arn="arn:aws:iam::123:role/q")

    result = await sink.batch_put([sample_document()])

    assert result.failed_documents == []
    assert session.opened == [("qbusiness", "eu-west-1")]
    request = client.requests[0]
    assert request["applicationId"] == "test-app-id"
    assert request["indexId"] == "test-index-id"
    assert request["roleArn"] == "arn:aws:iam::123:role/q"
    assert "dataSourceSyncId" not in request
    doc = request["documents"][0]
    assert doc["id"] == "doc-1"
    assert doc["title"] == "Hello"
    assert doc["content"] == {"blob": b"body"}
    assert doc["contentType"] == "PLAIN_TEXT"
    attrs = {a["name"]: a["value"] for a in doc["attributes"]}
    assert attrs["_source_uri"] == {"stringValue": "https://example.com/1"}
    assert attrs["_created_at"] == {"dateValue": datetime(2024, 1, 1, tzinfo=timezone.utc)}
    assert attrs["_updated_at"] == {"stringValue": "not-a-date"}
    assert attrs["tags"] == {"stringListValue": ["a", "b"]}
    assert attrs["views"] == {"longValue": 42}


@pytest.mark.asyncio
async def test_batch_put_reports_failed_documents() -> None:
    client = FakeQBusinessClient(
        response={
            "failedDocuments": [
                {"id": "doc-1", "error": {"errorCode": "INVALID_REQUEST", "errorMessage": "too large"}},
                {"id": "doc-2"},
            ]
        }
    )
    sink, _ = make_sink(client)

    result = await sink.batch_put([sample_document()])

    assert [(f.id, f.error_code, f.error_message) for f in result.failed_documents] == [
        ("doc-1", "INVALID_REQUEST", "too large"),
        ("doc-2", None, None),
    ]


@pytest.mark.asyncio
async def test_client_error_becomes_sink_upload_error() -> None:
    error = ClientError(
        {"Error": {"Code": "ThrottlingException", "Message": "Rate exceeded"}}, "BatchPutDocument"
    )
    sink, _ = make_sink(FakeQBusinessClient(error=error))

    with pytest.raises(SinkUploadError) as excinfo:
        await sink.batch_put([sample_document()])
    assert excinfo.value.__cause__ is error


@pytest.mark.asyncio
async def test_connection_error_becomes_sink_upload_error() -> None:
    error = EndpointConnectionError(endpoint_url="https://qbusiness.eu-west-1.amazonaws.com")
    sink, _ = make_sink(FakeQBusinessClient(error=error))

    with pytest.raises(SinkUploadError):
        await sink.batch_put([sample_document()])


def test_attribute_value_encodings() -> None:
    stamp = datetime(2024, 3, 1, tzinfo=timezone.utc)
    assert attribute_value("x", stamp) == {"dateValue": stamp}
    assert attribute_value("x", True) == {"stringValue": "true"}
    assert attribute_value("x", ("a", 1)) == {"stringListValue": ["a", "1"]}
    assert attribute_value("author", "Ann") == {"stringValue": "Ann"}


@pytest.mark.asyncio
async def test_client_uses_request_timeout_and_single_attempt() -> None:
    client = FakeQBusinessClient()
    sink, session = make_sink(client, timeout=12.5)

    await sink.batch_put([sample_document()])

    config = session.configs[0]
    assert config is not None
    assert config.connect_timeout == 12.5
    assert config.read_timeout == 12.5
    assert config.retries == {"total_max_attempts": 1}
    assert len(client.requests) == 1
