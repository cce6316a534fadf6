"""Paginated REST source connector.

Talks to a JSON API exposing ``/documents`` (paged listing),
``/documents/{id}``, ``/documents/changes`` and ``/health`` via httpx.
Auth: bearer API key, or basic auth with username + password.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Union
from urllib.parse import quote

import httpx
import structlog

from qconnector import __version__
from qconnector.connectors.base_connector import BaseConnector
from qconnector.exceptions import SourceFetchError
from qconnector.models import RawDocument, SourcePage
from qconnector.sync.throttle import ThrottlePolicy

logger = structlog.get_logger()


def _first_key(data: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return None


def parse_documents(payload: Any) -> List[RawDocument]:
    """Normalize a listing payload: ``documents``, then ``items``, then a bare list."""
    if isinstance(payload, dict):
        items = _first_key(payload, "documents", "items")
    else:
        items = payload
    if not isinstance(items, list):
        return []
    docs: List[RawDocument] = []
    for item in items:
        if isinstance(item, Mapping):
            docs.append(RawDocument.from_record(item))
        else:
            logger.warning("source_record_skipped", record_type=type(item).__name__)
    return docs


def parse_page(payload: Any) -> SourcePage:
    documents = parse_documents(payload)
    if not isinstance(payload, dict):
        return SourcePage(documents=documents, has_more=False, total_count=len(documents))
    # Either spelling may signal continuation.
    has_more = bool(payload.get("hasMore")) or bool(payload.get("has_more"))
    total = _first_key(payload, "totalCount", "total")
    try:
        total_count = int(total) if total is not None else 0
    except (TypeError, ValueError):
        total_count = 0
    return SourcePage(documents=documents, has_more=has_more, total_count=total_count)


class HttpSourceConnector(BaseConnector):
    def __init__(
        self,
        *,
        base_url: str,
        api_key: Optional[str] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        page_size: int = 100,
        timeout: float = 30.0,
        user_agent: str = f"qconnector/{__version__}",
        throttle: Optional[ThrottlePolicy] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.username = username
        self.password = password
        self.page_size = page_size
        self.timeout = timeout
        self.user_agent = user_agent
        self.throttle = throttle or ThrottlePolicy()
        self._transport = transport

    def _headers(self) -> Dict[str, str]:
        h = {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "User-Agent": self.user_agent,
        }
        if self.api_key:
            h["Authorization"] = f"Bearer {self.api_key}"
        return h

    def _auth(self) -> Optional[httpx.BasicAuth]:
        # API key takes precedence over basic credentials
        if not self.api_key and self.username and self.password:
            return httpx.BasicAuth(self.username, self.password)
        return None

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            auth=self._auth(),
            timeout=self.timeout,
            headers=self._headers(),
            transport=self._transport,
            event_hooks={"request": [_log_request], "response": [_log_response]},
        )

    async def _get_json(self, path: str, *, params: Optional[Dict[str, Any]] = None) -> Any:
        async with self._client() as client:
            resp = await client.get(path, params=params)
            resp.raise_for_status()
            return resp.json()

    async def fetch_page(self, page: int) -> SourcePage:
        """Fetch a single listing page. HTTP errors propagate unchanged."""
        data = await self._get_json("/documents", params={"page": page, "limit": self.page_size})
        return parse_page(data)

    async def fetch_all(self) -> List[RawDocument]:
        """Fetch pages 1, 2, ... until an empty page or ``has_more`` is false.

        Any failure aborts the whole fetch and is raised as `SourceFetchError`.
        """
        logger.info("source_fetch_started", base_url=self.base_url)
        documents: List[RawDocument] = []
        page = 1
        try:
            while True:
                logger.debug("source_fetch_page", page=page)
                result = await self.fetch_page(page)
                if not result.documents:
                    break
                documents.extend(result.documents)
                if not result.has_more:
                    break
                page += 1
                await self.throttle.between_pages()
        except Exception as exc:
            logger.error("source_fetch_failed", page=page, error=str(exc))
            raise SourceFetchError(f"Failed to fetch page {page} from {self.base_url}: {exc}") from exc
        logger.info("source_fetch_completed", documents=len(documents), pages=page)
        return documents

    async def fetch_by_id(self, document_id: str) -> RawDocument:
        logger.debug("source_fetch_by_id", document_id=document_id)
        data = await self._get_json(f"/documents/{quote(str(document_id), safe='')}")
        if not isinstance(data, Mapping):
            raise SourceFetchError(f"Unexpected payload for document {document_id}")
        return RawDocument.from_record(data)

    async def fetch_incremental(self, since: Union[datetime, str]) -> List[RawDocument]:
        """Fetch documents changed since `since`. Not used by the full-refresh sync."""
        since_value = since.isoformat() if isinstance(since, datetime) else since
        logger.info("source_fetch_incremental", since=since_value)
        data = await self._get_json(
            "/documents/changes", params={"since": since_value, "limit": self.page_size}
        )
        return parse_documents(data)

    async def test_connection(self) -> bool:
        logger.info("source_connection_test", base_url=self.base_url)
        try:
            async with self._client() as client:
                resp = await client.get("/health")
        except httpx.HTTPError as exc:
            logger.error("source_connection_failed", error=str(exc))
            return False
        if resp.status_code == 200:
            logger.info("source_connection_ok")
            return True
        logger.warning("source_connection_unhealthy", status=resp.status_code)
        return False


async def _log_request(request: httpx.Request) -> None:
    logger.debug("source_request", method=request.method, url=str(request.url))


async def _log_response(response: httpx.Response) -> None:
    request = response.request
    if response.is_error:
        logger.error(
            "source_request_failed",
            method=request.method,
            url=str(request.url),
            status=response.status_code,
            reason=response.reason_phrase,
        )
    else:
        logger.debug("source_response", status=response.status_code, url=str(request.url))
