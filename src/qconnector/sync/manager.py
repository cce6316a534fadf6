"""Synchronization manager: source -> transform -> batches -> sink.

A run fetches everything, transforms every record once, splits the result
into fixed-size batches and uploads them one after another in source order.
A failed batch is retried with exponential backoff; when the retry budget is
exhausted the error aborts the run. Batches uploaded before the failure stay
in the index.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional, Sequence

import structlog
from tenacity import AsyncRetrying, RetryCallState, stop_after_attempt

from qconnector.config import Settings
from qconnector.connectors.base_connector import BaseConnector
from qconnector.connectors.http_source import HttpSourceConnector
from qconnector.exceptions import SinkUploadError
from qconnector.models import BatchPutResult, SinkDocument, SyncRun, SyncStage
from qconnector.sync.batching import create_batches
from qconnector.sync.sink import BaseSink, QBusinessSink
from qconnector.sync.throttle import ThrottlePolicy
from qconnector.sync.transformer import DocumentTransformer

logger = structlog.get_logger()


def build_source(settings: Settings, throttle: ThrottlePolicy) -> HttpSourceConnector:
    cfg = settings.source
    if not cfg.base_url:
        raise ValueError("source.base_url is required")
    return HttpSourceConnector(
        base_url=cfg.base_url,
        api_key=cfg.api_key,
        username=cfg.username,
        password=cfg.password,
        page_size=cfg.page_size or cfg.batch_size,
        timeout=settings.plugin.request_timeout,
        user_agent=f"qconnector/{settings.plugin.version}",
        throttle=throttle,
    )


def build_sink(settings: Settings) -> QBusinessSink:
    cfg = settings.aws
    if not cfg.application_id:
        raise ValueError("aws.application_id is required")
    return QBusinessSink(
        application_id=cfg.application_id,
        index_id=cfg.index_id,
        region=cfg.region,
        role_arn=cfg.role_arn,
        timeout=settings.plugin.request_timeout,
    )


class SyncManager:
    """Drives one full-refresh synchronization pass per `sync()` call."""

    def __init__(
        self,
        settings: Settings,
        *,
        source: Optional[BaseConnector] = None,
        sink: Optional[BaseSink] = None,
        transformer: Optional[DocumentTransformer] = None,
        throttle: Optional[ThrottlePolicy] = None,
    ) -> None:
        self.settings = settings
        self.throttle = throttle or ThrottlePolicy(
            page_delay=settings.plugin.page_delay,
            batch_delay=settings.plugin.batch_delay,
        )
        self.source = source or build_source(settings, self.throttle)
        self.sink = sink or build_sink(settings)
        self.transformer = transformer or DocumentTransformer(settings.plugin.name)
        self.batch_size = settings.source.batch_size
        self.max_retries = settings.plugin.max_retries
        self.retry_delay = settings.plugin.retry_delay

    async def sync(self) -> SyncRun:
        run = SyncRun(started_at=datetime.now(timezone.utc))
        logger.info("sync_started", plugin=self.settings.plugin.name)
        try:
            documents = await self.fetch_documents(run)
            if not documents:
                logger.info("sync_nothing_to_do")
            else:
                logger.info("sync_documents_found", documents=len(documents))
                await self.process_batches(documents, run)
        except Exception as exc:
            run.stage = SyncStage.FAILED
            run.error = exc
            run.finished_at = datetime.now(timezone.utc)
            logger.error("sync_failed", error_type=type(exc).__name__, error=str(exc))
            raise
        run.stage = SyncStage.DONE
        run.finished_at = datetime.now(timezone.utc)
        logger.info(
            "sync_completed",
            documents=run.transformed,
            batches=run.uploaded_batches,
            rejected_documents=len(run.failed_documents),
        )
        return run

    async def fetch_documents(self, run: Optional[SyncRun] = None) -> List[SinkDocument]:
        """Fetch every source record and transform each exactly once."""
        run = run or SyncRun()
        run.stage = SyncStage.FETCHING
        raw_documents = await self.source.fetch_all()
        run.fetched = len(raw_documents)
        run.stage = SyncStage.TRANSFORMING
        documents = [self.transformer.transform(raw) for raw in raw_documents]
        run.transformed = len(documents)
        return documents

    async def process_batches(self, documents: Sequence[SinkDocument], run: Optional[SyncRun] = None) -> None:
        run = run or SyncRun()
        run.stage = SyncStage.UPLOADING
        batches = create_batches(documents, self.batch_size)
        run.total_batches = len(batches)
        logger.info("sync_batches_planned", batches=len(batches), batch_size=self.batch_size)

        for index, batch in enumerate(batches, start=1):
            logger.info("batch_upload_started", batch=index, total=len(batches), size=len(batch))
            try:
                result = await self.upload_batch(batch)
            except Exception as exc:
                logger.error("batch_upload_failed", batch=index, error=str(exc))
                if self.max_retries <= 0:
                    raise
                result = await self.retry_batch(batch, index)
            else:
                logger.info("batch_uploaded", batch=index)
            run.failed_documents.extend(result.failed_documents)
            run.uploaded_batches += 1
            if index < len(batches):
                await self.throttle.between_batches()

    async def upload_batch(self, batch: Sequence[SinkDocument]) -> BatchPutResult:
        """Submit one batch. Per-document rejections are logged, never retried."""
        result = await self.sink.batch_put(batch)
        if result.failed_documents:
            logger.warning(
                "batch_documents_rejected",
                count=len(result.failed_documents),
                documents=[
                    {"id": f.id, "code": f.error_code, "message": f.error_message}
                    for f in result.failed_documents
                ],
            )
        return result

    async def retry_batch(self, batch: Sequence[SinkDocument], batch_number: int) -> BatchPutResult:
        """Re-send `batch` up to `max_retries` times with exponential backoff.

        Attempt ``n`` waits ``retry_delay * 2 ** (n - 1)`` before uploading.
        The last error is re-raised once the budget is spent.
        """

        def _log_failure(state: RetryCallState) -> None:
            error = state.outcome.exception() if state.outcome else None
            logger.error(
                "batch_retry_failed",
                batch=batch_number,
                attempt=state.attempt_number,
                error=str(error),
            )

        if self.max_retries <= 0:
            raise SinkUploadError(f"Retries are disabled for batch {batch_number}")
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.max_retries),
                before_sleep=_log_failure,
                reraise=True,
            ):
                with attempt:
                    number = attempt.retry_state.attempt_number
                    logger.info(
                        "batch_retry", batch=batch_number, attempt=number, max_retries=self.max_retries
                    )
                    await self.throttle.pause(self.throttle.backoff(number, self.retry_delay))
                    result = await self.upload_batch(batch)
        except Exception as exc:
            logger.error(
                "batch_retries_exhausted", batch=batch_number, attempts=self.max_retries, error=str(exc)
            )
            raise
        logger.info("batch_uploaded_on_retry", batch=batch_number, attempt=number)
        return result
