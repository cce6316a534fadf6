"""qconnector entrypoints.

Run with:
  - qconnector          (one synchronization pass, then exit)
  - qconnector-watch    (re-run every source.sync_interval seconds)
  - or: python -m qconnector.cli (ensure PYTHONPATH includes ./src)

Exit codes: 0 on success or SIGINT/SIGTERM, 1 on configuration or sync failure.
"""
from __future__ import annotations

import asyncio
import signal
import sys
from datetime import timedelta
from typing import Any, Optional

import structlog
from pydantic import ValidationError

from qconnector.config import Settings, load_settings, validate_settings
from qconnector.connectors.scheduler import ConnectorScheduler
from qconnector.exceptions import ConfigError
from qconnector.logging import setup_logging
from qconnector.sync.manager import SyncManager

logger = structlog.get_logger()


def _handle_signal(signum: int, frame: Any) -> None:
    logger.info("shutdown_signal_received", signal=signal.Signals(signum).name)
    sys.exit(0)


def install_signal_handlers() -> None:
    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)


def prepare(settings: Optional[Settings] = None) -> Settings:
    """Load, log-configure and validate settings. Raises `ConfigError`."""
    if settings is None:
        try:
            settings = load_settings()
        except ValidationError as exc:
            setup_logging()
            raise ConfigError(f"Invalid configuration: {exc}") from exc
    setup_logging(settings.plugin.log_level, settings.plugin.log_format)
    validate_settings(settings)
    return settings


def run(settings: Optional[Settings] = None) -> int:
    """Run a single synchronization pass and return the process exit code."""
    try:
        settings = prepare(settings)
    except ConfigError as exc:
        logger.error("configuration_invalid", error=str(exc))
        return 1

    logger.info("plugin_starting", plugin=settings.plugin.name, version=settings.plugin.version)
    try:
        asyncio.run(SyncManager(settings).sync())
    except Exception as exc:
        logger.error("plugin_failed", error_type=type(exc).__name__, error=str(exc))
        return 1
    logger.info("plugin_completed")
    return 0


async def _watch_forever(settings: Settings) -> None:
    scheduler = ConnectorScheduler()
    scheduler.schedule_sync(
        SyncManager(settings),
        interval=timedelta(seconds=settings.source.sync_interval),
    )
    scheduler.start()
    try:
        await asyncio.Event().wait()
    finally:
        scheduler.shutdown(wait=False)


def main() -> None:
    install_signal_handlers()
    sys.exit(run())


def watch() -> None:
    install_signal_handlers()
    try:
        settings = prepare()
    except ConfigError as exc:
        logger.error("configuration_invalid", error=str(exc))
        sys.exit(1)
    logger.info("scheduler_starting", interval_seconds=settings.source.sync_interval)
    asyncio.run(_watch_forever(settings))


if __name__ == "__main__":  # pragma: no cover
    main()
