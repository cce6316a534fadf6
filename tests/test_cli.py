import asyncio
import contextlib
import signal
from typing import Any, List

import pytest

from qconnector import cli
from qconnector.config import AwsConfig, Settings, SourceConfig
from qconnector.models import SyncRun, SyncStage


class FakeManager:
    instances: List["FakeManager"] = []
    error: Exception | None = None

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self.synced = False
        FakeManager.instances.append(self)

    async def sync(self) -> SyncRun:
        self.synced = True
        if FakeManager.error:
            raise FakeManager.error
        return SyncRun(stage=SyncStage.DONE)


@pytest.fixture(autouse=True)
def fake_manager(monkeypatch: pytest.MonkeyPatch) -> Any:
    FakeManager.instances = []
    FakeManager.error = None
    monkeypatch.setattr(cli, "SyncManager", FakeManager)
    return FakeManager


def valid_settings() -> Settings:
    return Settings(
        aws=AwsConfig(application_id="app", data_source_id="ds"),
        source=SourceConfig(base_url="https://source.example.com"),
    )


def test_run_succeeds() -> None:
    assert cli.run(valid_settings()) == 0
    assert FakeManager.instances[0].synced is True


def test_run_fails_on_missing_configuration() -> None:
    assert cli.run(Settings(_env_file=None)) == 1  # type: ignore[call-arg]
    assert FakeManager.instances == []


def test_run_fails_when_sync_raises() -> None:
    FakeManager.error = RuntimeError("boom")
    assert cli.run(valid_settings()) == 1


def test_main_exits_with_run_code(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(cli, "install_signal_handlers", lambda: None)
    monkeypatch.setattr(cli, "run", lambda settings=None: 1)
    with pytest.raises(SystemExit) as excinfo:
        cli.main()
    assert excinfo.value.code == 1


@pytest.mark.parametrize("signum", [signal.SIGINT, signal.SIGTERM])
def test_signal_handler_exits_cleanly(signum: int) -> None:
    with pytest.raises(SystemExit) as excinfo:
        cli._handle_signal(signum, None)
    assert excinfo.value.code == 0


@pytest.mark.asyncio
async def test_watch_runs_first_sync_immediately(monkeypatch: pytest.MonkeyPatch) -> None:
    synced = asyncio.Event()

    class EventManager(FakeManager):
        async def sync(self) -> SyncRun:
            run = await super().sync()
            synced.set()
            return run

    monkeypatch.setattr(cli, "SyncManager", EventManager)
    task = asyncio.create_task(cli._watch_forever(valid_settings()))
    try:
        await asyncio.wait_for(synced.wait(), timeout=5)
    finally:
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    assert len(FakeManager.instances) == 1
    assert FakeManager.instances[0].synced is True


def test_watch_exits_on_invalid_configuration(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(cli, "install_signal_handlers", lambda: None)
    monkeypatch.setattr(cli, "load_settings", lambda: Settings(_env_file=None))  # type: ignore[call-arg]
    with pytest.raises(SystemExit) as excinfo:
        cli.watch()
    assert excinfo.value.code == 1
    assert FakeManager.instances == []
