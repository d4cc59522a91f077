from pathlib import Path

import pytest

from minion_hive.config import Settings
from minion_hive.hive import Hive
from minion_hive.logging_config import setup_logging
from minion_hive.metadata import OUTPUT_FILE, STATUS_FILE
from minion_hive.storage import FileStore, MemoryStore
from mocks.runtime import FakeRuntime


@pytest.fixture(autouse=True, scope="session")
def configure_logging():
    # keep log lines on stderr, away from command output
    setup_logging(service_name="hive-tests", log_format="console", log_level="WARNING")


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        hive_dir=tmp_path / "hive",
        claude_token="test-token",
        poll_interval_sec=0.01,
        wait_timeout_sec=1,
    )


@pytest.fixture
def runtime() -> FakeRuntime:
    return FakeRuntime()


@pytest.fixture
def hive(settings: Settings, runtime: FakeRuntime) -> Hive:
    """Hive on a temporary directory with a fake runtime."""
    return Hive(settings=settings, runtime=runtime, store=FileStore(settings.hive_dir))


@pytest.fixture
def memory_hive(settings: Settings, runtime: FakeRuntime) -> Hive:
    return Hive(settings=settings, runtime=runtime, store=MemoryStore())


@pytest.fixture
def write_signal():
    """Simulate the worker writing its STATUS file (and optionally output)."""

    def _write(hive: Hive, name: str, status: str, output: str | None = None) -> None:
        hive.store.put(hive.minions.key(name, STATUS_FILE), f"{status}\n")
        if output is not None:
            hive.store.put(hive.minions.key(name, OUTPUT_FILE), output)

    return _write
