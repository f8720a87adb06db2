"""Tests for the entry point: the store must answer before any line is read."""

import asyncio

import pytest
import yaml

import main
from postfix_aggregator.store import StoreError


class DownStore:
    def __init__(self, data_dir):
        self.data_dir = data_dir

    async def ping(self):
        raise StoreError(f"{self.data_dir} is not reachable")


class UpStore(DownStore):
    calls: list = []

    async def ping(self):
        self.calls.append("ping")


class RecordingReader:
    calls: list = []

    def __init__(self, path, bookmark, batch_limit):
        self.pending = False

    def read_batch(self):
        self.calls.append("read_batch")
        return []

    def advance(self):
        pass


@pytest.fixture
def recorder(monkeypatch):
    calls = []
    monkeypatch.setattr(RecordingReader, "calls", calls)
    monkeypatch.setattr(UpStore, "calls", calls)
    monkeypatch.setattr(main, "LogReader", RecordingReader)
    return calls


@pytest.fixture
def config_file(tmp_path, monkeypatch):
    for var in ("LOG_FILE", "DATA_DIR", "BATCH_LIMIT", "LOG_LEVEL", "CONFIG_PATH"):
        monkeypatch.delenv(var, raising=False)
    path = tmp_path / "aggregator.yml"
    path.write_text(yaml.safe_dump({
        "main": {"spool": str(tmp_path / "spool")},
        "store": {"data_dir": str(tmp_path / "data")},
        "reader": {"file": str(tmp_path / "maillog"), "poll_interval": 0.01},
    }))
    return str(path)


@pytest.mark.asyncio
async def test_unreachable_store_stops_before_reading(config, recorder, monkeypatch):
    monkeypatch.setattr(main, "FileDocumentStore", DownStore)

    with pytest.raises(StoreError):
        await main.run(config, asyncio.Event())

    assert recorder == []


@pytest.mark.asyncio
async def test_reading_starts_after_ping(config, recorder, monkeypatch):
    monkeypatch.setattr(main, "FileDocumentStore", UpStore)
    shutdown = asyncio.Event()

    task = asyncio.create_task(main.run(config, shutdown))
    while "read_batch" not in recorder:
        await asyncio.sleep(0.01)
    shutdown.set()
    await task

    assert recorder[0] == "ping"


@pytest.mark.asyncio
async def test_main_exits_nonzero_when_store_is_down(config_file, recorder, monkeypatch):
    monkeypatch.setattr(main, "FileDocumentStore", DownStore)

    assert await main.main(["--config", config_file]) == 1
    assert recorder == []
