from __future__ import annotations

import json
import os
from datetime import datetime, timedelta, timezone

import pytest

from edgenode_core.config import get_config
from edgenode_core.errors import StoreError
from edgenode_core.stores.interfaces import PersistentStore


@pytest.fixture(autouse=True)
def _edgenode_env(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    def set_default(name: str, value: str) -> None:
        if not os.getenv(name):
            monkeypatch.setenv(name, value)

    set_default("ENV", "test")
    set_default("ENM_LOG_LEVEL", "Info")
    set_default("ENM_API_VERSION", "v1")
    set_default("RESIN_SUPERVISOR_ADDRESS", "http://127.0.0.1:4000")
    set_default("RESIN_SUPERVISOR_API_KEY", "test-key")
    monkeypatch.setenv("ENM_DB_DIRECTORY", (tmp_path / "db").as_posix())
    monkeypatch.setenv("ENM_ASSETS_DIRECTORY", (tmp_path / "assets").as_posix())
    monkeypatch.setenv("ENM_LOCK_FILE_LOCATION", (tmp_path / "updates.lock").as_posix())
    monkeypatch.delenv("ENM_RADIO_SNAPSHOT_URI", raising=False)
    monkeypatch.delenv("ENM_DB_BACKEND", raising=False)
    monkeypatch.delenv("ENM_DEVICE_KIND", raising=False)
    get_config.cache_clear()
    yield
    get_config.cache_clear()


class MemoryStore(PersistentStore):
    """Dict-backed store with switchable failures."""

    def __init__(self) -> None:
        self.records: dict[str, dict] = {}
        self.inserts = 0
        self.updates: list[str] = []
        self.fail_query = False
        self.fail_insert = False
        self.fail_update_keys: set[str] = set()
        self.raw_query: bytes | None = None

    def query(self, field: str, value: str) -> bytes:
        if self.fail_query:
            raise StoreError("query unavailable")
        if self.raw_query is not None:
            return self.raw_query
        matches = {
            key: record
            for key, record in self.records.items()
            if record.get(field) == value
        }
        return json.dumps(matches).encode("utf-8")

    def insert(self, payload: bytes) -> bytes:
        if self.fail_insert:
            raise StoreError("insert unavailable")
        self.inserts += 1
        key = f"key-{self.inserts:04d}"
        self.records[key] = json.loads(payload.decode("utf-8"))
        return key.encode("utf-8")

    def update(self, key: str, payload: bytes) -> None:
        if key in self.fail_update_keys:
            raise StoreError(f"update unavailable for {key}")
        if key not in self.records:
            raise StoreError(f"Unknown store key: {key}")
        self.records[key] = json.loads(payload.decode("utf-8"))
        self.updates.append(key)


class FakeRadio:
    def __init__(self) -> None:
        self.visible: dict[str, set[str]] = {}
        self.reachable: set[str] = set()
        self.scan_error: Exception | None = None
        self.probe_errors: dict[str, Exception] = {}
        self.scans: list[tuple[str, int]] = []
        self.probes: list[str] = []

    def scan(self, scope: str, timeout_s: int) -> set[str]:
        self.scans.append((scope, timeout_s))
        if self.scan_error is not None:
            raise self.scan_error
        return set(self.visible.get(scope, set()))

    def online(self, local_uuid: str, timeout_s: int) -> bool:
        self.probes.append(local_uuid)
        error = self.probe_errors.get(local_uuid)
        if error is not None:
            raise error
        return local_uuid in self.reachable


class FakeProvisioner:
    def __init__(self) -> None:
        self.calls: list[str] = []
        self.error: Exception | None = None

    def provision(self, application_id: str) -> tuple[str, str]:
        self.calls.append(application_id)
        if self.error is not None:
            raise self.error
        index = len(self.calls)
        return f"remote-{index}", f"device-{index}"


class SteppingClock:
    def __init__(self, start: datetime | None = None) -> None:
        self.current = start or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        value = self.current
        self.current = self.current + timedelta(seconds=1)
        return value


@pytest.fixture
def memory_store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def fake_radio() -> FakeRadio:
    return FakeRadio()


@pytest.fixture
def fake_provisioner() -> FakeProvisioner:
    return FakeProvisioner()


@pytest.fixture
def clock() -> SteppingClock:
    return SteppingClock()

