from __future__ import annotations

import json
import threading
import uuid
from datetime import datetime, timezone
from typing import Any

import fsspec

from edgenode_core.errors import StoreError
from edgenode_core.stores.interfaces import PersistentStore
from edgenode_core.storage.paths import parent_path


class JsonDeviceStore(PersistentStore):
    def __init__(self, uri: str) -> None:
        self._uri = uri
        self._lock = threading.Lock()

    @property
    def uri(self) -> str:
        return self._uri

    def query(self, field: str, value: str) -> bytes:
        with self._lock:
            records = self._load_records()
        matches = {
            key: record
            for key, record in records.items()
            if isinstance(record, dict) and record.get(field) == value
        }
        return json.dumps(matches, ensure_ascii=True, sort_keys=True).encode("utf-8")

    def insert(self, payload: bytes) -> bytes:
        record = _decode_payload(payload)
        key = uuid.uuid4().hex
        with self._lock:
            records = self._load_records()
            records[key] = record
            self._save_records(records)
        return key.encode("utf-8")

    def update(self, key: str, payload: bytes) -> None:
        record = _decode_payload(payload)
        with self._lock:
            records = self._load_records()
            if key not in records:
                raise StoreError(f"Unknown store key: {key}")
            records[key] = record
            self._save_records(records)

    def _load_records(self) -> dict[str, Any]:
        try:
            fs, path = fsspec.core.url_to_fs(self._uri)
            if not fs.exists(path):
                return {}
            with fs.open(path, "rb") as handle:
                payload = json.loads(handle.read().decode("utf-8"))
        except (OSError, ValueError) as exc:
            raise StoreError(f"Failed reading {self._uri}: {exc}") from exc
        if not isinstance(payload, dict):
            raise StoreError(f"Store document at {self._uri} must be a JSON object")
        items = payload.get("records", {})
        if not isinstance(items, dict):
            raise StoreError(f"Store records at {self._uri} must be a JSON object")
        return {str(key): value for key, value in items.items()}

    def _save_records(self, records: dict[str, Any]) -> None:
        payload = {
            "updated_at": datetime.now(timezone.utc).isoformat(),
            "records": records,
        }
        try:
            fs, path = fsspec.core.url_to_fs(self._uri)
            directory = parent_path(path)
            if directory:
                fs.makedirs(directory, exist_ok=True)
            with fs.open(path, "wb") as handle:
                handle.write(json.dumps(payload, ensure_ascii=True).encode("utf-8"))
        except OSError as exc:
            raise StoreError(f"Failed writing {self._uri}: {exc}") from exc


def _decode_payload(payload: bytes) -> Any:
    try:
        return json.loads(payload.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise StoreError(f"Store payload is not valid JSON: {exc}") from exc
