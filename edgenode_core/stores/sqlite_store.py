from __future__ import annotations

import json
import sqlite3
import uuid
from dataclasses import dataclass
from pathlib import Path

from edgenode_core.errors import DecodeError, StoreError
from edgenode_core.stores.interfaces import PersistentStore


@dataclass(frozen=True)
class SqliteDeviceStore(PersistentStore):
    path: str

    def __post_init__(self) -> None:
        Path(self.path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(self.path, timeout=30)

    def _init_db(self) -> None:
        try:
            with self._connect() as conn:
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS records (
                        key TEXT PRIMARY KEY,
                        payload TEXT NOT NULL,
                        updated_at TEXT
                    )
                    """
                )
        except sqlite3.Error as exc:
            raise StoreError(f"SQLite store init failed: {exc}") from exc

    def query(self, field: str, value: str) -> bytes:
        try:
            with self._connect() as conn:
                rows = conn.execute(
                    "SELECT key, payload FROM records "
                    "WHERE json_extract(payload, '$.' || ?) = ? ORDER BY key",
                    (field, value),
                ).fetchall()
        except sqlite3.Error as exc:
            raise StoreError(f"SQLite query failed: {exc}") from exc
        matches: dict[str, object] = {}
        for key, payload in rows:
            try:
                matches[key] = json.loads(payload)
            except json.JSONDecodeError as exc:
                raise DecodeError(f"Stored record {key} is not valid JSON") from exc
        return json.dumps(matches, ensure_ascii=True, sort_keys=True).encode("utf-8")

    def insert(self, payload: bytes) -> bytes:
        text = _payload_text(payload)
        key = uuid.uuid4().hex
        try:
            with self._connect() as conn:
                conn.execute(
                    "INSERT INTO records (key, payload, updated_at) "
                    "VALUES (?, ?, datetime('now'))",
                    (key, text),
                )
        except sqlite3.Error as exc:
            raise StoreError(f"SQLite insert failed: {exc}") from exc
        return key.encode("utf-8")

    def update(self, key: str, payload: bytes) -> None:
        text = _payload_text(payload)
        try:
            with self._connect() as conn:
                cur = conn.execute(
                    "UPDATE records SET payload = ?, updated_at = datetime('now') "
                    "WHERE key = ?",
                    (text, key),
                )
                updated = cur.rowcount
        except sqlite3.Error as exc:
            raise StoreError(f"SQLite update failed: {exc}") from exc
        if updated == 0:
            raise StoreError(f"Unknown store key: {key}")


def _payload_text(payload: bytes) -> str:
    try:
        text = payload.decode("utf-8")
        json.loads(text)
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise StoreError(f"Store payload is not valid JSON: {exc}") from exc
    return text
