from __future__ import annotations

from typing import Protocol


class PersistentStore(Protocol):
    """Schema-agnostic key to record map, queryable by indexed field.

    ``query`` returns a JSON object mapping each matching key to its decoded
    record; ``insert`` returns the generated key as UTF-8 bytes.
    """

    def query(self, field: str, value: str) -> bytes:
        ...

    def insert(self, payload: bytes) -> bytes:
        ...

    def update(self, key: str, payload: bytes) -> None:
        ...
