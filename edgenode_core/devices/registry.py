from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Callable

from edgenode_core.devices.kinds import DeviceCodec, create_codec
from edgenode_core.devices.types import DEVICE_KINDS, DeviceRecord
from edgenode_core.errors import DecodeError, StoreError
from edgenode_core.logging import get_logger
from edgenode_core.stores.interfaces import PersistentStore

APPLICATION_FIELD = "applicationUUID"

logger = get_logger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class DeviceRegistry:
    """Loads and persists the device records of one application."""

    def __init__(
        self,
        store: PersistentStore,
        kind: str,
        now_fn: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._codec = create_codec(kind)
        self._now = now_fn or _utc_now

    @property
    def kind(self) -> str:
        return self._codec.kind

    def load(self, application_id: str) -> dict[str, DeviceRecord]:
        """Return every stored record tagged with ``application_id``.

        Raises ``DecodeError`` when any single record is malformed; the whole
        load is abandoned so a corrupt record is never silently skipped.
        """
        raw = self._store.query(APPLICATION_FIELD, application_id)
        try:
            payload = json.loads(raw.decode("utf-8")) if raw else {}
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise DecodeError(f"Store query result is not valid JSON: {exc}") from exc
        if not isinstance(payload, dict):
            raise DecodeError("Store query result must be a JSON object")

        devices: dict[str, DeviceRecord] = {}
        for key, item in payload.items():
            if not isinstance(item, dict):
                raise DecodeError(f"Stored record {key} is not a JSON object")
            devices[str(key)] = self._codec_for(item).deserialize(item)
        return devices

    def list_sorted(self, application_id: str) -> list[tuple[str, DeviceRecord]]:
        devices = self.load(application_id)
        return sorted(devices.items(), key=lambda entry: entry[1].local_uuid)

    def save(self, store_key: str, record: DeviceRecord) -> None:
        payload = self._codec_for_record(record).serialize(record)
        self._store.update(store_key, payload)

    def create(
        self,
        kind: str,
        local_uuid: str,
        application_id: str,
        remote_uuid: str,
        name: str = "",
    ) -> tuple[DeviceRecord, str]:
        codec = create_codec(kind)
        record = codec.new_record(
            local_uuid=local_uuid,
            application_uuid=application_id,
            remote_uuid=remote_uuid,
            seen_at=self._now(),
            name=name,
        )
        raw_key = self._store.insert(codec.serialize(record))
        try:
            key = raw_key.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise StoreError("Store returned a non UTF-8 key") from exc
        if not key:
            raise StoreError("Store returned an empty key")
        logger.debug(
            "Device record created",
            extra={
                "application": application_id,
                "local_uuid": local_uuid,
                "remote_uuid": remote_uuid,
            },
        )
        return record, key

    def _codec_for(self, item: dict[str, object]) -> DeviceCodec:
        kind = item.get("deviceKind")
        if kind is None or kind == self._codec.kind:
            return self._codec
        if not isinstance(kind, str) or kind not in DEVICE_KINDS:
            raise DecodeError(f"Stored record has unknown device kind: {kind!r}")
        return create_codec(kind)

    def _codec_for_record(self, record: DeviceRecord) -> DeviceCodec:
        if record.kind == self._codec.kind:
            return self._codec
        return create_codec(record.kind)
