"""Serialization codecs for the supported device kinds.

Every kind stores the same canonical JSON document; the codec a record is
decoded with is chosen from its ``deviceKind`` field through
:func:`create_codec`.
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Protocol

from edgenode_core.devices.types import (
    KIND_ESP8266,
    KIND_NRF51822,
    STATE_ONLINE,
    DeviceRecord,
    normalize_kind,
)
from edgenode_core.errors import DecodeError, ValidationError


class DeviceCodec(Protocol):
    kind: str
    transport: str

    def serialize(self, record: DeviceRecord) -> bytes:
        ...

    def deserialize(self, payload: bytes | dict[str, Any]) -> DeviceRecord:
        ...

    def get_state(self, record: DeviceRecord) -> str:
        ...

    def new_record(
        self,
        *,
        local_uuid: str,
        application_uuid: str,
        remote_uuid: str,
        seen_at: datetime,
        name: str = "",
    ) -> DeviceRecord:
        ...


def record_to_dict(record: DeviceRecord) -> dict[str, Any]:
    return {
        "applicationUUID": record.application_uuid,
        "commit": record.commit,
        "deviceKind": record.kind,
        "lastSeen": record.last_seen.isoformat(),
        "localUUID": record.local_uuid,
        "name": record.name,
        "progress": float(record.progress),
        "remoteUUID": record.remote_uuid,
        "state": record.state,
    }


def encode_json(payload: Any) -> bytes:
    return json.dumps(
        payload,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=True,
    ).encode("utf-8")


class JsonDeviceCodec:
    kind = KIND_NRF51822
    transport = "bluetooth"

    def serialize(self, record: DeviceRecord) -> bytes:
        return encode_json(record_to_dict(record))

    def deserialize(self, payload: bytes | dict[str, Any]) -> DeviceRecord:
        item = _load_object(payload)
        kind = item.get("deviceKind") or self.kind
        if kind != self.kind:
            raise DecodeError(
                f"Record kind {kind!r} cannot be decoded as {self.kind!r}"
            )
        try:
            return DeviceRecord(
                local_uuid=_require_str(item, "localUUID"),
                remote_uuid=_optional_str(item, "remoteUUID"),
                application_uuid=_require_str(item, "applicationUUID"),
                commit=_optional_str(item, "commit"),
                state=_require_str(item, "state"),
                progress=_coerce_progress(item.get("progress", 0.0)),
                last_seen=_parse_timestamp(item.get("lastSeen")),
                kind=self.kind,
                name=_optional_str(item, "name"),
            )
        except ValidationError as exc:
            raise DecodeError(f"Invalid device record: {exc}") from exc

    def get_state(self, record: DeviceRecord) -> str:
        return record.state

    def new_record(
        self,
        *,
        local_uuid: str,
        application_uuid: str,
        remote_uuid: str,
        seen_at: datetime,
        name: str = "",
    ) -> DeviceRecord:
        return DeviceRecord(
            local_uuid=local_uuid,
            remote_uuid=remote_uuid,
            application_uuid=application_uuid,
            commit="",
            state=STATE_ONLINE,
            progress=0.0,
            last_seen=seen_at,
            kind=self.kind,
            name=name,
        )


class Nrf51822Codec(JsonDeviceCodec):
    kind = KIND_NRF51822
    transport = "bluetooth"


class Esp8266Codec(JsonDeviceCodec):
    kind = KIND_ESP8266
    transport = "wifi"


_CODECS: dict[str, type[JsonDeviceCodec]] = {
    KIND_NRF51822: Nrf51822Codec,
    KIND_ESP8266: Esp8266Codec,
}


def create_codec(kind: str) -> DeviceCodec:
    return _CODECS[normalize_kind(kind)]()


def _load_object(payload: bytes | dict[str, Any]) -> dict[str, Any]:
    if isinstance(payload, dict):
        return payload
    try:
        item = json.loads(payload.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise DecodeError(f"Device record is not valid JSON: {exc}") from exc
    if not isinstance(item, dict):
        raise DecodeError("Device record must be a JSON object")
    return item


def _require_str(item: dict[str, Any], key: str) -> str:
    value = item.get(key)
    if not isinstance(value, str) or not value:
        raise DecodeError(f"Device record field {key!r} is missing")
    return value


def _optional_str(item: dict[str, Any], key: str) -> str:
    value = item.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise DecodeError(f"Device record field {key!r} must be a string")
    return value


def _coerce_progress(value: object) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise DecodeError(f"Device record progress must be a number: {value!r}")
    return float(value)


def _parse_timestamp(value: object) -> datetime:
    if not isinstance(value, str):
        raise DecodeError("Device record field 'lastSeen' is missing")
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError as exc:
        raise DecodeError(f"Invalid lastSeen timestamp: {value}") from exc
    if parsed.tzinfo is None:
        raise DecodeError(f"lastSeen timestamp has no offset: {value}")
    return parsed
