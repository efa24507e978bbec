from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone

import pytest

from edgenode_core.devices.kinds import (
    Esp8266Codec,
    Nrf51822Codec,
    create_codec,
    record_to_dict,
)
from edgenode_core.devices.types import (
    KIND_ESP8266,
    KIND_NRF51822,
    STATE_OFFLINE,
    STATE_ONLINE,
    DeviceRecord,
)
from edgenode_core.errors import DecodeError, ValidationError

SEEN = datetime(2024, 3, 9, 17, 45, 12, 250000, tzinfo=timezone(timedelta(hours=2)))


def _record(**overrides) -> DeviceRecord:
    values = dict(
        local_uuid="c1:d2:e3",
        remote_uuid="remote-9",
        application_uuid="sensors",
        commit="abc123",
        state=STATE_OFFLINE,
        progress=0.25,
        last_seen=SEEN,
        name="porch",
    )
    values.update(overrides)
    return DeviceRecord(**values)


@pytest.mark.core
def test_serialize_then_deserialize_preserves_record():
    codec = Nrf51822Codec()
    record = _record()

    decoded = codec.deserialize(codec.serialize(record))

    assert decoded == record
    assert decoded.last_seen.utcoffset() == timedelta(hours=2)
    assert codec.get_state(decoded) == STATE_OFFLINE


@pytest.mark.core
def test_serialized_form_uses_stored_field_names():
    payload = json.loads(Nrf51822Codec().serialize(_record()).decode("utf-8"))
    assert set(payload) == {
        "applicationUUID",
        "commit",
        "deviceKind",
        "lastSeen",
        "localUUID",
        "name",
        "progress",
        "remoteUUID",
        "state",
    }
    assert payload["deviceKind"] == KIND_NRF51822


@pytest.mark.core
def test_serialization_is_canonical():
    codec = Nrf51822Codec()
    first = codec.serialize(_record())
    again = codec.serialize(codec.deserialize(first))
    assert first == again


@pytest.mark.core
def test_factory_returns_codec_per_kind():
    assert isinstance(create_codec(KIND_NRF51822), Nrf51822Codec)
    assert isinstance(create_codec(" ESP8266 "), Esp8266Codec)
    assert create_codec(KIND_ESP8266).transport == "wifi"
    with pytest.raises(ValidationError):
        create_codec("zigbee")


@pytest.mark.core
def test_kind_mismatch_is_rejected():
    payload = Esp8266Codec().serialize(_record(kind=KIND_ESP8266))
    with pytest.raises(DecodeError):
        Nrf51822Codec().deserialize(payload)


@pytest.mark.core
def test_missing_kind_defaults_to_codec_kind():
    item = record_to_dict(_record())
    item.pop("deviceKind")
    decoded = Esp8266Codec().deserialize(item)
    assert decoded.kind == KIND_ESP8266


@pytest.mark.core
@pytest.mark.parametrize(
    "mutate",
    [
        lambda item: item.pop("localUUID"),
        lambda item: item.update(state="SLEEPING"),
        lambda item: item.update(progress=1.5),
        lambda item: item.update(progress=True),
        lambda item: item.update(lastSeen="2024-03-09T17:45:12"),
        lambda item: item.update(lastSeen="yesterday"),
        lambda item: item.update(remoteUUID=7),
    ],
)
def test_malformed_records_raise_decode_error(mutate):
    item = record_to_dict(_record())
    mutate(item)
    with pytest.raises(DecodeError):
        Nrf51822Codec().deserialize(item)


@pytest.mark.core
def test_non_object_payloads_raise_decode_error():
    codec = Nrf51822Codec()
    with pytest.raises(DecodeError):
        codec.deserialize(b"[1, 2]")
    with pytest.raises(DecodeError):
        codec.deserialize(b"\xff\xfe")


@pytest.mark.core
def test_new_record_defaults():
    record = create_codec(KIND_NRF51822).new_record(
        local_uuid="aa",
        application_uuid="sensors",
        remote_uuid="r-1",
        seen_at=SEEN,
    )
    assert record.state == STATE_ONLINE
    assert record.progress == 0.0
    assert record.commit == ""
    assert record.last_seen == SEEN


@pytest.mark.core
def test_record_invariants():
    with pytest.raises(ValidationError):
        _record(local_uuid="")
    with pytest.raises(ValidationError):
        _record(last_seen=datetime(2024, 1, 1))
    assert _record(remote_uuid="").is_provisioned is False
    assert _record().is_provisioned is True
