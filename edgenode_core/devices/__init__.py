from edgenode_core.devices.kinds import DeviceCodec, create_codec
from edgenode_core.devices.registry import DeviceRegistry
from edgenode_core.devices.types import (
    DEVICE_KINDS,
    DEVICE_STATES,
    KIND_ESP8266,
    KIND_NRF51822,
    STATE_OFFLINE,
    STATE_ONLINE,
    DeviceRecord,
)

__all__ = [
    "DEVICE_KINDS",
    "DEVICE_STATES",
    "DeviceCodec",
    "DeviceRecord",
    "DeviceRegistry",
    "KIND_ESP8266",
    "KIND_NRF51822",
    "STATE_OFFLINE",
    "STATE_ONLINE",
    "create_codec",
]
