from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime

from edgenode_core.errors import ValidationError

STATE_ONLINE = "ONLINE"
STATE_OFFLINE = "OFFLINE"

DEVICE_STATES: tuple[str, ...] = (STATE_ONLINE, STATE_OFFLINE)

KIND_NRF51822 = "nrf51822"
KIND_ESP8266 = "esp8266"

DEVICE_KINDS: tuple[str, ...] = (KIND_NRF51822, KIND_ESP8266)


def normalize_kind(value: str | None) -> str:
    cleaned = (value or "").strip().lower()
    if cleaned not in DEVICE_KINDS:
        allowed = ", ".join(DEVICE_KINDS)
        raise ValidationError(f"Unknown device kind {value!r}; expected one of: {allowed}")
    return cleaned


@dataclass(frozen=True)
class DeviceRecord:
    local_uuid: str
    remote_uuid: str
    application_uuid: str
    commit: str
    state: str
    progress: float
    last_seen: datetime
    kind: str = KIND_NRF51822
    name: str = ""

    def __post_init__(self) -> None:
        if not self.local_uuid:
            raise ValidationError("local_uuid is required")
        if self.state not in DEVICE_STATES:
            raise ValidationError(f"Invalid device state: {self.state!r}")
        if not 0.0 <= self.progress <= 1.0:
            raise ValidationError(f"progress must be within [0, 1]: {self.progress}")
        if self.last_seen.tzinfo is None:
            raise ValidationError("last_seen must be timezone-aware")

    @property
    def is_provisioned(self) -> bool:
        return bool(self.remote_uuid)

    @property
    def is_online(self) -> bool:
        return self.state == STATE_ONLINE

    def mark_online(self, seen_at: datetime) -> DeviceRecord:
        return replace(self, state=STATE_ONLINE, last_seen=seen_at)

    def mark_offline(self) -> DeviceRecord:
        return replace(self, state=STATE_OFFLINE)

    def __str__(self) -> str:
        return (
            f"local={self.local_uuid} remote={self.remote_uuid or '-'} "
            f"state={self.state} commit={self.commit or '-'}"
        )
