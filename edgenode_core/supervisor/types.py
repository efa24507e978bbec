from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class SupervisorConfig:
    address: str
    version: str = "v1"
    api_key: str = ""
    timeout_s: float = 30.0


@dataclass(frozen=True)
class ApplicationInfo:
    app_id: str
    name: str
    commit: str | None = None
    device_type: str | None = None
    config: dict[str, object] | None = None


@dataclass(frozen=True)
class ProvisionedIdentity:
    remote_uuid: str
    name: str
