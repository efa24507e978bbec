import math
import os
from dataclasses import dataclass
from functools import lru_cache
from urllib.parse import urlparse

from edgenode_core.devices.types import DEVICE_KINDS
from edgenode_core.errors import ConfigurationError
from edgenode_core.storage.paths import join_uri
from edgenode_core.supervisor.types import SupervisorConfig

DB_BACKENDS: tuple[str, ...] = ("json", "sqlite")


@dataclass(frozen=True)
class Config:
    env: str
    log_level: str
    dependent_log_level: str
    loop_delay_s: int
    pause_delay_s: int
    probe_timeout_s: int
    scan_timeout_s: int
    assets_dir: str
    db_dir: str
    db_name: str
    db_backend: str
    api_version: str
    supervisor_address: str
    supervisor_api_key: str
    lock_file: str
    radio_snapshot_uri: str
    device_kind: str
    request_timeout_s: float = 30.0

    def db_uri(self) -> str:
        return join_uri(self.db_dir, self.db_name)

    def supervisor(self) -> SupervisorConfig:
        return SupervisorConfig(
            address=self.supervisor_address,
            version=self.api_version,
            api_key=self.supervisor_api_key,
            timeout_s=self.request_timeout_s,
        )

    @classmethod
    def from_env(cls) -> "Config":
        def seconds(name: str, default: str, *, minimum: int = 0) -> int:
            raw = os.getenv(name, default).strip() or default
            try:
                value = int(raw)
            except ValueError as exc:
                raise ConfigurationError(f"{name} must be an integer") from exc
            if value < minimum:
                raise ConfigurationError(f"{name} must be >= {minimum}")
            return value

        env = os.getenv("ENV", "local")
        log_level = _level_name(os.getenv("ENM_LOG_LEVEL"))
        dependent_log_level = _level_name(os.getenv("DEPENDENT_LOG_LEVEL"))
        loop_delay_s = seconds("ENM_CONFIG_LOOP_DELAY", "10")
        pause_delay_s = seconds("ENM_CONFIG_PAUSE_DELAY", "10")
        probe_timeout_s = seconds("ENM_BLUETOOTH_SHORT_TIMEOUT", "1", minimum=1)
        scan_timeout_s = seconds("ENM_BLUETOOTH_LONG_TIMEOUT", "10", minimum=1)
        assets_dir = os.getenv("ENM_ASSETS_DIRECTORY") or "/data/assets"
        db_dir = os.getenv("ENM_DB_DIRECTORY") or "/data/database"
        db_name = os.getenv("ENM_DB_NAME") or "my.db"

        db_backend = (os.getenv("ENM_DB_BACKEND") or "json").strip().lower()
        if db_backend not in DB_BACKENDS:
            allowed = ", ".join(DB_BACKENDS)
            raise ConfigurationError(f"ENM_DB_BACKEND must be one of: {allowed}")

        api_version = (os.getenv("ENM_API_VERSION") or "v1").strip("/")
        supervisor_address = (
            os.getenv("RESIN_SUPERVISOR_ADDRESS") or "http://127.0.0.1:4000"
        )
        parsed = urlparse(supervisor_address)
        if parsed.scheme not in {"http", "https"} or not parsed.netloc:
            raise ConfigurationError(
                f"RESIN_SUPERVISOR_ADDRESS is not a valid URL: {supervisor_address}"
            )
        supervisor_api_key = os.getenv("RESIN_SUPERVISOR_API_KEY", "")
        if any(ord(char) < 32 or ord(char) == 127 for char in supervisor_api_key):
            raise ConfigurationError(
                "RESIN_SUPERVISOR_API_KEY contains control characters"
            )

        lock_file = os.getenv("ENM_LOCK_FILE_LOCATION") or "/data/resin-updates.lock"
        radio_snapshot_uri = os.getenv("ENM_RADIO_SNAPSHOT_URI") or join_uri(
            db_dir, "radio.json"
        )
        device_kind = (os.getenv("ENM_DEVICE_KIND") or "nrf51822").strip().lower()
        if device_kind not in DEVICE_KINDS:
            allowed = ", ".join(DEVICE_KINDS)
            raise ConfigurationError(f"ENM_DEVICE_KIND must be one of: {allowed}")

        request_timeout_raw = os.getenv("ENM_API_TIMEOUT", "30")
        try:
            request_timeout_s = float(request_timeout_raw)
        except ValueError as exc:
            raise ConfigurationError("ENM_API_TIMEOUT must be a number") from exc
        if not math.isfinite(request_timeout_s) or request_timeout_s <= 0:
            raise ConfigurationError("ENM_API_TIMEOUT must be a positive number")

        return cls(
            env=env,
            log_level=log_level,
            dependent_log_level=dependent_log_level,
            loop_delay_s=loop_delay_s,
            pause_delay_s=pause_delay_s,
            probe_timeout_s=probe_timeout_s,
            scan_timeout_s=scan_timeout_s,
            assets_dir=assets_dir,
            db_dir=db_dir,
            db_name=db_name,
            db_backend=db_backend,
            api_version=api_version,
            supervisor_address=supervisor_address,
            supervisor_api_key=supervisor_api_key,
            lock_file=lock_file,
            radio_snapshot_uri=radio_snapshot_uri,
            device_kind=device_kind,
            request_timeout_s=request_timeout_s,
        )


_LEVEL_NAMES = {
    "debug": "DEBUG",
    "info": "INFO",
    "warn": "WARNING",
    "warning": "WARNING",
    "error": "ERROR",
    "fatal": "CRITICAL",
    "panic": "CRITICAL",
}


def _level_name(value: str | None) -> str:
    if not value:
        return "INFO"
    return _LEVEL_NAMES.get(value.strip().lower(), "INFO")


@lru_cache(maxsize=1)
def get_config() -> Config:
    return Config.from_env()
