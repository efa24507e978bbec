import json
import logging
import os
import time
from typing import Any

_LEVEL_ALIASES: dict[str, int] = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "fatal": logging.CRITICAL,
    "panic": logging.CRITICAL,
    "critical": logging.CRITICAL,
}

_EXTRA_FIELDS: tuple[str, ...] = (
    "service",
    "env",
    "version",
    "application",
    "local_uuid",
    "remote_uuid",
    "store_key",
    "device_count",
    "stage",
    "state",
    "device_kind",
    "radio",
    "duration_ms",
    "status",
    "commit",
    "path",
    "method",
    "error_code",
    "error_message",
)


# Loggers that report on individual attached devices.
DEPENDENT_LOGGERS: tuple[str, ...] = (
    "edgenode_core.devices",
    "edgenode_core.radio",
)


def _utc_timestamp() -> str:
    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())


def parse_level(value: str | None, default: int = logging.INFO) -> int:
    if not value:
        return default
    return _LEVEL_ALIASES.get(value.strip().lower(), default)


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        base: dict[str, Any] = {
            "timestamp": _utc_timestamp(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for key in _EXTRA_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                base[key] = value

        if record.exc_info:
            base["exc_info"] = self.formatException(record.exc_info)

        return json.dumps(base, ensure_ascii=True, default=str)


class BaseFieldFilter(logging.Filter):
    def __init__(
        self,
        service: str,
        env: str | None,
        version: str | None,
    ) -> None:
        super().__init__()
        self.service = service
        self.env = env
        self.version = version

    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "service", None) is None:
            record.service = self.service
        if getattr(record, "env", None) is None:
            record.env = self.env
        if getattr(record, "version", None) is None:
            record.version = self.version
        return True


def configure_logging(
    service: str,
    env: str | None = None,
    version: str | None = None,
    level: str | None = None,
    dependent_level: str | None = None,
) -> None:
    log_level = parse_level(level or os.getenv("ENM_LOG_LEVEL"))
    root = logging.getLogger()
    root.setLevel(log_level)

    device_level = parse_level(
        dependent_level or os.getenv("DEPENDENT_LOG_LEVEL"),
        default=log_level,
    )
    for name in DEPENDENT_LOGGERS:
        logging.getLogger(name).setLevel(device_level)

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    handler.addFilter(BaseFieldFilter(service=service, env=env, version=version))

    if root.handlers:
        root.handlers = []
    root.addHandler(handler)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
