from __future__ import annotations

import json
from typing import Any

import fsspec

from edgenode_core.errors import ProbeError, ScanError, TransportError
from edgenode_core.logging import get_logger
from edgenode_core.radio.interfaces import RadioTransport

logger = get_logger(__name__)


class SnapshotRadio(RadioTransport):
    """Radio transport backed by a snapshot document written by a radio daemon.

    The document has the form ``{"scopes": {scope: [ids]}, "online": [ids]}``
    and is re-read on every call, so the daemon can refresh it between passes.
    """

    name = "snapshot"

    def __init__(self, uri: str) -> None:
        self._uri = uri

    @property
    def uri(self) -> str:
        return self._uri

    def scan(self, scope: str, timeout_s: int) -> set[str]:
        try:
            snapshot = self._read()
        except TransportError as exc:
            raise ScanError(f"Scan failed for {scope}: {exc}") from exc
        scopes = snapshot.get("scopes")
        if not isinstance(scopes, dict):
            return set()
        visible = _id_set(scopes.get(scope))
        logger.debug(
            "Radio snapshot scanned",
            extra={"radio": self.name, "application": scope, "device_count": len(visible)},
        )
        return visible

    def online(self, local_uuid: str, timeout_s: int) -> bool:
        try:
            snapshot = self._read()
        except TransportError as exc:
            raise ProbeError(f"Probe failed for {local_uuid}: {exc}") from exc
        return local_uuid in _id_set(snapshot.get("online"))

    def _read(self) -> dict[str, Any]:
        try:
            fs, path = fsspec.core.url_to_fs(self._uri)
            if not fs.exists(path):
                raise TransportError(f"Radio snapshot not found: {self._uri}")
            with fs.open(path, "rb") as handle:
                payload = json.loads(handle.read().decode("utf-8"))
        except (OSError, ValueError) as exc:
            raise TransportError(f"Radio snapshot unreadable: {exc}") from exc
        if not isinstance(payload, dict):
            raise TransportError("Radio snapshot must be a JSON object")
        return payload


def _id_set(value: object) -> set[str]:
    if not isinstance(value, (list, tuple)):
        return set()
    return {str(item).strip() for item in value if str(item).strip()}
