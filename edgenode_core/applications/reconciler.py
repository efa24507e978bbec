"""Reconciliation of an application's known devices against radio visibility.

One call to :meth:`Application.process` is one pass:

1. load the stored devices (a failed load degrades to an empty set),
2. scan for radio-visible identifiers,
3. diff visible identifiers against known ``local_uuid`` values,
4. provision every new identifier and create its record,
5. probe the liveness of every known device,
6. save every known device.

Stages never retry; the first hard failure raises and ends the pass.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable

from edgenode_core.applications.artifacts import resolve_application
from edgenode_core.devices.registry import DeviceRegistry
from edgenode_core.devices.types import KIND_NRF51822, DeviceRecord, normalize_kind
from edgenode_core.errors import (
    ArtifactNotFound,
    DecodeError,
    EdgeNodeError,
    PassInProgressError,
    ProbeError,
    ProvisioningError,
    ScanError,
    StoreError,
)
from edgenode_core.logging import get_logger
from edgenode_core.radio.interfaces import RadioTransport
from edgenode_core.stores.interfaces import PersistentStore
from edgenode_core.supervisor.client import ProvisioningClient
from edgenode_core.supervisor.types import ProvisionedIdentity

logger = get_logger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class PassReport:
    application: str
    started_at: datetime
    known: int
    visible: tuple[str, ...]
    provisioned: tuple[str, ...]
    online: tuple[str, ...]
    offline: tuple[str, ...]
    saved: int
    load_failed: bool
    devices: tuple[DeviceRecord, ...]
    keys: tuple[str, ...] = ()
    location: str | None = None
    commit: str | None = None
    duration_ms: int = 0

    def to_dict(self) -> dict[str, object]:
        return {
            "application": self.application,
            "started_at": self.started_at.isoformat(),
            "known": self.known,
            "visible": list(self.visible),
            "provisioned": list(self.provisioned),
            "online": list(self.online),
            "offline": list(self.offline),
            "saved": self.saved,
            "load_failed": self.load_failed,
            "location": self.location,
            "commit": self.commit,
            "duration_ms": self.duration_ms,
        }


class Application:
    """A managed application and the devices that run it.

    One instance is reused across passes. It holds the single-flight lock and
    the ledger of remote identities that were provisioned but never stored,
    so a retried pass reuses an identity instead of provisioning again.
    """

    def __init__(
        self,
        name: str,
        *,
        radio: RadioTransport,
        store: PersistentStore,
        provisioner: ProvisioningClient,
        kind: str = KIND_NRF51822,
        app_id: str | None = None,
        directory: str | None = None,
        scan_timeout_s: int = 10,
        probe_timeout_s: int = 10,
        now_fn: Callable[[], datetime] | None = None,
    ) -> None:
        self.name = name
        self.app_id = app_id or name
        self.directory = directory
        self.kind = normalize_kind(kind)
        self.radio = radio
        self.provisioner = provisioner
        self.scan_timeout_s = scan_timeout_s
        self.probe_timeout_s = probe_timeout_s
        self._now = now_fn or _utc_now
        self.registry = DeviceRegistry(store, self.kind, now_fn=self._now)
        self._lock = threading.Lock()
        self._pending: dict[str, ProvisionedIdentity] = {}

    @property
    def pending_identities(self) -> dict[str, ProvisionedIdentity]:
        return dict(self._pending)

    def process(self) -> PassReport:
        if not self._lock.acquire(blocking=False):
            raise PassInProgressError(f"Pass already running for {self.name}")
        try:
            return self._run_pass()
        finally:
            self._lock.release()

    def _run_pass(self) -> PassReport:
        started_at = self._now()
        started = time.monotonic()
        logger.info(
            "Reconciliation pass started",
            extra={
                "application": self.name,
                "stage": "start",
                "device_kind": self.kind,
                "radio": type(self.radio).__name__,
            },
        )

        location, commit = self._resolve_artifact()
        devices, load_failed = self._load()
        known = len(devices)
        visible = self._scan()
        new_ids = self._diff(devices, visible)
        provisioned = self._provision(devices, new_ids)
        online, offline = self._probe(devices, started_at)
        saved = self._persist(devices)

        ordered_items = _sorted_items(devices)
        ordered = tuple(record for _, record in ordered_items)
        duration_ms = int((time.monotonic() - started) * 1000)
        logger.info(
            "Reconciliation pass completed",
            extra={
                "application": self.name,
                "stage": "done",
                "device_count": len(ordered),
                "duration_ms": duration_ms,
            },
        )
        return PassReport(
            application=self.name,
            started_at=started_at,
            known=known,
            visible=tuple(sorted(visible)),
            provisioned=provisioned,
            online=online,
            offline=offline,
            saved=saved,
            load_failed=load_failed,
            devices=ordered,
            keys=tuple(key for key, _ in ordered_items),
            location=location,
            commit=commit,
            duration_ms=duration_ms,
        )

    def _resolve_artifact(self) -> tuple[str | None, str | None]:
        if not self.directory:
            return None, None
        try:
            artifact = resolve_application(self.directory, self.app_id)
        except ArtifactNotFound:
            logger.info(
                "No application location or commit found",
                extra={"application": self.name},
            )
            return None, None
        logger.info(
            "Application artifact resolved",
            extra={
                "application": self.name,
                "path": artifact.location,
                "commit": artifact.commit,
            },
        )
        return artifact.location, artifact.commit

    def _load(self) -> tuple[dict[str, DeviceRecord], bool]:
        try:
            devices = self.registry.load(self.name)
        except (DecodeError, StoreError) as exc:
            logger.warning(
                "Failed to load devices",
                extra={
                    "application": self.name,
                    "stage": "load",
                    "error_code": type(exc).__name__,
                    "error_message": str(exc),
                },
            )
            return {}, True
        logger.info(
            "Application devices loaded",
            extra={"application": self.name, "device_count": len(devices)},
        )
        for key, record in _sorted_items(devices):
            logger.debug(
                "Known device",
                extra={
                    "application": self.name,
                    "store_key": key,
                    "local_uuid": record.local_uuid,
                    "remote_uuid": record.remote_uuid,
                    "state": record.state,
                },
            )
        return devices, False

    def _scan(self) -> set[str]:
        try:
            visible = self.radio.scan(self.name, self.scan_timeout_s)
        except ScanError:
            raise
        except (EdgeNodeError, OSError) as exc:
            raise ScanError(f"Failed to scan for online devices: {exc}") from exc
        visible = {str(item) for item in visible if item}
        logger.info(
            "Online devices found",
            extra={
                "application": self.name,
                "stage": "scan",
                "device_count": len(visible),
            },
        )
        for local_uuid in sorted(visible):
            logger.debug(
                "Visible device",
                extra={"application": self.name, "local_uuid": local_uuid},
            )
        return visible

    def _diff(self, devices: dict[str, DeviceRecord], visible: set[str]) -> list[str]:
        known_ids = {record.local_uuid for record in devices.values()}
        new_ids: list[str] = []
        for local_uuid in sorted(visible):
            if local_uuid in known_ids:
                logger.debug(
                    "Device exists",
                    extra={"application": self.name, "local_uuid": local_uuid},
                )
                continue
            new_ids.append(local_uuid)
        return new_ids

    def _provision(
        self,
        devices: dict[str, DeviceRecord],
        new_ids: list[str],
    ) -> tuple[str, ...]:
        provisioned: list[str] = []
        for local_uuid in new_ids:
            identity = self._pending.get(local_uuid)
            if identity is None:
                logger.info(
                    "Provisioning device",
                    extra={
                        "application": self.name,
                        "stage": "provision",
                        "local_uuid": local_uuid,
                    },
                )
                identity = self._request_identity(local_uuid)
                self._pending[local_uuid] = identity
            else:
                logger.info(
                    "Reusing provisioned identity",
                    extra={
                        "application": self.name,
                        "stage": "provision",
                        "local_uuid": local_uuid,
                        "remote_uuid": identity.remote_uuid,
                    },
                )

            try:
                record, key = self.registry.create(
                    self.kind,
                    local_uuid,
                    self.name,
                    identity.remote_uuid,
                    name=identity.name,
                )
            except OSError as exc:
                raise StoreError(f"Failed to store device {local_uuid}: {exc}") from exc
            del self._pending[local_uuid]
            devices[key] = record
            provisioned.append(local_uuid)
        return tuple(provisioned)

    def _request_identity(self, local_uuid: str) -> ProvisionedIdentity:
        try:
            remote_uuid, name = self.provisioner.provision(self.app_id)
        except ProvisioningError:
            raise
        except (EdgeNodeError, OSError) as exc:
            raise ProvisioningError(
                f"Failed to provision device {local_uuid}: {exc}"
            ) from exc
        if not remote_uuid:
            raise ProvisioningError(f"Backend returned no identity for {local_uuid}")
        return ProvisionedIdentity(remote_uuid=remote_uuid, name=name or "")

    def _probe(
        self,
        devices: dict[str, DeviceRecord],
        seen_at: datetime,
    ) -> tuple[tuple[str, ...], tuple[str, ...]]:
        online: list[str] = []
        offline: list[str] = []
        for key, record in _sorted_items(devices):
            try:
                is_online = self.radio.online(record.local_uuid, self.probe_timeout_s)
            except ProbeError:
                raise
            except (EdgeNodeError, OSError) as exc:
                raise ProbeError(
                    f"Failed to probe device {record.local_uuid}: {exc}"
                ) from exc
            if is_online:
                devices[key] = record.mark_online(seen_at)
                online.append(record.local_uuid)
            else:
                devices[key] = record.mark_offline()
                offline.append(record.local_uuid)
            logger.debug(
                "Device probed",
                extra={
                    "application": self.name,
                    "stage": "probe",
                    "local_uuid": record.local_uuid,
                    "state": devices[key].state,
                },
            )
        return tuple(online), tuple(offline)

    def _persist(self, devices: dict[str, DeviceRecord]) -> int:
        saved = 0
        for key, record in _sorted_items(devices):
            try:
                self.registry.save(key, record)
            except OSError as exc:
                raise StoreError(f"Failed to save device {record.local_uuid}: {exc}") from exc
            saved += 1
        return saved


def _sorted_items(devices: dict[str, DeviceRecord]) -> list[tuple[str, DeviceRecord]]:
    return sorted(devices.items(), key=lambda entry: (entry[1].local_uuid, entry[0]))
