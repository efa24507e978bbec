from __future__ import annotations

import os
import time
from typing import Callable

from edgenode_core.applications.artifacts import artifact_exists
from edgenode_core.applications.reconciler import Application, PassReport
from edgenode_core.config import Config
from edgenode_core.errors import EdgeNodeError, TransientIOError
from edgenode_core.logging import get_logger
from edgenode_core.radio.interfaces import RadioTransport
from edgenode_core.storage.paths import artifact_uri
from edgenode_core.stores.interfaces import PersistentStore
from edgenode_core.supervisor.client import SupervisorClient
from edgenode_core.supervisor.types import ApplicationInfo

logger = get_logger(__name__)

CycleResult = dict[str, "PassReport | EdgeNodeError"]


class FleetManager:
    """Drives reconciliation passes for every application the supervisor lists.

    Applications are built once and cached by name so each keeps its
    single-flight lock and pending-identity ledger across cycles. A failing
    application never stops the cycle for the others.
    """

    def __init__(
        self,
        config: Config,
        supervisor: SupervisorClient,
        store: PersistentStore,
        radio: RadioTransport,
        *,
        report_status: bool = False,
    ) -> None:
        self.config = config
        self.supervisor = supervisor
        self.store = store
        self.radio = radio
        self.report_status = report_status
        self._applications: dict[str, Application] = {}

    def paused(self) -> bool:
        return bool(self.config.lock_file) and os.path.exists(self.config.lock_file)

    def application(self, info: ApplicationInfo) -> Application:
        existing = self._applications.get(info.name)
        if existing is not None:
            return existing
        app = Application(
            info.name,
            app_id=info.app_id,
            radio=self.radio,
            store=self.store,
            provisioner=self.supervisor,
            kind=self.config.device_kind,
            directory=self.config.assets_dir,
            scan_timeout_s=self.config.scan_timeout_s,
            probe_timeout_s=self.config.probe_timeout_s,
        )
        self._applications[info.name] = app
        return app

    def applications(self) -> list[Application]:
        listed = self.supervisor.list_applications()
        return [self.application(listed[name]) for name in sorted(listed)]

    def fetch_artifact(self, info: ApplicationInfo) -> str | None:
        """Download the listed commit's artifact unless it is already present."""
        if not info.commit or not self.config.assets_dir:
            return None
        target = artifact_uri(self.config.assets_dir, info.app_id, info.commit)
        try:
            present = artifact_exists(target)
        except OSError as exc:
            raise TransientIOError(f"Failed checking artifact {target}: {exc}") from exc
        if present:
            return target
        logger.info(
            "Downloading application artifact",
            extra={"application": info.name, "commit": info.commit, "path": target},
        )
        return self.supervisor.download_application(
            info.app_id, info.commit, self.config.assets_dir
        )

    def run_cycle(self) -> CycleResult:
        if self.paused():
            logger.info(
                "Update lock held, skipping cycle",
                extra={"path": self.config.lock_file},
            )
            return {}
        try:
            listed = self.supervisor.list_applications()
        except EdgeNodeError as exc:
            logger.warning(
                "Failed to list applications",
                extra={
                    "error_code": type(exc).__name__,
                    "error_message": str(exc),
                },
            )
            return {}

        results: CycleResult = {}
        for name in sorted(listed):
            info = listed[name]
            app = self.application(info)
            try:
                self.fetch_artifact(info)
            except EdgeNodeError as exc:
                logger.warning(
                    "Artifact download failed",
                    extra={
                        "application": app.name,
                        "commit": info.commit,
                        "error_message": str(exc),
                    },
                )
            try:
                report = app.process()
            except EdgeNodeError as exc:
                logger.error(
                    "Reconciliation pass failed",
                    extra={
                        "application": app.name,
                        "error_code": type(exc).__name__,
                        "error_message": str(exc),
                    },
                )
                results[app.name] = exc
                continue
            results[app.name] = report
            if self.report_status:
                self._report(report)
        return results

    def run(
        self,
        *,
        max_cycles: int | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> int:
        cycles = 0
        logger.info(
            "Edge node manager started",
            extra={"stage": "loop", "path": self.config.lock_file},
        )
        while max_cycles is None or cycles < max_cycles:
            paused = self.paused()
            if not paused:
                self.run_cycle()
            cycles += 1
            if max_cycles is not None and cycles >= max_cycles:
                break
            delay = self.config.pause_delay_s if paused else self.config.loop_delay_s
            sleep(max(0.1, float(delay)))
        return cycles

    def _report(self, report: PassReport) -> None:
        for record in report.devices:
            if not record.is_provisioned:
                continue
            try:
                self.supervisor.update_device_info(
                    record.remote_uuid,
                    "Idle",
                    record.is_online,
                )
            except EdgeNodeError as exc:
                logger.warning(
                    "Device status report failed",
                    extra={
                        "application": report.application,
                        "remote_uuid": record.remote_uuid,
                        "error_message": str(exc),
                    },
                )
