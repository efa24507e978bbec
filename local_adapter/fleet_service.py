from __future__ import annotations

import os
import threading
import time

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from edgenode_core.applications import Application
from edgenode_core.config import Config, get_config
from edgenode_core.devices.registry import DeviceRegistry
from edgenode_core.devices.types import DeviceRecord
from edgenode_core.errors import EdgeNodeError, PassInProgressError
from edgenode_core.logging import configure_logging, get_logger
from edgenode_core.radio import RadioTransport, SnapshotRadio
from edgenode_core.stores.interfaces import PersistentStore
from edgenode_core.stores.registry import get_persistent_store
from edgenode_core.supervisor import SupervisorClient

SERVICE_NAME = "edgenode-local-fleet"

configure_logging(
    service=SERVICE_NAME,
    env=os.getenv("ENV", "local"),
    version=os.getenv("EDGENODE_VERSION"),
)
logger = get_logger(__name__)

app = FastAPI()


class HealthResponse(BaseModel):
    status: str
    service: str
    version: str
    timestamp: str


class DeviceResponse(BaseModel):
    key: str
    local_uuid: str
    remote_uuid: str
    application_uuid: str
    commit: str
    state: str
    progress: float
    last_seen: str
    kind: str
    name: str


class PassResponse(BaseModel):
    application: str
    started_at: str
    known: int
    visible: list[str]
    provisioned: list[str]
    online: list[str]
    offline: list[str]
    saved: int
    load_failed: bool
    location: str | None = None
    commit: str | None = None
    duration_ms: int
    devices: list[DeviceResponse]


def _cors_origins() -> list[str]:
    raw = os.getenv("CORS_ALLOW_ORIGINS", "")
    if raw:
        return [origin.strip() for origin in raw.split(",") if origin.strip()]
    env = os.getenv("ENV", "dev").lower()
    if env in {"dev", "local", "test"}:
        return ["*"]
    return []


_cors = _cors_origins()
if _cors:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=_cors,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

_APPLICATIONS: dict[str, Application] = {}
_APPLICATIONS_LOCK = threading.Lock()


def _get_config() -> Config:
    return get_config()


def _build_runtime(
    config: Config,
) -> tuple[SupervisorClient, PersistentStore, RadioTransport]:
    return (
        SupervisorClient(config.supervisor()),
        get_persistent_store(config),
        SnapshotRadio(config.radio_snapshot_uri),
    )


def _lookup_app_id(supervisor: SupervisorClient, name: str) -> str:
    info = supervisor.list_applications().get(name)
    if info is None:
        raise HTTPException(status_code=404, detail=f"Unknown application: {name}")
    return info.app_id


def _application(name: str, app_id: str | None = None) -> Application:
    with _APPLICATIONS_LOCK:
        existing = _APPLICATIONS.get(name)
        if existing is not None and (app_id is None or existing.app_id == app_id):
            return existing
        config = _get_config()
        supervisor, store, radio = _build_runtime(config)
        if app_id is None:
            app_id = _lookup_app_id(supervisor, name)
        application = Application(
            name,
            app_id=app_id,
            radio=radio,
            store=store,
            provisioner=supervisor,
            kind=config.device_kind,
            directory=config.assets_dir,
            scan_timeout_s=config.scan_timeout_s,
            probe_timeout_s=config.probe_timeout_s,
        )
        _APPLICATIONS[name] = application
        return application


def _registry(name: str) -> DeviceRegistry:
    with _APPLICATIONS_LOCK:
        existing = _APPLICATIONS.get(name)
    if existing is not None:
        return existing.registry
    config = _get_config()
    _, store, _ = _build_runtime(config)
    return DeviceRegistry(store, config.device_kind)


def _device_response(key: str, record: DeviceRecord) -> DeviceResponse:
    return DeviceResponse(
        key=key,
        local_uuid=record.local_uuid,
        remote_uuid=record.remote_uuid,
        application_uuid=record.application_uuid,
        commit=record.commit,
        state=record.state,
        progress=record.progress,
        last_seen=record.last_seen.isoformat(),
        kind=record.kind,
        name=record.name,
    )


@app.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    return HealthResponse(
        status="ok",
        service=SERVICE_NAME,
        version=os.getenv("EDGENODE_VERSION", "dev"),
        timestamp=time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
    )


@app.get("/applications/{name}/devices", response_model=list[DeviceResponse])
def list_devices(name: str) -> list[DeviceResponse]:
    registry = _registry(name)
    try:
        devices = registry.list_sorted(name)
    except EdgeNodeError as exc:
        logger.error(
            "Failed to list devices",
            extra={
                "application": name,
                "error_code": type(exc).__name__,
                "error_message": str(exc),
            },
        )
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    return [_device_response(key, record) for key, record in devices]


@app.post("/applications/{name}/pass", response_model=PassResponse)
def run_pass(name: str, app_id: str | None = None) -> PassResponse:
    try:
        report = _application(name, app_id).process()
    except PassInProgressError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except EdgeNodeError as exc:
        logger.error(
            "Reconciliation pass failed",
            extra={
                "application": name,
                "error_code": type(exc).__name__,
                "error_message": str(exc),
            },
        )
        raise HTTPException(status_code=502, detail=str(exc)) from exc

    return PassResponse(
        application=report.application,
        started_at=report.started_at.isoformat(),
        known=report.known,
        visible=list(report.visible),
        provisioned=list(report.provisioned),
        online=list(report.online),
        offline=list(report.offline),
        saved=report.saved,
        load_failed=report.load_failed,
        location=report.location,
        commit=report.commit,
        duration_ms=report.duration_ms,
        devices=[
            _device_response(key, record)
            for key, record in zip(report.keys, report.devices)
        ],
    )
