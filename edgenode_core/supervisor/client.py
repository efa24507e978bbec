from __future__ import annotations

import json
import os
import tempfile
import time
import urllib.error
import urllib.request
from pathlib import Path
from typing import Any, Protocol
from urllib.parse import urlencode, urlparse, urlunparse

from edgenode_core.errors import (
    PermanentError,
    ProvisioningError,
    TransientIOError,
)
from edgenode_core.logging import get_logger
from edgenode_core.storage.paths import artifact_uri
from edgenode_core.supervisor.types import ApplicationInfo, SupervisorConfig

logger = get_logger(__name__)

RETRYABLE_STATUSES: tuple[int, ...] = (429, 500, 502, 503, 504)


class ProvisioningClient(Protocol):
    def provision(self, application_id: str) -> tuple[str, str]:
        ...


class SupervisorClient:
    """Request/response client for the fleet supervisor API.

    Every request carries the configured API key as the ``apikey`` query
    parameter. Failures are raised as ``TransientIOError`` for network errors
    and retryable statuses, ``PermanentError`` for anything else.
    """

    def __init__(self, config: SupervisorConfig) -> None:
        self._config = config

    @property
    def config(self) -> SupervisorConfig:
        return self._config

    def build_url(self, *parts: str) -> str:
        parsed = urlparse(self._config.address)
        segments = [parsed.path.strip("/"), self._config.version.strip("/")]
        segments.extend(str(part).strip("/") for part in parts)
        path = "/" + "/".join(segment for segment in segments if segment)
        query = urlencode({"apikey": self._config.api_key})
        return urlunparse((parsed.scheme, parsed.netloc, path, "", query, ""))

    def list_applications(self) -> dict[str, ApplicationInfo]:
        payload = self._request_json("GET", self.build_url("applications"))
        if not isinstance(payload, list):
            raise PermanentError("Applications response must be a JSON list")
        applications: dict[str, ApplicationInfo] = {}
        for item in payload:
            if not isinstance(item, dict) or not item.get("name"):
                continue
            info = _application_from_dict(item)
            applications[info.name] = info
        return applications

    def download_application(self, app_id: str, commit: str, assets_dir: str) -> str:
        """Fetch ``binary.tar`` for an application commit into ``assets_dir``."""
        url = self.build_url("assets", app_id, commit)
        target = Path(artifact_uri(assets_dir, str(app_id), commit))
        target_dir = target.parent
        logger.debug(
            "Requesting application update",
            extra={"application": app_id, "commit": commit, "path": str(target)},
        )

        request = urllib.request.Request(url, method="GET")
        tmp_path: str | None = None
        try:
            target_dir.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                delete=False, dir=str(target_dir)
            ) as tmp_handle:
                tmp_path = tmp_handle.name
                with self._open(request) as resp:
                    while True:
                        chunk = resp.read(1024 * 1024)
                        if not chunk:
                            break
                        tmp_handle.write(chunk)
            os.replace(tmp_path, target)
        except OSError as exc:
            raise TransientIOError(f"Failed downloading {app_id}/{commit}: {exc}") from exc
        finally:
            if tmp_path and os.path.exists(tmp_path):
                os.remove(tmp_path)
        return str(target)

    def send_device_log(self, remote_uuid: str, message: str) -> None:
        payload = {"message": message, "timestamp": int(time.time())}
        self._request_json(
            "PUT",
            self.build_url("devices", remote_uuid, "logs"),
            payload,
        )

    def update_device_info(self, remote_uuid: str, status: str, online: bool) -> None:
        payload = {"status": status, "is_online": online}
        self._request_json("PUT", self.build_url("devices", remote_uuid), payload)

    def provision(self, application_id: str) -> tuple[str, str]:
        payload = {"appId": _app_id_value(application_id)}
        response = self._request_json("POST", self.build_url("devices"), payload)
        if not isinstance(response, dict):
            raise ProvisioningError("Provision response must be a JSON object")
        remote_uuid = response.get("uuid")
        if not isinstance(remote_uuid, str) or not remote_uuid:
            raise ProvisioningError("Provision response is missing a device uuid")
        name = response.get("name")
        return remote_uuid, name if isinstance(name, str) else ""

    def _open(self, request: urllib.request.Request):
        try:
            return urllib.request.urlopen(request, timeout=self._config.timeout_s)
        except urllib.error.HTTPError as exc:
            body = exc.read().decode("utf-8", errors="ignore")
            message = f"HTTP {exc.code} from supervisor: {body or exc.reason}"
            if exc.code in RETRYABLE_STATUSES:
                raise TransientIOError(message) from exc
            raise PermanentError(message) from exc
        except (urllib.error.URLError, TimeoutError, OSError) as exc:
            raise TransientIOError(f"Supervisor unreachable: {exc}") from exc

    def _request_json(
        self,
        method: str,
        url: str,
        payload: dict[str, Any] | None = None,
    ) -> Any:
        data = None
        headers = {"Accept": "application/json"}
        if payload is not None:
            data = json.dumps(payload).encode("utf-8")
            headers["Content-Type"] = "application/json"
        request = urllib.request.Request(url, data=data, method=method, headers=headers)
        logger.debug(
            "Supervisor request",
            extra={"path": urlparse(url).path, "method": method},
        )
        try:
            with self._open(request) as resp:
                raw = resp.read()
        except OSError as exc:
            raise TransientIOError(f"Supervisor response interrupted: {exc}") from exc
        if not raw:
            return {}
        try:
            return json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise PermanentError(f"Supervisor returned invalid JSON: {exc}") from exc


def _app_id_value(application_id: str) -> int | str:
    text = str(application_id).strip()
    return int(text) if text.isdigit() else text


def _application_from_dict(item: dict[str, Any]) -> ApplicationInfo:
    app_id = item.get("appId", item.get("id", item["name"]))
    config = item.get("config")
    return ApplicationInfo(
        app_id=str(app_id),
        name=str(item["name"]),
        commit=_optional_str(item.get("commit")),
        device_type=_optional_str(item.get("device_type") or item.get("deviceType")),
        config=config if isinstance(config, dict) else None,
    )


def _optional_str(value: object) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None
