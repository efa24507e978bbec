from __future__ import annotations

import argparse
import json
import os
import subprocess
import sys
from pathlib import Path
from typing import Any

from edgenode_core.applications import Application, FleetManager
from edgenode_core.config import Config, get_config
from edgenode_core.devices.kinds import record_to_dict
from edgenode_core.devices.registry import DeviceRegistry
from edgenode_core.logging import configure_logging
from edgenode_core.radio import RadioTransport, SnapshotRadio
from edgenode_core.stores.interfaces import PersistentStore
from edgenode_core.stores.registry import get_persistent_store
from edgenode_core.supervisor import SupervisorClient

SERVICE_NAME = "edgenode"
DEFAULT_ENV_FILE = ".env"
SERVICE_TARGET = "local_adapter.fleet_service:app"


def _read_env_file(path: Path) -> dict[str, str]:
    env: dict[str, str] = {}
    if not path.exists():
        return env
    for raw in path.read_text(encoding="utf-8").splitlines():
        line = raw.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        env[key.strip()] = value.strip()
    return env


def _apply_env(env: dict[str, str], *, override: bool = False) -> None:
    for key, value in env.items():
        if value == "":
            continue
        if not override and key in os.environ:
            continue
        os.environ[key] = value


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, indent=2, sort_keys=True))


def _load_config(args: argparse.Namespace) -> Config:
    env = _read_env_file(Path(args.env_file))
    if env:
        _apply_env(env)
    get_config.cache_clear()
    config = get_config()
    configure_logging(
        service=SERVICE_NAME,
        env=config.env,
        version=os.getenv("EDGENODE_VERSION"),
        level=config.log_level,
        dependent_level=config.dependent_log_level,
    )
    return config


def _build_runtime(
    config: Config,
) -> tuple[SupervisorClient, PersistentStore, RadioTransport]:
    supervisor = SupervisorClient(config.supervisor())
    store = get_persistent_store(config)
    radio = SnapshotRadio(config.radio_snapshot_uri)
    return supervisor, store, radio


def cmd_run(args: argparse.Namespace) -> int:
    config = _load_config(args)
    supervisor, store, radio = _build_runtime(config)
    manager = FleetManager(
        config,
        supervisor,
        store,
        radio,
        report_status=args.report_status,
    )
    cycles = manager.run(max_cycles=args.cycles)
    print(f"Completed {cycles} cycle(s).")
    return 0


def cmd_pass(args: argparse.Namespace) -> int:
    config = _load_config(args)
    supervisor, store, radio = _build_runtime(config)
    application = Application(
        args.app,
        app_id=args.app_id,
        radio=radio,
        store=store,
        provisioner=supervisor,
        kind=config.device_kind,
        directory=config.assets_dir,
        scan_timeout_s=config.scan_timeout_s,
        probe_timeout_s=config.probe_timeout_s,
    )
    report = application.process()
    payload = report.to_dict()
    payload["devices"] = [record_to_dict(record) for record in report.devices]
    _print_json(payload)
    return 0


def cmd_devices(args: argparse.Namespace) -> int:
    config = _load_config(args)
    store = get_persistent_store(config)
    registry = DeviceRegistry(store, config.device_kind)
    devices = registry.list_sorted(args.app)
    _print_json(
        [
            {"key": key, **record_to_dict(record)}
            for key, record in devices
        ]
    )
    return 0


def cmd_applications(args: argparse.Namespace) -> int:
    config = _load_config(args)
    supervisor = SupervisorClient(config.supervisor())
    applications = supervisor.list_applications()
    _print_json(
        [
            {
                "app_id": info.app_id,
                "name": info.name,
                "commit": info.commit,
                "device_type": info.device_type,
            }
            for _, info in sorted(applications.items())
        ]
    )
    return 0


def _uvicorn_cmd(target: str, host: str, port: int, log_level: str) -> list[str]:
    return [
        "uvicorn",
        target,
        "--host",
        host,
        "--port",
        str(port),
        "--log-level",
        log_level,
    ]


def cmd_serve(args: argparse.Namespace) -> int:
    command = _uvicorn_cmd(SERVICE_TARGET, args.host, args.port, args.log_level)
    if args.dry_run:
        print(" ".join(command))
        return 0
    env = _read_env_file(Path(args.env_file))
    if env:
        _apply_env(env)
    proc = subprocess.Popen(command)
    try:
        return proc.wait() or 0
    except KeyboardInterrupt:
        proc.terminate()
        proc.wait(timeout=5)
        return 0


def cmd_doctor(args: argparse.Namespace) -> int:
    config = _load_config(args)

    checks: list[tuple[str, bool, str]] = []
    checks.append(("ENM_DB_DIRECTORY", Path(config.db_dir).is_dir(), config.db_dir))
    checks.append(
        ("ENM_ASSETS_DIRECTORY", Path(config.assets_dir).is_dir(), config.assets_dir)
    )
    checks.append(
        (
            "ENM_RADIO_SNAPSHOT_URI",
            Path(config.radio_snapshot_uri).exists(),
            config.radio_snapshot_uri,
        )
    )
    locked = Path(config.lock_file).exists()
    checks.append(
        ("ENM_LOCK_FILE_LOCATION", not locked, "held" if locked else "free")
    )

    ok = True
    for name, passed, info in checks:
        status = "ok" if passed else "missing"
        if name == "ENM_LOCK_FILE_LOCATION" and not passed:
            status = "locked"
        if not passed:
            ok = False
        print(f"{name}: {status} ({info})")

    return 0 if ok else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="edgenode")
    parser.add_argument("--env-file", default=DEFAULT_ENV_FILE)
    subparsers = parser.add_subparsers(dest="command")

    run_parser = subparsers.add_parser("run", help="Run the reconciliation loop")
    run_parser.add_argument("--cycles", type=int, default=None)
    run_parser.add_argument(
        "--report-status",
        action=argparse.BooleanOptionalAction,
        default=False,
    )
    run_parser.set_defaults(func=cmd_run)

    pass_parser = subparsers.add_parser(
        "pass", help="Run one reconciliation pass for an application"
    )
    pass_parser.add_argument("--app", required=True)
    pass_parser.add_argument("--app-id")
    pass_parser.set_defaults(func=cmd_pass)

    devices_parser = subparsers.add_parser(
        "devices", help="List stored devices for an application"
    )
    devices_parser.add_argument("--app", required=True)
    devices_parser.set_defaults(func=cmd_devices)

    apps_parser = subparsers.add_parser(
        "applications", help="List applications known to the supervisor"
    )
    apps_parser.set_defaults(func=cmd_applications)

    serve_parser = subparsers.add_parser("serve", help="Run the local status service")
    serve_parser.add_argument("--host", default="0.0.0.0")
    serve_parser.add_argument("--port", type=int, default=8083)
    serve_parser.add_argument("--log-level", default="info")
    serve_parser.add_argument("--dry-run", action="store_true", help="Print command only")
    serve_parser.set_defaults(func=cmd_serve)

    doctor_parser = subparsers.add_parser("doctor", help="Check local prerequisites")
    doctor_parser.set_defaults(func=cmd_doctor)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not getattr(args, "command", None):
        parser.print_help()
        return 2
    try:
        return args.func(args)
    except Exception as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
