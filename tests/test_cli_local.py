from __future__ import annotations

import json
from pathlib import Path

from edgenode_cli import cli
from edgenode_core.config import get_config
from edgenode_core.radio import SnapshotRadio
from edgenode_core.stores.json_store import JsonDeviceStore
from edgenode_core.supervisor.types import ApplicationInfo


class FakeSupervisor:
    def __init__(self, *_args, **_kwargs) -> None:
        self.calls: list[str] = []

    def provision(self, application_id: str) -> tuple[str, str]:
        self.calls.append(application_id)
        return f"remote-{len(self.calls)}", f"node-{len(self.calls)}"

    def list_applications(self) -> dict[str, ApplicationInfo]:
        return {
            "sensors": ApplicationInfo(app_id="7", name="sensors", commit="abc"),
            "lights": ApplicationInfo(app_id="8", name="lights"),
        }


def _env_args(tmp_path: Path) -> list[str]:
    return ["--env-file", (tmp_path / "missing.env").as_posix()]


def _write_snapshot(config) -> None:
    path = Path(config.radio_snapshot_uri)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        json.dumps({"scopes": {"sensors": ["bb", "aa"]}, "online": ["aa"]}),
        encoding="utf-8",
    )


def test_cli_pass_then_devices(monkeypatch, capsys, tmp_path):
    supervisor = FakeSupervisor()

    def fake_runtime(config):
        return supervisor, JsonDeviceStore(config.db_uri()), SnapshotRadio(
            config.radio_snapshot_uri
        )

    monkeypatch.setattr(cli, "_build_runtime", fake_runtime)
    _write_snapshot(get_config())

    code = cli.main(_env_args(tmp_path) + ["pass", "--app", "sensors", "--app-id", "7"])
    assert code == 0
    report = json.loads(capsys.readouterr().out)
    assert report["provisioned"] == ["aa", "bb"]
    assert report["online"] == ["aa"]
    assert report["offline"] == ["bb"]
    assert [device["localUUID"] for device in report["devices"]] == ["aa", "bb"]
    assert supervisor.calls == ["7", "7"]

    code = cli.main(_env_args(tmp_path) + ["devices", "--app", "sensors"])
    assert code == 0
    devices = json.loads(capsys.readouterr().out)
    assert [device["localUUID"] for device in devices] == ["aa", "bb"]
    assert devices[0]["state"] == "ONLINE"
    assert devices[1]["remoteUUID"] == "remote-2"


def test_cli_applications(monkeypatch, capsys, tmp_path):
    monkeypatch.setattr(cli, "SupervisorClient", FakeSupervisor)
    code = cli.main(_env_args(tmp_path) + ["applications"])
    assert code == 0
    payload = json.loads(capsys.readouterr().out)
    assert [item["name"] for item in payload] == ["lights", "sensors"]
    assert payload[1]["commit"] == "abc"


def test_cli_doctor(capsys, tmp_path):
    code = cli.main(_env_args(tmp_path) + ["doctor"])
    assert code == 1
    assert "ENM_DB_DIRECTORY: missing" in capsys.readouterr().out

    config = get_config()
    Path(config.db_dir).mkdir(parents=True)
    Path(config.assets_dir).mkdir(parents=True)
    _write_snapshot(config)
    code = cli.main(_env_args(tmp_path) + ["doctor"])
    assert code == 0

    Path(config.lock_file).write_text("", encoding="utf-8")
    code = cli.main(_env_args(tmp_path) + ["doctor"])
    assert code == 1
    assert "ENM_LOCK_FILE_LOCATION: locked" in capsys.readouterr().out


def test_cli_env_file_is_applied(monkeypatch, capsys, tmp_path):
    monkeypatch.delenv("ENM_DB_BACKEND", raising=False)
    env_file = tmp_path / "custom.env"
    env_file.write_text("# local overrides\nENM_DB_BACKEND=cassandra\n", encoding="utf-8")
    code = cli.main(["--env-file", env_file.as_posix(), "doctor"])
    assert code == 1
    assert "ENM_DB_BACKEND" in capsys.readouterr().err


def test_cli_serve_dry_run(capsys, tmp_path):
    code = cli.main(_env_args(tmp_path) + ["serve", "--port", "9001", "--dry-run"])
    assert code == 0
    output = capsys.readouterr().out
    assert "local_adapter.fleet_service:app" in output
    assert "--port 9001" in output


def test_cli_without_command_prints_help(capsys):
    assert cli.main([]) == 2
