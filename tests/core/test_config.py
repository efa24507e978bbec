from __future__ import annotations

import pytest

from edgenode_core.config import Config, get_config
from edgenode_core.errors import ConfigurationError


@pytest.mark.core
def test_config_defaults(tmp_path):
    config = get_config()

    assert config.env == "test"
    assert config.loop_delay_s == 10
    assert config.pause_delay_s == 10
    assert config.probe_timeout_s == 1
    assert config.scan_timeout_s == 10
    assert config.db_backend == "json"
    assert config.db_name == "my.db"
    assert config.device_kind == "nrf51822"
    assert config.db_uri() == (tmp_path / "db" / "my.db").as_posix()
    assert config.radio_snapshot_uri == (tmp_path / "db" / "radio.json").as_posix()
    assert config.request_timeout_s == 30.0


@pytest.mark.core
def test_config_supervisor_settings(monkeypatch):
    monkeypatch.setenv("RESIN_SUPERVISOR_ADDRESS", "http://supervisor:48484")
    monkeypatch.setenv("RESIN_SUPERVISOR_API_KEY", "secret")
    monkeypatch.setenv("ENM_API_VERSION", "/v2/")
    monkeypatch.setenv("ENM_API_TIMEOUT", "5")

    supervisor = Config.from_env().supervisor()

    assert supervisor.address == "http://supervisor:48484"
    assert supervisor.api_key == "secret"
    assert supervisor.version == "v2"
    assert supervisor.timeout_s == 5.0


@pytest.mark.core
def test_log_level_names_are_case_insensitive(monkeypatch):
    monkeypatch.setenv("ENM_LOG_LEVEL", "Warn")
    monkeypatch.setenv("DEPENDENT_LOG_LEVEL", "panic")
    config = Config.from_env()
    assert config.log_level == "WARNING"
    assert config.dependent_log_level == "CRITICAL"


@pytest.mark.core
@pytest.mark.parametrize(
    ("name", "value"),
    [
        ("ENM_CONFIG_LOOP_DELAY", "soon"),
        ("ENM_BLUETOOTH_SHORT_TIMEOUT", "0"),
        ("ENM_BLUETOOTH_LONG_TIMEOUT", "-3"),
        ("ENM_DB_BACKEND", "postgres"),
        ("ENM_DEVICE_KIND", "zigbee"),
        ("RESIN_SUPERVISOR_ADDRESS", "supervisor:4000"),
        ("RESIN_SUPERVISOR_API_KEY", "bad\nkey"),
        ("ENM_API_TIMEOUT", "never"),
        ("ENM_API_TIMEOUT", "-5"),
        ("ENM_API_TIMEOUT", "0"),
        ("ENM_API_TIMEOUT", "nan"),
        ("ENM_API_TIMEOUT", "inf"),
    ],
)
def test_invalid_settings_raise(monkeypatch, name, value):
    monkeypatch.setenv(name, value)
    with pytest.raises(ConfigurationError):
        Config.from_env()


@pytest.mark.core
def test_get_config_is_cached():
    assert get_config() is get_config()
