"""
Tests for the configuration loading and validation logic.
"""

import pytest
import yaml
from copy import deepcopy

from canary_rollout.core.config import (
    CanaryConfig, ConfigError, HealthThresholds, TrafficShiftConfig,
    load_settings, parse_canary_config,
)

VALID_CONFIG_DICT = {
    "logging": {"level": "DEBUG"},
    "deployment": {"deployment_id": "web", "blue_version": "v1", "green_version": "v2"},
    "canary": {
        "initial_percentage": 5,
        "increment_percentage": 15,
        "max_percentage": 95,
        "increment_interval_ms": 120000,
        "failure_threshold_count": 2,
        "rollback_on": {"error_rate": 2.5, "latency_p95": 1500},
        "health_checks": [{"name": "homepage", "url": "https://example.com"}],
    },
}


@pytest.fixture
def config_file(tmp_path):
    def _write(data):
        path = tmp_path / "settings.yaml"
        path.write_text(yaml.safe_dump(data), encoding="utf-8")
        return path
    return _write


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    import os
    for key in list(os.environ):
        if key.startswith("CANARY_ROLLOUT_"):
            monkeypatch.delenv(key)


def test_defaults():
    cfg = CanaryConfig()
    assert cfg.initial_percentage == 0
    assert cfg.increment_percentage == 25
    assert cfg.max_percentage == 100
    assert cfg.increment_interval_ms == 300_000
    assert cfg.failure_threshold_count == 3
    assert cfg.health_checks == []
    assert cfg.rollback_on == HealthThresholds()
    assert cfg.rollback_on.error_rate is None


def test_canary_config_is_a_traffic_shift_config():
    assert isinstance(CanaryConfig(), TrafficShiftConfig)


def test_load_valid_settings(config_file):
    settings = load_settings(str(config_file(VALID_CONFIG_DICT)))
    assert settings.logging.level == "DEBUG"
    assert settings.deployment.green_version == "v2"
    assert settings.canary.max_percentage == 95
    assert settings.canary.rollback_on.error_rate == 2.5
    assert settings.canary.rollback_on.success_rate is None
    assert settings.canary.health_checks[0]["name"] == "homepage"


def test_env_overrides(config_file, monkeypatch):
    monkeypatch.setenv("CANARY_ROLLOUT_CANARY__ROLLBACK_ON__SUCCESS_RATE", "99.5")
    monkeypatch.setenv("CANARY_ROLLOUT_CANARY__FAILURE_THRESHOLD_COUNT", "5")
    monkeypatch.setenv("CANARY_ROLLOUT_DEPLOYMENT__GREEN_VERSION", "2024")
    settings = load_settings(str(config_file(VALID_CONFIG_DICT)))
    assert settings.canary.rollback_on.success_rate == 99.5
    assert settings.canary.rollback_on.error_rate == 2.5
    assert settings.canary.failure_threshold_count == 5
    assert settings.deployment.green_version == "2024"


def test_missing_file_raises(tmp_path):
    with pytest.raises(ConfigError, match="not found"):
        load_settings(str(tmp_path / "nope.yaml"))


def test_empty_file_raises(tmp_path):
    path = tmp_path / "empty.yaml"
    path.write_text("", encoding="utf-8")
    with pytest.raises(ConfigError, match="empty"):
        load_settings(str(path))


def test_malformed_yaml_raises(tmp_path):
    path = tmp_path / "bad.yaml"
    path.write_text("canary: [unclosed", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_settings(str(path))


@pytest.mark.parametrize("section,key,value", [
    ("canary", "initial_percentage", 120),
    ("canary", "increment_percentage", -5),
    ("canary", "max_percentage", 101),
    ("canary", "increment_interval_ms", -1),
    ("canary", "failure_threshold_count", 0),
])
def test_invalid_values_raise(config_file, section, key, value):
    data = deepcopy(VALID_CONFIG_DICT)
    data[section][key] = value
    with pytest.raises(ConfigError):
        load_settings(str(config_file(data)))


def test_initial_above_max_rejected(config_file):
    data = deepcopy(VALID_CONFIG_DICT)
    data["canary"]["initial_percentage"] = 96
    with pytest.raises(ConfigError):
        load_settings(str(config_file(data)))


def test_missing_deployment_rejected(config_file):
    data = deepcopy(VALID_CONFIG_DICT)
    del data["deployment"]
    with pytest.raises(ConfigError):
        load_settings(str(config_file(data)))


def test_parse_canary_config():
    cfg = parse_canary_config({"rollback_on": {"latency_p99": 800}})
    assert cfg.rollback_on.latency_p99 == 800
    with pytest.raises(ConfigError):
        parse_canary_config({"rollback_on": {"success_rate": 150}})
