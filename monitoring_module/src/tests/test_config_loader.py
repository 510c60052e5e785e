"""
Tests for the monitoring configuration loader.
"""

from pathlib import Path

import pytest
import yaml

from measurement_module.src.exceptions import ConfigurationError
from monitoring_module.src.alerting import AlertSeverity
from monitoring_module.src.config_loader import ConfigLoader, MonitoringConfig, load_config
from monitoring_module.src.engine import build_notifier


PROJECT_CONFIG = Path(__file__).resolve().parents[3] / "config.yml"


def write_config(tmp_path, data) -> str:
    path = tmp_path / "config.yml"
    path.write_text(yaml.dump(data), encoding="utf-8")
    return str(path)


@pytest.fixture
def minimal_config():
    return {
        "thresholds": {"warning": 0.25, "critical": 0.45, "demographicParity": 0.1},
        "monitoring": {"sweep_interval_seconds": 60, "offload_min_subjects": 1000},
    }


class TestConfigLoader:
    """Tests for ConfigLoader."""

    def test_load_and_resolve(self, tmp_path, minimal_config):
        """Sections map onto MonitoringConfig fields."""
        loader = ConfigLoader(write_config(tmp_path, minimal_config))
        loader.load()

        assert loader.validate() == []
        config = loader.to_monitoring_config()
        assert config.thresholds.warning == 0.25
        assert config.thresholds.demographic_parity == 0.1
        assert config.sweep_interval_seconds == 60
        assert config.offload_min_subjects == 1000
        assert config.persistence_retry_attempts == 3

    def test_missing_file(self, tmp_path):
        """A missing file raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            ConfigLoader(str(tmp_path / "absent.yml")).load()

    def test_missing_sections(self, tmp_path):
        """thresholds and monitoring are required."""
        loader = ConfigLoader(write_config(tmp_path, {"thresholds": {}}))
        loader.load()

        errors = loader.validate()
        assert "Missing required section: monitoring" in errors

    def test_unknown_threshold(self, tmp_path, minimal_config):
        """Unknown threshold names are reported."""
        minimal_config["thresholds"]["parity_gap"] = 0.1
        loader = ConfigLoader(write_config(tmp_path, minimal_config))
        loader.load()

        assert any("parity_gap" in e for e in loader.validate())

    def test_invalid_values(self, tmp_path, minimal_config):
        """Value errors come from MonitoringConfig.validate."""
        minimal_config["thresholds"]["warning"] = 0.6
        minimal_config["alerting"] = {"routing": [{"min_severity": "urgent", "channels": []}]}
        loader = ConfigLoader(write_config(tmp_path, minimal_config))
        loader.load()

        errors = loader.validate()
        assert any("below critical" in e for e in errors)
        assert any("Invalid routing severity" in e for e in errors)
        assert any("has no channels" in e for e in errors)

    def test_dot_notation_get(self, tmp_path, minimal_config):
        """get() walks nested keys."""
        loader = ConfigLoader(write_config(tmp_path, minimal_config))
        loader.load()

        assert loader.get("monitoring.sweep_interval_seconds") == 60
        assert loader.get("monitoring.missing", "default") == "default"
        assert loader.get("thresholds.warning.deeper") is None

    def test_save_round_trip(self, tmp_path, minimal_config):
        """save() writes YAML that loads back unchanged."""
        loader = ConfigLoader(write_config(tmp_path, minimal_config))
        loader.load()
        out = tmp_path / "nested" / "saved.yml"
        loader.save(str(out))

        assert yaml.safe_load(out.read_text(encoding="utf-8")) == minimal_config


class TestLoadConfig:
    """Tests for load_config."""

    def test_invalid_config_raises(self, tmp_path):
        """Invalid files raise ConfigurationError."""
        path = write_config(tmp_path, {"thresholds": {"critical": 2.0}, "monitoring": {}})
        with pytest.raises(ConfigurationError):
            load_config(path)

    def test_project_config(self):
        """The shipped config.yml is valid and routes to the log channel."""
        config = load_config(str(PROJECT_CONFIG))

        assert config.validate() == []
        assert config.critical_alert_assignee == "compliance_admin"
        assert config.reports_dir == "reports/"
        notifier = build_notifier(config)
        assert notifier.routing_rules == [{"severity": AlertSeverity.MEDIUM, "channels": ["log"]}]

    def test_defaults(self):
        """MonitoringConfig() is valid on its own."""
        config = MonitoringConfig()
        assert config.validate() == []
        assert config.thresholds.version == 1

    def test_cache_backend_validation(self):
        """Only known cache backends are accepted; redis needs a URL."""
        assert any("cache_backend" in e for e in MonitoringConfig(cache_backend="memcached").validate())
        assert any("redis_url" in e for e in MonitoringConfig(cache_backend="redis", redis_url="").validate())
        assert MonitoringConfig(cache_backend="redis").validate() == []

    def test_cache_backend_from_file(self, tmp_path, minimal_config):
        """Redis settings are read from the monitoring section."""
        minimal_config["monitoring"].update({
            "cache_backend": "redis",
            "redis_url": "redis://cache:6379/2",
            "redis_key_prefix": "bias:",
        })
        config = load_config(write_config(tmp_path, minimal_config))

        assert config.cache_backend == "redis"
        assert config.redis_url == "redis://cache:6379/2"
        assert config.redis_key_prefix == "bias:"
