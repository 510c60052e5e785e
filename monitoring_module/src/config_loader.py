"""
Config Loader - Load and validate monitoring configuration from YAML.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from shared.constants import (
    CACHE_BACKENDS,
    DEFAULT_CONFIDENCE_LEVEL,
    DEFAULT_PATHS,
    MIN_GROUP_SIZE,
    MIN_SAMPLE_SIZE,
    MONITORING_DEFAULTS,
    PROTECTED_ATTRIBUTES,
    SEVERITY_LEVELS,
)
from shared.logging import get_logger, log_validation
from measurement_module.src.exceptions import ConfigurationError
from monitoring_module.src.thresholds import THRESHOLD_ALIASES, TUNABLE_FIELDS, ThresholdConfig

logger = get_logger(__name__)

REQUIRED_SECTIONS = ['thresholds', 'monitoring']


@dataclass
class MonitoringConfig:
    """Resolved engine configuration with defaults filled in."""

    thresholds: ThresholdConfig = field(default_factory=ThresholdConfig)
    confidence_level: float = DEFAULT_CONFIDENCE_LEVEL
    min_sample_size: int = MIN_SAMPLE_SIZE
    min_group_size: int = MIN_GROUP_SIZE
    protected_attributes: List[str] = field(default_factory=lambda: list(PROTECTED_ATTRIBUTES))
    sweep_interval_seconds: float = MONITORING_DEFAULTS["sweep_interval_seconds"]
    daily_report_interval_seconds: float = MONITORING_DEFAULTS["daily_report_interval_seconds"]
    weekly_report_interval_seconds: float = MONITORING_DEFAULTS["weekly_report_interval_seconds"]
    realtime_cache_ttl_seconds: float = MONITORING_DEFAULTS["realtime_cache_ttl_seconds"]
    metrics_cache_ttl_seconds: float = MONITORING_DEFAULTS["metrics_cache_ttl_seconds"]
    cache_max_entries: int = MONITORING_DEFAULTS["cache_max_entries"]
    cache_backend: str = MONITORING_DEFAULTS["cache_backend"]
    redis_url: str = MONITORING_DEFAULTS["redis_url"]
    redis_key_prefix: str = MONITORING_DEFAULTS["redis_key_prefix"]
    persistence_retry_attempts: int = MONITORING_DEFAULTS["persistence_retry_attempts"]
    persistence_backoff_seconds: float = MONITORING_DEFAULTS["persistence_backoff_seconds"]
    persistence_backoff_max_seconds: float = MONITORING_DEFAULTS["persistence_backoff_max_seconds"]
    offload_min_subjects: int = MONITORING_DEFAULTS["offload_min_subjects"]
    max_concurrent_evaluations: int = MONITORING_DEFAULTS["max_concurrent_evaluations"]
    recent_results_limit: int = MONITORING_DEFAULTS["recent_results_limit"]
    critical_alert_assignee: str = MONITORING_DEFAULTS["critical_alert_assignee"]
    alert_routing: List[Dict[str, Any]] = field(default_factory=list)
    reports_dir: str = DEFAULT_PATHS["reports"]
    log_level: str = "INFO"
    log_file: Optional[str] = None

    @classmethod
    def from_dict(cls, config: Dict[str, Any]) -> "MonitoringConfig":
        """Build from the parsed YAML layout (see config.yml)."""
        config = config or {}
        measurement = config.get('measurement', {}) or {}
        monitoring = config.get('monitoring', {}) or {}
        alerting = config.get('alerting', {}) or {}
        logging_cfg = config.get('logging', {}) or {}
        output = config.get('output', {}) or {}

        kwargs: Dict[str, Any] = {
            'thresholds': ThresholdConfig.from_dict(config.get('thresholds', {}) or {}),
        }
        for key in ('confidence_level', 'min_sample_size', 'min_group_size', 'protected_attributes'):
            if key in measurement:
                kwargs[key] = measurement[key]
        for key in MONITORING_DEFAULTS:
            if key in monitoring:
                kwargs[key] = monitoring[key]
        if 'critical_alert_assignee' in alerting:
            kwargs['critical_alert_assignee'] = alerting['critical_alert_assignee']
        if 'routing' in alerting:
            kwargs['alert_routing'] = list(alerting['routing'] or [])
        if 'reports_dir' in output:
            kwargs['reports_dir'] = output['reports_dir']
        if 'level' in logging_cfg:
            kwargs['log_level'] = logging_cfg['level']
        if 'log_file' in logging_cfg:
            kwargs['log_file'] = logging_cfg['log_file']

        return cls(**kwargs)

    def validate(self) -> List[str]:
        """
        Validate configuration.

        Returns:
            List of validation errors (empty if valid)
        """
        errors = list(self.thresholds.validate())

        if not 0 < self.confidence_level < 1:
            errors.append(f"confidence_level must be in (0, 1), got {self.confidence_level}")
        if self.min_sample_size < 2:
            errors.append(f"min_sample_size must be >= 2, got {self.min_sample_size}")
        if not self.protected_attributes:
            errors.append("protected_attributes must not be empty")

        for key in ('sweep_interval_seconds', 'daily_report_interval_seconds',
                    'weekly_report_interval_seconds', 'realtime_cache_ttl_seconds',
                    'metrics_cache_ttl_seconds'):
            if getattr(self, key) <= 0:
                errors.append(f"{key} must be positive")
        if self.persistence_retry_attempts < 1:
            errors.append("persistence_retry_attempts must be >= 1")
        if self.max_concurrent_evaluations < 1:
            errors.append("max_concurrent_evaluations must be >= 1")
        if self.cache_backend not in CACHE_BACKENDS:
            errors.append(f"cache_backend must be one of {CACHE_BACKENDS}, got {self.cache_backend}")
        elif self.cache_backend == "redis" and not self.redis_url:
            errors.append("redis_url is required for the redis cache backend")

        for rule in self.alert_routing:
            severity = rule.get('min_severity')
            if severity not in SEVERITY_LEVELS:
                errors.append(f"Invalid routing severity: {severity}")
            if not rule.get('channels'):
                errors.append(f"Routing rule for {severity} has no channels")

        return errors


class ConfigLoader:
    """
    Load and validate monitoring configuration.

    Example:
        >>> loader = ConfigLoader('config.yml')
        >>> config = loader.load()
        >>> errors = loader.validate()
        >>> monitoring_config = loader.to_monitoring_config()
    """

    def __init__(self, config_path: str):
        """
        Initialize config loader.

        Args:
            config_path: Path to YAML config file
        """
        self.config_path = Path(config_path)
        self.config: Dict[str, Any] = {}

    def load(self) -> Dict[str, Any]:
        """Load configuration from YAML file."""
        if not self.config_path.exists():
            raise FileNotFoundError(f"Config file not found: {self.config_path}")

        with open(self.config_path, 'r') as f:
            self.config = yaml.safe_load(f) or {}

        logger.info(f"Loaded config from {self.config_path}")
        return self.config

    def validate(self) -> List[str]:
        """
        Validate configuration.

        Returns:
            List of validation errors (empty if valid)
        """
        errors = []

        for section in REQUIRED_SECTIONS:
            if section not in self.config:
                errors.append(f"Missing required section: {section}")

        thresholds = self.config.get('thresholds') or {}
        unknown = [k for k in thresholds if THRESHOLD_ALIASES.get(k, k) not in TUNABLE_FIELDS]
        if unknown:
            errors.append(f"Unknown threshold settings: {unknown}")

        if not errors:
            errors.extend(self.to_monitoring_config().validate())

        log_validation(logger, str(self.config_path), errors)
        return errors

    def to_monitoring_config(self) -> MonitoringConfig:
        return MonitoringConfig.from_dict(self.config)

    def get(self, key: str, default: Any = None) -> Any:
        """Get config value by key (supports dot notation)."""
        keys = key.split('.')
        value = self.config

        for k in keys:
            if isinstance(value, dict):
                value = value.get(k)
                if value is None:
                    return default
            else:
                return default

        return value

    def save(self, output_path: str) -> None:
        """Save configuration to file."""
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        with open(output_path, 'w') as f:
            yaml.dump(self.config, f, default_flow_style=False)

        logger.info(f"Saved config to {output_path}")


def load_config(config_path: str) -> MonitoringConfig:
    """
    Load, validate and resolve a monitoring config file.

    Raises:
        ConfigurationError: If configuration is invalid
    """
    loader = ConfigLoader(config_path)
    loader.load()

    errors = loader.validate()
    if errors:
        raise ConfigurationError(f"Invalid configuration: {errors}")

    return loader.to_monitoring_config()
