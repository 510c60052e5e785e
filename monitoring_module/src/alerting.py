"""
Alerting System for Bias Monitoring

Keeps one open alert per (process, violation type, metric), drives the
active -> acknowledged -> resolved lifecycle and routes alerts to
notification channels by severity.

Author: FairML Consulting
Date: January 2026
"""

import threading
import uuid
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from shared.constants import MONITORING_DEFAULTS, SEVERITY_RANK
from shared.logging import get_logger, log_alert
from shared.schemas import BiasViolation
from shared.validation import validate_severity
from monitoring_module.src.exceptions import AlertNotFoundError, AlertStateError

logger = get_logger(__name__)

AlertKey = Tuple[str, str, str]


class AlertSeverity(Enum):
    """Alert severity levels."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return SEVERITY_RANK[self.value]


class AlertStatus(Enum):
    """Alert lifecycle states."""
    ACTIVE = "active"
    ACKNOWLEDGED = "acknowledged"
    RESOLVED = "resolved"


@dataclass
class BiasAlert:
    """
    An alert raised for a bias violation in one process.

    Attributes:
        alert_id: Unique identifier
        process_id: Process the violation was found in
        process_type: Type of that process
        violation: Most recent violation behind the alert
        analysis_snapshot: Serialised analysis at the latest occurrence
        severity: Current severity (follows the latest occurrence)
        status: Lifecycle state
        occurrence_count: How many evaluations reported this violation
        assignee: Owner; critical alerts are auto-assigned
        priority_score: Numerical priority (0-100)
    """

    alert_id: str
    process_id: str
    process_type: str
    violation: BiasViolation
    analysis_snapshot: Dict[str, Any]
    severity: AlertSeverity
    created_at: datetime
    updated_at: datetime
    status: AlertStatus = AlertStatus.ACTIVE
    acknowledged_at: Optional[datetime] = None
    acknowledged_by: Optional[str] = None
    resolved_at: Optional[datetime] = None
    resolved_by: Optional[str] = None
    resolution: Optional[str] = None
    occurrence_count: int = 1
    assignee: Optional[str] = None
    priority_score: float = 0.0

    @property
    def key(self) -> AlertKey:
        return (self.process_id, self.violation.violation_type, self.violation.metric_name)

    @property
    def is_open(self) -> bool:
        return self.status != AlertStatus.RESOLVED

    def acknowledge(self, user: str, when: datetime) -> None:
        if self.status != AlertStatus.ACTIVE:
            raise AlertStateError(
                f"Alert {self.alert_id} cannot be acknowledged from {self.status.value}"
            )
        self.status = AlertStatus.ACKNOWLEDGED
        self.acknowledged_at = when
        self.acknowledged_by = user
        self.updated_at = when

    def resolve(self, user: str, resolution: str, when: datetime) -> None:
        if self.status == AlertStatus.RESOLVED:
            raise AlertStateError(f"Alert {self.alert_id} is already resolved")
        self.status = AlertStatus.RESOLVED
        self.resolved_at = when
        self.resolved_by = user
        self.resolution = resolution
        self.updated_at = when

    def age_hours(self, now: Optional[datetime] = None) -> float:
        now = now or datetime.now()
        return (now - self.created_at).total_seconds() / 3600

    @property
    def response_time_minutes(self) -> Optional[float]:
        if self.acknowledged_at is None:
            return None
        return (self.acknowledged_at - self.created_at).total_seconds() / 60

    @property
    def resolution_time_hours(self) -> Optional[float]:
        if self.resolved_at is None:
            return None
        return (self.resolved_at - self.created_at).total_seconds() / 3600

    def to_dict(self) -> dict:
        """Convert alert to dictionary."""
        return {
            'alert_id': self.alert_id,
            'process_id': self.process_id,
            'process_type': self.process_type,
            'violation': self.violation.to_dict(),
            'analysis_snapshot': self.analysis_snapshot,
            'severity': self.severity.value,
            'status': self.status.value,
            'created_at': self.created_at.isoformat(),
            'updated_at': self.updated_at.isoformat(),
            'acknowledged_at': self.acknowledged_at.isoformat() if self.acknowledged_at else None,
            'acknowledged_by': self.acknowledged_by,
            'resolved_at': self.resolved_at.isoformat() if self.resolved_at else None,
            'resolved_by': self.resolved_by,
            'resolution': self.resolution,
            'occurrence_count': self.occurrence_count,
            'assignee': self.assignee,
            'priority_score': self.priority_score,
            'response_time_minutes': self.response_time_minutes,
            'resolution_time_hours': self.resolution_time_hours,
        }

    def __str__(self) -> str:
        return (
            f"[{self.severity.value.upper()}] {self.violation.violation_type}: "
            f"{self.violation.metric_name}={self.violation.value:.3f} "
            f"(threshold={self.violation.threshold:.3f}, process={self.process_id})"
        )


def calculate_priority(severity: AlertSeverity, value: float, threshold: float, occurrences: int) -> float:
    """Priority score (0-100) from severity, excess over threshold and recurrence."""
    base_scores = {
        AlertSeverity.CRITICAL: 90,
        AlertSeverity.HIGH: 70,
        AlertSeverity.MEDIUM: 50,
        AlertSeverity.LOW: 30,
    }
    excess_pct = abs(value - threshold) / threshold * 100 if threshold else 0.0
    magnitude_adjustment = min(excess_pct / 10, 10)
    recurrence_adjustment = min((occurrences - 1) * 2, 10)
    return min(base_scores[severity] + magnitude_adjustment + recurrence_adjustment, 100)


class AlertStore:
    """
    In-memory alert store with per-key locking.

    upsert() is an atomic check-and-set per (process_id, violation type,
    metric): concurrent evaluations of the same process never open two
    alerts for the same violation.
    """

    def __init__(
        self,
        clock: Callable[[], datetime] = datetime.now,
        critical_assignee: str = MONITORING_DEFAULTS["critical_alert_assignee"],
    ):
        self.clock = clock
        self.critical_assignee = critical_assignee
        self._alerts: Dict[str, BiasAlert] = {}
        self._open: Dict[AlertKey, str] = {}
        self._key_locks: Dict[AlertKey, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def _lock_for(self, key: AlertKey) -> threading.Lock:
        with self._registry_lock:
            lock = self._key_locks.get(key)
            if lock is None:
                lock = self._key_locks[key] = threading.Lock()
            return lock

    def upsert(
        self,
        process_id: str,
        process_type: str,
        violation: BiasViolation,
        analysis_snapshot: Dict[str, Any],
    ) -> Tuple[BiasAlert, bool]:
        """
        Create an alert or refresh the open one for the same key.

        Returns:
            (alert, created) where created is False for a refresh
        """
        key = (process_id, violation.violation_type, violation.metric_name)
        validate_severity(violation.severity)
        severity = AlertSeverity(violation.severity)
        now = self.clock()

        with self._lock_for(key):
            with self._registry_lock:
                open_id = self._open.get(key)
                existing = self._alerts.get(open_id) if open_id else None

            if existing is not None and existing.is_open:
                existing.violation = violation
                existing.analysis_snapshot = analysis_snapshot
                existing.severity = severity
                existing.occurrence_count += 1
                existing.updated_at = now
                if severity == AlertSeverity.CRITICAL and existing.assignee is None:
                    existing.assignee = self.critical_assignee
                existing.priority_score = calculate_priority(
                    severity, violation.value, violation.threshold, existing.occurrence_count
                )
                logger.info(
                    f"Alert {existing.alert_id} refreshed "
                    f"(occurrences={existing.occurrence_count})"
                )
                return existing, False

            alert = BiasAlert(
                alert_id=f"alert_{uuid.uuid4().hex[:12]}",
                process_id=process_id,
                process_type=process_type,
                violation=violation,
                analysis_snapshot=analysis_snapshot,
                severity=severity,
                created_at=now,
                updated_at=now,
                assignee=self.critical_assignee if severity == AlertSeverity.CRITICAL else None,
                priority_score=calculate_priority(severity, violation.value, violation.threshold, 1),
            )
            with self._registry_lock:
                self._alerts[alert.alert_id] = alert
                self._open[key] = alert.alert_id

        log_alert(logger, process_id, violation.violation_type, severity.value, violation.description)
        return alert, True

    def get(self, alert_id: str) -> BiasAlert:
        with self._registry_lock:
            alert = self._alerts.get(alert_id)
        if alert is None:
            raise AlertNotFoundError(f"Unknown alert: {alert_id}")
        return alert

    def acknowledge(self, alert_id: str, user: str) -> BiasAlert:
        alert = self.get(alert_id)
        with self._lock_for(alert.key):
            alert.acknowledge(user, self.clock())
        logger.info(f"Alert {alert_id} acknowledged by {user}")
        return alert

    def resolve(self, alert_id: str, user: str, resolution: str) -> BiasAlert:
        alert = self.get(alert_id)
        with self._lock_for(alert.key):
            alert.resolve(user, resolution, self.clock())
            with self._registry_lock:
                if self._open.get(alert.key) == alert_id:
                    del self._open[alert.key]
        logger.info(f"Alert {alert_id} resolved by {user}: {resolution}")
        return alert

    def find_open(self, process_id: str, violation_type: str, metric_name: str) -> Optional[BiasAlert]:
        with self._registry_lock:
            alert_id = self._open.get((process_id, violation_type, metric_name))
            return self._alerts.get(alert_id) if alert_id else None

    def all_alerts(self) -> List[BiasAlert]:
        with self._registry_lock:
            alerts = list(self._alerts.values())
        return sorted(alerts, key=lambda a: a.created_at)

    def active_alerts(self) -> List[BiasAlert]:
        """Open alerts, highest priority first."""
        alerts = [a for a in self.all_alerts() if a.is_open]
        return sorted(alerts, key=lambda a: (-a.severity.rank, -a.priority_score))

    def critical_alerts(self) -> List[BiasAlert]:
        return [a for a in self.active_alerts() if a.severity == AlertSeverity.CRITICAL]

    def unacknowledged_alerts(self) -> List[BiasAlert]:
        return [a for a in self.active_alerts() if a.status == AlertStatus.ACTIVE]

    def alerts_for_process(self, process_id: str) -> List[BiasAlert]:
        return [a for a in self.all_alerts() if a.process_id == process_id]

    def __len__(self) -> int:
        with self._registry_lock:
            return len(self._alerts)


class AlertNotifier:
    """
    Notification system for bias alerts.

    Routes each alert to every channel whose minimum severity it meets.
    A failing channel is logged and does not stop the others.
    """

    def __init__(self):
        self.handlers: Dict[str, Callable[[BiasAlert], None]] = {}
        self.routing_rules: List[Dict[str, Any]] = []

    def register_handler(self, channel: str, handler: Callable[[BiasAlert], None]):
        """
        Register notification handler.

        Args:
            channel: Channel name (e.g., 'email', 'slack', 'pagerduty')
            handler: Function to handle notification
        """
        self.handlers[channel] = handler
        logger.info(f"Registered handler for channel: {channel}")

    def add_routing_rule(self, min_severity: AlertSeverity, channels: List[str]):
        self.routing_rules.append({'severity': min_severity, 'channels': channels})
        logger.info(f"Added routing rule: {min_severity.value} -> {channels}")

    def notify(self, alert: BiasAlert) -> List[str]:
        """
        Send notifications for alert.

        Returns:
            Channels that were notified successfully
        """
        channels = self._determine_channels(alert)
        if not channels:
            logger.debug(f"No channels configured for {alert.severity.value}")
            return []

        delivered = []
        for channel in channels:
            handler = self.handlers.get(channel)
            if handler is None:
                logger.warning(f"No handler registered for channel: {channel}")
                continue
            try:
                handler(alert)
                delivered.append(channel)
                logger.info(f"Notification sent to {channel}: {alert.alert_id}")
            except Exception as e:
                logger.error(f"Failed to send to {channel}: {e}")
        return delivered

    def _determine_channels(self, alert: BiasAlert) -> List[str]:
        channels = set()
        for rule in self.routing_rules:
            if alert.severity.rank >= rule['severity'].rank:
                channels.update(rule['channels'])
        return sorted(channels)


def log_handler(alert: BiasAlert):
    """Simple logging handler."""
    logger.warning(f"ALERT: {alert}")
