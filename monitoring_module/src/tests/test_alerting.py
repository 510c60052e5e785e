"""
Tests for Alerting System

Tests the alert lifecycle, per-key upsert deduplication, alert queries
and notification routing.
"""

import threading
from datetime import datetime, timedelta
from unittest.mock import Mock

import pytest

from shared.schemas import BiasViolation
from monitoring_module.src.alerting import (
    AlertNotifier,
    AlertSeverity,
    AlertStatus,
    AlertStore,
    calculate_priority,
    log_handler,
)
from monitoring_module.src.exceptions import AlertNotFoundError, AlertStateError


class FakeClock:
    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


def make_violation(severity="high", violation_type="demographic_parity_violation",
                   metric_name="demographic_parity.gender", value=0.65):
    return BiasViolation(
        violation_type=violation_type,
        severity=severity,
        metric_name=metric_name,
        value=value,
        threshold=0.8,
        description="Selection rate gap on gender",
        attribute="gender",
        affected_groups=["female"],
    )


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 1, 15, 9, 0))


@pytest.fixture
def store(clock):
    return AlertStore(clock=clock)


# ============================================================================
# Enums
# ============================================================================

class TestAlertEnums:
    """Tests for alert enums."""

    def test_alert_severity_values(self):
        """Severity values are lower-case and ranked."""
        assert AlertSeverity.CRITICAL.value == "critical"
        assert AlertSeverity.LOW.value == "low"
        assert AlertSeverity.CRITICAL.rank > AlertSeverity.HIGH.rank > AlertSeverity.MEDIUM.rank

    def test_alert_status_values(self):
        """Lifecycle states."""
        assert [s.value for s in AlertStatus] == ["active", "acknowledged", "resolved"]


# ============================================================================
# Upsert
# ============================================================================

class TestAlertUpsert:
    """Tests for AlertStore.upsert deduplication."""

    def test_first_violation_creates_alert(self, store):
        """A new key opens an active alert."""
        alert, created = store.upsert("P-1", "hiring_decision", make_violation(), {"score": 0.4})

        assert created
        assert alert.status == AlertStatus.ACTIVE
        assert alert.occurrence_count == 1
        assert alert.severity == AlertSeverity.HIGH
        assert len(store) == 1

    def test_repeated_violation_updates_open_alert(self, store, clock):
        """Same (process, type, metric) refreshes instead of duplicating."""
        first, _ = store.upsert("P-1", "hiring_decision", make_violation(), {"score": 0.4})
        clock.advance(minutes=15)
        second, created = store.upsert(
            "P-1", "hiring_decision", make_violation(severity="critical", value=0.5), {"score": 0.6}
        )

        assert not created
        assert second.alert_id == first.alert_id
        assert second.occurrence_count == 2
        assert second.severity == AlertSeverity.CRITICAL
        assert second.analysis_snapshot == {"score": 0.6}
        assert second.updated_at == clock.now
        assert len(store) == 1

    def test_different_metric_opens_separate_alert(self, store):
        """Keys differ by metric name."""
        store.upsert("P-1", "hiring_decision", make_violation(), {})
        _, created = store.upsert(
            "P-1", "hiring_decision", make_violation(metric_name="demographic_parity.ethnicity"), {}
        )

        assert created
        assert len(store) == 2

    def test_resolved_alert_allows_new_alert(self, store):
        """After resolution the same key opens a fresh alert."""
        first, _ = store.upsert("P-1", "hiring_decision", make_violation(), {})
        store.resolve(first.alert_id, "analyst", "criteria adjusted")

        second, created = store.upsert("P-1", "hiring_decision", make_violation(), {})

        assert created
        assert second.alert_id != first.alert_id

    def test_critical_alert_auto_assigned(self, store):
        """Critical alerts go to the compliance admin."""
        alert, _ = store.upsert("P-1", "hiring_decision", make_violation(severity="critical"), {})
        assert alert.assignee == "compliance_admin"

        medium, _ = store.upsert(
            "P-2", "hiring_decision", make_violation(severity="medium"), {}
        )
        assert medium.assignee is None

    def test_concurrent_upserts_open_one_alert(self, store):
        """Parallel upserts of one key never create duplicates."""
        barrier = threading.Barrier(8)

        def worker():
            barrier.wait()
            store.upsert("P-1", "hiring_decision", make_violation(), {})

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        alerts = store.all_alerts()
        assert len(alerts) == 1
        assert alerts[0].occurrence_count == 8


# ============================================================================
# Lifecycle
# ============================================================================

class TestAlertLifecycle:
    """Tests for acknowledge / resolve transitions."""

    def test_acknowledge_then_resolve(self, store, clock):
        """active -> acknowledged -> resolved with timing views."""
        alert, _ = store.upsert("P-1", "hiring_decision", make_violation(), {})
        clock.advance(minutes=30)
        store.acknowledge(alert.alert_id, "analyst")
        clock.advance(hours=2)
        store.resolve(alert.alert_id, "analyst", "re-screened candidates")

        assert alert.status == AlertStatus.RESOLVED
        assert alert.acknowledged_by == "analyst"
        assert alert.resolution == "re-screened candidates"
        assert alert.response_time_minutes == pytest.approx(30)
        assert alert.resolution_time_hours == pytest.approx(2.5)

    def test_resolve_directly_from_active(self, store):
        """active -> resolved is allowed."""
        alert, _ = store.upsert("P-1", "hiring_decision", make_violation(), {})
        store.resolve(alert.alert_id, "analyst", "false positive")

        assert alert.status == AlertStatus.RESOLVED
        assert alert.response_time_minutes is None

    def test_acknowledge_twice_rejected(self, store):
        """Only active alerts can be acknowledged."""
        alert, _ = store.upsert("P-1", "hiring_decision", make_violation(), {})
        store.acknowledge(alert.alert_id, "analyst")

        with pytest.raises(AlertStateError):
            store.acknowledge(alert.alert_id, "analyst")

    def test_resolve_twice_rejected(self, store):
        """Resolved is terminal."""
        alert, _ = store.upsert("P-1", "hiring_decision", make_violation(), {})
        store.resolve(alert.alert_id, "analyst", "done")

        with pytest.raises(AlertStateError):
            store.resolve(alert.alert_id, "analyst", "again")
        with pytest.raises(AlertStateError):
            store.acknowledge(alert.alert_id, "analyst")

    def test_unknown_alert(self, store):
        """Unknown ids raise AlertNotFoundError (a KeyError)."""
        with pytest.raises(AlertNotFoundError):
            store.acknowledge("alert_missing", "analyst")
        with pytest.raises(KeyError):
            store.get("alert_missing")

    def test_age_hours(self, store, clock):
        """Age is measured from creation."""
        alert, _ = store.upsert("P-1", "hiring_decision", make_violation(), {})
        assert alert.age_hours(clock.now + timedelta(hours=3)) == pytest.approx(3)

    def test_to_dict_serialises_enums_and_dates(self, store):
        """to_dict uses enum values and ISO timestamps."""
        alert, _ = store.upsert("P-1", "hiring_decision", make_violation(), {})
        data = alert.to_dict()

        assert data["severity"] == "high"
        assert data["status"] == "active"
        assert data["created_at"] == "2026-01-15T09:00:00"
        assert data["violation"]["metric_name"] == "demographic_parity.gender"


# ============================================================================
# Queries
# ============================================================================

class TestAlertQueries:
    """Tests for active / critical / unacknowledged / by-process queries."""

    def test_queries(self, store):
        """Each query returns the right subset."""
        critical, _ = store.upsert("P-1", "hiring_decision", make_violation(severity="critical"), {})
        high, _ = store.upsert(
            "P-2", "matching", make_violation(metric_name="equalized_odds.gender"), {}
        )
        medium, _ = store.upsert(
            "P-2", "matching", make_violation(severity="medium", violation_type="statistical_bias",
                                             metric_name="effect_size.gender"), {}
        )
        store.acknowledge(high.alert_id, "analyst")
        store.resolve(medium.alert_id, "analyst", "noise")

        assert [a.alert_id for a in store.active_alerts()] == [critical.alert_id, high.alert_id]
        assert [a.alert_id for a in store.critical_alerts()] == [critical.alert_id]
        assert [a.alert_id for a in store.unacknowledged_alerts()] == [critical.alert_id]
        assert {a.alert_id for a in store.alerts_for_process("P-2")} == {high.alert_id, medium.alert_id}
        assert store.find_open("P-2", "statistical_bias", "effect_size.gender") is None


# ============================================================================
# Priority & notification
# ============================================================================

class TestPriority:
    """Tests for calculate_priority."""

    def test_priority_ordering(self):
        """Severity dominates; recurrence and excess add up to the cap."""
        assert calculate_priority(AlertSeverity.CRITICAL, 0.5, 0.8, 1) > \
            calculate_priority(AlertSeverity.MEDIUM, 0.5, 0.8, 1)
        assert calculate_priority(AlertSeverity.HIGH, 0.9, 0.8, 3) > \
            calculate_priority(AlertSeverity.HIGH, 0.9, 0.8, 1)
        assert calculate_priority(AlertSeverity.CRITICAL, 10.0, 0.1, 50) == 100


class TestAlertNotifier:
    """Tests for AlertNotifier routing."""

    def test_routing_by_minimum_severity(self, store):
        """Channels receive alerts at or above their minimum severity."""
        notifier = AlertNotifier()
        email, pager = Mock(), Mock()
        notifier.register_handler("email", email)
        notifier.register_handler("pagerduty", pager)
        notifier.add_routing_rule(AlertSeverity.MEDIUM, ["email"])
        notifier.add_routing_rule(AlertSeverity.CRITICAL, ["pagerduty"])

        high, _ = store.upsert("P-1", "hiring_decision", make_violation(), {})
        delivered = notifier.notify(high)

        assert delivered == ["email"]
        email.assert_called_once_with(high)
        pager.assert_not_called()

    def test_failing_handler_does_not_block_others(self, store):
        """A handler error is logged; remaining channels still run."""
        notifier = AlertNotifier()
        broken = Mock(side_effect=RuntimeError("smtp down"))
        working = Mock()
        notifier.register_handler("email", broken)
        notifier.register_handler("slack", working)
        notifier.add_routing_rule(AlertSeverity.LOW, ["email", "slack"])

        alert, _ = store.upsert("P-1", "hiring_decision", make_violation(), {})
        delivered = notifier.notify(alert)

        assert delivered == ["slack"]
        working.assert_called_once()

    def test_missing_handler_is_skipped(self, store):
        """Unregistered channels are skipped."""
        notifier = AlertNotifier()
        notifier.add_routing_rule(AlertSeverity.LOW, ["sms"])
        alert, _ = store.upsert("P-1", "hiring_decision", make_violation(), {})

        assert notifier.notify(alert) == []

    def test_log_handler(self, store):
        """log_handler accepts an alert."""
        alert, _ = store.upsert("P-1", "hiring_decision", make_violation(), {})
        log_handler(alert)
