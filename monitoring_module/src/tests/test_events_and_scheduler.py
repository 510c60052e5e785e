"""
Tests for the event bus, the queue-fed event consumer and the scheduler.
"""

import asyncio
from datetime import datetime, timedelta
from unittest.mock import Mock

import pytest
from apscheduler.triggers.interval import IntervalTrigger

from monitoring_module.src.events import (
    ALERT_CREATED,
    MONITORING_ERROR,
    EventBus,
    MonitoringEventConsumer,
    ProcessCompletedEvent,
)
from monitoring_module.src.scheduler import MonitoringScheduler


# ============================================================================
# EventBus
# ============================================================================

class TestEventBus:
    """Tests for EventBus."""

    def test_publish_to_topic_and_wildcard(self):
        """Topic and '*' subscribers both receive the payload."""
        bus = EventBus()
        topic_handler, wildcard_handler = Mock(), Mock()
        bus.subscribe(ALERT_CREATED, topic_handler)
        bus.subscribe("*", wildcard_handler)

        delivered = bus.publish(ALERT_CREATED, {"alert_id": "alert_1"})

        assert delivered == 2
        topic_handler.assert_called_once_with(ALERT_CREATED, {"alert_id": "alert_1"})
        wildcard_handler.assert_called_once_with(ALERT_CREATED, {"alert_id": "alert_1"})

    def test_failing_handler_is_isolated(self):
        """A raising handler does not reach the publisher or other handlers."""
        bus = EventBus()
        second = Mock()
        bus.subscribe(MONITORING_ERROR, Mock(side_effect=RuntimeError("boom")))
        bus.subscribe(MONITORING_ERROR, second)

        bus.publish(MONITORING_ERROR, {"process_id": "P-1"})

        second.assert_called_once()

    def test_unsubscribe(self):
        """Unsubscribed handlers stop receiving events."""
        bus = EventBus()
        handler = Mock()
        bus.subscribe(ALERT_CREATED, handler)
        bus.unsubscribe(ALERT_CREATED, handler)

        bus.publish(ALERT_CREATED, {})

        handler.assert_not_called()

    def test_history(self):
        """events() filters the bounded history by topic."""
        bus = EventBus(history_size=2)
        bus.publish(ALERT_CREATED, {"n": 1})
        bus.publish(MONITORING_ERROR, {"n": 2})
        bus.publish(ALERT_CREATED, {"n": 3})

        assert bus.events() == [{"n": 2}, {"n": 3}]
        assert bus.events(ALERT_CREATED) == [{"n": 3}]

    @pytest.mark.asyncio
    async def test_async_handlers_are_scheduled(self):
        """Coroutine handlers run on the loop and drain() waits for them."""
        bus = EventBus()
        received = []

        async def handler(topic, payload):
            await asyncio.sleep(0)
            received.append(payload["alert_id"])

        bus.subscribe(ALERT_CREATED, handler)
        bus.publish(ALERT_CREATED, {"alert_id": "alert_1"})
        await bus.drain()

        assert received == ["alert_1"]

    def test_async_handler_without_loop_is_skipped(self):
        """Without a running loop async handlers are skipped, not leaked."""
        bus = EventBus()

        async def handler(topic, payload):
            raise AssertionError("should not run")

        bus.subscribe(ALERT_CREATED, handler)
        assert bus.publish(ALERT_CREATED, {}) == 1


# ============================================================================
# MonitoringEventConsumer
# ============================================================================

class TestMonitoringEventConsumer:
    """Tests for MonitoringEventConsumer."""

    @pytest.mark.asyncio
    async def test_evaluates_submitted_events(self):
        """Every submitted event is evaluated once."""
        seen = []

        async def monitor(process_id, process_type, data):
            seen.append(process_id)
            return object()

        consumer = MonitoringEventConsumer(monitor, max_concurrency=2)
        consumer.start()
        for i in range(5):
            await consumer.submit(ProcessCompletedEvent(f"P-{i}", "matching", {"matches": []}))
        await consumer.drain()
        await consumer.stop()

        assert sorted(seen) == [f"P-{i}" for i in range(5)]
        assert consumer.processed == 5
        assert not consumer.is_running

    @pytest.mark.asyncio
    async def test_concurrency_is_bounded(self):
        """No more than max_concurrency evaluations run at once."""
        running = 0
        peak = 0

        async def monitor(process_id, process_type, data):
            nonlocal running, peak
            running += 1
            peak = max(peak, running)
            await asyncio.sleep(0.01)
            running -= 1
            return object()

        consumer = MonitoringEventConsumer(monitor, max_concurrency=3)
        consumer.start()
        for i in range(10):
            await consumer.submit(ProcessCompletedEvent(f"P-{i}", "matching", {}))
        await consumer.stop()

        assert peak <= 3
        assert consumer.processed == 10

    @pytest.mark.asyncio
    async def test_failures_are_counted(self):
        """None results and raised errors count as failures; the loop continues."""
        async def monitor(process_id, process_type, data):
            if process_id == "P-none":
                return None
            if process_id == "P-raise":
                raise RuntimeError("unexpected")
            return object()

        consumer = MonitoringEventConsumer(monitor)
        consumer.start()
        for pid in ("P-none", "P-raise", "P-ok"):
            await consumer.submit(ProcessCompletedEvent(pid, "matching", {}))
        await consumer.stop()

        assert consumer.failed == 2
        assert consumer.processed == 1

    def test_invalid_concurrency(self):
        """max_concurrency must be positive."""
        async def monitor(process_id, process_type, data):
            return None

        with pytest.raises(ValueError):
            MonitoringEventConsumer(monitor, max_concurrency=0)


# ============================================================================
# MonitoringScheduler
# ============================================================================

class TestMonitoringScheduler:
    """Tests for MonitoringScheduler."""

    def test_add_job_validation(self):
        """Intervals must be positive and names unique."""
        scheduler = MonitoringScheduler()
        scheduler.add_job("sweep", 900, Mock())

        with pytest.raises(ValueError):
            scheduler.add_job("sweep", 900, Mock())
        with pytest.raises(ValueError):
            scheduler.add_job("report", 0, Mock())

    def test_jobs_use_interval_triggers(self):
        """Each job is an interval job with one instance and coalesced misfires."""
        scheduler = MonitoringScheduler()
        scheduler.add_job("sweep", 900, Mock())

        job = scheduler._scheduler.get_job("sweep")
        assert isinstance(job.trigger, IntervalTrigger)
        assert job.trigger.interval == timedelta(seconds=900)
        assert job.max_instances == 1
        assert job.coalesce is True

    def test_trigger_unknown_job(self):
        """Unknown jobs raise KeyError."""
        with pytest.raises(KeyError):
            MonitoringScheduler().trigger("missing")

    @pytest.mark.asyncio
    async def test_trigger_runs_sync_and_async_jobs(self):
        """Triggered jobs run once; async actions are awaited."""
        sync_action = Mock()
        ran = []

        async def async_action():
            ran.append(True)

        scheduler = MonitoringScheduler()
        scheduler.add_job("report", 3600, sync_action)
        scheduler.add_job("sweep", 3600, async_action)
        await scheduler.start()

        scheduler.trigger("report")
        scheduler.trigger("sweep")
        await scheduler.run_pending()
        await scheduler.stop()

        sync_action.assert_called_once()
        assert ran == [True]
        assert scheduler.jobs["sweep"].run_count == 1
        assert scheduler.jobs["report"].last_run is not None

    @pytest.mark.asyncio
    async def test_last_run_uses_injected_clock(self):
        """Run times come from the scheduler's clock."""
        fixed = datetime(2026, 1, 15, 9, 30)

        async def sweep():
            return None

        scheduler = MonitoringScheduler(clock=lambda: fixed)
        scheduler.add_job("sweep", 3600, sweep)
        await scheduler.start()
        scheduler.trigger("sweep")
        await scheduler.run_pending()
        await scheduler.stop()

        job = scheduler.jobs["sweep"]
        assert job.last_run == fixed
        assert job.to_dict()["last_run"] == fixed.isoformat()
        assert job.next_run_time is not None

    @pytest.mark.asyncio
    async def test_pending_job_not_triggered_twice(self):
        """A job already waiting to run is not scheduled again."""
        scheduler = MonitoringScheduler()
        action = Mock()
        scheduler.add_job("sweep", 3600, action)

        assert scheduler.trigger("sweep")
        assert not scheduler.trigger("sweep")

        await scheduler.start()
        await scheduler.run_pending()
        await scheduler.stop()

        assert action.call_count == 1

    @pytest.mark.asyncio
    async def test_running_job_not_triggered_again(self):
        """While a run is in progress, trigger() declines."""
        release = asyncio.Event()
        started = []

        async def slow_sweep():
            started.append(True)
            await release.wait()

        scheduler = MonitoringScheduler()
        scheduler.add_job("sweep", 3600, slow_sweep)
        await scheduler.start()
        scheduler.trigger("sweep")
        for _ in range(200):
            if started:
                break
            await asyncio.sleep(0.01)

        assert not scheduler.trigger("sweep")
        release.set()
        await scheduler.run_pending()
        await scheduler.stop()

        assert started == [True]
        assert scheduler.jobs["sweep"].run_count == 1

    @pytest.mark.asyncio
    async def test_failing_job_keeps_scheduler_running(self):
        """A failure is recorded and later jobs still run."""
        scheduler = MonitoringScheduler()
        scheduler.add_job("broken", 3600, Mock(side_effect=RuntimeError("disk full")))
        healthy = Mock()
        scheduler.add_job("healthy", 3600, healthy)
        await scheduler.start()

        scheduler.trigger("broken")
        scheduler.trigger("healthy")
        await scheduler.run_pending()

        assert scheduler.is_running
        await scheduler.stop()

        broken = scheduler.jobs["broken"]
        assert broken.failure_count == 1
        assert broken.last_error == "disk full"
        healthy.assert_called_once()
        assert broken.to_dict()["failure_count"] == 1
        assert not scheduler.is_running

    @pytest.mark.asyncio
    async def test_interval_triggers_job(self):
        """Jobs fire on their interval without being triggered."""
        scheduler = MonitoringScheduler()
        calls = []

        async def sweep():
            calls.append(True)

        scheduler.add_job("sweep", 0.05, sweep)
        await scheduler.start()

        for _ in range(200):
            if calls:
                break
            await asyncio.sleep(0.01)
        await scheduler.stop()

        assert len(calls) >= 1
        assert scheduler.jobs["sweep"].run_count >= 1
