"""
Event plumbing for the monitoring engine.

EventBus carries the alert feed and engine events (alert.created,
alert.updated, monitoring.error, integrity.warning, ...) to subscribers.
MonitoringEventConsumer is the ingestion boundary: producers submit
ProcessCompletedEvents onto a queue and the consumer evaluates them
concurrently under a semaphore.
"""

import asyncio
import inspect
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Deque, Dict, List, Mapping, Optional, Set, Tuple

from shared.constants import MONITORING_DEFAULTS
from shared.logging import get_logger
from shared.schemas import BiasMonitoringResult

logger = get_logger(__name__)

ALERT_CREATED = "alert.created"
ALERT_UPDATED = "alert.updated"
ALERT_ACKNOWLEDGED = "alert.acknowledged"
ALERT_RESOLVED = "alert.resolved"
MONITORING_ERROR = "monitoring.error"
INTEGRITY_WARNING = "integrity.warning"
THRESHOLDS_UPDATED = "thresholds.updated"

WILDCARD = "*"

EventHandler = Callable[[str, Dict[str, Any]], Any]


class EventBus:
    """
    Topic based publish/subscribe.

    Handlers receive (topic, payload). Coroutine handlers are scheduled on
    the running loop; a failing handler is logged and never reaches the
    publisher.
    """

    def __init__(self, history_size: int = 200):
        self._handlers: Dict[str, List[EventHandler]] = {}
        self._pending: Set[asyncio.Task] = set()
        self.history: Deque[Tuple[str, Dict[str, Any]]] = deque(maxlen=history_size)

    def subscribe(self, topic: str, handler: EventHandler) -> None:
        """Subscribe to a topic, or to every topic with '*'."""
        self._handlers.setdefault(topic, []).append(handler)
        logger.debug(f"Subscribed {getattr(handler, '__name__', handler)} to {topic}")

    def unsubscribe(self, topic: str, handler: EventHandler) -> None:
        handlers = self._handlers.get(topic, [])
        if handler in handlers:
            handlers.remove(handler)

    def publish(self, topic: str, payload: Dict[str, Any]) -> int:
        """
        Deliver payload to every subscriber of topic.

        Returns:
            Number of handlers invoked
        """
        self.history.append((topic, payload))
        handlers = self._handlers.get(topic, []) + self._handlers.get(WILDCARD, [])

        for handler in handlers:
            try:
                outcome = handler(topic, payload)
            except Exception as e:
                logger.error(f"Event handler failed for {topic}: {e}")
                continue

            if inspect.isawaitable(outcome):
                self._schedule(topic, outcome)

        return len(handlers)

    def _schedule(self, topic: str, awaitable: Awaitable) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning(f"No running event loop; async handler for {topic} skipped")
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            return

        task = loop.create_task(awaitable)
        self._pending.add(task)

        def _done(finished: asyncio.Task) -> None:
            self._pending.discard(finished)
            if not finished.cancelled() and finished.exception() is not None:
                logger.error(f"Async event handler failed for {topic}: {finished.exception()}")

        task.add_done_callback(_done)

    async def drain(self) -> None:
        """Wait for scheduled async handlers to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def events(self, topic: Optional[str] = None) -> List[Dict[str, Any]]:
        """Payloads published so far, optionally for one topic."""
        return [payload for t, payload in self.history if topic is None or t == topic]


@dataclass(frozen=True)
class ProcessCompletedEvent:
    """A hiring process step finished and its batch is ready for monitoring."""

    process_id: str
    process_type: str
    data: Mapping[str, Any]
    received_at: datetime = field(default_factory=datetime.now)


_STOP = object()

MonitorCallable = Callable[[str, str, Mapping[str, Any]], Awaitable[Optional[BiasMonitoringResult]]]


class MonitoringEventConsumer:
    """
    Queue-fed evaluator for ProcessCompletedEvents.

    Example:
        >>> consumer = MonitoringEventConsumer(service.monitor_process)
        >>> consumer.start()
        >>> await consumer.submit(ProcessCompletedEvent("P-1", "hiring_decision", batch))
        >>> await consumer.stop()
    """

    def __init__(
        self,
        monitor: MonitorCallable,
        max_concurrency: int = MONITORING_DEFAULTS["max_concurrent_evaluations"],
        max_queue_size: int = 0,
    ):
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")

        self.monitor = monitor
        self.max_concurrency = max_concurrency
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max_queue_size)
        self._semaphore = asyncio.Semaphore(max_concurrency)
        self._tasks: Set[asyncio.Task] = set()
        self._runner: Optional[asyncio.Task] = None
        self.processed = 0
        self.failed = 0

    @property
    def is_running(self) -> bool:
        return self._runner is not None and not self._runner.done()

    async def submit(self, event: ProcessCompletedEvent) -> None:
        await self._queue.put(event)
        logger.debug(f"Queued {event.process_type} event for {event.process_id}")

    def start(self) -> asyncio.Task:
        if not self.is_running:
            self._runner = asyncio.get_running_loop().create_task(self.run())
        return self._runner

    async def run(self) -> None:
        """Consume events until stop() is called."""
        logger.info(f"Event consumer started (max_concurrency={self.max_concurrency})")
        while True:
            event = await self._queue.get()
            if event is _STOP:
                self._queue.task_done()
                break

            await self._semaphore.acquire()
            task = asyncio.create_task(self._evaluate(event))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

        if self._tasks:
            await asyncio.gather(*list(self._tasks))
        logger.info(f"Event consumer stopped (processed={self.processed}, failed={self.failed})")

    async def _evaluate(self, event: ProcessCompletedEvent) -> None:
        try:
            result = await self.monitor(event.process_id, event.process_type, event.data)
            if result is None:
                self.failed += 1
            else:
                self.processed += 1
        except Exception as e:
            self.failed += 1
            logger.error(f"Evaluation of {event.process_id} raised: {e}")
        finally:
            self._semaphore.release()
            self._queue.task_done()

    async def drain(self) -> None:
        """Wait until every submitted event has been evaluated."""
        await self._queue.join()

    async def stop(self) -> None:
        """Finish queued and in-flight evaluations, then stop."""
        if not self.is_running:
            return
        await self._queue.put(_STOP)
        await self._runner
