"""
Monitoring Engine - Wires the monitoring service and its runtime parts.

create_monitoring_engine() is the single place where collaborators are
built from a MonitoringConfig; nothing in the package keeps module-level
service instances.
"""

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from shared.logging import get_logger
from measurement_module.src.fairness_calculator import FairnessMetricsCalculator
from monitoring_module.src.alerting import AlertNotifier, AlertSeverity, AlertStore, log_handler
from monitoring_module.src.audit_trail import AuditTrailStore
from monitoring_module.src.bias_monitor import BiasMonitoringService
from monitoring_module.src.cache import RedisCache, ResultCache, TTLCache
from monitoring_module.src.config_loader import MonitoringConfig
from monitoring_module.src.events import EventBus, MonitoringEventConsumer
from monitoring_module.src.report_generator import save_report
from monitoring_module.src.scheduler import MonitoringScheduler
from monitoring_module.src.thresholds import ThresholdRegistry

logger = get_logger(__name__)


@dataclass
class MonitoringEngine:
    """A configured service plus its scheduler and event consumer."""

    config: MonitoringConfig
    service: BiasMonitoringService
    scheduler: MonitoringScheduler
    consumer: MonitoringEventConsumer
    executor: Optional[ThreadPoolExecutor] = None

    async def start(self) -> None:
        self.consumer.start()
        await self.scheduler.start()
        logger.info("Monitoring engine started")

    async def stop(self) -> None:
        await self.scheduler.stop()
        await self.consumer.stop()
        await self.service.event_bus.drain()
        if self.executor is not None:
            self.executor.shutdown(wait=True)
        logger.info("Monitoring engine stopped")


def build_notifier(config: MonitoringConfig) -> AlertNotifier:
    """Notifier with the built-in 'log' channel and configured routing."""
    notifier = AlertNotifier()
    notifier.register_handler("log", log_handler)
    for rule in config.alert_routing:
        notifier.add_routing_rule(AlertSeverity(rule["min_severity"]), list(rule["channels"]))
    return notifier


def build_cache(config: MonitoringConfig) -> ResultCache:
    """
    Result cache for the configured backend.

    An unreachable Redis server falls back to the in-process cache so the
    engine still starts; results are then not shared between engines.
    """
    if config.cache_backend == "redis":
        cache = RedisCache.from_url(
            config.redis_url,
            default_ttl_seconds=config.realtime_cache_ttl_seconds,
            prefix=config.redis_key_prefix,
        )
        if cache.ping():
            logger.info(f"Redis cache connected ({config.redis_url})")
            return cache
        logger.warning("Redis not available, falling back to in-memory cache")

    return TTLCache(
        default_ttl_seconds=config.realtime_cache_ttl_seconds,
        max_entries=config.cache_max_entries,
    )


def create_monitoring_engine(
    config: Optional[MonitoringConfig] = None,
    clock: Callable[[], datetime] = datetime.now,
    cache: Optional[ResultCache] = None,
) -> MonitoringEngine:
    """
    Build a monitoring engine from configuration.

    Args:
        config: Resolved configuration (defaults when omitted)
        clock: Time source shared by every time-stamping collaborator
        cache: Result cache (built from config.cache_backend when omitted)

    Returns:
        MonitoringEngine, not yet started
    """
    config = config or MonitoringConfig()
    executor = ThreadPoolExecutor(
        max_workers=config.max_concurrent_evaluations,
        thread_name_prefix="fairness-calc",
    )

    service = BiasMonitoringService(
        config=config,
        calculator=FairnessMetricsCalculator(
            confidence_level=config.confidence_level,
            min_sample_size=config.min_sample_size,
            min_group_size=config.min_group_size,
            clock=clock,
        ),
        alert_store=AlertStore(clock=clock, critical_assignee=config.critical_alert_assignee),
        audit_store=AuditTrailStore(),
        thresholds=ThresholdRegistry(config.thresholds, clock=clock),
        cache=cache if cache is not None else build_cache(config),
        event_bus=EventBus(),
        notifier=build_notifier(config),
        executor=executor,
        clock=clock,
    )

    def daily_compliance_report():
        save_report(service.generate_report("compliance", "24h"), config.reports_dir)

    def weekly_trend_report():
        save_report(service.generate_report("trend_analysis", "7d"), config.reports_dir)

    scheduler = MonitoringScheduler(clock=clock)
    scheduler.add_job("sweep", config.sweep_interval_seconds, service.sweep)
    scheduler.add_job("daily_compliance_report", config.daily_report_interval_seconds, daily_compliance_report)
    scheduler.add_job("weekly_trend_report", config.weekly_report_interval_seconds, weekly_trend_report)

    consumer = MonitoringEventConsumer(
        service.monitor_process,
        max_concurrency=config.max_concurrent_evaluations,
    )

    logger.info(
        f"Created monitoring engine (sweep every {config.sweep_interval_seconds}s, "
        f"cache={config.cache_backend}, {len(config.alert_routing)} routing rule(s))"
    )
    return MonitoringEngine(
        config=config,
        service=service,
        scheduler=scheduler,
        consumer=consumer,
        executor=executor,
    )
