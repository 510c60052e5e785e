"""
Bias Monitoring Service - Orchestrates per-process fairness evaluation.

For every completed hiring process batch the service extracts subjects,
runs the fairness calculator, scores the bias, evaluates thresholds,
raises or refreshes alerts, appends an audit entry and publishes the
result to the real-time cache and the event bus.

Author: FairML Consulting
Date: January 2026
"""

import asyncio
import functools
import inspect
import time
import uuid
from concurrent.futures import Executor
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Tuple, Union

from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from shared.constants import (
    EFFECT_SIZE_SCORE_CAP,
    PARITY_TO_ALERT_SEVERITY,
    PATTERN_RATE_GAP,
    PROCESS_TYPES,
    SEVERITY_RANK,
    SIGNIFICANCE_LEVEL,
)
from shared.logging import StageTimer, get_logger, log_score, log_violation
from shared.schemas import (
    BiasAnalysisResult,
    BiasMonitoringResult,
    BiasViolation,
    FairnessMetrics,
)
from measurement_module.src.fairness_calculator import FairnessMetricsCalculator
from measurement_module.src.metrics_engine import parity_bias_score
from monitoring_module.src.alerting import AlertNotifier, AlertStore
from monitoring_module.src.audit_trail import AdministrativeEvent, AuditTrailEntry, AuditTrailStore
from monitoring_module.src.cache import ResultCache, TTLCache
from monitoring_module.src.config_loader import MonitoringConfig
from monitoring_module.src.dashboard import DashboardData, build_dashboard_data
from monitoring_module.src.events import (
    ALERT_ACKNOWLEDGED,
    ALERT_CREATED,
    ALERT_RESOLVED,
    ALERT_UPDATED,
    INTEGRITY_WARNING,
    MONITORING_ERROR,
    THRESHOLDS_UPDATED,
    EventBus,
)
from monitoring_module.src.exceptions import TRANSIENT_ERRORS, UnsupportedProcessTypeError
from monitoring_module.src.extraction import ProcessBatch, extract_subjects
from monitoring_module.src.report_generator import BiasReport
from monitoring_module.src.report_generator import generate_report as replay_report
from monitoring_module.src.thresholds import ThresholdConfig, ThresholdRegistry

logger = get_logger(__name__)

StreamLoader = Callable[[], Union[Mapping[str, Any], Awaitable[Mapping[str, Any]]]]

REALTIME_KEY = "bias_monitoring:realtime:{process_type}"
RESULT_KEY = "bias_monitoring:result:{monitoring_id}"
METRICS_KEY = "fairness_metrics:{metrics_id}"


class BiasMonitoringService:
    """
    Real-time bias monitoring for hiring processes.

    Collaborators are passed in explicitly; create_monitoring_engine()
    wires a complete set from configuration.

    Example:
        >>> service = BiasMonitoringService(config=MonitoringConfig())
        >>> result = await service.monitor_process("P-1", "hiring_decision", batch)
        >>> print(result.compliance_status, result.bias_analysis.overall_bias_score)
    """

    def __init__(
        self,
        config: Optional[MonitoringConfig] = None,
        calculator: Optional[FairnessMetricsCalculator] = None,
        alert_store: Optional[AlertStore] = None,
        audit_store: Optional[AuditTrailStore] = None,
        thresholds: Optional[ThresholdRegistry] = None,
        cache: Optional[ResultCache] = None,
        event_bus: Optional[EventBus] = None,
        notifier: Optional[AlertNotifier] = None,
        executor: Optional[Executor] = None,
        clock: Callable[[], datetime] = datetime.now,
        id_factory: Callable[[], str] = lambda: f"mon_{uuid.uuid4().hex}",
    ):
        # Stores and caches define __len__, so an empty one is falsy
        self.config = config if config is not None else MonitoringConfig()
        self.calculator = calculator if calculator is not None else FairnessMetricsCalculator(
            confidence_level=self.config.confidence_level,
            min_sample_size=self.config.min_sample_size,
            min_group_size=self.config.min_group_size,
        )
        self.alert_store = alert_store if alert_store is not None else AlertStore(
            clock=clock, critical_assignee=self.config.critical_alert_assignee
        )
        self.audit_store = audit_store if audit_store is not None else AuditTrailStore()
        self.thresholds = (
            thresholds if thresholds is not None
            else ThresholdRegistry(self.config.thresholds, clock=clock)
        )
        self.cache = cache if cache is not None else TTLCache(
            default_ttl_seconds=self.config.realtime_cache_ttl_seconds,
            max_entries=self.config.cache_max_entries,
        )
        self.event_bus = event_bus if event_bus is not None else EventBus()
        self.notifier = notifier if notifier is not None else AlertNotifier()
        self.executor = executor
        self.clock = clock
        self.id_factory = id_factory
        self._streams: Dict[str, Tuple[str, StreamLoader]] = {}

        logger.info(
            f"Initialized BiasMonitoringService "
            f"(thresholds v{self.thresholds.latest().version}, "
            f"offload>={self.config.offload_min_subjects})"
        )

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    async def monitor_process(
        self,
        process_id: str,
        process_type: str,
        data: Mapping[str, Any],
    ) -> Optional[BiasMonitoringResult]:
        """
        Evaluate one process batch.

        Args:
            process_id: Identifier of the monitored process
            process_type: One of PROCESS_TYPES
            data: Batch payload

        Returns:
            BiasMonitoringResult, or None when the evaluation failed (the
            failure is logged and published as monitoring.error)
        """
        issued_at = self.clock()
        started = time.perf_counter()

        try:
            with StageTimer(logger, "monitor_process", process_id=process_id, process_type=process_type):
                result, batch = await self._evaluate(process_id, process_type, data, issued_at, started)
        except asyncio.CancelledError:
            logger.warning(f"Evaluation of {process_id} cancelled; nothing published")
            raise
        except Exception as e:
            logger.error(f"Bias monitoring failed for {process_id} ({process_type}): {e}")
            self.event_bus.publish(MONITORING_ERROR, {
                "process_id": process_id,
                "process_type": process_type,
                "error": str(e),
                "error_type": type(e).__name__,
                "timestamp": self.clock().isoformat(),
            })
            return None

        if batch.size > 0:
            await self._persist(result)
        self._publish(result)
        return result

    async def _evaluate(
        self,
        process_id: str,
        process_type: str,
        data: Mapping[str, Any],
        issued_at: datetime,
        started: float,
    ) -> Tuple[BiasMonitoringResult, ProcessBatch]:
        batch = extract_subjects(process_id, process_type, data, self.config.protected_attributes)
        thresholds = self.thresholds.effective_at(issued_at)

        if batch.size == 0:
            logger.info(f"{process_id}: no subjects in batch; trivially compliant")
            analysis = BiasAnalysisResult(
                overall_bias_score=0.0,
                compliance_status="compliant",
                fairness_metrics=None,
                subject_count=0,
                threshold_version=thresholds.version,
                analysis_timestamp=issued_at,
            )
            return self._build_result(process_id, process_type, analysis, [], started), batch

        metrics = await self._calculate(batch)
        analysis = self.analyze(metrics, batch.size, thresholds, issued_at)
        violations = self.evaluate_thresholds(analysis, thresholds, issued_at)
        result = self._build_result(process_id, process_type, analysis, violations, started)

        self.cache.set(
            METRICS_KEY.format(metrics_id=metrics.metrics_id),
            metrics,
            ttl_seconds=self.config.metrics_cache_ttl_seconds,
        )
        return result, batch

    async def _calculate(self, batch: ProcessBatch) -> FairnessMetrics:
        """Run the calculator, in the executor for large batches."""
        compute = functools.partial(
            self.calculator.calculate_fairness_metrics,
            batch.subjects,
            batch.outcomes,
            batch.protected_attributes,
            batch.context,
        )
        if batch.size >= self.config.offload_min_subjects:
            logger.debug(f"Offloading {batch.size} subjects for {batch.process_id}")
            loop = asyncio.get_running_loop()
            return await loop.run_in_executor(self.executor, compute)
        return compute()

    def analyze(
        self,
        metrics: FairnessMetrics,
        subject_count: int,
        thresholds: ThresholdConfig,
        timestamp: datetime,
    ) -> BiasAnalysisResult:
        """
        Score the bias in a set of fairness metrics.

        The overall bias score is the largest of:
        - the parity score of the worst selection-rate ratio, which follows
          the four-fifths ladder whatever the base rate
        - the unfairness, 1 - overall fairness score
        - the largest Cohen's h among statistically significant
          attributes, capped at EFFECT_SIZE_SCORE_CAP
        capped at 1.
        """
        ratios = [
            c.ratio
            for family in (metrics.demographic_parity, metrics.disparate_impact)
            for c in family.comparisons.values()
            if c.ratio is not None
        ]
        parity = parity_bias_score(min(ratios)) if ratios else 0.0
        unfairness = 1.0 - metrics.overall_score
        significant_effects = [
            min(EFFECT_SIZE_SCORE_CAP, abs(s.effect_size))
            for s in metrics.statistical_significance.values()
            if s.is_significant and s.effect_size is not None
        ]
        score = min(1.0, max([parity, unfairness] + significant_effects))
        log_score(logger, "overall_bias_score", score, process_type=metrics.context.process_type)

        patterns = self._detect_patterns(metrics)
        return BiasAnalysisResult(
            overall_bias_score=score,
            compliance_status="compliant" if score < thresholds.critical else "non_compliant",
            fairness_metrics=metrics,
            subject_count=subject_count,
            detected_patterns=patterns,
            mitigation_recommendations=self._mitigation_recommendations(metrics, patterns, score, thresholds),
            threshold_version=thresholds.version,
            analysis_timestamp=timestamp,
        )

    @staticmethod
    def _detect_patterns(metrics: FairnessMetrics) -> List[str]:
        patterns = []
        for attribute, comparison in metrics.demographic_parity.comparisons.items():
            if comparison.max_difference > PATTERN_RATE_GAP:
                patterns.append(
                    f"{attribute}: {comparison.max_group} group has "
                    f"{comparison.max_difference * 100:.1f}% higher selection rate than "
                    f"{comparison.min_group} group"
                )

        informational = [
            ("score calibration", metrics.calibration),
            ("individual fairness", metrics.individual_fairness),
            ("counterfactual fairness", metrics.counterfactual),
        ]
        for name, summary in informational:
            if summary is not None and summary.compliance_status == "requires_intervention":
                patterns.append(f"{name} requires intervention")
        return patterns

    @staticmethod
    def _mitigation_recommendations(
        metrics: FairnessMetrics,
        patterns: List[str],
        score: float,
        thresholds: ThresholdConfig,
    ) -> List[str]:
        recommendations = []
        if score >= thresholds.critical:
            recommendations.append("Immediate review of selection criteria and process required")
            recommendations.append("Consider implementing blind review processes")
        if patterns:
            recommendations.append("Review identified bias patterns and adjust algorithms")
            recommendations.append("Implement additional fairness constraints")
        if metrics.demographic_parity.worst_difference > thresholds.demographic_parity:
            recommendations.append("Improve demographic representation in candidate pool")
        if metrics.validation.confidence != "high":
            recommendations.append("Collect more data before acting on small-group results")
        recommendations.append("Regular bias audits and monitoring recommended")
        recommendations.append("Human oversight required for all hiring decisions")
        return recommendations

    def evaluate_thresholds(
        self,
        analysis: BiasAnalysisResult,
        thresholds: ThresholdConfig,
        timestamp: datetime,
    ) -> List[BiasViolation]:
        """Violations for an analysis, most severe first."""
        violations: List[BiasViolation] = []
        score = analysis.overall_bias_score

        if score >= thresholds.critical:
            violations.append(BiasViolation(
                violation_type="critical_bias",
                severity="critical",
                metric_name="overall_bias_score",
                value=score,
                threshold=thresholds.critical,
                description=f"Overall bias score {score:.3f} reached the critical threshold {thresholds.critical:.2f}",
                timestamp=timestamp,
            ))
        elif score >= thresholds.warning:
            violations.append(BiasViolation(
                violation_type="elevated_bias",
                severity="medium",
                metric_name="overall_bias_score",
                value=score,
                threshold=thresholds.warning,
                description=f"Overall bias score {score:.3f} reached the warning threshold {thresholds.warning:.2f}",
                timestamp=timestamp,
            ))

        metrics = analysis.fairness_metrics
        if metrics is not None:
            violations.extend(self._parity_violations(metrics, thresholds, timestamp))
            violations.extend(self._odds_violations(metrics, thresholds, timestamp))
            violations.extend(self._flagged_violations(metrics, timestamp))
            violations.extend(self._statistical_violations(metrics, thresholds, timestamp))

        violations.sort(key=lambda v: -SEVERITY_RANK[v.severity])
        for violation in violations:
            log_violation(logger, violation.violation_type, violation.severity, violation.affected_groups)
        return violations

    @staticmethod
    def _parity_violations(
        metrics: FairnessMetrics,
        thresholds: ThresholdConfig,
        timestamp: datetime,
    ) -> List[BiasViolation]:
        """
        One violation per attribute. Severity follows the four-fifths
        ratio ladder; a rate gap over the cutoff with an acceptable ratio
        (possible only with a tightened cutoff) is medium.
        """
        flagged = {v.attribute: v for v in metrics.demographic_parity.violations}
        violations = []

        for attribute, comparison in metrics.demographic_parity.comparisons.items():
            four_fifths = flagged.get(attribute)
            gap_exceeded = comparison.max_difference > thresholds.demographic_parity
            gap_note = (
                f"; selection-rate gap {comparison.max_difference:.3f} "
                f"exceeds {thresholds.demographic_parity:.2f}"
            )
            if four_fifths is not None:
                violations.append(BiasViolation(
                    violation_type="demographic_parity_violation",
                    severity=PARITY_TO_ALERT_SEVERITY[four_fifths.severity],
                    metric_name=f"demographic_parity.{attribute}",
                    value=four_fifths.value,
                    threshold=four_fifths.threshold,
                    description=four_fifths.description + (gap_note if gap_exceeded else ""),
                    timestamp=timestamp,
                    attribute=attribute,
                    affected_groups=list(four_fifths.affected_groups),
                ))
            elif gap_exceeded:
                violations.append(BiasViolation(
                    violation_type="demographic_parity_violation",
                    severity="medium",
                    metric_name=f"demographic_parity.{attribute}",
                    value=comparison.max_difference,
                    threshold=thresholds.demographic_parity,
                    description=(
                        f"Selection-rate gap of {comparison.max_difference:.3f} on {attribute} "
                        f"exceeds {thresholds.demographic_parity:.2f} "
                        f"(ratio {comparison.ratio:.1%} meets four-fifths)"
                    ),
                    timestamp=timestamp,
                    attribute=attribute,
                    affected_groups=[comparison.min_group, comparison.max_group],
                ))
        return violations

    @staticmethod
    def _odds_violations(
        metrics: FairnessMetrics,
        thresholds: ThresholdConfig,
        timestamp: datetime,
    ) -> List[BiasViolation]:
        # Without labels the odds gap is the parity gap again
        if not metrics.equalized_odds.scored:
            return []
        violations = []
        for attribute, comparison in metrics.equalized_odds.comparisons.items():
            if comparison.max_difference > thresholds.equalized_odds:
                violations.append(BiasViolation(
                    violation_type="equalized_odds_violation",
                    severity="high",
                    metric_name=f"equalized_odds.{attribute}",
                    value=comparison.max_difference,
                    threshold=thresholds.equalized_odds,
                    description=(
                        f"Equalized odds gap of {comparison.max_difference:.3f} on {attribute} "
                        f"exceeds {thresholds.equalized_odds:.2f} "
                        f"({metrics.equalized_odds.basis})"
                    ),
                    timestamp=timestamp,
                    attribute=attribute,
                    affected_groups=[comparison.min_group, comparison.max_group],
                ))
        return violations

    @staticmethod
    def _flagged_violations(metrics: FairnessMetrics, timestamp: datetime) -> List[BiasViolation]:
        violations = []
        for family in (metrics.predictive_equality, metrics.treatment_equality):
            for flag in family.violations:
                violations.append(BiasViolation(
                    violation_type=f"{family.family}_violation",
                    severity="medium",
                    metric_name=f"{family.family}.{flag.attribute}",
                    value=flag.value,
                    threshold=flag.threshold,
                    description=flag.description,
                    timestamp=timestamp,
                    attribute=flag.attribute,
                    affected_groups=list(flag.affected_groups),
                ))
        return violations

    @staticmethod
    def _statistical_violations(
        metrics: FairnessMetrics,
        thresholds: ThresholdConfig,
        timestamp: datetime,
    ) -> List[BiasViolation]:
        violations = []
        for attribute, test in metrics.statistical_significance.items():
            if test.p_value is None or test.effect_size is None:
                continue
            if test.p_value < SIGNIFICANCE_LEVEL and abs(test.effect_size) > thresholds.effect_size:
                violations.append(BiasViolation(
                    violation_type="statistical_bias",
                    severity="medium",
                    metric_name=f"effect_size.{attribute}",
                    value=abs(test.effect_size),
                    threshold=thresholds.effect_size,
                    description=(
                        f"Outcome depends on {attribute} ({test.test_used}, p={test.p_value:.4f}) "
                        f"with Cohen's h {abs(test.effect_size):.3f}"
                    ),
                    timestamp=timestamp,
                    attribute=attribute,
                ))
        return violations

    def _build_result(
        self,
        process_id: str,
        process_type: str,
        analysis: BiasAnalysisResult,
        violations: List[BiasViolation],
        started: float,
    ) -> BiasMonitoringResult:
        if not violations:
            status = "compliant"
        elif any(v.severity == "critical" for v in violations):
            status = "non_compliant"
        else:
            status = "violation_detected"

        recommendations = list(analysis.mitigation_recommendations)
        if status == "non_compliant":
            recommendations.insert(0, "Escalate to compliance review before further decisions in this process")

        return BiasMonitoringResult(
            monitoring_id=self.id_factory(),
            process_id=process_id,
            process_type=process_type,
            bias_analysis=analysis,
            violations=violations,
            compliance_status=status,
            recommendations=recommendations,
            processing_time_ms=(time.perf_counter() - started) * 1000,
            timestamp=self.clock(),
        )

    # ------------------------------------------------------------------
    # Persistence and publication
    # ------------------------------------------------------------------

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            stop=stop_after_attempt(self.config.persistence_retry_attempts),
            wait=wait_exponential(
                multiplier=self.config.persistence_backoff_seconds,
                max=self.config.persistence_backoff_max_seconds,
            ),
            retry=retry_if_exception_type(TRANSIENT_ERRORS),
            reraise=True,
        )

    async def _with_retry(self, func: Callable[..., Any], *args: Any) -> Any:
        async for attempt in self._retrying():
            with attempt:
                return func(*args)

    def _integrity_warning(self, result: BiasMonitoringResult, message: str) -> None:
        result.integrity_warnings.append(message)
        logger.error(f"INTEGRITY WARNING [{result.monitoring_id}]: {message}")
        self.event_bus.publish(INTEGRITY_WARNING, {
            "monitoring_id": result.monitoring_id,
            "process_id": result.process_id,
            "message": message,
        })

    async def _persist(self, result: BiasMonitoringResult) -> None:
        """Upsert alerts and append the audit entry, each with retries."""
        snapshot = result.bias_analysis.to_dict()

        for violation in result.violations:
            try:
                alert, created = await self._with_retry(
                    self.alert_store.upsert,
                    result.process_id,
                    result.process_type,
                    violation,
                    snapshot,
                )
            except Exception as e:
                self._integrity_warning(
                    result, f"alert for {violation.violation_type} ({violation.metric_name}) not stored: {e}"
                )
                continue

            self.event_bus.publish(ALERT_CREATED if created else ALERT_UPDATED, alert.to_dict())
            if created:
                self.notifier.notify(alert)

        try:
            await self._with_retry(self.audit_store.append, AuditTrailEntry.from_result(result))
        except Exception as e:
            self._integrity_warning(result, f"audit entry not stored: {e}")

    def _publish(self, result: BiasMonitoringResult) -> None:
        self.cache.set(REALTIME_KEY.format(process_type=result.process_type), result)
        self.cache.set(RESULT_KEY.format(monitoring_id=result.monitoring_id), result)
        logger.info(
            f"Monitoring {result.monitoring_id}: {result.process_id} "
            f"{result.compliance_status} (score={result.bias_analysis.overall_bias_score:.3f}, "
            f"violations={len(result.violations)}, {result.processing_time_ms:.1f}ms)"
        )

    # ------------------------------------------------------------------
    # Streams
    # ------------------------------------------------------------------

    def register_stream(self, process_id: str, process_type: str, loader: StreamLoader) -> None:
        """Register a process to be re-evaluated by sweep()."""
        if process_type not in PROCESS_TYPES:
            raise UnsupportedProcessTypeError(f"Unsupported process type '{process_type}'")
        self._streams[process_id] = (process_type, loader)
        logger.info(f"Registered {process_type} stream {process_id}")

    def unregister_stream(self, process_id: str) -> bool:
        removed = self._streams.pop(process_id, None) is not None
        if removed:
            logger.info(f"Unregistered stream {process_id}")
        return removed

    @property
    def streams(self) -> Dict[str, str]:
        return {pid: ptype for pid, (ptype, _) in self._streams.items()}

    async def sweep(self) -> Dict[str, Optional[BiasMonitoringResult]]:
        """Re-evaluate every registered stream concurrently."""
        streams = dict(self._streams)
        if not streams:
            logger.debug("Sweep: no registered streams")
            return {}

        semaphore = asyncio.Semaphore(self.config.max_concurrent_evaluations)

        async def run_one(process_id: str, process_type: str, loader: StreamLoader):
            async with semaphore:
                try:
                    data = loader()
                    if inspect.isawaitable(data):
                        data = await data
                except Exception as e:
                    logger.error(f"Sweep: loading {process_id} failed: {e}")
                    self.event_bus.publish(MONITORING_ERROR, {
                        "process_id": process_id,
                        "process_type": process_type,
                        "error": str(e),
                        "error_type": type(e).__name__,
                        "timestamp": self.clock().isoformat(),
                    })
                    return None
                return await self.monitor_process(process_id, process_type, data)

        with StageTimer(logger, "sweep", streams=len(streams)):
            results = await asyncio.gather(*(
                run_one(pid, ptype, loader) for pid, (ptype, loader) in streams.items()
            ))
        return dict(zip(streams, results))

    # ------------------------------------------------------------------
    # Alerts and thresholds
    # ------------------------------------------------------------------

    def acknowledge_alert(self, alert_id: str, user: str):
        """Move an active alert to acknowledged."""
        alert = self.alert_store.acknowledge(alert_id, user)
        self.audit_store.record_event(AdministrativeEvent(
            event_type="alert_acknowledged",
            actor=user,
            details={"alert_id": alert_id, "before": "active", "after": alert.status.value},
            timestamp=self.clock(),
        ))
        self.event_bus.publish(ALERT_ACKNOWLEDGED, alert.to_dict())
        return alert

    def resolve_alert(self, alert_id: str, user: str, resolution: str):
        """Resolve an active or acknowledged alert."""
        before = self.alert_store.get(alert_id).status.value
        alert = self.alert_store.resolve(alert_id, user, resolution)
        self.audit_store.record_event(AdministrativeEvent(
            event_type="alert_resolved",
            actor=user,
            details={
                "alert_id": alert_id,
                "before": before,
                "after": alert.status.value,
                "resolution": resolution,
            },
            timestamp=self.clock(),
        ))
        self.event_bus.publish(ALERT_RESOLVED, alert.to_dict())
        return alert

    def get_active_alerts(self):
        return self.alert_store.active_alerts()

    def get_critical_alerts(self):
        return self.alert_store.critical_alerts()

    def update_thresholds(self, actor: str, **changes: float) -> ThresholdConfig:
        """New threshold version effective now; audited and published."""
        before = self.thresholds.latest()
        updated = self.thresholds.update(actor, **changes)
        self.audit_store.record_event(AdministrativeEvent(
            event_type="thresholds_updated",
            actor=actor,
            details={"before": before.to_dict(), "after": updated.to_dict()},
            timestamp=self.clock(),
        ))
        self.event_bus.publish(THRESHOLDS_UPDATED, updated.to_dict())
        return updated

    def get_current_thresholds(self) -> ThresholdConfig:
        return self.thresholds.current()

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    def get_dashboard_data(self, time_range: str = "24h") -> DashboardData:
        return build_dashboard_data(
            self.audit_store.entries(),
            self.alert_store,
            time_range=time_range,
            now=self.clock(),
            recent_limit=self.config.recent_results_limit,
        )

    def generate_report(self, report_type: str, time_range: str = "7d") -> BiasReport:
        return replay_report(self.audit_store.entries(), report_type, time_range, now=self.clock())

    def get_process_history(self, process_id: str) -> List[AuditTrailEntry]:
        return self.audit_store.entries(process_id=process_id)

    def get_latest_result(self, process_type: str) -> Optional[BiasMonitoringResult]:
        """Most recent cached result for a process type; None on a miss."""
        return self.cache.get(REALTIME_KEY.format(process_type=process_type))

    def get_result(self, monitoring_id: str) -> Optional[BiasMonitoringResult]:
        return self.cache.get(RESULT_KEY.format(monitoring_id=monitoring_id))

    def get_cached_metrics(self, metrics_id: str) -> Optional[FairnessMetrics]:
        return self.cache.get(METRICS_KEY.format(metrics_id=metrics_id))
