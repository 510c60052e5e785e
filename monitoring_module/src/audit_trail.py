"""
Audit Trail - Append-only record of monitoring evaluations.

Every evaluation appends one AuditTrailEntry holding the full analysis
snapshot; administrative changes (threshold updates, alert transitions)
are recorded as AdministrativeEvents. Reports and dashboards are replayed
from these entries rather than recomputed from raw data.
"""

import copy
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from shared.logging import get_logger
from shared.schemas import BiasMonitoringResult

logger = get_logger(__name__)


@dataclass(frozen=True)
class AuditTrailEntry:
    """Immutable record of one monitoring evaluation."""

    monitoring_id: str
    process_id: str
    process_type: str
    analysis: Dict[str, Any]
    violations: Tuple[Dict[str, Any], ...]
    compliance_status: str
    overall_bias_score: float
    threshold_version: Optional[int]
    timestamp: datetime
    processing_time_ms: float

    @classmethod
    def from_result(cls, result: BiasMonitoringResult) -> "AuditTrailEntry":
        return cls(
            monitoring_id=result.monitoring_id,
            process_id=result.process_id,
            process_type=result.process_type,
            analysis=result.bias_analysis.to_dict(),
            violations=tuple(v.to_dict() for v in result.violations),
            compliance_status=result.compliance_status,
            overall_bias_score=result.bias_analysis.overall_bias_score,
            threshold_version=result.bias_analysis.threshold_version,
            timestamp=result.timestamp,
            processing_time_ms=result.processing_time_ms,
        )

    @property
    def violation_count(self) -> int:
        return len(self.violations)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "monitoring_id": self.monitoring_id,
            "process_id": self.process_id,
            "process_type": self.process_type,
            "analysis": self.analysis,
            "violations": list(self.violations),
            "compliance_status": self.compliance_status,
            "overall_bias_score": self.overall_bias_score,
            "threshold_version": self.threshold_version,
            "timestamp": self.timestamp.isoformat(),
            "processing_time_ms": self.processing_time_ms,
        }


@dataclass(frozen=True)
class AdministrativeEvent:
    """An audited change made outside an evaluation."""

    event_type: str  # e.g. 'thresholds_updated', 'alert_acknowledged'
    actor: str
    details: Dict[str, Any]
    timestamp: datetime = field(default_factory=datetime.now)
    event_id: str = field(default_factory=lambda: f"evt_{uuid.uuid4().hex[:12]}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_id": self.event_id,
            "event_type": self.event_type,
            "actor": self.actor,
            "details": self.details,
            "timestamp": self.timestamp.isoformat(),
        }


class AuditTrailStore:
    """
    In-memory append-only audit store.

    Snapshots are deep-copied on append so later changes to the caller's
    objects cannot rewrite history. Retention is owned externally through
    apply_retention().
    """

    def __init__(self):
        self._entries: List[AuditTrailEntry] = []
        self._events: List[AdministrativeEvent] = []
        self._lock = threading.Lock()

    def append(self, entry: AuditTrailEntry) -> None:
        entry = copy.deepcopy(entry)
        with self._lock:
            if any(e.monitoring_id == entry.monitoring_id for e in self._entries):
                # Retried writes must not double count
                logger.debug(f"Audit entry {entry.monitoring_id} already recorded")
                return
            self._entries.append(entry)
        logger.debug(f"Audit entry appended: {entry.monitoring_id} ({entry.process_type})")

    def record_event(self, event: AdministrativeEvent) -> None:
        with self._lock:
            self._events.append(copy.deepcopy(event))
        logger.info(f"AUDIT EVENT: {event.event_type} by {event.actor}")

    def entries(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        process_id: Optional[str] = None,
        process_type: Optional[str] = None,
    ) -> List[AuditTrailEntry]:
        """Entries in [start, end], optionally filtered, oldest first."""
        with self._lock:
            selected = [
                e for e in self._entries
                if (start is None or e.timestamp >= start)
                and (end is None or e.timestamp <= end)
                and (process_id is None or e.process_id == process_id)
                and (process_type is None or e.process_type == process_type)
            ]
        return sorted(selected, key=lambda e: e.timestamp)

    def events(self, event_type: Optional[str] = None) -> List[AdministrativeEvent]:
        with self._lock:
            return [e for e in self._events if event_type is None or e.event_type == event_type]

    def apply_retention(self, cutoff: datetime) -> int:
        """Drop entries older than cutoff; returns the number removed."""
        with self._lock:
            before = len(self._entries)
            self._entries = [e for e in self._entries if e.timestamp >= cutoff]
            removed = before - len(self._entries)
        if removed:
            logger.info(f"Retention removed {removed} audit entries older than {cutoff.isoformat()}")
        return removed

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
