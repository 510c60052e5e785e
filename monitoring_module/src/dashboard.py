"""
Monitoring Dashboard - Read-side projection over the audit trail.

Builds the dashboard payload (summary metrics, active alerts, trend data,
compliance by process type, recent results) with pandas. The projection
is pure: it never triggers a new evaluation.

Author: FairML Consulting
Date: January 2026
"""

import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Sequence, Tuple

import pandas as pd

from shared.constants import MONITORING_DEFAULTS, TIME_RANGES
from shared.logging import get_logger
from monitoring_module.src.alerting import AlertStore
from monitoring_module.src.audit_trail import AuditTrailEntry
from monitoring_module.src.exceptions import InvalidTimeRangeError

logger = get_logger(__name__)

ENTRY_COLUMNS = [
    "monitoring_id",
    "timestamp",
    "process_id",
    "process_type",
    "compliance_status",
    "overall_bias_score",
    "violation_count",
    "processing_time_ms",
]

# Windows up to a day trend hourly, longer ones daily
HOURLY_RANGES = {"1h", "24h"}
MIN_EVALUATIONS_FOR_HIGH_CONFIDENCE = 10


def resolve_time_range(time_range: str, now: Optional[datetime] = None) -> Tuple[datetime, datetime]:
    """Return (start, end) for one of TIME_RANGES."""
    if time_range not in TIME_RANGES:
        raise InvalidTimeRangeError(
            f"Unknown time range '{time_range}'. Expected one of {list(TIME_RANGES)}"
        )
    end = now or datetime.now()
    return end - timedelta(seconds=TIME_RANGES[time_range]), end


def entries_frame(entries: Sequence[AuditTrailEntry]) -> pd.DataFrame:
    """One row per evaluation, sorted by timestamp."""
    if not entries:
        return pd.DataFrame(columns=ENTRY_COLUMNS)

    df = pd.DataFrame([
        {
            "monitoring_id": e.monitoring_id,
            "timestamp": e.timestamp,
            "process_id": e.process_id,
            "process_type": e.process_type,
            "compliance_status": e.compliance_status,
            "overall_bias_score": e.overall_bias_score,
            "violation_count": e.violation_count,
            "processing_time_ms": e.processing_time_ms,
        }
        for e in entries
    ])
    df["timestamp"] = pd.to_datetime(df["timestamp"])
    return df.sort_values("timestamp").reset_index(drop=True)


def _clean(value: Any) -> Any:
    """numpy scalars to Python, NaN to None."""
    if hasattr(value, "item"):
        value = value.item()
    if isinstance(value, float) and math.isnan(value):
        return None
    return value


def data_confidence(n_evaluations: int) -> str:
    if n_evaluations == 0:
        return "low"
    if n_evaluations < MIN_EVALUATIONS_FOR_HIGH_CONFIDENCE:
        return "reduced"
    return "high"


@dataclass
class DashboardData:
    """Serialisable dashboard payload for one time range."""

    time_range: str
    window_start: datetime
    window_end: datetime
    data_status: str  # 'ok' or 'empty'
    confidence: str
    summary: Dict[str, Any]
    active_alerts: List[Dict[str, Any]] = field(default_factory=list)
    trend_data: List[Dict[str, Any]] = field(default_factory=list)
    compliance_by_process_type: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    recent_results: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "time_range": self.time_range,
            "window_start": self.window_start.isoformat(),
            "window_end": self.window_end.isoformat(),
            "data_status": self.data_status,
            "confidence": self.confidence,
            "summary": self.summary,
            "active_alerts": self.active_alerts,
            "trend_data": self.trend_data,
            "compliance_by_process_type": self.compliance_by_process_type,
            "recent_results": self.recent_results,
        }


def summarize(df: pd.DataFrame) -> Dict[str, Any]:
    """Totals, compliance rate and average score (None when empty)."""
    if df.empty:
        return {
            "total_processes": 0,
            "unique_processes": 0,
            "violation_count": 0,
            "compliance_rate": None,
            "average_bias_score": None,
        }
    return {
        "total_processes": int(len(df)),
        "unique_processes": int(df["process_id"].nunique()),
        "violation_count": int(df["violation_count"].sum()),
        "compliance_rate": float((df["compliance_status"] == "compliant").mean()),
        "average_bias_score": float(df["overall_bias_score"].mean()),
    }


def trend_data(df: pd.DataFrame, time_range: str) -> List[Dict[str, Any]]:
    """Per-bucket evaluation count, mean score and violations."""
    if df.empty:
        return []

    freq = pd.offsets.Hour() if time_range in HOURLY_RANGES else pd.offsets.Day()
    grouped = df.groupby(pd.Grouper(key="timestamp", freq=freq)).agg(
        evaluations=("monitoring_id", "count"),
        average_bias_score=("overall_bias_score", "mean"),
        violations=("violation_count", "sum"),
    )
    return [
        {
            "period": period.isoformat(),
            "evaluations": int(row["evaluations"]),
            "average_bias_score": _clean(row["average_bias_score"]),
            "violations": int(row["violations"]),
        }
        for period, row in grouped.iterrows()
    ]


def compliance_by_process_type(df: pd.DataFrame) -> Dict[str, Dict[str, Any]]:
    if df.empty:
        return {}

    breakdown = {}
    for process_type, group in df.groupby("process_type"):
        breakdown[process_type] = {
            "evaluations": int(len(group)),
            "compliance_rate": float((group["compliance_status"] == "compliant").mean()),
            "average_bias_score": float(group["overall_bias_score"].mean()),
            "violations": int(group["violation_count"].sum()),
        }
    return breakdown


def build_dashboard_data(
    entries: Sequence[AuditTrailEntry],
    alert_store: AlertStore,
    time_range: str = "24h",
    now: Optional[datetime] = None,
    recent_limit: int = MONITORING_DEFAULTS["recent_results_limit"],
) -> DashboardData:
    """
    Project audit entries and open alerts into dashboard data.

    Args:
        entries: Audit entries (filtered to the window here)
        alert_store: Source of the active alerts
        time_range: One of TIME_RANGES
        now: End of the window (default: now)
        recent_limit: Maximum recent results returned

    Returns:
        DashboardData; an empty window has data_status 'empty', low
        confidence and no rate or average
    """
    start, end = resolve_time_range(time_range, now)
    in_window = [e for e in entries if start <= e.timestamp <= end]
    df = entries_frame(in_window)

    active = [a.to_dict() for a in alert_store.active_alerts()]
    summary = summarize(df)
    summary["active_alerts"] = len(active)
    summary["critical_alerts"] = sum(1 for a in active if a["severity"] == "critical")

    if df.empty:
        logger.info(f"Dashboard {time_range}: no evaluations in window")
        return DashboardData(
            time_range=time_range,
            window_start=start,
            window_end=end,
            data_status="empty",
            confidence="low",
            summary=summary,
            active_alerts=active,
        )

    recent = df.sort_values("timestamp", ascending=False).head(recent_limit)
    recent_results = [
        {
            "monitoring_id": row["monitoring_id"],
            "process_id": row["process_id"],
            "process_type": row["process_type"],
            "compliance_status": row["compliance_status"],
            "overall_bias_score": float(row["overall_bias_score"]),
            "violation_count": int(row["violation_count"]),
            "timestamp": row["timestamp"].isoformat(),
        }
        for _, row in recent.iterrows()
    ]

    return DashboardData(
        time_range=time_range,
        window_start=start,
        window_end=end,
        data_status="ok",
        confidence=data_confidence(len(df)),
        summary=summary,
        active_alerts=active,
        trend_data=trend_data(df, time_range),
        compliance_by_process_type=compliance_by_process_type(df),
        recent_results=recent_results,
    )
