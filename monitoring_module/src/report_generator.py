"""
Report Generator for Bias Monitoring

Replays audit trail entries into compliance, trend, violation, process
performance, hiring funnel and executive summary reports. A report is
stamped with its window end, so replaying the same window gives the same
report. Reports are serialisable and can be exported as Markdown.

Author: FairML Consulting
Date: January 2026
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import numpy as np
import pandas as pd

from shared.constants import (
    COMPLIANCE_STATUSES,
    FOUR_FIFTHS_THRESHOLD,
    PROCESS_TYPES,
    REPORT_TYPES,
    SEVERITY_LEVELS,
    SIGNIFICANCE_LEVEL,
)
from shared.logging import get_logger
from shared.validation import ValidationError, safe_divide
from measurement_module.src.statistical_tests import OUTCOME_COLUMNS, ContingencyTable, chi_square_test
from monitoring_module.src.audit_trail import AuditTrailEntry
from monitoring_module.src.dashboard import (
    data_confidence,
    entries_frame,
    resolve_time_range,
    summarize,
    trend_data,
)
from monitoring_module.src.exceptions import UnsupportedReportTypeError

logger = get_logger(__name__)

# Change in mean bias score between window halves treated as a real trend
TREND_TOLERANCE = 0.05


@dataclass
class ReportSection:
    """A section of the Markdown export."""

    title: str
    content: str
    level: int = 2


@dataclass
class BiasReport:
    """A replayed report over one time window."""

    report_id: str
    report_type: str
    time_range: str
    window_start: datetime
    window_end: datetime
    generated_at: datetime
    data_status: str  # 'ok' or 'empty'
    confidence: str
    metadata: Dict[str, Any]
    body: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "report_id": self.report_id,
            "report_type": self.report_type,
            "time_range": self.time_range,
            "window_start": self.window_start.isoformat(),
            "window_end": self.window_end.isoformat(),
            "generated_at": self.generated_at.isoformat(),
            "data_status": self.data_status,
            "confidence": self.confidence,
            "metadata": self.metadata,
            "body": self.body,
        }

    def sections(self) -> List[ReportSection]:
        title = self.report_type.replace("_", " ").title()
        header = (
            f"**Generated:** {self.generated_at.strftime('%Y-%m-%d %H:%M:%S')}\n\n"
            f"**Window:** {self.window_start.isoformat()} to {self.window_end.isoformat()} "
            f"({self.time_range})\n\n"
            f"**Confidence:** {self.confidence}\n"
        )
        sections = [ReportSection(f"{title} Report", header, level=1)]

        meta = "\n".join(f"- **{k}:** {_format(v)}" for k, v in self.metadata.items())
        sections.append(ReportSection("Summary", meta + "\n"))

        if self.data_status == "empty":
            sections.append(ReportSection("Details", "*No evaluations recorded in this window.*\n"))
            return sections

        for key, value in self.body.items():
            sections.append(ReportSection(key.replace("_", " ").title(), _render(value)))
        return sections

    def to_markdown(self) -> str:
        parts = []
        for section in self.sections():
            parts.append(f"{'#' * section.level} {section.title}\n\n{section.content}")
        return "\n---\n\n".join(parts)


def _format(value: Any) -> str:
    if value is None:
        return "n/a"
    if isinstance(value, float):
        return f"{value:.3f}"
    return str(value)


def _render(value: Any) -> str:
    """Render a body value as Markdown (table for record lists)."""
    if isinstance(value, list) and value and isinstance(value[0], dict):
        columns = list(value[0].keys())
        lines = [
            "| " + " | ".join(columns) + " |",
            "|" + "|".join("---" for _ in columns) + "|",
        ]
        for row in value:
            lines.append("| " + " | ".join(_format(row.get(c)) for c in columns) + " |")
        return "\n".join(lines) + "\n"
    if isinstance(value, dict):
        return "\n".join(f"- **{k}:** {_format(v) if not isinstance(v, dict) else v}" for k, v in value.items()) + "\n"
    if isinstance(value, list):
        return "\n".join(f"- {item}" for item in value) + "\n" if value else "*None*\n"
    return f"{_format(value)}\n"


def _violations_frame(entries: Sequence[AuditTrailEntry]) -> pd.DataFrame:
    rows = []
    for entry in entries:
        for violation in entry.violations:
            rows.append({
                "process_id": entry.process_id,
                "process_type": entry.process_type,
                "violation_type": violation.get("violation_type"),
                "severity": violation.get("severity"),
                "metric_name": violation.get("metric_name"),
                "attribute": violation.get("attribute"),
                "value": violation.get("value"),
            })
    return pd.DataFrame(rows, columns=[
        "process_id", "process_type", "violation_type", "severity", "metric_name", "attribute", "value",
    ])


def compliance_body(df: pd.DataFrame, entries: Sequence[AuditTrailEntry]) -> Dict[str, Any]:
    status_counts = df["compliance_status"].value_counts()
    by_type = []
    for process_type, group in df.groupby("process_type"):
        by_type.append({
            "process_type": process_type,
            "evaluations": int(len(group)),
            "compliance_rate": float((group["compliance_status"] == "compliant").mean()),
            "non_compliant": int((group["compliance_status"] == "non_compliant").sum()),
        })

    non_compliant = df[df["compliance_status"] == "non_compliant"]
    return {
        "status_breakdown": {s: int(status_counts.get(s, 0)) for s in COMPLIANCE_STATUSES},
        "by_process_type": by_type,
        "non_compliant_processes": sorted(non_compliant["process_id"].unique().tolist()),
        "threshold_versions": sorted({e.threshold_version for e in entries if e.threshold_version is not None}),
    }


def trend_body(df: pd.DataFrame, time_range: str) -> Dict[str, Any]:
    scores = df["overall_bias_score"].to_numpy(dtype=float)
    half = len(scores) // 2
    direction = "insufficient_data"
    change = None
    slope = None

    if half >= 1:
        change = float(scores[half:].mean() - scores[:half].mean())
        if change > TREND_TOLERANCE:
            direction = "worsening"
        elif change < -TREND_TOLERANCE:
            direction = "improving"
        else:
            direction = "stable"

        elapsed_hours = (df["timestamp"] - df["timestamp"].iloc[0]).dt.total_seconds().to_numpy() / 3600
        if np.ptp(elapsed_hours) > 0:
            slope = float(np.polyfit(elapsed_hours, scores, 1)[0])

    return {
        "direction": {
            "trend": direction,
            "mean_score_change": change,
            "slope_per_hour": slope,
        },
        "series": trend_data(df, time_range),
    }


def violation_body(violations: pd.DataFrame) -> Dict[str, Any]:
    if violations.empty:
        return {"by_type": [], "by_severity": {s: 0 for s in SEVERITY_LEVELS}, "by_attribute": [], "top_processes": []}

    by_type = (
        violations.groupby("violation_type")
        .agg(count=("metric_name", "size"), mean_value=("value", "mean"))
        .sort_values("count", ascending=False)
        .reset_index()
    )
    severity_counts = violations["severity"].value_counts()
    attributed = violations.dropna(subset=["attribute"])
    by_attribute = (
        attributed.groupby("attribute").size().sort_values(ascending=False).reset_index(name="count")
    )
    top_processes = (
        violations.groupby("process_id").size().sort_values(ascending=False).head(10).reset_index(name="count")
    )
    return {
        "by_type": [
            {"violation_type": r["violation_type"], "count": int(r["count"]), "mean_value": float(r["mean_value"])}
            for _, r in by_type.iterrows()
        ],
        "by_severity": {s: int(severity_counts.get(s, 0)) for s in SEVERITY_LEVELS},
        "by_attribute": [
            {"attribute": r["attribute"], "count": int(r["count"])} for _, r in by_attribute.iterrows()
        ],
        "top_processes": [
            {"process_id": r["process_id"], "count": int(r["count"])} for _, r in top_processes.iterrows()
        ],
    }


def performance_body(df: pd.DataFrame) -> Dict[str, Any]:
    rows = []
    for process_type, group in df.groupby("process_type"):
        times = group["processing_time_ms"].astype(float)
        rows.append({
            "process_type": process_type,
            "evaluations": int(len(group)),
            "mean_processing_ms": float(times.mean()),
            "p95_processing_ms": float(np.percentile(times, 95)),
            "max_processing_ms": float(times.max()),
            "average_bias_score": float(group["overall_bias_score"].mean()),
        })
    return {"by_process_type": rows}


# Stage bias (1 - min/max pass rate) above which a funnel stage is flagged
FUNNEL_BIAS_THRESHOLD = 0.2
FUNNEL_SEVERITY_CUTOFFS = {"high": 0.5, "medium": 0.3}
# Average fairness (1 - bias score) bands for the executive status
EXECUTIVE_FAIRNESS_CUTOFFS = {"compliant": 0.8, "acceptable": 0.7, "needs_attention": 0.6}

STAGE_RECOMMENDATIONS = {
    "screening": "Implement blind resume screening",
    "interview": "Standardize interview questions and use diverse panels",
    "decision": "Review final decision criteria and approval steps",
    "matching": "Audit matching features for proxies of protected attributes",
}


def _stage_of(process_type: str) -> str:
    return PROCESS_TYPES.get(process_type, {}).get("stage", process_type)


def _stage_counts(entries: Sequence[AuditTrailEntry]) -> Dict[str, Dict[str, Dict[str, List[int]]]]:
    """stage -> attribute -> group -> [selected, total], pooled from parity comparisons."""
    counts: Dict[str, Dict[str, Dict[str, List[int]]]] = {}
    for entry in entries:
        metrics = entry.analysis.get("fairness_metrics")
        if not metrics:
            continue
        stage = counts.setdefault(_stage_of(entry.process_type), {})
        parity = metrics["families"]["demographic_parity"]
        for attribute, comparison in parity["comparisons"].items():
            groups = stage.setdefault(attribute, {})
            for group, rate in comparison["group_values"].items():
                size = int(comparison["group_sizes"].get(group, 0))
                cell = groups.setdefault(group, [0, 0])
                cell[0] += int(round(rate * size))
                cell[1] += size
    return counts


def _stage_significance(groups: Dict[str, List[int]]) -> Optional[float]:
    """Chi-square p-value of the pooled group x outcome table (None if degenerate)."""
    labels = sorted(groups)
    rows = [(groups[g][0], groups[g][1] - groups[g][0]) for g in labels]
    try:
        return chi_square_test(ContingencyTable.from_counts(rows, labels, OUTCOME_COLUMNS)).p_value
    except ValidationError:
        return None


def funnel_body(entries: Sequence[AuditTrailEntry]) -> Dict[str, Any]:
    """
    Pass rates per protected group at each hiring stage.

    Stages follow the process order screening -> interview -> decision ->
    matching. A stage/attribute pair is a bias indicator when its stage
    bias exceeds FUNNEL_BIAS_THRESHOLD and the pooled chi-square test is
    significant.
    """
    counts = _stage_counts(entries)
    order = [spec["stage"] for spec in PROCESS_TYPES.values()]

    stages = []
    dropoff_rates = {}
    indicators = []
    previous_total = None
    for stage in [s for s in order if s in counts]:
        attributes = counts[stage]
        # Every attribute partitions the same subjects; take the largest
        total = max((sum(cell[1] for cell in groups.values()) for groups in attributes.values()), default=0)
        stage_row = {"stage": stage, "total_candidates": total, "attributes": {}}

        for attribute, groups in sorted(attributes.items()):
            rates = {g: safe_divide(sel, n, default=0.0) for g, (sel, n) in sorted(groups.items()) if n > 0}
            if len(rates) < 2:
                continue
            high = max(rates.values())
            bias = 1 - min(rates.values()) / high if high > 0 else 0.0
            p_value = _stage_significance(groups)
            stage_row["attributes"][attribute] = {
                "pass_rates": rates,
                "stage_bias": bias,
                "p_value": p_value,
            }

            if bias > FUNNEL_BIAS_THRESHOLD and p_value is not None and p_value < SIGNIFICANCE_LEVEL:
                if bias > FUNNEL_SEVERITY_CUTOFFS["high"]:
                    severity = "high"
                elif bias > FUNNEL_SEVERITY_CUTOFFS["medium"]:
                    severity = "medium"
                else:
                    severity = "low"
                indicators.append({
                    "stage": stage,
                    "attribute": attribute,
                    "affected_group": min(rates, key=rates.get),
                    "severity": severity,
                    "impact": bias,
                    "recommendation": STAGE_RECOMMENDATIONS.get(stage, "Review stage processes for bias"),
                })

        if previous_total:
            dropoff_rates[stage] = 1 - total / previous_total
        previous_total = total
        stages.append(stage_row)

    return {"stages": stages, "dropoff_rates": dropoff_rates, "bias_indicators": indicators}


def _significant_attributes(entries: Sequence[AuditTrailEntry]) -> List[str]:
    found = set()
    for entry in entries:
        metrics = entry.analysis.get("fairness_metrics") or {}
        for attribute, result in (metrics.get("statistical_significance") or {}).items():
            if result.get("is_significant"):
                found.add(attribute)
    return sorted(found)


def executive_body(
    df: pd.DataFrame,
    entries: Sequence[AuditTrailEntry],
    issued_at: datetime,
) -> Dict[str, Any]:
    """
    Key findings, compliance status and dated action items.

    Due dates count from issued_at (the window end) so a replayed report
    is reproducible.
    """
    fairness = float(1 - df["overall_bias_score"].mean())
    funnel = funnel_body(entries)
    indicators = funnel["bias_indicators"]
    significant = _significant_attributes(entries)
    non_compliant = int((df["compliance_status"] == "non_compliant").sum())

    parity_scores = [
        e.analysis["fairness_metrics"]["families"]["demographic_parity"]["score"]
        for e in entries
        if e.analysis.get("fairness_metrics")
        and e.analysis["fairness_metrics"]["families"]["demographic_parity"]["score"] is not None
    ]
    mean_parity = float(np.mean(parity_scores)) if parity_scores else None

    key_findings = []
    recommendations = []
    if fairness < EXECUTIVE_FAIRNESS_CUTOFFS["acceptable"]:
        key_findings.append(f"Average fairness {fairness:.2f} is below the acceptable level")
        recommendations.append("Implement bias mitigation across the affected processes")
    if indicators:
        key_findings.append(f"{len(indicators)} bias indicator(s) across hiring stages")
        recommendations.append("Address the flagged hiring stages")
    if significant:
        key_findings.append(f"Statistically significant disparity on: {', '.join(significant)}")
        recommendations.append("Review significant disparities with HR and legal")
    if non_compliant:
        key_findings.append(f"{non_compliant} non-compliant evaluation(s) in the window")

    if fairness >= EXECUTIVE_FAIRNESS_CUTOFFS["compliant"] and not significant and not non_compliant:
        status = "compliant"
    elif fairness >= EXECUTIVE_FAIRNESS_CUTOFFS["needs_attention"]:
        status = "needs_attention"
    else:
        status = "non_compliant"

    action_items = []
    for indicator in indicators:
        action_items.append({
            "priority": "high" if indicator["severity"] == "high" else "medium",
            "category": "process",
            "description": f"{indicator['recommendation']} ({indicator['stage']}, {indicator['attribute']})",
            "owner": "Hiring Manager",
            "due_date": (issued_at + timedelta(days=30)).isoformat(),
            "status": "pending",
        })
    for attribute in significant:
        action_items.append({
            "priority": "high",
            "category": "policy",
            "description": f"Review policy and training for the {attribute} disparity",
            "owner": "HR Director",
            "due_date": (issued_at + timedelta(days=14)).isoformat(),
            "status": "pending",
        })
    if mean_parity is not None and mean_parity < FOUR_FIFTHS_THRESHOLD:
        action_items.append({
            "priority": "medium",
            "category": "training",
            "description": "Run unconscious bias training for hiring managers",
            "owner": "Training Coordinator",
            "due_date": (issued_at + timedelta(days=60)).isoformat(),
            "status": "pending",
        })

    return {
        "overview": {
            "overall_fairness": fairness,
            "mean_parity_ratio": mean_parity,
            "compliance_status": status,
        },
        "key_findings": key_findings,
        "recommendations": recommendations,
        "action_items": action_items,
    }


def generate_report(
    entries: Sequence[AuditTrailEntry],
    report_type: str,
    time_range: str = "7d",
    now: Optional[datetime] = None,
) -> BiasReport:
    """
    Replay audit entries into a report.

    Args:
        entries: Audit entries (filtered to the window here)
        report_type: One of REPORT_TYPES
        time_range: One of TIME_RANGES
        now: End of the window and generation time (default: now)

    Returns:
        BiasReport with metadata total_processes, total_violations and
        compliance_rate

    Raises:
        UnsupportedReportTypeError: Unknown report type
        InvalidTimeRangeError: Unknown time range
    """
    if report_type not in REPORT_TYPES:
        raise UnsupportedReportTypeError(
            f"Unsupported report type '{report_type}'. Expected one of {REPORT_TYPES}"
        )
    start, end = resolve_time_range(time_range, now)
    in_window = [e for e in entries if start <= e.timestamp <= end]
    df = entries_frame(in_window)
    summary = summarize(df)

    report = BiasReport(
        report_id=f"report_{uuid.uuid4().hex[:12]}",
        report_type=report_type,
        time_range=time_range,
        window_start=start,
        window_end=end,
        generated_at=end,
        data_status="empty" if df.empty else "ok",
        confidence=data_confidence(len(df)),
        metadata={
            "total_processes": summary["total_processes"],
            "total_violations": summary["violation_count"],
            "compliance_rate": summary["compliance_rate"],
        },
    )

    if df.empty:
        logger.info(f"Report {report_type} ({time_range}): no evaluations in window")
        return report

    if report_type == "compliance":
        report.body = compliance_body(df, in_window)
    elif report_type == "trend_analysis":
        report.body = trend_body(df, time_range)
    elif report_type == "violation_summary":
        report.body = violation_body(_violations_frame(in_window))
    elif report_type == "process_performance":
        report.body = performance_body(df)
    elif report_type == "funnel_analysis":
        report.body = funnel_body(in_window)
    else:
        report.body = executive_body(df, in_window, end)

    logger.info(
        f"Report {report_type} ({time_range}) generated over {len(df)} evaluations"
    )
    return report


def save_report(report: BiasReport, output_dir: Path = Path("reports")) -> str:
    """Write the Markdown export; returns the file path."""
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    timestamp = report.generated_at.strftime("%Y%m%d_%H%M%S")
    filepath = output_dir / f"bias_{report.report_type}_report_{timestamp}.md"
    with open(filepath, 'w', encoding='utf-8') as f:
        f.write(report.to_markdown())

    logger.info(f"Report saved to {filepath}")
    return str(filepath)
