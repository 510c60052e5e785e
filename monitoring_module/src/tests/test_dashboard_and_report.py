"""
Tests for Dashboard and Report Generator

Tests the dashboard projection and report replay over audit entries.
"""

from datetime import datetime, timedelta
from pathlib import Path

import pytest

from shared.schemas import BiasViolation
from monitoring_module.src.alerting import AlertStore
from monitoring_module.src.audit_trail import AuditTrailEntry
from monitoring_module.src.dashboard import (
    build_dashboard_data,
    data_confidence,
    entries_frame,
    resolve_time_range,
    summarize,
)
from monitoring_module.src.exceptions import InvalidTimeRangeError, UnsupportedReportTypeError
from monitoring_module.src.report_generator import generate_report, save_report


NOW = datetime(2026, 1, 15, 12, 0)


def entry(index, hours_ago, status="compliant", score=0.1, process_type="hiring_decision",
          process_id=None, violations=()):
    return AuditTrailEntry(
        monitoring_id=f"mon_{index}",
        process_id=process_id or f"P-{index}",
        process_type=process_type,
        analysis={"overall_bias_score": score},
        violations=tuple(violations),
        compliance_status=status,
        overall_bias_score=score,
        threshold_version=1,
        timestamp=NOW - timedelta(hours=hours_ago),
        processing_time_ms=10.0 + index,
    )


def parity_violation(severity="high", attribute="gender"):
    return {
        "violation_type": "demographic_parity_violation",
        "severity": severity,
        "metric_name": f"demographic_parity.{attribute}",
        "attribute": attribute,
        "value": 0.65,
    }


@pytest.fixture
def entries():
    """Six evaluations over the last day with rising scores."""
    return [
        entry(1, 20, score=0.05),
        entry(2, 16, score=0.1),
        entry(3, 12, score=0.15, process_type="matching"),
        entry(4, 6, status="violation_detected", score=0.35, violations=[parity_violation()]),
        entry(5, 3, status="non_compliant", score=0.6, process_id="P-4",
              violations=[parity_violation("critical"), {
                  "violation_type": "critical_bias", "severity": "critical",
                  "metric_name": "overall_bias_score", "attribute": None, "value": 0.6,
              }]),
        entry(6, 1, status="violation_detected", score=0.4, process_type="matching",
              violations=[parity_violation("medium", "ethnicity")]),
    ]


# ============================================================================
# Helpers
# ============================================================================

class TestDashboardHelpers:
    """Tests for time ranges, frames and summaries."""

    def test_resolve_time_range(self):
        """Known ranges resolve to a window ending at now."""
        start, end = resolve_time_range("7d", NOW)
        assert end == NOW
        assert end - start == timedelta(days=7)

    def test_invalid_time_range(self):
        """Unknown ranges are rejected."""
        with pytest.raises(InvalidTimeRangeError):
            resolve_time_range("2w", NOW)

    def test_entries_frame_sorted(self, entries):
        """Frame rows are ordered by timestamp."""
        df = entries_frame(list(reversed(entries)))
        assert list(df["monitoring_id"]) == [f"mon_{i}" for i in range(1, 7)]

    def test_summarize(self, entries):
        """Summary totals over the frame."""
        summary = summarize(entries_frame(entries))

        assert summary["total_processes"] == 6
        assert summary["unique_processes"] == 5
        assert summary["violation_count"] == 4
        assert summary["compliance_rate"] == pytest.approx(0.5)
        assert summary["average_bias_score"] == pytest.approx(1.65 / 6)

    def test_data_confidence(self):
        """Confidence grows with the number of evaluations."""
        assert data_confidence(0) == "low"
        assert data_confidence(5) == "reduced"
        assert data_confidence(50) == "high"


# ============================================================================
# Dashboard
# ============================================================================

class TestDashboard:
    """Tests for build_dashboard_data."""

    def test_empty_window(self):
        """No evaluations gives an explicit empty state, not zeros."""
        data = build_dashboard_data([], AlertStore(), time_range="24h", now=NOW)

        assert data.data_status == "empty"
        assert data.confidence == "low"
        assert data.summary["total_processes"] == 0
        assert data.summary["compliance_rate"] is None
        assert data.summary["average_bias_score"] is None
        assert data.trend_data == []

    def test_populated_dashboard(self, entries):
        """Summary, breakdown, trend and recent results."""
        store = AlertStore(clock=lambda: NOW)
        store.upsert("P-4", "hiring_decision", BiasViolation(
            violation_type="critical_bias", severity="critical", metric_name="overall_bias_score",
            value=0.6, threshold=0.5, description="critical"), {})

        data = build_dashboard_data(entries, store, time_range="24h", now=NOW, recent_limit=3)

        assert data.data_status == "ok"
        assert data.confidence == "reduced"
        assert data.summary["active_alerts"] == 1
        assert data.summary["critical_alerts"] == 1
        assert set(data.compliance_by_process_type) == {"hiring_decision", "matching"}
        assert data.compliance_by_process_type["matching"]["evaluations"] == 2
        assert [r["monitoring_id"] for r in data.recent_results] == ["mon_6", "mon_5", "mon_4"]
        assert sum(bucket["evaluations"] for bucket in data.trend_data) == 6
        assert data.to_dict()["window_end"] == NOW.isoformat()

    def test_window_excludes_older_entries(self, entries):
        """Only entries inside the range are counted."""
        data = build_dashboard_data(entries, AlertStore(), time_range="1h", now=NOW)

        assert data.summary["total_processes"] == 1
        assert data.recent_results[0]["monitoring_id"] == "mon_6"


# ============================================================================
# Reports
# ============================================================================

class TestReports:
    """Tests for generate_report and save_report."""

    def test_unsupported_report_type(self, entries):
        """Unknown report types are rejected."""
        with pytest.raises(UnsupportedReportTypeError):
            generate_report(entries, "executive_summary", now=NOW)

    def test_invalid_time_range(self, entries):
        """Unknown ranges are rejected."""
        with pytest.raises(InvalidTimeRangeError):
            generate_report(entries, "compliance", time_range="1y", now=NOW)

    def test_empty_window_report(self):
        """An empty window gives an empty report with explicit metadata."""
        report = generate_report([], "compliance", now=NOW)

        assert report.data_status == "empty"
        assert report.body == {}
        assert report.metadata == {"total_processes": 0, "total_violations": 0, "compliance_rate": None}
        assert "No evaluations recorded" in report.to_markdown()

    def test_compliance_report(self, entries):
        """Status breakdown and non-compliant processes."""
        report = generate_report(entries, "compliance", "24h", now=NOW)

        assert report.metadata["total_processes"] == 6
        assert report.body["status_breakdown"] == {
            "compliant": 3, "violation_detected": 2, "non_compliant": 1,
        }
        assert report.body["non_compliant_processes"] == ["P-4"]
        assert report.body["threshold_versions"] == [1]

    def test_trend_report_worsening(self, entries):
        """Rising scores are reported as worsening."""
        report = generate_report(entries, "trend_analysis", "24h", now=NOW)
        direction = report.body["direction"]

        assert direction["trend"] == "worsening"
        assert direction["mean_score_change"] > 0
        assert direction["slope_per_hour"] > 0

    def test_trend_report_single_entry(self):
        """One evaluation is not enough to call a trend."""
        report = generate_report([entry(1, 1)], "trend_analysis", "24h", now=NOW)
        assert report.body["direction"]["trend"] == "insufficient_data"

    def test_violation_summary(self, entries):
        """Counts by type, severity, attribute and process."""
        report = generate_report(entries, "violation_summary", "24h", now=NOW)
        body = report.body

        assert body["by_type"][0] == {
            "violation_type": "demographic_parity_violation", "count": 3, "mean_value": pytest.approx(0.65),
        }
        assert body["by_severity"] == {"low": 0, "medium": 1, "high": 1, "critical": 2}
        assert body["by_attribute"][0] == {"attribute": "gender", "count": 2}
        assert body["top_processes"][0] == {"process_id": "P-4", "count": 3}

    def test_process_performance(self, entries):
        """Processing time statistics per process type."""
        report = generate_report(entries, "process_performance", "24h", now=NOW)
        rows = {r["process_type"]: r for r in report.body["by_process_type"]}

        assert rows["matching"]["evaluations"] == 2
        assert rows["matching"]["max_processing_ms"] == pytest.approx(16.0)
        assert rows["hiring_decision"]["mean_processing_ms"] == pytest.approx(13.0)

    def test_save_report(self, entries, tmp_path):
        """The Markdown export is written to the output directory."""
        report = generate_report(entries, "compliance", "24h", now=NOW)
        path = Path(save_report(report, tmp_path / "reports"))

        assert path.exists()
        assert path.name.startswith("bias_compliance_report_")
        content = path.read_text(encoding="utf-8")
        assert "# Compliance Report" in content
        assert "Status Breakdown" in content

    def test_generated_at_is_window_end(self, entries):
        """Replaying the same window gives the same report content."""
        first = generate_report(entries, "violation_summary", "24h", now=NOW)
        second = generate_report(entries, "violation_summary", "24h", now=NOW)

        assert first.generated_at == NOW
        first_dict, second_dict = first.to_dict(), second.to_dict()
        first_dict.pop("report_id")
        second_dict.pop("report_id")
        assert first_dict == second_dict


# ============================================================================
# Funnel and executive summary
# ============================================================================

def stage_entry(index, process_type, rates, size, score, significant=()):
    """Audit entry whose analysis carries gender selection rates per group."""
    parity_ratio = min(rates.values()) / max(rates.values())
    metrics = {
        "families": {
            "demographic_parity": {
                "score": parity_ratio,
                "comparisons": {
                    "gender": {"group_values": dict(rates), "group_sizes": {g: size for g in rates}},
                },
            },
        },
        "statistical_significance": {
            attribute: {"is_significant": True} for attribute in significant
        },
    }
    return AuditTrailEntry(
        monitoring_id=f"mon_{index}",
        process_id=f"P-{index}",
        process_type=process_type,
        analysis={"overall_bias_score": score, "fairness_metrics": metrics},
        violations=(),
        compliance_status="compliant",
        overall_bias_score=score,
        threshold_version=1,
        timestamp=NOW - timedelta(hours=index),
        processing_time_ms=5.0,
    )


@pytest.fixture
def funnel_entries():
    """Screening halves the female pass rate; interviews are balanced."""
    return [
        stage_entry(1, "application_review", {"male": 0.6, "female": 0.3}, 500, score=0.5,
                    significant=["gender"]),
        stage_entry(2, "interview_scheduling", {"male": 0.4, "female": 0.4}, 200, score=0.2),
    ]


class TestFunnelAndExecutiveReports:
    """Tests for the hiring funnel and executive summary reports."""

    def test_funnel_stages_in_process_order(self, funnel_entries):
        """Stages, totals and drop-off follow screening -> interview."""
        body = generate_report(funnel_entries, "funnel_analysis", "24h", now=NOW).body

        assert [s["stage"] for s in body["stages"]] == ["screening", "interview"]
        assert [s["total_candidates"] for s in body["stages"]] == [1000, 400]
        assert body["dropoff_rates"] == {"interview": pytest.approx(0.6)}

        screening = body["stages"][0]["attributes"]["gender"]
        assert screening["pass_rates"] == {"female": pytest.approx(0.3), "male": pytest.approx(0.6)}
        assert screening["stage_bias"] == pytest.approx(0.5)
        assert screening["p_value"] < 0.05

    def test_funnel_flags_only_biased_stage(self, funnel_entries):
        """A significant 0.5 stage bias is a medium indicator on the lower group."""
        body = generate_report(funnel_entries, "funnel_analysis", "24h", now=NOW).body

        assert len(body["bias_indicators"]) == 1
        indicator = body["bias_indicators"][0]
        assert indicator["stage"] == "screening"
        assert indicator["affected_group"] == "female"
        assert indicator["severity"] == "medium"
        assert indicator["recommendation"] == "Implement blind resume screening"

    def test_funnel_ignores_entries_without_metrics(self, entries):
        """Entries recorded without fairness metrics add no stages."""
        body = generate_report(entries, "funnel_analysis", "24h", now=NOW).body
        assert body == {"stages": [], "dropoff_rates": {}, "bias_indicators": []}

    def test_executive_summary_needs_attention(self, funnel_entries):
        """Findings, status and action items dated from the window end."""
        body = generate_report(funnel_entries, "executive_summary", "24h", now=NOW).body

        assert body["overview"]["overall_fairness"] == pytest.approx(0.65)
        assert body["overview"]["mean_parity_ratio"] == pytest.approx(0.75)
        assert body["overview"]["compliance_status"] == "needs_attention"
        assert len(body["key_findings"]) == 3

        items = {item["category"]: item for item in body["action_items"]}
        assert set(items) == {"process", "policy", "training"}
        assert items["process"]["priority"] == "medium"
        assert items["policy"]["owner"] == "HR Director"
        assert items["policy"]["due_date"] == (NOW + timedelta(days=14)).isoformat()
        assert items["training"]["due_date"] == (NOW + timedelta(days=60)).isoformat()

    def test_executive_summary_compliant(self):
        """Low scores without significant findings need no action."""
        balanced = [
            stage_entry(1, "hiring_decision", {"male": 0.5, "female": 0.5}, 100, score=0.05),
            stage_entry(2, "matching", {"male": 0.4, "female": 0.38}, 100, score=0.1),
        ]
        body = generate_report(balanced, "executive_summary", "24h", now=NOW).body

        assert body["overview"]["compliance_status"] == "compliant"
        assert body["key_findings"] == []
        assert body["action_items"] == []

    def test_executive_summary_non_compliant(self):
        """Average fairness below 0.6 is non-compliant."""
        biased = [stage_entry(1, "hiring_decision", {"male": 0.8, "female": 0.3}, 100, score=0.7)]
        body = generate_report(biased, "executive_summary", "24h", now=NOW).body

        assert body["overview"]["compliance_status"] == "non_compliant"

    def test_executive_markdown_export(self, funnel_entries, tmp_path):
        """Action items are exported as a table."""
        report = generate_report(funnel_entries, "executive_summary", "24h", now=NOW)
        content = Path(save_report(report, tmp_path)).read_text(encoding="utf-8")

        assert "# Executive Summary Report" in content
        assert "## Action Items" in content
        assert "| priority | category |" in content
