"""
Constants for the fairness statistical engine.
Central location for metric definitions, legal thresholds, and monitoring defaults.
"""

# Metric families evaluated for every hiring process batch
FAIRNESS_METRICS = {
    "demographic_parity": {
        "name": "Demographic Parity",
        "description": "Ratio of lowest to highest selection rate across groups",
        "formula": "min_g P(Y=1|A=g) / max_g P(Y=1|A=g)",
    },
    "equalized_odds": {
        "name": "Equalized Odds",
        "description": "Largest gap in true- or false-positive rates between groups",
        "formula": "max(max_g TPR - min_g TPR, max_g FPR - min_g FPR)",
    },
    "predictive_equality": {
        "name": "Predictive Equality",
        "description": "Gap in false-positive (or rejection) rates between groups",
        "formula": "max_g FPR - min_g FPR",
    },
    "treatment_equality": {
        "name": "Treatment Equality",
        "description": "Consistency of process treatment (timing, error balance) across groups",
        "formula": "max normalised covariate gap, FN/(FN+FP) gap",
    },
    "disparate_impact": {
        "name": "Disparate Impact",
        "description": "Group selection rate relative to the most-selected group",
        "formula": "P(Y=1|A=g) / max_g P(Y=1|A=g)",
    },
}

# Overall score weights (favour the two legally grounded families)
FAIRNESS_WEIGHTS = {
    "demographic_parity": 0.25,
    "equalized_odds": 0.25,
    "predictive_equality": 0.20,
    "treatment_equality": 0.15,
    "disparate_impact": 0.15,
}

# Four-fifths (80%) rule and severity escalation
FOUR_FIFTHS_THRESHOLD = 0.8
PARITY_SEVERITY_CUTOFFS = {
    "critical": 0.6,
    "major": 0.7,
    "moderate": 0.8,
}
# Bias score of a ratio just under four-fifths; rises one for one below it
FOUR_FIFTHS_BIAS_SCORE = 0.3
# Cohen's h alone stays below the default critical score
EFFECT_SIZE_SCORE_CAP = 0.45

# Gap thresholds used by the calculator to flag family violations
FAMILY_DIFFERENCE_THRESHOLDS = {
    "equalized_odds": 0.15,
    "predictive_equality": 0.15,
    "treatment_equality": 0.20,
}

LEGAL_IMPLICATIONS = [
    "EEOC compliance risk",
    "Potential discrimination claim",
]

# Statistical validation parameters
DEFAULT_CONFIDENCE_LEVEL = 0.95
SIGNIFICANCE_LEVEL = 0.05
MIN_SAMPLE_SIZE = 30  # Minimum subjects for any analysis
MIN_GROUP_SIZE = 30  # Groups below this reduce confidence
MIN_EXPECTED_CELL_COUNT = 5  # Chi-square approximation reliability
MIN_INTERSECTION_SIZE = 10
PATTERN_RATE_GAP = 0.2  # Selection-rate gap reported as a detected pattern

# Informational metrics (calibration, individual and counterfactual fairness)
INFORMATIONAL_COMPLIANCE_CUTOFFS = {
    "compliant": 0.8,
    "requires_monitoring": 0.6,
}
CALIBRATION_BINS = 10
MIN_CALIBRATION_GROUP_SIZE = 10
CONSISTENCY_NEIGHBOURS = 5
COUNTERFACTUAL_MAX_DISTANCE = 0.5  # RMS gap per standardised feature

# Effect size thresholds (Cohen's h interpretation)
EFFECT_SIZE_THRESHOLDS = {
    "negligible": 0.2,
    "small": 0.5,
    "medium": 0.8,
}

# Default monitoring thresholds (overall bias score and per-metric cutoffs)
DEFAULT_THRESHOLDS = {
    "warning": 0.3,
    "critical": 0.5,
    "demographic_parity": 0.2,
    "equalized_odds": 0.15,
    "effect_size": 0.3,
}

# Protected attributes looked up on incoming records
PROTECTED_ATTRIBUTES = ["gender", "ethnicity", "age_band", "disability_status", "veteran_status"]

# Process types and how they are read from a batch
PROCESS_TYPES = {
    "application_review": {
        "collection": "applications",
        "stage": "screening",
        "covariates": ["review_time_hours"],
    },
    "interview_scheduling": {
        "collection": "interviews",
        "stage": "interview",
        "covariates": ["scheduling_delay_days"],
    },
    "hiring_decision": {
        "collection": "decisions",
        "stage": "decision",
        "covariates": ["decision_time_days"],
    },
    "matching": {
        "collection": "matches",
        "stage": "matching",
        "covariates": ["match_score"],
    },
}

# Alert severities, lowest first
SEVERITY_LEVELS = ["low", "medium", "high", "critical"]
SEVERITY_RANK = {level: rank for rank, level in enumerate(SEVERITY_LEVELS)}

# Four-fifths severity vocabulary mapped onto alert severities
PARITY_TO_ALERT_SEVERITY = {
    "moderate": "medium",
    "major": "high",
    "critical": "critical",
}

COMPLIANCE_STATUSES = ["compliant", "violation_detected", "non_compliant"]

# Dashboard / report windows in seconds
TIME_RANGES = {
    "1h": 3600,
    "24h": 86400,
    "7d": 7 * 86400,
    "30d": 30 * 86400,
}

REPORT_TYPES = [
    "compliance",
    "trend_analysis",
    "violation_summary",
    "process_performance",
    "funnel_analysis",
    "executive_summary",
]

# Monitoring configuration
MONITORING_DEFAULTS = {
    "sweep_interval_seconds": 900,
    "daily_report_interval_seconds": 86400,
    "weekly_report_interval_seconds": 7 * 86400,
    "realtime_cache_ttl_seconds": 300,
    "metrics_cache_ttl_seconds": 86400,
    "cache_max_entries": 1000,
    "cache_backend": "memory",
    "redis_url": "redis://localhost:6379/0",
    "redis_key_prefix": "fairness:",
    "persistence_retry_attempts": 3,
    "persistence_backoff_seconds": 0.5,
    "persistence_backoff_max_seconds": 8.0,
    "offload_min_subjects": 5000,
    "max_concurrent_evaluations": 8,
    "recent_results_limit": 50,
    "critical_alert_assignee": "compliance_admin",
}

CACHE_BACKENDS = ["memory", "redis"]

# File paths (relative to project root)
DEFAULT_PATHS = {
    "config": "config.yml",
    "logs": "logs/",
    "reports": "reports/",
}
