"""Measurement Module Source - Statistical tests and fairness metrics"""

# Use relative imports (dot notation) since we're inside the package
from .fairness_calculator import (
    FairnessMetricsCalculator,
    calculate_fairness_metrics,
    subjects_from_dataframe,
)
from .metrics_engine import (
    demographic_parity,
    equalized_odds,
    predictive_equality,
    treatment_equality,
    disparate_impact,
    classify_parity_severity,
)
from .statistical_tests import (
    ContingencyTable,
    chi_square_test,
    fisher_exact_test,
    welch_t_test,
    cohens_h,
    cramers_v,
)
from .distributions import (
    normal_cdf,
    chi_square_sf,
    student_t_cdf,
    student_t_critical,
)

__all__ = [
    'FairnessMetricsCalculator',
    'calculate_fairness_metrics',
    'subjects_from_dataframe',
    'demographic_parity',
    'equalized_odds',
    'predictive_equality',
    'treatment_equality',
    'disparate_impact',
    'classify_parity_severity',
    'ContingencyTable',
    'chi_square_test',
    'fisher_exact_test',
    'welch_t_test',
    'cohens_h',
    'cramers_v',
    'normal_cdf',
    'chi_square_sf',
    'student_t_cdf',
    'student_t_critical',
]
