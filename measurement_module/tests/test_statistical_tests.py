"""
Tests for the statistical test library.

Covers distribution approximations, contingency tables, chi-square,
Fisher's exact test, Welch's t-test and effect sizes. Results are checked
against scipy reference implementations where one exists.
"""

import math

import pytest
import numpy as np
from scipy import stats

from measurement_module.src.distributions import (
    NORMAL_CDF_MAX_ERROR,
    chi_square_sf,
    normal_cdf,
    normal_quantile,
    student_t_cdf,
    student_t_critical,
    two_sided_z_critical,
)
from measurement_module.src.statistical_tests import (
    ContingencyTable,
    chi_square_test,
    cohens_h,
    cramers_v,
    fisher_exact_test,
    interpret_effect_size,
    welch_t_test,
)
from measurement_module.src.exceptions import (
    DegenerateSampleError,
    DegenerateTableError,
    InsufficientSampleError,
    ValidationError,
)


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def unequal_samples():
    """Two samples with different means and variances."""
    np.random.seed(42)
    a = np.random.normal(10.0, 2.0, 40)
    b = np.random.normal(11.5, 4.0, 25)
    return a, b


# ============================================================================
# Distribution approximations
# ============================================================================

class TestNormalCDF:
    """Tests for the rational normal CDF approximation."""

    def test_center(self):
        """CDF at zero is one half."""
        assert normal_cdf(0.0) == pytest.approx(0.5, abs=1e-7)

    def test_error_bound_against_scipy(self):
        """Approximation stays within the documented error bound."""
        grid = np.linspace(-6, 6, 241)
        errors = [abs(normal_cdf(x) - stats.norm.cdf(x)) for x in grid]
        assert max(errors) < NORMAL_CDF_MAX_ERROR

    def test_symmetry(self):
        """Phi(-x) = 1 - Phi(x)."""
        for x in [0.3, 1.0, 1.96, 3.5]:
            assert normal_cdf(-x) == pytest.approx(1 - normal_cdf(x), abs=1e-12)

    def test_rejects_non_finite(self):
        """NaN input raises instead of propagating."""
        with pytest.raises(ValidationError):
            normal_cdf(float("nan"))

    def test_quantile_and_critical_value(self):
        """Quantile inverts the CDF; 95% two-sided z is 1.96."""
        assert two_sided_z_critical(0.95) == pytest.approx(1.959964, abs=1e-5)
        assert normal_cdf(normal_quantile(0.9)) == pytest.approx(0.9, abs=1e-6)

    def test_quantile_rejects_boundaries(self):
        """p must be strictly inside (0, 1)."""
        with pytest.raises(ValidationError):
            normal_quantile(1.0)


class TestChiSquareTail:
    """Tests for the chi-square survival function."""

    @pytest.mark.parametrize("statistic,dof", [(0.5, 1), (3.84, 1), (10.0, 3), (25.0, 4), (80.0, 2)])
    def test_matches_scipy(self, statistic, dof):
        """Incomplete-gamma tail matches scipy.stats.chi2.sf."""
        assert chi_square_sf(statistic, dof) == pytest.approx(stats.chi2.sf(statistic, dof), rel=1e-9)

    def test_zero_statistic(self):
        """A zero statistic has p-value 1."""
        assert chi_square_sf(0.0, 2) == 1.0

    def test_invalid_degrees_of_freedom(self):
        """Non-positive degrees of freedom raise."""
        with pytest.raises(ValidationError):
            chi_square_sf(1.0, 0)


class TestStudentT:
    """Tests for Student-t CDF and critical values."""

    @pytest.mark.parametrize("t,dof", [(-2.5, 3), (0.0, 10), (1.2, 7.5), (3.0, 40)])
    def test_cdf_matches_scipy(self, t, dof):
        """Incomplete-beta CDF matches scipy.stats.t.cdf."""
        assert student_t_cdf(t, dof) == pytest.approx(stats.t.cdf(t, dof), abs=1e-10)

    def test_critical_value(self):
        """t* for df=10 at 95% is 2.228."""
        assert student_t_critical(10, 0.95) == pytest.approx(2.228139, abs=1e-5)

    def test_critical_value_rejects_bad_confidence(self):
        """Confidence level outside (0, 1) raises."""
        with pytest.raises(ValidationError):
            student_t_critical(10, 1.5)


# ============================================================================
# Contingency tables
# ============================================================================

class TestContingencyTable:
    """Tests for ContingencyTable construction."""

    def test_from_outcomes_sorted_rows(self):
        """Rows follow sorted group labels with (selected, not_selected) columns."""
        table = ContingencyTable.from_outcomes(
            ["b", "a", "b", "a", "a"], [True, False, False, True, True]
        )
        assert table.row_labels == ("a", "b")
        assert table.counts == ((2, 1), (1, 1))
        assert table.row_totals == (3, 2)
        assert table.column_totals == (3, 2)
        assert table.total == 5

    def test_negative_cell_rejected(self):
        """Negative counts are invalid."""
        with pytest.raises(ValidationError):
            ContingencyTable.from_counts([[1, -1], [2, 3]])

    def test_ragged_rows_rejected(self):
        """Rows of different lengths are invalid."""
        with pytest.raises(ValidationError):
            ContingencyTable.from_counts([[1, 2], [3]])

    def test_to_dict(self):
        """Serialised table carries totals."""
        data = ContingencyTable.from_counts([[1, 2], [3, 4]]).to_dict()
        assert data["total"] == 10
        assert data["row_totals"] == [3, 7]


# ============================================================================
# Chi-square test
# ============================================================================

class TestChiSquareTest:
    """Tests for the chi-square independence test."""

    def test_significant_table(self):
        """[[50, 50], [10, 90]] is significant."""
        result = chi_square_test([[50, 50], [10, 90]])
        assert result.is_significant is True
        assert result.p_value < 0.05
        assert result.degrees_of_freedom == 1

    def test_matches_scipy(self):
        """Statistic and p-value match scipy without continuity correction."""
        table = [[30, 20, 10], [15, 25, 30]]
        result = chi_square_test(table)
        chi2, p, dof, expected = stats.chi2_contingency(table, correction=False)
        assert result.statistic == pytest.approx(chi2, rel=1e-9)
        assert result.p_value == pytest.approx(p, rel=1e-7)
        assert result.degrees_of_freedom == dof
        np.testing.assert_allclose(np.asarray(result.expected), expected)

    def test_independent_table_not_significant(self):
        """Proportional rows give statistic 0 and p-value 1."""
        result = chi_square_test([[20, 30], [40, 60]])
        assert result.statistic == pytest.approx(0.0, abs=1e-12)
        assert result.p_value == pytest.approx(1.0)
        assert result.is_significant is False

    def test_low_expected_counts_flagged(self):
        """Expected counts below 5 are counted, not silently trusted."""
        result = chi_square_test([[3, 2], [1, 4]])
        assert result.low_expected_cells == 4
        assert result.is_reliable is False

    def test_single_group_raises(self):
        """A single row cannot be tested."""
        with pytest.raises(DegenerateTableError):
            chi_square_test([[10, 5]])

    def test_all_zero_raises(self):
        """An all-zero table raises."""
        with pytest.raises(DegenerateTableError):
            chi_square_test([[0, 0], [0, 0]])

    def test_empty_outcome_column_raises(self):
        """An outcome never observed makes expected counts zero."""
        with pytest.raises(DegenerateTableError):
            chi_square_test([[10, 0], [20, 0]])


# ============================================================================
# Fisher's exact test
# ============================================================================

class TestFisherExactTest:
    """Tests for Fisher's exact test."""

    def test_balanced_table(self):
        """[[10, 10], [10, 10]] has odds ratio 1 and is not significant."""
        result = fisher_exact_test([[10, 10], [10, 10]])
        assert result.odds_ratio == 1.0
        assert result.is_significant is False
        assert result.p_value == pytest.approx(1.0)
        assert result.ratio_status == "defined"

    def test_p_value_matches_scipy(self):
        """Two-sided p-value matches scipy.stats.fisher_exact."""
        table = [[8, 2], [1, 5]]
        result = fisher_exact_test(table)
        _, expected_p = stats.fisher_exact(table, alternative="two-sided")
        assert result.p_value == pytest.approx(expected_p, rel=1e-6)
        assert result.odds_ratio == pytest.approx(20.0)

    def test_log_scale_interval(self):
        """Interval is exp(log OR ± 1.96·SE) and contains the odds ratio."""
        a, b, c, d = 12, 5, 6, 14
        result = fisher_exact_test([[a, b], [c, d]])
        se = math.sqrt(1 / a + 1 / b + 1 / c + 1 / d)
        log_or = math.log(a * d / (b * c))
        lower, upper = result.confidence_interval
        assert lower == pytest.approx(math.exp(log_or - 1.959964 * se), rel=1e-5)
        assert upper == pytest.approx(math.exp(log_or + 1.959964 * se), rel=1e-5)
        assert lower < result.odds_ratio < upper

    def test_zero_off_diagonal_is_undefined_ratio(self):
        """b = 0 yields an explicit undefined ratio, not a division error."""
        result = fisher_exact_test([[7, 0], [3, 6]])
        assert result.odds_ratio is None
        assert result.confidence_interval is None
        assert result.ratio_status == "undefined_ratio"
        assert 0.0 <= result.p_value <= 1.0

    def test_zero_diagonal_has_no_interval(self):
        """a = 0 gives odds ratio 0 without a log-scale interval."""
        result = fisher_exact_test([[0, 5], [5, 5]])
        assert result.odds_ratio == 0.0
        assert result.confidence_interval is None
        assert result.ratio_status == "undefined_interval"

    def test_requires_2x2(self):
        """Larger tables are rejected."""
        with pytest.raises(ValidationError):
            fisher_exact_test([[1, 2, 3], [4, 5, 6]])

    def test_all_zero_raises(self):
        """All-zero tables raise."""
        with pytest.raises(DegenerateTableError):
            fisher_exact_test([[0, 0], [0, 0]])


# ============================================================================
# Welch's t-test
# ============================================================================

class TestWelchTTest:
    """Tests for Welch's unequal-variance t-test."""

    def test_matches_scipy(self, unequal_samples):
        """Statistic and p-value match scipy.stats.ttest_ind(equal_var=False)."""
        a, b = unequal_samples
        result = welch_t_test(a, b)
        reference = stats.ttest_ind(a, b, equal_var=False)
        assert result.statistic == pytest.approx(reference.statistic, rel=1e-9)
        assert result.p_value == pytest.approx(reference.pvalue, rel=1e-7)

    def test_welch_satterthwaite_dof(self, unequal_samples):
        """Degrees of freedom follow the Welch-Satterthwaite formula."""
        a, b = unequal_samples
        va, vb = a.var(ddof=1) / len(a), b.var(ddof=1) / len(b)
        expected = (va + vb) ** 2 / (va ** 2 / (len(a) - 1) + vb ** 2 / (len(b) - 1))
        assert welch_t_test(a, b).degrees_of_freedom == pytest.approx(expected)

    def test_interval_contains_difference(self, unequal_samples):
        """Confidence interval brackets the mean difference."""
        a, b = unequal_samples
        result = welch_t_test(a, b)
        lower, upper = result.confidence_interval
        assert lower < result.mean_difference < upper

    def test_insufficient_sample(self):
        """A sample of size 1 raises InsufficientSampleError."""
        with pytest.raises(InsufficientSampleError):
            welch_t_test([1.0], [1.0, 2.0, 3.0])

    def test_zero_variance_raises(self):
        """Two constant samples have no standard error."""
        with pytest.raises(DegenerateSampleError):
            welch_t_test([2.0, 2.0, 2.0], [5.0, 5.0])

    def test_one_constant_sample_is_fine(self):
        """Only one constant sample still yields a finite result."""
        result = welch_t_test([2.0, 2.0, 2.0], [4.0, 5.0, 6.0])
        assert math.isfinite(result.statistic)
        assert math.isfinite(result.p_value)


# ============================================================================
# Effect sizes
# ============================================================================

class TestEffectSizes:
    """Tests for Cohen's h and Cramér's V."""

    def test_cohens_h_zero_for_equal_rates(self):
        """Equal proportions have h = 0."""
        assert cohens_h(0.4, 0.4) == 0.0

    def test_cohens_h_symmetric(self):
        """h does not depend on argument order."""
        assert cohens_h(0.6, 0.42) == pytest.approx(cohens_h(0.42, 0.6))
        assert cohens_h(0.6, 0.42) == pytest.approx(0.3618, abs=1e-3)

    def test_cohens_h_rejects_non_proportions(self):
        """Values outside [0, 1] raise."""
        with pytest.raises(ValidationError):
            cohens_h(1.2, 0.5)

    def test_cramers_v(self):
        """V = sqrt(chi2 / (n (k - 1)))."""
        assert cramers_v(25.0, 100, (2, 2)) == pytest.approx(0.5)

    def test_interpretation(self):
        """Interpretation bands follow Cohen's conventions."""
        assert interpret_effect_size(0.1) == "negligible"
        assert interpret_effect_size(0.3) == "small"
        assert interpret_effect_size(0.6) == "medium"
        assert interpret_effect_size(1.0) == "large"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
