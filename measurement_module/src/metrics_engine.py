"""
Metrics Engine - Core fairness metric families.

Implements the five families evaluated for every hiring batch:
demographic parity, equalized odds, predictive equality, treatment
equality and disparate impact. Each family returns a MetricFamilyResult
with one GroupComparison per protected attribute.

Groups are always processed in sorted order so results are deterministic.
A group whose denominator is zero is excluded (and listed), never turned
into NaN.

Without ground-truth labels, equalized odds and predictive equality can
only restate the selection-rate gap. They are still reported (basis
'selection_proxy') but raise no violations and carry no weight in the
overall score; demographic parity already covers that disparity.
"""

from typing import Dict, List, Optional, Tuple

import numpy as np
from sklearn.metrics import confusion_matrix

from shared.constants import (
    FAMILY_DIFFERENCE_THRESHOLDS,
    FOUR_FIFTHS_BIAS_SCORE,
    FOUR_FIFTHS_THRESHOLD,
    INFORMATIONAL_COMPLIANCE_CUTOFFS,
    LEGAL_IMPLICATIONS,
    MIN_INTERSECTION_SIZE,
    PARITY_SEVERITY_CUTOFFS,
)
from shared.logging import get_logger
from shared.schemas import (
    GroupComparison,
    IntersectionalSummary,
    MetricFamilyResult,
    MetricViolation,
)
from shared.validation import safe_divide
from measurement_module.src.exceptions import (
    DegenerateSampleError,
    InsufficientSampleError,
)
from measurement_module.src.statistical_tests import welch_t_test

logger = get_logger(__name__)

AttributeGroups = Dict[str, np.ndarray]

SELECTION_PROXY = "selection_proxy"


def classify_parity_severity(ratio: float) -> Optional[str]:
    """
    Four-fifths severity for a selection-rate ratio.

    Returns:
        'critical' (<0.6), 'major' (<0.7), 'moderate' (<0.8) or None
    """
    if ratio < PARITY_SEVERITY_CUTOFFS["critical"]:
        return "critical"
    if ratio < PARITY_SEVERITY_CUTOFFS["major"]:
        return "major"
    if ratio < PARITY_SEVERITY_CUTOFFS["moderate"]:
        return "moderate"
    return None


def parity_bias_score(ratio: float) -> float:
    """
    Bias score implied by a selection-rate ratio, independent of the base rate.

    Above the four-fifths line the score is the shortfall 1 - ratio (at
    most 0.2). Below it the score starts at FOUR_FIFTHS_BIAS_SCORE and
    grows with the shortfall, so the ratio ladder maps onto the score
    bands: 0.7 -> 0.4, 0.6 -> 0.5, capped at 1.
    """
    if ratio >= FOUR_FIFTHS_THRESHOLD:
        return max(0.0, 1.0 - ratio)
    return min(1.0, FOUR_FIFTHS_BIAS_SCORE + (FOUR_FIFTHS_THRESHOLD - ratio))


def classify_difference_severity(difference: float, threshold: float) -> Optional[str]:
    """'high' beyond twice the threshold, 'medium' beyond it, else None."""
    if difference > 2 * threshold:
        return "high"
    if difference > threshold:
        return "medium"
    return None


def assess_compliance(score: float) -> str:
    """Status of an informational score: compliant, requires_monitoring or requires_intervention."""
    if score >= INFORMATIONAL_COMPLIANCE_CUTOFFS["compliant"]:
        return "compliant"
    if score >= INFORMATIONAL_COMPLIANCE_CUTOFFS["requires_monitoring"]:
        return "requires_monitoring"
    return "requires_intervention"


def compute_group_counts(
    groups: np.ndarray,
    outcomes: np.ndarray,
    labels: Optional[np.ndarray] = None,
) -> Dict[str, Dict[str, int]]:
    """
    Count subjects, selections and (with labels) confusion cells per group.

    Args:
        groups: Group label per subject
        outcomes: Boolean outcome per subject
        labels: Optional boolean ground truth per subject

    Returns:
        Dictionary mapping group -> counts

    Example:
        {
            'female': {'n': 300, 'selected': 126, 'tp': 90, 'fp': 36, 'fn': 30, 'tn': 144},
            'male': {'n': 700, 'selected': 420, ...}
        }
    """
    counts = {}
    for group in sorted(set(groups.tolist())):
        mask = groups == group
        group_outcomes = outcomes[mask]
        entry = {
            "n": int(mask.sum()),
            "selected": int(group_outcomes.sum()),
        }
        if labels is not None:
            cm = confusion_matrix(
                labels[mask].astype(int), group_outcomes.astype(int), labels=[0, 1]
            )
            tn, fp, fn, tp = (int(v) for v in cm.ravel())
            entry.update({"tp": tp, "fp": fp, "fn": fn, "tn": tn})
        counts[group] = entry
    return counts


def selection_rates(counts: Dict[str, Dict[str, int]]) -> Dict[str, Optional[float]]:
    return {g: safe_divide(c["selected"], c["n"], default=None) for g, c in counts.items()}


def compare_groups(
    attribute: str,
    values: Dict[str, Optional[float]],
    sizes: Dict[str, int],
    details: Optional[Dict] = None,
) -> Optional[GroupComparison]:
    """
    Summarise per-group values as max/min groups, gap and min/max ratio.

    Groups with a None value are excluded. Returns None when fewer than two
    groups remain. When every remaining value is zero the ratio is 1.0
    (the groups are equal).
    """
    usable = {g: float(v) for g, v in sorted(values.items()) if v is not None}
    excluded = sorted(g for g, v in values.items() if v is None)
    if len(usable) < 2:
        return None

    max_group = max(usable, key=usable.get)
    min_group = min(usable, key=usable.get)
    high, low = usable[max_group], usable[min_group]
    ratio = 1.0 if high == 0 else low / high

    return GroupComparison(
        attribute=attribute,
        group_values=usable,
        group_sizes={g: int(sizes.get(g, 0)) for g in sorted(values)},
        max_group=max_group,
        min_group=min_group,
        max_difference=high - low,
        ratio=ratio,
        excluded_groups=excluded,
        details=details or {},
    )


def _not_evaluable(family: str, notes: List[str]) -> MetricFamilyResult:
    return MetricFamilyResult(
        family=family,
        score=None,
        evaluable=False,
        basis="not_evaluable",
        notes=notes,
    )


# ============================================================================
# Demographic parity / disparate impact
# ============================================================================

def demographic_parity(
    attribute_groups: AttributeGroups,
    outcomes: np.ndarray,
) -> MetricFamilyResult:
    """
    Demographic parity via the selection-rate ratio min/max.

    A ratio below 0.8 is a four-fifths violation; severity escalates at
    0.7 (major) and 0.6 (critical). The family score is the lowest ratio
    across attributes.
    """
    comparisons: Dict[str, GroupComparison] = {}
    violations: List[MetricViolation] = []
    notes: List[str] = []

    for attribute in sorted(attribute_groups):
        counts = compute_group_counts(attribute_groups[attribute], outcomes)
        rates = selection_rates(counts)
        comparison = compare_groups(
            attribute, rates, {g: c["n"] for g, c in counts.items()}
        )
        if comparison is None:
            notes.append(f"{attribute}: fewer than two groups, parity not evaluable")
            continue
        if comparison.group_values[comparison.max_group] == 0:
            notes.append(f"{attribute}: no positive outcomes in any group")

        comparisons[attribute] = comparison
        severity = classify_parity_severity(comparison.ratio)
        if severity:
            affected = [
                g for g, rate in comparison.group_values.items()
                if rate < FOUR_FIFTHS_THRESHOLD * comparison.group_values[comparison.max_group]
            ]
            violations.append(MetricViolation(
                family="demographic_parity",
                attribute=attribute,
                severity=severity,
                value=comparison.ratio,
                threshold=FOUR_FIFTHS_THRESHOLD,
                description=(
                    f"Selection rate of '{comparison.min_group}' is "
                    f"{comparison.ratio:.1%} of '{comparison.max_group}' on {attribute} "
                    f"(four-fifths rule requires at least {FOUR_FIFTHS_THRESHOLD:.0%})"
                ),
                affected_groups=affected,
            ))

    if not comparisons:
        return _not_evaluable("demographic_parity", notes)

    return MetricFamilyResult(
        family="demographic_parity",
        score=min(c.ratio for c in comparisons.values()),
        evaluable=True,
        basis="selection_rate",
        comparisons=comparisons,
        violations=violations,
        notes=notes,
    )


def disparate_impact(
    attribute_groups: AttributeGroups,
    outcomes: np.ndarray,
) -> MetricFamilyResult:
    """
    Disparate impact: each group's selection rate relative to the
    most-selected group, read as legal four-fifths compliance.
    """
    comparisons: Dict[str, GroupComparison] = {}
    violations: List[MetricViolation] = []
    notes: List[str] = []

    for attribute in sorted(attribute_groups):
        counts = compute_group_counts(attribute_groups[attribute], outcomes)
        rates = {g: r for g, r in selection_rates(counts).items() if r is not None}
        if len(rates) < 2:
            notes.append(f"{attribute}: fewer than two groups, impact not evaluable")
            continue

        reference_group = max(rates, key=rates.get)
        reference_rate = rates[reference_group]
        impact = {
            g: (1.0 if reference_rate == 0 else rate / reference_rate)
            for g, rate in rates.items()
        }
        comparison = compare_groups(
            attribute,
            impact,
            {g: c["n"] for g, c in counts.items()},
            details={
                "reference_group": reference_group,
                "selection_rates": rates,
                "compliant_groups": sorted(g for g, v in impact.items() if v >= FOUR_FIFTHS_THRESHOLD),
            },
        )
        comparisons[attribute] = comparison

        adverse = sorted(g for g, v in impact.items() if v < FOUR_FIFTHS_THRESHOLD)
        if adverse:
            worst = min(impact[g] for g in adverse)
            violations.append(MetricViolation(
                family="disparate_impact",
                attribute=attribute,
                severity=classify_parity_severity(worst),
                value=worst,
                threshold=FOUR_FIFTHS_THRESHOLD,
                description=(
                    f"Adverse impact on {attribute}: {', '.join(adverse)} selected at "
                    f"{worst:.1%} of the rate of '{reference_group}'"
                ),
                affected_groups=adverse,
                legal_implications=list(LEGAL_IMPLICATIONS),
            ))

    if not comparisons:
        return _not_evaluable("disparate_impact", notes)

    return MetricFamilyResult(
        family="disparate_impact",
        score=min(c.ratio for c in comparisons.values()),
        evaluable=True,
        basis="selection_rate",
        comparisons=comparisons,
        violations=violations,
        notes=notes,
    )


# ============================================================================
# Error-rate families
# ============================================================================

def _rate_views(
    counts: Dict[str, Dict[str, int]],
    use_labels: bool,
) -> Tuple[Dict[str, Optional[float]], Dict[str, Optional[float]]]:
    """True- and false-positive rates per group, or the selection proxy."""
    if use_labels:
        tpr = {g: safe_divide(c["tp"], c["tp"] + c["fn"], default=None) for g, c in counts.items()}
        fpr = {g: safe_divide(c["fp"], c["fp"] + c["tn"], default=None) for g, c in counts.items()}
    else:
        tpr = selection_rates(counts)
        fpr = {g: (None if r is None else 1.0 - r) for g, r in tpr.items()}
    return tpr, fpr


def _difference_family(
    family: str,
    comparisons: Dict[str, GroupComparison],
    notes: List[str],
    basis: str,
) -> MetricFamilyResult:
    if not comparisons:
        return _not_evaluable(family, notes)

    threshold = FAMILY_DIFFERENCE_THRESHOLDS[family]
    violations = []
    scored = basis != SELECTION_PROXY
    if not scored:
        notes.append("no ground-truth labels; selection-rate proxy reported but not scored")
    for attribute, comparison in comparisons.items():
        if not scored:
            continue
        severity = classify_difference_severity(comparison.max_difference, threshold)
        if severity:
            violations.append(MetricViolation(
                family=family,
                attribute=attribute,
                severity=severity,
                value=comparison.max_difference,
                threshold=threshold,
                description=(
                    f"{family.replace('_', ' ').capitalize()} gap of "
                    f"{comparison.max_difference:.3f} on {attribute} between "
                    f"'{comparison.max_group}' and '{comparison.min_group}' "
                    f"exceeds {threshold:.2f}"
                ),
                affected_groups=[comparison.min_group, comparison.max_group],
            ))

    worst = max(c.max_difference for c in comparisons.values())
    return MetricFamilyResult(
        family=family,
        score=1.0 - worst,
        evaluable=True,
        basis=basis,
        comparisons=comparisons,
        violations=violations,
        notes=notes,
    )


def equalized_odds(
    attribute_groups: AttributeGroups,
    outcomes: np.ndarray,
    labels: Optional[np.ndarray] = None,
) -> MetricFamilyResult:
    """
    Equalized odds: largest of the TPR gap and FPR gap across groups.

    Without ground-truth labels the selection rate stands in for TPR and
    the rejection rate for FPR.
    """
    use_labels = labels is not None
    comparisons: Dict[str, GroupComparison] = {}
    notes: List[str] = []

    for attribute in sorted(attribute_groups):
        counts = compute_group_counts(attribute_groups[attribute], outcomes, labels)
        sizes = {g: c["n"] for g, c in counts.items()}
        tpr, fpr = _rate_views(counts, use_labels)

        tpr_cmp = compare_groups(attribute, tpr, sizes)
        fpr_cmp = compare_groups(attribute, fpr, sizes)
        available = [c for c in (tpr_cmp, fpr_cmp) if c is not None]
        if not available:
            notes.append(f"{attribute}: no groups with both positive and negative cases")
            continue

        primary = max(available, key=lambda c: c.max_difference)
        comparisons[attribute] = GroupComparison(
            attribute=attribute,
            group_values=primary.group_values,
            group_sizes=sizes,
            max_group=primary.max_group,
            min_group=primary.min_group,
            max_difference=primary.max_difference,
            ratio=primary.ratio,
            excluded_groups=sorted(set(
                (tpr_cmp.excluded_groups if tpr_cmp else []) +
                (fpr_cmp.excluded_groups if fpr_cmp else [])
            )),
            details={
                "true_positive_rate": tpr_cmp.group_values if tpr_cmp else None,
                "false_positive_rate": fpr_cmp.group_values if fpr_cmp else None,
                "tpr_difference": tpr_cmp.max_difference if tpr_cmp else None,
                "fpr_difference": fpr_cmp.max_difference if fpr_cmp else None,
            },
        )
        if comparisons[attribute].excluded_groups:
            notes.append(
                f"{attribute}: rates undefined for {comparisons[attribute].excluded_groups}"
            )

    return _difference_family(
        "equalized_odds", comparisons, notes,
        "ground_truth" if use_labels else SELECTION_PROXY,
    )


def predictive_equality(
    attribute_groups: AttributeGroups,
    outcomes: np.ndarray,
    labels: Optional[np.ndarray] = None,
) -> MetricFamilyResult:
    """Predictive equality: FPR gap (ground truth) or rejection-rate gap (proxy)."""
    use_labels = labels is not None
    comparisons: Dict[str, GroupComparison] = {}
    notes: List[str] = []

    for attribute in sorted(attribute_groups):
        counts = compute_group_counts(attribute_groups[attribute], outcomes, labels)
        _, fpr = _rate_views(counts, use_labels)
        comparison = compare_groups(attribute, fpr, {g: c["n"] for g, c in counts.items()})
        if comparison is None:
            notes.append(f"{attribute}: false-positive rate undefined for all but one group")
            continue
        if comparison.excluded_groups:
            notes.append(f"{attribute}: rates undefined for {comparison.excluded_groups}")
        comparisons[attribute] = comparison

    return _difference_family(
        "predictive_equality", comparisons, notes,
        "ground_truth" if use_labels else SELECTION_PROXY,
    )


# ============================================================================
# Treatment equality
# ============================================================================

def _normalised_gap(high: float, low: float) -> float:
    scale = max(abs(high), abs(low))
    if scale == 0:
        return 0.0
    return float(np.clip((high - low) / scale, 0.0, 1.0))


def treatment_equality(
    attribute_groups: AttributeGroups,
    outcomes: np.ndarray,
    labels: Optional[np.ndarray] = None,
    covariates: Optional[Dict[str, np.ndarray]] = None,
) -> MetricFamilyResult:
    """
    Treatment equality: consistency of how groups are processed.

    Two components, whichever are available:
    - each process covariate (e.g. decision time): normalised gap between
      the highest and lowest group mean, with a Welch t-test between them
    - with labels: the gap in FN / (FN + FP), the false-negative share of
      each group's errors
    The attribute's gap is the largest component gap.
    """
    covariates = covariates or {}
    if not covariates and labels is None:
        return _not_evaluable(
            "treatment_equality",
            ["no process covariates or ground-truth labels available"],
        )

    comparisons: Dict[str, GroupComparison] = {}
    notes: List[str] = []

    for attribute in sorted(attribute_groups):
        groups = attribute_groups[attribute]
        counts = compute_group_counts(groups, outcomes, labels)
        sizes = {g: c["n"] for g, c in counts.items()}
        components: Dict[str, GroupComparison] = {}
        component_details: Dict[str, Dict] = {}

        for name in sorted(covariates):
            values = covariates[name]
            means = {g: float(values[groups == g].mean()) for g in counts}
            comparison = compare_groups(attribute, means, sizes)
            if comparison is None:
                continue
            gap = _normalised_gap(
                comparison.group_values[comparison.max_group],
                comparison.group_values[comparison.min_group],
            )
            detail = {"group_means": comparison.group_values, "gap": gap, "p_value": None}
            try:
                test = welch_t_test(
                    values[groups == comparison.max_group],
                    values[groups == comparison.min_group],
                )
                detail["p_value"] = test.p_value
                detail["is_significant"] = test.is_significant
            except (InsufficientSampleError, DegenerateSampleError) as e:
                detail["test_note"] = str(e)
            comparison.max_difference = gap
            comparison.ratio = 1.0 - gap
            components[name] = comparison
            component_details[name] = detail

        if labels is not None:
            error_share = {
                g: safe_divide(c["fn"], c["fn"] + c["fp"], default=None)
                for g, c in counts.items()
            }
            comparison = compare_groups(attribute, error_share, sizes)
            if comparison is not None:
                components["error_balance"] = comparison
                component_details["error_balance"] = {
                    "false_negative_share": comparison.group_values,
                    "gap": comparison.max_difference,
                }

        if not components:
            notes.append(f"{attribute}: no component comparable across groups")
            continue

        worst_name = max(sorted(components), key=lambda n: components[n].max_difference)
        worst = components[worst_name]
        worst.details = {"driver": worst_name, "components": component_details}
        comparisons[attribute] = worst

    basis_parts = []
    if covariates:
        basis_parts.append("covariates")
    if labels is not None:
        basis_parts.append("ground_truth")

    return _difference_family(
        "treatment_equality", comparisons, notes, "+".join(basis_parts),
    )


# ============================================================================
# Intersectional view
# ============================================================================

def intersectional_parity(
    attribute_groups: AttributeGroups,
    outcomes: np.ndarray,
    min_group_size: int = MIN_INTERSECTION_SIZE,
) -> Optional[IntersectionalSummary]:
    """
    Selection rates for combined groups keyed 'attr:value|attr:value'.

    Combined groups smaller than min_group_size are excluded. Returns None
    for fewer than two attributes.
    """
    attributes = sorted(attribute_groups)
    if len(attributes) < 2:
        return None

    keys = np.asarray([
        "|".join(f"{a}:{attribute_groups[a][i]}" for a in attributes)
        for i in range(len(outcomes))
    ])
    counts = compute_group_counts(keys, outcomes)

    rates = {}
    excluded = []
    for key, c in counts.items():
        if c["n"] < min_group_size:
            excluded.append(key)
        else:
            rates[key] = c["selected"] / c["n"]

    parity_ratio = None
    if len(rates) >= 2:
        high = max(rates.values())
        parity_ratio = 1.0 if high == 0 else min(rates.values()) / high

    return IntersectionalSummary(
        attributes=attributes,
        group_rates=rates,
        group_sizes={k: c["n"] for k, c in counts.items()},
        parity_ratio=parity_ratio,
        excluded_groups=excluded,
    )
