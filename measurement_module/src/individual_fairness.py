"""
Individual Fairness - Similar candidates should get similar outcomes.

Both measures work in a standardised feature space built from the
candidates' qualification features (experience, skills match, ...):

- Consistency: 1 - mean |outcome - mean outcome of the k nearest
  neighbours|, over all subjects.
- Counterfactual consistency: every subject is matched with its nearest
  neighbour in each other group of a protected attribute. Among pairs
  closer than max_distance, the share with the same outcome is the
  attribute's consistency. This is a matching approximation, not a causal
  model.

Results are informational and carry no weight in the overall score.
"""

import math
from typing import Dict, List, Optional

import numpy as np
from sklearn.neighbors import NearestNeighbors
from sklearn.preprocessing import StandardScaler

from shared.constants import CONSISTENCY_NEIGHBOURS, COUNTERFACTUAL_MAX_DISTANCE
from shared.logging import get_logger
from shared.schemas import CounterfactualSummary, IndividualFairnessSummary
from measurement_module.src.metrics_engine import AttributeGroups, assess_compliance

logger = get_logger(__name__)


def standardise(features: np.ndarray) -> np.ndarray:
    """Zero mean, unit variance per column (constant columns stay at zero)."""
    return StandardScaler().fit_transform(np.asarray(features, dtype=float))


def consistency_score(
    features: np.ndarray,
    outcomes: np.ndarray,
    feature_names: List[str],
    neighbours: int = CONSISTENCY_NEIGHBOURS,
) -> Optional[IndividualFairnessSummary]:
    """
    k-nearest-neighbour outcome consistency.

    Args:
        features: (n_subjects, n_features) matrix
        outcomes: Boolean outcome per subject
        feature_names: Column names, recorded on the result
        neighbours: k

    Returns:
        IndividualFairnessSummary, or None with k or fewer subjects
    """
    n = len(outcomes)
    if n <= neighbours:
        logger.debug(f"Consistency needs more than {neighbours} subjects, got {n}")
        return None

    scaled = standardise(features)
    index = NearestNeighbors(n_neighbors=neighbours).fit(scaled)
    # Without a query the fitted points are not their own neighbours
    _, neighbour_idx = index.kneighbors()

    y = np.asarray(outcomes, dtype=float)
    consistency = 1.0 - float(np.mean(np.abs(y - y[neighbour_idx].mean(axis=1))))
    return IndividualFairnessSummary(
        consistency=consistency,
        neighbours=neighbours,
        features=list(feature_names),
        subjects_evaluated=n,
        compliance_status=assess_compliance(consistency),
    )


def counterfactual_consistency(
    attribute_groups: AttributeGroups,
    features: np.ndarray,
    outcomes: np.ndarray,
    max_distance: float = COUNTERFACTUAL_MAX_DISTANCE,
) -> CounterfactualSummary:
    """
    Outcome agreement between cross-group matched pairs.

    Distances are root-mean-square differences per standardised feature,
    so max_distance does not depend on the number of features.

    Returns:
        CounterfactualSummary; score is None when no attribute had a
        matched pair
    """
    scaled = standardise(features)
    scale = math.sqrt(scaled.shape[1])
    y = np.asarray(outcomes, dtype=bool)

    consistency: Dict[str, float] = {}
    pairs: Dict[str, int] = {}
    for attribute in sorted(attribute_groups):
        groups = attribute_groups[attribute]
        agree = 0
        matched = 0
        for group in sorted(set(groups.tolist())):
            inside = groups == group
            outside = ~inside
            if not outside.any():
                continue
            index = NearestNeighbors(n_neighbors=1).fit(scaled[inside])
            distances, nearest = index.kneighbors(scaled[outside])
            close = distances[:, 0] / scale <= max_distance
            matched_outcomes = y[inside][nearest[close, 0]]
            agree += int((matched_outcomes == y[outside][close]).sum())
            matched += int(close.sum())

        pairs[attribute] = matched
        if matched:
            consistency[attribute] = agree / matched
        else:
            logger.debug(f"{attribute}: no cross-group pair within distance {max_distance}")

    score = float(np.mean(list(consistency.values()))) if consistency else None
    return CounterfactualSummary(
        attribute_consistency=consistency,
        matched_pairs=pairs,
        score=score,
        max_distance=max_distance,
        compliance_status=assess_compliance(score) if score is not None else None,
    )
