"""
Process Extraction - Turn a raw process batch into calculator inputs.

Each process type names the collection holding its items, how the
positive outcome is read from an item, the pipeline stage and the timing
covariates used for treatment equality. Model scores and qualification
features, when present, feed the calibration and individual fairness views.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence

from shared.constants import PROCESS_TYPES, PROTECTED_ATTRIBUTES
from shared.logging import get_logger
from shared.schemas import FairnessContext, Subject
from shared.validation import ValidationError
from monitoring_module.src.exceptions import UnsupportedProcessTypeError

logger = get_logger(__name__)

# (field, values counted as a positive outcome)
OUTCOME_RULES = {
    "application_review": ("status", {"accepted", "shortlisted"}),
    "interview_scheduling": ("status", {"scheduled", "completed"}),
    "hiring_decision": ("decision", {"hire", "offer"}),
    "matching": ("selected", {True}),
}

# Model score fields, first match wins; values must lie in [0, 1]
SCORE_FIELDS = ("score", "match_score", "overall_score")

# Top-level qualification fields used as similarity features
FEATURE_FIELDS = ("years_experience", "education_level", "skills_match", "certifications")


@dataclass
class ProcessBatch:
    """Calculator-ready view of one process batch."""

    process_id: str
    process_type: str
    subjects: List[Subject]
    outcomes: List[bool]
    protected_attributes: List[str]
    context: FairnessContext
    skipped_attributes: List[str] = field(default_factory=list)

    @property
    def size(self) -> int:
        return len(self.subjects)


def _candidate_record(item: Mapping[str, Any]) -> Dict[str, Any]:
    """Flatten an item with an optional nested `candidate` record."""
    record = dict(item)
    candidate = item.get("candidate")
    if isinstance(candidate, Mapping):
        for key, value in candidate.items():
            record.setdefault(key, value)
    return record


def _read_outcome(process_type: str, record: Mapping[str, Any]) -> bool:
    explicit = record.get("outcome")
    if isinstance(explicit, bool):
        return explicit

    field_name, positives = OUTCOME_RULES[process_type]
    value = record.get(field_name)
    if isinstance(value, str):
        return value.strip().lower() in positives
    return value in positives


def _read_attributes(record: Mapping[str, Any], candidates: Sequence[str]) -> Dict[str, str]:
    nested = record.get("protected_attributes")
    attributes = {}
    if isinstance(nested, Mapping):
        attributes.update({k: str(v) for k, v in nested.items() if v is not None})
    for name in candidates:
        if name not in attributes and record.get(name) is not None:
            attributes[name] = str(record[name])
    return attributes


def _read_covariates(record: Mapping[str, Any], names: Sequence[str]) -> Dict[str, float]:
    nested = record.get("covariates")
    source = dict(nested) if isinstance(nested, Mapping) else {}
    for name in names:
        if name not in source and name in record:
            source[name] = record[name]

    covariates = {}
    for name, value in source.items():
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            covariates[name] = float(value)
    return covariates


def _read_score(record: Mapping[str, Any]) -> Optional[float]:
    for name in SCORE_FIELDS:
        value = record.get(name)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return float(value)
    return None


def _read_features(record: Mapping[str, Any]) -> Dict[str, float]:
    """Numeric qualification features from a nested `features` mapping and known fields."""
    nested = record.get("features")
    source = dict(nested) if isinstance(nested, Mapping) else {}
    for name in FEATURE_FIELDS:
        if name not in source and name in record:
            source[name] = record[name]
    return {
        name: float(value) for name, value in source.items()
        if isinstance(value, (int, float)) and not isinstance(value, bool)
    }


def extract_subjects(
    process_id: str,
    process_type: str,
    data: Mapping[str, Any],
    protected_attributes: Optional[Sequence[str]] = None,
) -> ProcessBatch:
    """
    Read subjects, outcomes and protected attributes from a process batch.

    Only attributes recorded on every item are analysed; attributes seen on
    some items only are reported in `skipped_attributes`.

    Args:
        process_id: Identifier of the monitored process
        process_type: One of PROCESS_TYPES
        data: Batch payload, e.g. {"decisions": [...]}
        protected_attributes: Attribute names looked up as top-level fields
            (nested `protected_attributes` dicts are always read)

    Returns:
        ProcessBatch (possibly with zero subjects)

    Raises:
        UnsupportedProcessTypeError: Unknown process type
        ValidationError: Malformed batch
    """
    if process_type not in PROCESS_TYPES:
        raise UnsupportedProcessTypeError(
            f"Unsupported process type '{process_type}'. "
            f"Expected one of {sorted(PROCESS_TYPES)}"
        )
    if not isinstance(data, Mapping):
        raise ValidationError(f"Batch for {process_id} must be a mapping, got {type(data).__name__}")

    layout = PROCESS_TYPES[process_type]
    items = data.get(layout["collection"]) or []
    if not isinstance(items, (list, tuple)):
        raise ValidationError(f"'{layout['collection']}' must be a list of records")

    lookup = list(protected_attributes or PROTECTED_ATTRIBUTES)
    covariate_names = layout["covariates"]

    subjects: List[Subject] = []
    outcomes: List[bool] = []
    for index, item in enumerate(items):
        if not isinstance(item, Mapping):
            raise ValidationError(f"Item {index} in '{layout['collection']}' is not a record")
        record = _candidate_record(item)
        label = record.get("qualified")
        subject_id = record.get("subject_id") or record.get("id") or f"{process_id}-{index}"

        subjects.append(Subject(
            subject_id=str(subject_id),
            protected_attributes=_read_attributes(record, lookup),
            covariates=_read_covariates(record, covariate_names),
            label=label if isinstance(label, bool) else None,
            score=_read_score(record),
            features=_read_features(record),
        ))
        outcomes.append(_read_outcome(process_type, record))

    seen = sorted({a for s in subjects for a in s.protected_attributes})
    analysed = [a for a in seen if all(a in s.protected_attributes for s in subjects)]
    skipped = [a for a in seen if a not in analysed]
    if skipped:
        logger.warning(
            f"{process_id}: attributes missing on some records, not analysed: {skipped}"
        )

    present_covariates = tuple(
        name for name in covariate_names if any(name in s.covariates for s in subjects)
    )
    context = FairnessContext(
        process_type=process_type,
        process_stage=layout["stage"],
        time_window=data.get("time_window"),
        scope=data.get("scope"),
        process_id=process_id,
        treatment_covariates=present_covariates,
    )

    logger.debug(
        f"Extracted {len(subjects)} {process_type} subjects for {process_id} "
        f"(attributes={analysed})"
    )
    return ProcessBatch(
        process_id=process_id,
        process_type=process_type,
        subjects=subjects,
        outcomes=outcomes,
        protected_attributes=analysed,
        context=context,
        skipped_attributes=skipped,
    )
