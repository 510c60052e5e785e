"""
Threshold Configuration - Versioned monitoring thresholds.

Each change creates a new ThresholdConfig version with its own effective
timestamp. Evaluations look up the version that was effective when they
were issued, so historical audit entries stay interpretable.
"""

import threading
from dataclasses import asdict, dataclass, field, fields, replace
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from shared.constants import DEFAULT_THRESHOLDS
from shared.logging import get_logger, log_validation
from shared.validation import ValidationError

logger = get_logger(__name__)

# camelCase names accepted from external configuration payloads
THRESHOLD_ALIASES = {
    "demographicParity": "demographic_parity",
    "equalizedOdds": "equalized_odds",
    "effectSize": "effect_size",
}
TUNABLE_FIELDS = ("warning", "critical", "demographic_parity", "equalized_odds", "effect_size")


@dataclass(frozen=True)
class ThresholdConfig:
    """
    Cutoffs used to turn an analysis into violations.

    Attributes:
        warning: Overall bias score that raises an elevated-bias violation
        critical: Overall bias score that raises a critical-bias violation
        demographic_parity: Largest tolerated selection-rate gap
        equalized_odds: Largest tolerated TPR/FPR gap
        effect_size: Smallest Cohen's h treated as material when significant
        version: Monotonic version number
        effective_from: When this version starts to apply
        updated_by: Actor who made the change
    """

    warning: float = DEFAULT_THRESHOLDS["warning"]
    critical: float = DEFAULT_THRESHOLDS["critical"]
    demographic_parity: float = DEFAULT_THRESHOLDS["demographic_parity"]
    equalized_odds: float = DEFAULT_THRESHOLDS["equalized_odds"]
    effect_size: float = DEFAULT_THRESHOLDS["effect_size"]
    version: int = 1
    effective_from: datetime = field(default=datetime.min)
    updated_by: str = "system"

    def validate(self) -> List[str]:
        """
        Validate threshold values.

        Returns:
            List of validation errors (empty if valid)
        """
        errors = []

        for name in TUNABLE_FIELDS:
            value = getattr(self, name)
            if not isinstance(value, (int, float)) or isinstance(value, bool):
                errors.append(f"{name} must be a number, got {value!r}")
            elif not 0 < value <= 1:
                errors.append(f"{name} must be in (0, 1], got {value}")

        if not errors and self.warning >= self.critical:
            errors.append(
                f"warning ({self.warning}) must be below critical ({self.critical})"
            )

        if self.version < 1:
            errors.append(f"version must be >= 1, got {self.version}")

        return errors

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ThresholdConfig":
        """Build a config from snake_case or camelCase keys."""
        known = {f.name for f in fields(cls)}
        kwargs = {}
        for key, value in data.items():
            name = THRESHOLD_ALIASES.get(key, key)
            if name not in known:
                raise ValidationError(f"Unknown threshold setting: {key}")
            kwargs[name] = value
        return cls(**kwargs)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["effective_from"] = self.effective_from.isoformat()
        return data


class ThresholdRegistry:
    """
    Holds every ThresholdConfig version in effective-time order.

    Example:
        >>> registry = ThresholdRegistry()
        >>> registry.update("alice", demographic_parity=0.1)
        >>> registry.effective_at(evaluation_issued_at).demographic_parity
    """

    def __init__(
        self,
        initial: Optional[ThresholdConfig] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        initial = initial or ThresholdConfig()
        errors = initial.validate()
        log_validation(logger, "thresholds", errors)
        if errors:
            raise ValidationError(f"Invalid thresholds: {errors}")

        self.clock = clock
        self._versions: List[ThresholdConfig] = [initial]
        self._lock = threading.Lock()

    def current(self) -> ThresholdConfig:
        """Version effective right now."""
        return self.effective_at(self.clock())

    def latest(self) -> ThresholdConfig:
        """Most recent version, even if scheduled for the future."""
        with self._lock:
            return self._versions[-1]

    def effective_at(self, when: datetime) -> ThresholdConfig:
        """Latest version whose effective_from is not after `when`."""
        with self._lock:
            effective = self._versions[0]
            for version in self._versions:
                if version.effective_from <= when:
                    effective = version
                else:
                    break
            return effective

    def get_version(self, version: int) -> ThresholdConfig:
        with self._lock:
            for config in self._versions:
                if config.version == version:
                    return config
        raise KeyError(f"Unknown threshold version {version}")

    def history(self) -> List[ThresholdConfig]:
        with self._lock:
            return list(self._versions)

    def update(
        self,
        actor: str,
        effective_from: Optional[datetime] = None,
        **changes: float,
    ) -> ThresholdConfig:
        """
        Create a new threshold version.

        Args:
            actor: Who is making the change
            effective_from: When it applies (default: now); never earlier
                than the latest version
            **changes: New values for any of TUNABLE_FIELDS (camelCase ok)

        Returns:
            The new ThresholdConfig

        Raises:
            ValidationError: Unknown field, invalid value or retroactive date
        """
        normalised = {THRESHOLD_ALIASES.get(k, k): v for k, v in changes.items()}
        unknown = sorted(set(normalised) - set(TUNABLE_FIELDS))
        if unknown:
            raise ValidationError(f"Unknown threshold setting(s): {unknown}")
        if not normalised:
            raise ValidationError("No threshold changes supplied")

        with self._lock:
            previous = self._versions[-1]
            effective_from = effective_from or self.clock()
            if effective_from < previous.effective_from:
                raise ValidationError(
                    f"effective_from {effective_from.isoformat()} precedes version "
                    f"{previous.version} ({previous.effective_from.isoformat()})"
                )

            candidate = replace(
                previous,
                version=previous.version + 1,
                effective_from=effective_from,
                updated_by=actor,
                **normalised,
            )
            errors = candidate.validate()
            log_validation(logger, f"thresholds v{candidate.version}", errors)
            if errors:
                raise ValidationError(f"Invalid thresholds: {errors}")

            self._versions.append(candidate)

        logger.info(
            f"Threshold version {candidate.version} by {actor} effective "
            f"{effective_from.isoformat()}: {normalised}"
        )
        return candidate
