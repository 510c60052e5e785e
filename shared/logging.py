"""
Logging for the fairness engine.

Every module logs through get_logger(__name__). The helpers below keep
the monitoring messages uniform so log lines can be grepped by kind:

    SCORE      computed bias / fairness scores
    FAMILY     metric family pass/fail against its threshold
    VIOLATION  threshold breach found in an evaluation
    ALERT      alert opened or escalated
    CONFIG     configuration / threshold validation
    STAGE      timed evaluation stages
"""

import logging
import sys
import time
from pathlib import Path
from typing import Any, List, Optional, Sequence


LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Violation and alert severities mapped onto log levels
SEVERITY_LOG_LEVELS = {
    "low": logging.INFO,
    "medium": logging.WARNING,
    "high": logging.WARNING,
    "critical": logging.ERROR,
}


def setup_logger(
    name: str,
    level: int = logging.INFO,
    log_file: Optional[str] = None,
) -> logging.Logger:
    """
    Create a logger writing to stdout and, optionally, a log file.

    Args:
        name: Logger name (typically __name__)
        level: Logging level
        log_file: Optional file path (parent directories are created)

    Returns:
        Configured logger
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)
    if logger.handlers:
        return logger

    formatter = logging.Formatter(LOG_FORMAT, DATE_FORMAT)
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    # Handlers are attached here, so keep records away from the root logger
    logger.propagate = False
    return logger


def get_logger(name: str) -> logging.Logger:
    return setup_logger(name)


def log_score(logger: logging.Logger, name: str, value: float, **context: Any) -> None:
    """SCORE line, e.g. `SCORE overall_bias_score=0.4123 process_type=matching`."""
    suffix = "".join(f" {k}={v}" for k, v in context.items())
    logger.info(f"SCORE {name}={value:.4f}{suffix}")


def log_family_result(
    logger: logging.Logger,
    family: str,
    value: float,
    threshold: float,
    passed: bool,
) -> None:
    logger.info(
        f"FAMILY [{'PASS' if passed else 'FAIL'}] {family}={value:.4f} (threshold {threshold:.4f})"
    )


def log_violation(
    logger: logging.Logger,
    violation_type: str,
    severity: str,
    affected_groups: Sequence[str] = (),
) -> None:
    """VIOLATION line at the level matching its severity."""
    groups = ", ".join(affected_groups) or "all groups"
    logger.log(
        SEVERITY_LOG_LEVELS.get(severity, logging.WARNING),
        f"VIOLATION [{severity}] {violation_type} affecting {groups}",
    )


def log_alert(
    logger: logging.Logger,
    process_id: str,
    violation_type: str,
    severity: str,
    description: str,
) -> None:
    logger.log(
        SEVERITY_LOG_LEVELS.get(severity, logging.WARNING),
        f"ALERT [{severity.upper()}] {process_id} {violation_type}: {description}",
    )


def log_validation(logger: logging.Logger, source: str, errors: Sequence[str]) -> None:
    """CONFIG line; one error line per problem found."""
    if not errors:
        logger.info(f"CONFIG {source}: valid")
        return
    logger.error(f"CONFIG {source}: {len(errors)} problem(s)")
    for error in errors:
        logger.error(f"  - {error}")


class StageTimer:
    """
    Log the start, duration and failure of an evaluation stage.

    Example:
        >>> with StageTimer(logger, "monitor_process", process_id="P-1") as stage:
        ...     evaluate()
        >>> stage.elapsed_ms
    """

    def __init__(self, logger: logging.Logger, stage: str, **details: Any):
        self.logger = logger
        self.stage = stage
        self.details = "".join(f" {k}={v}" for k, v in details.items())
        self.elapsed_ms = 0.0
        self._started = 0.0

    def __enter__(self) -> "StageTimer":
        self._started = time.perf_counter()
        self.logger.debug(f"STAGE {self.stage} started{self.details}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        self.elapsed_ms = (time.perf_counter() - self._started) * 1000
        if exc_type is None:
            self.logger.info(f"STAGE {self.stage} finished in {self.elapsed_ms:.1f}ms{self.details}")
        else:
            self.logger.error(
                f"STAGE {self.stage} failed after {self.elapsed_ms:.1f}ms{self.details}: {exc_val}"
            )
        return False
