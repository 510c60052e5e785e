"""
Distribution Functions - CDFs, tail probabilities and critical values.

Supports the hypothesis tests in statistical_tests.py. P-values come from the
regularised incomplete gamma and beta functions in scipy.special, so they are
accurate to floating-point precision across the whole range rather than
interpolated from tables.

Author: FairML Consulting
Date: January 2026
"""

import math

import numpy as np
from scipy import special, stats

from measurement_module.src.exceptions import ValidationError


# Abramowitz & Stegun 26.2.17 coefficients
_AS_P = 0.2316419
_AS_B = (0.319381530, -0.356563782, 1.781477937, -1.821255978, 1.330274429)
_INV_SQRT_2PI = 1.0 / math.sqrt(2.0 * math.pi)

NORMAL_CDF_MAX_ERROR = 7.5e-8


def _check_finite(value: float, name: str) -> float:
    value = float(value)
    if not math.isfinite(value):
        raise ValidationError(f"{name} must be finite, got {value}")
    return value


def normal_cdf(x: float) -> float:
    """
    Standard normal cumulative distribution function.

    Uses the Abramowitz & Stegun 26.2.17 rational approximation, whose
    absolute error is below 7.5e-8 for every real x.

    Args:
        x: Point at which to evaluate

    Returns:
        P(Z <= x) for Z ~ N(0, 1)

    Example:
        >>> round(normal_cdf(1.96), 4)
        0.975
    """
    x = _check_finite(x, "x")
    z = abs(x)
    t = 1.0 / (1.0 + _AS_P * z)
    poly = t * (_AS_B[0] + t * (_AS_B[1] + t * (_AS_B[2] + t * (_AS_B[3] + t * _AS_B[4]))))
    upper_tail = _INV_SQRT_2PI * math.exp(-0.5 * z * z) * poly
    return 1.0 - upper_tail if x >= 0 else upper_tail


def normal_quantile(p: float) -> float:
    """
    Inverse of the standard normal CDF.

    Args:
        p: Probability in (0, 1)

    Returns:
        z such that P(Z <= z) = p
    """
    p = _check_finite(p, "p")
    if not 0.0 < p < 1.0:
        raise ValidationError(f"p must be in (0, 1), got {p}")
    return float(stats.norm.ppf(p))


def two_sided_z_critical(confidence_level: float = 0.95) -> float:
    """Critical value z such that P(|Z| <= z) = confidence_level."""
    if not 0.0 < confidence_level < 1.0:
        raise ValidationError(
            f"confidence_level must be in (0, 1), got {confidence_level}"
        )
    return normal_quantile(1.0 - (1.0 - confidence_level) / 2.0)


def chi_square_sf(statistic: float, degrees_of_freedom: float) -> float:
    """
    Upper-tail probability of the chi-square distribution.

    P(X >= statistic) = Q(df/2, statistic/2), the regularised upper
    incomplete gamma function.

    Args:
        statistic: Observed chi-square statistic (>= 0)
        degrees_of_freedom: Degrees of freedom (> 0)

    Returns:
        Tail p-value in [0, 1]
    """
    statistic = _check_finite(statistic, "statistic")
    degrees_of_freedom = _check_finite(degrees_of_freedom, "degrees_of_freedom")
    if degrees_of_freedom <= 0:
        raise ValidationError(
            f"degrees_of_freedom must be positive, got {degrees_of_freedom}"
        )
    if statistic <= 0:
        return 1.0
    return float(np.clip(special.gammaincc(degrees_of_freedom / 2.0, statistic / 2.0), 0.0, 1.0))


def student_t_cdf(t: float, degrees_of_freedom: float) -> float:
    """
    Student-t cumulative distribution function.

    Computed from the regularised incomplete beta function:
    P(|T| >= |t|) = I_x(df/2, 1/2) with x = df / (df + t^2).

    Args:
        t: Point at which to evaluate
        degrees_of_freedom: Degrees of freedom (> 0, may be fractional)

    Returns:
        P(T <= t)
    """
    t = _check_finite(t, "t")
    degrees_of_freedom = _check_finite(degrees_of_freedom, "degrees_of_freedom")
    if degrees_of_freedom <= 0:
        raise ValidationError(
            f"degrees_of_freedom must be positive, got {degrees_of_freedom}"
        )
    half_tail = 0.5 * student_t_two_sided_p(t, degrees_of_freedom)
    return 1.0 - half_tail if t > 0 else half_tail


def student_t_two_sided_p(t: float, degrees_of_freedom: float) -> float:
    """Two-tailed p-value P(|T| >= |t|) for a Student-t statistic."""
    x = degrees_of_freedom / (degrees_of_freedom + t * t)
    return float(np.clip(special.betainc(degrees_of_freedom / 2.0, 0.5, x), 0.0, 1.0))


def student_t_critical(degrees_of_freedom: float, confidence_level: float = 0.95) -> float:
    """
    Two-sided Student-t critical value.

    Args:
        degrees_of_freedom: Degrees of freedom (> 0)
        confidence_level: Coverage of the interval

    Returns:
        t* such that P(|T| <= t*) = confidence_level
    """
    degrees_of_freedom = _check_finite(degrees_of_freedom, "degrees_of_freedom")
    if degrees_of_freedom <= 0:
        raise ValidationError(
            f"degrees_of_freedom must be positive, got {degrees_of_freedom}"
        )
    if not 0.0 < confidence_level < 1.0:
        raise ValidationError(
            f"confidence_level must be in (0, 1), got {confidence_level}"
        )
    return float(special.stdtrit(degrees_of_freedom, 1.0 - (1.0 - confidence_level) / 2.0))
