"""Numeric primitives shared by the anomaly, streak and correlation layers."""

from __future__ import annotations

import math
from typing import Any, Optional, Sequence

import numpy as np
from scipy import stats as sp_stats


def is_finite_number(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, (int, float, np.integer, np.floating)):
        return math.isfinite(value)
    return False


def finite_values(values: Sequence[Any]) -> list:
    return [float(v) for v in values if is_finite_number(v)]


def mean(nums: Sequence[float]) -> Optional[float]:
    if len(nums) == 0:
        return None
    return float(np.mean(np.asarray(nums, dtype=np.float64)))


def median(nums: Sequence[float]) -> Optional[float]:
    if len(nums) == 0:
        return None
    return float(np.median(np.asarray(nums, dtype=np.float64)))


def population_sd(nums: Sequence[float]) -> Optional[float]:
    """Standard deviation dividing by n, not n - 1."""
    if len(nums) == 0:
        return None
    return float(np.std(np.asarray(nums, dtype=np.float64), ddof=0))


def pearson_correlation(xs: Sequence[float], ys: Sequence[float]) -> Optional[float]:
    """Pearson r = Σ(x-x̄)(y-ȳ) / sqrt(Σ(x-x̄)² · Σ(y-ȳ)²).

    None for empty or mismatched inputs and for degenerate (constant)
    series where the denominator is zero or non-finite.
    """
    if len(xs) == 0 or len(xs) != len(ys):
        return None
    x = np.asarray(xs, dtype=np.float64)
    y = np.asarray(ys, dtype=np.float64)
    dx = x - x.mean()
    dy = y - y.mean()
    den = math.sqrt(float(np.sum(dx * dx)) * float(np.sum(dy * dy)))
    if den == 0 or not math.isfinite(den):
        return None
    r = float(np.sum(dx * dy)) / den
    if not math.isfinite(r):
        return None
    return max(-1.0, min(1.0, r))


def correlation_p_value(r: Optional[float], n: int) -> float:
    """Two-sided p-value for Pearson r with n samples (t-test, n-2 dof)."""
    if r is None or n < 3:
        return 1.0
    if abs(r) >= 1.0:
        return 0.0
    t_stat = r * math.sqrt(n - 2) / math.sqrt(1 - r * r)
    return float(2 * sp_stats.t.sf(abs(t_stat), n - 2))
