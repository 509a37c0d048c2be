"""Numeric primitives shared by the peer statistics and scoring steps.

All helpers ignore missing values (None / NaN) and never raise on empty input.
"""

from __future__ import annotations

import math
from typing import Iterable, Optional

import numpy as np
from scipy import special


def _finite_array(values: Iterable[Optional[float]]) -> np.ndarray:
    """Convert to a float array, dropping None and non-finite entries."""
    cleaned = [float(v) for v in values if v is not None]
    arr = np.asarray(cleaned, dtype=float)
    return arr[np.isfinite(arr)]


def mean(values: Iterable[Optional[float]]) -> float:
    """Arithmetic mean of the valid values, 0.0 when there are none."""
    arr = _finite_array(values)
    if arr.size == 0:
        return 0.0
    return float(np.mean(arr))


def population_stddev(values: Iterable[Optional[float]], mu: float | None = None) -> float:
    """
    Population standard deviation of the valid values.

    Returns 0.0 for fewer than two values, which callers treat as degenerate.
    """
    arr = _finite_array(values)
    if arr.size <= 1:
        return 0.0
    center = float(np.mean(arr)) if mu is None else mu
    return float(np.sqrt(np.mean((arr - center) ** 2)))


def zscore(value: float, mu: float, sigma: float) -> float:
    """(value - mu) / sigma, or 0.0 when sigma is zero or NaN."""
    if sigma == 0 or math.isnan(sigma):
        return 0.0
    return (value - mu) / sigma


def quantile(values: Iterable[Optional[float]], q: float) -> Optional[float]:
    """Linearly interpolated empirical quantile, None for an empty sample."""
    arr = _finite_array(values)
    if arr.size == 0:
        return None
    return float(np.quantile(arr, q))


def erf(x: float) -> float:
    return float(special.erf(x))


def erfinv(x: float) -> float:
    return float(special.erfinv(x))


def normal_percentile(z: float) -> float:
    """Standard normal CDF expressed on a 0-100 scale."""
    return (1.0 + erf(z / math.sqrt(2.0))) / 2.0 * 100.0


def winsor_z_bound(p: float) -> float:
    """
    Z bound for a two-tailed clamp probability.

    Uses Z = sqrt(2) * erfinv(2p - 1), so p=0.975 gives ~1.96 and p=0.99 ~2.33.
    """
    return math.sqrt(2.0) * erfinv(2.0 * p - 1.0)


def clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, value))
