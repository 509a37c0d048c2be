"""Raw score to 0-100 mapping and score bands.

Linear mode: 50 + 10 * raw, so +/-1 raw unit is about +/-10 points.
Robust mode: class percentile anchors P5/P50/P95 map to 40/50/60 with the
adjacent segment slope extended past the anchors. Both are monotone.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np

from .numeric import clamp

SCORE_CENTER = 50.0
LINEAR_SLOPE = 10.0
ROBUST_MIN_CLASS_SIZE = 10
ROBUST_BAND = 10.0  # P5 -> 40, P95 -> 60


@dataclass(frozen=True)
class RobustAnchors:
    """Empirical P5/P50/P95 of the raw scores of one class."""

    p5: float
    p50: float
    p95: float

    def to_dict(self) -> dict[str, float]:
        return {"p5": self.p5, "p50": self.p50, "p95": self.p95}


@dataclass(frozen=True)
class ScoreBand:
    min: float
    label: str
    color: str


SCORE_BANDS: tuple[ScoreBand, ...] = (
    ScoreBand(60, "Strong", "#10B981"),
    ScoreBand(55, "Healthy", "#34D399"),
    ScoreBand(45, "Neutral", "#FCD34D"),
    ScoreBand(40, "Caution", "#F97316"),
    ScoreBand(0, "Weak", "#EF4444"),
)


def scale_linear(raw: float) -> float:
    """clamp(50 + 10 * raw, 0, 100), one decimal."""
    return round(clamp(SCORE_CENTER + LINEAR_SLOPE * raw, 0.0, 100.0), 1)


def compute_robust_anchors(raw_scores: Sequence[float]) -> Optional[RobustAnchors]:
    """
    Percentile anchors for robust scaling.

    Returns None when the class is smaller than ROBUST_MIN_CLASS_SIZE or
    the raw scores have no spread; callers then fall back to linear mode.
    """
    if len(raw_scores) < ROBUST_MIN_CLASS_SIZE:
        return None
    arr = np.asarray(raw_scores, dtype=float)
    p5, p50, p95 = (float(v) for v in np.percentile(arr, [5, 50, 95]))
    if p95 - p5 <= 1e-12:
        return None
    return RobustAnchors(p5=p5, p50=p50, p95=p95)


def scale_robust(raw: float, anchors: RobustAnchors) -> float:
    """Piecewise-linear anchor mapping, clamped to 0-100, one decimal."""
    lower_span = anchors.p50 - anchors.p5
    upper_span = anchors.p95 - anchors.p50
    slope_lo = ROBUST_BAND / lower_span if lower_span > 0 else None
    slope_hi = ROBUST_BAND / upper_span if upper_span > 0 else None
    # One flat half borrows the slope of the other
    slope_lo = slope_lo if slope_lo is not None else slope_hi
    slope_hi = slope_hi if slope_hi is not None else slope_lo

    if raw <= anchors.p50:
        scaled = SCORE_CENTER + (raw - anchors.p50) * slope_lo
    else:
        scaled = SCORE_CENTER + (raw - anchors.p50) * slope_hi
    return round(clamp(scaled, 0.0, 100.0), 1)


def percentile_within_class(raw: float, class_raws: Sequence[float]) -> int:
    """Share of the class with a strictly lower raw score, 0-100."""
    if not class_raws:
        return 50
    lower = sum(1 for r in class_raws if r < raw)
    return round(lower / len(class_raws) * 100)


def get_score_band(score: float) -> Optional[ScoreBand]:
    for band in SCORE_BANDS:
        if score >= band.min:
            return band
    return None


def get_score_label(score: float) -> str:
    band = get_score_band(score)
    return band.label if band else ""


def get_score_color(score: float) -> str:
    band = get_score_band(score)
    return band.color if band else "#000000"
