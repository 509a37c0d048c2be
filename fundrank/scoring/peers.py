"""Peer statistics per asset class.

Statistics come from non-benchmark peers only. Coverage uses the full class
size (benchmarks included) as denominator, so it measures how complete a
metric column is for the whole class.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional

from .config import ScoringPolicy
from .metrics import METRIC_KEYS, CanonicalMetrics
from .numeric import mean, population_stddev, quantile


# Minimum sample before empirical quantile anchors are trusted
ADAPTIVE_MIN_SAMPLE = 20


@dataclass(frozen=True)
class MetricStatistics:
    """Distribution summary of one metric within one asset class."""

    mean: float
    stddev: float
    count: int
    coverage: float
    min: Optional[float] = None
    max: Optional[float] = None
    q_lo: Optional[float] = None
    q_hi: Optional[float] = None

    @property
    def is_degenerate(self) -> bool:
        """Too few values or no spread: the metric cannot be scored in this class."""
        return self.count < 2 or self.stddev <= 0

    @property
    def has_quantile_anchors(self) -> bool:
        return self.q_lo is not None and self.q_hi is not None

    def to_dict(self) -> dict:
        return {
            "mean": round(self.mean, 6),
            "stddev": round(self.stddev, 6),
            "count": self.count,
            "coverage": round(self.coverage, 4),
            "min": self.min,
            "max": self.max,
            "q_lo": self.q_lo,
            "q_hi": self.q_hi,
        }


def compute_metric_statistics(
    values: Iterable[Optional[float]],
    class_size: int,
    policy: ScoringPolicy,
) -> MetricStatistics:
    """Summarise one metric column of the peer group."""
    present = [v for v in values if v is not None]
    count = len(present)
    mu = mean(present)
    sigma = population_stddev(present, mu)

    q_lo = q_hi = None
    if policy.adaptive_winsor_enabled and count >= ADAPTIVE_MIN_SAMPLE:
        q_lo = quantile(present, policy.winsor_q_lo)
        q_hi = quantile(present, policy.winsor_q_hi)

    return MetricStatistics(
        mean=mu,
        stddev=sigma,
        count=count,
        coverage=count / class_size if class_size > 0 else 0.0,
        min=min(present) if present else None,
        max=max(present) if present else None,
        q_lo=q_lo,
        q_hi=q_hi,
    )


def compute_peer_statistics(
    peer_metrics: list[CanonicalMetrics],
    class_size: int,
    policy: ScoringPolicy,
) -> dict[str, MetricStatistics]:
    """
    Compute statistics for every canonical metric.

    Args:
        peer_metrics: metrics of the non-benchmark funds of one class
        class_size: number of funds in the class, benchmarks included
        policy: scoring policy (adaptive winsorization settings)

    Returns:
        metric key -> MetricStatistics
    """
    return {
        metric: compute_metric_statistics(
            (m.get(metric) for m in peer_metrics), class_size, policy
        )
        for metric in METRIC_KEYS
    }
