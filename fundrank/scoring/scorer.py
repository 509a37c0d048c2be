"""Per-fund weighted Z-score computation.

For each metric with a non-zero resolved weight:

1. skip when the peer statistics are degenerate or the fund value is missing
2. flag and zero the metric when class coverage is below the threshold
3. Z = (value - mean) / stddev
4. clamp Z (adaptive quantile anchors, else static per-metric bound)
5. shrink Z for thin peer samples
6. contribution = Z * weight

Missing metrics are then handled by reweighting (default) or a flat penalty.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from .config import ScoringPolicy
from .metrics import METRIC_KEYS, CanonicalMetrics, FundRecord
from .numeric import clamp, normal_percentile, winsor_z_bound, zscore
from .peers import MetricStatistics
from .weights import WeightResolver

# Peer count at or below which Z-shrink still applies when winsorization is on
WINSOR_SHRINK_MAX_PEERS = 3


@dataclass
class MetricBreakdown:
    """Audit record for one metric of one fund."""

    metric: str
    value: float
    weight: float
    weight_source: str
    coverage: float
    peer_count: int
    z_score: Optional[float] = None
    weighted_z_score: float = 0.0
    reweighted_z_score: float = 0.0
    percentile: Optional[int] = None
    shrink_factor: float = 1.0
    excluded_for_coverage: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "value": self.value,
            "z_score": self.z_score,
            "weight": self.weight,
            "weighted_z_score": round(self.weighted_z_score, 4),
            "reweighted_z_score": round(self.reweighted_z_score, 4),
            "percentile": self.percentile,
            "shrink_factor": round(self.shrink_factor, 4),
            "coverage": round(self.coverage, 4),
            "peer_count": self.peer_count,
            "excluded_for_coverage": self.excluded_for_coverage,
            "weight_source": self.weight_source,
        }


@dataclass
class FundScore:
    """Unscaled result of scoring one fund against its class."""

    raw: float = 0.0
    raw_reweighted: float = 0.0
    breakdown: dict[str, MetricBreakdown] = field(default_factory=dict)
    metrics_used: int = 0
    total_possible_metrics: int = 0
    missing_count: int = 0
    peer_count_min: Optional[int] = None


def metric_percentile(z: float, weight: float) -> int:
    """Normal-CDF percentile of Z, inverted for lower-is-better weights."""
    pct = normal_percentile(z)
    if weight < 0:
        pct = 100.0 - pct
    return round(pct)


def clamp_applies(stats: MetricStatistics, policy: ScoringPolicy) -> bool:
    """Whether an outlier clamp bounds this metric's Z-scores."""
    if policy.adaptive_winsor_enabled and stats.has_quantile_anchors:
        return True
    return policy.winsorization_enabled


def clamp_z(z: float, metric: str, stats: MetricStatistics, policy: ScoringPolicy) -> float:
    """Apply adaptive or static winsorization to a Z-score."""
    if policy.adaptive_winsor_enabled and stats.has_quantile_anchors:
        z_lo = zscore(stats.q_lo, stats.mean, stats.stddev)
        z_hi = zscore(stats.q_hi, stats.mean, stats.stddev)
        return clamp(z, min(z_lo, z_hi), max(z_lo, z_hi))

    if policy.winsorization_enabled:
        bound = winsor_z_bound(policy.winsor_limit(metric))
        return clamp(z, -bound, bound)

    return z


def shrink_factor(peer_count: int, policy: ScoringPolicy, clamped: bool = False) -> float:
    """
    Linear small-sample dampening factor in [0, 1].

    Unclamped metrics shrink for every sample below K; clamped ones only
    for samples of WINSOR_SHRINK_MAX_PEERS or fewer.
    """
    k = policy.z_shrink_k
    if clamped:
        applies = peer_count <= WINSOR_SHRINK_MAX_PEERS
    else:
        applies = peer_count < k
    if not applies:
        return 1.0
    return clamp((peer_count - 1) / (k - 1), 0.0, 1.0)


def score_fund(
    fund: FundRecord,
    metrics: CanonicalMetrics,
    statistics: Mapping[str, MetricStatistics],
    resolver: WeightResolver,
    policy: ScoringPolicy,
) -> FundScore:
    """
    Score one fund against its peer statistics.

    Args:
        fund: fund identity (used for weight resolution)
        metrics: the fund's canonical metrics
        statistics: peer statistics of the fund's asset class
        resolver: weight snapshot
        policy: scoring policy

    Returns:
        FundScore with raw and reweighted sums plus the per-metric breakdown
    """
    result = FundScore()
    possible_abs = 0.0
    present_abs = 0.0

    for metric in METRIC_KEYS:
        resolution = resolver.source(fund, metric)
        weight = resolution.weight
        # Unconfigured and explicit-zero weights both suppress the metric
        if weight is None or weight == 0:
            continue

        result.total_possible_metrics += 1
        possible_abs += abs(weight)

        stats = statistics.get(metric)
        value = metrics.get(metric)
        if stats is None or stats.is_degenerate or value is None:
            result.missing_count += 1
            continue

        present_abs += abs(weight)

        entry = MetricBreakdown(
            metric=metric,
            value=value,
            weight=weight,
            weight_source=resolution.source.value,
            coverage=stats.coverage,
            peer_count=stats.count,
        )
        result.breakdown[metric] = entry

        if stats.coverage < policy.coverage_threshold:
            entry.excluded_for_coverage = True
            result.missing_count += 1
            continue

        z = zscore(value, stats.mean, stats.stddev)
        z = clamp_z(z, metric, stats, policy)
        lam = shrink_factor(stats.count, policy, clamp_applies(stats, policy))
        z *= lam

        contribution = z * weight
        entry.z_score = round(z, 3)
        entry.weighted_z_score = contribution
        entry.percentile = metric_percentile(z, weight)
        entry.shrink_factor = lam

        result.raw += contribution
        result.metrics_used += 1
        if result.peer_count_min is None or stats.count < result.peer_count_min:
            result.peer_count_min = stats.count

    if policy.missing_policy == "penalty":
        result.raw_reweighted = result.raw - policy.missing_penalty * result.missing_count
        for entry in result.breakdown.values():
            entry.reweighted_z_score = entry.weighted_z_score
    else:
        factor = possible_abs / present_abs if present_abs > 0 else 0.0
        result.raw_reweighted = result.raw * factor
        for entry in result.breakdown.values():
            entry.reweighted_z_score = entry.weighted_z_score * factor

    return result
