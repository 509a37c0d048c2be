"""
Fund scoring engine - weighted Z-score ranking within asset classes.

Pipeline per asset class:
1. Extract canonical metrics for every record
2. Compute peer statistics from non-benchmark funds (benchmarks are scored
   but never part of the distribution they are scored against)
3. Score each fund with resolved weights (winsorization, coverage, shrink)
4. Reweight for missing metrics, apply the tiny-class fallback
5. Scale to 0-100 (linear, or robust anchors) and rank within the class

Score interpretation (linear mode):
- 60+: Strong
- 55-59: Healthy
- 45-54: Neutral
- 40-44: Caution
- below 40: Weak

Every call is a pure function of (records, resolver snapshot, policy).

Usage:
    resolver = await build_weights_resolver(scoring_profiles_orm)
    scored = calculate_scores(records, resolver, ScoringPolicy.from_settings())
"""

from __future__ import annotations

import statistics as pystats
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Optional, Sequence

from fundrank.core.logging import get_logger, scoring_run

from .config import ScoringPolicy, get_scoring_policy
from .fallback import apply_tiny_class_fallback
from .metrics import METRIC_KEYS, CanonicalMetrics, FundRecord, extract_metrics
from .peers import compute_peer_statistics
from .scaling import (
    SCORE_BANDS,
    SCORE_CENTER,
    compute_robust_anchors,
    get_score_label,
    percentile_within_class,
    scale_linear,
    scale_robust,
)
from .scorer import MetricBreakdown, score_fund
from .weights import WeightResolver, WeightSource, build_weights_resolver


logger = get_logger("scoring.engine")

MIN_CLASS_SIZE = 2
INSUFFICIENT_CLASS_NOTE = "Insufficient funds in asset class for scoring"


@dataclass
class FundScores:
    """Scores attached to one fund."""

    raw: float
    raw_reweighted: float
    final: float
    percentile: int
    breakdown: dict[str, MetricBreakdown] = field(default_factory=dict)
    metrics_used: int = 0
    total_possible_metrics: int = 0
    asset_class_size: int = 0
    peer_count_min: Optional[int] = None
    scaling: str = "linear"
    note: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        data = {
            "raw": round(self.raw, 3),
            "raw_reweighted": round(self.raw_reweighted, 3),
            "final": self.final,
            "percentile": self.percentile,
            "breakdown": {k: v.to_dict() for k, v in self.breakdown.items()},
            "metrics_used": self.metrics_used,
            "total_possible_metrics": self.total_possible_metrics,
            "asset_class_size": self.asset_class_size,
            "peer_count_min": self.peer_count_min,
            "scaling": self.scaling,
        }
        if self.note:
            data["note"] = self.note
        return data


@dataclass
class ScoredFund:
    """Input record plus canonical metrics and scores."""

    fund: FundRecord
    metrics: CanonicalMetrics
    scores: FundScores

    @property
    def ticker(self) -> str:
        return self.fund.ticker

    @property
    def asset_class(self) -> str:
        return self.fund.asset_class

    @property
    def final(self) -> float:
        return self.scores.final

    def to_dict(self) -> dict[str, Any]:
        """The input record augmented with `metrics` and `scores`."""
        return {
            **dict(self.fund.raw),
            "metrics": self.metrics.to_dict(),
            "scores": self.scores.to_dict(),
        }


def _coerce_records(records: Iterable[FundRecord | Mapping[str, Any]]) -> list[FundRecord]:
    return [r if isinstance(r, FundRecord) else FundRecord.from_mapping(r) for r in records]


def _build_bench_lookup(funds: Sequence[FundRecord]) -> dict[str, FundRecord]:
    """Ticker -> record, benchmark rows taking priority on duplicate tickers."""
    lookup: dict[str, FundRecord] = {}
    for fund in funds:
        if fund.ticker and fund.is_benchmark:
            lookup.setdefault(fund.ticker, fund)
    for fund in funds:
        if fund.ticker:
            lookup.setdefault(fund.ticker, fund)
    return lookup


def _group_by_asset_class(funds: Sequence[FundRecord]) -> dict[str, list[int]]:
    groups: dict[str, list[int]] = {}
    for idx, fund in enumerate(funds):
        groups.setdefault(fund.asset_class or "Unknown", []).append(idx)
    return groups


def _score_insufficient_class(
    funds: Sequence[FundRecord],
    resolver: WeightResolver,
    bench_lookup: Mapping[str, FundRecord],
    policy: ScoringPolicy,
) -> list[ScoredFund]:
    return [
        ScoredFund(
            fund=fund,
            metrics=extract_metrics(fund, bench_lookup, bench_delta_enabled=policy.bench_delta_enabled),
            scores=FundScores(
                raw=0.0,
                raw_reweighted=0.0,
                final=SCORE_CENTER,
                percentile=50,
                total_possible_metrics=sum(
                    1 for metric in METRIC_KEYS if resolver.resolve(fund, metric) not in (None, 0)
                ),
                asset_class_size=len(funds),
                scaling="neutral",
                note=INSUFFICIENT_CLASS_NOTE,
            ),
        )
        for fund in funds
    ]


def score_asset_class(
    funds: Sequence[FundRecord],
    resolver: WeightResolver,
    policy: ScoringPolicy,
    bench_lookup: Mapping[str, FundRecord] | None = None,
) -> list[ScoredFund]:
    """
    Score all funds of one asset class.

    Args:
        funds: every record of the class, benchmarks included
        resolver: weight snapshot
        policy: scoring policy
        bench_lookup: ticker -> record for the benchmark delta metric

    Returns:
        ScoredFund per input fund, in input order
    """
    bench_lookup = bench_lookup or {}
    class_size = len(funds)
    if class_size < MIN_CLASS_SIZE:
        return _score_insufficient_class(funds, resolver, bench_lookup, policy)

    metrics = [
        extract_metrics(f, bench_lookup, bench_delta_enabled=policy.bench_delta_enabled)
        for f in funds
    ]
    peer_metrics = [m for f, m in zip(funds, metrics) if not f.is_benchmark]
    statistics = compute_peer_statistics(peer_metrics, class_size, policy)

    fund_scores = [
        score_fund(f, m, statistics, resolver, policy) for f, m in zip(funds, metrics)
    ]

    adjusted: list[float] = []
    notes: list[Optional[str]] = []
    for fs in fund_scores:
        raw, note = apply_tiny_class_fallback(fs.raw_reweighted, fs.peer_count_min, policy)
        adjusted.append(raw)
        notes.append(note)

    anchors = compute_robust_anchors(adjusted) if policy.robust_scaling_enabled else None

    scored: list[ScoredFund] = []
    for fund, m, fs, raw, note in zip(funds, metrics, fund_scores, adjusted, notes):
        final = scale_robust(raw, anchors) if anchors else scale_linear(raw)
        scored.append(
            ScoredFund(
                fund=fund,
                metrics=m,
                scores=FundScores(
                    raw=fs.raw,
                    raw_reweighted=fs.raw_reweighted,
                    final=final,
                    percentile=percentile_within_class(raw, adjusted),
                    breakdown=fs.breakdown,
                    metrics_used=fs.metrics_used,
                    total_possible_metrics=fs.total_possible_metrics,
                    asset_class_size=class_size,
                    peer_count_min=fs.peer_count_min,
                    scaling="robust" if anchors else "linear",
                    note=note,
                ),
            )
        )
    return scored


def calculate_scores(
    records: Iterable[FundRecord | Mapping[str, Any]],
    resolver: WeightResolver | None = None,
    policy: ScoringPolicy | None = None,
) -> list[ScoredFund]:
    """
    Score every fund against its asset-class peers.

    Args:
        records: flat fund records (mappings in either naming convention) or FundRecords
        resolver: weight snapshot; built-in defaults when omitted
        policy: scoring policy; settings-derived policy when omitted

    Returns:
        ScoredFund per record, in input order
    """
    funds = _coerce_records(records)
    if not funds:
        return []

    resolver = resolver or WeightResolver()
    policy = policy or get_scoring_policy()
    bench_lookup = _build_bench_lookup(funds)

    with scoring_run():
        results: list[Optional[ScoredFund]] = [None] * len(funds)
        for asset_class, indices in _group_by_asset_class(funds).items():
            class_funds = [funds[i] for i in indices]
            benchmarks = sum(1 for f in class_funds if f.is_benchmark)
            recommended = sum(1 for f in class_funds if f.is_recommended)
            logger.debug(
                f"Scoring {asset_class}: {len(class_funds)} funds "
                f"({benchmarks} benchmarks, {recommended} recommended)"
            )
            for idx, scored in zip(indices, score_asset_class(class_funds, resolver, policy, bench_lookup)):
                results[idx] = scored

    return [r for r in results if r is not None]


async def score_funds(
    records: Iterable[FundRecord | Mapping[str, Any]],
    source: WeightSource | None = None,
    policy: ScoringPolicy | None = None,
    profile: str | None = None,
) -> list[ScoredFund]:
    """Load the weight snapshot once, then run the pure scoring pass."""
    with scoring_run():
        resolver = await build_weights_resolver(source, profile)
        return calculate_scores(records, resolver, policy)


@dataclass
class ClassSummary:
    """Score distribution of one asset class."""

    fund_count: int
    average_score: int
    median_score: float
    top_performer: Optional[str]
    bottom_performer: Optional[str]
    benchmark_score: Optional[float]
    distribution: dict[str, int]

    def to_dict(self) -> dict[str, Any]:
        return {
            "fund_count": self.fund_count,
            "average_score": self.average_score,
            "median_score": self.median_score,
            "top_performer": self.top_performer,
            "bottom_performer": self.bottom_performer,
            "benchmark_score": self.benchmark_score,
            "distribution": dict(self.distribution),
        }


def generate_class_summary(funds: Sequence[ScoredFund]) -> ClassSummary:
    """Summarise the final scores of one scored asset class."""
    distribution = {band.label: 0 for band in SCORE_BANDS}
    if not funds:
        return ClassSummary(0, 0, 0.0, None, None, None, distribution)

    scores = [f.final for f in funds]
    ordered = sorted(scores)
    benchmark = next((f for f in funds if f.fund.is_benchmark), None)
    for score in scores:
        distribution[get_score_label(score)] += 1

    return ClassSummary(
        fund_count=len(funds),
        average_score=round(pystats.fmean(scores)),
        median_score=ordered[len(ordered) // 2],
        top_performer=max(funds, key=lambda f: f.final).ticker,
        bottom_performer=min(funds, key=lambda f: f.final).ticker,
        benchmark_score=benchmark.final if benchmark else None,
        distribution=distribution,
    )
