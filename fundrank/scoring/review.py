"""Flag scored funds that deserve an analyst review."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional, Sequence

from .engine import ScoredFund

REVIEW_SCORE_FLOOR = 45.0
REVIEW_PERCENTILE_FLOOR = 25
SHARPE_PERCENTILE_FLOOR = 30
EXPENSE_PERCENTILE_FLOOR = 25
DOWN_CAPTURE_CEILING = 110.0
RECOMMENDED_SCORE_FLOOR = 50.0
BENCHMARK_GAP = 5.0


@dataclass
class ReviewCandidate:
    fund: ScoredFund
    reasons: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {**self.fund.to_dict(), "review_reasons": list(self.reasons)}


def _benchmark_scores(funds: Sequence[ScoredFund]) -> tuple[dict[str, float], dict[str, float]]:
    """Final scores of benchmarks by ticker and by asset class (first wins)."""
    by_ticker: dict[str, float] = {}
    by_class: dict[str, float] = {}
    for f in funds:
        if f.fund.is_benchmark:
            if f.ticker:
                by_ticker.setdefault(f.ticker, f.final)
            by_class.setdefault(f.asset_class, f.final)
    return by_ticker, by_class


def _benchmark_score_for(
    fund: ScoredFund,
    by_ticker: dict[str, float],
    by_class: dict[str, float],
) -> Optional[float]:
    if fund.fund.is_benchmark:
        return None
    if fund.fund.benchmark_ticker and fund.fund.benchmark_ticker in by_ticker:
        return by_ticker[fund.fund.benchmark_ticker]
    return by_class.get(fund.asset_class)


def review_reasons(fund: ScoredFund, benchmark_score: Optional[float] = None) -> list[str]:
    """Human-readable reasons a single fund should be reviewed."""
    scores = fund.scores
    breakdown = scores.breakdown
    reasons: list[str] = []

    if scores.final < REVIEW_SCORE_FLOOR:
        reasons.append(f"Below average score (<{REVIEW_SCORE_FLOOR:g})")

    if scores.percentile < REVIEW_PERCENTILE_FLOOR:
        reasons.append("Bottom quartile in asset class")

    sharpe = breakdown.get("sharpe_ratio_3y")
    if sharpe and sharpe.percentile is not None and sharpe.percentile < SHARPE_PERCENTILE_FLOOR:
        reasons.append("Poor risk-adjusted returns")

    expense = breakdown.get("expense_ratio")
    if expense and expense.percentile is not None and expense.percentile < EXPENSE_PERCENTILE_FLOOR:
        reasons.append("High expense ratio (bottom quartile)")

    down_capture = fund.metrics.down_capture_3y
    if down_capture is not None and down_capture > DOWN_CAPTURE_CEILING:
        reasons.append(f"High downside capture (>{DOWN_CAPTURE_CEILING:g}%)")

    if fund.fund.is_recommended and scores.final < RECOMMENDED_SCORE_FLOOR:
        reasons.append("Recommended fund performing below average")

    if benchmark_score is not None and scores.final < benchmark_score - BENCHMARK_GAP:
        reasons.append(f"Underperforming benchmark by {BENCHMARK_GAP:g}+ points")

    return reasons


def identify_review_candidates(funds: Sequence[ScoredFund]) -> list[ReviewCandidate]:
    """
    Flag funds matching any review heuristic.

    Args:
        funds: output of `calculate_scores`

    Returns:
        ReviewCandidate per flagged fund, in input order
    """
    by_ticker, by_class = _benchmark_scores(funds)
    candidates = []
    for fund in funds:
        reasons = review_reasons(fund, _benchmark_score_for(fund, by_ticker, by_class))
        if reasons:
            candidates.append(ReviewCandidate(fund=fund, reasons=reasons))
    return candidates
