"""Compare engine output against a separately computed set of scores.

The server-side scoring routine must agree with this engine within a small
tolerance on identical inputs. `compare_scores` matches funds by ticker and
classifies each pair as exact, within tolerance, or divergent.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Mapping, Optional

from fundrank.core.logging import get_logger

from .engine import ScoredFund
from .metrics import clean_symbol, parse_metric_value

logger = get_logger("scoring.consistency")

DEFAULT_TOLERANCE = 0.1


class MatchStatus(str, Enum):
    EXACT = "exact"
    TOLERANCE = "tolerance"
    DIVERGENT = "divergent"


@dataclass(frozen=True)
class ScoreComparison:
    ticker: str
    local: float
    remote: float
    difference: float
    status: MatchStatus

    def to_dict(self) -> dict[str, Any]:
        return {
            "ticker": self.ticker,
            "local": self.local,
            "remote": self.remote,
            "difference": round(self.difference, 3),
            "status": self.status.value,
        }


@dataclass
class ConsistencyReport:
    """Outcome of a local vs remote comparison."""

    tolerance: float
    comparisons: list[ScoreComparison] = field(default_factory=list)
    missing_remote: list[str] = field(default_factory=list)
    missing_local: list[str] = field(default_factory=list)

    @property
    def matched(self) -> int:
        return len(self.comparisons)

    @property
    def exact_matches(self) -> int:
        return sum(1 for c in self.comparisons if c.status is MatchStatus.EXACT)

    @property
    def within_tolerance(self) -> int:
        return sum(1 for c in self.comparisons if c.status is MatchStatus.TOLERANCE)

    @property
    def divergences(self) -> list[ScoreComparison]:
        return [c for c in self.comparisons if c.status is MatchStatus.DIVERGENT]

    @property
    def max_abs_diff(self) -> float:
        return max((c.difference for c in self.comparisons), default=0.0)

    @property
    def is_consistent(self) -> bool:
        return not self.divergences and not self.missing_remote and not self.missing_local

    def to_dict(self) -> dict[str, Any]:
        return {
            "tolerance": self.tolerance,
            "matched": self.matched,
            "exact_matches": self.exact_matches,
            "within_tolerance": self.within_tolerance,
            "divergences": [c.to_dict() for c in self.divergences],
            "missing_remote": list(self.missing_remote),
            "missing_local": list(self.missing_local),
            "max_abs_diff": round(self.max_abs_diff, 3),
            "is_consistent": self.is_consistent,
        }


def _final_from_row(row: Any) -> Optional[float]:
    if isinstance(row, ScoredFund):
        return row.final
    if isinstance(row, Mapping):
        if "score_final" in row:
            return parse_metric_value(row["score_final"])
        if "final" in row:
            return parse_metric_value(row["final"])
        scores = row.get("scores")
        if isinstance(scores, Mapping):
            return parse_metric_value(scores.get("final"))
    return None


def _ticker_from_row(row: Any) -> str:
    if isinstance(row, ScoredFund):
        return row.ticker
    if isinstance(row, Mapping):
        return clean_symbol(row.get("ticker") or row.get("symbol") or row.get("Symbol"))
    return ""


def _score_map(scores: Mapping[str, Any] | Iterable[Any]) -> dict[str, float]:
    """Ticker -> final score from a mapping or from scored rows."""
    result: dict[str, float] = {}
    if isinstance(scores, Mapping):
        for ticker, value in scores.items():
            final = parse_metric_value(value)
            if final is not None and clean_symbol(ticker):
                result[clean_symbol(ticker)] = final
        return result

    for row in scores:
        ticker = _ticker_from_row(row)
        final = _final_from_row(row)
        if ticker and final is not None:
            result.setdefault(ticker, final)
    return result


def compare_scores(
    local: Mapping[str, Any] | Iterable[Any],
    remote: Mapping[str, Any] | Iterable[Any],
    tolerance: float = DEFAULT_TOLERANCE,
) -> ConsistencyReport:
    """
    Match two score sets by ticker and report disagreements.

    Either side may be a ticker -> final mapping, a list of ScoredFund, or
    rows carrying `ticker` plus `score_final`, `final` or `scores.final`.
    """
    local_map = _score_map(local)
    remote_map = _score_map(remote)
    report = ConsistencyReport(tolerance=tolerance)

    for ticker, local_final in local_map.items():
        if ticker not in remote_map:
            report.missing_remote.append(ticker)
            continue
        remote_final = remote_map[ticker]
        diff = abs(local_final - remote_final)
        if diff == 0:
            status = MatchStatus.EXACT
        elif diff <= tolerance:
            status = MatchStatus.TOLERANCE
        else:
            status = MatchStatus.DIVERGENT
        report.comparisons.append(
            ScoreComparison(ticker, local_final, remote_final, diff, status)
        )

    report.missing_local = [t for t in remote_map if t not in local_map]

    if not report.is_consistent:
        logger.warning(
            f"Score mismatch: {len(report.divergences)} divergent, "
            f"{len(report.missing_remote)} missing remote, "
            f"{len(report.missing_local)} missing local (max diff {report.max_abs_diff:.3f})"
        )
    return report
