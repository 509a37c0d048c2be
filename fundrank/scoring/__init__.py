"""Fund peer-ranking engine.

This module provides:
- Metric extraction from live and legacy record shapes
- Weight resolution with fund > asset class > global > default precedence
- Peer statistics, winsorized and shrunk Z-scores per asset class
- Missing-metric reweighting and the tiny-class fallback
- Linear and robust 0-100 scaling with in-class percentiles
- Review candidate flags and cross-implementation score comparison
"""

from .config import ScoringPolicy, ScoringSettings, get_scoring_policy
from .consistency import ConsistencyReport, compare_scores
from .engine import (
    ClassSummary,
    FundScores,
    ScoredFund,
    calculate_scores,
    generate_class_summary,
    score_funds,
)
from .metrics import (
    DEFAULT_WEIGHTS,
    METRIC_KEYS,
    CanonicalMetrics,
    FundRecord,
    extract_metrics,
    parse_metric_value,
)
from .review import ReviewCandidate, identify_review_candidates
from .weights import (
    WeightResolver,
    WeightResolverCache,
    build_weights_resolver,
    get_weights_resolver_cache,
    load_profile_rows,
    validate_weights,
)


__all__ = [
    "DEFAULT_WEIGHTS",
    "METRIC_KEYS",
    "CanonicalMetrics",
    "ClassSummary",
    "ConsistencyReport",
    "FundRecord",
    "FundScores",
    "ReviewCandidate",
    "ScoredFund",
    "ScoringPolicy",
    "ScoringSettings",
    "WeightResolver",
    "WeightResolverCache",
    "build_weights_resolver",
    "calculate_scores",
    "compare_scores",
    "extract_metrics",
    "generate_class_summary",
    "get_scoring_policy",
    "get_weights_resolver_cache",
    "identify_review_candidates",
    "load_profile_rows",
    "parse_metric_value",
    "score_funds",
    "validate_weights",
]
