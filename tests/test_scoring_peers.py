"""Tests for per-class peer statistics."""

from __future__ import annotations

import pytest

from fundrank.scoring.config import ScoringPolicy
from fundrank.scoring.metrics import METRIC_KEYS, CanonicalMetrics
from fundrank.scoring.peers import (
    ADAPTIVE_MIN_SAMPLE,
    compute_metric_statistics,
    compute_peer_statistics,
)


class TestMetricStatistics:
    """Single-column statistics."""

    def test_basic_statistics(self):
        stats = compute_metric_statistics([1.0, 2.0, 3.0, None], class_size=4, policy=ScoringPolicy())
        assert stats.mean == pytest.approx(2.0)
        assert stats.stddev == pytest.approx((2 / 3) ** 0.5)
        assert stats.count == 3
        assert stats.coverage == pytest.approx(0.75)
        assert stats.min == 1.0
        assert stats.max == 3.0
        assert not stats.is_degenerate

    def test_single_value_is_degenerate(self):
        stats = compute_metric_statistics([5.0, None], class_size=2, policy=ScoringPolicy())
        assert stats.count == 1
        assert stats.is_degenerate

    def test_identical_values_are_degenerate(self):
        stats = compute_metric_statistics([4.0, 4.0, 4.0], class_size=3, policy=ScoringPolicy())
        assert stats.stddev == 0.0
        assert stats.is_degenerate

    def test_empty_column(self):
        stats = compute_metric_statistics([], class_size=0, policy=ScoringPolicy())
        assert stats.count == 0
        assert stats.coverage == 0.0
        assert stats.min is None

    def test_quantiles_only_with_adaptive_policy(self):
        values = [float(i) for i in range(ADAPTIVE_MIN_SAMPLE)]
        plain = compute_metric_statistics(values, len(values), ScoringPolicy())
        assert not plain.has_quantile_anchors

        adaptive = compute_metric_statistics(
            values, len(values), ScoringPolicy(adaptive_winsor_enabled=True, winsor_q_lo=0.05, winsor_q_hi=0.95)
        )
        assert adaptive.has_quantile_anchors
        assert adaptive.q_lo == pytest.approx(0.95)
        assert adaptive.q_hi == pytest.approx(18.05)

    def test_quantiles_need_minimum_sample(self):
        values = [float(i) for i in range(ADAPTIVE_MIN_SAMPLE - 1)]
        stats = compute_metric_statistics(values, len(values), ScoringPolicy(adaptive_winsor_enabled=True))
        assert not stats.has_quantile_anchors


class TestPeerStatistics:
    """Whole-class statistics."""

    def test_covers_every_metric(self):
        peers = [CanonicalMetrics(one_year=1.0), CanonicalMetrics(one_year=3.0)]
        stats = compute_peer_statistics(peers, class_size=3, policy=ScoringPolicy())
        assert set(stats) == set(METRIC_KEYS)
        assert stats["one_year"].mean == 2.0
        assert stats["one_year"].coverage == pytest.approx(2 / 3)
        assert stats["ten_year"].count == 0

    def test_to_dict(self):
        stats = compute_metric_statistics([1.0, 2.0], 2, ScoringPolicy())
        data = stats.to_dict()
        assert data["count"] == 2
        assert data["coverage"] == 1.0
