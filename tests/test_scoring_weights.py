"""Tests for weight resolution, profile loading and validation.

Precedence: fund > asset class > global > built-in default.
"""

from __future__ import annotations

import math
from typing import Any
from unittest.mock import AsyncMock

import pytest

import fundrank.scoring.weights as weights_module
from fundrank.core.exceptions import WeightSourceError
from fundrank.scoring.config import ScoringPolicy
from fundrank.scoring.engine import calculate_scores
from fundrank.scoring.metrics import DEFAULT_WEIGHTS, FundRecord
from fundrank.scoring.weights import (
    WeightResolver,
    WeightResolverCache,
    WeightSourceTier,
    build_weights_resolver,
    load_profile_rows,
    validate_weights,
)


PRECEDENCE_ROWS = [
    {"metric_key": "one_year", "scope": "global", "weight": 0.11},
    {"metric_key": "one_year", "scope": "asset_class", "scope_value": "Large Cap", "weight": 0.22},
    {"metric_key": "one_year", "scope": "fund", "scope_value": "abc", "weight": 0.33},
]


def _fund(ticker: str, asset_class: str) -> FundRecord:
    return FundRecord(ticker=ticker, asset_class=asset_class)


class FakeWeightSource:
    """In-memory stand-in for the scoring profiles repository."""

    def __init__(self, profiles: list[dict[str, Any]], weights: dict[str, list[dict[str, Any]]]):
        self.profiles = profiles
        self.weights = weights
        self.list_calls = 0

    async def get_profile_by_name_or_id(self, name_or_id: str) -> dict[str, Any] | None:
        return next(
            (p for p in self.profiles if name_or_id in (p["id"], p["name"])),
            None,
        )

    async def get_default_profile(self) -> dict[str, Any] | None:
        return next((p for p in self.profiles if p.get("is_default")), None)

    async def list_weights(self, profile_id: str) -> list[dict[str, Any]]:
        self.list_calls += 1
        return list(self.weights.get(profile_id, []))


class TestWeightPrecedence:
    """Fund > asset class > global > default."""

    def test_fund_override_wins(self):
        resolver = WeightResolver(PRECEDENCE_ROWS)
        resolution = resolver.source(_fund("ABC", "Large Cap"), "one_year")
        assert resolution.weight == 0.33
        assert resolution.source is WeightSourceTier.FUND
        assert resolution.key == "ABC::one_year"

    def test_asset_class_beats_global(self):
        resolver = WeightResolver(PRECEDENCE_ROWS)
        resolution = resolver.source(_fund("XYZ", "Large Cap"), "one_year")
        assert resolution.weight == 0.22
        assert resolution.source is WeightSourceTier.ASSET_CLASS

    def test_global_applies_elsewhere(self):
        resolver = WeightResolver(PRECEDENCE_ROWS)
        assert resolver.resolve(_fund("XYZ", "Bond"), "one_year") == 0.11

    def test_default_fills_unconfigured_metrics(self):
        resolver = WeightResolver(PRECEDENCE_ROWS)
        resolution = resolver.source(_fund("XYZ", "Bond"), "three_year")
        assert resolution.weight == DEFAULT_WEIGHTS["three_year"]
        assert resolution.source is WeightSourceTier.DEFAULT

    def test_unknown_metric_resolves_to_none(self):
        resolver = WeightResolver(PRECEDENCE_ROWS)
        resolution = resolver.source(_fund("XYZ", "Bond"), "made_up")
        assert resolution.weight is None
        assert resolution.source is WeightSourceTier.NONE

    def test_accepts_raw_mappings_as_funds(self):
        resolver = WeightResolver(PRECEDENCE_ROWS)
        fund = {"Symbol": "abc", "Asset Class": "Large Cap"}
        assert resolver.resolve(fund, "one_year") == 0.33

    def test_disabled_rows_are_ignored(self):
        rows = [
            {"metric_key": "one_year", "scope": "global", "weight": 0.11},
            {"metric_key": "one_year", "scope": "fund", "scope_value": "ABC", "weight": 0.9, "enabled": False},
        ]
        resolver = WeightResolver(rows)
        assert resolver.resolve(_fund("ABC", "Large Cap"), "one_year") == 0.11

    def test_invalid_rows_are_skipped(self):
        rows = [
            {"metric_key": "one_year", "scope": "global"},
            {"metric_key": "one_year", "scope": "sideways", "weight": 1.0},
            {"metric_key": "three_year", "scope": "global", "weight": 0.4},
        ]
        resolver = WeightResolver(rows)
        assert resolver.resolve(_fund("A", "X"), "three_year") == 0.4
        assert resolver.source(_fund("A", "X"), "one_year").source is WeightSourceTier.DEFAULT

    @pytest.mark.parametrize("bad", [float("nan"), float("inf"), float("-inf"), "nan"])
    def test_non_finite_weights_are_skipped(self, bad):
        only_bad = WeightResolver([{"metric_key": "one_year", "scope": "global", "weight": bad}])
        assert only_bad.uses_virtual_defaults
        assert only_bad.resolve(_fund("A", "X"), "one_year") == DEFAULT_WEIGHTS["one_year"]

        mixed = WeightResolver([
            {"metric_key": "one_year", "scope": "global", "weight": bad},
            {"metric_key": "three_year", "scope": "global", "weight": 0.4},
        ])
        assert mixed.resolve(_fund("A", "X"), "three_year") == 0.4
        assert mixed.source(_fund("A", "X"), "one_year").source is WeightSourceTier.DEFAULT

    def test_non_finite_weight_does_not_poison_scores(self):
        resolver = WeightResolver([
            {"metric_key": "one_year", "scope": "global", "weight": float("nan")},
            {"metric_key": "three_year", "scope": "global", "weight": 0.5},
        ])
        records = [
            {"ticker": "A", "asset_class_name": "X", "one_year_return": 1.0, "three_year_return": 2.0},
            {"ticker": "B", "asset_class_name": "X", "one_year_return": 3.0, "three_year_return": 4.0},
            {"ticker": "C", "asset_class_name": "X", "one_year_return": 5.0, "three_year_return": 6.0},
        ]
        scored = calculate_scores(records, resolver, ScoringPolicy())

        assert all(math.isfinite(s.scores.raw_reweighted) for s in scored)
        assert [s.final for s in scored] != [100.0, 100.0, 100.0]
        assert scored[0].final < 50.0 < scored[2].final

    def test_empty_rows_use_virtual_defaults(self):
        resolver = WeightResolver([])
        assert resolver.uses_virtual_defaults
        for metric, weight in DEFAULT_WEIGHTS.items():
            assert resolver.resolve(_fund("A", "X"), metric) == weight

    def test_debug_snapshot_counts(self):
        snapshot = WeightResolver(PRECEDENCE_ROWS).debug_snapshot()
        assert snapshot["counts"] == {"global": 1, "asset_class": 1, "fund": 1}


class TestBuildWeightsResolver:
    """Async profile loading."""

    @pytest.mark.asyncio
    async def test_no_source_uses_defaults(self):
        resolver = await build_weights_resolver(None)
        assert resolver.uses_virtual_defaults

    @pytest.mark.asyncio
    async def test_named_profile(self):
        source = FakeWeightSource(
            profiles=[
                {"id": "p1", "name": "default", "is_default": True},
                {"id": "p2", "name": "growth", "is_default": False},
            ],
            weights={
                "p1": [{"metric_key": "one_year", "scope": "global", "weight": 0.1}],
                "p2": [{"metric_key": "one_year", "scope": "global", "weight": 0.7}],
            },
        )
        resolver = await build_weights_resolver(source, profile="growth")
        assert resolver.profile["id"] == "p2"
        assert resolver.resolve(_fund("A", "X"), "one_year") == 0.7

    @pytest.mark.asyncio
    async def test_profile_from_settings(self, monkeypatch):
        monkeypatch.setattr(weights_module.settings, "scoring_profile", "growth")
        source = FakeWeightSource(
            profiles=[{"id": "p2", "name": "growth", "is_default": False}],
            weights={"p2": [{"metric_key": "alpha_5y", "scope": "global", "weight": 0.3}]},
        )
        resolver = await build_weights_resolver(source)
        assert resolver.resolve(_fund("A", "X"), "alpha_5y") == 0.3

    @pytest.mark.asyncio
    async def test_missing_profile_falls_back_to_default_profile(self):
        source = FakeWeightSource(
            profiles=[{"id": "p1", "name": "default", "is_default": True}],
            weights={"p1": [{"metric_key": "one_year", "scope": "global", "weight": 0.5}]},
        )
        resolver = await build_weights_resolver(source, profile="does-not-exist")
        assert resolver.profile["id"] == "p1"
        assert resolver.resolve(_fund("A", "X"), "one_year") == 0.5

    @pytest.mark.asyncio
    async def test_empty_profile_uses_defaults(self):
        source = FakeWeightSource(
            profiles=[{"id": "p1", "name": "default", "is_default": True}],
            weights={},
        )
        resolver = await build_weights_resolver(source)
        assert resolver.uses_virtual_defaults

    @pytest.mark.asyncio
    async def test_loader_failure_falls_back_to_defaults(self):
        source = AsyncMock()
        source.get_profile_by_name_or_id.side_effect = ConnectionError("db down")
        source.get_default_profile.side_effect = ConnectionError("db down")

        resolver = await build_weights_resolver(source, profile="growth")
        assert resolver.uses_virtual_defaults
        assert resolver.resolve(_fund("A", "X"), "five_year") == DEFAULT_WEIGHTS["five_year"]

    @pytest.mark.asyncio
    async def test_load_profile_rows_wraps_store_failures(self):
        source = AsyncMock()
        source.get_profile_by_name_or_id.return_value = {"id": "p2", "name": "growth"}
        source.list_weights.side_effect = ConnectionError("db down")

        with pytest.raises(WeightSourceError) as exc_info:
            await load_profile_rows(source, profile="growth")

        err = exc_info.value
        assert err.error_code == "WEIGHT_SOURCE_ERROR"
        assert err.details == {"profile": "growth", "error": "db down"}
        assert isinstance(err.__cause__, ConnectionError)

    @pytest.mark.asyncio
    async def test_load_profile_rows(self):
        source = FakeWeightSource(
            profiles=[{"id": "p1", "name": "default", "is_default": True}],
            weights={"p1": [{"metric_key": "one_year", "scope": "global", "weight": 0.5}]},
        )
        active, rows = await load_profile_rows(source)
        assert active["id"] == "p1"
        assert rows == [{"metric_key": "one_year", "scope": "global", "weight": 0.5}]


class TestWeightResolverCache:
    """Explicit reload semantics."""

    @pytest.mark.asyncio
    async def test_get_builds_once(self):
        source = FakeWeightSource(
            profiles=[{"id": "p1", "name": "default", "is_default": True}],
            weights={"p1": [{"metric_key": "one_year", "scope": "global", "weight": 0.5}]},
        )
        cache = WeightResolverCache(source)
        assert cache.current is None

        first = await cache.get()
        second = await cache.get()
        assert first is second
        assert source.list_calls == 1

    @pytest.mark.asyncio
    async def test_reload_swaps_snapshot(self):
        source = FakeWeightSource(
            profiles=[{"id": "p1", "name": "default", "is_default": True}],
            weights={"p1": [{"metric_key": "one_year", "scope": "global", "weight": 0.5}]},
        )
        cache = WeightResolverCache(source)
        before = await cache.get()

        source.weights["p1"] = [{"metric_key": "one_year", "scope": "global", "weight": 0.9}]
        assert (await cache.get()).resolve(_fund("A", "X"), "one_year") == 0.5

        after = await cache.reload()
        assert after is not before
        assert after.resolve(_fund("A", "X"), "one_year") == 0.9
        assert before.resolve(_fund("A", "X"), "one_year") == 0.5
        assert cache.current is after


class TestValidateWeights:
    """Pre-save weight validation."""

    def test_valid_defaults(self):
        result = validate_weights(DEFAULT_WEIGHTS)
        assert result.is_valid
        assert result.errors == []

    def test_non_numeric_weight_is_error(self):
        result = validate_weights({"one_year": "heavy"})
        assert not result.is_valid
        assert any("one_year" in e for e in result.errors)

    def test_unknown_metric_is_warning(self):
        result = validate_weights({"bogus": 0.1})
        assert result.is_valid
        assert any("Unknown metric" in w for w in result.warnings)

    def test_large_and_zero_totals_warn(self):
        assert any("Large weight" in w for w in validate_weights({"one_year": 1.5}).warnings)
        assert any("zero" in w for w in validate_weights({"one_year": 0}).warnings)
        assert any("High total" in w for w in validate_weights({"one_year": 0.9, "three_year": -0.9, "five_year": 0.9}).warnings)

    def test_non_mapping_is_error(self):
        result = validate_weights([0.1, 0.2])
        assert not result.is_valid
