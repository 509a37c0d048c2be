"""Pytest configuration and fixtures."""

from __future__ import annotations

from typing import Any, Callable

import pytest

from fundrank.scoring.config import ScoringPolicy, get_scoring_policy
from fundrank.scoring.weights import WeightResolver, get_weights_resolver_cache


@pytest.fixture(autouse=True)
def reset_cached_singletons():
    """Clear lru_cache factories and the SQLAlchemy globals around each test."""
    import fundrank.database.connection as db_conn

    get_scoring_policy.cache_clear()
    get_weights_resolver_cache.cache_clear()
    db_conn._engine = None
    db_conn._session_factory = None

    yield

    get_scoring_policy.cache_clear()
    get_weights_resolver_cache.cache_clear()
    db_conn._engine = None
    db_conn._session_factory = None


@pytest.fixture
def make_fund() -> Callable[..., dict[str, Any]]:
    """Factory for flat fund records using live field names."""

    def _make(
        ticker: str,
        asset_class: str = "Large Cap Growth",
        *,
        is_benchmark: bool = False,
        is_recommended: bool = False,
        primary_benchmark: str | None = None,
        **fields: Any,
    ) -> dict[str, Any]:
        record: dict[str, Any] = {
            "ticker": ticker,
            "name": f"{ticker} Fund",
            "asset_class_name": asset_class,
            "is_benchmark": is_benchmark,
            "is_recommended": is_recommended,
        }
        if primary_benchmark:
            record["primary_benchmark"] = primary_benchmark
        record.update(fields)
        return record

    return _make


@pytest.fixture
def policy() -> ScoringPolicy:
    """Default policy with Z-shrink effectively disabled (K=2)."""
    return ScoringPolicy(z_shrink_k=2)


@pytest.fixture
def one_year_resolver() -> WeightResolver:
    """Resolver that only weights the 1-year return."""
    return WeightResolver(
        [{"metric_key": "one_year", "scope": "global", "weight": 1.0}],
        defaults={},
    )


@pytest.fixture
def large_cap_funds(make_fund) -> list[dict[str, Any]]:
    """Six large-cap funds with full return and risk data plus a benchmark."""
    return [
        make_fund("SPY", is_benchmark=True, one_year_return=12.0, three_year_return=9.0,
                  five_year_return=10.0, sharpe_ratio=0.9, standard_deviation_3y=15.0),
        make_fund("AAAAX", one_year_return=14.0, three_year_return=11.0, five_year_return=12.0,
                  sharpe_ratio=1.1, standard_deviation_3y=14.0, expense_ratio=0.45,
                  primary_benchmark="SPY"),
        make_fund("BBBBX", one_year_return=10.0, three_year_return=8.0, five_year_return=9.5,
                  sharpe_ratio=0.7, standard_deviation_3y=17.0, expense_ratio=0.95,
                  primary_benchmark="SPY"),
        make_fund("CCCCX", one_year_return=12.5, three_year_return=9.5, five_year_return=10.5,
                  sharpe_ratio=0.95, standard_deviation_3y=15.5, expense_ratio=0.60),
        make_fund("DDDDX", one_year_return=8.0, three_year_return=7.0, five_year_return=8.0,
                  sharpe_ratio=0.5, standard_deviation_3y=18.0, expense_ratio=1.10),
        make_fund("EEEEX", one_year_return=16.0, three_year_return=12.0, five_year_return=13.0,
                  sharpe_ratio=1.2, standard_deviation_3y=13.5, expense_ratio=0.30,
                  is_recommended=True),
    ]
