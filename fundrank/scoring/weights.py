"""Scoring weight resolution with fund > asset class > global > default precedence.

A `WeightResolver` is an immutable snapshot built from the enabled rows of
the active weight profile. Rebuilding it (for example after an admin edits
a profile) means constructing a new resolver; nothing mutates an existing
one mid-computation.

Usage:
    resolver = await build_weights_resolver(scoring_profiles_orm)
    weight = resolver.resolve(fund, "sharpe_ratio_3y")
    resolution = resolver.source(fund, "sharpe_ratio_3y")  # weight + tier
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from functools import lru_cache
from typing import Any, Iterable, Mapping, Optional, Protocol

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from fundrank.core.config import settings
from fundrank.core.exceptions import WeightSourceError
from fundrank.core.logging import get_logger

from .metrics import DEFAULT_WEIGHTS, FundRecord, clean_symbol


logger = get_logger("scoring.weights")

VIRTUAL_PROFILE_ID = "__virtual_default__"


class WeightScope(str, Enum):
    """Scope a weight row applies to."""
    GLOBAL = "global"
    ASSET_CLASS = "asset_class"
    FUND = "fund"


class WeightSourceTier(str, Enum):
    """Which precedence tier served a weight."""
    FUND = "fund"
    ASSET_CLASS = "asset_class"
    GLOBAL = "global"
    DEFAULT = "default"
    NONE = "none"


class WeightRow(BaseModel):
    """One row of a weight profile."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    metric_key: str
    scope: WeightScope = WeightScope.GLOBAL
    scope_value: Optional[str] = None
    weight: float = Field(allow_inf_nan=False)
    enabled: bool = True
    profile_id: Optional[str] = None

    @field_validator("metric_key")
    @classmethod
    def strip_metric_key(cls, v: str) -> str:
        return v.strip()


class WeightSource(Protocol):
    """Async collaborator that reads weight profiles from a backing store."""

    async def get_profile_by_name_or_id(self, name_or_id: str) -> dict[str, Any] | None: ...

    async def get_default_profile(self) -> dict[str, Any] | None: ...

    async def list_weights(self, profile_id: str) -> list[dict[str, Any]]: ...


@dataclass(frozen=True)
class WeightResolution:
    """Resolved weight plus the tier and lookup key that served it."""

    weight: Optional[float]
    source: WeightSourceTier
    key: str

    def to_dict(self) -> dict[str, Any]:
        return {"weight": self.weight, "source": self.source.value, "key": self.key}


def _coerce_fund(fund: FundRecord | Mapping[str, Any]) -> FundRecord:
    return fund if isinstance(fund, FundRecord) else FundRecord.from_mapping(fund)


def default_weight_rows(profile_id: str = VIRTUAL_PROFILE_ID) -> list[WeightRow]:
    """Virtual global profile synthesized from the built-in defaults."""
    return [
        WeightRow(metric_key=metric, scope=WeightScope.GLOBAL, weight=weight, profile_id=profile_id)
        for metric, weight in DEFAULT_WEIGHTS.items()
    ]


class WeightResolver:
    """Immutable precedence lookup over fund, asset-class and global maps."""

    def __init__(
        self,
        rows: Iterable[WeightRow | Mapping[str, Any]] | None = None,
        profile: Mapping[str, Any] | None = None,
        defaults: Mapping[str, float] | None = None,
    ):
        self._defaults: dict[str, float] = dict(DEFAULT_WEIGHTS if defaults is None else defaults)
        self.profile: dict[str, Any] = dict(profile) if profile else {
            "id": VIRTUAL_PROFILE_ID,
            "name": "Default (virtual)",
        }

        parsed = _parse_rows(rows or [])
        if not parsed:
            parsed = default_weight_rows(self.profile.get("id", VIRTUAL_PROFILE_ID))
            self._defaults_only = True
        else:
            self._defaults_only = False

        self._global: dict[str, float] = {}
        self._class: dict[tuple[str, str], float] = {}
        self._fund: dict[tuple[str, str], float] = {}

        for row in parsed:
            if not row.enabled:
                continue
            if row.scope is WeightScope.GLOBAL:
                self._global[row.metric_key] = row.weight
            elif row.scope is WeightScope.ASSET_CLASS:
                asset_class = (row.scope_value or "").strip()
                if asset_class:
                    self._class[(asset_class, row.metric_key)] = row.weight
            elif row.scope is WeightScope.FUND:
                ticker = clean_symbol(row.scope_value)
                if ticker:
                    self._fund[(ticker, row.metric_key)] = row.weight

    @property
    def uses_virtual_defaults(self) -> bool:
        return self._defaults_only

    def source(self, fund: FundRecord | Mapping[str, Any], metric: str) -> WeightResolution:
        """Resolve a weight and report which tier served it."""
        record = _coerce_fund(fund)

        if record.ticker and (record.ticker, metric) in self._fund:
            return WeightResolution(
                self._fund[(record.ticker, metric)],
                WeightSourceTier.FUND,
                f"{record.ticker}::{metric}",
            )

        if record.asset_class and (record.asset_class, metric) in self._class:
            return WeightResolution(
                self._class[(record.asset_class, metric)],
                WeightSourceTier.ASSET_CLASS,
                f"{record.asset_class}::{metric}",
            )

        if metric in self._global:
            return WeightResolution(self._global[metric], WeightSourceTier.GLOBAL, metric)

        if metric in self._defaults:
            return WeightResolution(self._defaults[metric], WeightSourceTier.DEFAULT, metric)

        return WeightResolution(None, WeightSourceTier.NONE, metric)

    def resolve(self, fund: FundRecord | Mapping[str, Any], metric: str) -> Optional[float]:
        """Effective weight for (fund, metric), or None when nothing is configured."""
        return self.source(fund, metric).weight

    def debug_snapshot(self) -> dict[str, Any]:
        """Profile identity and row counts per tier."""
        return {
            "profile": dict(self.profile),
            "counts": {
                "global": len(self._global),
                "asset_class": len(self._class),
                "fund": len(self._fund),
            },
        }


def _parse_rows(rows: Iterable[WeightRow | Mapping[str, Any]]) -> list[WeightRow]:
    parsed: list[WeightRow] = []
    for row in rows:
        if isinstance(row, WeightRow):
            parsed.append(row)
            continue
        try:
            parsed.append(WeightRow.model_validate(row))
        except ValidationError as e:
            logger.warning(f"Skipping invalid weight row {row!r}: {e.error_count()} error(s)")
    return parsed


async def load_profile_rows(
    source: WeightSource,
    profile: str | None = None,
) -> tuple[dict[str, Any] | None, list[dict[str, Any]]]:
    """
    Read the active profile and its weight rows from the store.

    Profile selection: `profile` argument, then the SCORING_PROFILE setting,
    then the store's default profile.

    Raises:
        WeightSourceError: the store could not be read
    """
    wanted = profile or settings.scoring_profile
    try:
        active = None
        if wanted:
            active = await source.get_profile_by_name_or_id(wanted)
            if active is None:
                logger.warning(f"Scoring profile '{wanted}' not found, using default profile")
        if active is None:
            active = await source.get_default_profile()

        rows: list[dict[str, Any]] = []
        if active and active.get("id"):
            rows = await source.list_weights(active["id"])
    except Exception as e:
        raise WeightSourceError(details={"profile": wanted, "error": str(e)}) from e
    return active, rows


async def build_weights_resolver(
    source: WeightSource | None = None,
    profile: str | None = None,
) -> WeightResolver:
    """
    Load the active profile and build a resolver snapshot.

    A missing store, missing profile or empty profile all resolve to the
    built-in defaults; a failing store is logged and also falls back to
    defaults.
    """
    if source is None:
        return WeightResolver()

    try:
        active, rows = await load_profile_rows(source, profile)
    except WeightSourceError as e:
        logger.warning(f"Weight profile load failed, falling back to defaults: {e.details.get('error')}")
        return WeightResolver()

    resolver = WeightResolver(rows, profile=active)
    logger.info(f"Built weights resolver: {resolver.debug_snapshot()}")
    return resolver


class WeightResolverCache:
    """Process-wide resolver holder, refreshed only by an explicit reload."""

    def __init__(self, source: WeightSource | None = None, profile: str | None = None):
        self._source = source
        self._profile = profile
        self._resolver: WeightResolver | None = None
        self._lock = asyncio.Lock()

    @property
    def current(self) -> WeightResolver | None:
        return self._resolver

    async def get(self) -> WeightResolver:
        """Cached resolver, building it on first use."""
        if self._resolver is None:
            return await self.reload()
        return self._resolver

    async def reload(self) -> WeightResolver:
        """Build a new snapshot and swap it in."""
        async with self._lock:
            resolver = await build_weights_resolver(self._source, self._profile)
            self._resolver = resolver
            return resolver


@lru_cache(maxsize=1)
def get_weights_resolver_cache() -> WeightResolverCache:
    """Process-wide resolver cache backed by the scoring profiles repository."""
    from fundrank.repositories import scoring_profiles_orm

    return WeightResolverCache(scoring_profiles_orm)


@dataclass
class WeightValidationResult:
    """Outcome of `validate_weights`."""

    is_valid: bool = True
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"is_valid": self.is_valid, "errors": self.errors, "warnings": self.warnings}


def validate_weights(weights: Any) -> WeightValidationResult:
    """
    Check a metric -> weight mapping before it is saved to a profile.

    Errors block saving; warnings flag unknown metrics, weights with
    |w| > 1 and a total absolute weight of 0 or above 2.
    """
    result = WeightValidationResult()

    if not isinstance(weights, Mapping):
        result.is_valid = False
        result.errors.append("Weights must be a mapping of metric to weight")
        return result

    total = 0.0
    for metric, weight in weights.items():
        if metric not in DEFAULT_WEIGHTS:
            result.warnings.append(f"Unknown metric: {metric}")

        if isinstance(weight, bool) or not isinstance(weight, (int, float)) or weight != weight:
            result.is_valid = False
            result.errors.append(f"Invalid weight for {metric}: must be a number")
            continue

        if abs(weight) > 1:
            result.warnings.append(f"Large weight for {metric}: {weight} (>1.0)")

        total += abs(weight)

    if total == 0:
        result.warnings.append("All weights are zero - funds will not be scored")
    elif total > 2:
        result.warnings.append(f"High total weight: {total:.2f} (consider normalizing)")

    return result
