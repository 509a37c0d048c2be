"""Scoring policy configuration with flags and thresholds.

All flags are loaded from environment or settings once, with documented
defaults, then passed explicitly into every scoring call as an immutable
`ScoringPolicy`. The engine never reads the environment itself.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from fundrank.core.exceptions import ConfigurationError

from .metrics import METRIC_KEYS


# Two-tailed clamp probability per metric for static winsorization.
# Volatility and downside metrics clamp tighter than return metrics.
DEFAULT_WINSOR_LIMIT = 0.99
DEFAULT_WINSOR_LIMITS: dict[str, float] = {
    "std_dev_3y": 0.975,
    "std_dev_5y": 0.975,
    "down_capture_3y": 0.975,
    "up_capture_3y": 0.98,
    "sharpe_ratio_3y": 0.98,
    "expense_ratio": 0.98,
}


class ScoringSettings(BaseSettings):
    """Scoring flags from environment."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Outlier control
    scoring_enable_winsorization: bool = Field(
        default=False, description="Clamp Z-scores at per-metric static bounds"
    )
    scoring_enable_adaptive_winsor: bool = Field(
        default=False, description="Clamp Z-scores at empirical peer quantiles"
    )
    scoring_winsor_q_lo: float = Field(
        default=0.01, gt=0, lt=0.5, description="Low quantile anchor for adaptive winsorization"
    )
    scoring_winsor_q_hi: float = Field(
        default=0.99, gt=0.5, lt=1, description="High quantile anchor for adaptive winsorization"
    )

    # Coverage and small samples
    scoring_coverage_threshold: float = Field(
        default=0.4, ge=0, le=1, description="Minimum class coverage for a metric to count"
    )
    scoring_z_shrink_k: int = Field(
        default=10, ge=2, le=1000, description="Peer count at which Z-shrink stops"
    )

    # Output mapping
    scoring_enable_robust_scaling: bool = Field(
        default=False, description="Map raw scores through class percentile anchors"
    )

    # Tiny classes
    scoring_enable_tiny_class_fallback: bool = Field(
        default=False, description="Neutralize or shrink scores of thin peer groups"
    )
    scoring_tiny_class_min_peers: int = Field(default=5, ge=1, le=100)
    scoring_tiny_class_neutral_threshold: int = Field(default=2, ge=0, le=100)
    scoring_tiny_class_shrink: float = Field(default=0.25, ge=0, le=1)

    # Missing metrics
    scoring_missing_policy: Literal["reweight", "penalty"] = Field(
        default="reweight", description="How unscored metrics affect the raw score"
    )
    scoring_missing_penalty: float = Field(
        default=0.0, ge=0, description="Raw-score penalty per missing metric (penalty policy)"
    )

    # Derived metrics
    scoring_enable_bench_delta: bool = Field(
        default=False, description="Derive 1Y return delta versus the fund's benchmark"
    )


class ScoringPolicy(BaseModel):
    """Complete, immutable scoring policy.

    Build it with `ScoringPolicy.from_settings()` or construct directly in
    tests; invalid combinations raise immediately.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    winsorization_enabled: bool = False
    adaptive_winsor_enabled: bool = False
    winsor_q_lo: float = Field(default=0.01, gt=0, lt=0.5)
    winsor_q_hi: float = Field(default=0.99, gt=0.5, lt=1)
    winsor_limits: dict[str, float] = Field(default_factory=lambda: dict(DEFAULT_WINSOR_LIMITS))

    coverage_threshold: float = Field(default=0.4, ge=0, le=1)
    z_shrink_k: int = Field(default=10, ge=2)

    robust_scaling_enabled: bool = False

    tiny_class_fallback_enabled: bool = False
    tiny_class_min_peers: int = Field(default=5, ge=1)
    tiny_class_neutral_threshold: int = Field(default=2, ge=0)
    tiny_class_shrink: float = Field(default=0.25, ge=0, le=1)

    missing_policy: Literal["reweight", "penalty"] = "reweight"
    missing_penalty: float = Field(default=0.0, ge=0)

    bench_delta_enabled: bool = False

    @field_validator("winsor_limits")
    @classmethod
    def validate_winsor_limits(cls, v: dict[str, float]) -> dict[str, float]:
        for key, p in v.items():
            if key not in METRIC_KEYS:
                raise ValueError(f"unknown metric in winsor_limits: {key}")
            if not 0.5 < p < 1:
                raise ValueError(f"winsor limit for {key} must be in (0.5, 1), got {p}")
        return v

    @model_validator(mode="after")
    def validate_tiny_class_thresholds(self) -> ScoringPolicy:
        if self.tiny_class_neutral_threshold > self.tiny_class_min_peers:
            raise ValueError("tiny_class_neutral_threshold must not exceed tiny_class_min_peers")
        return self

    def winsor_limit(self, metric: str) -> float:
        return self.winsor_limits.get(metric, DEFAULT_WINSOR_LIMIT)

    @classmethod
    def from_settings(cls, settings: ScoringSettings | None = None) -> ScoringPolicy:
        """Create policy from settings, failing fast on invalid values."""
        try:
            if settings is None:
                settings = ScoringSettings()

            return cls(
                winsorization_enabled=settings.scoring_enable_winsorization,
                adaptive_winsor_enabled=settings.scoring_enable_adaptive_winsor,
                winsor_q_lo=settings.scoring_winsor_q_lo,
                winsor_q_hi=settings.scoring_winsor_q_hi,
                coverage_threshold=settings.scoring_coverage_threshold,
                z_shrink_k=settings.scoring_z_shrink_k,
                robust_scaling_enabled=settings.scoring_enable_robust_scaling,
                tiny_class_fallback_enabled=settings.scoring_enable_tiny_class_fallback,
                tiny_class_min_peers=settings.scoring_tiny_class_min_peers,
                tiny_class_neutral_threshold=settings.scoring_tiny_class_neutral_threshold,
                tiny_class_shrink=settings.scoring_tiny_class_shrink,
                missing_policy=settings.scoring_missing_policy,
                missing_penalty=settings.scoring_missing_penalty,
                bench_delta_enabled=settings.scoring_enable_bench_delta,
            )
        except ValidationError as e:
            raise ConfigurationError(
                details={"errors": [err["msg"] for err in e.errors()]},
            ) from e

    def with_overrides(self, **overrides: Any) -> ScoringPolicy:
        """Return a new validated policy with the given fields replaced."""
        if not overrides:
            return self
        try:
            return type(self).model_validate({**self.model_dump(), **overrides})
        except ValidationError as e:
            raise ConfigurationError(
                details={"errors": [err["msg"] for err in e.errors()]},
            ) from e


@lru_cache(maxsize=1)
def get_scoring_policy() -> ScoringPolicy:
    """Get cached scoring policy from settings."""
    return ScoringPolicy.from_settings()
