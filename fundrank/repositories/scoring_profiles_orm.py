"""Scoring profile repository using SQLAlchemy ORM.

This module satisfies the weight source contract used by
`fundrank.scoring.weights.build_weights_resolver`:

    from fundrank.repositories import scoring_profiles_orm
    from fundrank.scoring.weights import build_weights_resolver

    resolver = await build_weights_resolver(scoring_profiles_orm)
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import or_, select

from fundrank.core.logging import get_logger
from fundrank.database.connection import get_session
from fundrank.database.orm import ScoringProfile, ScoringWeight


logger = get_logger("repositories.scoring_profiles_orm")


def _profile_to_dict(profile: ScoringProfile) -> dict[str, Any]:
    return {
        "id": profile.id,
        "name": profile.name,
        "description": profile.description,
        "is_default": profile.is_default,
    }


def _weight_to_dict(row: ScoringWeight) -> dict[str, Any]:
    return {
        "profile_id": row.profile_id,
        "metric_key": row.metric_key,
        "scope": row.scope,
        "scope_value": row.scope_value,
        "weight": float(row.weight),
        "enabled": row.enabled,
    }


async def get_profile_by_name_or_id(name_or_id: str) -> dict[str, Any] | None:
    """Look up a profile by exact id or name."""
    async with get_session() as session:
        result = await session.execute(
            select(ScoringProfile)
            .where(or_(ScoringProfile.id == name_or_id, ScoringProfile.name == name_or_id))
            .limit(1)
        )
        profile = result.scalar_one_or_none()
        return _profile_to_dict(profile) if profile else None


async def get_default_profile() -> dict[str, Any] | None:
    """Get the profile flagged as default, if any."""
    async with get_session() as session:
        result = await session.execute(
            select(ScoringProfile)
            .where(ScoringProfile.is_default.is_(True))
            .order_by(ScoringProfile.created_at)
            .limit(1)
        )
        profile = result.scalar_one_or_none()
        return _profile_to_dict(profile) if profile else None


async def list_weights(profile_id: str) -> list[dict[str, Any]]:
    """List all weight rows of a profile, enabled or not."""
    async with get_session() as session:
        result = await session.execute(
            select(ScoringWeight)
            .where(ScoringWeight.profile_id == profile_id)
            .order_by(ScoringWeight.scope, ScoringWeight.metric_key, ScoringWeight.id)
        )
        rows = [_weight_to_dict(r) for r in result.scalars().all()]
        logger.debug(f"Loaded {len(rows)} weight rows for profile {profile_id}")
        return rows
