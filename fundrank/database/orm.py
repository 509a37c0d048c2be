"""SQLAlchemy ORM models for scoring profiles and weight overrides.

Usage:
    from fundrank.database.orm import ScoringProfile, ScoringWeight
    from fundrank.database.connection import get_session

    async with get_session() as session:
        profile = await session.get(ScoringProfile, profile_id)
"""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    MetaData,
    Numeric,
    String,
    Text,
    func,
    text,
)
from sqlalchemy.orm import (
    DeclarativeBase,
    Mapped,
    mapped_column,
    relationship,
)


# Naming convention for constraints and indexes (deterministic names for migrations)
NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


class Base(DeclarativeBase):
    """Base class for all ORM models with naming convention."""
    metadata = MetaData(naming_convention=NAMING_CONVENTION)


class ScoringProfile(Base):
    """Named collection of weight overrides."""
    __tablename__ = "scoring_profiles"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    is_default: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    weights: Mapped[list[ScoringWeight]] = relationship(back_populates="profile", cascade="all, delete-orphan")

    __table_args__ = (
        Index("idx_scoring_profiles_default", "is_default", postgresql_where=text("is_default = TRUE")),
    )


class ScoringWeight(Base):
    """Single (metric, scope, scope value) weight row of a profile."""
    __tablename__ = "scoring_weights"

    id: Mapped[int] = mapped_column(primary_key=True)
    profile_id: Mapped[str] = mapped_column(String(36), ForeignKey("scoring_profiles.id", ondelete="CASCADE"), nullable=False)
    metric_key: Mapped[str] = mapped_column(String(50), nullable=False)
    scope: Mapped[str] = mapped_column(String(20), nullable=False, default="global")
    scope_value: Mapped[str | None] = mapped_column(String(255))
    weight: Mapped[Decimal] = mapped_column(Numeric(8, 5), nullable=False)
    enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    profile: Mapped[ScoringProfile] = relationship(back_populates="weights")

    __table_args__ = (
        CheckConstraint("scope IN ('global', 'asset_class', 'fund')", name="scope_valid"),
        Index("idx_scoring_weights_profile", "profile_id"),
        Index("idx_scoring_weights_lookup", "profile_id", "scope", "metric_key"),
    )
