"""Database module with SQLAlchemy async sessions and ORM models.

Only the weight profile repository uses it; scoring runs on in-memory snapshots.
"""

from .connection import (
    close_sqlalchemy_engine,
    get_async_database_url,
    get_engine,
    get_session,
    init_sqlalchemy_engine,
)
from .orm import Base, ScoringProfile, ScoringWeight


__all__ = [
    "init_sqlalchemy_engine",
    "close_sqlalchemy_engine",
    "get_session",
    "get_engine",
    "get_async_database_url",
    "Base",
    "ScoringProfile",
    "ScoringWeight",
]
