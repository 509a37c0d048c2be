"""Data access layer repositories.

Each repository module provides async functions for database operations
using SQLAlchemy ORM models from `fundrank.database.orm` with the
`get_session()` context manager.

ORM-based repositories:
- scoring_profiles_orm: scoring profiles and their weight rows
"""

from . import scoring_profiles_orm

__all__ = ["scoring_profiles_orm"]
