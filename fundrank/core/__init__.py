"""Core infrastructure: settings, logging, exceptions."""

from .config import settings
from .exceptions import ConfigurationError, FundRankError, WeightSourceError
from .logging import get_logger, setup_logging


__all__ = [
    "ConfigurationError",
    "FundRankError",
    "WeightSourceError",
    "get_logger",
    "settings",
    "setup_logging",
]
