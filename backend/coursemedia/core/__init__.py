"""Core module for configuration and utilities."""

from coursemedia.core.config import settings
from coursemedia.core.database import Base, get_session

__all__ = [
    "settings",
    "Base",
    "get_session",
]
