"""Persistence adapters for the match cache and run log."""

from .match_cache import MatchCacheRepository
from .memory import InMemoryMatchCache, InMemoryRunLog
from .run_log import RunLogRepository

__all__ = [
    "InMemoryMatchCache",
    "InMemoryRunLog",
    "MatchCacheRepository",
    "RunLogRepository",
]
