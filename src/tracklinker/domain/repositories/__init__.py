"""Domain ports implemented by the infrastructure layer."""

from .interfaces import (
    AuthContext,
    CatalogProvider,
    LinkResolution,
    LinkResolverProtocol,
    MatchCacheProtocol,
    ProgressSink,
    RunLogProtocol,
)

__all__ = [
    "AuthContext",
    "CatalogProvider",
    "LinkResolution",
    "LinkResolverProtocol",
    "MatchCacheProtocol",
    "ProgressSink",
    "RunLogProtocol",
]
