"""Catalog and link-resolution connectors."""

from .odesli import OdesliLinkResolver
from .spotify import SpotifyCatalogAdapter
from .youtube import YouTubeCatalogAdapter

__all__ = [
    "OdesliLinkResolver",
    "SpotifyCatalogAdapter",
    "YouTubeCatalogAdapter",
]
