"""Pluggable information-discovery sources."""

from .base import SourceFetcher
from .rss import RSSFetcher
from .search import SearchFetcher

__all__ = ["RSSFetcher", "SearchFetcher", "SourceFetcher"]
