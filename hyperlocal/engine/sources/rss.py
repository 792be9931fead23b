"""RSS/Atom source: city feeds narrowed to the look-back window."""

from __future__ import annotations

from calendar import timegm
from datetime import datetime, timezone
from typing import Sequence

import feedparser
import httpx
import structlog

from ...config import FeedConfig
from ..models import CandidateItem, Entity, FetchResult, FetchWindow
from ..parser import strip_html
from ..retry import FixedDelayThrottle
from .base import SourceFetcher


def _entry_datetime(entry) -> datetime | None:
    for key in ("published_parsed", "updated_parsed"):
        parsed = entry.get(key)
        if parsed:
            return datetime.fromtimestamp(timegm(parsed), tz=timezone.utc)
    return None


class RSSFetcher(SourceFetcher):
    """Download the feeds configured for the entity's city."""

    def __init__(
        self,
        name: str,
        feeds: Sequence[FeedConfig],
        max_items: int = 15,
        timeout: float = 30.0,
        throttle: FixedDelayThrottle | None = None,
        client: httpx.Client | None = None,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.name = name
        self.feeds = list(feeds)
        self.max_items = max_items
        self.timeout = timeout
        self.throttle = throttle or FixedDelayThrottle(0.5)
        self._owns_client = client is None
        self._client = client or httpx.Client(follow_redirects=True, timeout=timeout)
        self.logger = logger or structlog.get_logger("hyperlocal.source").bind(source=name)

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def feeds_for(self, city: str) -> list[FeedConfig]:
        wanted = city.strip().lower()
        return [feed for feed in self.feeds if feed.city.strip().lower() == wanted]

    def fetch(self, entity: Entity, window: FetchWindow) -> FetchResult | None:
        feeds = self.feeds_for(entity.city)
        if not feeds:
            self.logger.debug("no_feeds_for_city", city=entity.city)
            return None

        items: list[CandidateItem] = []
        reachable = 0
        for feed in feeds:
            self.throttle.wait()
            try:
                response = self._client.get(feed.url, timeout=self.timeout)
            except httpx.HTTPError as exc:
                self.logger.warning("feed_failed", feed=feed.name, error=str(exc))
                continue
            if response.status_code >= 400:
                self.logger.warning("feed_failed", feed=feed.name, status=response.status_code)
                continue
            reachable += 1
            items.extend(self._parse(feed, response.content, window))

        if not reachable:
            return None
        seen: set[str] = set()
        unique: list[CandidateItem] = []
        for item in sorted(items, key=lambda it: it.published_at, reverse=True):
            if item.url in seen:
                continue
            seen.add(item.url)
            unique.append(item)
        unique = unique[: self.max_items]
        self.logger.info("feeds_fetched", entity=entity.id, feeds=reachable, items=len(unique))
        return FetchResult(source=self.name, items=unique, source_count=len(unique))

    def _parse(self, feed: FeedConfig, content: bytes, window: FetchWindow) -> list[CandidateItem]:
        parsed = feedparser.parse(content)
        found: list[CandidateItem] = []
        for entry in parsed.entries:
            link = (entry.get("link") or "").strip()
            title = strip_html(entry.get("title"))
            published = _entry_datetime(entry)
            if not link or not title or published is None or not window.contains(published):
                continue
            found.append(
                CandidateItem(
                    source=feed.name,
                    title=title,
                    text=strip_html(entry.get("summary") or entry.get("description")),
                    url=link,
                    published_at=published,
                    city=feed.city,
                )
            )
        return found


__all__ = ["RSSFetcher"]
