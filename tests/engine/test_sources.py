from __future__ import annotations

from datetime import date, datetime, timezone

import httpx
import pytest

from hyperlocal.config import FeedConfig, SearchMode
from hyperlocal.engine.models import FetchWindow
from hyperlocal.engine.retry import FixedDelayThrottle, RetryingCaller
from hyperlocal.engine.sources import RSSFetcher, SearchFetcher
from hyperlocal.errors import UpstreamError

FACTS = (
    "- New sourdough bakery opens on Götgatan [1]\n"
    "- Street repairs close Hornsgatan until Friday (2)\n"
    "- Library extends weekend hours"
)

RSS = """<?xml version="1.0"?>
<rss version="2.0"><channel><title>City Paper</title>
<item><title>Bakery opens</title><link>https://paper.example.com/bakery</link>
<description>&lt;p&gt;Fresh &lt;b&gt;bread&lt;/b&gt;&lt;/p&gt;</description>
<pubDate>Sat, 21 Feb 2026 05:00:00 GMT</pubDate></item>
<item><title>Old news</title><link>https://paper.example.com/old</link>
<pubDate>Tue, 10 Feb 2026 05:00:00 GMT</pubDate></item>
<item><title>Park cleanup</title><link>https://paper.example.com/park</link>
<pubDate>Sat, 21 Feb 2026 03:00:00 GMT</pubDate></item>
<item><title>No date</title><link>https://paper.example.com/undated</link></item>
</channel></rss>
"""


@pytest.fixture
def window() -> FetchWindow:
    return FetchWindow(
        start=datetime(2026, 2, 20, 6, 0, tzinfo=timezone.utc),
        end=datetime(2026, 2, 21, 6, 0, tzinfo=timezone.utc),
        local_date=date(2026, 2, 21),
    )


def _search(generator, mode: SearchMode) -> SearchFetcher:
    return SearchFetcher("grounded", generator, mode=mode, retry=RetryingCaller((), sleep=lambda _: None))


def test_facts_mode_cleans_citations(fake_generator, entities, window) -> None:
    generator = fake_generator([FACTS])
    result = _search(generator, SearchMode.FACTS).fetch(entities[0], window)
    assert result is not None
    assert "[1]" not in result.raw_text and "(2)" not in result.raw_text
    assert result.source_count == 3
    assert "Södermalm, Stockholm, SE" in generator.prompts[0]


def test_events_mode_splits_structured_events(fake_generator, entities, window) -> None:
    reply = (
        "- Jazz Night at Blue Note on Friday evening with local trio\n"
        'EVENTS_JSON: [{"date": "2026-02-27", "name": "Jazz Night", "location": "Blue Note", "time": "20:00"}]'
    )
    generator = fake_generator([reply])
    result = _search(generator, SearchMode.EVENTS).fetch(entities[0], window)
    assert result is not None
    assert [event.name for event in result.events] == ["Jazz Night"]
    assert "EVENTS_JSON" not in result.raw_text
    assert "2026-02-21 through 2026-02-22" in generator.prompts[0]


def test_brief_mode_keeps_text(fake_generator, entities, window) -> None:
    reply = "HEADLINE: Bakery opens\nCONTENT: A sourdough bakery opened on Götgatan this morning."
    result = _search(fake_generator([reply]), SearchMode.BRIEF).fetch(entities[0], window)
    assert result is not None
    assert result.raw_text == reply
    assert result.source_count == 1


def test_short_or_failed_reply_is_none(fake_generator, entities, window) -> None:
    assert _search(fake_generator(["Nothing found."]), SearchMode.FACTS).fetch(entities[0], window) is None
    failing = fake_generator([UpstreamError("down", status_code=503)])
    assert _search(failing, SearchMode.FACTS).fetch(entities[0], window) is None


def _rss(handler, feeds, max_items: int = 15) -> RSSFetcher:
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return RSSFetcher("city-rss", feeds, max_items=max_items, throttle=FixedDelayThrottle(0), client=client)


def test_rss_keeps_items_inside_window(entities, window) -> None:
    feeds = [
        FeedConfig(url="https://paper.example.com/rss", name="City Paper", city="Stockholm"),
        FeedConfig(url="https://mirror.example.com/rss", name="Mirror", city="stockholm"),
    ]
    fetcher = _rss(lambda request: httpx.Response(200, text=RSS), feeds)
    result = fetcher.fetch(entities[0], window)
    assert result is not None
    assert [item.url for item in result.items] == [
        "https://paper.example.com/bakery",
        "https://paper.example.com/park",
    ]
    assert result.items[0].text == "Fresh bread"
    assert result.items[0].source == "City Paper"
    assert result.source_count == 2


def test_rss_caps_items(entities, window) -> None:
    feeds = [FeedConfig(url="https://paper.example.com/rss", city="Stockholm")]
    result = _rss(lambda request: httpx.Response(200, text=RSS), feeds, max_items=1).fetch(entities[0], window)
    assert result is not None
    assert [item.title for item in result.items] == ["Bakery opens"]


def test_rss_without_city_feeds_or_reachable_feeds(entities, window) -> None:
    feeds = [FeedConfig(url="https://paper.example.com/rss", city="Stockholm")]
    fetcher = _rss(lambda request: httpx.Response(503), feeds)
    assert fetcher.fetch(entities[0], window) is None
    assert fetcher.fetch(entities[2], window) is None
    assert fetcher.feeds_for(" STOCKHOLM ") == feeds
