from __future__ import annotations

from datetime import date

from hyperlocal.engine.parser import (
    clean_citations,
    count_bullets,
    extract_json_object,
    parse_brief,
    split_events,
    strip_html,
    useful_text,
)


def test_clean_citations_strips_markers_and_dashes() -> None:
    text = "New bakery opens [1] on Main St (2). Rent rises—again.(\nQueue–long"
    cleaned = clean_citations(text)
    assert "[1]" not in cleaned
    assert "(2)" not in cleaned
    assert "—" not in cleaned and "–" not in cleaned
    assert "Rent rises - again." in cleaned


def test_clean_citations_removes_json_fragments() -> None:
    text = "Fact one.{'title': 'Source', 'url': 'https://x'}\nFact two."
    assert clean_citations(text) == "Fact one.\nFact two."


def test_useful_text_threshold() -> None:
    assert useful_text("short") is None
    assert useful_text(None) is None
    long_text = "x" * 60
    assert useful_text(f"  {long_text}  ") == long_text


def test_count_bullets() -> None:
    assert count_bullets("- one\n* two\n3. three\nplain") == 3


def test_split_events_plain_array() -> None:
    text = (
        "- Jazz at the park\n"
        'EVENTS_JSON: [{"date": "2026-02-27", "name": "Jazz [live]", "location": "Park", "time": "20:00"}]'
    )
    prose, events = split_events(text)
    assert prose == "- Jazz at the park"
    assert len(events) == 1
    assert events[0].name == "Jazz [live]"
    assert events[0].venue == "Park"
    assert events[0].date == date(2026, 2, 27)


def test_split_events_fenced_block() -> None:
    text = 'Intro\nEVENTS_JSON:\n```json\n[{"date": "2026-03-01", "name": "Gallery X"}]\n```'
    _, events = split_events(text)
    assert [event.name for event in events] == ["Gallery X"]


def test_split_events_malformed_keeps_prose() -> None:
    prose, events = split_events("Prose here\nEVENTS_JSON: [{broken")
    assert prose == "Prose here"
    assert events == []
    assert split_events("No marker at all") == ("No marker at all", [])


def test_extract_json_object() -> None:
    assert extract_json_object('```json\n{"a": 1}\n```') == {"a": 1}
    assert extract_json_object('Sure! {"is_relevant": false} done') == {"is_relevant": False}
    assert extract_json_object("no json") is None
    assert extract_json_object("") is None


def test_parse_brief() -> None:
    brief = parse_brief("HEADLINE: Bakery opens on Main [1]\nCONTENT: A new bakery opened today.")
    assert brief is not None
    assert brief.headline == "Bakery opens on Main"
    assert brief.content == "A new bakery opened today."
    assert parse_brief("just prose") is None


def test_strip_html() -> None:
    markup = "<p>Hello <b>world</b></p><script>alert(1)</script>"
    assert strip_html(markup) == "Hello world"
    assert strip_html("Fish &amp; chips") == "Fish & chips"
    assert strip_html(None) == ""
