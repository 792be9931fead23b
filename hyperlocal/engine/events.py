"""Event merging: validation, recurring collapse, cross-source dedup and listing format."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date
from typing import Iterable, Sequence

from .models import StructuredEvent

SIMILARITY_THRESHOLD = 0.7
MIN_WORD_LENGTH = 3

_TIME_PATTERN = re.compile(r"(\d{1,2}):(\d{2})")
_POSTCODE_CITY = re.compile(r",\s*\d{2,6}\s*\d{0,4}\s+[A-Za-z\u00C0-\u024F\s]+$")
_WEEKDAYS = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")
_MONTHS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")


@dataclass(slots=True)
class CanonicalEvent:
    """One event standing for a cluster of occurrences."""

    event: StructuredEvent
    also_on: list[date] = field(default_factory=list)
    origin: int = 0

    @property
    def date(self) -> date:
        return self.event.date  # type: ignore[return-value]

    @property
    def name(self) -> str:
        return self.event.name


# ----------------------------------------------------------------------
# Primitive rules
# ----------------------------------------------------------------------
def normalize_name(name: str) -> str:
    return " ".join(name.split()).lower()


def is_valid(event: StructuredEvent) -> bool:
    return event.date is not None and bool(event.name and event.name.strip())


def _words(name: str) -> set[str]:
    return {word for word in name.lower().split() if len(word) >= MIN_WORD_LENGTH}


def name_similarity(first: str, second: str) -> float:
    """Share of significant words the shorter name has in common with the other."""

    words_a = _words(first)
    words_b = _words(second)
    if not words_a or not words_b:
        return 0.0
    overlap = len(words_a & words_b)
    return overlap / min(len(words_a), len(words_b))


def is_duplicate(candidate: StructuredEvent, existing: StructuredEvent) -> bool:
    a = normalize_name(candidate.name)
    b = normalize_name(existing.name)
    if a in b or b in a:
        return True
    return (
        candidate.date == existing.date
        and name_similarity(candidate.name, existing.name) > SIMILARITY_THRESHOLD
    )


def time_sort_key(event: StructuredEvent) -> tuple[int, str]:
    """Timed events first, by zero-padded ``HH:MM``; untimed (or unparseable) last."""

    match = _TIME_PATTERN.search(event.time or "")
    if not match:
        return (1, "")
    return (0, f"{int(match.group(1)):02d}:{match.group(2)}")


def clean_address(address: str, city: str | None = None) -> str:
    """Drop a trailing postcode + city and a bare trailing city name."""

    cleaned = _POSTCODE_CITY.sub("", address.strip())
    if city:
        cleaned = re.sub(r",\s*" + re.escape(city) + r"\s*$", "", cleaned, flags=re.IGNORECASE)
    return cleaned.strip()


# ----------------------------------------------------------------------
# Merge stages
# ----------------------------------------------------------------------
def collapse_recurring(tagged: Iterable[tuple[int, StructuredEvent]]) -> list[CanonicalEvent]:
    """Group by normalised name; the earliest occurrence becomes canonical.

    ``tagged`` pairs each event with the index of the source it came from.
    Clusters are returned in first-seen order; ties on date keep the first seen.
    """

    clusters: dict[str, list[tuple[int, int, StructuredEvent]]] = {}
    for position, (origin, event) in enumerate(tagged):
        clusters.setdefault(normalize_name(event.name), []).append((position, origin, event))

    canonicals: list[CanonicalEvent] = []
    for members in clusters.values():
        _, _, canonical = min(members, key=lambda item: (item[2].date, item[0]))
        others = sorted({item[2].date for item in members} - {canonical.date})
        canonicals.append(
            CanonicalEvent(event=canonical, also_on=others, origin=min(item[1] for item in members))
        )
    return canonicals


def dedupe_across_sources(canonicals: Sequence[CanonicalEvent]) -> list[CanonicalEvent]:
    """First source is kept whole; later sources only add events not already covered."""

    accepted: list[CanonicalEvent] = []
    for origin in sorted({item.origin for item in canonicals}):
        batch = [item for item in canonicals if item.origin == origin]
        if not accepted:
            accepted.extend(batch)
            continue
        for item in batch:
            if any(is_duplicate(item.event, kept.event) for kept in accepted):
                continue
            accepted.append(item)
    return accepted


def group_by_date(canonicals: Iterable[CanonicalEvent]) -> list[tuple[date, list[CanonicalEvent]]]:
    grouped: dict[date, list[CanonicalEvent]] = {}
    for item in canonicals:
        grouped.setdefault(item.date, []).append(item)
    return [
        (day, sorted(grouped[day], key=lambda item: time_sort_key(item.event)))
        for day in sorted(grouped)
    ]


# ----------------------------------------------------------------------
# Formatting
# ----------------------------------------------------------------------
def short_day(day: date, local_date: date) -> str:
    if day == local_date:
        return "Today"
    return _WEEKDAYS[day.weekday()]


def date_header(day: date, local_date: date) -> str:
    weekday = _WEEKDAYS[day.weekday()]
    month = _MONTHS[day.month - 1]
    if day == local_date:
        return f"Today, {weekday} {month} {day.day}"
    return f"{weekday}, {month} {day.day}"


def format_event_line(item: CanonicalEvent, local_date: date, city: str | None = None) -> str:
    event = item.event
    name = event.name.strip()
    parts = [name]

    when: list[str] = []
    if event.category and event.category.strip().lower() != name.lower():
        when.append(event.category.strip())
    if event.time:
        when.append(event.time.strip())
    if when:
        parts.append(", ".join(when))

    where: list[str] = []
    if event.venue:
        where.append(event.venue.strip())
    if event.address:
        cleaned = clean_address(event.address, city)
        if cleaned:
            where.append(cleaned)
    if where:
        parts.append(", ".join(where))

    if event.price:
        parts.append(event.price.strip())

    line = "; ".join(parts)
    if item.also_on:
        labels = ", ".join(short_day(day, local_date) for day in item.also_on)
        line += f" (also on {labels})"
    return line + "."


class EventMerger:
    """Merge structured events from several sources into one ordered listing."""

    def __init__(self, local_date: date, city: str | None = None) -> None:
        self.local_date = local_date
        self.city = city

    def merge(self, sources: Sequence[Sequence[StructuredEvent]]) -> list[CanonicalEvent]:
        """Return canonical events ordered by date, then time (untimed last)."""

        tagged = [
            (origin, event)
            for origin, events in enumerate(sources)
            for event in events
            if is_valid(event)
        ]
        canonicals = dedupe_across_sources(collapse_recurring(tagged))
        return [item for _, items in group_by_date(canonicals) for item in items]

    def render(self, canonicals: Sequence[CanonicalEvent]) -> str:
        if not canonicals:
            return ""
        sections: list[str] = []
        for day, items in group_by_date(canonicals):
            lines = [f"[[{date_header(day, self.local_date)}]]"]
            lines.extend(format_event_line(item, self.local_date, self.city) for item in items)
            sections.append("\n\n".join(lines))
        return "[[Event Listing]]\n\n" + "\n\n".join(sections) + "\n\n---"


__all__ = [
    "CanonicalEvent",
    "EventMerger",
    "SIMILARITY_THRESHOLD",
    "clean_address",
    "collapse_recurring",
    "date_header",
    "dedupe_across_sources",
    "format_event_line",
    "group_by_date",
    "is_duplicate",
    "is_valid",
    "name_similarity",
    "normalize_name",
    "short_day",
    "time_sort_key",
]
