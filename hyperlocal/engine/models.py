"""Runtime data carried between pipeline stages."""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Mapping


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _clean(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


@dataclass(slots=True, frozen=True)
class Entity:
    """A neighborhood content is produced for."""

    id: str
    name: str
    city: str
    timezone: str
    country: str = ""
    active: bool = True

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "Entity":
        return cls(
            id=str(record["id"]),
            name=str(record["name"]),
            city=str(record["city"]),
            timezone=str(record.get("timezone") or ""),
            country=str(record.get("country") or ""),
            active=bool(record.get("active", True)),
        )

    def to_record(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "city": self.city,
            "country": self.country,
            "timezone": self.timezone,
            "active": self.active,
        }


@dataclass(slots=True)
class FetchWindow:
    """UTC-normalised time span a fetcher should look at, plus the entity's local day."""

    start: datetime
    end: datetime
    local_date: date

    def __post_init__(self) -> None:
        self.start = self._normalise(self.start)
        self.end = self._normalise(self.end)
        if self.end <= self.start:
            raise ValueError("FetchWindow end must be greater than start")

    @staticmethod
    def _normalise(value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def contains(self, moment: datetime) -> bool:
        return self.start <= self._normalise(moment) <= self.end


@dataclass(slots=True)
class CandidateItem:
    """A single piece of discovered content awaiting a relevance judgment."""

    source: str
    title: str
    text: str
    url: str
    published_at: datetime | None = None
    city: str = ""


@dataclass(slots=True, frozen=True)
class StructuredEvent:
    date: date | None
    name: str
    time: str | None = None
    category: str | None = None
    venue: str | None = None
    address: str | None = None
    price: str | None = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "StructuredEvent":
        """Build from loosely typed model output; unparseable dates become ``None``."""

        raw_date = _clean(data.get("date"))
        parsed: date | None = None
        if raw_date:
            try:
                parsed = date.fromisoformat(raw_date[:10])
            except ValueError:
                parsed = None
        return cls(
            date=parsed,
            name=_clean(data.get("name")) or "",
            time=_clean(data.get("time")),
            category=_clean(data.get("category")),
            venue=_clean(data.get("venue") or data.get("location")),
            address=_clean(data.get("address")),
            price=_clean(data.get("price")),
        )

    def as_dict(self) -> dict[str, Any]:
        return {
            "date": self.date.isoformat() if self.date else None,
            "name": self.name,
            "time": self.time,
            "category": self.category,
            "venue": self.venue,
            "address": self.address,
            "price": self.price,
        }


@dataclass(slots=True)
class FetchResult:
    """Normalised output of one source for one entity."""

    source: str
    raw_text: str = ""
    events: list[StructuredEvent] = field(default_factory=list)
    items: list[CandidateItem] = field(default_factory=list)
    source_count: int = 0

    @property
    def is_empty(self) -> bool:
        return not (self.raw_text.strip() or self.events or self.items)


@dataclass(slots=True)
class ArtifactDraft:
    """Composed content ready for the publish gate."""

    job: str
    entity_id: str
    slug: str
    headline: str
    body: str
    preview: str = ""
    period_key: str | None = None
    status: str = "published"
    metadata: dict[str, Any] = field(default_factory=dict)
    scheduled_for: datetime | None = None

    def to_record(self, now: datetime | None = None) -> dict[str, Any]:
        moment = now or utcnow()
        return {
            "id": uuid.uuid4().hex,
            "slug": self.slug,
            "job": self.job,
            "entity_id": self.entity_id,
            "period_key": self.period_key,
            "headline": self.headline,
            "body": self.body,
            "preview": self.preview,
            "metadata": json.loads(json.dumps(self.metadata, default=str)),
            "status": self.status,
            "created_at": moment.isoformat(),
            "published_at": moment.isoformat() if self.status == "published" else None,
            "scheduled_for": (
                self.scheduled_for.astimezone(timezone.utc).isoformat() if self.scheduled_for else None
            ),
            "resend_of": None,
        }


__all__ = [
    "ArtifactDraft",
    "CandidateItem",
    "Entity",
    "FetchResult",
    "FetchWindow",
    "StructuredEvent",
    "utcnow",
]
