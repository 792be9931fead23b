"""Local-time window scheduling of entities."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Iterable
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import structlog

from ..engine.keys import period_key
from ..engine.models import Entity


def local_now(entity: Entity, now: datetime) -> datetime | None:
    """``now`` in the entity's zone, or ``None`` for an unknown/invalid zone."""

    if not entity.timezone:
        return None
    try:
        zone = ZoneInfo(entity.timezone)
    except (ZoneInfoNotFoundError, ValueError, OSError):
        return None
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(zone)


@dataclass(slots=True)
class DueEntity:
    entity: Entity
    local_time: datetime
    period_key: str

    @property
    def local_date(self) -> date:
        return self.local_time.date()


@dataclass(slots=True)
class ScheduleDecision:
    due: list[DueEntity] = field(default_factory=list)
    skipped_window: list[str] = field(default_factory=list)
    skipped_satisfied: list[str] = field(default_factory=list)
    invalid_timezone: list[str] = field(default_factory=list)
    inactive: list[str] = field(default_factory=list)


class TimeWindowScheduler:
    """Decide which entities are due, evaluated in each entity's own timezone.

    ``start_hour=None`` disables the window check (every unsatisfied entity is due).
    """

    def __init__(
        self,
        start_hour: int | None = 6,
        end_hour: int | None = 7,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        if start_hour is not None:
            if end_hour is None or not 0 <= start_hour < end_hour <= 24:
                raise ValueError("window requires 0 <= start_hour < end_hour <= 24")
        self.start_hour = start_hour
        self.end_hour = end_hour
        self.logger = logger or structlog.get_logger("hyperlocal.scheduler")

    def in_window(self, local_time: datetime) -> bool:
        if self.start_hour is None:
            return True
        return self.start_hour <= local_time.hour < self.end_hour  # type: ignore[operator]

    def period_keys(self, entities: Iterable[Entity], now: datetime) -> dict[str, str]:
        """Period key of each entity's local today; invalid timezones are omitted."""

        keys: dict[str, str] = {}
        for entity in entities:
            local = local_now(entity, now)
            if local is not None:
                keys[entity.id] = period_key(entity.id, local.date())
        return keys

    def select(
        self,
        entities: Iterable[Entity],
        satisfied: set[str],
        now: datetime,
        *,
        force: bool = False,
        test_entity_id: str | None = None,
    ) -> ScheduleDecision:
        decision = ScheduleDecision()
        for entity in entities:
            if test_entity_id is not None and entity.id != test_entity_id:
                continue
            if not entity.active and test_entity_id is None:
                decision.inactive.append(entity.id)
                continue
            local = local_now(entity, now)
            if local is None:
                self.logger.warning("invalid_timezone", entity=entity.id, timezone=entity.timezone)
                decision.invalid_timezone.append(entity.id)
                continue
            key = period_key(entity.id, local.date())
            if test_entity_id is None:
                if not force and not self.in_window(local):
                    decision.skipped_window.append(entity.id)
                    continue
                if key in satisfied:
                    decision.skipped_satisfied.append(entity.id)
                    continue
            decision.due.append(DueEntity(entity=entity, local_time=local, period_key=key))
        return decision


__all__ = ["DueEntity", "ScheduleDecision", "TimeWindowScheduler", "local_now"]
