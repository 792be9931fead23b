"""Artifact lifecycle: allowed status transitions and the scheduled-publish sweep."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

import structlog

from ..errors import InvalidTransitionError
from .models import utcnow
from .store import BaseStore


class ArtifactStatus(str, Enum):
    DRAFT = "draft"
    PENDING = "pending"
    SCHEDULED = "scheduled"
    PUBLISHED = "published"
    REJECTED = "rejected"
    SUSPENDED = "suspended"
    ARCHIVED = "archived"


TRANSITIONS: dict[ArtifactStatus, frozenset[ArtifactStatus]] = {
    ArtifactStatus.DRAFT: frozenset({ArtifactStatus.PENDING}),
    ArtifactStatus.PENDING: frozenset(
        {ArtifactStatus.PUBLISHED, ArtifactStatus.REJECTED, ArtifactStatus.SCHEDULED}
    ),
    ArtifactStatus.SCHEDULED: frozenset({ArtifactStatus.PUBLISHED}),
    ArtifactStatus.PUBLISHED: frozenset({ArtifactStatus.SUSPENDED, ArtifactStatus.ARCHIVED}),
    ArtifactStatus.SUSPENDED: frozenset({ArtifactStatus.PUBLISHED}),
    ArtifactStatus.REJECTED: frozenset(),
    ArtifactStatus.ARCHIVED: frozenset(),
}


def can_transition(current: ArtifactStatus, target: ArtifactStatus, reset: bool = False) -> bool:
    """Rejected artifacts only move back to draft through an explicit reset."""

    if current is ArtifactStatus.REJECTED and target is ArtifactStatus.DRAFT:
        return reset
    return target in TRANSITIONS[current]


def _as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def transition(
    store: BaseStore,
    artifact_id: str,
    target: ArtifactStatus | str,
    *,
    reset: bool = False,
    scheduled_for: datetime | None = None,
    now: datetime | None = None,
) -> dict[str, Any]:
    record = store.get("artifacts", artifact_id)
    if record is None:
        raise KeyError(f"artifact {artifact_id} not found")
    current = ArtifactStatus(record["status"])
    target = ArtifactStatus(target)
    if not can_transition(current, target, reset=reset):
        raise InvalidTransitionError(current.value, target.value)

    patch: dict[str, Any] = {"status": target.value}
    if target is ArtifactStatus.SCHEDULED:
        if scheduled_for is None:
            raise ValueError("scheduling requires scheduled_for")
        patch["scheduled_for"] = _as_utc(scheduled_for).isoformat()
    if target is ArtifactStatus.PUBLISHED and not record.get("published_at"):
        patch["published_at"] = _as_utc(now or utcnow()).isoformat()
    if not store.update("artifacts", artifact_id, patch, where={"status": current.value}):
        # status changed between read and write
        latest = store.get("artifacts", artifact_id)
        raise InvalidTransitionError(latest["status"] if latest else current.value, target.value)
    record.update(patch)
    return record


def publish_scheduled(
    store: BaseStore,
    now: datetime | None = None,
    logger: structlog.BoundLogger | None = None,
) -> list[str]:
    """Publish every scheduled artifact whose ``scheduled_for`` has passed."""

    log = logger or structlog.get_logger("hyperlocal.status")
    moment = _as_utc(now or utcnow()).isoformat()
    due = store.query(
        "artifacts",
        {"status": ArtifactStatus.SCHEDULED.value, "scheduled_for__lte": moment},
        order_by="scheduled_for",
    )
    published: list[str] = []
    for record in due:
        if store.update(
            "artifacts",
            record["id"],
            {"status": ArtifactStatus.PUBLISHED.value, "published_at": moment},
            where={"status": ArtifactStatus.SCHEDULED.value},
        ):
            published.append(record["id"])
        else:
            log.info("scheduled_sweep_skipped", artifact=record["id"])
    log.info("scheduled_sweep", published=len(published), checked=len(due))
    return published


__all__ = ["ArtifactStatus", "TRANSITIONS", "can_transition", "publish_scheduled", "transition"]
