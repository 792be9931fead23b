"""Idempotent publishing: storage uniqueness decides, never an in-memory check."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Iterable

import structlog

from .models import ArtifactDraft, utcnow
from .store import BaseStore

DEFAULT_MAX_RESENDS_PER_DAY = 3


class PublishOutcome(str, Enum):
    CREATED = "created"
    ALREADY_EXISTS = "already_exists"
    ERROR = "error"
    RATE_LIMITED = "rate_limited"


@dataclass(slots=True)
class PublishResult:
    outcome: PublishOutcome
    slug: str
    artifact_id: str | None = None
    error: str | None = None
    record: dict[str, Any] | None = None

    @property
    def created(self) -> bool:
        return self.outcome is PublishOutcome.CREATED


class PublishGate:
    """Insert artifacts keyed by their slug and classify the outcome."""

    def __init__(
        self,
        store: BaseStore,
        max_resends_per_day: int = DEFAULT_MAX_RESENDS_PER_DAY,
        clock: Callable[[], datetime] = utcnow,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.store = store
        self.max_resends_per_day = max_resends_per_day
        self._clock = clock
        self.logger = logger or structlog.get_logger("hyperlocal.publish")

    def try_publish(self, draft: ArtifactDraft) -> PublishResult:
        record = draft.to_record(self._clock())
        try:
            inserted = self.store.insert_if_absent("artifacts", record, "slug")
        except Exception as exc:  # noqa: BLE001
            self.logger.error("publish_failed", slug=draft.slug, entity=draft.entity_id, error=str(exc))
            return PublishResult(PublishOutcome.ERROR, draft.slug, error=str(exc))
        if not inserted:
            self.logger.info("publish_already_exists", slug=draft.slug, entity=draft.entity_id)
            return PublishResult(PublishOutcome.ALREADY_EXISTS, draft.slug)
        self.logger.info("publish_created", slug=draft.slug, entity=draft.entity_id)
        return PublishResult(
            PublishOutcome.CREATED, draft.slug, artifact_id=record["id"], record=record
        )

    def exists(self, slug: str) -> bool:
        return bool(self.store.query("artifacts", {"slug": slug}, limit=1))

    def satisfied_period_keys(self, job: str, keys: Iterable[str]) -> set[str]:
        """Period keys of ``job`` that already have an artifact."""

        wanted = list(dict.fromkeys(keys))
        if not wanted:
            return set()
        rows = self.store.query("artifacts", {"job": job, "period_key__in": wanted})
        return {row["period_key"] for row in rows if row.get("period_key")}

    # ------------------------------------------------------------------
    # Explicit resend
    # ------------------------------------------------------------------
    def resend(self, artifact_id: str, reason: str = "") -> PublishResult:
        """Re-publish an existing artifact as a new one, at most N times per day."""

        original = self.store.get("artifacts", artifact_id)
        if original is None:
            return PublishResult(PublishOutcome.ERROR, "", error=f"artifact {artifact_id} not found")
        now = self._clock()
        today = now.date().isoformat()
        sent = self.store.query(
            "resends",
            {"entity_id": original["entity_id"], "job": original["job"], "send_date": today},
        )
        if len(sent) >= self.max_resends_per_day:
            self.logger.warning(
                "resend_rate_limited",
                entity=original["entity_id"],
                job=original["job"],
                sent_today=len(sent),
            )
            return PublishResult(
                PublishOutcome.RATE_LIMITED,
                original["slug"],
                error=f"max {self.max_resends_per_day} resends per day reached",
            )

        slug = f"{original['slug']}-resend-{today}-{len(sent) + 1}"
        record = dict(original)
        record.update(
            {
                "id": uuid.uuid4().hex,
                "slug": slug,
                "status": "published",
                "created_at": now.isoformat(),
                "published_at": now.isoformat(),
                "scheduled_for": None,
                "resend_of": original["id"],
            }
        )
        try:
            inserted = self.store.insert_if_absent("artifacts", record, "slug")
        except Exception as exc:  # noqa: BLE001
            self.logger.error("resend_failed", artifact=artifact_id, error=str(exc))
            return PublishResult(PublishOutcome.ERROR, slug, error=str(exc))
        if not inserted:
            return PublishResult(PublishOutcome.ALREADY_EXISTS, slug)
        self.store.insert_if_absent(
            "resends",
            {
                "id": uuid.uuid4().hex,
                "artifact_id": record["id"],
                "job": original["job"],
                "entity_id": original["entity_id"],
                "send_date": today,
                "reason": reason,
                "created_at": now.isoformat(),
            },
            "id",
        )
        self.logger.info("resend_created", artifact=record["id"], resend_of=artifact_id)
        return PublishResult(PublishOutcome.CREATED, slug, artifact_id=record["id"], record=record)


__all__ = ["DEFAULT_MAX_RESENDS_PER_DAY", "PublishGate", "PublishOutcome", "PublishResult"]
