from __future__ import annotations

from datetime import datetime, timezone

import pytest

from hyperlocal.engine.status import ArtifactStatus, can_transition, publish_scheduled, transition
from hyperlocal.errors import InvalidTransitionError


def _insert(store, artifact_id: str, status: str, **extra) -> None:
    record = {
        "id": artifact_id,
        "slug": f"slug-{artifact_id}",
        "job": "daily-brief",
        "entity_id": "sodermalm",
        "status": status,
    }
    record.update(extra)
    store.insert_if_absent("artifacts", record, "id")


def test_allowed_and_forbidden_transitions() -> None:
    assert can_transition(ArtifactStatus.DRAFT, ArtifactStatus.PENDING)
    assert can_transition(ArtifactStatus.PENDING, ArtifactStatus.SCHEDULED)
    assert can_transition(ArtifactStatus.SUSPENDED, ArtifactStatus.PUBLISHED)
    assert not can_transition(ArtifactStatus.ARCHIVED, ArtifactStatus.PUBLISHED)
    assert not can_transition(ArtifactStatus.REJECTED, ArtifactStatus.DRAFT)
    assert can_transition(ArtifactStatus.REJECTED, ArtifactStatus.DRAFT, reset=True)


def test_transition_sets_published_at(store, utc) -> None:
    _insert(store, "a1", "pending")
    record = transition(store, "a1", "published", now=utc(2026, 2, 21, 7))
    assert record["status"] == "published"
    assert store.get("artifacts", "a1")["published_at"] == "2026-02-21T07:00:00+00:00"


def test_invalid_transition_raises(store) -> None:
    _insert(store, "a1", "archived")
    with pytest.raises(InvalidTransitionError):
        transition(store, "a1", ArtifactStatus.PUBLISHED)
    with pytest.raises(KeyError):
        transition(store, "missing", ArtifactStatus.PUBLISHED)
    with pytest.raises(ValueError):
        transition(store, "a1", "bogus")


def test_reset_rejected_to_draft(store) -> None:
    _insert(store, "a1", "rejected")
    with pytest.raises(InvalidTransitionError):
        transition(store, "a1", "draft")
    assert transition(store, "a1", "draft", reset=True)["status"] == "draft"


def test_scheduling_requires_time(store) -> None:
    _insert(store, "a1", "pending")
    with pytest.raises(ValueError):
        transition(store, "a1", "scheduled")
    stockholm_morning = datetime(2026, 2, 21, 8, 0, tzinfo=timezone.utc)
    record = transition(store, "a1", "scheduled", scheduled_for=stockholm_morning)
    assert record["scheduled_for"] == "2026-02-21T08:00:00+00:00"


def test_sweep_publishes_only_due_artifacts(store, utc) -> None:
    _insert(store, "due", "scheduled", scheduled_for="2026-02-21T06:00:00+00:00")
    _insert(store, "later", "scheduled", scheduled_for="2026-02-21T12:00:00+00:00")
    _insert(store, "pending", "pending", scheduled_for="2026-02-21T05:00:00+00:00")

    published = publish_scheduled(store, now=utc(2026, 2, 21, 7))

    assert published == ["due"]
    assert store.get("artifacts", "due")["status"] == "published"
    assert store.get("artifacts", "later")["status"] == "scheduled"
    assert publish_scheduled(store, now=utc(2026, 2, 21, 7)) == []


def test_sweep_leaves_artifacts_changed_after_selection(store, utc, monkeypatch) -> None:
    _insert(store, "due", "scheduled", scheduled_for="2026-02-21T06:00:00+00:00")
    select = store.query

    def _query_then_publish_manually(*args, **kwargs):
        rows = select(*args, **kwargs)
        store.update("artifacts", "due", {"status": "published", "published_at": "2026-02-21T06:30:00+00:00"})
        return rows

    monkeypatch.setattr(store, "query", _query_then_publish_manually)
    assert publish_scheduled(store, now=utc(2026, 2, 21, 7)) == []
    monkeypatch.undo()
    assert store.get("artifacts", "due")["published_at"] == "2026-02-21T06:30:00+00:00"


def test_transition_rejects_status_changed_concurrently(store, monkeypatch) -> None:
    _insert(store, "a1", "published")
    read = store.get

    def _get_then_archive(table, record_id):
        record = read(table, record_id)
        store.update("artifacts", record_id, {"status": "archived"})
        return record

    monkeypatch.setattr(store, "get", _get_then_archive)
    with pytest.raises(InvalidTransitionError):
        transition(store, "a1", "suspended")
    monkeypatch.undo()
    assert store.get("artifacts", "a1")["status"] == "archived"
