"""Shared fixtures: configuration builders, an on-disk store and fake collaborators."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Iterable

import pytest

from hyperlocal.config import ConfigLocator, ConfigRepository, GlobalConfig, JobConfig
from hyperlocal.engine.models import Entity, FetchResult, FetchWindow
from hyperlocal.engine.sources import SourceFetcher
from hyperlocal.engine.store import SQLiteStore


class StaticFetcher(SourceFetcher):
    """Fetcher returning canned results per entity id (or one result for all)."""

    def __init__(self, name: str, result: Any = None, timeout: float = 5.0) -> None:
        self.name = name
        self.timeout = timeout
        self.result = result
        self.calls: list[str] = []

    def fetch(self, entity: Entity, window: FetchWindow) -> FetchResult | None:
        self.calls.append(entity.id)
        value = self.result(entity) if callable(self.result) else self.result
        if isinstance(value, Exception):
            raise value
        return value


class FakeGenerator:
    """Text generator replaying queued replies (strings or exceptions)."""

    def __init__(self, replies: Iterable[Any] = ()) -> None:
        self.replies = list(replies)
        self.prompts: list[str] = []
        self.closed = False

    def generate(self, prompt: str, system: str | None = None, tools=None, json_mode: bool = False) -> str:
        self.prompts.append(prompt)
        reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        if isinstance(reply, Exception):
            raise reply
        return reply

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def sample_global_config(tmp_path: Path) -> GlobalConfig:
    return GlobalConfig(
        storage={"backend": "sqlite", "sqlite_path": str(tmp_path / "hyperlocal.db")},
        outputs_dir=tmp_path / "outputs",
    )


@pytest.fixture
def sample_job_config() -> Callable[..., JobConfig]:
    def _builder(**overrides: Any) -> JobConfig:
        base: dict[str, Any] = {
            "job_name": "daily-brief",
            "kind": "daily_brief",
            "window": {"start_hour": 6, "end_hour": 7},
            "batch_size": 2,
            "time_budget_seconds": 270,
            "sources": [
                {
                    "name": "grounded",
                    "kind": "search",
                    "mode": "brief",
                    "endpoint": "https://llm.example.com/v1",
                    "model": "search-model",
                    "api_key_env": "SEARCH_API_KEY",
                }
            ],
        }
        base.update(overrides)
        return JobConfig.model_validate(base)

    return _builder


@pytest.fixture
def temp_config_repository(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterable[ConfigRepository]:
    monkeypatch.setenv("HYPERLOCAL_HOME", str(tmp_path))
    locator = ConfigLocator(project_root=tmp_path)
    repository = ConfigRepository(locator)
    yield repository


@pytest.fixture
def store(tmp_path: Path) -> Iterable[SQLiteStore]:
    backend = SQLiteStore(tmp_path / "store.db")
    yield backend
    backend.close()


@pytest.fixture
def entities() -> list[Entity]:
    return [
        Entity(id="sodermalm", name="Södermalm", city="Stockholm", timezone="Europe/Stockholm", country="SE"),
        Entity(id="vasastan", name="Vasastan", city="Stockholm", timezone="Europe/Stockholm", country="SE"),
        Entity(id="tribeca", name="Tribeca", city="New York", timezone="America/New_York", country="US"),
    ]


@pytest.fixture
def seeded_store(store: SQLiteStore, entities: list[Entity]) -> SQLiteStore:
    for entity in entities:
        store.insert_if_absent("entities", entity.to_record(), "id")
    return store


@pytest.fixture
def utc() -> Callable[..., datetime]:
    def _at(*args: int) -> datetime:
        return datetime(*args, tzinfo=timezone.utc)

    return _at


@pytest.fixture
def static_fetcher() -> type[StaticFetcher]:
    return StaticFetcher


@pytest.fixture
def fake_generator() -> type[FakeGenerator]:
    return FakeGenerator
