"""Content job strategy: what to fetch, and how fetched material becomes drafts."""

from __future__ import annotations

import textwrap
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Callable, Mapping, Sequence

import structlog

from ..config import JobConfig, SourceConfig
from ..errors import ConfigurationError
from ..engine.models import Entity, FetchResult, FetchWindow
from ..engine.relevance import FilterStats
from ..engine.sources import SourceFetcher

ALSO_NOTED = "\n\nALSO NOTED:\n"


def merge_content(primary: str, *others: str) -> str:
    """Append secondary findings below the primary text."""

    body = primary.strip()
    for extra in others:
        extra = extra.strip()
        if not extra:
            continue
        body = f"{body}{ALSO_NOTED}{extra}" if body else extra
    return body


def make_preview(text: str, width: int = 240) -> str:
    return textwrap.shorten(text.replace("\n", " ").strip(), width=width, placeholder="…")


@dataclass(slots=True)
class EntityContext:
    """Per-entity inputs of one run; never shared between entities."""

    entity: Entity
    local_date: date
    period_key: str
    window: FetchWindow
    targets: Sequence[Entity] = ()
    is_known: Callable[[str], bool] = lambda slug: False
    stats: FilterStats = field(default_factory=FilterStats)
    skipped_known: int = 0


class ContentJob(ABC):
    """One recurring content type run by the shared pipeline runner."""

    publish_per_period = True

    def __init__(
        self,
        config: JobConfig,
        fetchers: Sequence[SourceFetcher],
        credentials: Mapping[str, str | None] | None = None,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.config = config
        self.fetchers = list(fetchers)
        self.credentials = dict(credentials or {})
        self.logger = logger or structlog.get_logger("hyperlocal.job").bind(job=config.job_name)

    @property
    def name(self) -> str:
        return self.config.job_name

    def source_config(self, name: str) -> SourceConfig | None:
        return next((source for source in self.config.sources if source.name == name), None)

    def verify_credentials(self) -> None:
        missing = [env for env, value in self.credentials.items() if not value]
        if missing:
            raise ConfigurationError(
                f"Missing credentials for job {self.name}: {', '.join(missing)}", missing=missing
            )

    def unit_key(self, entity: Entity) -> str:
        """Entities sharing a unit key are processed once per run."""

        return entity.id

    def fetch_window(self, now: datetime, local_date: date) -> FetchWindow:
        return FetchWindow(
            start=now - timedelta(hours=self.config.lookback_hours),
            end=now,
            local_date=local_date,
        )

    def ordered(self, results: Mapping[str, FetchResult | None]) -> list[FetchResult]:
        """Non-empty results in source declaration order."""

        ordered: list[FetchResult] = []
        for fetcher in self.fetchers:
            result = results.get(fetcher.name)
            if result is not None and not result.is_empty:
                ordered.append(result)
        return ordered

    @abstractmethod
    def compose(self, ctx: EntityContext, results: Mapping[str, FetchResult | None]) -> list:
        """Turn fetched material into artifact drafts (empty when nothing is usable)."""

    def close(self) -> None:
        for fetcher in self.fetchers:
            fetcher.close()


__all__ = ["ALSO_NOTED", "ContentJob", "EntityContext", "make_preview", "merge_content"]
