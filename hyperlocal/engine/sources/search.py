"""Search sources backed by a grounded text-generation endpoint."""

from __future__ import annotations

from datetime import timedelta
from typing import Any

import structlog

from ...config import SearchMode
from ...errors import UpstreamError
from ..llm import TextGenerator
from ..models import Entity, FetchResult, FetchWindow
from ..parser import clean_citations, count_bullets, split_events, useful_text
from ..retry import RetryingCaller
from .base import SourceFetcher

SYSTEM_PROMPT = (
    "You are a research assistant for a neighborhood newsletter. Use your search "
    "tools, report only verifiable local facts and never invent venues or dates."
)


class SearchFetcher(SourceFetcher):
    """Ask a search-enabled model for facts, events or a ready brief about an entity."""

    def __init__(
        self,
        name: str,
        generator: TextGenerator,
        mode: SearchMode = SearchMode.FACTS,
        retry: RetryingCaller | None = None,
        tools: list[dict[str, Any]] | None = None,
        focus: str | None = None,
        timeout: float = 45.0,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.name = name
        self.generator = generator
        self.mode = mode
        self.retry = retry or RetryingCaller()
        self.tools = tools or []
        self.focus = focus
        self.timeout = timeout
        self.logger = logger or structlog.get_logger("hyperlocal.source").bind(source=name)

    def close(self) -> None:
        self.generator.close()

    def fetch(self, entity: Entity, window: FetchWindow) -> FetchResult | None:
        prompt = self.build_prompt(entity, window)
        try:
            reply = self.retry.call(
                self.generator.generate, prompt, system=SYSTEM_PROMPT, tools=self.tools or None
            )
        except UpstreamError as exc:
            self.logger.warning("source_failed", entity=entity.id, error=str(exc))
            return None

        text = useful_text(reply)
        if text is None:
            self.logger.info("source_empty", entity=entity.id)
            return None

        if self.mode is SearchMode.EVENTS:
            prose, events = split_events(text)
            prose = clean_citations(prose)
            return FetchResult(
                source=self.name,
                raw_text=prose,
                events=events,
                source_count=max(count_bullets(prose), len(events), 1),
            )
        if self.mode is SearchMode.BRIEF:
            return FetchResult(source=self.name, raw_text=text, source_count=1)
        facts = clean_citations(text)
        return FetchResult(source=self.name, raw_text=facts, source_count=max(count_bullets(facts), 1))

    # ------------------------------------------------------------------
    def build_prompt(self, entity: Entity, window: FetchWindow) -> str:
        place = f"{entity.name}, {entity.city}" + (f", {entity.country}" if entity.country else "")
        focus = f" Focus on: {self.focus}." if self.focus else ""
        if self.mode is SearchMode.EVENTS:
            days = max(1, (window.end - window.start).days)
            last_day = window.local_date + timedelta(days=days)
            return (
                f"Find events, openings and happenings in {place} from "
                f"{window.local_date.isoformat()} through {last_day.isoformat()}.{focus}\n"
                "Write a short bullet list first. Then output a line `EVENTS_JSON:` followed by a "
                "JSON array of objects with keys date (YYYY-MM-DD), time, name, category, "
                "location, address, price. Leave unknown values empty."
            )
        if self.mode is SearchMode.BRIEF:
            return (
                f"What is new in {place} since {window.start.isoformat()}?{focus}\n"
                "Answer in this format:\n"
                "HEADLINE: a specific headline of at most 50 characters\n"
                "CONTENT: two or three short paragraphs, each on a different topic."
            )
        return (
            f"Search for local news and notable facts about {place} published between "
            f"{window.start.isoformat()} and {window.end.isoformat()}.{focus}\n"
            "Return a bullet-point list of 5-10 distinct facts, one per line starting with "
            "'- ', each naming its source."
        )


__all__ = ["SearchFetcher"]
