"""Daily neighborhood brief: one primary brief plus facts from other sources."""

from __future__ import annotations

from typing import Mapping

from ..config import SearchMode
from ..engine.keys import period_slug
from ..engine.models import ArtifactDraft, FetchResult
from ..engine.parser import clean_citations, parse_brief
from .base import ContentJob, EntityContext, make_preview, merge_content


class DailyBriefJob(ContentJob):
    """Also used for themed alert jobs, whose sources carry a ``focus``."""

    def compose(
        self, ctx: EntityContext, results: Mapping[str, FetchResult | None]
    ) -> list[ArtifactDraft]:
        ordered = self.ordered(results)
        if not ordered:
            return []

        primary, *secondary = ordered
        headline = ""
        primary_text = primary.raw_text
        source = self.source_config(primary.source)
        if source is not None and source.mode is SearchMode.BRIEF:
            brief = parse_brief(primary.raw_text)
            if brief is not None:
                headline, primary_text = brief.headline, brief.content
            else:
                primary_text = clean_citations(primary.raw_text)

        body = merge_content(primary_text, *(result.raw_text for result in secondary))
        if not body:
            return []
        headline = headline or f"{ctx.entity.name} Daily Brief"
        return [
            ArtifactDraft(
                job=self.name,
                entity_id=ctx.entity.id,
                slug=period_slug(self.name, ctx.entity.id, ctx.local_date),
                period_key=ctx.period_key,
                headline=headline,
                body=body,
                preview=make_preview(body),
                status=self.config.initial_status,
                metadata={
                    "kind": self.config.kind.value,
                    "local_date": ctx.local_date.isoformat(),
                    "sources": [
                        {"name": result.source, "source_count": result.source_count}
                        for result in ordered
                    ],
                    "source_count": sum(result.source_count for result in ordered),
                },
            )
        ]


__all__ = ["DailyBriefJob"]
