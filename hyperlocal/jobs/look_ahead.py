"""Look-ahead digest: merged upcoming events for the next days."""

from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Mapping

from ..engine.events import EventMerger
from ..engine.keys import period_slug
from ..engine.models import ArtifactDraft, FetchResult, FetchWindow
from .base import ContentJob, EntityContext, make_preview, merge_content


class LookAheadJob(ContentJob):
    def fetch_window(self, now: datetime, local_date: date) -> FetchWindow:
        return FetchWindow(
            start=now,
            end=now + timedelta(days=self.config.lookahead_days),
            local_date=local_date,
        )

    def compose(
        self, ctx: EntityContext, results: Mapping[str, FetchResult | None]
    ) -> list[ArtifactDraft]:
        ordered = self.ordered(results)
        if not ordered:
            return []

        merger = EventMerger(ctx.local_date, city=ctx.entity.city)
        canonicals = merger.merge([result.events for result in ordered])
        listing = merger.render(canonicals)
        prose = merge_content(*(result.raw_text for result in ordered))
        body = "\n\n".join(part for part in (listing, prose) if part)
        if not body:
            return []

        if canonicals:
            headline = f"Look Ahead: {len(canonicals)} things to do in {ctx.entity.name}"
        else:
            headline = f"Look Ahead: {ctx.entity.name}"
        return [
            ArtifactDraft(
                job=self.name,
                entity_id=ctx.entity.id,
                slug=period_slug(self.name, ctx.entity.id, ctx.local_date),
                period_key=ctx.period_key,
                headline=headline,
                body=body,
                preview=make_preview(prose or listing),
                status=self.config.initial_status,
                metadata={
                    "kind": self.config.kind.value,
                    "local_date": ctx.local_date.isoformat(),
                    "events": [
                        dict(
                            item.event.as_dict(),
                            also_on=[day.isoformat() for day in item.also_on],
                        )
                        for item in canonicals
                    ],
                    "sources": [
                        {
                            "name": result.source,
                            "source_count": result.source_count,
                            "events": len(result.events),
                        }
                        for result in ordered
                    ],
                    "source_count": sum(result.source_count for result in ordered),
                },
            )
        ]


__all__ = ["LookAheadJob"]
