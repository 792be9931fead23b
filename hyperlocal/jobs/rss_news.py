"""News derived from city RSS feeds, judged per item against the city's neighborhoods."""

from __future__ import annotations

from typing import Mapping

from ..engine.keys import item_slug
from ..engine.models import ArtifactDraft, Entity, FetchResult
from ..engine.relevance import RelevanceFilter
from .base import ContentJob, EntityContext, make_preview


class RssNewsJob(ContentJob):
    """Emits one artifact per accepted item; slugs derive from the item link."""

    publish_per_period = False

    def __init__(self, *args, relevance: RelevanceFilter, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.relevance = relevance

    def unit_key(self, entity: Entity) -> str:
        # feeds are per city; the relevance call picks the neighborhood
        return f"city:{entity.city.strip().lower()}"

    def compose(
        self, ctx: EntityContext, results: Mapping[str, FetchResult | None]
    ) -> list[ArtifactDraft]:
        drafts: list[ArtifactDraft] = []
        targets = list(ctx.targets) or [ctx.entity]
        candidates = [item for result in self.ordered(results) for item in result.items]
        for item in candidates[: self.config.max_items_per_entity]:
            published = item.published_at.isoformat() if item.published_at else ""
            slug = item_slug(self.name, item.url, published)
            if ctx.is_known(slug):
                ctx.skipped_known += 1
                continue
            decision = self.relevance.judge(item, targets, style=self.config.style_guide)
            ctx.stats.record(decision)
            if not decision.accepted or decision.judgment is None:
                continue
            judgment = decision.judgment
            body = judgment.rewritten_body.strip() or item.text
            drafts.append(
                ArtifactDraft(
                    job=self.name,
                    entity_id=decision.target_id or ctx.entity.id,
                    slug=slug,
                    headline=judgment.rewritten_headline.strip() or item.title,
                    body=body,
                    preview=judgment.rewritten_preview.strip() or make_preview(body),
                    status=self.config.initial_status,
                    metadata={
                        "kind": self.config.kind.value,
                        "source_name": item.source,
                        "source_url": item.url,
                        "original_title": item.title,
                        "published_at": published or None,
                        "confidence": judgment.confidence,
                        "relevance_reason": judgment.relevance_reason,
                    },
                )
            )
        return drafts

    def close(self) -> None:
        super().close()
        close = getattr(self.relevance.generator, "close", None)
        if close is not None:
            close()


__all__ = ["RssNewsJob"]
