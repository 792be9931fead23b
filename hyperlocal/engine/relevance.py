"""Relevance judgment of candidate items against a set of target entities."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Protocol, Sequence

import structlog
from pydantic import AliasChoices, BaseModel, Field, ValidationError

from ..errors import UpstreamError
from .models import CandidateItem, Entity
from .parser import extract_json_object
from .retry import FixedDelayThrottle, RetryingCaller

DEFAULT_THRESHOLD = 0.7

SYSTEM_PROMPT = (
    "You are a local news editor. Decide whether a news item matters to readers "
    "of one of the listed neighborhoods and, if so, rewrite it for them. "
    "Answer with a single JSON object and nothing else."
)


class Generator(Protocol):
    def generate(self, prompt: str, system: str | None = None, tools=None, json_mode: bool = False) -> str:
        ...


class Verdict(str, Enum):
    ACCEPTED = "accepted"
    IRRELEVANT = "irrelevant"
    BELOW_THRESHOLD = "below_threshold"
    UNPARSEABLE = "unparseable"
    ERRORED = "errored"


class RelevanceJudgment(BaseModel):
    """Validated shape of the model's answer."""

    is_relevant: bool
    target_id: str | None = Field(
        default=None, validation_alias=AliasChoices("target_id", "neighborhood_id")
    )
    relevance_reason: str = ""
    rewritten_headline: str = ""
    rewritten_preview: str = ""
    rewritten_body: str = ""
    confidence: float = Field(ge=0.0, le=1.0)


@dataclass(slots=True)
class FilterDecision:
    verdict: Verdict
    judgment: RelevanceJudgment | None = None
    target_id: str | None = None
    error: str | None = None

    @property
    def accepted(self) -> bool:
        return self.verdict is Verdict.ACCEPTED


@dataclass(slots=True)
class FilterStats:
    """Counters for dropped and accepted candidates; never escalated as errors."""

    accepted: int = 0
    irrelevant: int = 0
    below_threshold: int = 0
    unparseable: int = 0
    errored: int = 0

    def record(self, decision: FilterDecision) -> None:
        name = decision.verdict.value
        setattr(self, name, getattr(self, name) + 1)

    def merge(self, other: "FilterStats") -> None:
        for verdict in Verdict:
            name = verdict.value
            setattr(self, name, getattr(self, name) + getattr(other, name))

    @property
    def dropped(self) -> int:
        return self.irrelevant + self.below_threshold + self.unparseable + self.errored

    def as_dict(self) -> dict[str, int]:
        return {verdict.value: getattr(self, verdict.value) for verdict in Verdict}


class RelevanceFilter:
    """Ask a text generator whether a candidate belongs to one of the targets."""

    def __init__(
        self,
        generator: Generator,
        threshold: float = DEFAULT_THRESHOLD,
        retry: RetryingCaller | None = None,
        throttle: FixedDelayThrottle | None = None,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        if not 0.0 <= threshold <= 1.0:
            raise ValueError("threshold must be within [0, 1]")
        self.generator = generator
        self.threshold = threshold
        self.retry = retry or RetryingCaller()
        self.throttle = throttle
        self.logger = logger or structlog.get_logger("hyperlocal.relevance")

    def judge(
        self,
        candidate: CandidateItem,
        targets: Sequence[Entity],
        style: str = "",
    ) -> FilterDecision:
        prompt = self.build_prompt(candidate, targets, style)
        if self.throttle is not None:
            self.throttle.wait()
        try:
            reply = self.retry.call(
                self.generator.generate, prompt, system=SYSTEM_PROMPT, json_mode=True
            )
        except UpstreamError as exc:
            self.logger.warning("relevance_call_failed", url=candidate.url, error=str(exc))
            return FilterDecision(Verdict.ERRORED, error=str(exc))

        payload = extract_json_object(reply)
        if payload is None:
            self.logger.info("relevance_unparseable", url=candidate.url)
            return FilterDecision(Verdict.UNPARSEABLE, error="no JSON object in reply")
        try:
            judgment = RelevanceJudgment.model_validate(payload)
        except ValidationError as exc:
            self.logger.info("relevance_invalid", url=candidate.url, error=str(exc))
            return FilterDecision(Verdict.UNPARSEABLE, error=str(exc))

        if not judgment.is_relevant:
            return FilterDecision(Verdict.IRRELEVANT, judgment=judgment)
        if judgment.confidence < self.threshold:
            return FilterDecision(Verdict.BELOW_THRESHOLD, judgment=judgment)

        target_id = self._resolve_target(judgment.target_id, targets)
        if target_id is None:
            self.logger.info(
                "relevance_unknown_target", url=candidate.url, target=judgment.target_id
            )
            return FilterDecision(Verdict.UNPARSEABLE, judgment=judgment, error="unknown target")
        return FilterDecision(Verdict.ACCEPTED, judgment=judgment, target_id=target_id)

    @staticmethod
    def _resolve_target(target_id: str | None, targets: Sequence[Entity]) -> str | None:
        known = {entity.id for entity in targets}
        if target_id:
            return target_id if target_id in known else None
        return targets[0].id if targets else None

    @staticmethod
    def build_prompt(candidate: CandidateItem, targets: Sequence[Entity], style: str = "") -> str:
        listing = "\n".join(f"- {entity.id}: {entity.name}, {entity.city}" for entity in targets)
        published = candidate.published_at.isoformat() if candidate.published_at else "unknown"
        parts = [
            f"Neighborhoods:\n{listing}",
            f"Item title: {candidate.title}",
            f"Item source: {candidate.source}",
            f"Published: {published}",
            f"Item text:\n{candidate.text}",
        ]
        if style:
            parts.append(f"Style guide:\n{style}")
        parts.append(
            "Return JSON with keys: is_relevant (bool), target_id (one of the ids above or null), "
            "relevance_reason, rewritten_headline, rewritten_preview, rewritten_body, "
            "confidence (0.0-1.0)."
        )
        return "\n\n".join(parts)


__all__ = [
    "DEFAULT_THRESHOLD",
    "FilterDecision",
    "FilterStats",
    "RelevanceFilter",
    "RelevanceJudgment",
    "Verdict",
]
