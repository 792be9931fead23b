from __future__ import annotations

import json
from datetime import datetime, timezone

import pytest

from hyperlocal.engine.models import CandidateItem
from hyperlocal.engine.relevance import FilterStats, RelevanceFilter, Verdict
from hyperlocal.engine.retry import RetryingCaller
from hyperlocal.errors import QuotaExceededError, UpstreamError


@pytest.fixture
def candidate() -> CandidateItem:
    return CandidateItem(
        source="City Paper",
        title="New bakery on Götgatan",
        text="A sourdough bakery opens on Götgatan this week.",
        url="https://paper.example.com/bakery",
        published_at=datetime(2026, 2, 21, 8, 0, tzinfo=timezone.utc),
        city="Stockholm",
    )


def _reply(**fields) -> str:
    base = {
        "is_relevant": True,
        "target_id": "sodermalm",
        "relevance_reason": "on Götgatan",
        "rewritten_headline": "Sourdough arrives on Götgatan",
        "rewritten_preview": "A new bakery.",
        "rewritten_body": "A new bakery opens.",
        "confidence": 0.9,
    }
    base.update(fields)
    return json.dumps(base)


def _filter(generator, threshold: float = 0.7) -> RelevanceFilter:
    return RelevanceFilter(generator, threshold=threshold, retry=RetryingCaller((0,), sleep=lambda _: None))


def test_accepts_relevant_item(fake_generator, candidate, entities) -> None:
    decision = _filter(fake_generator([_reply()])).judge(candidate, entities[:2])
    assert decision.verdict is Verdict.ACCEPTED
    assert decision.target_id == "sodermalm"
    assert decision.judgment.rewritten_headline == "Sourdough arrives on Götgatan"


def test_accepts_legacy_target_key(fake_generator, candidate, entities) -> None:
    payload = json.loads(_reply())
    payload["neighborhood_id"] = payload.pop("target_id")
    payload["neighborhood_id"] = "vasastan"
    decision = _filter(fake_generator([json.dumps(payload)])).judge(candidate, entities[:2])
    assert decision.target_id == "vasastan"


def test_missing_target_falls_back_to_first(fake_generator, candidate, entities) -> None:
    decision = _filter(fake_generator([_reply(target_id=None)])).judge(candidate, entities[:2])
    assert decision.verdict is Verdict.ACCEPTED
    assert decision.target_id == "sodermalm"


def test_unknown_target_is_unparseable(fake_generator, candidate, entities) -> None:
    decision = _filter(fake_generator([_reply(target_id="atlantis")])).judge(candidate, entities[:2])
    assert decision.verdict is Verdict.UNPARSEABLE


def test_irrelevant_and_below_threshold(fake_generator, candidate, entities) -> None:
    irrelevant = _filter(fake_generator([_reply(is_relevant=False)])).judge(candidate, entities)
    low = _filter(fake_generator([_reply(confidence=0.5)])).judge(candidate, entities)
    assert irrelevant.verdict is Verdict.IRRELEVANT
    assert low.verdict is Verdict.BELOW_THRESHOLD


def test_threshold_is_inclusive(fake_generator, candidate, entities) -> None:
    decision = _filter(fake_generator([_reply(confidence=0.7)])).judge(candidate, entities)
    assert decision.accepted


def test_garbage_reply_is_unparseable(fake_generator, candidate, entities) -> None:
    assert _filter(fake_generator(["no idea"])).judge(candidate, entities).verdict is Verdict.UNPARSEABLE
    out_of_range = _filter(fake_generator([_reply(confidence=3)])).judge(candidate, entities)
    assert out_of_range.verdict is Verdict.UNPARSEABLE


def test_upstream_failure_is_errored(fake_generator, candidate, entities) -> None:
    generator = fake_generator([QuotaExceededError("429"), UpstreamError("down", status_code=503)])
    decision = _filter(generator).judge(candidate, entities)
    assert decision.verdict is Verdict.ERRORED
    assert len(generator.prompts) == 2


def test_prompt_lists_targets_and_style(candidate, entities) -> None:
    prompt = RelevanceFilter.build_prompt(candidate, entities[:2], style="Be brief.")
    assert "- sodermalm: Södermalm, Stockholm" in prompt
    assert "- vasastan: Vasastan, Stockholm" in prompt
    assert "Be brief." in prompt
    assert "2026-02-21T08:00:00+00:00" in prompt


def test_invalid_threshold_rejected(fake_generator) -> None:
    with pytest.raises(ValueError):
        RelevanceFilter(fake_generator(["{}"]), threshold=1.2)


def test_filter_stats_merge() -> None:
    first = FilterStats(accepted=1, irrelevant=2)
    second = FilterStats(accepted=1, errored=1, unparseable=1)
    first.merge(second)
    assert first.as_dict() == {
        "accepted": 2,
        "irrelevant": 2,
        "below_threshold": 0,
        "unparseable": 1,
        "errored": 1,
    }
    assert first.dropped == 4
