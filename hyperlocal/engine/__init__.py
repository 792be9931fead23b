"""Engine components: fetch -> filter/merge -> publish."""

from .dedup import PublishGate, PublishOutcome, PublishResult
from .events import CanonicalEvent, EventMerger
from .hooks import JsonlHook, PublishHook, WebhookHook, run_hooks
from .llm import TextGenerator
from .models import ArtifactDraft, CandidateItem, Entity, FetchResult, FetchWindow, StructuredEvent
from .relevance import FilterDecision, FilterStats, RelevanceFilter, Verdict
from .retry import FixedDelayThrottle, RetryingCaller, is_quota_error
from .status import ArtifactStatus, publish_scheduled, transition
from .thread_pool import ThreadPoolManager

__all__ = [
    "ArtifactDraft",
    "ArtifactStatus",
    "CandidateItem",
    "CanonicalEvent",
    "Entity",
    "EventMerger",
    "FetchResult",
    "FetchWindow",
    "FilterDecision",
    "FilterStats",
    "FixedDelayThrottle",
    "JsonlHook",
    "PublishGate",
    "PublishHook",
    "PublishOutcome",
    "PublishResult",
    "RelevanceFilter",
    "RetryingCaller",
    "StructuredEvent",
    "TextGenerator",
    "ThreadPoolManager",
    "Verdict",
    "WebhookHook",
    "is_quota_error",
    "publish_scheduled",
    "run_hooks",
    "transition",
]
