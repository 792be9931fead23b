"""Content job strategies and the factory wiring them from configuration."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Mapping

import structlog

from ..config import GlobalConfig, HookKind, JobConfig, JobKind, SourceKind
from ..engine.hooks import JsonlHook, PublishHook, WebhookHook
from ..engine.llm import TextGenerator
from ..engine.relevance import RelevanceFilter
from ..engine.retry import FixedDelayThrottle, RetryingCaller
from ..engine.sources import RSSFetcher, SearchFetcher, SourceFetcher
from .base import ContentJob, EntityContext, make_preview, merge_content
from .daily_brief import DailyBriefJob
from .look_ahead import LookAheadJob
from .rss_news import RssNewsJob

JOB_TYPES: dict[JobKind, type[ContentJob]] = {
    JobKind.DAILY_BRIEF: DailyBriefJob,
    JobKind.LOOK_AHEAD: LookAheadJob,
    JobKind.RSS_NEWS: RssNewsJob,
}


def credential_envs(job: JobConfig, global_config: GlobalConfig) -> list[str]:
    envs = job.credential_envs()
    if job.kind is JobKind.RSS_NEWS:
        envs.append(global_config.relevance_generator.api_key_env)
    return list(dict.fromkeys(envs))


def build_fetchers(
    job: JobConfig,
    credentials: Mapping[str, str | None],
    retry: RetryingCaller,
    logger: structlog.BoundLogger,
) -> list[SourceFetcher]:
    fetchers: list[SourceFetcher] = []
    for source in job.sources:
        source_log = logger.bind(source=source.name)
        if source.kind is SourceKind.RSS:
            fetchers.append(
                RSSFetcher(
                    source.name,
                    source.feeds,
                    max_items=source.max_items,
                    timeout=source.timeout_seconds,
                    throttle=FixedDelayThrottle(source.delay_seconds),
                    logger=source_log,
                )
            )
            continue
        generator = TextGenerator(
            endpoint=source.endpoint or "",
            model=source.model or "",
            api_key=credentials.get(source.api_key_env) if source.api_key_env else None,
            timeout=source.timeout_seconds,
            logger=source_log,
        )
        fetchers.append(
            SearchFetcher(
                source.name,
                generator,
                mode=source.mode,
                retry=retry,
                tools=source.tools,
                focus=source.focus,
                timeout=source.timeout_seconds,
                logger=source_log,
            )
        )
    return fetchers


def build_hooks(
    job: JobConfig,
    outputs_dir: Path,
    credentials: Mapping[str, str | None],
) -> list[PublishHook]:
    hooks: list[PublishHook] = []
    for hook in job.hooks:
        if hook.kind is HookKind.JSONL:
            hooks.append(JsonlHook(outputs_dir, job.job_name))
        elif hook.kind is HookKind.WEBHOOK and hook.url:
            secret = credentials.get(hook.secret_env) if hook.secret_env else None
            hooks.append(WebhookHook(hook.url, secret=secret, timeout=hook.timeout_seconds))
    return hooks


def build_job(
    job: JobConfig,
    global_config: GlobalConfig,
    env: Mapping[str, str] | None = None,
    logger: structlog.BoundLogger | None = None,
) -> ContentJob:
    """Resolve credentials from ``env`` and assemble the job strategy.

    Missing credentials are recorded, not raised; the runner refuses to start.
    """

    environ = os.environ if env is None else env
    log = logger or structlog.get_logger("hyperlocal.job").bind(job=job.job_name)
    credentials = {name: environ.get(name) or None for name in credential_envs(job, global_config)}
    retry = RetryingCaller(job.retry.delays, logger=log)
    fetchers = build_fetchers(job, credentials, retry, log)
    job_type = JOB_TYPES[job.kind]
    if job_type is RssNewsJob:
        settings = global_config.relevance_generator
        generator = TextGenerator(
            endpoint=settings.endpoint,
            model=settings.model,
            api_key=credentials.get(settings.api_key_env),
            timeout=settings.timeout_seconds,
            temperature=settings.temperature,
            logger=log,
        )
        relevance = RelevanceFilter(
            generator,
            threshold=job.relevance_threshold,
            retry=retry,
            throttle=FixedDelayThrottle(min((s.delay_seconds for s in job.sources), default=0.5)),
            logger=log,
        )
        return RssNewsJob(job, fetchers, credentials=credentials, logger=log, relevance=relevance)
    return job_type(job, fetchers, credentials=credentials, logger=log)


__all__ = [
    "ContentJob",
    "DailyBriefJob",
    "EntityContext",
    "JOB_TYPES",
    "LookAheadJob",
    "RssNewsJob",
    "build_hooks",
    "build_job",
    "credential_envs",
    "make_preview",
    "merge_content",
]
