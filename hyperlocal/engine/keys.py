"""Deterministic idempotency keys: period keys and content-addressed slugs."""

from __future__ import annotations

import hashlib
import re
from datetime import date

_SLUG_PATTERN = re.compile(r"[^a-z0-9]+")


def slugify(value: str) -> str:
    return _SLUG_PATTERN.sub("-", value.lower()).strip("-")


def period_key(entity_id: str, local_date: date) -> str:
    """Identify the (entity, local calendar day) period a job publishes for."""

    return f"{entity_id}@{local_date.isoformat()}"


def content_hash(*parts: str) -> str:
    """SHA-256 over the given parts; stable across processes and restarts."""

    digest = hashlib.sha256()
    for part in parts:
        digest.update(part.encode("utf-8"))
        digest.update(b"\x1f")
    return digest.hexdigest()


def _key_part(value: str) -> str:
    """Slug of ``value``; a lossy slug gets a short hash of the raw value appended."""

    slug = slugify(value)
    if slug == value:
        return slug
    suffix = content_hash(value)[:8]
    return f"{slug}-{suffix}" if slug else suffix


def period_slug(job_name: str, entity_id: str, local_date: date) -> str:
    """``<entity>--<job>--<date>``; parts never contain ``--``."""

    return "--".join((_key_part(entity_id), _key_part(job_name), local_date.isoformat()))


def item_slug(job_name: str, url: str, published: str = "") -> str:
    """Slug for item-level artifacts (e.g. one per news link)."""

    return f"{slugify(job_name)}-{content_hash(url, published)[:16]}"


__all__ = ["content_hash", "item_slug", "period_key", "period_slug", "slugify"]
