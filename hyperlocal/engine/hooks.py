"""Post-publish side effects, run after a successful insert and isolated from it."""

from __future__ import annotations

import json
import re
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock
from typing import Any, Iterable, Mapping

import httpx
import structlog

from ..errors import UpstreamError


class PublishHook(ABC):
    """Uniform hook contract; raising is allowed and only counted by the caller."""

    name = "hook"

    @abstractmethod
    def __call__(self, artifact: Mapping[str, Any]) -> None:
        """React to a newly created artifact."""

    def close(self) -> None:
        """Release underlying resources."""


class JsonlHook(PublishHook):
    """Append every created artifact to a per-run JSON Lines file."""

    name = "jsonl"

    def __init__(self, output_dir: Path, job_name: str, run_tag: str | None = None) -> None:
        self.output_dir = output_dir
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.run_tag = run_tag or datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
        slug = re.sub(r"[^0-9A-Za-z_-]+", "_", job_name.strip()) or "job"
        self.path = self.output_dir / f"{slug}-{self.run_tag}.jsonl"
        self._lock = Lock()

    def __call__(self, artifact: Mapping[str, Any]) -> None:
        line = json.dumps(dict(artifact), ensure_ascii=False, default=str)
        with self._lock, self.path.open("a", encoding="utf-8") as stream:
            stream.write(line + "\n")


class WebhookHook(PublishHook):
    """Notify a downstream service (e.g. image generation) about a new artifact."""

    name = "webhook"

    def __init__(
        self,
        url: str,
        secret: str | None = None,
        timeout: float = 10.0,
        client: httpx.Client | None = None,
    ) -> None:
        self.url = url
        self.secret = secret
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=timeout)

    def __call__(self, artifact: Mapping[str, Any]) -> None:
        headers = {"Authorization": f"Bearer {self.secret}"} if self.secret else {}
        payload = {
            "artifact_id": artifact.get("id"),
            "slug": artifact.get("slug"),
            "job": artifact.get("job"),
            "entity_id": artifact.get("entity_id"),
        }
        response = self._client.post(self.url, json=payload, headers=headers)
        if response.status_code >= 400:
            raise UpstreamError(
                f"Webhook {self.url} answered {response.status_code}",
                status_code=response.status_code,
            )

    def close(self) -> None:
        if self._owns_client:
            self._client.close()


def run_hooks(
    hooks: Iterable[PublishHook],
    artifact: Mapping[str, Any],
    logger: structlog.BoundLogger | None = None,
) -> int:
    """Run each hook; return how many failed."""

    log = logger or structlog.get_logger("hyperlocal.hooks")
    failures = 0
    for hook in hooks:
        try:
            hook(artifact)
        except Exception as exc:  # noqa: BLE001
            failures += 1
            log.warning("hook_failed", hook=hook.name, slug=artifact.get("slug"), error=str(exc))
    return failures


__all__ = ["JsonlHook", "PublishHook", "WebhookHook", "run_hooks"]
