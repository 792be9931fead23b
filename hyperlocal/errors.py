"""Exception hierarchy shared by the pipeline layers."""

from __future__ import annotations


class HyperlocalError(Exception):
    """Base class for all pipeline errors."""


class ConfigurationError(HyperlocalError):
    """Fatal misconfiguration detected before a run starts (e.g. missing credentials)."""

    def __init__(self, message: str, missing: list[str] | None = None) -> None:
        super().__init__(message)
        self.missing = list(missing or [])


class UpstreamError(HyperlocalError):
    """A remote collaborator (search, feed, text generation) answered with an error."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class QuotaExceededError(UpstreamError):
    """Upstream quota or rate limit hit; the call may succeed after a delay."""


class InvalidTransitionError(HyperlocalError):
    """Artifact status change not permitted by the lifecycle."""

    def __init__(self, current: str, target: str) -> None:
        super().__init__(f"Cannot move artifact from {current!r} to {target!r}")
        self.current = current
        self.target = target


class TriggerAuthError(HyperlocalError):
    """Invocation request carried neither the shared secret nor a trusted signal."""


__all__ = [
    "ConfigurationError",
    "HyperlocalError",
    "InvalidTransitionError",
    "QuotaExceededError",
    "TriggerAuthError",
    "UpstreamError",
]
