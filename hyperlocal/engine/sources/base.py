"""Source fetcher contract."""

from __future__ import annotations

from abc import ABC, abstractmethod

from ..models import Entity, FetchResult, FetchWindow


class SourceFetcher(ABC):
    """One pluggable information-discovery source.

    Implementations return ``None`` instead of raising on non-fatal failures
    and bound their own latency with ``timeout``.
    """

    name: str = "source"
    timeout: float = 45.0

    @abstractmethod
    def fetch(self, entity: Entity, window: FetchWindow) -> FetchResult | None:
        """Return normalised findings for ``entity`` within ``window``."""

    def close(self) -> None:
        """Release underlying resources."""


__all__ = ["SourceFetcher"]
