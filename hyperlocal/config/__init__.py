"""Configuration package exports."""

from .loader import ConfigLocator, ConfigRepository
from .models import (
    EntityConfig,
    FeedConfig,
    GeneratorConfig,
    GlobalConfig,
    HookConfig,
    HookKind,
    JobConfig,
    JobKind,
    RetryConfig,
    SearchMode,
    SourceConfig,
    SourceKind,
    StorageBackend,
    StorageConfig,
    WindowConfig,
)

__all__ = [
    "ConfigLocator",
    "ConfigRepository",
    "EntityConfig",
    "FeedConfig",
    "GeneratorConfig",
    "GlobalConfig",
    "HookConfig",
    "HookKind",
    "JobConfig",
    "JobKind",
    "RetryConfig",
    "SearchMode",
    "SourceConfig",
    "SourceKind",
    "StorageBackend",
    "StorageConfig",
    "WindowConfig",
]
