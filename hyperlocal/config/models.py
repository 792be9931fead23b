"""Pydantic models used across the pipeline configuration flow."""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator, model_validator


class StorageBackend(str, Enum):
    """Durable stores the pipeline can publish into."""

    SQLITE = "sqlite"
    MONGODB = "mongodb"


class JobKind(str, Enum):
    """Content strategies a runner can be parameterised with."""

    DAILY_BRIEF = "daily_brief"
    LOOK_AHEAD = "look_ahead"
    RSS_NEWS = "rss_news"


class SourceKind(str, Enum):
    SEARCH = "search"
    RSS = "rss"


class SearchMode(str, Enum):
    """What a search source is asked to return."""

    FACTS = "facts"
    EVENTS = "events"
    BRIEF = "brief"


class HookKind(str, Enum):
    JSONL = "jsonl"
    WEBHOOK = "webhook"


class StorageConfig(BaseModel):
    backend: StorageBackend = StorageBackend.SQLITE
    sqlite_path: Path = Field(default=Path("data/hyperlocal.db"))
    mongo_uri: str = "mongodb://localhost:27017"
    mongo_database: str = "hyperlocal"

    @field_validator("sqlite_path", mode="before")
    @classmethod
    def _coerce_path(cls, value: Any) -> Path:
        return Path(value)


class GeneratorConfig(BaseModel):
    """Text-generation endpoint (OpenAI compatible ``chat/completions``)."""

    endpoint: str = "https://api.openai.com/v1"
    model: str = "gpt-4o-mini"
    api_key_env: str = "LLM_API_KEY"
    timeout_seconds: float = 60.0
    temperature: float = 0.2

    @field_validator("timeout_seconds")
    @classmethod
    def _positive_timeout(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("timeout_seconds must be > 0")
        return value


class FeedConfig(BaseModel):
    url: str
    name: str = ""
    city: str

    @model_validator(mode="after")
    def _default_name(self) -> "FeedConfig":
        if not self.name:
            self.name = self.url
        return self


class SourceConfig(BaseModel):
    """One pluggable information-discovery source of a job."""

    name: str
    kind: SourceKind
    mode: SearchMode = SearchMode.FACTS
    endpoint: str | None = None
    model: str | None = None
    api_key_env: str | None = None
    timeout_seconds: float = 45.0
    focus: str | None = Field(
        default=None,
        description="Optional theme narrowing the search (used by themed alert jobs).",
    )
    tools: list[dict[str, Any]] = Field(default_factory=list)
    feeds: list[FeedConfig] = Field(default_factory=list)
    delay_seconds: float = 0.5
    max_items: int = 15

    @model_validator(mode="after")
    def _validate_kind(self) -> "SourceConfig":
        if not self.name.strip():
            raise ValueError("source name cannot be empty")
        if self.timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0")
        if self.delay_seconds < 0:
            raise ValueError("delay_seconds must be >= 0")
        if self.kind is SourceKind.SEARCH and not (self.endpoint and self.model):
            raise ValueError(f"search source {self.name!r} requires endpoint and model")
        if self.kind is SourceKind.RSS and not self.feeds:
            raise ValueError(f"rss source {self.name!r} requires at least one feed")
        return self


class WindowConfig(BaseModel):
    """Local-hour window [start_hour, end_hour) in which entities are due."""

    start_hour: int = 6
    end_hour: int = 7

    @model_validator(mode="after")
    def _validate_hours(self) -> "WindowConfig":
        if not 0 <= self.start_hour < self.end_hour <= 24:
            raise ValueError("window requires 0 <= start_hour < end_hour <= 24")
        return self


class RetryConfig(BaseModel):
    delays: tuple[float, ...] = (2.0, 5.0, 15.0)

    @field_validator("delays", mode="before")
    @classmethod
    def _coerce_delays(cls, value: Any) -> tuple[float, ...]:
        if value in (None, ""):
            return ()
        if isinstance(value, (list, tuple)):
            delays = tuple(float(item) for item in value)
            if any(item < 0 for item in delays):
                raise ValueError("retry delays must be non-negative")
            return delays
        raise ValueError("retry delays expect a list of seconds")


class HookConfig(BaseModel):
    """Post-publish side effect; failures never affect the publish result."""

    kind: HookKind
    url: str | None = None
    secret_env: str | None = None
    timeout_seconds: float = 10.0

    @model_validator(mode="after")
    def _validate_target(self) -> "HookConfig":
        if self.kind is HookKind.WEBHOOK and not self.url:
            raise ValueError("webhook hook requires url")
        return self


class JobConfig(BaseModel):
    """Full definition of a recurring content job."""

    job_name: str
    kind: JobKind
    enabled: bool = True
    schedule: str | None = Field(
        default="*/15 * * * *",
        description="Crontab used by `hyperlocal serve`; null disables the built-in loop.",
    )
    window: WindowConfig | None = Field(default_factory=WindowConfig)
    batch_size: int = 3
    time_budget_seconds: float = 270.0
    lookback_hours: int = 24
    lookahead_days: int = 7
    relevance_threshold: float = 0.7
    max_items_per_entity: int = 15
    style_guide: str = ""
    initial_status: Literal["published", "pending", "draft"] = "published"
    retry: RetryConfig = Field(default_factory=RetryConfig)
    sources: list[SourceConfig] = Field(default_factory=list)
    hooks: list[HookConfig] = Field(default_factory=list)

    @model_validator(mode="after")
    def _validate_job(self) -> "JobConfig":
        if not self.job_name.strip():
            raise ValueError("job_name cannot be empty")
        if self.batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        if self.time_budget_seconds <= 0:
            raise ValueError("time_budget_seconds must be > 0")
        if not 0.0 <= self.relevance_threshold <= 1.0:
            raise ValueError("relevance_threshold must be within [0, 1]")
        if self.lookback_hours < 1 or self.lookahead_days < 1:
            raise ValueError("lookback_hours and lookahead_days must be >= 1")
        if not self.sources:
            raise ValueError(f"job {self.job_name!r} declares no sources")
        names = [source.name for source in self.sources]
        if len(names) != len(set(names)):
            raise ValueError("source names must be unique within a job")
        if self.kind is JobKind.RSS_NEWS and not any(
            source.kind is SourceKind.RSS for source in self.sources
        ):
            raise ValueError("rss_news jobs need at least one rss source")
        if self.kind is JobKind.LOOK_AHEAD and not any(
            source.mode is SearchMode.EVENTS for source in self.sources
        ):
            raise ValueError("look_ahead jobs need at least one events source")
        return self

    def credential_envs(self) -> list[str]:
        """Environment variables that must be set before the job may run."""

        envs = [source.api_key_env for source in self.sources if source.api_key_env]
        envs.extend(hook.secret_env for hook in self.hooks if hook.secret_env)
        return list(dict.fromkeys(envs))


class EntityConfig(BaseModel):
    """Onboarding record for a neighborhood."""

    id: str
    name: str
    city: str
    country: str = ""
    timezone: str
    active: bool = True

    @field_validator("id", "name", "city", "timezone")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("field cannot be blank")
        return value.strip()


class GlobalConfig(BaseModel):
    """Global controls shared across jobs."""

    storage: StorageConfig = Field(default_factory=StorageConfig)
    relevance_generator: GeneratorConfig = Field(default_factory=GeneratorConfig)
    cron_secret_env: str = "CRON_SECRET"
    trust_cron_header: bool = False
    cron_header_name: str = "x-cron-trigger"
    thread_pool_workers: int = 8
    max_resends_per_day: int = 3
    sweep_schedule: str = "*/5 * * * *"
    outputs_dir: Path = Field(default=Path("data/outputs"))

    @field_validator("outputs_dir", mode="before")
    @classmethod
    def _coerce_dirs(cls, value: Any) -> Path:
        return Path(value)

    @model_validator(mode="after")
    def _validate_limits(self) -> "GlobalConfig":
        if self.thread_pool_workers < 1:
            raise ValueError("thread_pool_workers must be >= 1")
        if self.max_resends_per_day < 0:
            raise ValueError("max_resends_per_day must be >= 0")
        return self


__all__ = [
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
