"""Configuration loading helpers for the hyperlocal pipeline."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

import yaml

from .models import EntityConfig, GlobalConfig, JobConfig

CONFIG_EXTENSIONS = (".yaml", ".yml", ".json")
GLOBAL_CONFIG_FILENAME = "global_config.yaml"
JOB_CONFIG_SUFFIX = ".yaml"


def _slugify(name: str) -> str:
    return "".join(ch.lower() if ch.isalnum() else "-" for ch in name).strip("-")


def _load_text(path: Path) -> object:
    text = path.read_text(encoding="utf-8")
    if path.suffix in (".yaml", ".yml"):
        return yaml.safe_load(text)
    return json.loads(text)


def _read_file(path: Path) -> dict:
    data = _load_text(path) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Configuration file must contain a mapping: {path}")
    return data


def _write_file(path: Path, payload: dict) -> None:
    with path.open("w", encoding="utf-8") as stream:
        if path.suffix in (".yaml", ".yml"):
            yaml.safe_dump(payload, stream, allow_unicode=True, sort_keys=False)
        else:
            json.dump(payload, stream, indent=2, ensure_ascii=False)


@dataclass(slots=True)
class ConfigLocator:
    """Resolve important paths from project root."""

    project_root: Path | None = None
    data_dir: Path | None = None
    jobs_dir: Path | None = None
    outputs_dir: Path | None = None
    logs_dir: Path | None = None

    def __post_init__(self) -> None:
        env_root = os.environ.get("HYPERLOCAL_HOME")
        if env_root:
            root = Path(env_root).expanduser().resolve()
        else:
            root = (self.project_root or Path(__file__).resolve().parents[2]).resolve()
        self.project_root = root
        self.data_dir = (root / "data").resolve()
        self.jobs_dir = (self.data_dir / "jobs").resolve()
        self.outputs_dir = (self.data_dir / "outputs").resolve()
        self.logs_dir = (root / "logs").resolve()
        self.ensure_directories()

    def ensure_directories(self) -> None:
        for directory in (self.data_dir, self.jobs_dir, self.outputs_dir, self.logs_dir):
            directory.mkdir(parents=True, exist_ok=True)

    def global_config_path(self) -> Path:
        return self.data_dir / GLOBAL_CONFIG_FILENAME

    def resolve(self, path: Path) -> Path:
        """Anchor a configured relative path at the project root."""

        return path if path.is_absolute() else (self.project_root / path).resolve()


class ConfigRepository:
    """Repository encapsulating config IO and schema validation."""

    def __init__(self, locator: ConfigLocator | None = None) -> None:
        self.locator = locator or ConfigLocator()
        self._global_cache: GlobalConfig | None = None

    # ------------------------------------------------------------------
    # Global configuration helpers
    # ------------------------------------------------------------------
    def load_global_config(self) -> GlobalConfig:
        if self._global_cache is not None:
            return self._global_cache
        path = self.locator.global_config_path()
        if path.exists():
            global_cfg = GlobalConfig.model_validate(_read_file(path))
        else:
            global_cfg = GlobalConfig()
            _write_file(path, global_cfg.model_dump(mode="json"))
        self._global_cache = global_cfg
        return global_cfg

    # ------------------------------------------------------------------
    # Job configuration helpers
    # ------------------------------------------------------------------
    def job_path(self, job_name: str) -> Path:
        return self.locator.jobs_dir / f"{_slugify(job_name)}{JOB_CONFIG_SUFFIX}"

    def list_job_files(self) -> Iterable[Path]:
        for path in sorted(self.locator.jobs_dir.glob("*")):
            if path.is_file() and path.suffix in CONFIG_EXTENSIONS:
                yield path

    def list_jobs(self) -> list[JobConfig]:
        return [self.load_job(path) for path in self.list_job_files()]

    def load_job(self, identifier: str | Path) -> JobConfig:
        path = identifier if isinstance(identifier, Path) else self.job_path(identifier)
        if not path.exists():
            raise FileNotFoundError(f"Job configuration not found: {identifier}")
        return JobConfig.model_validate(_read_file(path))

    # ------------------------------------------------------------------
    # Entity onboarding files
    # ------------------------------------------------------------------
    @staticmethod
    def read_entities(path: Path) -> list[EntityConfig]:
        """Parse an onboarding file: a list of entities or ``{entities: [...]}``."""

        payload = _load_text(path)
        if isinstance(payload, dict):
            payload = payload.get("entities", [])
        if not isinstance(payload, list):
            raise ValueError(f"Entity file must contain a list: {path}")
        return [EntityConfig.model_validate(item) for item in payload]


__all__ = ["CONFIG_EXTENSIONS", "ConfigLocator", "ConfigRepository"]
