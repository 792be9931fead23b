from __future__ import annotations

import json
from pathlib import Path

import pytest
import yaml

from hyperlocal.config import ConfigRepository, GlobalConfig


def test_global_config_created_on_first_load(temp_config_repository: ConfigRepository) -> None:
    path = temp_config_repository.locator.global_config_path()
    assert not path.exists()
    config = temp_config_repository.load_global_config()
    assert isinstance(config, GlobalConfig)
    assert path.exists()
    assert temp_config_repository.load_global_config() is config


def test_load_job_by_name_and_list(temp_config_repository: ConfigRepository, sample_job_config) -> None:
    job = sample_job_config(job_name="Daily Brief")
    path = temp_config_repository.job_path("Daily Brief")
    assert path.name == "daily-brief.yaml"
    path.write_text(yaml.safe_dump(job.model_dump(mode="json"), sort_keys=False), encoding="utf-8")

    loaded = temp_config_repository.load_job("Daily Brief")
    assert loaded.job_name == "Daily Brief"
    assert loaded.sources[0].name == "grounded"
    assert [cfg.job_name for cfg in temp_config_repository.list_jobs()] == ["Daily Brief"]


def test_non_config_files_are_ignored(temp_config_repository: ConfigRepository) -> None:
    (temp_config_repository.locator.jobs_dir / "notes.txt").write_text("not a job", encoding="utf-8")
    assert temp_config_repository.list_jobs() == []


def test_load_missing_job_raises(temp_config_repository: ConfigRepository) -> None:
    with pytest.raises(FileNotFoundError):
        temp_config_repository.load_job("nope")


def test_job_file_must_be_mapping(temp_config_repository: ConfigRepository) -> None:
    path = temp_config_repository.locator.jobs_dir / "broken.yaml"
    path.write_text("- just\n- a list\n", encoding="utf-8")
    with pytest.raises(ValueError):
        temp_config_repository.load_job(path)


def test_read_entities_accepts_list_and_mapping(tmp_path: Path) -> None:
    records = [{"id": "tribeca", "name": "Tribeca", "city": "New York", "timezone": "America/New_York"}]
    listed = tmp_path / "entities.json"
    listed.write_text(json.dumps(records), encoding="utf-8")
    wrapped = tmp_path / "entities.yaml"
    wrapped.write_text(yaml.safe_dump({"entities": records}), encoding="utf-8")

    for path in (listed, wrapped):
        parsed = ConfigRepository.read_entities(path)
        assert [item.id for item in parsed] == ["tribeca"]
        assert parsed[0].active is True


def test_locator_honours_home(temp_config_repository: ConfigRepository, tmp_path: Path) -> None:
    locator = temp_config_repository.locator
    assert locator.project_root == tmp_path.resolve()
    assert locator.jobs_dir.exists()
    assert locator.resolve(Path("data/x.db")) == (tmp_path / "data" / "x.db").resolve()
