from __future__ import annotations

from pathlib import Path

import pytest

from hyperlocal.logging_conf import available_job_logs, job_log_path, job_logger, log_dir, tail_log


def test_log_dir_follows_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("HYPERLOCAL_HOME", str(tmp_path))
    assert log_dir() == tmp_path.resolve() / "logs"


def test_job_logger_creates_job_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("HYPERLOCAL_HOME", str(tmp_path))
    job_logger("daily-brief")
    job_logger("daily-brief")
    logs = list(available_job_logs())
    assert logs == [job_log_path("daily-brief")]


def test_tail_log_returns_last_lines(tmp_path: Path) -> None:
    path = tmp_path / "pipeline.log"
    path.write_text("".join(f"line {i}\n" for i in range(10)), encoding="utf-8")
    assert tail_log(path, 3) == ["line 7\n", "line 8\n", "line 9\n"]
    assert tail_log(tmp_path / "missing.log") == []
