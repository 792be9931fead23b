"""structlog over stdlib logging, writing JSON lines into the pipeline's log tree.

Layout under ``$HYPERLOCAL_HOME/logs``::

    pipeline.log        every event from the ``hyperlocal`` logger tree
    error.log           ERROR and above only
    jobs/<job>.log      events emitted through ``job_logger(job)``
"""

from __future__ import annotations

import logging
import logging.config
import os
from pathlib import Path
from typing import Any, Iterable

import structlog

ROOT_LOGGER = "hyperlocal"
JOB_LOGGER_PREFIX = f"{ROOT_LOGGER}.job"
PIPELINE_LOG = "pipeline.log"
ERROR_LOG = "error.log"
JOB_LOG_DIR = "jobs"
JSON_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"

_configured = False


def log_dir() -> Path:
    env_root = os.environ.get("HYPERLOCAL_HOME")
    if env_root:
        return Path(env_root).expanduser().resolve() / "logs"
    return Path(__file__).resolve().parents[1] / "logs"


def job_log_path(job_name: str) -> Path:
    return log_dir() / JOB_LOG_DIR / f"{job_name}.log"


def _file_handler(path: Path, level: str) -> dict[str, Any]:
    return {"class": "logging.FileHandler", "level": level, "filename": str(path), "formatter": "json"}


def _dict_config(directory: Path, level: str) -> dict[str, Any]:
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {"json": {"()": "pythonjsonlogger.jsonlogger.JsonFormatter", "fmt": JSON_FORMAT}},
        "handlers": {
            "console": {"class": "logging.StreamHandler", "level": level, "formatter": "json"},
            "pipeline": _file_handler(directory / PIPELINE_LOG, "INFO"),
            "errors": _file_handler(directory / ERROR_LOG, "ERROR"),
        },
        "loggers": {
            ROOT_LOGGER: {"handlers": ["console", "pipeline", "errors"], "level": level, "propagate": False},
        },
    }


def configure_logging(verbose: bool = False) -> structlog.BoundLogger:
    """Install handlers once per process and return the pipeline logger."""

    global _configured
    directory = log_dir()
    (directory / JOB_LOG_DIR).mkdir(parents=True, exist_ok=True)
    if not _configured:
        logging.config.dictConfig(_dict_config(directory, "DEBUG" if verbose else "INFO"))
        structlog.configure(
            processors=[
                structlog.contextvars.merge_contextvars,
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.stdlib.add_log_level,
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
                structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
            ],
            logger_factory=structlog.stdlib.LoggerFactory(),
            cache_logger_on_first_use=True,
        )
        _configured = True
    return structlog.get_logger(ROOT_LOGGER)


def job_logger(job_name: str, verbose: bool = False) -> structlog.BoundLogger:
    """Logger bound to ``job``; its events also land in ``jobs/<job>.log``.

    Job loggers propagate to the pipeline logger, so run events are visible in
    both the shared and the per-job file.
    """

    configure_logging(verbose)
    path = job_log_path(job_name)
    path.parent.mkdir(parents=True, exist_ok=True)
    stdlib_logger = logging.getLogger(f"{JOB_LOGGER_PREFIX}.{job_name}")
    if not any(getattr(handler, "baseFilename", None) == str(path) for handler in stdlib_logger.handlers):
        handler = logging.FileHandler(path, encoding="utf-8")
        handler.setLevel(logging.INFO)
        pipeline_handlers = logging.getLogger(ROOT_LOGGER).handlers
        if pipeline_handlers:
            handler.setFormatter(pipeline_handlers[0].formatter)
        stdlib_logger.addHandler(handler)
    return structlog.get_logger(stdlib_logger.name).bind(job=job_name)


def tail_log(path: Path, line_count: int = 100) -> list[str]:
    if not path.exists():
        return []
    with path.open("r", encoding="utf-8", errors="ignore") as stream:
        return stream.readlines()[-line_count:]


def available_job_logs() -> Iterable[Path]:
    return sorted((log_dir() / JOB_LOG_DIR).glob("*.log"))


__all__ = [
    "available_job_logs",
    "configure_logging",
    "job_log_path",
    "job_logger",
    "log_dir",
    "tail_log",
]
