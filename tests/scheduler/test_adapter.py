from __future__ import annotations

from unittest.mock import MagicMock

from apscheduler.triggers.cron import CronTrigger

from hyperlocal.scheduler import APSchedulerAdapter
from hyperlocal.scheduler.apsched_adapter import SWEEP_JOB_ID


def test_build_trigger_from_crontab() -> None:
    trigger = APSchedulerAdapter._build_trigger("*/15 * * * *")
    assert isinstance(trigger, CronTrigger)


def test_schedule_job_registers_with_scheduler(sample_job_config) -> None:
    backend = MagicMock()
    adapter = APSchedulerAdapter(scheduler=backend)
    callback = MagicMock()

    assert adapter.schedule_job(sample_job_config(), callback) is True

    kwargs = backend.add_job.call_args.kwargs
    assert backend.add_job.call_args.args[0] is callback
    assert kwargs["id"] == "job::daily-brief"
    assert kwargs["args"] == ["daily-brief"]
    assert kwargs["max_instances"] == 1
    assert kwargs["coalesce"] is True
    assert isinstance(kwargs["trigger"], CronTrigger)


def test_disabled_job_is_not_scheduled(sample_job_config) -> None:
    backend = MagicMock()
    adapter = APSchedulerAdapter(scheduler=backend)
    assert adapter.schedule_job(sample_job_config(enabled=False), MagicMock()) is False
    assert adapter.schedule_job(sample_job_config(schedule=None), MagicMock()) is False
    backend.add_job.assert_not_called()


def test_schedule_sweep_and_start_once() -> None:
    backend = MagicMock()
    adapter = APSchedulerAdapter(scheduler=backend)
    adapter.schedule_sweep("*/5 * * * *", MagicMock())
    assert backend.add_job.call_args.kwargs["id"] == SWEEP_JOB_ID

    adapter.start()
    adapter.start()
    backend.start.assert_called_once()
    adapter.shutdown()
    backend.shutdown.assert_called_once_with(wait=False)
