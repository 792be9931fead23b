"""Scheduling: local-time windows and the APScheduler loop."""

from .apsched_adapter import APSchedulerAdapter
from .window import DueEntity, ScheduleDecision, TimeWindowScheduler, local_now

__all__ = ["APSchedulerAdapter", "DueEntity", "ScheduleDecision", "TimeWindowScheduler", "local_now"]
