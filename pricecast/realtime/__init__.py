"""Scheduled execution of pipeline workflows."""

from pricecast.realtime.scheduler import PipelineScheduler, TaskResult, TaskStatus

__all__ = ["PipelineScheduler", "TaskResult", "TaskStatus"]
