"""
Scheduler for automated pipeline workflows.

Uses APScheduler to run the workflow catalogue on a cron schedule:
- **Hourly (:05)**: data_collection, then prediction
- **Hourly (:35)**: validation of elapsed forecasts
- **Daily (03:00)**: daily_maintenance
- **Weekly (Sunday 02:00)**: full_update
- **On-demand**: run_now(workflow) from the CLI or an admin action

Each run is recorded as a TaskResult in a bounded history.
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from pricecast.settings import settings

if TYPE_CHECKING:
    from pricecast.service import ForecastingService

logger = logging.getLogger(__name__)


class TaskStatus(Enum):
    COMPLETED = "completed"
    PARTIAL = "partial"
    FAILED = "failed"


@dataclass
class TaskResult:
    """Result of a scheduled workflow execution."""

    task_name: str
    status: TaskStatus
    started_at: str
    finished_at: str | None = None
    duration_seconds: float = 0.0
    details: dict = field(default_factory=dict)
    error: str | None = None


class PipelineScheduler:
    """Runs pipeline workflows periodically in a background thread.

    Usage:
        scheduler = PipelineScheduler(service)
        scheduler.start()                 # begin all scheduled jobs
        scheduler.run_now("validation")   # trigger a workflow immediately
        scheduler.stop()                  # graceful shutdown
    """

    def __init__(
        self,
        service: "ForecastingService",
        timezone_name: str | None = None,
        max_history: int = 200,
    ) -> None:
        self._service = service
        self._timezone = timezone_name or settings.scheduler_timezone
        self._max_history = max_history
        self._task_history: list[TaskResult] = []
        self._lock = threading.Lock()
        self._scheduler: BackgroundScheduler | None = None

    @property
    def is_running(self) -> bool:
        return self._scheduler is not None

    @property
    def task_history(self) -> list[TaskResult]:
        with self._lock:
            return list(self._task_history)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start the scheduler with all configured jobs."""
        if self._scheduler is not None:
            logger.warning("Scheduler already running.")
            return

        self._scheduler = BackgroundScheduler(
            timezone=self._timezone,
            job_defaults={"coalesce": True, "max_instances": 1},
        )

        self._scheduler.add_job(
            self._collect_and_predict,
            CronTrigger(minute=5),
            id="hourly_collect_predict",
            name="Hourly data collection and prediction",
        )
        self._scheduler.add_job(
            self.run_now,
            CronTrigger(minute=35),
            args=["validation"],
            id="hourly_validation",
            name="Hourly prediction validation",
        )
        self._scheduler.add_job(
            self.run_now,
            CronTrigger(hour=3, minute=0),
            args=["daily_maintenance"],
            id="daily_maintenance",
            name="Daily maintenance",
        )
        self._scheduler.add_job(
            self.run_now,
            CronTrigger(day_of_week="sun", hour=2, minute=0),
            args=["full_update"],
            id="weekly_full_update",
            name="Weekly full update",
        )

        self._scheduler.start()
        logger.info("Scheduler started with %d jobs.", len(self._scheduler.get_jobs()))

    def stop(self) -> None:
        """Gracefully stop the scheduler."""
        if self._scheduler is not None:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None
        logger.info("Scheduler stopped.")

    # ------------------------------------------------------------------
    # Task execution
    # ------------------------------------------------------------------

    def run_now(self, workflow: str) -> TaskResult:
        """Execute a workflow immediately (blocking) and record the result."""
        start = time.monotonic()
        started_at = datetime.now(timezone.utc).isoformat()

        response = self._service.run_workflow(workflow)
        if not response.success:
            status = TaskStatus.FAILED
        elif response.tasks_failed:
            status = TaskStatus.PARTIAL
        else:
            status = TaskStatus.COMPLETED

        result = TaskResult(
            task_name=workflow,
            status=status,
            started_at=started_at,
            finished_at=datetime.now(timezone.utc).isoformat(),
            duration_seconds=round(time.monotonic() - start, 2),
            details={
                "tasks_executed": response.tasks_executed,
                "tasks_succeeded": response.tasks_succeeded,
                "tasks_failed": response.tasks_failed,
            },
            error=response.error,
        )
        if status == TaskStatus.FAILED:
            logger.error("Scheduled workflow %s failed: %s", workflow, response.error)

        self._record_result(result)
        return result

    def _collect_and_predict(self) -> None:
        collected = self.run_now("data_collection")
        if collected.status == TaskStatus.FAILED:
            logger.warning("Skipping prediction: data collection failed.")
            return
        self.run_now("prediction")

    def _record_result(self, result: TaskResult) -> None:
        with self._lock:
            self._task_history.append(result)
            if len(self._task_history) > self._max_history:
                self._task_history = self._task_history[-self._max_history:]

    # ------------------------------------------------------------------
    # Status & introspection
    # ------------------------------------------------------------------

    def get_scheduled_jobs(self) -> list[dict]:
        """Return info about all scheduled jobs."""
        if self._scheduler is None:
            return []
        return [
            {
                "id": job.id,
                "name": job.name,
                "next_run": str(job.next_run_time),
                "trigger": str(job.trigger),
            }
            for job in self._scheduler.get_jobs()
        ]

    def get_status(self) -> dict:
        """Return the scheduler status summary."""
        recent = self.task_history[-10:]
        return {
            "running": self.is_running,
            "timezone": self._timezone,
            "jobs": self.get_scheduled_jobs(),
            "recent_tasks": [
                {
                    "task": r.task_name,
                    "status": r.status.value,
                    "duration": r.duration_seconds,
                    "started_at": r.started_at,
                    "error": r.error,
                }
                for r in recent
            ],
        }
