"""
Pipeline orchestrator.

A workflow is an ordered tuple of Stage descriptors {name, run, required}.
Stages run sequentially in declared order because each stage consumes
the committed output of the previous one. A simple loop applies the
failure policy:

- required stage fails -> stop, the run fails with that stage's error
- optional stage fails -> record it, log it, continue

Every run returns a WorkflowRun summary, whatever its outcome, so a
partially successful run is distinguishable from a total failure.
"""

import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Protocol

from pricecast.data.records import utc_now
from pricecast.data.sources import IngestionBuffer
from pricecast.errors import UnknownWorkflowError

logger = logging.getLogger(__name__)


@dataclass
class WorkflowContext:
    """State shared by the stages of one workflow run."""

    workflow_name: str
    run_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    started_at: datetime = field(default_factory=utc_now)
    buffer: IngestionBuffer = field(default_factory=IngestionBuffer)
    outputs: dict[str, dict] = field(default_factory=dict)


StageFn = Callable[[WorkflowContext], dict[str, Any]]


@dataclass(frozen=True)
class Stage:
    """One step of a workflow."""

    name: str
    run: StageFn
    required: bool = True


@dataclass(frozen=True)
class Workflow:
    name: str
    stages: tuple[Stage, ...]
    description: str = ""


@dataclass
class StageResult:
    """Outcome of one executed stage."""

    name: str
    required: bool
    success: bool
    elapsed_ms: float
    output: dict[str, Any] = field(default_factory=dict)
    error: str | None = None
    error_type: str | None = None

    def to_dict(self) -> dict:
        if self.success:
            return {
                "success": True,
                "required": self.required,
                "elapsed_ms": self.elapsed_ms,
                "output": self.output,
            }
        return {
            "success": False,
            "required": self.required,
            "elapsed_ms": self.elapsed_ms,
            "error": self.error,
            "error_type": self.error_type,
        }


@dataclass
class WorkflowRun:
    """Ephemeral record of one orchestrator execution."""

    workflow_name: str
    started_at: datetime
    tasks_executed: int = 0
    tasks_succeeded: int = 0
    tasks_failed: int = 0
    per_task_results: dict[str, StageResult] = field(default_factory=dict)
    skipped: list[str] = field(default_factory=list)
    elapsed_ms: float = 0.0
    success: bool = True
    error: str | None = None

    def to_response(self) -> dict:
        response = {
            "success": self.success,
            "workflow": self.workflow_name,
            "started_at": self.started_at.isoformat(),
            "total_time_ms": round(self.elapsed_ms, 2),
            "tasks_executed": self.tasks_executed,
            "tasks_succeeded": self.tasks_succeeded,
            "tasks_failed": self.tasks_failed,
            "results": {name: r.to_dict() for name, r in self.per_task_results.items()},
        }
        if self.skipped:
            response["skipped"] = list(self.skipped)
        if self.error is not None:
            response["error"] = self.error
        return response


class PipelineOrchestrator:
    """Runs named workflows with required / optional stage semantics.

    Usage:
        orchestrator = PipelineOrchestrator(build_workflows(service))
        run = orchestrator.run_workflow("full_update")
        run.to_response()
    """

    def __init__(self, workflows: list[Workflow] | None = None) -> None:
        self._workflows: dict[str, Workflow] = {}
        for workflow in workflows or []:
            self.register(workflow)

    def register(self, workflow: Workflow) -> None:
        self._workflows[workflow.name] = workflow

    @property
    def workflow_names(self) -> list[str]:
        return list(self._workflows.keys())

    def get(self, name: str) -> Workflow:
        workflow = self._workflows.get(name)
        if workflow is None:
            raise UnknownWorkflowError(name, self.workflow_names)
        return workflow

    def run_workflow(self, name: str) -> WorkflowRun:
        """Execute a workflow. Never raises; failures are in the returned run."""
        run = WorkflowRun(workflow_name=name, started_at=utc_now())
        start = time.monotonic()

        try:
            workflow = self.get(name)
        except UnknownWorkflowError as exc:
            logger.warning(exc.message)
            run.success = False
            run.error = exc.message
            return run

        logger.info("=" * 60)
        logger.info("Workflow %s: %d stages", name, len(workflow.stages))
        logger.info("=" * 60)

        context = WorkflowContext(workflow_name=name, started_at=run.started_at)
        for index, stage in enumerate(workflow.stages):
            result = self._run_stage(stage, context)
            run.per_task_results[stage.name] = result
            run.tasks_executed += 1

            if result.success:
                run.tasks_succeeded += 1
                context.outputs[stage.name] = result.output
                continue

            run.tasks_failed += 1
            if stage.required:
                run.success = False
                run.error = f"Required stage '{stage.name}' failed: {result.error}"
                run.skipped = [s.name for s in workflow.stages[index + 1:]]
                break

        run.elapsed_ms = (time.monotonic() - start) * 1000
        logger.info(
            "Workflow %s %s in %.0f ms: %d executed, %d succeeded, %d failed.",
            name, "succeeded" if run.success else "FAILED", run.elapsed_ms,
            run.tasks_executed, run.tasks_succeeded, run.tasks_failed,
        )
        return run

    @staticmethod
    def _run_stage(stage: Stage, context: WorkflowContext) -> StageResult:
        logger.info("Stage %s (%s)", stage.name, "required" if stage.required else "optional")
        start = time.monotonic()
        try:
            output = stage.run(context) or {}
        except Exception as exc:
            elapsed = (time.monotonic() - start) * 1000
            if stage.required:
                logger.exception("Required stage %s failed.", stage.name)
            else:
                logger.warning("Optional stage %s failed: %s", stage.name, exc)
            return StageResult(
                name=stage.name,
                required=stage.required,
                success=False,
                elapsed_ms=round(elapsed, 2),
                error=getattr(exc, "message", None) or str(exc) or type(exc).__name__,
                error_type=type(exc).__name__,
            )
        elapsed = (time.monotonic() - start) * 1000
        return StageResult(
            name=stage.name,
            required=stage.required,
            success=True,
            elapsed_ms=round(elapsed, 2),
            output=output,
        )


class PipelineStages(Protocol):
    """Stage implementations the workflow catalogue is built from."""

    def fetch_market_data(self, ctx: WorkflowContext) -> dict: ...
    def enrich_weather(self, ctx: WorkflowContext) -> dict: ...
    def enrich_gas(self, ctx: WorkflowContext) -> dict: ...
    def store_records(self, ctx: WorkflowContext) -> dict: ...
    def compute_features(self, ctx: WorkflowContext) -> dict: ...
    def train_model(self, ctx: WorkflowContext) -> dict: ...
    def generate_predictions(self, ctx: WorkflowContext) -> dict: ...
    def validate_predictions(self, ctx: WorkflowContext) -> dict: ...
    def check_data_quality(self, ctx: WorkflowContext) -> dict: ...
    def retrain_if_degraded(self, ctx: WorkflowContext) -> dict: ...


def build_workflows(stages: PipelineStages) -> list[Workflow]:
    """The standard workflow catalogue."""
    fetch = Stage("fetch_market_data", stages.fetch_market_data, required=True)
    weather = Stage("enrich_weather", stages.enrich_weather, required=False)
    gas = Stage("enrich_gas", stages.enrich_gas, required=False)
    store = Stage("store_records", stages.store_records, required=True)
    features = Stage("compute_features", stages.compute_features, required=True)
    train = Stage("train_model", stages.train_model, required=True)
    predict = Stage("generate_predictions", stages.generate_predictions, required=True)
    validate = Stage("validate_predictions", stages.validate_predictions, required=True)

    return [
        Workflow(
            "data_collection",
            (fetch, weather, gas, store),
            "Ingest market data with optional weather and gas enrichment",
        ),
        Workflow("feature_engineering", (features,), "Refresh missing or stale features"),
        Workflow("model_training", (features, train), "Train a new model version"),
        Workflow("prediction", (features, predict), "Issue multi-horizon forecasts"),
        Workflow("validation", (validate,), "Validate elapsed forecasts"),
        Workflow(
            "full_update",
            (
                fetch, weather, gas, store, features, train, predict,
                Stage("validate_predictions", stages.validate_predictions, required=False),
            ),
            "Ingest, train, predict and validate",
        ),
        Workflow(
            "daily_maintenance",
            (
                validate,
                Stage("check_data_quality", stages.check_data_quality, required=False),
                features,
                Stage("retrain_if_degraded", stages.retrain_if_degraded, required=False),
            ),
            "Validate, audit data quality and retrain on degradation",
        ),
    ]
