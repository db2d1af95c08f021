"""
Pydantic schemas for the pipeline's response contracts.

These schemas define the external contract consumed by schedulers,
admin actions and dashboards.
No business logic belongs here.
"""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field


class WorkflowResponse(BaseModel):
    """Summary of one workflow run, returned whether it succeeded or not."""

    success: bool
    workflow: str
    total_time_ms: float
    tasks_executed: int
    tasks_succeeded: int
    tasks_failed: int
    results: dict[str, dict[str, Any]]
    skipped: list[str] = Field(default_factory=list)
    error: str | None = None


class PredictionItem(BaseModel):
    """A single forecast in the response."""

    id: str
    issued_at: datetime
    target_timestamp: datetime
    horizon_hours: int
    predicted_value: float
    confidence_lower: float
    confidence_upper: float
    prediction_std: float
    model_version: str
    confidence: Literal["high", "medium", "low"]
    constituent_outputs: dict[str, float] = Field(default_factory=dict)


class ModelInfo(BaseModel):
    version: str
    trained_at: datetime
    performance: dict[str, float | None]


class PredictionResponse(BaseModel):
    """Response schema for a forecast request."""

    predictions: list[PredictionItem]
    model_info: ModelInfo
    weights_used: dict[str, float]
    weights_source: Literal["validated", "uniform"]


class ValidationSummarySchema(BaseModel):
    mae: float | None
    mape: float | None
    smape: float | None = None
    rmse: float | None
    within_confidence_interval: float | None
    total_processed: int = 0
    no_data: int = 0
    expired: int = 0
    by_horizon: dict[str, dict[str, Any]] = Field(default_factory=dict)
    by_model: dict[str, dict[str, Any]] = Field(default_factory=dict)


class ValidationResponse(BaseModel):
    """Response schema for a validation trigger."""

    validated: int
    summary: ValidationSummarySchema


class AlertSchema(BaseModel):
    severity: Literal["warning", "critical"]
    message: str
    metric: str


class HealthResponse(BaseModel):
    """Response schema for the system health surface."""

    status: Literal["healthy", "warning", "degraded", "error"]
    checked_at: datetime
    metrics: dict[str, Any]
    alerts: list[AlertSchema]
