"""
Prediction validator.

Reconciles issued predictions with realized actuals once their target
hour has elapsed. A prediction whose actual has not arrived yet is left
untouched and retried on the next pass, until it is older than the
pending retention and gets expired.

Run aggregates (MAE, MAPE, sMAPE, RMSE, coverage) are computed over the
results validated in that run only, so they reflect current model
freshness rather than a lifetime average.
"""

import logging
import math
import threading
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime

import numpy as np

from pricecast.config import ValidationConfig, config
from pricecast.data.records import utc_now
from pricecast.data.store import TimeSeriesStore
from pricecast.inference import Prediction, PredictionStore
from pricecast.models.ensemble import ConstituentPerformanceTracker
from pricecast.utils.metrics import ModelMonitor, symmetric_percent_error

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of validating one prediction. Append-only."""

    prediction_id: str
    target_timestamp: datetime
    horizon_hours: int
    model_version: str
    predicted_value: float
    actual_value: float
    absolute_error: float
    percent_error: float | None
    symmetric_percent_error: float | None
    within_confidence_interval: bool
    confidence_lower: float
    confidence_upper: float
    validated_at: datetime

    def to_dict(self) -> dict:
        return {
            "prediction_id": self.prediction_id,
            "target_timestamp": self.target_timestamp.isoformat(),
            "horizon_hours": self.horizon_hours,
            "model_version": self.model_version,
            "predicted_value": self.predicted_value,
            "actual_value": self.actual_value,
            "absolute_error": self.absolute_error,
            "percent_error": self.percent_error,
            "symmetric_percent_error": self.symmetric_percent_error,
            "within_confidence_interval": self.within_confidence_interval,
            "validated_at": self.validated_at.isoformat(),
        }


def validate_prediction(
    prediction: Prediction, actual: float, validated_at: datetime
) -> ValidationResult:
    """Compare one prediction with its realized actual."""
    absolute_error = abs(actual - prediction.predicted_value)
    percent_error = absolute_error / abs(actual) * 100 if actual != 0 else None
    return ValidationResult(
        prediction_id=prediction.id,
        target_timestamp=prediction.target_timestamp,
        horizon_hours=prediction.horizon_hours,
        model_version=prediction.model_version,
        predicted_value=prediction.predicted_value,
        actual_value=actual,
        absolute_error=absolute_error,
        percent_error=percent_error,
        symmetric_percent_error=symmetric_percent_error(actual, prediction.predicted_value),
        within_confidence_interval=(
            prediction.confidence_lower <= actual <= prediction.confidence_upper
        ),
        confidence_lower=prediction.confidence_lower,
        confidence_upper=prediction.confidence_upper,
        validated_at=validated_at,
    )


def aggregate(results: list[ValidationResult]) -> dict:
    """MAE, MAPE, sMAPE, RMSE and coverage over a set of results."""
    if not results:
        return {
            "count": 0,
            "mae": None,
            "mape": None,
            "smape": None,
            "rmse": None,
            "within_confidence_interval": None,
        }
    errors = np.array([r.absolute_error for r in results])
    percent = [r.percent_error for r in results if r.percent_error is not None]
    symmetric = [r.symmetric_percent_error for r in results if r.symmetric_percent_error is not None]
    return {
        "count": len(results),
        "mae": float(np.mean(errors)),
        "mape": float(np.mean(percent)) if percent else None,
        "smape": float(np.mean(symmetric)) if symmetric else None,
        "rmse": float(np.sqrt(np.mean(errors ** 2))),
        "within_confidence_interval": float(
            np.mean([r.within_confidence_interval for r in results])
        ),
    }


@dataclass
class ValidationSummary:
    """Aggregates for one validation run."""

    validated: int = 0
    total_processed: int = 0
    no_data: int = 0
    expired: int = 0
    metrics: dict = field(default_factory=lambda: aggregate([]))
    by_horizon: dict[int, dict] = field(default_factory=dict)
    by_model: dict[str, dict] = field(default_factory=dict)
    results: list[ValidationResult] = field(default_factory=list)

    def to_dict(self) -> dict:
        summary = {k: v for k, v in self.metrics.items() if k != "count"}
        return {
            "validated": self.validated,
            "summary": {
                **summary,
                "total_processed": self.total_processed,
                "no_data": self.no_data,
                "expired": self.expired,
                "by_horizon": {str(h): m for h, m in sorted(self.by_horizon.items())},
                "by_model": dict(self.by_model),
            },
        }


class ValidationStore:
    """Append-only, thread-safe store of validation results."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._results: dict[str, ValidationResult] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._results)

    def add(self, result: ValidationResult) -> bool:
        """Store a result. Returns False when the prediction was already validated."""
        with self._lock:
            if result.prediction_id in self._results:
                return False
            self._results[result.prediction_id] = result
            return True

    def validated_ids(self) -> set[str]:
        with self._lock:
            return set(self._results)

    def all(self) -> list[ValidationResult]:
        with self._lock:
            return sorted(self._results.values(), key=lambda r: r.validated_at)

    def since(self, start: datetime) -> list[ValidationResult]:
        return [r for r in self.all() if r.validated_at >= start]


class PredictionValidator:
    """Validates due predictions against the time series store."""

    def __init__(
        self,
        store: TimeSeriesStore,
        predictions: PredictionStore,
        results: ValidationStore,
        tracker: ConstituentPerformanceTracker,
        monitor: ModelMonitor | None = None,
        cfg: ValidationConfig | None = None,
    ) -> None:
        self._cfg = cfg or config.validation
        self._store = store
        self._predictions = predictions
        self._results = results
        self._tracker = tracker
        self._monitor = monitor

    def validate(self, now: datetime | None = None) -> ValidationSummary:
        """Run one validation pass over predictions whose target has elapsed."""
        now = now or utc_now()
        due = self._predictions.due(now, exclude=self._results.validated_ids())
        expiry = now - self._cfg.pending_retention

        summary = ValidationSummary()
        new_results: list[ValidationResult] = []
        expired: list[str] = []

        # max_batch caps validated results; unresolved predictions do not count toward it
        for prediction in due:
            if len(new_results) >= self._cfg.max_batch:
                break
            summary.total_processed += 1
            record = self._store.find_actual(
                prediction.target_timestamp, self._cfg.actual_tolerance
            )
            if record is None or not math.isfinite(record.target_value):
                if prediction.target_timestamp < expiry:
                    expired.append(prediction.id)
                else:
                    summary.no_data += 1
                continue

            result = validate_prediction(prediction, float(record.target_value), now)
            if not self._results.add(result):
                continue
            new_results.append(result)

            for name, output in prediction.constituent_outputs.items():
                self._tracker.record(prediction.model_version, name, result.actual_value - output)

        if expired:
            summary.expired = self._predictions.expire(expired)
            logger.warning(
                "Validation: expired %d predictions with no actual after %s.",
                summary.expired, self._cfg.pending_retention,
            )

        summary.validated = len(new_results)
        summary.results = new_results
        summary.metrics = aggregate(new_results)

        by_horizon: dict[int, list[ValidationResult]] = defaultdict(list)
        by_model: dict[str, list[ValidationResult]] = defaultdict(list)
        for result in new_results:
            by_horizon[result.horizon_hours].append(result)
            by_model[result.model_version].append(result)
        summary.by_horizon = {h: aggregate(rs) for h, rs in by_horizon.items()}
        summary.by_model = {m: aggregate(rs) for m, rs in by_model.items()}

        self._update_monitor(by_model)

        logger.info(
            "Validation: %d validated, %d awaiting actuals, %d examined. MAE=%s coverage=%s",
            summary.validated, summary.no_data, summary.total_processed,
            _fmt(summary.metrics["mae"]), _fmt(summary.metrics["within_confidence_interval"]),
        )
        return summary

    def _update_monitor(self, by_model: dict[str, list[ValidationResult]]) -> None:
        if self._monitor is None:
            return
        for version, results in by_model.items():
            if len(results) < self._cfg.min_samples_for_model_update:
                logger.debug(
                    "Skipping monitor update for %s: %d samples.", version, len(results)
                )
                continue
            self._monitor.evaluate_model(
                version,
                y_true=np.array([r.actual_value for r in results]),
                y_pred=np.array([r.predicted_value for r in results]),
                y_lower=np.array([r.confidence_lower for r in results]),
                y_upper=np.array([r.confidence_upper for r in results]),
            )


def _fmt(value: float | None) -> str:
    return "n/a" if value is None else f"{value:.4f}"
