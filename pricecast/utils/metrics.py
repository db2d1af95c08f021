"""
Model evaluation metrics and monitoring.

Provides:
- Standard regression metrics (MAE, RMSE, MAPE, sMAPE, R²)
- Calibration score for confidence intervals
- Prediction drift detection
- Rolling performance tracking per model version
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone

import numpy as np

from pricecast.config import MonitorConfig, config

logger = logging.getLogger(__name__)


def mae(y_true: np.ndarray, y_pred: np.ndarray) -> float:
    return float(np.mean(np.abs(np.asarray(y_true) - np.asarray(y_pred))))


def rmse(y_true: np.ndarray, y_pred: np.ndarray) -> float:
    residuals = np.asarray(y_true) - np.asarray(y_pred)
    return float(np.sqrt(np.mean(residuals ** 2)))


def mape(y_true: np.ndarray, y_pred: np.ndarray) -> float | None:
    """Mean absolute percent error in percent. Zero actuals are excluded.

    Returns None when every actual is zero.
    """
    y_true = np.asarray(y_true, dtype=float)
    y_pred = np.asarray(y_pred, dtype=float)
    mask = y_true != 0
    if not mask.any():
        return None
    return float(np.mean(np.abs((y_true[mask] - y_pred[mask]) / y_true[mask])) * 100)


def smape(y_true: np.ndarray, y_pred: np.ndarray) -> float | None:
    """Symmetric MAPE in percent (0..200). Pairs that are both zero are excluded."""
    y_true = np.asarray(y_true, dtype=float)
    y_pred = np.asarray(y_pred, dtype=float)
    denom = (np.abs(y_true) + np.abs(y_pred)) / 2
    mask = denom != 0
    if not mask.any():
        return None
    return float(np.mean(np.abs(y_true[mask] - y_pred[mask]) / denom[mask]) * 100)


def r_squared(y_true: np.ndarray, y_pred: np.ndarray) -> float:
    y_true = np.asarray(y_true, dtype=float)
    residuals = y_true - np.asarray(y_pred, dtype=float)
    ss_res = np.sum(residuals ** 2)
    ss_tot = np.sum((y_true - np.mean(y_true)) ** 2)
    return float(1 - (ss_res / ss_tot)) if ss_tot > 0 else 0.0


def symmetric_percent_error(actual: float, predicted: float) -> float | None:
    denom = (abs(actual) + abs(predicted)) / 2
    if denom == 0:
        return None
    return abs(actual - predicted) / denom * 100


@dataclass
class PerformanceReport:
    """Validated performance of one model version over one validation run."""

    model_name: str
    evaluated_at: datetime
    mae: float
    rmse: float
    mape: float | None
    smape: float | None
    calibration_score: float | None
    mean_prediction: float
    mean_actual: float
    drift_detected: bool
    sample_size: int
    alerts: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "model_name": self.model_name,
            "evaluated_at": self.evaluated_at.isoformat(),
            "mae": round(self.mae, 6),
            "rmse": round(self.rmse, 6),
            "mape": round(self.mape, 4) if self.mape is not None else None,
            "smape": round(self.smape, 4) if self.smape is not None else None,
            "calibration_score": (
                round(self.calibration_score, 4) if self.calibration_score is not None else None
            ),
            "drift_detected": self.drift_detected,
            "sample_size": self.sample_size,
            "alerts": list(self.alerts),
        }


class ModelMonitor:
    """Tracks validated model performance over time and detects degradation.

    Flags a model when:
    - MAPE exceeds the critical threshold
    - Interval coverage falls below the warning threshold
    - Prediction drift is detected in 3 consecutive evaluations
    """

    def __init__(self, cfg: MonitorConfig | None = None) -> None:
        self._cfg = cfg or config.monitor
        self._lock = threading.Lock()
        self._history: list[PerformanceReport] = []

    def evaluate_model(
        self,
        model_name: str,
        y_true: np.ndarray,
        y_pred: np.ndarray,
        y_lower: np.ndarray | None = None,
        y_upper: np.ndarray | None = None,
    ) -> PerformanceReport:
        """Run full evaluation and record a performance report.

        Args:
            model_name: Model version being evaluated.
            y_true: Actual values.
            y_pred: Predicted values.
            y_lower: Lower confidence bounds (optional).
            y_upper: Upper confidence bounds (optional).
        """
        y_true = np.asarray(y_true, dtype=float)
        y_pred = np.asarray(y_pred, dtype=float)

        calibration = None
        if y_lower is not None and y_upper is not None:
            in_interval = (y_true >= np.asarray(y_lower)) & (y_true <= np.asarray(y_upper))
            calibration = float(np.mean(in_interval))

        mean_pred = float(np.mean(y_pred))
        mean_actual = float(np.mean(y_true))
        drift = (
            abs(mean_pred - mean_actual) / abs(mean_actual) > self._cfg.drift_tolerance
            if mean_actual != 0
            else False
        )

        report = PerformanceReport(
            model_name=model_name,
            evaluated_at=datetime.now(timezone.utc),
            mae=mae(y_true, y_pred),
            rmse=rmse(y_true, y_pred),
            mape=mape(y_true, y_pred),
            smape=smape(y_true, y_pred),
            calibration_score=calibration,
            mean_prediction=mean_pred,
            mean_actual=mean_actual,
            drift_detected=drift,
            sample_size=len(y_true),
        )
        report.alerts = self._check_alerts(report)

        with self._lock:
            self._history.append(report)
        return report

    def get_rolling_performance(
        self, model_name: str | None = None, window: int = 30
    ) -> list[PerformanceReport]:
        """Get the last N performance reports, optionally for one model."""
        with self._lock:
            history = [
                r for r in self._history
                if model_name is None or r.model_name == model_name
            ]
        return history[-window:]

    def latest(self) -> PerformanceReport | None:
        recent = self.get_rolling_performance(window=1)
        return recent[-1] if recent else None

    def should_retrain(self, model_name: str) -> bool:
        """Determine if a model needs retraining."""
        recent = self.get_rolling_performance(model_name, window=5)
        if not recent:
            return False

        latest = recent[-1]

        if latest.mape is not None and latest.mape > self._cfg.mape_critical:
            logger.warning(
                "[Monitor] %s MAPE (%.2f%%) exceeds critical threshold.",
                model_name, latest.mape,
            )
            return True

        if (
            latest.calibration_score is not None
            and latest.calibration_score < self._cfg.coverage_warning
        ):
            logger.warning(
                "[Monitor] %s coverage (%.1f%%) below threshold.",
                model_name, latest.calibration_score * 100,
            )
            return True

        drift_count = sum(1 for r in recent[-3:] if r.drift_detected)
        if drift_count >= 3:
            logger.warning("[Monitor] %s shows persistent drift.", model_name)
            return True

        return False

    def _check_alerts(self, report: PerformanceReport) -> list[str]:
        """Log and return alerts for concerning metrics."""
        alerts = []
        if report.mape is not None and report.mape > self._cfg.mape_warning:
            alerts.append(
                f"MAPE={report.mape:.2f}% exceeds {self._cfg.mape_warning:.0f}%"
            )
        if (
            report.calibration_score is not None
            and report.calibration_score < self._cfg.coverage_warning
        ):
            alerts.append(
                f"Coverage={report.calibration_score * 100:.1f}% below "
                f"{self._cfg.coverage_warning * 100:.0f}%"
            )
        if report.drift_detected:
            alerts.append("Prediction drift detected")

        for alert in alerts:
            logger.warning("[%s] %s.", report.model_name, alert)
        return alerts
