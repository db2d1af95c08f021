"""
Abstract base class for all constituent forecasting models.

Defines the Strategy Pattern interface that the concrete models
(XGBoost, Ridge, SeasonalProfile) implement. Every model maps one
design row (features of record i) to the target of record i + 1.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path

import numpy as np
import pandas as pd

from pricecast.utils import metrics

logger = logging.getLogger(__name__)


@dataclass
class ModelMetrics:
    """Container for held-out evaluation metrics."""

    mae: float = 0.0
    rmse: float = 0.0
    mape: float | None = None
    smape: float | None = None
    r_squared: float = 0.0

    def to_dict(self) -> dict:
        return {
            "mae": self.mae,
            "rmse": self.rmse,
            "mape": self.mape,
            "smape": self.smape,
            "r_squared": self.r_squared,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ModelMetrics":
        return cls(**{k: data.get(k) for k in ("mae", "rmse", "mape", "smape", "r_squared")})

    def __str__(self) -> str:
        mape = f"{self.mape:.2f}%" if self.mape is not None else "n/a"
        smape = f"{self.smape:.2f}%" if self.smape is not None else "n/a"
        return (
            f"MAE={self.mae:.4f} | RMSE={self.rmse:.4f} | "
            f"MAPE={mape} | sMAPE={smape} | R²={self.r_squared:.4f}"
        )


class BasePredictionModel(ABC):
    """Abstract interface for all constituent models.

    Methods:
        fit:         Train the model.
        predict:     Generate point predictions.
        evaluate:    Compute metrics on a held-out set.
        save_model:  Persist model artifacts to disk.
        load_model:  Load model artifacts from disk.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._metrics = ModelMetrics()
        self._is_fitted = False

    @abstractmethod
    def fit(self, X_train: pd.DataFrame, y_train: pd.Series) -> "BasePredictionModel":
        """Train the model. Returns self for method chaining."""
        ...

    @abstractmethod
    def predict(self, X: pd.DataFrame) -> np.ndarray:
        """Generate point predictions for each row of X."""
        ...

    def evaluate(self, X_test: pd.DataFrame, y_test: pd.Series) -> ModelMetrics:
        """Evaluate the model on a test set.

        Updates internal metrics and returns them.
        """
        preds = self.predict(X_test)
        self._metrics = compute_metrics(np.asarray(y_test, dtype=float), preds)
        logger.info("[%s] Evaluation: %s", self.name, self._metrics)
        return self._metrics

    def get_metrics(self) -> ModelMetrics:
        return self._metrics

    @abstractmethod
    def save_model(self, path: Path) -> None:
        """Persist model artifacts to disk."""
        ...

    @abstractmethod
    def load_model(self, path: Path) -> None:
        """Load model artifacts from disk."""
        ...

    @property
    def is_fitted(self) -> bool:
        return self._is_fitted

    def _require_fitted(self) -> None:
        if not self._is_fitted:
            raise RuntimeError(f"{self.name} is not fitted. Call fit() first.")


def compute_metrics(y_true: np.ndarray, y_pred: np.ndarray) -> ModelMetrics:
    """Compute standard regression metrics, dropping NaN pairs."""
    y_true = np.asarray(y_true, dtype=float)
    y_pred = np.asarray(y_pred, dtype=float)
    valid = ~(np.isnan(y_true) | np.isnan(y_pred))
    y_true = y_true[valid]
    y_pred = y_pred[valid]

    if len(y_true) == 0:
        return ModelMetrics()

    return ModelMetrics(
        mae=metrics.mae(y_true, y_pred),
        rmse=metrics.rmse(y_true, y_pred),
        mape=metrics.mape(y_true, y_pred),
        smape=metrics.smape(y_true, y_pred),
        r_squared=metrics.r_squared(y_true, y_pred),
    )
