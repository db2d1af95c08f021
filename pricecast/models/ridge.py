"""
Ridge regression model.

Standardised linear baseline. Cheap to fit and stable under collinear
lags, so it anchors the ensemble when the tree model overfits.
"""

import logging
import pickle
from pathlib import Path

import numpy as np
import pandas as pd
from sklearn.linear_model import Ridge
from sklearn.pipeline import Pipeline
from sklearn.preprocessing import StandardScaler

from pricecast.models.base import BasePredictionModel

logger = logging.getLogger(__name__)


class RidgePredictor(BasePredictionModel):
    """StandardScaler + Ridge pipeline."""

    def __init__(self, alpha: float = 1.0) -> None:
        super().__init__(name="ridge")
        self._alpha = alpha
        self._pipeline: Pipeline | None = None
        self._feature_names: list[str] = []

    def fit(self, X_train: pd.DataFrame, y_train: pd.Series) -> "RidgePredictor":
        self._feature_names = list(X_train.columns)
        self._pipeline = Pipeline([
            ("scaler", StandardScaler()),
            ("ridge", Ridge(alpha=self._alpha)),
        ])
        self._pipeline.fit(X_train.values, np.asarray(y_train, dtype=float))
        self._is_fitted = True
        logger.info("[Ridge] Training complete on %d rows.", len(X_train))
        return self

    def predict(self, X: pd.DataFrame) -> np.ndarray:
        self._require_fitted()
        return self._pipeline.predict(X[self._feature_names].values).astype(float)

    def coefficients(self) -> dict[str, float]:
        """Standardised coefficients keyed by feature name."""
        self._require_fitted()
        coefs = self._pipeline.named_steps["ridge"].coef_
        return {name: float(c) for name, c in zip(self._feature_names, coefs)}

    def save_model(self, path: Path) -> None:
        path.mkdir(parents=True, exist_ok=True)
        with open(path / "ridge.pkl", "wb") as f:
            pickle.dump(
                {"pipeline": self._pipeline, "feature_names": self._feature_names}, f
            )
        logger.info("[Ridge] Model saved to %s", path)

    def load_model(self, path: Path) -> None:
        with open(path / "ridge.pkl", "rb") as f:
            state = pickle.load(f)
        self._pipeline = state["pipeline"]
        self._feature_names = state["feature_names"]
        self._is_fitted = True
        logger.info("[Ridge] Model loaded from %s", path)
