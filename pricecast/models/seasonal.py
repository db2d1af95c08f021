"""
Seasonal profile model.

Learns the mean price for each hour of the day and blends it with the
most recent observed level:

    forecast = w * current_value + (1 - w) * profile[target_hour]

Hours never seen in training fall back to the overall training mean.
"""

import logging
import pickle
from pathlib import Path

import numpy as np
import pandas as pd

from pricecast.models.base import BasePredictionModel

logger = logging.getLogger(__name__)

HOUR_COLUMN = "target_hour"
LEVEL_COLUMN = "current_value"


class SeasonalProfilePredictor(BasePredictionModel):
    """Hour-of-day profile blended with the current level."""

    def __init__(self, level_weight: float = 0.5) -> None:
        super().__init__(name="seasonal")
        if not 0.0 <= level_weight <= 1.0:
            raise ValueError(f"level_weight must be in [0, 1], got {level_weight}")
        self._level_weight = level_weight
        self._profile: dict[int, float] = {}
        self._global_mean = 0.0

    @property
    def profile(self) -> dict[int, float]:
        return dict(self._profile)

    def fit(self, X_train: pd.DataFrame, y_train: pd.Series) -> "SeasonalProfilePredictor":
        hours = X_train[HOUR_COLUMN].astype(int).to_numpy()
        y = np.asarray(y_train, dtype=float)
        grouped = pd.Series(y).groupby(hours).mean()
        self._profile = {int(h): float(v) for h, v in grouped.items()}
        self._global_mean = float(np.mean(y))
        self._is_fitted = True
        logger.info("[Seasonal] Profile learned for %d hours.", len(self._profile))
        return self

    def predict(self, X: pd.DataFrame) -> np.ndarray:
        self._require_fitted()
        hours = X[HOUR_COLUMN].astype(int).to_numpy()
        seasonal = np.array([self._profile.get(int(h), self._global_mean) for h in hours])
        level = X[LEVEL_COLUMN].astype(float).to_numpy()
        w = self._level_weight
        return w * level + (1 - w) * seasonal

    def save_model(self, path: Path) -> None:
        path.mkdir(parents=True, exist_ok=True)
        with open(path / "seasonal.pkl", "wb") as f:
            pickle.dump(
                {
                    "level_weight": self._level_weight,
                    "profile": self._profile,
                    "global_mean": self._global_mean,
                },
                f,
            )
        logger.info("[Seasonal] Model saved to %s", path)

    def load_model(self, path: Path) -> None:
        with open(path / "seasonal.pkl", "rb") as f:
            state = pickle.load(f)
        self._level_weight = state["level_weight"]
        self._profile = state["profile"]
        self._global_mean = state["global_mean"]
        self._is_fitted = True
        logger.info("[Seasonal] Model loaded from %s", path)
