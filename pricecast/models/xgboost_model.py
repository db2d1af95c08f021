"""
XGBoost-based price forecasting model.

Tree-based gradient boosting with:
- Feature importance extraction
- Native handling of missing values
- No sequence requirement (tabular features)

Best for: non-linear interactions between lags, load and generation mix.
"""

import logging
import pickle
from pathlib import Path

import numpy as np
import pandas as pd
import xgboost as xgb

from pricecast.models.base import BasePredictionModel

logger = logging.getLogger(__name__)


class XGBoostPredictor(BasePredictionModel):
    """Gradient-boosted decision trees over the design matrix."""

    def __init__(
        self,
        n_estimators: int = 300,
        max_depth: int = 6,
        learning_rate: float = 0.05,
        subsample: float = 0.8,
        colsample_bytree: float = 0.8,
        random_state: int = 42,
    ) -> None:
        super().__init__(name="xgboost")
        self._params = {
            "n_estimators": n_estimators,
            "max_depth": max_depth,
            "learning_rate": learning_rate,
            "subsample": subsample,
            "colsample_bytree": colsample_bytree,
            "random_state": random_state,
        }
        self._model: xgb.XGBRegressor | None = None
        self._feature_names: list[str] = []
        self._feature_importances: dict[str, float] = {}

    def fit(self, X_train: pd.DataFrame, y_train: pd.Series) -> "XGBoostPredictor":
        self._feature_names = list(X_train.columns)

        self._model = xgb.XGBRegressor(
            objective="reg:squarederror",
            tree_method="hist",
            verbosity=0,
            **self._params,
        )
        self._model.fit(X_train.values, np.asarray(y_train, dtype=float), verbose=False)

        importances = self._model.feature_importances_
        self._feature_importances = dict(
            sorted(
                ((name, float(score)) for name, score in zip(self._feature_names, importances)),
                key=lambda x: x[1],
                reverse=True,
            )
        )

        self._is_fitted = True
        logger.info(
            "[XGBoost] Training complete. Top 5 features: %s",
            list(self._feature_importances.keys())[:5],
        )
        return self

    def predict(self, X: pd.DataFrame) -> np.ndarray:
        self._require_fitted()
        return self._model.predict(X[self._feature_names].values).astype(float)

    def get_feature_importance(self, top_n: int = 20) -> dict[str, float]:
        """Return top-N features by importance score."""
        return dict(list(self._feature_importances.items())[:top_n])

    def save_model(self, path: Path) -> None:
        path.mkdir(parents=True, exist_ok=True)
        if self._model is not None:
            self._model.save_model(str(path / "xgboost_model.json"))
        meta = {
            "feature_names": self._feature_names,
            "feature_importances": self._feature_importances,
        }
        with open(path / "xgboost_meta.pkl", "wb") as f:
            pickle.dump(meta, f)
        logger.info("[XGBoost] Model saved to %s", path)

    def load_model(self, path: Path) -> None:
        self._model = xgb.XGBRegressor()
        self._model.load_model(str(path / "xgboost_model.json"))

        with open(path / "xgboost_meta.pkl", "rb") as f:
            meta = pickle.load(f)
        self._feature_names = meta["feature_names"]
        self._feature_importances = meta["feature_importances"]
        self._is_fitted = True
        logger.info("[XGBoost] Model loaded from %s", path)
