"""
Model trainer.

Fits the constituent models on a point-in-time snapshot of the record
and feature stores and registers the result as a new, immutable model
version.

Each design row holds the features of record i (plus the current value,
the target hour and selected exogenous fields); its label is the target
of record i + 1. Performance is measured on a chronological holdout
tail, never a shuffled split.

Usage:
    trainer = ModelTrainer(store, feature_store, registry)
    model = trainer.train()
"""

import logging
import uuid
from datetime import datetime, timezone

import numpy as np
import pandas as pd

from pricecast.config import ModelConfig, config
from pricecast.data.store import TimeSeriesStore, records_to_frame
from pricecast.errors import InsufficientDataError
from pricecast.features.pipeline import is_well_formed
from pricecast.features.store import FeatureStore
from pricecast.models.base import BasePredictionModel, ModelMetrics, compute_metrics
from pricecast.models.registry import ModelRegistry, ModelVersion
from pricecast.models.ridge import RidgePredictor
from pricecast.models.seasonal import SeasonalProfilePredictor
from pricecast.models.xgboost_model import XGBoostPredictor

logger = logging.getLogger(__name__)

TARGET_COLUMN = "target"
LEVEL_COLUMN = "current_value"
HOUR_COLUMN = "target_hour"
_KEY_COLUMNS = ("record_id", "timestamp")


def build_design_frame(
    records_frame: pd.DataFrame,
    features_frame: pd.DataFrame,
    exogenous: tuple[str, ...] = (),
) -> pd.DataFrame:
    """Join records to their features and derive model inputs.

    Args:
        records_frame: Ordered records (record_id, timestamp, target_value, ...).
        features_frame: Feature vectors keyed by record_id.
        exogenous: Exogenous record fields to pass through as inputs.

    Returns:
        DataFrame ordered by timestamp with record_id, timestamp, the
        feature columns, current_value, target_hour, the exogenous
        columns and the next-hour label in 'target' (NaN on the last row).
    """
    df = records_frame.reset_index(drop=True).copy()
    df[LEVEL_COLUMN] = df["target_value"].astype(float)
    df[TARGET_COLUMN] = df[LEVEL_COLUMN].shift(-1)
    next_hour = pd.to_datetime(df["timestamp"], utc=True) + pd.Timedelta(hours=1)
    df[HOUR_COLUMN] = next_hour.dt.hour.astype(float)
    for name in exogenous:
        df[name] = pd.to_numeric(df[name], errors="coerce") if name in df.columns else np.nan

    features = features_frame.drop(columns=["timestamp"], errors="ignore")
    feature_cols = [c for c in features.columns if c != "record_id"]
    for col in feature_cols:
        features[col] = pd.to_numeric(features[col], errors="coerce")

    keep = [*_KEY_COLUMNS, LEVEL_COLUMN, HOUR_COLUMN, *exogenous, TARGET_COLUMN]
    design = df[keep].merge(features, on="record_id", how="inner")
    return design[[*_KEY_COLUMNS, *feature_cols, LEVEL_COLUMN, HOUR_COLUMN, *exogenous, TARGET_COLUMN]]


def new_version_id(trained_at: datetime) -> str:
    return f"ens-{trained_at:%Y%m%d%H%M%S}-{uuid.uuid4().hex[:6]}"


class ModelTrainer:
    """Trains the constituent ensemble and registers a new model version.

    Steps:
    1. Snapshot records and feature vectors
    2. Build the design matrix and keep complete rows only
    3. Fail fast below the minimum row count
    4. Chronological train / holdout split
    5. Fit and evaluate each constituent
    6. Evaluate the uniform-weight ensemble on the holdout
    7. Register the new version
    """

    def __init__(
        self,
        store: TimeSeriesStore,
        feature_store: FeatureStore,
        registry: ModelRegistry,
        cfg: ModelConfig | None = None,
    ) -> None:
        self._cfg = cfg or config.model
        self._store = store
        self._feature_store = feature_store
        self._registry = registry

    def train(self) -> ModelVersion:
        """Run one training pass.

        Raises:
            InsufficientDataError: if fewer than min_training_rows complete rows exist.
        """
        records = [r for r in self._store.snapshot() if is_well_formed(r)]
        vectors = self._feature_store.snapshot()
        ordered_vectors = [vectors[r.id] for r in records if r.id in vectors]

        design = build_design_frame(
            records_to_frame(records),
            FeatureStore.to_frame(ordered_vectors),
            self._cfg.exogenous_features,
        )
        input_cols = [c for c in design.columns if c not in (*_KEY_COLUMNS, TARGET_COLUMN)]

        empty = [c for c in input_cols if design[c].isna().all()]
        if empty:
            logger.info("Dropping %d all-null input columns: %s", len(empty), empty)
            input_cols = [c for c in input_cols if c not in empty]

        complete = design.dropna(subset=[*input_cols, TARGET_COLUMN])
        if len(complete) < self._cfg.min_training_rows:
            raise InsufficientDataError(len(complete), self._cfg.min_training_rows)

        n_holdout = max(1, int(round(len(complete) * self._cfg.holdout_fraction)))
        train_df = complete.iloc[:-n_holdout]
        holdout_df = complete.iloc[-n_holdout:]
        X_train, y_train = train_df[input_cols].astype(float), train_df[TARGET_COLUMN]
        X_hold, y_hold = holdout_df[input_cols].astype(float), holdout_df[TARGET_COLUMN]

        logger.info(
            "Training on %d rows, holdout %d rows, %d inputs.",
            len(train_df), len(holdout_df), len(input_cols),
        )

        constituents: dict[str, BasePredictionModel] = {}
        constituent_metrics: dict[str, ModelMetrics] = {}
        holdout_preds: list[np.ndarray] = []
        for model in self._create_models():
            logger.info("Training %s...", model.name)
            model.fit(X_train, y_train)
            constituent_metrics[model.name] = model.evaluate(X_hold, y_hold)
            holdout_preds.append(model.predict(X_hold))
            constituents[model.name] = model

        ensemble_pred = np.mean(np.vstack(holdout_preds), axis=0)
        performance = compute_metrics(y_hold.to_numpy(dtype=float), ensemble_pred)

        trained_at = datetime.now(timezone.utc)
        model_version = ModelVersion(
            version=new_version_id(trained_at),
            trained_at=trained_at,
            feature_names=tuple(input_cols),
            constituents=constituents,
            performance=performance,
            constituent_performance=constituent_metrics,
            training_rows=len(train_df),
            holdout_rows=len(holdout_df),
        )
        self._registry.register(model_version)
        logger.info("Trained %s: %s", model_version.version, performance)
        return model_version

    def _create_models(self) -> list[BasePredictionModel]:
        """Instantiate the constituent models."""
        cfg = self._cfg
        return [
            XGBoostPredictor(
                n_estimators=cfg.xgb_n_estimators,
                max_depth=cfg.xgb_max_depth,
                learning_rate=cfg.xgb_learning_rate,
                subsample=cfg.xgb_subsample,
                colsample_bytree=cfg.xgb_colsample_bytree,
                random_state=cfg.random_state,
            ),
            RidgePredictor(alpha=cfg.ridge_alpha),
            SeasonalProfilePredictor(level_weight=cfg.seasonal_level_weight),
        ]
