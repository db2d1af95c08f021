"""
Prediction inference service.

Implements the full inference flow:
1. Resolve the model version (latest at call time unless pinned)
2. Check the latest feature snapshot for unresolved nulls
3. Resolve ensemble weights from validated constituent performance
4. Run each constituent and combine (point, std, bounds, label)
5. Feed the point forecast back into the series for the next horizon
6. Store and return one Prediction per horizon

Horizon h > 1 is a recursive rollout: a synthetic record carrying the
h - 1 forecast (exogenous fields carried forward, calendar advanced)
is appended and its features are recomputed by the FeatureEngine.
"""

import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Mapping

import pandas as pd

from pricecast.config import PipelineConfig, config
from pricecast.data.records import TimeSeriesRecord, record_id_for, utc_now
from pricecast.data.store import TimeSeriesStore, records_to_frame
from pricecast.errors import FeatureUnavailableError, InvalidHorizonError
from pricecast.features.pipeline import FeatureEngine, is_well_formed, lookback_index
from pricecast.features.store import FeatureStore
from pricecast.models.ensemble import EnsembleCombiner
from pricecast.models.registry import ModelRegistry, ModelVersion
from pricecast.training import build_design_frame

logger = logging.getLogger(__name__)

FORECAST_SOURCE = "forecast"


@dataclass(frozen=True)
class Prediction:
    """One ensemble forecast for one target hour. Never mutated."""

    id: str
    issued_at: datetime
    target_timestamp: datetime
    horizon_hours: int
    predicted_value: float
    confidence_lower: float
    confidence_upper: float
    prediction_std: float
    model_version: str
    confidence: str
    constituent_outputs: Mapping[str, float] = field(default_factory=dict)
    weights: Mapping[str, float] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "issued_at": self.issued_at.isoformat(),
            "target_timestamp": self.target_timestamp.isoformat(),
            "horizon_hours": self.horizon_hours,
            "predicted_value": round(self.predicted_value, 4),
            "confidence_lower": round(self.confidence_lower, 4),
            "confidence_upper": round(self.confidence_upper, 4),
            "prediction_std": round(self.prediction_std, 4),
            "model_version": self.model_version,
            "confidence": self.confidence,
            "constituent_outputs": {k: round(v, 4) for k, v in self.constituent_outputs.items()},
        }


@dataclass
class PredictionBatch:
    """Result of one prediction request."""

    predictions: list[Prediction]
    model: ModelVersion
    weights: dict[str, float]
    weights_source: str

    def to_dict(self) -> dict:
        return {
            "predictions": [p.to_dict() for p in self.predictions],
            "model_info": self.model.info(),
            "weights_used": {k: round(v, 6) for k, v in self.weights.items()},
            "weights_source": self.weights_source,
        }


class PredictionStore:
    """Append-only, thread-safe store of issued predictions."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._predictions: dict[str, Prediction] = {}
        self._expired: set[str] = set()

    def __len__(self) -> int:
        with self._lock:
            return len(self._predictions)

    def add_many(self, predictions: list[Prediction]) -> None:
        with self._lock:
            for prediction in predictions:
                self._predictions.setdefault(prediction.id, prediction)

    def get(self, prediction_id: str) -> Prediction | None:
        with self._lock:
            return self._predictions.get(prediction_id)

    def all(self) -> list[Prediction]:
        with self._lock:
            return sorted(self._predictions.values(), key=lambda p: (p.issued_at, p.horizon_hours))

    def due(self, now: datetime, exclude: set[str] | None = None) -> list[Prediction]:
        """Unexpired predictions whose target hour has elapsed, oldest target first."""
        skip = set(exclude or ())
        with self._lock:
            skip |= self._expired
        return sorted(
            (p for p in self.all() if p.target_timestamp <= now and p.id not in skip),
            key=lambda p: (p.target_timestamp, p.horizon_hours),
        )

    def expire(self, prediction_ids: list[str]) -> int:
        """Stop offering predictions as due. Returns how many were newly expired."""
        with self._lock:
            fresh = {i for i in prediction_ids if i in self._predictions} - self._expired
            self._expired |= fresh
            return len(fresh)

    def issued_since(self, start: datetime) -> list[Prediction]:
        return [p for p in self.all() if p.issued_at >= start]


class EnsemblePredictor:
    """Produces multi-horizon ensemble forecasts from the latest snapshot."""

    def __init__(
        self,
        store: TimeSeriesStore,
        feature_store: FeatureStore,
        engine: FeatureEngine,
        registry: ModelRegistry,
        combiner: EnsembleCombiner,
        predictions: PredictionStore,
        cfg: PipelineConfig | None = None,
    ) -> None:
        self._cfg = cfg or config
        self._store = store
        self._feature_store = feature_store
        self._engine = engine
        self._registry = registry
        self._combiner = combiner
        self._predictions = predictions

    def predict(
        self,
        hours_ahead: int,
        model_version: str | None = None,
        issued_at: datetime | None = None,
    ) -> PredictionBatch:
        """Generate one Prediction per horizon 1..hours_ahead.

        Raises:
            InvalidHorizonError: if hours_ahead is outside 1..max_hours_ahead.
            ModelNotFoundError: if no (matching) model version exists.
            FeatureUnavailableError: if the latest snapshot has nulls in
                inputs the model requires.
        """
        max_hours = self._cfg.max_hours_ahead
        if not 1 <= hours_ahead <= max_hours:
            raise InvalidHorizonError(hours_ahead, max_hours)

        model = (
            self._registry.get(model_version)
            if model_version is not None
            else self._registry.latest()
        )
        issued_at = issued_at or utc_now()
        lookback = self._engine.config.max_lookback

        records = self._store.snapshot()
        last = next(
            (i for i in range(len(records) - 1, -1, -1) if is_well_formed(records[i])), None
        )
        if last is None:
            raise FeatureUnavailableError(["target_value"])
        start = lookback_index(records, last, lookback)
        history = [r for r in records[start:last + 1] if is_well_formed(r)]
        base = history[-1]

        row = self._snapshot_row(model, base)
        weights, source = self._combiner.weights_for(model.version, model.constituent_names)

        predictions: list[Prediction] = []
        for horizon in range(1, hours_ahead + 1):
            outputs = {
                name: float(constituent.predict(row[list(model.feature_names)])[0])
                for name, constituent in model.constituents.items()
            }
            combined = self._combiner.combine(outputs, weights)
            target_ts = base.timestamp + timedelta(hours=1)

            predictions.append(
                Prediction(
                    id=str(uuid.uuid4()),
                    issued_at=issued_at,
                    target_timestamp=target_ts,
                    horizon_hours=horizon,
                    predicted_value=combined.predicted_value,
                    confidence_lower=combined.confidence_lower,
                    confidence_upper=combined.confidence_upper,
                    prediction_std=combined.prediction_std,
                    model_version=model.version,
                    confidence=combined.confidence,
                    constituent_outputs=outputs,
                    weights=combined.weights,
                )
            )

            if horizon < hours_ahead:
                base = _synthetic_record(base, target_ts, combined.predicted_value)
                history = [*history[-lookback:], base]
                row = self._rollout_row(model, history)

        self._predictions.add_many(predictions)
        logger.info(
            "Issued %d predictions with %s (weights: %s, %s).",
            len(predictions), model.version, _fmt_weights(weights), source,
        )
        return PredictionBatch(
            predictions=predictions, model=model, weights=weights, weights_source=source
        )

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _snapshot_row(self, model: ModelVersion, record: TimeSeriesRecord) -> pd.DataFrame:
        """Design row for the latest real record, from its stored vector."""
        vector = self._feature_store.get(record.id)
        if vector is None:
            raise FeatureUnavailableError(
                [c for c in model.feature_names if c in self._engine.feature_columns],
                record.timestamp,
            )
        row = build_design_frame(
            records_to_frame([record]),
            FeatureStore.to_frame([vector]),
            self._cfg.model.exogenous_features,
        )
        return self._check_complete(model, row, record.timestamp)

    def _rollout_row(self, model: ModelVersion, history: list[TimeSeriesRecord]) -> pd.DataFrame:
        """Design row for a synthetic record, recomputing its features."""
        frame = self._engine.compute_frame(history).tail(1)
        row = build_design_frame(
            records_to_frame(history[-1:]),
            frame,
            self._cfg.model.exogenous_features,
        )
        return self._check_complete(model, row, history[-1].timestamp)

    @staticmethod
    def _check_complete(model: ModelVersion, row: pd.DataFrame, timestamp: datetime) -> pd.DataFrame:
        missing = [
            c for c in model.feature_names
            if c not in row.columns or row[c].isna().any()
        ]
        if missing:
            raise FeatureUnavailableError(missing, timestamp)
        return row


def _synthetic_record(
    previous: TimeSeriesRecord, timestamp: datetime, value: float
) -> TimeSeriesRecord:
    exogenous = dict(previous.exogenous)
    exogenous["hour_of_day"] = float(timestamp.hour)
    return TimeSeriesRecord(
        id=record_id_for(timestamp),
        timestamp=timestamp,
        target_value=value,
        exogenous=exogenous,
        source=FORECAST_SOURCE,
    )


def _fmt_weights(weights: dict[str, float]) -> str:
    return ", ".join(f"{k}={v:.3f}" for k, v in weights.items())
