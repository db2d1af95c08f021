"""
Model registry.

Read-only lookup of trained model versions. A version is immutable once
registered: retraining always registers a new version. "Latest" is
resolved at call time from trained_at, never cached, so concurrent
training runs cannot leave a predictor pinned to a stale version.

When a models directory is configured, each version is persisted to
models_dir/<version>/ and can be reloaded with load().
"""

import json
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Mapping

from pricecast.errors import ModelNotFoundError
from pricecast.models.base import BasePredictionModel, ModelMetrics
from pricecast.models.ridge import RidgePredictor
from pricecast.models.seasonal import SeasonalProfilePredictor
from pricecast.models.xgboost_model import XGBoostPredictor

logger = logging.getLogger(__name__)

CONSTITUENT_TYPES: dict[str, type[BasePredictionModel]] = {
    "xgboost": XGBoostPredictor,
    "ridge": RidgePredictor,
    "seasonal": SeasonalProfilePredictor,
}


@dataclass(frozen=True)
class ModelVersion:
    """One trained ensemble: its constituents and held-out performance."""

    version: str
    trained_at: datetime
    feature_names: tuple[str, ...]
    constituents: Mapping[str, BasePredictionModel]
    performance: ModelMetrics
    constituent_performance: Mapping[str, ModelMetrics] = field(default_factory=dict)
    training_rows: int = 0
    holdout_rows: int = 0

    @property
    def constituent_names(self) -> list[str]:
        return list(self.constituents.keys())

    def info(self) -> dict:
        return {
            "version": self.version,
            "trained_at": self.trained_at.isoformat(),
            "performance": self.performance.to_dict(),
        }

    def metadata(self) -> dict:
        return {
            **self.info(),
            "feature_names": list(self.feature_names),
            "constituents": self.constituent_names,
            "constituent_performance": {
                name: m.to_dict() for name, m in self.constituent_performance.items()
            },
            "training_rows": self.training_rows,
            "holdout_rows": self.holdout_rows,
        }


class ModelRegistry:
    """Thread-safe registry of immutable model versions."""

    def __init__(self, models_dir: Path | None = None) -> None:
        self._lock = threading.Lock()
        self._versions: dict[str, ModelVersion] = {}
        self._models_dir = Path(models_dir) if models_dir is not None else None

    def __len__(self) -> int:
        with self._lock:
            return len(self._versions)

    def __contains__(self, version: str) -> bool:
        with self._lock:
            return version in self._versions

    def register(self, model: ModelVersion) -> None:
        """Add a new version. Existing versions are never replaced."""
        with self._lock:
            if model.version in self._versions:
                raise ValueError(f"Model version already registered: {model.version}")
            self._versions[model.version] = model
        logger.info("Registered model version %s (%s).", model.version, model.performance)

        if self._models_dir is not None:
            self._save(model)

    def get(self, version: str) -> ModelVersion:
        with self._lock:
            model = self._versions.get(version)
        if model is None:
            raise ModelNotFoundError(version)
        return model

    def latest(self) -> ModelVersion:
        """Return the most recently trained version."""
        with self._lock:
            models = list(self._versions.values())
        if not models:
            raise ModelNotFoundError()
        return max(models, key=lambda m: (m.trained_at, m.version))

    def versions(self) -> list[str]:
        """All version ids, oldest first."""
        with self._lock:
            models = list(self._versions.values())
        return [m.version for m in sorted(models, key=lambda m: m.trained_at)]

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _save(self, model: ModelVersion) -> None:
        path = self._models_dir / model.version
        path.mkdir(parents=True, exist_ok=True)
        for name, constituent in model.constituents.items():
            constituent.save_model(path / name)
        with open(path / "metadata.json", "w") as f:
            json.dump(model.metadata(), f, indent=2)
        logger.info("Model version %s saved to %s", model.version, path)

    def load(self) -> int:
        """Load every persisted version not already registered.

        Returns:
            Number of versions loaded.
        """
        if self._models_dir is None or not self._models_dir.exists():
            return 0

        loaded = 0
        for meta_path in sorted(self._models_dir.glob("*/metadata.json")):
            with open(meta_path, "r") as f:
                meta = json.load(f)
            if meta["version"] in self:
                continue

            constituents: dict[str, BasePredictionModel] = {}
            for name in meta["constituents"]:
                constituent = CONSTITUENT_TYPES[name]()
                constituent.load_model(meta_path.parent / name)
                constituents[name] = constituent

            model = ModelVersion(
                version=meta["version"],
                trained_at=datetime.fromisoformat(meta["trained_at"]),
                feature_names=tuple(meta["feature_names"]),
                constituents=constituents,
                performance=ModelMetrics.from_dict(meta["performance"]),
                constituent_performance={
                    name: ModelMetrics.from_dict(m)
                    for name, m in meta.get("constituent_performance", {}).items()
                },
                training_rows=meta.get("training_rows", 0),
                holdout_rows=meta.get("holdout_rows", 0),
            )
            with self._lock:
                self._versions[model.version] = model
            loaded += 1

        logger.info("Loaded %d model versions from %s", loaded, self._models_dir)
        return loaded
