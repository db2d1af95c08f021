"""
Ensemble combination.

Combines constituent outputs into one forecast:
- Point forecast: weighted mean of constituent outputs
- prediction_std: weighted dispersion across constituents (disagreement)
- Bounds: point ± z * prediction_std, z from the configured interval width
- Confidence label: high / medium / low by thresholding prediction_std

Weights come from each constituent's live validated error
(weight = 1 / RMSE, normalised). Until every constituent of a model
version has enough validated samples, weights are uniform.
"""

import logging
import math
import threading
from collections import deque
from dataclasses import dataclass

import numpy as np
from scipy.stats import norm

from pricecast.config import EnsembleConfig, config

logger = logging.getLogger(__name__)

# Floor for a constituent RMSE so a perfect record cannot take all weight
_MIN_RMSE = 1e-9


class ConfidenceLevel:
    """Practical usability label of a forecast."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


@dataclass
class EnsembleOutput:
    """Combined forecast for one horizon."""

    predicted_value: float
    prediction_std: float
    confidence_lower: float
    confidence_upper: float
    confidence: str
    weights: dict[str, float]


class ConstituentPerformanceTracker:
    """Rolling window of validated absolute errors per (model version, constituent)."""

    def __init__(self, window: int = 500) -> None:
        self._lock = threading.Lock()
        self._window = window
        self._errors: dict[tuple[str, str], deque[float]] = {}

    def record(self, model_version: str, constituent: str, error: float) -> None:
        if not math.isfinite(error):
            return
        key = (model_version, constituent)
        with self._lock:
            if key not in self._errors:
                self._errors[key] = deque(maxlen=self._window)
            self._errors[key].append(abs(float(error)))

    def sample_count(self, model_version: str, constituent: str) -> int:
        with self._lock:
            return len(self._errors.get((model_version, constituent), ()))

    def rmse(self, model_version: str, constituent: str) -> float | None:
        with self._lock:
            errors = list(self._errors.get((model_version, constituent), ()))
        if not errors:
            return None
        return float(np.sqrt(np.mean(np.square(errors))))

    def summary(self, model_version: str) -> dict[str, dict]:
        with self._lock:
            keys = [k for k in self._errors if k[0] == model_version]
        return {
            constituent: {
                "samples": self.sample_count(model_version, constituent),
                "rmse": self.rmse(model_version, constituent),
            }
            for _, constituent in keys
        }


def uniform_weights(names: list[str]) -> dict[str, float]:
    if not names:
        return {}
    return {name: 1.0 / len(names) for name in names}


def inverse_error_weights(errors: dict[str, float]) -> dict[str, float]:
    """Weight = 1 / error, normalised to sum to 1."""
    inverse = {name: 1.0 / max(err, _MIN_RMSE) for name, err in errors.items()}
    total = sum(inverse.values())
    return {name: v / total for name, v in inverse.items()}


def z_multiplier(confidence_level: float) -> float:
    """Two-sided normal quantile for an interval width (0.95 -> 1.96)."""
    if not 0.0 < confidence_level < 1.0:
        raise ValueError(f"confidence_level must be in (0, 1), got {confidence_level}")
    return float(norm.ppf((1 + confidence_level) / 2))


class EnsembleCombiner:
    """Turns constituent outputs into an EnsembleOutput."""

    def __init__(
        self,
        tracker: ConstituentPerformanceTracker | None = None,
        cfg: EnsembleConfig | None = None,
    ) -> None:
        self._cfg = cfg or config.ensemble
        self._tracker = tracker or ConstituentPerformanceTracker(self._cfg.performance_window)
        self._z = z_multiplier(self._cfg.confidence_level)

    @property
    def tracker(self) -> ConstituentPerformanceTracker:
        return self._tracker

    @property
    def z(self) -> float:
        return self._z

    def weights_for(self, model_version: str, constituents: list[str]) -> tuple[dict[str, float], str]:
        """Resolve weights for a model version at call time.

        Returns:
            (weights, source) where source is "validated" or "uniform".
        """
        min_samples = self._cfg.min_validated_samples
        errors: dict[str, float] = {}
        for name in constituents:
            if self._tracker.sample_count(model_version, name) < min_samples:
                return uniform_weights(constituents), "uniform"
            errors[name] = self._tracker.rmse(model_version, name)
        return inverse_error_weights(errors), "validated"

    def classify(self, prediction_std: float) -> str:
        if prediction_std <= self._cfg.high_confidence_max_std:
            return ConfidenceLevel.HIGH
        if prediction_std <= self._cfg.medium_confidence_max_std:
            return ConfidenceLevel.MEDIUM
        return ConfidenceLevel.LOW

    def combine(self, outputs: dict[str, float], weights: dict[str, float]) -> EnsembleOutput:
        """Combine constituent outputs with the given weights."""
        if not outputs:
            raise ValueError("No constituent outputs to combine.")

        names = list(outputs.keys())
        values = np.array([outputs[n] for n in names], dtype=float)
        w = np.array([weights.get(n, 0.0) for n in names], dtype=float)
        if w.sum() <= 0:
            w = np.ones(len(names))
        w = w / w.sum()

        point = float(np.sum(w * values))
        std = float(np.sqrt(np.sum(w * (values - point) ** 2)))
        margin = self._z * std

        return EnsembleOutput(
            predicted_value=point,
            prediction_std=std,
            confidence_lower=point - margin,
            confidence_upper=point + margin,
            confidence=self.classify(std),
            weights={n: float(x) for n, x in zip(names, w)},
        )
