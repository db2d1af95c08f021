"""
Forecasting models.

Constituents: XGBoostPredictor, RidgePredictor, SeasonalProfilePredictor.
ModelRegistry holds immutable trained versions; EnsembleCombiner turns
constituent outputs into a point forecast with uncertainty bounds.
"""

from pricecast.models.base import BasePredictionModel, ModelMetrics, compute_metrics
from pricecast.models.ensemble import (
    ConfidenceLevel,
    ConstituentPerformanceTracker,
    EnsembleCombiner,
    EnsembleOutput,
    inverse_error_weights,
    uniform_weights,
    z_multiplier,
)
from pricecast.models.registry import CONSTITUENT_TYPES, ModelRegistry, ModelVersion
from pricecast.models.ridge import RidgePredictor
from pricecast.models.seasonal import SeasonalProfilePredictor
from pricecast.models.xgboost_model import XGBoostPredictor

__all__ = [
    "BasePredictionModel",
    "ModelMetrics",
    "compute_metrics",
    "ConfidenceLevel",
    "ConstituentPerformanceTracker",
    "EnsembleCombiner",
    "EnsembleOutput",
    "inverse_error_weights",
    "uniform_weights",
    "z_multiplier",
    "CONSTITUENT_TYPES",
    "ModelRegistry",
    "ModelVersion",
    "RidgePredictor",
    "SeasonalProfilePredictor",
    "XGBoostPredictor",
]
