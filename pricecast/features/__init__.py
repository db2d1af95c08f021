"""
Feature engineering sub-package.

Generators are applied in order by the FeatureEngine:
lag/momentum, rolling statistics, exogenous lags, interactions,
temporal encodings.
"""

from pricecast.features.exogenous import ExogenousFeatures
from pricecast.features.interaction import InteractionFeatures, interaction_name
from pricecast.features.lag import LagFeatures
from pricecast.features.pipeline import FeatureEngine, FeatureRunResult
from pricecast.features.rolling import RollingFeatures
from pricecast.features.store import FeatureStore, FeatureVector
from pricecast.features.temporal import TemporalFeatures

__all__ = [
    "ExogenousFeatures",
    "FeatureEngine",
    "FeatureRunResult",
    "FeatureStore",
    "FeatureVector",
    "InteractionFeatures",
    "LagFeatures",
    "RollingFeatures",
    "TemporalFeatures",
    "interaction_name",
]
