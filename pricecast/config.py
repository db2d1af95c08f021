"""
Pipeline configuration.

Reads deployment settings (model directory, horizons) from the central
Settings object (pricecast.settings), which loads from .env.

Feature windows, model hyperparameters, ensemble thresholds and
validation tolerances are defined here. They are tuned by
experimentation, not by deployment, so they don't belong in .env.
"""

from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path

from pricecast.settings import settings


@dataclass(frozen=True)
class FeatureConfig:
    """Feature engineering parameters."""

    # Prior target values referenced by index arithmetic (i - N)
    lag_hours: tuple[int, ...] = (1, 2, 3, 24)

    # Trailing window of preceding records for rolling statistics
    rolling_window: int = 24

    # Shorter trailing means of the target
    rolling_mean_windows: tuple[int, ...] = (6,)

    # Population std of the target over the K preceding records
    volatility_hours: tuple[int, ...] = (6, 12)

    # Percent change versus the matching lag
    momentum_hours: tuple[int, ...] = (1, 3)

    # Lags of exogenous fields, by field name
    exogenous_lags: tuple[tuple[str, tuple[int, ...]], ...] = (
        ("demand", (1, 24)),
        ("generation_wind", (1, 6, 24)),
        ("temperature_calgary", (1, 6, 24)),
    )

    # Exogenous fields averaged over rolling_window preceding records
    exogenous_rolling_fields: tuple[str, ...] = ("demand", "generation_wind")

    # Pairwise products of exogenous fields on the same record
    interaction_pairs: tuple[tuple[str, str], ...] = (
        ("generation_wind", "hour_of_day"),
        ("temperature_calgary", "demand"),
        ("natural_gas_price", "generation_gas"),
    )

    # Cyclical calendar encodings (hour / weekday / month)
    temporal_features: bool = True

    # Feature store flush size
    batch_size: int = 1000

    @property
    def max_lookback(self) -> int:
        """Largest number of prior records any feature needs."""
        return max(
            max(self.lag_hours, default=0),
            max(self.momentum_hours, default=0),
            max(self.rolling_mean_windows, default=0),
            max(self.volatility_hours, default=0),
            max((n for _, hours in self.exogenous_lags for n in hours), default=0),
            self.rolling_window,
        )


@dataclass(frozen=True)
class ModelConfig:
    """Constituent model hyperparameters and training settings."""

    # XGBoost
    xgb_n_estimators: int = 300
    xgb_max_depth: int = 6
    xgb_learning_rate: float = 0.05
    xgb_subsample: float = 0.8
    xgb_colsample_bytree: float = 0.8

    # Ridge
    ridge_alpha: float = 1.0

    # Seasonal profile: weight of the recent level versus the hourly profile
    seasonal_level_weight: float = 0.5

    # Exogenous fields fed to the models alongside engineered features
    exogenous_features: tuple[str, ...] = ("demand", "generation_wind")

    # Training
    min_training_rows: int = 300
    holdout_fraction: float = 0.2
    random_state: int = 42


@dataclass(frozen=True)
class EnsembleConfig:
    """Ensemble combination and uncertainty settings."""

    # Interval width; the z-multiplier is derived from it (0.95 -> 1.96)
    confidence_level: float = 0.95

    # prediction_std thresholds for the high / medium / low label
    high_confidence_max_std: float = 5.0
    medium_confidence_max_std: float = 15.0

    # Validated samples each constituent needs before weights stop being uniform
    min_validated_samples: int = 24

    # Most recent validated errors kept per constituent
    performance_window: int = 500


@dataclass(frozen=True)
class ValidationConfig:
    """Prediction validation settings."""

    # An actual may be found at [target_timestamp, target_timestamp + tolerance)
    actual_tolerance: timedelta = timedelta(hours=1)

    # Maximum predictions reconciled in one pass
    max_batch: int = 1000

    # Unresolved predictions older than this are expired instead of retried
    pending_retention: timedelta = timedelta(days=7)

    # Validated results needed before a run updates the model monitor
    min_samples_for_model_update: int = 24


@dataclass(frozen=True)
class MonitorConfig:
    """Health and drift thresholds."""

    mape_warning: float = 20.0
    mape_critical: float = 35.0
    coverage_warning: float = 0.80
    stale_data_hours: float = 3.0
    min_data_quality: float = 0.9
    drift_tolerance: float = 0.05
    quality_lookback_hours: int = 168


@dataclass(frozen=True)
class PipelineConfig:
    """Top-level configuration aggregating all sub-configs."""

    features: FeatureConfig = field(default_factory=FeatureConfig)
    model: ModelConfig = field(default_factory=ModelConfig)
    ensemble: EnsembleConfig = field(default_factory=EnsembleConfig)
    validation: ValidationConfig = field(default_factory=ValidationConfig)
    monitor: MonitorConfig = field(default_factory=MonitorConfig)

    models_dir: Path | None = field(default_factory=lambda: settings.models_dir)
    default_hours_ahead: int = field(
        default_factory=lambda: settings.default_hours_ahead
    )
    max_hours_ahead: int = field(default_factory=lambda: settings.max_hours_ahead)


# Singleton instance
config = PipelineConfig()
