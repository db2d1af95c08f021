"""Shared metric helpers and the model monitor."""

from pricecast.utils.metrics import (
    ModelMonitor,
    PerformanceReport,
    mae,
    mape,
    r_squared,
    rmse,
    smape,
    symmetric_percent_error,
)

__all__ = [
    "ModelMonitor",
    "PerformanceReport",
    "mae",
    "mape",
    "r_squared",
    "rmse",
    "smape",
    "symmetric_percent_error",
]
