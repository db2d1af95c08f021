"""
Temporal / calendar features.

Cyclical (sin/cos) encodings of hour of day, day of week and month,
derived from the record's own timestamp. They use no target data and
are always available.
"""

import logging

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)


class TemporalFeatures:
    """Generates cyclical calendar features from the timestamp column."""

    columns = [
        "hour_sin",
        "hour_cos",
        "day_of_week_sin",
        "day_of_week_cos",
        "month_sin",
        "month_cos",
    ]

    def compute(self, df: pd.DataFrame) -> pd.DataFrame:
        """Add temporal feature columns.

        Args:
            df: DataFrame with a UTC 'timestamp' column.
        """
        df = df.copy()
        dt = pd.to_datetime(df["timestamp"], utc=True)

        hour = dt.dt.hour
        day_of_week = dt.dt.dayofweek  # 0=Mon, 6=Sun
        month = dt.dt.month

        df["hour_sin"] = np.sin(2 * np.pi * hour / 24)
        df["hour_cos"] = np.cos(2 * np.pi * hour / 24)
        df["day_of_week_sin"] = np.sin(2 * np.pi * day_of_week / 7)
        df["day_of_week_cos"] = np.cos(2 * np.pi * day_of_week / 7)
        df["month_sin"] = np.sin(2 * np.pi * month / 12)
        df["month_cos"] = np.cos(2 * np.pi * month / 12)

        logger.debug("Computed %d temporal features.", len(self.columns))
        return df
