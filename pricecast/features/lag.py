"""
Lag and momentum features.

- Price lags: target value N records before the current one
- Momentum: percent change of the current value versus lag K

A feature referencing index i - k is null when fewer than k prior
records exist; it is never defaulted.
"""

import logging

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)


class LagFeatures:
    """Creates time-lagged target features from an ordered series.

    Works purely by positional shift over the series, so a record's
    lags only ever see earlier rows.
    """

    def __init__(
        self,
        lag_hours: tuple[int, ...] = (1, 2, 3, 24),
        momentum_hours: tuple[int, ...] = (1, 3),
    ) -> None:
        self._lag_hours = lag_hours
        self._momentum_hours = momentum_hours

    @property
    def columns(self) -> list[str]:
        return [f"lag_{n}h" for n in self._lag_hours] + [
            f"momentum_{k}h" for k in self._momentum_hours
        ]

    def compute(self, df: pd.DataFrame) -> pd.DataFrame:
        """Compute lag and momentum features.

        Args:
            df: DataFrame sorted by timestamp with a 'target_value' column.

        Returns:
            DataFrame with lag_Nh and momentum_Kh columns added.
        """
        df = df.copy()
        target = df["target_value"].astype(float)

        for lag in self._lag_hours:
            df[f"lag_{lag}h"] = target.shift(lag)

        # Zero lag -> NaN divisor, so the guard yields null instead of inf
        for k in self._momentum_hours:
            lagged = target.shift(k)
            divisor = lagged.where(lagged != 0, np.nan)
            df[f"momentum_{k}h"] = (target - divisor) / divisor * 100.0

        logger.debug(
            "Computed %d lag and %d momentum features.",
            len(self._lag_hours), len(self._momentum_hours),
        )
        return df
