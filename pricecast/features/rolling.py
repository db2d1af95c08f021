"""
Rolling window statistics.

Computed over exactly the `window` records preceding the current one
(indices i - window ... i - 1); the current value is excluded from its
own window. Standard deviation uses the population formulation.

Shorter trailing means (rolling_avg_6h) and price volatility (population
std over the K preceding records) follow the same window rule.
"""

import logging

import pandas as pd

logger = logging.getLogger(__name__)


class RollingFeatures:
    """Trailing-window mean, std, min and max of the target."""

    def __init__(
        self,
        window: int = 24,
        mean_windows: tuple[int, ...] = (),
        volatility_windows: tuple[int, ...] = (),
    ) -> None:
        self._window = window
        self._mean_windows = mean_windows
        self._volatility_windows = volatility_windows

    @property
    def columns(self) -> list[str]:
        w = self._window
        return [
            f"rolling_avg_{w}h",
            f"rolling_std_{w}h",
            f"rolling_min_{w}h",
            f"rolling_max_{w}h",
            *(f"rolling_avg_{k}h" for k in self._mean_windows),
            *(f"volatility_{k}h" for k in self._volatility_windows),
        ]

    def compute(self, df: pd.DataFrame) -> pd.DataFrame:
        df = df.copy()
        w = self._window
        prior = df["target_value"].astype(float).shift(1)
        rolling = prior.rolling(window=w, min_periods=w)

        df[f"rolling_avg_{w}h"] = rolling.mean()
        df[f"rolling_std_{w}h"] = rolling.std(ddof=0)
        df[f"rolling_min_{w}h"] = rolling.min()
        df[f"rolling_max_{w}h"] = rolling.max()

        for k in self._mean_windows:
            df[f"rolling_avg_{k}h"] = prior.rolling(window=k, min_periods=k).mean()
        for k in self._volatility_windows:
            df[f"volatility_{k}h"] = prior.rolling(window=k, min_periods=k).std(ddof=0)

        logger.debug("Computed rolling statistics over %d records.", w)
        return df
