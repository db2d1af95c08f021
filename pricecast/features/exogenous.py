"""
Exogenous lag and rolling features.

Lags of demand, wind generation and temperature, plus trailing means of
the same fields. Same null rule as the target lags: a value referencing
index i - k is null when fewer than k prior records exist, and a
rolling mean is null unless the whole preceding window is populated.
"""

import logging

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)


class ExogenousFeatures:
    """Positional lags and trailing means of exogenous record fields."""

    def __init__(
        self,
        lags: tuple[tuple[str, tuple[int, ...]], ...] = (),
        rolling_fields: tuple[str, ...] = (),
        window: int = 24,
    ) -> None:
        self._lags = lags
        self._rolling_fields = rolling_fields
        self._window = window

    @property
    def columns(self) -> list[str]:
        columns = [f"{name}_lag_{n}h" for name, hours in self._lags for n in hours]
        columns += [f"{name}_rolling_avg_{self._window}h" for name in self._rolling_fields]
        return columns

    def compute(self, df: pd.DataFrame) -> pd.DataFrame:
        df = df.copy()

        for name, hours in self._lags:
            series = _field(df, name)
            for n in hours:
                df[f"{name}_lag_{n}h"] = series.shift(n)

        w = self._window
        for name in self._rolling_fields:
            prior = _field(df, name).shift(1)
            df[f"{name}_rolling_avg_{w}h"] = prior.rolling(window=w, min_periods=w).mean()

        logger.debug("Computed %d exogenous features.", len(self.columns))
        return df


def _field(df: pd.DataFrame, name: str) -> pd.Series:
    # Fields absent from every record (e.g. no weather enrichment) yield nulls
    if name not in df.columns:
        return pd.Series(np.nan, index=df.index, dtype=float)
    return pd.to_numeric(df[name], errors="coerce").astype(float)
