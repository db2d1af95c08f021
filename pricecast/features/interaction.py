"""
Cross-variable interaction features.

Pairwise products of exogenous fields on the same record, e.g.
wind generation x hour of day, temperature x demand. A product is
null when either operand is missing.
"""

import logging

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)


def interaction_name(left: str, right: str) -> str:
    return f"{left}_x_{right}"


class InteractionFeatures:
    """Products of configured exogenous field pairs."""

    def __init__(self, pairs: tuple[tuple[str, str], ...] = ()) -> None:
        self._pairs = pairs

    @property
    def columns(self) -> list[str]:
        return [interaction_name(a, b) for a, b in self._pairs]

    def compute(self, df: pd.DataFrame) -> pd.DataFrame:
        df = df.copy()
        for left, right in self._pairs:
            name = interaction_name(left, right)
            if left not in df.columns or right not in df.columns:
                df[name] = np.nan
                continue
            df[name] = pd.to_numeric(df[left], errors="coerce") * pd.to_numeric(
                df[right], errors="coerce"
            )
        return df
