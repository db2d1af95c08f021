"""
Data quality checks for the time series store.

Produces the data_quality_score consumed by the health surface:
- Rule validation (finite target within price bounds, non-negative demand)
- Hourly continuity (missing hours in the inspected window)
- Exogenous completeness (share of non-null exogenous fields)
"""

import logging
from dataclasses import dataclass, field

import numpy as np
import pandas as pd

from pricecast.data.records import TimeSeriesRecord
from pricecast.data.store import records_to_frame

logger = logging.getLogger(__name__)


def _rules(price_floor: float, price_cap: float) -> dict:
    return {
        "target_finite": lambda df: np.isfinite(df["target_value"].astype(float)),
        "target_within_bounds": lambda df: df["target_value"].between(price_floor, price_cap),
        "demand_non_negative": lambda df: (
            df["demand"].isna() | (df["demand"] >= 0)
            if "demand" in df.columns
            else pd.Series(True, index=df.index)
        ),
    }


@dataclass
class QualityReport:
    """Result of a data quality pass."""

    records_checked: int = 0
    valid_records: int = 0
    missing_hours: int = 0
    completeness: float = 1.0
    failed_rules: dict[str, int] = field(default_factory=dict)

    @property
    def score(self) -> float:
        """Combined 0-1 score: validity x continuity x completeness."""
        if self.records_checked == 0:
            return 0.0
        validity = self.valid_records / self.records_checked
        expected = self.records_checked + self.missing_hours
        continuity = self.records_checked / expected if expected else 0.0
        return round(validity * continuity * self.completeness, 4)

    def to_dict(self) -> dict:
        return {
            "records_checked": self.records_checked,
            "valid_records": self.valid_records,
            "missing_hours": self.missing_hours,
            "completeness": round(self.completeness, 4),
            "failed_rules": dict(self.failed_rules),
            "data_quality_score": self.score,
        }


class DataQualityChecker:
    """Validates stored records against business rules."""

    def __init__(self, price_floor: float = -1000.0, price_cap: float = 10_000.0) -> None:
        self._rules = _rules(price_floor, price_cap)

    def check(self, records: list[TimeSeriesRecord]) -> QualityReport:
        """Run all rules over the given records (assumed in timestamp order)."""
        if not records:
            return QualityReport()

        df = records_to_frame(records)
        mask = pd.Series(True, index=df.index)
        failed: dict[str, int] = {}
        for rule_name, rule_fn in self._rules.items():
            rule_mask = rule_fn(df).fillna(False).astype(bool)
            failures = int((~rule_mask).sum())
            if failures:
                logger.warning(
                    "Validation rule '%s' failed for %d records", rule_name, failures
                )
                failed[rule_name] = failures
            mask &= rule_mask

        ts = pd.to_datetime(df["timestamp"], utc=True)
        span_hours = int((ts.iloc[-1] - ts.iloc[0]) / pd.Timedelta(hours=1)) + 1
        missing_hours = max(0, span_hours - len(df))

        exo_cols = [
            c for c in df.columns
            if c not in ("record_id", "timestamp", "target_value", "hour_of_day")
        ]
        completeness = float(df[exo_cols].notna().to_numpy().mean()) if exo_cols else 1.0

        report = QualityReport(
            records_checked=len(df),
            valid_records=int(mask.sum()),
            missing_hours=missing_hours,
            completeness=completeness,
            failed_rules=failed,
        )
        logger.info(
            "Quality check: %d/%d valid, %d missing hours, score=%.3f",
            report.valid_records, report.records_checked,
            report.missing_hours, report.score,
        )
        return report
