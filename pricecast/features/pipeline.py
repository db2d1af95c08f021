"""
Feature engine.

Runs all feature generators in order over the ordered record series:
1. Lag / momentum features
2. Rolling window statistics and volatility
3. Exogenous lags and trailing means
4. Cross-variable interactions
5. Temporal / calendar features

and upserts one FeatureVector per record into the feature store, in
bounded batches. Recomputation is deterministic, so re-running after a
partial failure only rewrites vectors that are missing or stale.
"""

import logging
import math
from dataclasses import asdict, dataclass

import pandas as pd

from pricecast.config import FeatureConfig, config
from pricecast.data.records import TimeSeriesRecord
from pricecast.data.store import TimeSeriesStore, records_to_frame
from pricecast.features.exogenous import ExogenousFeatures
from pricecast.features.interaction import InteractionFeatures
from pricecast.features.lag import LagFeatures
from pricecast.features.rolling import RollingFeatures
from pricecast.features.store import FeatureStore, FeatureVector
from pricecast.features.temporal import TemporalFeatures

logger = logging.getLogger(__name__)


@dataclass
class FeatureRunResult:
    """Summary of one feature engine pass."""

    records_seen: int = 0
    computed: int = 0
    upserted: int = 0
    unchanged: int = 0
    skipped: int = 0
    batches: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


class FeatureEngine:
    """Computes and stores FeatureVectors for the time series store."""

    def __init__(
        self,
        store: TimeSeriesStore,
        feature_store: FeatureStore,
        cfg: FeatureConfig | None = None,
    ) -> None:
        self._cfg = cfg or config.features
        self._store = store
        self._feature_store = feature_store
        self._lag = LagFeatures(
            lag_hours=self._cfg.lag_hours,
            momentum_hours=self._cfg.momentum_hours,
        )
        self._rolling = RollingFeatures(
            window=self._cfg.rolling_window,
            mean_windows=self._cfg.rolling_mean_windows,
            volatility_windows=self._cfg.volatility_hours,
        )
        self._exogenous = ExogenousFeatures(
            lags=self._cfg.exogenous_lags,
            rolling_fields=self._cfg.exogenous_rolling_fields,
            window=self._cfg.rolling_window,
        )
        self._interaction = InteractionFeatures(pairs=self._cfg.interaction_pairs)
        self._temporal = TemporalFeatures() if self._cfg.temporal_features else None

    @property
    def config(self) -> FeatureConfig:
        return self._cfg

    @property
    def feature_columns(self) -> list[str]:
        columns = (
            self._lag.columns
            + self._rolling.columns
            + self._exogenous.columns
            + self._interaction.columns
        )
        if self._temporal is not None:
            columns += self._temporal.columns
        return columns

    # ------------------------------------------------------------------
    # Pure computation
    # ------------------------------------------------------------------

    def compute_frame(self, records: list[TimeSeriesRecord]) -> pd.DataFrame:
        """Compute features for an ordered list of records.

        Records with a non-finite target are skipped with a warning and
        do not take part in the index arithmetic.

        Returns:
            DataFrame with record_id, timestamp and one column per feature.
        """
        valid = [r for r in records if is_well_formed(r)]
        for record in records:
            if not is_well_formed(record):
                logger.warning(
                    "Skipping malformed record %s at %s: target=%r",
                    record.id, record.timestamp, record.target_value,
                )
        if not valid:
            return pd.DataFrame(columns=["record_id", "timestamp", *self.feature_columns])

        df = records_to_frame(valid)
        df = self._lag.compute(df)
        df = self._rolling.compute(df)
        df = self._exogenous.compute(df)
        df = self._interaction.compute(df)
        if self._temporal is not None:
            df = self._temporal.compute(df)

        return df[["record_id", "timestamp", *self.feature_columns]]

    def vectors_from_frame(self, frame: pd.DataFrame) -> list[FeatureVector]:
        columns = self.feature_columns
        vectors = []
        for row in frame.to_dict(orient="records"):
            vectors.append(
                FeatureVector.from_row(
                    record_id=row["record_id"],
                    timestamp=row["timestamp"],
                    row={c: row[c] for c in columns},
                )
            )
        return vectors

    # ------------------------------------------------------------------
    # Store refresh
    # ------------------------------------------------------------------

    def run(self, full_refresh: bool = False) -> FeatureRunResult:
        """Refresh features for every record whose vector is missing or stale.

        Incremental mode recomputes from the first record without a
        vector (with enough lookback for its lags), which also catches
        vectors made stale by a backfilled record. full_refresh
        recomputes the whole series. Only vectors that differ from the
        stored ones are written.
        """
        records = self._store.snapshot()
        result = FeatureRunResult(records_seen=len(records))
        result.skipped = sum(1 for r in records if not is_well_formed(r))
        if not records:
            logger.info("Feature engine: no records to process.")
            return result

        existing = self._feature_store.snapshot()
        if full_refresh:
            start = 0
        else:
            start = next(
                (
                    i for i, r in enumerate(records)
                    if r.id not in existing and is_well_formed(r)
                ),
                None,
            )
            if start is None:
                logger.info("Feature engine: all %d records up to date.", len(records))
                return result

        lookback_start = lookback_index(records, start, self._cfg.max_lookback)
        frame = self.compute_frame(records[lookback_start:])
        emit_ids = {r.id for r in records[start:]}
        frame = frame[frame["record_id"].isin(emit_ids)]
        vectors = self.vectors_from_frame(frame)
        result.computed = len(vectors)

        changed = [v for v in vectors if existing.get(v.record_id) != v]
        result.unchanged = len(vectors) - len(changed)

        batch_size = max(1, self._cfg.batch_size)
        for offset in range(0, len(changed), batch_size):
            batch = changed[offset:offset + batch_size]
            result.upserted += self._feature_store.upsert_batch(batch)
            result.batches += 1
            logger.debug("Flushed feature batch of %d vectors.", len(batch))

        logger.info(
            "Feature engine: %d computed, %d upserted, %d unchanged, %d skipped "
            "(%d batches).",
            result.computed, result.upserted, result.unchanged,
            result.skipped, result.batches,
        )
        return result


def lookback_index(records: list[TimeSeriesRecord], start: int, lookback: int) -> int:
    """Index from which `lookback` well-formed records precede records[start].

    Malformed records do not count, since compute_frame drops them
    before the shift arithmetic.
    """
    index = start
    remaining = lookback
    while index > 0 and remaining > 0:
        index -= 1
        if is_well_formed(records[index]):
            remaining -= 1
    return index


def is_well_formed(record: TimeSeriesRecord) -> bool:
    value = record.target_value
    if isinstance(value, bool):
        return False
    try:
        number = float(value)
    except (TypeError, ValueError):
        return False
    return math.isfinite(number)
