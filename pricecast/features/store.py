"""
Feature store.

Holds one FeatureVector per TimeSeriesRecord id. Writes are upserts
keyed by record id (last writer wins), applied one bounded batch at a
time so readers never see a half-applied batch. Reads return
point-in-time snapshots.
"""

import logging
import math
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterator, Mapping

import pandas as pd

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FeatureVector:
    """Derived features of one record. Nulls mean insufficient history."""

    record_id: str
    timestamp: datetime
    values: Mapping[str, float | None] = field(default_factory=dict)

    def __getitem__(self, name: str) -> float | None:
        return self.values[name]

    def get(self, name: str) -> float | None:
        return self.values.get(name)

    def missing(self, names: list[str]) -> list[str]:
        """Return the subset of names whose value is null or absent."""
        return [n for n in names if self.values.get(n) is None]

    def is_complete(self) -> bool:
        return all(v is not None for v in self.values.values())

    @classmethod
    def from_row(cls, record_id: str, timestamp: datetime, row: Mapping) -> "FeatureVector":
        values: dict[str, float | None] = {}
        for name, value in row.items():
            if value is None or (isinstance(value, float) and math.isnan(value)):
                values[name] = None
            else:
                values[name] = float(value)
        return cls(record_id=record_id, timestamp=timestamp, values=values)


class FeatureStore:
    """Thread-safe in-memory feature store."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._vectors: dict[str, FeatureVector] = {}
        self.batches_flushed = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._vectors)

    def __contains__(self, record_id: str) -> bool:
        with self._lock:
            return record_id in self._vectors

    def get(self, record_id: str) -> FeatureVector | None:
        with self._lock:
            return self._vectors.get(record_id)

    def upsert_batch(self, vectors: list[FeatureVector]) -> int:
        """Write one batch atomically with respect to readers."""
        with self._lock:
            for vector in vectors:
                self._vectors[vector.record_id] = vector
            self.batches_flushed += 1
        return len(vectors)

    def snapshot(self) -> dict[str, FeatureVector]:
        """Return a point-in-time copy keyed by record id."""
        with self._lock:
            return dict(self._vectors)

    def __iter__(self) -> Iterator[FeatureVector]:
        return iter(self.snapshot().values())

    @staticmethod
    def to_frame(vectors: list[FeatureVector]) -> pd.DataFrame:
        """Flatten vectors into a DataFrame (nulls become NaN)."""
        if not vectors:
            return pd.DataFrame(columns=["record_id", "timestamp"])
        rows = [
            {"record_id": v.record_id, "timestamp": v.timestamp, **dict(v.values)}
            for v in vectors
        ]
        return pd.DataFrame(rows).astype({"record_id": str})
