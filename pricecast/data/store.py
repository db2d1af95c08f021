"""
Time series store.

Ordered, append-only collection of hourly TimeSeriesRecords with
uniqueness on timestamp. Records are kept in timestamp order so the
feature engine can work by index arithmetic (i - k) instead of
timestamp lookups.

Thread-safe: several workflow runs may read and write concurrently.
Readers receive point-in-time snapshots.
"""

import bisect
import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta

import pandas as pd

from pricecast.data.records import TimeSeriesRecord

logger = logging.getLogger(__name__)


@dataclass
class UpsertResult:
    """Outcome of a batch write."""

    inserted: int = 0
    duplicates: int = 0

    def to_dict(self) -> dict:
        return {"inserted": self.inserted, "duplicates": self.duplicates}


class TimeSeriesStore:
    """In-memory ordered record store.

    Duplicate timestamps are idempotent: the record already stored wins
    and the incoming one is counted as a duplicate. Late (backfilled)
    records are inserted at their ordered position.
    """

    def __init__(self, records: list[TimeSeriesRecord] | None = None) -> None:
        self._lock = threading.RLock()
        self._records: list[TimeSeriesRecord] = []
        self._timestamps: list[datetime] = []
        self._by_id: dict[str, TimeSeriesRecord] = {}
        if records:
            self.upsert_many(records)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def upsert_many(self, records: list[TimeSeriesRecord]) -> UpsertResult:
        """Insert records, skipping timestamps that already exist."""
        result = UpsertResult()
        with self._lock:
            for record in records:
                pos = bisect.bisect_left(self._timestamps, record.timestamp)
                if pos < len(self._timestamps) and self._timestamps[pos] == record.timestamp:
                    result.duplicates += 1
                    continue
                self._timestamps.insert(pos, record.timestamp)
                self._records.insert(pos, record)
                self._by_id[record.id] = record
                result.inserted += 1

        if result.duplicates:
            logger.debug("Skipped %d duplicate records.", result.duplicates)
        logger.info(
            "Store write: %d inserted, %d duplicates (total %d).",
            result.inserted, result.duplicates, len(self),
        )
        return result

    def append(self, record: TimeSeriesRecord) -> bool:
        """Insert a single record. Returns False if its hour already exists."""
        return self.upsert_many([record]).inserted == 1

    def snapshot(self) -> list[TimeSeriesRecord]:
        """Return a consistent ordered copy of all records."""
        with self._lock:
            return list(self._records)

    def get(self, record_id: str) -> TimeSeriesRecord | None:
        with self._lock:
            return self._by_id.get(record_id)

    def latest(self) -> TimeSeriesRecord | None:
        with self._lock:
            return self._records[-1] if self._records else None

    def tail(self, n: int) -> list[TimeSeriesRecord]:
        """Return the last n records in timestamp order."""
        with self._lock:
            return list(self._records[-n:]) if n > 0 else []

    def since(self, start: datetime) -> list[TimeSeriesRecord]:
        """Return records with timestamp >= start."""
        with self._lock:
            pos = bisect.bisect_left(self._timestamps, start)
            return list(self._records[pos:])

    def find_actual(
        self, target: datetime, tolerance: timedelta
    ) -> TimeSeriesRecord | None:
        """Find the realized record at target, or within [target, target + tolerance).

        Returns None when the actual has not arrived yet.
        """
        with self._lock:
            pos = bisect.bisect_left(self._timestamps, target)
            if pos >= len(self._timestamps):
                return None
            candidate = self._records[pos]
            if candidate.timestamp == target or candidate.timestamp < target + tolerance:
                return candidate
            return None

    def to_frame(self, records: list[TimeSeriesRecord] | None = None) -> pd.DataFrame:
        """Flatten records into a DataFrame ordered by timestamp.

        Columns: record_id, timestamp, target_value, plus one column per
        exogenous field seen on any record.
        """
        if records is None:
            records = self.snapshot()
        return records_to_frame(records)


def records_to_frame(records: list[TimeSeriesRecord]) -> pd.DataFrame:
    if not records:
        return pd.DataFrame(columns=["record_id", "timestamp", "target_value"])
    rows = [
        {
            "record_id": r.id,
            "timestamp": r.timestamp,
            "target_value": r.target_value,
            **dict(r.exogenous),
        }
        for r in records
    ]
    df = pd.DataFrame(rows)
    return df.reset_index(drop=True)
