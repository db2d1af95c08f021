"""
Upstream data-feed boundary.

Market, weather and gas connectors are external collaborators. They
deliver already-parsed, time-stamped rows through two interfaces:

- `DataSource.fetch(since)`: market rows that become TimeSeriesRecords
- `EnrichmentSource.fetch(hours)`: supplementary fields merged into
  buffered market rows before they are committed

The `IngestionBuffer` holds one run's rows between the fetch, enrich
and store stages so that committed records stay immutable.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import replace
from datetime import datetime
from pathlib import Path
from typing import Any, Mapping

import pandas as pd

from pricecast.data.records import TimeSeriesRecord, coerce_records, to_utc_hour
from pricecast.errors import DataSourceError, MalformedRecordError

logger = logging.getLogger(__name__)


class DataSource(ABC):
    """Delivers market rows (timestamp, target value, exogenous fields)."""

    name: str = "market"

    @abstractmethod
    def fetch(self, since: datetime | None = None) -> list[dict[str, Any]]:
        """Return rows with timestamp > since (all rows when since is None).

        Raises:
            DataSourceError: if the upstream feed is unavailable.
        """
        ...


class EnrichmentSource(ABC):
    """Delivers supplementary hourly fields (weather, gas price, ...)."""

    name: str = "enrichment"

    @abstractmethod
    def fetch(self, hours: list[datetime]) -> dict[datetime, dict[str, float]]:
        """Return fields keyed by UTC hour for the requested hours.

        Raises:
            DataSourceError: if the upstream feed is unavailable.
        """
        ...


class InMemorySource(DataSource):
    """Market source backed by a list of rows (tests, programmatic feeds)."""

    def __init__(self, rows: list[dict[str, Any]], name: str = "market") -> None:
        self.name = name
        self._rows = list(rows)

    def extend(self, rows: list[dict[str, Any]]) -> None:
        self._rows.extend(rows)

    def fetch(self, since: datetime | None = None) -> list[dict[str, Any]]:
        if since is None:
            return list(self._rows)
        selected = []
        for row in self._rows:
            try:
                if to_utc_hour(row.get("timestamp")) > since:
                    selected.append(row)
            except MalformedRecordError:
                # Let the store stage log and skip it
                selected.append(row)
        return selected


class CsvMarketSource(DataSource):
    """Market source reading a CSV export with a timestamp column."""

    def __init__(self, path: Path | str, name: str = "market") -> None:
        self.name = name
        self._path = Path(path)

    def fetch(self, since: datetime | None = None) -> list[dict[str, Any]]:
        if not self._path.exists():
            raise DataSourceError(self.name, f"file not found: {self._path}")
        df = pd.read_csv(self._path)
        if "timestamp" not in df.columns:
            raise DataSourceError(self.name, "missing 'timestamp' column")
        if since is not None:
            ts = pd.to_datetime(df["timestamp"], utc=True, errors="coerce")
            # Unparsable timestamps pass through so they are logged as malformed
            df = df[ts.isna() | (ts > pd.Timestamp(since))]
        rows = df.astype(object).where(df.notna(), None).to_dict(orient="records")
        logger.info("Read %d rows from %s", len(rows), self._path)
        return rows


class InMemoryEnrichmentSource(EnrichmentSource):
    """Enrichment source backed by a mapping of hour -> fields."""

    def __init__(
        self,
        values: Mapping[Any, Mapping[str, float]],
        name: str = "enrichment",
    ) -> None:
        self.name = name
        self._values = {to_utc_hour(k): dict(v) for k, v in values.items()}

    def fetch(self, hours: list[datetime]) -> dict[datetime, dict[str, float]]:
        return {h: self._values[h] for h in hours if h in self._values}


class CsvEnrichmentSource(EnrichmentSource):
    """Enrichment source reading hourly fields from a CSV export."""

    def __init__(self, path: Path | str, fields: tuple[str, ...], name: str) -> None:
        self.name = name
        self._path = Path(path)
        self._fields = fields

    def fetch(self, hours: list[datetime]) -> dict[datetime, dict[str, float]]:
        if not self._path.exists():
            raise DataSourceError(self.name, f"file not found: {self._path}")
        df = pd.read_csv(self._path)
        missing = [c for c in ("timestamp", *self._fields) if c not in df.columns]
        if missing:
            raise DataSourceError(self.name, f"missing columns: {missing}")

        # Round to the hour (feeds are often stamped at XX:12 etc.)
        df["hour"] = pd.to_datetime(df["timestamp"], utc=True).dt.floor("h")
        df = df.drop_duplicates(subset=["hour"], keep="last")
        wanted = set(hours)
        result: dict[datetime, dict[str, float]] = {}
        for row in df.itertuples(index=False):
            hour = row.hour.to_pydatetime()
            if hour not in wanted:
                continue
            values = {
                f: float(getattr(row, f))
                for f in self._fields
                if pd.notna(getattr(row, f))
            }
            if values:
                result[hour] = values
        return result


class IngestionBuffer:
    """Holds one run's coerced market records until they are committed.

    Rows are deduplicated by (timestamp, source); the first delivery wins.
    """

    def __init__(self) -> None:
        self._records: dict[tuple[datetime, str], TimeSeriesRecord] = {}
        self.skipped = 0

    def __len__(self) -> int:
        return len(self._records)

    def add_rows(self, rows: list[Mapping[str, Any]], source: str) -> int:
        """Coerce and buffer rows. Returns the number of new records."""
        records, skipped = coerce_records(list(rows), source=source)
        self.skipped += skipped
        added = 0
        for record in records:
            key = (record.timestamp, record.source)
            if key not in self._records:
                self._records[key] = record
                added += 1
        return added

    def hours(self) -> list[datetime]:
        return sorted({ts for ts, _ in self._records})

    def enrich(self, values: Mapping[datetime, Mapping[str, float]]) -> int:
        """Merge supplementary fields into buffered records.

        Fields already present with a value are not overwritten.

        Returns:
            Number of records that received at least one field.
        """
        enriched = 0
        for key, record in list(self._records.items()):
            extra = values.get(record.timestamp)
            if not extra:
                continue
            merged = dict(record.exogenous)
            changed = False
            for field_name, value in extra.items():
                if merged.get(field_name) is None and value is not None:
                    merged[field_name] = float(value)
                    changed = True
            if changed:
                self._records[key] = replace(record, exogenous=merged)
                enriched += 1
        return enriched

    def drain(self) -> list[TimeSeriesRecord]:
        """Return buffered records in timestamp order and clear the buffer."""
        records = sorted(self._records.values(), key=lambda r: r.timestamp)
        self._records.clear()
        return records
