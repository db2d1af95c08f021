"""
Time series records.

A TimeSeriesRecord is one hourly market observation: the target value
(pool price) plus exogenous fields (demand, generation by fuel type,
temperature by location, hour_of_day, ...). Records are immutable once
written and keyed by their UTC hour.
"""

import logging
import math
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Mapping

import pandas as pd

from pricecast.errors import MalformedRecordError

logger = logging.getLogger(__name__)

# Keys accepted for the target value, in order of preference
TARGET_ALIASES = ("target_value", "pool_price", "price")

# Keys that are never exogenous fields
RESERVED_KEYS = frozenset({"id", "record_id", "timestamp", "source", *TARGET_ALIASES})

_RECORD_NAMESPACE = uuid.UUID("6f1c2d0e-5a7b-4c1e-9d3f-2b8e4a6c7d10")


@dataclass(frozen=True)
class TimeSeriesRecord:
    """One hourly observation."""

    id: str
    timestamp: datetime
    target_value: float
    exogenous: Mapping[str, float | None] = field(default_factory=dict)
    source: str = "market"

    def get(self, name: str) -> float | None:
        """Return a named field (target or exogenous), None when absent."""
        if name == "target_value":
            return self.target_value
        return self.exogenous.get(name)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "target_value": self.target_value,
            "source": self.source,
            **dict(self.exogenous),
        }


def record_id_for(timestamp: datetime) -> str:
    """Deterministic record id for an hourly timestamp.

    Re-ingesting the same hour always yields the same id, which keeps
    downstream feature upserts idempotent.
    """
    return str(uuid.uuid5(_RECORD_NAMESPACE, timestamp.isoformat()))


def to_utc_hour(value: Any) -> datetime:
    """Parse a timestamp-like value and floor it to the UTC hour.

    Naive timestamps are interpreted as UTC.

    Raises:
        MalformedRecordError: if the value cannot be parsed.
    """
    if value is None:
        raise MalformedRecordError("missing timestamp")
    try:
        ts = pd.Timestamp(value)
    except (ValueError, TypeError) as exc:
        raise MalformedRecordError(f"unparsable timestamp {value!r}") from exc
    if pd.isna(ts):
        raise MalformedRecordError(f"unparsable timestamp {value!r}")
    if ts.tzinfo is None:
        ts = ts.tz_localize("UTC")
    else:
        ts = ts.tz_convert("UTC")
    return ts.floor("h").to_pydatetime()


def _to_float(name: str, value: Any, allow_none: bool) -> float | None:
    if value is None:
        if allow_none:
            return None
        raise MalformedRecordError(f"missing {name}")
    if isinstance(value, bool):
        raise MalformedRecordError(f"non-numeric {name}: {value!r}")
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise MalformedRecordError(f"non-numeric {name}: {value!r}") from exc
    if math.isnan(number):
        if allow_none:
            return None
        raise MalformedRecordError(f"missing {name}")
    if math.isinf(number):
        raise MalformedRecordError(f"non-finite {name}: {value!r}")
    return number


def coerce_record(raw: Mapping[str, Any], source: str = "market") -> TimeSeriesRecord:
    """Build a TimeSeriesRecord from a parsed upstream row.

    The target is read from the first present key of TARGET_ALIASES.
    Every other non-reserved key is an exogenous field; missing values
    become None, non-numeric values make the whole record malformed.
    hour_of_day is derived from the timestamp when not supplied.

    Raises:
        MalformedRecordError: if the timestamp or target is unusable,
            or an exogenous field is non-numeric.
    """
    timestamp = to_utc_hour(raw.get("timestamp"))

    target_key = next((k for k in TARGET_ALIASES if k in raw), None)
    if target_key is None:
        raise MalformedRecordError("missing target_value")
    target = _to_float(target_key, raw[target_key], allow_none=False)

    exogenous: dict[str, float | None] = {}
    for key, value in raw.items():
        if key in RESERVED_KEYS:
            continue
        exogenous[key] = _to_float(key, value, allow_none=True)
    exogenous.setdefault("hour_of_day", float(timestamp.hour))

    return TimeSeriesRecord(
        id=record_id_for(timestamp),
        timestamp=timestamp,
        target_value=target,
        exogenous=exogenous,
        source=str(raw.get("source") or source),
    )


def coerce_records(
    rows: list[Mapping[str, Any]], source: str = "market"
) -> tuple[list[TimeSeriesRecord], int]:
    """Coerce a batch of rows, skipping malformed ones.

    Returns:
        Tuple of (records, skipped_count).
    """
    records: list[TimeSeriesRecord] = []
    skipped = 0
    for row in rows:
        try:
            records.append(coerce_record(row, source=source))
        except MalformedRecordError as exc:
            skipped += 1
            logger.warning("Skipping record from %s: %s", source, exc.message)
    return records, skipped


def utc_now() -> datetime:
    return datetime.now(timezone.utc)
