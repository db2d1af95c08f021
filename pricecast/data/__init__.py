"""
Data sub-package.

- `TimeSeriesRecord` / `coerce_record`: immutable hourly observations
- `TimeSeriesStore` : ordered append-only store, unique per hour
- `DataSource` / `EnrichmentSource`: upstream feed contracts
- `IngestionBuffer` : per-run staging between fetch, enrich and store
- `DataQualityChecker`: rule validation and data_quality_score
"""

from pricecast.data.quality import DataQualityChecker, QualityReport
from pricecast.data.records import TimeSeriesRecord, coerce_record, record_id_for
from pricecast.data.sources import (
    CsvEnrichmentSource,
    CsvMarketSource,
    DataSource,
    EnrichmentSource,
    InMemoryEnrichmentSource,
    InMemorySource,
    IngestionBuffer,
)
from pricecast.data.store import TimeSeriesStore, UpsertResult

__all__ = [
    "TimeSeriesRecord",
    "coerce_record",
    "record_id_for",
    "TimeSeriesStore",
    "UpsertResult",
    "DataSource",
    "EnrichmentSource",
    "InMemorySource",
    "InMemoryEnrichmentSource",
    "CsvMarketSource",
    "CsvEnrichmentSource",
    "IngestionBuffer",
    "DataQualityChecker",
    "QualityReport",
]
