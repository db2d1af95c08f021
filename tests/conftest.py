"""Shared fixtures: synthetic hourly market series and small pipeline configs."""

from datetime import datetime, timedelta, timezone

import numpy as np
import pytest

START = datetime(2024, 1, 1, tzinfo=timezone.utc)


def make_rows(
    n_hours: int = 400,
    start: datetime = START,
    seed: int = 42,
    include_enrichment: bool = True,
) -> list[dict]:
    """Synthetic hourly pool price with a daily cycle and AR(1) noise."""
    rng = np.random.default_rng(seed)
    hours = np.arange(n_hours)
    daily = 12 * np.sin(2 * np.pi * (hours % 24) / 24)
    noise = np.zeros(n_hours)
    for i in range(1, n_hours):
        noise[i] = 0.7 * noise[i - 1] + rng.normal(0, 2.0)
    price = 60 + daily + noise
    demand = 9500 + 600 * np.sin(2 * np.pi * (hours % 24) / 24) + rng.normal(0, 50, n_hours)
    wind = np.clip(800 + rng.normal(0, 300, n_hours), 0, None)

    rows = []
    for i in hours:
        row = {
            "timestamp": (start + timedelta(hours=int(i))).isoformat(),
            "pool_price": round(float(price[i]), 2),
            "demand": round(float(demand[i]), 1),
            "generation_wind": round(float(wind[i]), 1),
            "generation_gas": round(float(demand[i] * 0.6), 1),
        }
        if include_enrichment:
            row["temperature_calgary"] = round(float(-5 + 8 * np.sin(2 * np.pi * i / 24)), 2)
            row["natural_gas_price"] = 2.5
        rows.append(row)
    return rows


@pytest.fixture
def hourly_rows() -> list[dict]:
    return make_rows()


@pytest.fixture
def pipeline_config():
    """Fast configuration: small boosters, low training threshold."""
    from pricecast.config import ModelConfig, PipelineConfig

    return PipelineConfig(
        model=ModelConfig(xgb_n_estimators=25, xgb_max_depth=3, min_training_rows=100),
        models_dir=None,
        default_hours_ahead=6,
        max_hours_ahead=48,
    )


@pytest.fixture
def loaded_store(hourly_rows):
    from pricecast.data.records import coerce_records
    from pricecast.data.store import TimeSeriesStore

    records, _ = coerce_records(hourly_rows)
    return TimeSeriesStore(records)


@pytest.fixture
def service(hourly_rows, pipeline_config):
    """A ForecastingService fed by an in-memory market source."""
    from pricecast.data.sources import InMemorySource
    from pricecast.service import ForecastingService

    return ForecastingService(market_source=InMemorySource(hourly_rows), cfg=pipeline_config)


@pytest.fixture
def trained_service(service):
    """Service with data ingested, features computed and one model trained."""
    assert service.run_workflow("data_collection").success
    assert service.run_workflow("model_training").success
    return service
