"""
Tests for feature engineering.

Covers:
- Lag features and the no-look-ahead rule
- Rolling window statistics (population std, current value excluded)
- Momentum divide-by-zero guard
- Interaction and temporal features
- FeatureEngine idempotency, batching, incremental refresh and malformed records
"""

from datetime import datetime, timedelta, timezone

import numpy as np
import pytest

START = datetime(2024, 3, 1, tzinfo=timezone.utc)


def records_from_values(values, start=START, **exogenous):
    from pricecast.data.records import TimeSeriesRecord, record_id_for

    records = []
    for i, value in enumerate(values):
        ts = start + timedelta(hours=i)
        exo = {"hour_of_day": float(ts.hour)}
        for name, series in exogenous.items():
            exo[name] = series[i]
        records.append(
            TimeSeriesRecord(id=record_id_for(ts), timestamp=ts, target_value=value, exogenous=exo)
        )
    return records


def make_engine(records=None, **cfg_overrides):
    from pricecast.config import FeatureConfig
    from pricecast.data.store import TimeSeriesStore
    from pricecast.features.pipeline import FeatureEngine
    from pricecast.features.store import FeatureStore

    store = TimeSeriesStore(records or [])
    feature_store = FeatureStore()
    engine = FeatureEngine(store, feature_store, FeatureConfig(**cfg_overrides))
    return engine, store, feature_store


# ---------------------------------------------------------------------------
# Lag features
# ---------------------------------------------------------------------------


class TestLagFeatures:
    def test_no_look_ahead(self):
        values = [float(v) for v in np.random.default_rng(1).normal(50, 10, 40)]
        engine, _, _ = make_engine()
        frame = engine.compute_frame(records_from_values(values))

        for n in (1, 2, 3, 24):
            column = frame[f"lag_{n}h"].tolist()
            for i, lag_value in enumerate(column):
                if i < n:
                    assert np.isnan(lag_value), f"lag_{n}h at {i} must be null"
                else:
                    assert lag_value == values[i - n]

    def test_configurable_lags(self):
        engine, _, _ = make_engine(lag_hours=(5,), momentum_hours=(), rolling_window=3)
        frame = engine.compute_frame(records_from_values([float(i) for i in range(10)]))
        assert "lag_5h" in frame.columns
        assert "lag_1h" not in frame.columns
        assert frame["lag_5h"].iloc[7] == 2.0

    def test_concrete_scenario(self):
        values = [10.0 + i for i in range(24)] + [40.0]
        engine, _, _ = make_engine()
        row = engine.compute_frame(records_from_values(values)).iloc[24]

        assert row["lag_24h"] == 10.0
        assert row["lag_1h"] == 33.0
        assert row["rolling_avg_24h"] == pytest.approx(21.5)
        assert row["momentum_1h"] == pytest.approx((40 - 33) / 33 * 100)

    def test_momentum_against_previous_value(self):
        values = [10.0 + i for i in range(23)] + [39.0, 40.0]
        engine, _, _ = make_engine()
        row = engine.compute_frame(records_from_values(values)).iloc[24]

        assert row["lag_1h"] == 39.0
        assert row["momentum_1h"] == pytest.approx(2.564, abs=1e-3)


# ---------------------------------------------------------------------------
# Rolling statistics
# ---------------------------------------------------------------------------


class TestRollingFeatures:
    def test_rolling_stats_correctness(self):
        values = [float(v) for v in np.random.default_rng(7).uniform(20, 80, 30)]
        engine, _, _ = make_engine()
        frame = engine.compute_frame(records_from_values(values))

        window = np.array(values[0:24])
        assert frame["rolling_avg_24h"].iloc[24] == pytest.approx(window.mean())
        assert frame["rolling_std_24h"].iloc[24] == pytest.approx(window.std(ddof=0))
        assert frame["rolling_min_24h"].iloc[24] == window.min()
        assert frame["rolling_max_24h"].iloc[24] == window.max()

    def test_null_before_full_window(self):
        engine, _, _ = make_engine()
        frame = engine.compute_frame(records_from_values([1.0] * 30))
        assert frame["rolling_avg_24h"].iloc[:24].isna().all()
        assert frame["rolling_avg_24h"].iloc[24] == 1.0

    def test_current_value_excluded(self):
        values = [1.0] * 24 + [1000.0]
        engine, _, _ = make_engine()
        frame = engine.compute_frame(records_from_values(values))
        assert frame["rolling_max_24h"].iloc[24] == 1.0


# ---------------------------------------------------------------------------
# Momentum, interactions, temporal
# ---------------------------------------------------------------------------


class TestMomentumGuard:
    def test_zero_lag_gives_null(self):
        engine, store, feature_store = make_engine(records_from_values([5.0, 0.0, 3.0, 4.0]))
        engine.run()
        vectors = sorted(feature_store, key=lambda v: v.timestamp)

        assert vectors[2]["lag_1h"] == 0.0
        assert vectors[2]["momentum_1h"] is None
        assert not any(
            v.get("momentum_1h") is not None and np.isinf(v["momentum_1h"]) for v in vectors
        )


class TestInteractionFeatures:
    def test_product_and_null_operand(self):
        n = 3
        records = records_from_values(
            [10.0] * n,
            generation_wind=[100.0, None, 300.0],
            temperature_calgary=[-10.0, 5.0, 2.0],
            demand=[9000.0, 9100.0, None],
        )
        engine, _, _ = make_engine()
        frame = engine.compute_frame(records)

        wind_hour = frame["generation_wind_x_hour_of_day"].tolist()
        assert wind_hour[0] == 100.0 * records[0].exogenous["hour_of_day"]
        assert np.isnan(wind_hour[1])
        temp_demand = frame["temperature_calgary_x_demand"].tolist()
        assert temp_demand[0] == -90000.0
        assert np.isnan(temp_demand[2])

    def test_absent_field_is_null(self):
        engine, _, _ = make_engine()
        frame = engine.compute_frame(records_from_values([1.0, 2.0]))
        assert frame["natural_gas_price_x_generation_gas"].isna().all()


class TestTemporalFeatures:
    def test_cyclical_encoding_bounded(self):
        engine, _, _ = make_engine()
        frame = engine.compute_frame(records_from_values([1.0] * 48))
        for col in ("hour_sin", "hour_cos", "day_of_week_sin", "month_cos"):
            assert frame[col].between(-1, 1).all()
        assert frame["hour_sin"].notna().all()

    def test_can_be_disabled(self):
        engine, _, _ = make_engine(temporal_features=False)
        assert "hour_sin" not in engine.feature_columns


# ---------------------------------------------------------------------------
# FeatureEngine
# ---------------------------------------------------------------------------


class TestFeatureEngine:
    def test_one_vector_per_record(self):
        records = records_from_values([float(i) for i in range(50)])
        engine, _, feature_store = make_engine(records)
        result = engine.run()

        assert result.computed == 50
        assert len(feature_store) == 50
        assert {v.record_id for v in feature_store} == {r.id for r in records}

    def test_idempotent_recomputation(self):
        records = records_from_values([float(v) for v in np.random.default_rng(3).normal(50, 5, 60)])
        engine, _, feature_store = make_engine(records)
        engine.run()
        first = feature_store.snapshot()

        result = engine.run(full_refresh=True)
        assert result.upserted == 0
        assert result.unchanged == 60
        assert feature_store.snapshot() == first

    def test_incremental_run_processes_new_records_only(self):
        records = records_from_values([float(i) for i in range(60)])
        engine, store, feature_store = make_engine(records[:40])
        engine.run()

        store.upsert_many(records[40:])
        result = engine.run()
        assert result.upserted == 20
        assert feature_store.get(records[59].id)["lag_24h"] == 35.0

    def test_backfilled_record_refreshes_stale_vectors(self):
        records = records_from_values([float(i) for i in range(30)])
        gap = records[10]
        engine, store, feature_store = make_engine(records[:10] + records[11:])
        engine.run()
        assert feature_store.get(records[11].id)["lag_1h"] == 9.0

        store.append(gap)
        engine.run()
        assert feature_store.get(records[11].id)["lag_1h"] == 10.0

    def test_bounded_batches(self):
        engine, _, feature_store = make_engine(
            records_from_values([float(i) for i in range(35)]), batch_size=10
        )
        result = engine.run()
        assert result.batches == 4
        assert feature_store.batches_flushed == 4

    def test_malformed_record_skipped(self, caplog):
        from pricecast.data.records import TimeSeriesRecord, record_id_for

        records = records_from_values([float(i) for i in range(10)])
        bad_ts = START + timedelta(hours=10)
        records.append(
            TimeSeriesRecord(id=record_id_for(bad_ts), timestamp=bad_ts, target_value=float("nan"))
        )
        records += records_from_values([11.0, 12.0], start=START + timedelta(hours=11))
        engine, _, feature_store = make_engine(records)

        with caplog.at_level("WARNING"):
            result = engine.run()

        assert result.skipped == 1
        assert len(feature_store) == 12
        assert feature_store.get(record_id_for(bad_ts)) is None
        assert "malformed" in caplog.text.lower()

    def test_incremental_matches_full_refresh_across_malformed_record(self):
        values = [float(v) for v in np.random.default_rng(5).normal(50, 5, 41)]
        values[20] = float("nan")
        records = records_from_values(values)

        engine, store, feature_store = make_engine(records[:40])
        engine.run()
        store.append(records[40])
        engine.run()
        incremental = feature_store.get(records[40].id)

        full_engine, _, full_store = make_engine(records)
        full_engine.run(full_refresh=True)
        full = full_store.get(records[40].id)

        assert incremental.get("lag_24h") is not None
        assert incremental.get("rolling_avg_24h") is not None
        assert incremental == full


# ---------------------------------------------------------------------------
# Exogenous lags, trailing means and volatility
# ---------------------------------------------------------------------------


class TestExogenousFeatures:
    def test_lags_reference_prior_records_only(self):
        rng = np.random.default_rng(7)
        values = [float(v) for v in rng.normal(50, 5, 40)]
        demand = [float(v) for v in rng.normal(9500, 300, 40)]
        engine, _, _ = make_engine()
        frame = engine.compute_frame(records_from_values(values, demand=demand))

        for n in (1, 24):
            column = frame[f"demand_lag_{n}h"].tolist()
            for i, lag_value in enumerate(column):
                if i < n:
                    assert np.isnan(lag_value)
                else:
                    assert lag_value == demand[i - n]

    def test_future_values_do_not_leak(self):
        rng = np.random.default_rng(8)
        values = [float(v) for v in rng.normal(50, 5, 40)]
        wind = [float(v) for v in rng.normal(800, 200, 40)]
        engine, _, _ = make_engine()
        before = engine.compute_frame(records_from_values(values, generation_wind=wind))

        changed = list(wind)
        changed[30:] = [0.0] * 10
        after = engine.compute_frame(records_from_values(values, generation_wind=changed))

        columns = [c for c in engine.feature_columns if c.startswith("generation_wind_")]
        assert "generation_wind_rolling_avg_24h" in columns
        for column in columns:
            np.testing.assert_array_equal(
                before[column].iloc[:31].to_numpy(), after[column].iloc[:31].to_numpy()
            )

    def test_rolling_mean_of_exogenous_field(self):
        demand = [float(1000 + i) for i in range(30)]
        engine, _, _ = make_engine()
        frame = engine.compute_frame(records_from_values([50.0] * 30, demand=demand))

        column = frame["demand_rolling_avg_24h"]
        assert column.iloc[:24].isna().all()
        assert column.iloc[24] == pytest.approx(np.mean(demand[0:24]))
        assert column.iloc[29] == pytest.approx(np.mean(demand[5:29]))

    def test_missing_field_gives_null_columns(self):
        engine, _, _ = make_engine()
        frame = engine.compute_frame(records_from_values([float(i) for i in range(30)]))
        assert frame["temperature_calgary_lag_1h"].isna().all()

    def test_volatility_and_short_mean(self):
        values = [float(v) for v in np.random.default_rng(9).normal(50, 5, 20)]
        engine, _, _ = make_engine(volatility_hours=(6,), rolling_mean_windows=(6,))
        frame = engine.compute_frame(records_from_values(values))

        assert frame["volatility_6h"].iloc[:6].isna().all()
        assert frame["volatility_6h"].iloc[10] == pytest.approx(np.std(values[4:10]))
        assert frame["rolling_avg_6h"].iloc[10] == pytest.approx(np.mean(values[4:10]))

    def test_lookback_covers_longest_window(self):
        from pricecast.config import FeatureConfig

        cfg = FeatureConfig(exogenous_lags=(("demand", (1, 168)),))
        assert cfg.max_lookback == 168
