"""
Tests for constituent models, the registry and ensemble combination.

Covers:
- Regression metrics (MAPE zero guard, sMAPE, R²)
- Seasonal profile, Ridge and XGBoost predictors
- ModelRegistry immutability, latest resolution and persistence
- EnsembleCombiner weights, bounds and confidence labels
- ModelMonitor retrain signals
"""

from datetime import datetime, timedelta, timezone

import numpy as np
import pandas as pd
import pytest

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


def design_frame(n=300, seed=0):
    rng = np.random.default_rng(seed)
    hours = np.arange(n) % 24
    level = 50 + 10 * np.sin(2 * np.pi * hours / 24) + rng.normal(0, 1, n)
    X = pd.DataFrame(
        {
            "lag_1h": level + rng.normal(0, 1, n),
            "demand": 9000 + rng.normal(0, 100, n),
            "current_value": level,
            "target_hour": (hours + 1) % 24,
        }
    )
    y = pd.Series(level + rng.normal(0, 0.5, n))
    return X, y


def make_version(version="v1", trained_at=T0, constituents=None):
    from pricecast.models.base import ModelMetrics
    from pricecast.models.registry import ModelVersion

    return ModelVersion(
        version=version,
        trained_at=trained_at,
        feature_names=("lag_1h",),
        constituents=constituents or {},
        performance=ModelMetrics(mae=1.0, rmse=1.5, mape=2.0, smape=2.0, r_squared=0.9),
    )


# ---------------------------------------------------------------------------
# Metrics
# ---------------------------------------------------------------------------


class TestMetrics:
    def test_basic_metrics(self):
        from pricecast.utils.metrics import mae, mape, r_squared, rmse

        y_true = np.array([10.0, 20.0, 30.0])
        y_pred = np.array([12.0, 18.0, 30.0])
        assert mae(y_true, y_pred) == pytest.approx(4 / 3)
        assert rmse(y_true, y_pred) == pytest.approx(np.sqrt(8 / 3))
        assert mape(y_true, y_pred) == pytest.approx((20 + 10 + 0) / 3)
        assert r_squared(y_true, y_true) == 1.0

    def test_mape_excludes_zero_actuals(self):
        from pricecast.utils.metrics import mape

        assert mape(np.array([0.0, 10.0]), np.array([5.0, 11.0])) == pytest.approx(10.0)
        assert mape(np.array([0.0, 0.0]), np.array([1.0, 2.0])) is None

    def test_smape_bounded(self):
        from pricecast.utils.metrics import smape, symmetric_percent_error

        assert smape(np.array([0.0]), np.array([5.0])) == pytest.approx(200.0)
        assert symmetric_percent_error(0.0, 0.0) is None
        assert symmetric_percent_error(100.0, 90.0) == pytest.approx(10 / 95 * 100)

    def test_compute_metrics_drops_nan(self):
        from pricecast.models.base import compute_metrics

        m = compute_metrics(np.array([1.0, np.nan, 3.0]), np.array([1.0, 2.0, 3.0]))
        assert m.mae == 0.0
        assert m.rmse == 0.0


# ---------------------------------------------------------------------------
# Constituent models
# ---------------------------------------------------------------------------


class TestSeasonalProfile:
    def test_profile_and_blend(self):
        from pricecast.models.seasonal import SeasonalProfilePredictor

        X = pd.DataFrame({"target_hour": [0, 0, 1, 1], "current_value": [0.0] * 4})
        y = pd.Series([10.0, 20.0, 30.0, 50.0])
        model = SeasonalProfilePredictor(level_weight=0.25).fit(X, y)

        assert model.profile == {0: 15.0, 1: 40.0}
        new = pd.DataFrame({"target_hour": [1, 7], "current_value": [100.0, 100.0]})
        preds = model.predict(new)
        assert preds[0] == pytest.approx(0.25 * 100 + 0.75 * 40)
        # Unseen hour falls back to the training mean (27.5)
        assert preds[1] == pytest.approx(0.25 * 100 + 0.75 * 27.5)

    def test_invalid_weight(self):
        from pricecast.models.seasonal import SeasonalProfilePredictor

        with pytest.raises(ValueError):
            SeasonalProfilePredictor(level_weight=1.5)

    def test_predict_before_fit(self):
        from pricecast.models.seasonal import SeasonalProfilePredictor

        X, _ = design_frame(5)
        with pytest.raises(RuntimeError):
            SeasonalProfilePredictor().predict(X)


class TestRidgePredictor:
    def test_fit_predict(self):
        from pricecast.models.ridge import RidgePredictor

        X, y = design_frame()
        model = RidgePredictor(alpha=1.0).fit(X, y)
        metrics = model.evaluate(X, y)
        assert model.is_fitted
        assert metrics.r_squared > 0.8
        assert set(model.coefficients()) == set(X.columns)

    def test_save_load(self, tmp_path):
        from pricecast.models.ridge import RidgePredictor

        X, y = design_frame()
        model = RidgePredictor().fit(X, y)
        model.save_model(tmp_path / "ridge")

        loaded = RidgePredictor()
        loaded.load_model(tmp_path / "ridge")
        np.testing.assert_allclose(loaded.predict(X), model.predict(X))


class TestXGBoostPredictor:
    def test_fit_predict_and_importance(self):
        from pricecast.models.xgboost_model import XGBoostPredictor

        X, y = design_frame()
        model = XGBoostPredictor(n_estimators=30, max_depth=3).fit(X, y)
        preds = model.predict(X)

        assert preds.shape == (len(X),)
        assert np.isfinite(preds).all()
        importance = model.get_feature_importance(top_n=2)
        assert len(importance) == 2

    def test_save_load(self, tmp_path):
        from pricecast.models.xgboost_model import XGBoostPredictor

        X, y = design_frame()
        model = XGBoostPredictor(n_estimators=10, max_depth=2).fit(X, y)
        model.save_model(tmp_path / "xgb")

        loaded = XGBoostPredictor()
        loaded.load_model(tmp_path / "xgb")
        np.testing.assert_allclose(loaded.predict(X), model.predict(X), rtol=1e-5)


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class TestModelRegistry:
    def test_empty_registry_raises(self):
        from pricecast.errors import ModelNotFoundError
        from pricecast.models.registry import ModelRegistry

        registry = ModelRegistry()
        with pytest.raises(ModelNotFoundError):
            registry.latest()
        with pytest.raises(ModelNotFoundError) as exc_info:
            registry.get("missing")
        assert exc_info.value.version == "missing"

    def test_versions_are_immutable(self):
        from pricecast.models.registry import ModelRegistry

        registry = ModelRegistry()
        registry.register(make_version("v1"))
        with pytest.raises(ValueError):
            registry.register(make_version("v1", trained_at=T0 + timedelta(days=1)))
        assert registry.get("v1").trained_at == T0

    def test_latest_resolved_at_call_time(self):
        from pricecast.models.registry import ModelRegistry

        registry = ModelRegistry()
        registry.register(make_version("v1", T0))
        assert registry.latest().version == "v1"

        registry.register(make_version("v2", T0 + timedelta(hours=1)))
        assert registry.latest().version == "v2"
        assert registry.versions() == ["v1", "v2"]
        assert len(registry) == 2

    def test_persistence_round_trip(self, tmp_path):
        from pricecast.models.registry import ModelRegistry
        from pricecast.models.seasonal import SeasonalProfilePredictor

        X, y = design_frame(48)
        seasonal = SeasonalProfilePredictor().fit(X, y)
        registry = ModelRegistry(tmp_path)
        registry.register(make_version("v1", constituents={"seasonal": seasonal}))

        reloaded = ModelRegistry(tmp_path)
        assert reloaded.load() == 1
        model = reloaded.latest()
        assert model.version == "v1"
        assert model.performance.rmse == 1.5
        np.testing.assert_allclose(
            model.constituents["seasonal"].predict(X), seasonal.predict(X)
        )
        assert reloaded.load() == 0


# ---------------------------------------------------------------------------
# Ensemble
# ---------------------------------------------------------------------------


class TestEnsembleCombiner:
    def test_z_multiplier(self):
        from pricecast.models.ensemble import z_multiplier

        assert z_multiplier(0.95) == pytest.approx(1.96, abs=1e-3)
        with pytest.raises(ValueError):
            z_multiplier(1.0)

    def test_uniform_combination(self):
        from pricecast.models.ensemble import EnsembleCombiner, uniform_weights

        combiner = EnsembleCombiner()
        outputs = {"xgboost": 40.0, "ridge": 50.0, "seasonal": 60.0}
        result = combiner.combine(outputs, uniform_weights(list(outputs)))

        expected_std = np.std([40.0, 50.0, 60.0])
        assert result.predicted_value == pytest.approx(50.0)
        assert result.prediction_std == pytest.approx(expected_std)
        assert result.confidence_lower == pytest.approx(50.0 - combiner.z * expected_std)
        assert result.confidence_upper == pytest.approx(50.0 + combiner.z * expected_std)
        assert sum(result.weights.values()) == pytest.approx(1.0)

    def test_bounds_contain_point(self):
        from pricecast.models.ensemble import EnsembleCombiner

        rng = np.random.default_rng(11)
        combiner = EnsembleCombiner()
        for _ in range(50):
            outputs = {n: float(v) for n, v in zip("abc", rng.normal(50, 10, 3))}
            weights = {n: float(w) for n, w in zip("abc", rng.uniform(0.1, 1, 3))}
            r = combiner.combine(outputs, weights)
            assert r.confidence_lower <= r.predicted_value <= r.confidence_upper
            assert r.prediction_std >= 0

    def test_empirical_coverage_near_95_percent(self):
        from pricecast.inference import Prediction
        from pricecast.models.ensemble import EnsembleCombiner
        from pricecast.validation import aggregate, validate_prediction

        rng = np.random.default_rng(2024)
        combiner = EnsembleCombiner()
        results = []
        for i in range(4000):
            mu = rng.uniform(20, 120)
            sigma = rng.uniform(1, 20)
            # Two equally weighted members at mu ± sigma disperse by exactly sigma
            combined = combiner.combine({"a": mu - sigma, "b": mu + sigma}, {"a": 0.5, "b": 0.5})
            prediction = Prediction(
                id=str(i),
                issued_at=T0,
                target_timestamp=T0,
                horizon_hours=1,
                predicted_value=combined.predicted_value,
                confidence_lower=combined.confidence_lower,
                confidence_upper=combined.confidence_upper,
                prediction_std=combined.prediction_std,
                model_version="v1",
                confidence=combined.confidence,
            )
            results.append(validate_prediction(prediction, float(rng.normal(mu, sigma)), T0))

        coverage = aggregate(results)["within_confidence_interval"]
        assert 0.93 <= coverage <= 0.97

    def test_confidence_labels(self):
        from pricecast.config import EnsembleConfig
        from pricecast.models.ensemble import ConfidenceLevel, EnsembleCombiner

        combiner = EnsembleCombiner(
            cfg=EnsembleConfig(high_confidence_max_std=5.0, medium_confidence_max_std=15.0)
        )
        assert combiner.classify(0.0) == ConfidenceLevel.HIGH
        assert combiner.classify(5.0) == ConfidenceLevel.HIGH
        assert combiner.classify(10.0) == ConfidenceLevel.MEDIUM
        assert combiner.classify(15.1) == ConfidenceLevel.LOW

    def test_empty_outputs(self):
        from pricecast.models.ensemble import EnsembleCombiner

        with pytest.raises(ValueError):
            EnsembleCombiner().combine({}, {})

    def test_weights_uniform_until_enough_samples(self):
        from pricecast.models.ensemble import EnsembleCombiner

        combiner = EnsembleCombiner()
        names = ["xgboost", "ridge"]
        for _ in range(30):
            combiner.tracker.record("v1", "xgboost", 1.0)
        for _ in range(10):
            combiner.tracker.record("v1", "ridge", 2.0)

        weights, source = combiner.weights_for("v1", names)
        assert source == "uniform"
        assert weights == {"xgboost": 0.5, "ridge": 0.5}

    def test_validated_inverse_error_weights(self):
        from pricecast.models.ensemble import EnsembleCombiner

        combiner = EnsembleCombiner()
        for _ in range(24):
            combiner.tracker.record("v1", "xgboost", 1.0)
            combiner.tracker.record("v1", "ridge", -3.0)

        weights, source = combiner.weights_for("v1", ["xgboost", "ridge"])
        assert source == "validated"
        assert weights["xgboost"] == pytest.approx(0.75)
        assert weights["ridge"] == pytest.approx(0.25)
        # Other versions are unaffected
        assert combiner.weights_for("v2", ["xgboost", "ridge"])[1] == "uniform"

    def test_tracker_ignores_non_finite(self):
        from pricecast.models.ensemble import ConstituentPerformanceTracker

        tracker = ConstituentPerformanceTracker(window=3)
        tracker.record("v1", "ridge", float("nan"))
        assert tracker.sample_count("v1", "ridge") == 0
        for err in (1.0, 2.0, 3.0, 4.0):
            tracker.record("v1", "ridge", err)
        assert tracker.sample_count("v1", "ridge") == 3
        assert tracker.rmse("v1", "ridge") == pytest.approx(np.sqrt((4 + 9 + 16) / 3))


# ---------------------------------------------------------------------------
# Monitor
# ---------------------------------------------------------------------------


class TestModelMonitor:
    def test_good_model_does_not_retrain(self):
        from pricecast.utils.metrics import ModelMonitor

        monitor = ModelMonitor()
        y = np.linspace(40, 60, 48)
        report = monitor.evaluate_model("v1", y, y + 0.5, y - 2, y + 2)
        assert report.calibration_score == 1.0
        assert report.alerts == []
        assert not monitor.should_retrain("v1")

    def test_high_mape_triggers_retrain(self):
        from pricecast.utils.metrics import ModelMonitor

        monitor = ModelMonitor()
        y = np.full(30, 50.0)
        monitor.evaluate_model("v1", y, y * 2)
        assert monitor.should_retrain("v1")
        assert not monitor.should_retrain("v2")

    def test_low_coverage_triggers_retrain(self):
        from pricecast.utils.metrics import ModelMonitor

        monitor = ModelMonitor()
        y = np.linspace(40, 60, 30)
        lower = y + 1
        lower[:10] = y[:10] - 1
        monitor.evaluate_model("v1", y, y, lower, lower + 2)
        assert monitor.latest().calibration_score == pytest.approx(1 / 3)
        assert monitor.should_retrain("v1")

    def test_zero_coverage_triggers_retrain(self):
        from pricecast.utils.metrics import ModelMonitor

        monitor = ModelMonitor()
        y = np.linspace(40, 60, 48)
        pred = y + 5.0
        report = monitor.evaluate_model("v1", y, pred, pred - 0.1, pred + 0.1)
        assert report.calibration_score == 0.0
        assert any(a.startswith("Coverage=0.0%") for a in report.alerts)
        assert monitor.should_retrain("v1")

    def test_no_intervals_means_no_coverage_check(self):
        from pricecast.utils.metrics import ModelMonitor

        monitor = ModelMonitor()
        y = np.linspace(40, 60, 48)
        report = monitor.evaluate_model("v1", y, y + 0.5)
        assert report.calibration_score is None
        assert report.to_dict()["calibration_score"] is None
        assert not monitor.should_retrain("v1")
