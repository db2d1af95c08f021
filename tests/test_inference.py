"""
Tests for multi-horizon ensemble inference.

Covers horizons and target timestamps, the recursive rollout, weight
resolution, and the error conditions (no model, bad horizon,
unavailable features).
"""

from datetime import timedelta

import pytest


class TestEnsemblePredictor:
    def test_one_prediction_per_horizon(self, trained_service):
        latest = trained_service.store.latest()
        batch = trained_service.predictor.predict(6)

        assert [p.horizon_hours for p in batch.predictions] == [1, 2, 3, 4, 5, 6]
        assert [p.target_timestamp for p in batch.predictions] == [
            latest.timestamp + timedelta(hours=h) for h in range(1, 7)
        ]
        assert len({p.id for p in batch.predictions}) == 6
        assert len(trained_service.predictions) == 6

    def test_prediction_fields(self, trained_service):
        batch = trained_service.predictor.predict(3)
        model = trained_service.registry.latest()

        for p in batch.predictions:
            assert p.model_version == model.version
            assert p.confidence_lower <= p.predicted_value <= p.confidence_upper
            assert p.prediction_std >= 0
            assert p.confidence in ("high", "medium", "low")
            assert set(p.constituent_outputs) == {"xgboost", "ridge", "seasonal"}
            assert 20 < p.predicted_value < 100

    def test_rollout_does_not_touch_store(self, trained_service):
        before = len(trained_service.store)
        trained_service.predictor.predict(12)
        assert len(trained_service.store) == before
        assert trained_service.store.latest().source == "market"

    def test_uniform_weights_without_validation(self, trained_service):
        batch = trained_service.predictor.predict(1)
        assert batch.weights_source == "uniform"
        assert batch.weights == pytest.approx({"xgboost": 1 / 3, "ridge": 1 / 3, "seasonal": 1 / 3})

    def test_validated_weights_used(self, trained_service):
        version = trained_service.registry.latest().version
        for _ in range(24):
            trained_service.tracker.record(version, "xgboost", 1.0)
            trained_service.tracker.record(version, "ridge", 2.0)
            trained_service.tracker.record(version, "seasonal", 4.0)

        batch = trained_service.predictor.predict(1)
        assert batch.weights_source == "validated"
        assert batch.weights["xgboost"] > batch.weights["ridge"] > batch.weights["seasonal"]
        assert sum(batch.weights.values()) == pytest.approx(1.0)

    def test_pinned_model_version(self, trained_service):
        first = trained_service.registry.latest().version
        trained_service.trainer.train()

        batch = trained_service.predictor.predict(2, model_version=first)
        assert all(p.model_version == first for p in batch.predictions)
        assert trained_service.predictor.predict(1).model.version != first

    @pytest.mark.parametrize("hours", [0, -1, 49])
    def test_invalid_horizon(self, trained_service, hours):
        from pricecast.errors import InvalidHorizonError

        with pytest.raises(InvalidHorizonError):
            trained_service.predictor.predict(hours)

    def test_no_model(self, service):
        from pricecast.errors import ModelNotFoundError

        service.run_workflow("data_collection")
        with pytest.raises(ModelNotFoundError):
            service.predictor.predict(1)

    def test_unknown_model_version(self, trained_service):
        from pricecast.errors import ModelNotFoundError

        with pytest.raises(ModelNotFoundError):
            trained_service.predictor.predict(1, model_version="ens-missing")

    def test_features_not_computed(self, trained_service):
        from pricecast.data.records import coerce_record
        from pricecast.errors import FeatureUnavailableError

        latest = trained_service.store.latest()
        trained_service.store.append(
            coerce_record(
                {
                    "timestamp": latest.timestamp + timedelta(hours=1),
                    "pool_price": 55.0,
                    "demand": 9400.0,
                    "generation_wind": 700.0,
                }
            )
        )
        with pytest.raises(FeatureUnavailableError):
            trained_service.predictor.predict(1)

    def test_null_exogenous_input(self, trained_service):
        from pricecast.data.records import coerce_record
        from pricecast.errors import FeatureUnavailableError

        latest = trained_service.store.latest()
        trained_service.store.append(
            coerce_record(
                {
                    "timestamp": latest.timestamp + timedelta(hours=1),
                    "pool_price": 55.0,
                    "demand": None,
                    "generation_wind": 700.0,
                }
            )
        )
        trained_service.engine.run()

        with pytest.raises(FeatureUnavailableError) as exc_info:
            trained_service.predictor.predict(1)
        assert "demand" in exc_info.value.missing

    def test_response_schema(self, trained_service):
        response = trained_service.predict(4)
        payload = response.model_dump(mode="json")

        assert len(payload["predictions"]) == 4
        assert payload["model_info"]["version"].startswith("ens-")
        assert payload["weights_source"] == "uniform"
        assert set(payload["weights_used"]) == {"xgboost", "ridge", "seasonal"}

    def test_service_rejects_zero_horizon(self, trained_service):
        from pricecast.errors import InvalidHorizonError

        with pytest.raises(InvalidHorizonError):
            trained_service.predict(0)

    def test_service_default_horizon(self, trained_service, pipeline_config):
        response = trained_service.predict()
        assert len(response.predictions) == pipeline_config.default_hours_ahead
