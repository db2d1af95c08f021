"""
Forecasting service.

Wires the stores and components together, implements the workflow
stages, and exposes the external interfaces: workflow invocation,
prediction requests, validation triggers and the health surface.

Usage:
    service = ForecastingService(market_source=CsvMarketSource("pool_price.csv"))
    service.run_workflow("full_update")
    service.predict(hours_ahead=24)
"""

import logging
from datetime import timedelta

from pricecast.config import PipelineConfig, config
from pricecast.data.quality import DataQualityChecker
from pricecast.data.sources import DataSource, EnrichmentSource
from pricecast.data.store import TimeSeriesStore
from pricecast.errors import DataSourceError, ModelNotFoundError
from pricecast.features.pipeline import FeatureEngine
from pricecast.features.store import FeatureStore
from pricecast.health import HealthChecker
from pricecast.inference import EnsemblePredictor, PredictionStore
from pricecast.models.ensemble import ConstituentPerformanceTracker, EnsembleCombiner
from pricecast.models.registry import ModelRegistry
from pricecast.orchestrator import PipelineOrchestrator, WorkflowContext, build_workflows
from pricecast.schemas import (
    HealthResponse,
    PredictionResponse,
    ValidationResponse,
    WorkflowResponse,
)
from pricecast.training import ModelTrainer
from pricecast.utils.metrics import ModelMonitor
from pricecast.validation import PredictionValidator, ValidationStore

logger = logging.getLogger(__name__)


class ForecastingService:
    """Facade over the forecasting pipeline."""

    def __init__(
        self,
        market_source: DataSource | None = None,
        weather_source: EnrichmentSource | None = None,
        gas_source: EnrichmentSource | None = None,
        cfg: PipelineConfig | None = None,
        store: TimeSeriesStore | None = None,
    ) -> None:
        self._cfg = cfg or config
        self.market_source = market_source
        self.weather_source = weather_source
        self.gas_source = gas_source

        self.store = store or TimeSeriesStore()
        self.feature_store = FeatureStore()
        self.registry = ModelRegistry(self._cfg.models_dir)
        self.registry.load()
        self.predictions = PredictionStore()
        self.results = ValidationStore()
        self.tracker = ConstituentPerformanceTracker(self._cfg.ensemble.performance_window)
        self.monitor = ModelMonitor(self._cfg.monitor)
        self.quality = DataQualityChecker()

        self.engine = FeatureEngine(self.store, self.feature_store, self._cfg.features)
        self.trainer = ModelTrainer(
            self.store, self.feature_store, self.registry, self._cfg.model
        )
        self.predictor = EnsemblePredictor(
            self.store,
            self.feature_store,
            self.engine,
            self.registry,
            EnsembleCombiner(self.tracker, self._cfg.ensemble),
            self.predictions,
            self._cfg,
        )
        self.validator = PredictionValidator(
            self.store,
            self.predictions,
            self.results,
            self.tracker,
            self.monitor,
            self._cfg.validation,
        )
        self.health_checker = HealthChecker(
            self.store,
            self.registry,
            self.predictions,
            self.results,
            self.quality,
            self._cfg.monitor,
        )
        self.orchestrator = PipelineOrchestrator(build_workflows(self))

    # ------------------------------------------------------------------
    # External interfaces
    # ------------------------------------------------------------------

    def run_workflow(self, workflow: str) -> WorkflowResponse:
        run = self.orchestrator.run_workflow(workflow)
        return WorkflowResponse(**run.to_response())

    def predict(self, hours_ahead: int | None = None) -> PredictionResponse:
        """Forecast 1..hours_ahead hours (default_hours_ahead when omitted).

        Raises:
            InvalidHorizonError: if hours_ahead is outside 1..max_hours_ahead.
        """
        if hours_ahead is None:
            hours_ahead = self._cfg.default_hours_ahead
        batch = self.predictor.predict(hours_ahead)
        return PredictionResponse(**batch.to_dict())

    def validate(self) -> ValidationResponse:
        return ValidationResponse(**self.validator.validate().to_dict())

    def health(self) -> HealthResponse:
        return HealthResponse(**self.health_checker.check().to_dict())

    # ------------------------------------------------------------------
    # Workflow stages
    # ------------------------------------------------------------------

    def fetch_market_data(self, ctx: WorkflowContext) -> dict:
        if self.market_source is None:
            raise DataSourceError("market", "no market source configured")
        latest = self.store.latest()
        since = latest.timestamp if latest is not None else None
        rows = self.market_source.fetch(since)
        added = ctx.buffer.add_rows(rows, self.market_source.name)
        return {
            "fetched": len(rows),
            "buffered": added,
            "malformed": ctx.buffer.skipped,
            "since": since.isoformat() if since is not None else None,
        }

    def enrich_weather(self, ctx: WorkflowContext) -> dict:
        return self._enrich(ctx, self.weather_source, "weather")

    def enrich_gas(self, ctx: WorkflowContext) -> dict:
        return self._enrich(ctx, self.gas_source, "gas")

    def store_records(self, ctx: WorkflowContext) -> dict:
        records = ctx.buffer.drain()
        return self.store.upsert_many(records).to_dict()

    def compute_features(self, ctx: WorkflowContext) -> dict:
        return self.engine.run().to_dict()

    def train_model(self, ctx: WorkflowContext) -> dict:
        model = self.trainer.train()
        return {
            **model.info(),
            "constituents": model.constituent_names,
            "training_rows": model.training_rows,
            "holdout_rows": model.holdout_rows,
        }

    def generate_predictions(self, ctx: WorkflowContext) -> dict:
        batch = self.predictor.predict(self._cfg.default_hours_ahead)
        return {
            "count": len(batch.predictions),
            "model_version": batch.model.version,
            "weights_source": batch.weights_source,
            "first_target": batch.predictions[0].target_timestamp.isoformat(),
            "last_target": batch.predictions[-1].target_timestamp.isoformat(),
        }

    def validate_predictions(self, ctx: WorkflowContext) -> dict:
        return self.validator.validate().to_dict()

    def check_data_quality(self, ctx: WorkflowContext) -> dict:
        latest = self.store.latest()
        if latest is None:
            return self.quality.check([]).to_dict()
        start = latest.timestamp - timedelta(hours=self._cfg.monitor.quality_lookback_hours)
        report = self.quality.check(self.store.since(start))
        passed = report.score >= self._cfg.monitor.min_data_quality
        if not passed:
            logger.warning(
                "Data quality score %.3f below %.3f.",
                report.score, self._cfg.monitor.min_data_quality,
            )
        return {**report.to_dict(), "passed": passed}

    def retrain_if_degraded(self, ctx: WorkflowContext) -> dict:
        try:
            current = self.registry.latest()
        except ModelNotFoundError:
            logger.info("No model registered yet; training one.")
            return {"retrained": True, "reason": "no_model", **self.train_model(ctx)}

        if not self.monitor.should_retrain(current.version):
            return {"retrained": False, "model_version": current.version}

        logger.warning("Model %s degraded; retraining.", current.version)
        return {"retrained": True, "reason": "degraded", **self.train_model(ctx)}

    def _enrich(
        self, ctx: WorkflowContext, source: EnrichmentSource | None, label: str
    ) -> dict:
        if source is None:
            logger.info("No %s source configured; skipping enrichment.", label)
            return {"enriched": 0, "configured": False}
        hours = ctx.buffer.hours()
        values = source.fetch(hours)
        enriched = ctx.buffer.enrich(values)
        logger.info("Enriched %d/%d buffered records with %s data.", enriched, len(hours), label)
        return {"enriched": enriched, "requested": len(hours), "configured": True}

