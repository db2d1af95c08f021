"""
System health surface.

Rolls model accuracy, data freshness, data quality and forecast
activity into a single status (healthy | warning | degraded | error)
plus a list of alerts, for dashboards to render.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from pricecast.config import MonitorConfig, config
from pricecast.data.quality import DataQualityChecker
from pricecast.data.records import utc_now
from pricecast.data.store import TimeSeriesStore
from pricecast.errors import ModelNotFoundError
from pricecast.inference import PredictionStore
from pricecast.models.registry import ModelRegistry
from pricecast.validation import ValidationStore, aggregate

logger = logging.getLogger(__name__)


class HealthStatus:
    HEALTHY = "healthy"
    WARNING = "warning"
    DEGRADED = "degraded"
    ERROR = "error"


class Severity:
    WARNING = "warning"
    CRITICAL = "critical"


@dataclass
class Alert:
    severity: str
    message: str
    metric: str

    def to_dict(self) -> dict:
        return {"severity": self.severity, "message": self.message, "metric": self.metric}


@dataclass
class HealthReport:
    status: str
    checked_at: datetime
    metrics: dict = field(default_factory=dict)
    alerts: list[Alert] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "status": self.status,
            "checked_at": self.checked_at.isoformat(),
            "metrics": self.metrics,
            "alerts": [a.to_dict() for a in self.alerts],
        }


class HealthChecker:
    """Computes the pipeline health report."""

    def __init__(
        self,
        store: TimeSeriesStore,
        registry: ModelRegistry,
        predictions: PredictionStore,
        results: ValidationStore,
        quality: DataQualityChecker | None = None,
        cfg: MonitorConfig | None = None,
    ) -> None:
        self._cfg = cfg or config.monitor
        self._store = store
        self._registry = registry
        self._predictions = predictions
        self._results = results
        self._quality = quality or DataQualityChecker()

    def check(self, now: datetime | None = None) -> HealthReport:
        now = now or utc_now()
        cfg = self._cfg
        alerts: list[Alert] = []
        metrics: dict = {"records_total": len(self._store)}

        latest = self._store.latest()
        if latest is None:
            alerts.append(Alert(Severity.CRITICAL, "No market data ingested", "records_total"))
            return HealthReport(HealthStatus.ERROR, now, metrics, alerts)

        # Freshness
        age_hours = (now - latest.timestamp) / timedelta(hours=1)
        metrics["latest_record_at"] = latest.timestamp.isoformat()
        metrics["data_age_hours"] = round(age_hours, 2)
        if age_hours > cfg.stale_data_hours:
            alerts.append(Alert(
                Severity.CRITICAL,
                f"Latest data is {age_hours:.1f}h old (limit {cfg.stale_data_hours:.0f}h)",
                "data_age_hours",
            ))

        # Data quality
        window_start = latest.timestamp - timedelta(hours=cfg.quality_lookback_hours)
        quality = self._quality.check(self._store.since(window_start))
        metrics["data_quality_score"] = quality.score
        if quality.score < cfg.min_data_quality:
            alerts.append(Alert(
                Severity.WARNING,
                f"Data quality score {quality.score:.2f} below {cfg.min_data_quality:.2f}",
                "data_quality_score",
            ))

        # Model
        try:
            model = self._registry.latest()
            metrics["model_version"] = model.version
            metrics["model_trained_at"] = model.trained_at.isoformat()
            metrics["model_r_squared"] = model.performance.r_squared
            metrics["model_holdout_mape"] = model.performance.mape
        except ModelNotFoundError:
            metrics["model_version"] = None
            alerts.append(Alert(Severity.CRITICAL, "No trained model available", "model_version"))

        # Forecast activity and live accuracy
        day_ago = now - timedelta(hours=24)
        metrics["predictions_24h"] = len(self._predictions.issued_since(day_ago))
        live = aggregate(self._results.since(day_ago))
        metrics["validations_24h"] = live["count"]
        metrics["mae"] = live["mae"]
        metrics["mape"] = live["mape"]
        metrics["smape"] = live["smape"]
        metrics["within_confidence_interval"] = live["within_confidence_interval"]

        if live["mape"] is not None:
            if live["mape"] > cfg.mape_critical:
                alerts.append(Alert(
                    Severity.CRITICAL,
                    f"MAPE {live['mape']:.1f}% above {cfg.mape_critical:.0f}%",
                    "mape",
                ))
            elif live["mape"] > cfg.mape_warning:
                alerts.append(Alert(
                    Severity.WARNING,
                    f"MAPE {live['mape']:.1f}% above {cfg.mape_warning:.0f}%",
                    "mape",
                ))
        coverage = live["within_confidence_interval"]
        if coverage is not None and coverage < cfg.coverage_warning:
            alerts.append(Alert(
                Severity.WARNING,
                f"Interval coverage {coverage:.0%} below {cfg.coverage_warning:.0%}",
                "within_confidence_interval",
            ))

        if any(a.severity == Severity.CRITICAL for a in alerts):
            status = HealthStatus.DEGRADED
        elif alerts:
            status = HealthStatus.WARNING
        else:
            status = HealthStatus.HEALTHY

        for alert in alerts:
            logger.warning("[Health] %s: %s", alert.severity, alert.message)
        return HealthReport(status, now, metrics, alerts)
