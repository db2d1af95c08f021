"""
Pricecast
=========

Hourly energy price forecasting pipeline.

Architecture
------------
- **Data**: append-only hourly record store, upstream feeds with weather/gas enrichment
- **Features**: lags, rolling statistics, momentum, interactions, calendar encodings
- **Models**: XGBoost · Ridge · Seasonal profile → validated-weight ensemble
- **Validation**: forecasts reconciled with actuals, coverage and error tracking
- **Orchestration**: named workflows with required / optional stages, scheduler

Quick start (CLI)
-----------------
    python -m pricecast run full_update --csv pool_price.csv
    python -m pricecast predict --hours 24 --csv pool_price.csv
    python -m pricecast health --csv pool_price.csv
    python -m pricecast scheduler --csv pool_price.csv

Public API
----------
    from pricecast import ForecastingService, PipelineOrchestrator
    from pricecast.realtime import PipelineScheduler
    from pricecast.config import config
"""

# ── Public façade ──────────────────────────────────────────────────
from pricecast.config import PipelineConfig, config
from pricecast.features.pipeline import FeatureEngine
from pricecast.inference import EnsemblePredictor, Prediction
from pricecast.orchestrator import PipelineOrchestrator, Stage, Workflow, WorkflowRun
from pricecast.service import ForecastingService
from pricecast.training import ModelTrainer
from pricecast.validation import PredictionValidator, ValidationResult

__all__ = [
    "PipelineConfig",
    "config",
    "FeatureEngine",
    "EnsemblePredictor",
    "Prediction",
    "PipelineOrchestrator",
    "Stage",
    "Workflow",
    "WorkflowRun",
    "ForecastingService",
    "ModelTrainer",
    "PredictionValidator",
    "ValidationResult",
]
