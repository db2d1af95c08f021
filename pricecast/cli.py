"""
CLI entry point for the forecasting pipeline.

Stores are in memory, so every command first ingests the given CSV
exports.

Usage:
    # Run one or more workflows in order
    python -m pricecast run full_update --csv pool_price.csv

    # Ingest, train and forecast the next 24 hours
    python -m pricecast predict --hours 24 --csv pool_price.csv

    # Print the health report
    python -m pricecast health --csv pool_price.csv

    # Start the scheduler (or run one workflow through it and exit)
    python -m pricecast scheduler --csv pool_price.csv --run validation
"""

import argparse
import json
import logging
import sys
import time

from pricecast.errors import PipelineError
from pricecast.settings import settings
from pricecast.shared.logging import configure_logging

logger = logging.getLogger(__name__)

WORKFLOWS = (
    "data_collection",
    "feature_engineering",
    "model_training",
    "prediction",
    "validation",
    "full_update",
    "daily_maintenance",
)

WEATHER_FIELDS = ("temperature_calgary", "temperature_edmonton", "wind_speed")
GAS_FIELDS = ("natural_gas_price",)


def build_service(args: argparse.Namespace):
    """Create a ForecastingService wired to the CSV sources in args."""
    from pricecast.data.sources import CsvEnrichmentSource, CsvMarketSource
    from pricecast.service import ForecastingService

    weather = (
        CsvEnrichmentSource(args.weather_csv, WEATHER_FIELDS, name="weather")
        if args.weather_csv
        else None
    )
    gas = (
        CsvEnrichmentSource(args.gas_csv, GAS_FIELDS, name="gas")
        if args.gas_csv
        else None
    )
    return ForecastingService(
        market_source=CsvMarketSource(args.csv),
        weather_source=weather,
        gas_source=gas,
    )


def _print(payload: dict) -> None:
    print(json.dumps(payload, indent=2, default=str))


def _prepare(service, workflows: tuple[str, ...]) -> bool:
    for name in workflows:
        response = service.run_workflow(name)
        if not response.success:
            logger.error("Workflow %s failed: %s", name, response.error)
            _print(response.model_dump(mode="json"))
            return False
    return True


def cmd_run(args: argparse.Namespace) -> int:
    """Run workflows in order, stopping at the first failed one."""
    service = build_service(args)
    for name in args.workflows:
        response = service.run_workflow(name)
        _print(response.model_dump(mode="json"))
        if not response.success:
            return 1
    return 0


def cmd_predict(args: argparse.Namespace) -> int:
    """Ingest, train and print a forecast."""
    service = build_service(args)
    if not _prepare(service, ("data_collection", "model_training")):
        return 1
    try:
        response = service.predict(args.hours)
    except PipelineError as exc:
        logger.error("Prediction failed: %s", exc.message)
        return 1
    _print(response.model_dump(mode="json"))
    return 0


def cmd_health(args: argparse.Namespace) -> int:
    """Ingest and print the health report."""
    service = build_service(args)
    _prepare(service, ("data_collection", "feature_engineering"))
    _print(service.health().model_dump(mode="json"))
    return 0


def cmd_scheduler(args: argparse.Namespace) -> int:
    """Start the scheduler (runs in foreground)."""
    from pricecast.realtime.scheduler import PipelineScheduler, TaskStatus

    service = build_service(args)
    scheduler = PipelineScheduler(service)

    if args.run:
        result = scheduler.run_now(args.run)
        logger.info(
            "Workflow '%s' %s (%.1fs)",
            result.task_name, result.status.value, result.duration_seconds,
        )
        if result.error:
            logger.error("Error: %s", result.error)
        return 1 if result.status == TaskStatus.FAILED else 0

    scheduler.start()
    logger.info("Scheduler running. Press Ctrl+C to stop.")
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        logger.info("Shutting down scheduler...")
    finally:
        scheduler.stop()
    return 0


def _add_source_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--csv", required=True, help="Market data CSV (timestamp, pool_price, ...)")
    parser.add_argument("--weather-csv", default=None, dest="weather_csv", help="Weather CSV")
    parser.add_argument("--gas-csv", default=None, dest="gas_csv", help="Gas price CSV")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pricecast", description="Energy price forecasting pipeline CLI"
    )
    parser.add_argument("--log-level", default=settings.log_level, dest="log_level")
    subparsers = parser.add_subparsers(dest="command", required=True)

    # Run
    run_parser = subparsers.add_parser("run", help="Run one or more workflows")
    run_parser.add_argument("workflows", nargs="+", choices=WORKFLOWS)
    _add_source_args(run_parser)
    run_parser.set_defaults(func=cmd_run)

    # Predict
    predict_parser = subparsers.add_parser("predict", help="Forecast the next N hours")
    predict_parser.add_argument(
        "--hours", type=int, default=settings.default_hours_ahead,
        help=f"Horizon in hours (1-{settings.max_hours_ahead})",
    )
    _add_source_args(predict_parser)
    predict_parser.set_defaults(func=cmd_predict)

    # Health
    health_parser = subparsers.add_parser("health", help="Print the health report")
    _add_source_args(health_parser)
    health_parser.set_defaults(func=cmd_health)

    # Scheduler
    sched_parser = subparsers.add_parser("scheduler", help="Start the workflow scheduler")
    sched_parser.add_argument(
        "--run", type=str, default=None, choices=WORKFLOWS,
        help="Run a single workflow and exit",
    )
    _add_source_args(sched_parser)
    sched_parser.set_defaults(func=cmd_scheduler)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.log_level)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
