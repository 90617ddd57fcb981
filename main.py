"""Focus-UserCount Entry Point.

This module is the bootstrap and wiring layer.
It contains NO business logic - all functional code resides in /usercount.

Responsibilities:
    1. Load and validate configuration
    2. Initialize logging infrastructure (fail-fast on error)
    3. Wire cache, aggregator, extractors and scheduler
    4. Serve the read endpoint until shutdown

Usage:
    python main.py
"""

import sys
from typing import NoReturn

import uvicorn
from fastapi import FastAPI
from loguru import logger

from config.settings import GlobalConfig, get_config
from usercount.exceptions import LoggingInitializationError, UserCountError
from usercount.logger import configure_logging


def build_app(config: GlobalConfig) -> FastAPI:
    """Wire the aggregator core behind the read endpoint.

    Args:
        config: The validated GlobalConfig instance.

    Returns:
        FastAPI app whose lifespan drives the scheduler.
    """
    from usercount.aggregator import Aggregator
    from usercount.api import create_app
    from usercount.cache import SnapshotCache
    from usercount.scheduler import Scheduler
    from usercount.scraper import build_extractors

    cache = SnapshotCache()
    aggregator = Aggregator(cache, config)
    extractors = build_extractors(config)
    scheduler = Scheduler(aggregator, extractors, period_sec=config.refresh_interval_sec)

    logger.info(
        "Service wired",
        app_name=config.app_name,
        environment=config.environment,
        sources=[e.source_id.value for e in extractors],
        refresh_interval_sec=config.refresh_interval_sec,
    )
    return create_app(cache, config, scheduler)


def _handle_fatal_error(exc: Exception) -> NoReturn:
    """Handle fatal errors with structured logging and exit.

    Args:
        exc: The exception that caused the fatal error.
    """
    if isinstance(exc, UserCountError):
        logger.critical(
            "Fatal application error",
            error_type=type(exc).__name__,
            message=exc.message,
            context=exc.context,
        )
        sys.exit(1)

    logger.exception("Unexpected fatal error", error=str(exc))
    sys.exit(1)


def main() -> int:
    """Application entry point.

    Returns:
        Exit code (0 for success, non-zero for failure).
    """
    try:
        config = get_config()
    except Exception as exc:
        # Cannot log yet - print to stderr
        print(f"FATAL: Configuration loading failed: {exc}", file=sys.stderr)
        return 1

    try:
        configure_logging(config)
    except LoggingInitializationError as exc:
        print(f"FATAL: {exc}", file=sys.stderr)
        return 1

    try:
        app = build_app(config)
        uvicorn.run(app, host=config.api_host, port=config.api_port, log_config=None)
        return 0
    except KeyboardInterrupt:
        logger.warning("Service interrupted by user (Ctrl+C)")
        return 130
    except Exception as exc:
        _handle_fatal_error(exc)


if __name__ == "__main__":
    sys.exit(main())
