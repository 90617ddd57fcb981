"""Structured logging configuration using loguru.

Two sinks are installed at startup:
- a colourised, human-readable stderr sink for operators tailing the service
- a JSON-lines file sink with rotation, retention and gzip compression

Per-source extraction failures and watchdog alerts are emitted with their
context as keyword arguments, which end up under ``context`` in the JSON
records.
"""

import json
import sys
from datetime import UTC
from pathlib import Path
from typing import Any

from loguru import logger

from config.settings import GlobalConfig, get_config
from usercount.exceptions import LoggingInitializationError

_LINE_KEY = "json_line"

_CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{line}</cyan> | "
    "<level>{message}</level>"
)


def _to_json_line(record: dict[str, Any]) -> str:
    """Render a loguru record as one JSON line.

    The record's own time is used (converted to UTC) so that the file and
    console sinks agree on when an event happened.
    """
    payload: dict[str, Any] = {
        "timestamp": record["time"].astimezone(UTC).isoformat(),
        "level": record["level"].name,
        "message": record["message"],
        "module": record["name"],
        "function": record["function"],
        "line": record["line"],
    }

    if record["exception"] is not None:
        exc_type, exc_value, _ = record["exception"]
        payload["exception"] = {
            "type": exc_type.__name__ if exc_type else None,
            "value": str(exc_value) if exc_value else None,
        }

    context = {key: value for key, value in record["extra"].items() if key != _LINE_KEY}
    if context:
        payload["context"] = context

    return json.dumps(payload, default=str) + "\n"


def _ensure_writable(log_dir: Path) -> None:
    """Create ``log_dir`` if needed and prove a file can be written into it.

    Raises:
        LoggingInitializationError: If the directory cannot be created or written.
    """
    marker = log_dir / ".usercount_write_check"
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
        marker.touch()
        marker.unlink()
    except OSError as exc:
        raise LoggingInitializationError(
            log_dir=str(log_dir),
            reason=f"{type(exc).__name__}: {exc}",
        ) from exc


def _render_json(record: dict[str, Any]) -> bool:
    record["extra"][_LINE_KEY] = _to_json_line(record)
    return True


def _json_format(record: dict[str, Any]) -> str:
    # Callable format, so loguru does not append the raw traceback to the line.
    return "{extra[" + _LINE_KEY + "]}"


def configure_logging(config: GlobalConfig | None = None) -> None:
    """Install the console and JSON file sinks.

    Must run once during bootstrap, before the scheduler starts. Any sinks
    installed earlier (including loguru's default one) are removed.

    Raises:
        LoggingInitializationError: If the log directory is not writable.
    """
    config = config or get_config()

    _ensure_writable(config.log_dir)
    logger.remove()

    logger.add(
        sys.stderr,
        format=_CONSOLE_FORMAT,
        level=config.log_level,
        colorize=True,
        backtrace=config.debug,
        diagnose=config.debug,
    )
    logger.add(
        str(config.log_dir / "usercount_{time:YYYY-MM-DD}.json"),
        format=_json_format,
        filter=_render_json,
        level=config.log_level,
        rotation=config.log_rotation,
        retention=config.log_retention,
        compression="gz",
    )

    logger.info(
        "Logging configured",
        environment=config.environment,
        log_level=config.log_level,
        log_dir=str(config.log_dir),
    )


def get_logger(name: str) -> "logger":
    """Return the shared logger bound to ``name`` for attribution."""
    return logger.bind(module=name)
