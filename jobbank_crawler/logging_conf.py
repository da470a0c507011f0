"""Logging configuration built around structlog JSON logging."""

from __future__ import annotations

import logging
import logging.config
from pathlib import Path
from typing import Iterable

import structlog

from .config.loader import resolve_home

ROOT_LOGGER = "jobbank_crawler"

_LOGGING_INITIALISED = False


def default_log_dir() -> Path:
    return resolve_home() / "logs"


def configure_logging(verbose: bool = False) -> structlog.BoundLogger:
    """Configure structlog + stdlib handlers and return application logger."""

    global _LOGGING_INITIALISED
    log_dir = default_log_dir()
    error_log = log_dir / "error.log"
    crawler_log = log_dir / "crawler.log"
    runs_dir = log_dir / "runs"
    runs_dir.mkdir(parents=True, exist_ok=True)
    error_log.touch(exist_ok=True)
    crawler_log.touch(exist_ok=True)

    if not _LOGGING_INITIALISED:
        level = "DEBUG" if verbose else "INFO"
        logging.config.dictConfig(
            {
                "version": 1,
                "disable_existing_loggers": False,
                "formatters": {
                    "plain": {
                        "()": "pythonjsonlogger.jsonlogger.JsonFormatter",
                        "fmt": "%(asctime)s %(levelname)s %(name)s %(message)s",
                    }
                },
                "handlers": {
                    "console": {
                        "class": "logging.StreamHandler",
                        "level": level,
                        "formatter": "plain",
                    },
                    "crawler_file": {
                        "class": "logging.FileHandler",
                        "level": "INFO",
                        "filename": str(crawler_log),
                        "formatter": "plain",
                    },
                    "error_file": {
                        "class": "logging.FileHandler",
                        "level": "ERROR",
                        "filename": str(error_log),
                        "formatter": "plain",
                    },
                },
                "loggers": {
                    ROOT_LOGGER: {
                        "handlers": ["console", "crawler_file", "error_file"],
                        "level": level,
                        "propagate": False,
                    },
                },
            }
        )

        structlog.configure(
            processors=[
                structlog.contextvars.merge_contextvars,
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.stdlib.add_log_level,
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
                # JSON rendering happens in the stdlib handler formatter
                structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
            ],
            logger_factory=structlog.stdlib.LoggerFactory(),
            cache_logger_on_first_use=True,
        )
        _LOGGING_INITIALISED = True
    return structlog.get_logger(ROOT_LOGGER)


def run_log_path(run_id: str) -> Path:
    return default_log_dir() / "runs" / f"{run_id}.log"


def run_logger(run_id: str, verbose: bool = False) -> structlog.BoundLogger:
    """Return a logger bound to one scraping run, mirrored into its own file."""

    configure_logging(verbose)
    path = run_log_path(run_id)
    path.parent.mkdir(parents=True, exist_ok=True)

    logger_name = f"{ROOT_LOGGER}.run.{run_id}"
    py_logger = logging.getLogger(logger_name)
    if not any(
        isinstance(handler, logging.FileHandler) and handler.baseFilename == str(path)
        for handler in py_logger.handlers
    ):
        file_handler = logging.FileHandler(path, encoding="utf-8")
        root_logger = logging.getLogger(ROOT_LOGGER)
        if root_logger.handlers:
            file_handler.setFormatter(root_logger.handlers[0].formatter)
        file_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
        py_logger.addHandler(file_handler)

    return structlog.get_logger(logger_name).bind(run_id=run_id)


def release_run_logger(run_id: str) -> None:
    """Close the per-run file handler once the run has finished."""

    py_logger = logging.getLogger(f"{ROOT_LOGGER}.run.{run_id}")
    for handler in list(py_logger.handlers):
        py_logger.removeHandler(handler)
        handler.close()


def tail_log(path: Path, line_count: int = 100) -> list[str]:
    """Return the last N lines from a log file."""

    if not path.exists():
        return []
    with path.open("r", encoding="utf-8", errors="ignore") as stream:
        lines = stream.readlines()
    return lines[-line_count:]


def available_run_logs() -> Iterable[Path]:
    """Yield available per-run log file paths."""

    runs_dir = default_log_dir() / "runs"
    if not runs_dir.exists():
        return []
    return sorted(runs_dir.glob("*.log"))


__all__ = [
    "ROOT_LOGGER",
    "available_run_logs",
    "configure_logging",
    "default_log_dir",
    "release_run_logger",
    "run_log_path",
    "run_logger",
    "tail_log",
]
