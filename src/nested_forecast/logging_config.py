"""
Logging setup for the CLI and pipeline runs.

Engines only create module loggers; handlers and levels are configured here,
once per process. ``dev`` writes readable lines, ``prod`` one JSON object per
line so run logs can be shipped as-is.
"""
from __future__ import annotations

import logging
import os
import sys
from typing import Literal

PACKAGE_LOGGER = "nested_forecast"

READABLE_FORMAT = "%(asctime)s | %(levelname)-8s | %(threadName)s | %(name)s | %(message)s"
JSON_FORMAT = (
    '{"timestamp": "%(asctime)s", "level": "%(levelname)s", "thread": "%(threadName)s", '
    '"logger": "%(name)s", "message": "%(message)s"}'
)

# Third-party loggers that flood INFO during per-group training
NOISY_LOGGERS = ("lightgbm", "mlforecast", "numba", "xgboost")


def setup_logging(
    level: str | None = None,
    environment: Literal["dev", "test", "prod"] = "dev",
) -> None:
    """
    Configure the root logger for a run.

    Args:
        level: DEBUG, INFO, WARNING or ERROR. Falls back to ``LOG_LEVEL`` and then INFO.
        environment: ``prod`` selects JSON lines, anything else the readable format.
    """
    name = (level or os.getenv("LOG_LEVEL") or "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, name, logging.INFO),
        format=JSON_FORMAT if environment == "prod" else READABLE_FORMAT,
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stdout,
        force=True,
    )
    for noisy in NOISY_LOGGERS:
        logging.getLogger(noisy).setLevel(logging.WARNING)


def enable_progress_logging() -> None:
    """Let per-group progress lines through even when the root level is higher."""
    package_logger = logging.getLogger(PACKAGE_LOGGER)
    if package_logger.getEffectiveLevel() > logging.INFO:
        package_logger.setLevel(logging.INFO)
