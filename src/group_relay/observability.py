"""Logging and optional Prometheus metrics for the relay service."""

from __future__ import annotations

import json
import logging
import logging.config
import os
from pathlib import Path

from fastapi import FastAPI

logger = logging.getLogger(__name__)

_TRUTHY = {"1", "true", "yes"}


def setup_logging() -> None:
    """Load a JSON ``dictConfig`` file, falling back to a plain INFO setup.

    The file is ``$LOGGING_CONFIG`` when set, otherwise
    ``observability/logging.json`` under the working directory.
    """

    config_path = Path(os.environ.get("LOGGING_CONFIG") or Path.cwd() / "observability" / "logging.json")
    if config_path.exists():
        try:
            with config_path.open("r", encoding="utf-8") as fh:
                logging.config.dictConfig(json.load(fh))
            return
        except (OSError, ValueError) as exc:
            logging.basicConfig(level=logging.INFO)
            logger.warning("Ignoring broken logging config %s: %s", config_path, exc)
            return
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s %(message)s")


def setup_metrics(app: FastAPI, *, enabled: bool) -> bool:
    """Expose ``/metrics`` when enabled and the `metrics` extra is installed."""

    if not (enabled or os.environ.get("ENABLE_METRICS", "false").lower() in _TRUTHY):
        return False
    try:
        from prometheus_fastapi_instrumentator import Instrumentator
    except ImportError:
        logger.warning("ENABLE_METRICS is set but prometheus-fastapi-instrumentator is not installed")
        return False

    Instrumentator().instrument(app).expose(app)
    return True
