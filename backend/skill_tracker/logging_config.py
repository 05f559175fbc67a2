"""Process logging for the API and the migration tooling."""

import logging
import os
from logging.config import dictConfig
from typing import Any, Dict, Optional

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def _logger_levels(debug_sql: bool) -> Dict[str, Dict[str, Any]]:
    loggers: Dict[str, Dict[str, Any]] = {
        # Telemetry lines are INFO and must survive a WARNING root level.
        "skill_tracker.telemetry": {"level": "INFO"},
    }
    if debug_sql:
        loggers["sqlalchemy.engine"] = {"level": "INFO"}
    return loggers


def configure_logging(level: Optional[str] = None) -> None:
    """Install one stderr handler on the root logger.

    ``level`` wins over ``SKILL_TRACKER_LOG_LEVEL``. ``SKILL_TRACKER_DEBUG_SQL=1``
    echoes every statement SQLAlchemy sends.
    """
    root_level = (level or os.getenv("SKILL_TRACKER_LOG_LEVEL", "INFO")).upper()
    debug_sql = os.getenv("SKILL_TRACKER_DEBUG_SQL", "0") == "1"

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {"plain": {"format": LOG_FORMAT}},
            "handlers": {
                "stderr": {
                    "class": "logging.StreamHandler",
                    "formatter": "plain",
                    "stream": "ext://sys.stderr",
                },
            },
            "loggers": _logger_levels(debug_sql),
            "root": {"handlers": ["stderr"], "level": root_level},
        }
    )
    logging.getLogger(__name__).debug("Logging configured at %s (sql echo: %s)", root_level, debug_sql)
