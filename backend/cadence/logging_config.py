import json
import logging
import os
from datetime import datetime, timezone
from logging.config import dictConfig
from typing import Any, Dict

DEFAULT_LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


class JSONFormatter(logging.Formatter):
    """One JSON object per record, for log shippers that index fields."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
        }
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload)


def _flag(name: str) -> bool:
    return os.getenv(name, "0") == "1"


def build_logging_config() -> Dict[str, Any]:
    level = os.getenv("CADENCE_LOG_LEVEL", "INFO").upper()
    formatter: Dict[str, Any] = (
        {"()": JSONFormatter} if _flag("CADENCE_LOG_JSON") else {"format": DEFAULT_LOG_FORMAT}
    )
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {"default": formatter},
        "handlers": {
            "default": {
                "class": "logging.StreamHandler",
                "formatter": "default",
            },
        },
        "loggers": {
            "cadence.telemetry": {
                "level": os.getenv("CADENCE_TELEMETRY_LOG_LEVEL", "INFO").upper(),
            },
        },
        "root": {
            "handlers": ["default"],
            "level": level,
        },
    }


def configure_logging() -> None:
    """Configure process logging from CADENCE_* environment flags.

    ``CADENCE_LOG_JSON=1`` switches the root handler to JSON lines.
    ``CADENCE_TELEMETRY_LOG_LEVEL`` silences or keeps TELEMETRY lines
    independently of the root level. ``CADENCE_DEBUG_SQL`` and
    ``CADENCE_DEBUG_HTTP`` turn up the SQLAlchemy engine and HTTP loggers.
    """
    dictConfig(build_logging_config())

    if _flag("CADENCE_DEBUG_SQL"):
        logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO)
    if _flag("CADENCE_DEBUG_HTTP"):
        logging.getLogger("httpx").setLevel(logging.DEBUG)
        logging.getLogger("uvicorn.access").setLevel(logging.DEBUG)
