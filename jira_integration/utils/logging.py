"""Logging configuration."""

import logging
import json
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from jira_integration.core.config import get_settings

settings = get_settings()

# Passed through ``extra=`` by webhook ingestion and processing
CONTEXT_FIELDS = ("integration_id", "event_id", "issue_key")

# Loggers that are chatty at INFO
QUIET_LOGGERS = ("httpx", "httpcore", "pymongo", "motor")


class JSONFormatter(logging.Formatter):
    """One JSON object per record, tagged with the service and Jira context."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": settings.service_name,
            "environment": settings.environment,
        }

        for field in CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value:
                log_data[field] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def setup_logging(level: Optional[str] = None, log_format: Optional[str] = None):
    """Route all logging to stdout, as JSON unless ``log_format`` is ``text``."""
    level = level or settings.log_level
    log_format = log_format or settings.log_format

    logging.root.handlers = []

    handler = logging.StreamHandler(sys.stdout)
    if log_format == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(
            logging.Formatter(
                "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
            )
        )

    logging.root.setLevel(level)
    logging.root.addHandler(handler)

    logging.getLogger("uvicorn").setLevel(level)
    logging.getLogger("fastapi").setLevel(level)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
