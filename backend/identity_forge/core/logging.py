"""JSON structured logging configuration with credential scrubbing."""
import json
import logging
import sys
from datetime import datetime, timezone

from identity_forge.core.sanitizer import sanitize


class JSONFormatter(logging.Formatter):
    """Format log records as JSON with required fields.

    Message text and tracebacks are sanitized so provider keys that leak into
    exception messages (e.g. a ``?key=`` query string) never reach the log sink.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "service": record.name,
            "message": sanitize(record.getMessage()),
        }
        for field in ("provider", "model", "stage", "operation"):
            value = getattr(record, field, None)
            if value is not None:
                log_entry[field] = str(value)
        if record.exc_info and record.exc_info[0] is not None:
            log_entry["error_type"] = record.exc_info[0].__name__
            log_entry["error_detail"] = sanitize(self.formatException(record.exc_info))
        return json.dumps(log_entry, ensure_ascii=False)


def setup_logging(service_name: str = "identity-forge") -> logging.Logger:
    """Configure and return a JSON structured logger."""
    import os

    level_name = os.getenv("LOG_LEVEL", "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)

    logger = logging.getLogger(service_name)
    logger.setLevel(level)

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(JSONFormatter())
        logger.addHandler(handler)

    return logger
