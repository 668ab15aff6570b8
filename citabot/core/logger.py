"""
Logging estructurado (JSON por stdout).
"""

import json
import logging
import sys
from datetime import datetime, timezone

from citabot.config import settings

# Campos extra que aceptamos vía logger.info(..., extra={...})
EXTRA_FIELDS = ("user_id", "slot_key", "appointment_number", "message_id")


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        for field in EXTRA_FIELDS:
            if hasattr(record, field):
                log_entry[field] = getattr(record, field)

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, ensure_ascii=False)


def setup_logger(name: str, level: str = "INFO") -> logging.Logger:
    """Crea (o reconfigura) un logger con salida JSON a stdout."""
    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(JSONFormatter())
    logger.addHandler(console_handler)

    logger.propagate = False

    return logger


app_logger = setup_logger("citabot", settings.LOG_LEVEL)
