# =======================================================================================
# smartvisitor/logging_config.py - Logging Setup
# =======================================================================================
import json
import logging
import os
from datetime import datetime, timezone
from typing import Optional

from .config import config

CONSOLE_FORMAT = "[%(asctime)s] %(levelname)s %(name)s: %(message)s"


class JsonLineFormatter(logging.Formatter):
    """One JSON object per line: timestamp, level, logger, message."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["data"] = self.formatException(record.exc_info)
        return json.dumps(entry)


def setup_logging(level: Optional[str] = None, log_dir: Optional[str] = None) -> logging.Logger:
    """Configure the `smartvisitor` logger once; safe to call again."""
    logger = logging.getLogger("smartvisitor")
    if config.API_DEBUG:
        level = "DEBUG"
    logger.setLevel((level or config.LOG_LEVEL or "INFO").upper())

    if getattr(logger, "_smartvisitor_configured", False):
        return logger

    console = logging.StreamHandler()
    console.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    logger.addHandler(console)

    log_dir = log_dir or config.LOG_DIR
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        day = datetime.now(timezone.utc).strftime("%Y-%m-%d")
        file_handler = logging.FileHandler(
            os.path.join(log_dir, f"smartvisitor-{day}.log"), encoding="utf-8"
        )
        file_handler.setFormatter(JsonLineFormatter())
        logger.addHandler(file_handler)

    logger._smartvisitor_configured = True
    return logger
