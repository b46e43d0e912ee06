"""
Logging setup.

The root logger writes to a rotating file and to stdout through a
formatter that masks credentials and email addresses, so audit details
and gateway errors can be logged as they are.
"""

import logging
import re
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

LOG_FILENAME = "teamsync.log"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
MAX_BYTES = 10 * 1024 * 1024
BACKUP_COUNT = 5
QUIET_LOGGERS = ("httpx", "httpcore", "uvicorn.access")

# Applied in order; the bearer mask must run before the key=value one
SENSITIVE_PATTERNS = [
    (re.compile(r"(Bearer\s+)[\w\-.]+", re.IGNORECASE), r"\1***"),
    (
        re.compile(
            r"(secret|password|token|api_key|apikey|authorization|credential)\s*[:=]\s*['\"]?[^'\"\s&,]+['\"]?",
            re.IGNORECASE,
        ),
        r"\1=***",
    ),
    (re.compile(r"([?&](?:key|token|secret|password))=[^&\s]+", re.IGNORECASE), r"\1=***"),
    # first two characters of the local part stay readable
    (re.compile(r"\b([\w.%+-]{2})[\w.%+-]*(@[\w.-]+\.[A-Za-z]{2,})\b"), r"\1***\2"),
]


def mask_sensitive(message: str) -> str:
    for pattern, replacement in SENSITIVE_PATTERNS:
        message = pattern.sub(replacement, message)
    return message


class SensitiveDataFormatter(logging.Formatter):
    """Formatter that runs every record through mask_sensitive()."""

    def format(self, record: logging.LogRecord) -> str:
        return mask_sensitive(super().format(record))


def _resolve_level(log_level: int | str) -> int:
    if isinstance(log_level, int):
        return log_level
    level = logging.getLevelName(log_level.upper())
    return level if isinstance(level, int) else logging.INFO


def setup_logging(log_level: int | str = logging.INFO, log_dir: Optional[str] = None) -> Path:
    """
    Configure the root logger.

    Args:
        log_level: Level name or number; unknown names fall back to INFO.
        log_dir: Directory of the rotating log file, created if missing.

    Returns:
        Path of the log file.
    """
    log_path = Path(log_dir or "logs")
    log_path.mkdir(parents=True, exist_ok=True)
    log_file = log_path / LOG_FILENAME
    level = _resolve_level(log_level)

    formatter = SensitiveDataFormatter(LOG_FORMAT)
    handlers = [
        RotatingFileHandler(str(log_file), maxBytes=MAX_BYTES, backupCount=BACKUP_COUNT, encoding="utf-8"),
        logging.StreamHandler(sys.stdout),
    ]

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()
    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    root.info(f"Logging to {log_file}")
    return log_file
