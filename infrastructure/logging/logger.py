"""
Logging configuration for Shieldbridge

Module loggers (get_logger(__name__)) propagate to the root logger, which
owns the console handler. Poll loops repeat the same INFO lines every few
seconds per bridge, so the console handler drops repeats inside a window.
Operator alerts (CRITICAL) can additionally go to a dedicated file.
"""
import logging
import sys
import time
from collections import defaultdict
from typing import Dict, List, Optional

from infrastructure.config.settings import settings

NOISY_LOGGERS = {
    "sqlalchemy.engine": logging.WARNING,
    "sqlalchemy.pool": logging.WARNING,
    "aiosqlite": logging.WARNING,
    "httpx": logging.WARNING,  # one line per 1Click / RPC poll otherwise
    "httpcore": logging.WARNING,
    "uvicorn.access": logging.WARNING,
}

_HANDLER_TAG = "_shieldbridge_handler"


class DeduplicationFilter(logging.Filter):
    """Drop identical low-level records repeated inside a time window"""

    def __init__(self, max_age: int = 60, max_count: int = 3):
        super().__init__()
        self.max_age = max_age  # seconds
        self.max_count = max_count
        self.message_cache: Dict[str, List[float]] = defaultdict(list)

    def filter(self, record: logging.LogRecord) -> bool:
        # Warnings and alerts always go through
        if record.levelno >= logging.WARNING:
            return True

        key = f"{record.name}:{record.levelname}:{record.getMessage()}"
        now = time.time()
        recent = [ts for ts in self.message_cache[key] if now - ts < self.max_age]

        if len(recent) >= self.max_count:
            self.message_cache[key] = recent
            return False

        recent.append(now)
        self.message_cache[key] = recent
        return True


def _tagged(handler: logging.Handler) -> logging.Handler:
    setattr(handler, _HANDLER_TAG, True)
    return handler


def setup_logging(
    name: str = "shieldbridge",
    level: Optional[str] = None,
    format_string: Optional[str] = None,
    enable_deduplication: bool = True,
    alert_file: Optional[str] = None,
) -> logging.Logger:
    """
    Setup logging for the API or worker process

    Safe to call more than once: handlers installed by a previous call are
    replaced, other handlers (pytest's caplog, uvicorn) are left alone.

    Args:
        name: Name of the logger returned to the caller
        level: Logging level (overrides settings)
        format_string: Log format (overrides settings)
        enable_deduplication: Drop repeated INFO/DEBUG lines on the console
        alert_file: File receiving CRITICAL records (overrides settings)

    Returns:
        Logger instance for `name`
    """
    numeric_level = getattr(logging, (level or settings.logging.level).upper(), logging.INFO)
    formatter = logging.Formatter(format_string or settings.logging.format)
    alert_path = alert_file or settings.logging.alert_file

    root = logging.getLogger()
    root.setLevel(numeric_level)
    for handler in [h for h in root.handlers if getattr(h, _HANDLER_TAG, False)]:
        root.removeHandler(handler)
        handler.close()

    console_handler = _tagged(logging.StreamHandler(sys.stdout))
    console_handler.setLevel(numeric_level)
    console_handler.setFormatter(formatter)
    if enable_deduplication:
        console_handler.addFilter(
            DeduplicationFilter(
                max_age=settings.logging.dedup_window_seconds,
                max_count=settings.logging.dedup_max_repeats,
            )
        )
    root.addHandler(console_handler)

    if alert_path:
        alert_handler = _tagged(logging.FileHandler(alert_path, encoding="utf-8"))
        alert_handler.setLevel(logging.CRITICAL)
        alert_handler.setFormatter(formatter)
        root.addHandler(alert_handler)

    _configure_external_loggers()
    return logging.getLogger(name)


def _configure_external_loggers() -> None:
    for logger_name, logger_level in NOISY_LOGGERS.items():
        logging.getLogger(logger_name).setLevel(logger_level)


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance (usually get_logger(__name__))"""
    return logging.getLogger(name)
