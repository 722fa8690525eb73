# util/logger.py
import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from typing import Optional
from config.settings import settings

# Optional: capture warnings.* into logging
logging.captureWarnings(True)

_NOISY_LOGGERS = ("httpx", "httpcore", "sentence_transformers", "urllib3")


class ColoredFormatter(logging.Formatter):
    COLORS = {
        "DEBUG": "\033[37m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[41m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        # Colour a copy of the levelname; file handlers share the record
        if getattr(record, "_colorize", False):
            lvl = record.levelname
            colored = f"{self.COLORS.get(lvl, self.RESET)}{lvl}{self.RESET}"
            record = logging.makeLogRecord({**record.__dict__, "levelname": colored})
        return super().format(record)


class _ConsoleHandler(logging.StreamHandler):
    def emit(self, record: logging.LogRecord) -> None:
        record._colorize = True  # type: ignore[attr-defined]
        super().emit(record)


def init_logger(level: Optional[str] = None) -> logging.Logger:
    """
    Idempotent logger init for processes embedding the discrepancy engine:
    - Always logs to stdout.
    - Writes to <LOG_DIR>/<LOG_FILE_NAME> only when settings.LOG_TO_FILE is True.
    - Rotates file logs by size (maxBytes/backupCount in settings).
    - Respects settings.LOG_LEVEL unless `level` overrides it.
    """
    root = logging.getLogger()
    if getattr(root, "_discrepancy_inited", False):
        return logging.getLogger(settings.LOGGER_NAME)

    lvl = getattr(logging, (level or settings.LOG_LEVEL or "INFO").upper(), logging.INFO)
    root.setLevel(lvl)

    # Clear any default handlers to avoid duplicates
    for h in list(root.handlers):
        root.removeHandler(h)

    text_fmt = "%(asctime)s %(levelname)s %(name)s - %(message)s"
    date_fmt = "%Y-%m-%dT%H:%M:%S%z"

    ch = _ConsoleHandler(sys.stdout)
    ch.setLevel(lvl)
    ch.setFormatter(ColoredFormatter(text_fmt, datefmt=date_fmt))
    root.addHandler(ch)

    if settings.LOG_TO_FILE:
        os.makedirs(settings.LOG_DIR, exist_ok=True)
        fh = RotatingFileHandler(
            os.path.join(settings.LOG_DIR, settings.LOG_FILE_NAME),
            maxBytes=settings.LOG_MAX_BYTES,
            backupCount=settings.LOG_BACKUP_COUNT,
            encoding="utf-8",
        )
        fh.setLevel(lvl)
        fh.setFormatter(logging.Formatter(text_fmt, datefmt=date_fmt))
        root.addHandler(fh)

    # Provider SDK / transport chatter stays at WARNING
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    root._discrepancy_inited = True  # type: ignore[attr-defined]
    logger = logging.getLogger(settings.LOGGER_NAME)
    logger.debug("Logger initialized", extra={"component": "bootstrap"})
    return logger
