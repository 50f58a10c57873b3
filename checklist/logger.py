# checklist/logger.py
import logging
import os
import sys
from logging.handlers import RotatingFileHandler

_configured = False

DATA_DIR = os.path.expanduser(os.getenv("CHECKLIST_DATA_DIR", "~/.squish-checklist"))


def setup_logging():
    global _configured
    if _configured:
        return

    log_level = os.getenv("LOG_LEVEL", "INFO").upper()
    log_to_file = os.getenv("LOG_TO_FILE", "true").lower() == "true"
    log_file = os.path.expanduser(
        os.getenv("LOG_FILE", os.path.join(DATA_DIR, "checklist.log"))
    )
    log_max_bytes = int(os.getenv("LOG_MAX_BYTES", str(2 * 1024 * 1024)))
    log_backups = int(os.getenv("LOG_BACKUPS", "3"))
    log_to_console = os.getenv("LOG_TO_CONSOLE", "true").lower() == "true"
    level = getattr(logging, log_level, logging.INFO)

    root = logging.getLogger()
    root.setLevel(level)

    formatter = logging.Formatter(
        "%(asctime)s %(levelname)s [%(name)s] %(message)s"
    )

    # Avoid duplicate handlers
    if not root.handlers:
        if log_to_console:
            # stdout carries command output; log lines go to stderr
            ch = logging.StreamHandler(sys.stderr)
            ch.setLevel(level)
            ch.setFormatter(formatter)
            root.addHandler(ch)

        if log_to_file:
            try:
                os.makedirs(os.path.dirname(log_file), exist_ok=True)
                fh = RotatingFileHandler(
                    log_file,
                    maxBytes=log_max_bytes,
                    backupCount=log_backups,
                    encoding="utf-8",
                )
                fh.setLevel(level)
                fh.setFormatter(formatter)
                root.addHandler(fh)
            except OSError as e:
                root.warning("Failed to initialize file logging: %s", e)

    _configured = True


def get_logger(name: str | None = None) -> logging.Logger:
    setup_logging()
    return logging.getLogger(name)
