import json
import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

# --- Constants ---
LOG_DIR = Path(os.environ.get("PRAXIS_LOG_DIR", Path(__file__).resolve().parent.parent / 'logs'))
LOG_FILE = LOG_DIR / 'praxis.log'
LOGGER_NAME = "praxis"
MAX_BYTES = 5 * 1024 * 1024
BACKUP_COUNT = 3
CONSOLE_FORMAT = '%(asctime)s [%(levelname)s] %(name)s: %(message)s'


class JsonFormatter(logging.Formatter):
    """One JSON object per line for the rotating log file.

    Usage telemetry travels as ``extra={"telemetry": {...}}`` and is emitted
    as a nested object rather than folded into the message.
    """

    def format(self, record):
        entry = {
            "ts": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        telemetry = getattr(record, "telemetry", None)
        if telemetry:
            entry["telemetry"] = telemetry
        if record.exc_info:
            entry["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def _console_handler(level) -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    return handler


def _file_handler(level) -> logging.Handler:
    LOG_DIR.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(LOG_FILE, maxBytes=MAX_BYTES, backupCount=BACKUP_COUNT, encoding='utf-8')
    handler.setLevel(level)
    handler.setFormatter(JsonFormatter())
    return handler


def setup_logging(log_level=None):
    """Configure the ``praxis`` logger tree; safe to call repeatedly.

    Plain text goes to stdout and JSON lines to ``LOG_FILE``. When the log
    directory is not writable the file handler is left out.
    """
    level = (log_level or os.environ.get("LOG_LEVEL", "INFO")).upper()

    root = logging.getLogger(LOGGER_NAME)
    root.setLevel(level)
    root.propagate = False
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    root.addHandler(_console_handler(level))
    try:
        root.addHandler(_file_handler(level))
    except OSError as e:
        root.warning(f"File logging disabled, cannot write to {LOG_DIR}: {e}")

    return root


logger = setup_logging()
