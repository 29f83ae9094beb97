"""
Logging for GameDiss.

Two loggers share one rotating file under LOG_DIR (default: instance/):
  - "gamediss":     application messages from the Flask layer (log())
  - "gamediss_app": engine modules, via logging.getLogger(__name__)

Every record is tagged with the Flask request id when one is active.
Structured per-request events go to a separate JSON-lines file
(debug.log), switched off with DEBUG_LOGGING=false.
"""

import os
import sys
import json
import logging
from logging.handlers import RotatingFileHandler

from flask import g, has_request_context

BASE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
LOG_DIR = os.environ.get('LOG_DIR') or os.path.join(BASE_DIR, 'instance')
LOG_FILE = os.path.join(LOG_DIR, 'gamediss.log')
DEBUG_LOG_FILE = os.path.join(LOG_DIR, 'debug.log')

LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO').upper()
DEBUG_LOGGING = os.environ.get('DEBUG_LOGGING', 'true').lower() in ('1', 'true', 'yes', 'on')

logger = logging.getLogger("gamediss")
engine_logger = logging.getLogger("gamediss_app")
debug_logger = logging.getLogger("gamediss.debug")


class RequestIdFilter(logging.Filter):
    """Adds `request_id` to every record ("-" outside a request)."""

    def filter(self, record: logging.LogRecord) -> bool:
        request_id = None
        if has_request_context():
            request_id = getattr(g, 'request_id', None)
        record.request_id = request_id or '-'
        return True


def _has_file_handler(target: logging.Logger, path: str) -> bool:
    return any(getattr(h, 'baseFilename', None) == path for h in target.handlers)


def configure_logging() -> None:
    """Attach file/stdout handlers once per process."""
    os.makedirs(LOG_DIR, exist_ok=True)
    request_filter = RequestIdFilter()

    file_handler = RotatingFileHandler(LOG_FILE, maxBytes=10 * 1024 * 1024, backupCount=5)
    file_handler.setFormatter(logging.Formatter(
        '%(asctime)s - %(levelname)s - [%(request_id)s] %(name)s - %(message)s'
    ))
    file_handler.addFilter(request_filter)

    # stdout stays terse: message only
    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setFormatter(logging.Formatter('%(message)s'))
    stream_handler.addFilter(request_filter)

    for target in (logger, engine_logger):
        target.setLevel(LOG_LEVEL)
        if not _has_file_handler(target, LOG_FILE):
            target.addHandler(file_handler)
            target.addHandler(stream_handler)

    debug_logger.propagate = False
    debug_logger.setLevel(logging.INFO)
    if not DEBUG_LOGGING:
        debug_logger.disabled = True
    elif not _has_file_handler(debug_logger, DEBUG_LOG_FILE):
        events = RotatingFileHandler(DEBUG_LOG_FILE, maxBytes=10 * 1024 * 1024, backupCount=10)
        events.setFormatter(logging.Formatter('%(message)s'))
        debug_logger.addHandler(events)


configure_logging()


def log(msg: str) -> None:
    """Application-level message (console + file)."""
    logger.info(msg)


def debug_log_event(event: dict) -> None:
    """Append one JSON event to debug.log."""
    if debug_logger.disabled:
        return
    try:
        debug_logger.info(json.dumps(event, ensure_ascii=True, separators=(',', ':'), default=str))
    except (TypeError, ValueError) as exc:
        logger.warning(f"⚠️ Debug event dropped: {exc}")
