"""
Log output configuration for the pusher application.

Modules log through ``logging.getLogger(__name__)``; this module only decides
where records go and how they look. Two formats are supported:

    text   2024-05-01 12:00:00,000 INFO kafka_pusher.cli: message
    json   {"time": "...", "level": "INFO", "logger": "...", "msg": "..."}
"""

import json
import logging
import sys
from typing import IO, Optional

from .config.settings import LoggingSettings

TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

_LEVELS = {
    'debug': logging.DEBUG,
    'info': logging.INFO,
    'warn': logging.WARNING,
    'warning': logging.WARNING,
    'error': logging.ERROR,
}

# Attributes every LogRecord has; anything else came from ``extra=``
_RESERVED_ATTRS = frozenset(vars(logging.LogRecord('', 0, '', 0, '', (), None))) | {'message', 'asctime'}

_HANDLER_NAME = "kafka_pusher"


def parse_level(name: str) -> int:
    """Map a level name to a logging level; unknown names give INFO."""
    return _LEVELS.get((name or '').strip().lower(), logging.INFO)


class JsonFormatter(logging.Formatter):
    """Formats each record as a single-line JSON object."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            'time': self.formatTime(record),
            'level': record.levelname,
            'logger': record.name,
            'msg': record.getMessage(),
        }
        for key, value in vars(record).items():
            if key not in _RESERVED_ATTRS and not key.startswith('_'):
                entry[key] = value
        if record.exc_info:
            entry['error'] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str, ensure_ascii=False)


def configure_logging(settings: LoggingSettings, stream: Optional[IO[str]] = None) -> logging.Handler:
    """
    Configure the root logger from settings.

    Calling this again replaces the handler installed by a previous call.

    Returns:
        The installed handler
    """
    handler = logging.StreamHandler(stream or sys.stdout)
    handler.set_name(_HANDLER_NAME)
    if settings.format == 'json':
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter(TEXT_FORMAT))

    root = logging.getLogger()
    for existing in list(root.handlers):
        if existing.get_name() == _HANDLER_NAME:
            root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(parse_level(settings.level))

    # kafka-python is chatty at INFO
    logging.getLogger('kafka').setLevel(max(root.level, logging.WARNING))
    return handler
