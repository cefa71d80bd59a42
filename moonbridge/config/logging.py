"""Logging setup for the Moonbridge daemon.

One JSON object per line. Records from ``moonbridge.*`` loggers drop the
package prefix; anything passed through ``extra=`` is nested under
``"extra"``. Values msgspec cannot encode natively are written as ``repr``.
"""

from __future__ import annotations

import logging
import os
import time
from logging.config import dictConfig
from logging.handlers import SysLogHandler
from pathlib import Path
from typing import Any

import msgspec

from .model import RuntimeConfig

SYSLOG_SOCKET = Path("/dev/log")
LOG_STREAM_ENV = "MOONBRIDGE_LOG_STREAM"

# Attributes every LogRecord carries; anything else came from ``extra=``.
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime", "taskName"}

# Third-party loggers that are only useful while debugging the link.
_CHATTY_LOGGERS = ("websockets", "transitions")


class JsonLineFormatter(logging.Formatter):
    """Render records as compact JSON lines."""

    converter = time.gmtime
    _encoder = msgspec.json.Encoder(enc_hook=repr)

    def format(self, record: logging.LogRecord) -> str:
        name = record.name.removeprefix("moonbridge.")
        entry: dict[str, Any] = {
            "ts": f"{self.formatTime(record, '%Y-%m-%dT%H:%M:%S')}.{int(record.msecs):03d}Z",
            "level": record.levelname,
            "logger": name,
            "message": record.getMessage(),
        }
        extra = {key: value for key, value in vars(record).items() if key not in _RECORD_ATTRS}
        if extra:
            entry["extra"] = extra
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return self._encoder.encode(entry).decode("utf-8")


def _build_handler() -> logging.Handler:
    if not os.environ.get(LOG_STREAM_ENV) and SYSLOG_SOCKET.exists():
        handler = SysLogHandler(address=str(SYSLOG_SOCKET), facility=SysLogHandler.LOG_DAEMON)
        handler.ident = "moonbridge: "
        return handler
    return logging.StreamHandler()


def configure_logging(config: RuntimeConfig) -> None:
    """Install the JSON handler on the root logger."""

    level = "DEBUG" if config.debug_logging else "INFO"
    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {"json": {"()": JsonLineFormatter}},
            "handlers": {
                "moonbridge": {
                    "()": _build_handler,
                    "level": level,
                    "formatter": "json",
                }
            },
            "loggers": {
                name: {"level": level if config.debug_logging else "WARNING"} for name in _CHATTY_LOGGERS
            },
            "root": {"level": level, "handlers": ["moonbridge"]},
        }
    )
    logging.getLogger("moonbridge").info("Logging configured at level %s", level)


__all__ = ["JsonLineFormatter", "configure_logging"]
