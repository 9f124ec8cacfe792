"""
Logging helpers for devlog storage.

Every module logs under the ``devlog_storage`` logger tree. The hybrid
provider attaches its provider name and repository to each record through
``StorageLoggerAdapter``; ``configure_structured_logging`` installs a
handler that writes those records as one JSON object per line.
"""

import json
import logging
from datetime import UTC, datetime
from typing import IO, Any

PACKAGE_LOGGER = "devlog_storage"

# Attributes every LogRecord carries; anything else arrived through ``extra``
_RECORD_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None))
) | {"message", "asctime", "taskName"}


def _component(logger_name: str) -> str:
    """``devlog_storage.storage.hybrid`` -> ``storage.hybrid``."""
    prefix = PACKAGE_LOGGER + "."
    return logger_name[len(prefix):] if logger_name.startswith(prefix) else logger_name


class StructuredJsonFormatter(logging.Formatter):
    """
    Render records as single-line JSON.

    Fields:
    - ts: record time, ISO 8601 in UTC
    - level: level name
    - component: logger name below ``devlog_storage``
    - msg: the formatted message
    - error: formatted traceback, when the record carries one

    Context passed through ``extra`` (provider, repository, sync counts) is
    merged in at the top level. Private keys are dropped and values JSON
    cannot encode are stringified.
    """

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "component": _component(record.name),
            "msg": record.getMessage(),
        }
        payload.update(
            (key, value)
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRS and not key.startswith("_")
        )
        if record.exc_info:
            payload["error"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str, ensure_ascii=False)


def configure_structured_logging(
    level: int = logging.INFO,
    stream: IO[str] | None = None,
) -> logging.Logger:
    """
    Send ``devlog_storage`` logs to ``stream`` (default stderr) as JSON lines.

    Calling it again replaces the JSON handler it installed before; other
    handlers on the logger are left alone.

    Returns:
        The package logger
    """
    logger = logging.getLogger(PACKAGE_LOGGER)
    for handler in list(logger.handlers):
        if isinstance(handler.formatter, StructuredJsonFormatter):
            logger.removeHandler(handler)

    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredJsonFormatter())
    logger.addHandler(handler)
    logger.setLevel(level)
    return logger


def get_storage_logger(name: str) -> logging.Logger:
    """Logger for a storage component, named ``devlog_storage.<name>``."""
    return logging.getLogger(f"{PACKAGE_LOGGER}.{name}")


class StorageLoggerAdapter(logging.LoggerAdapter):
    """Logger adapter that adds provider context (provider, repository) to every record."""

    def process(self, msg: str, kwargs: Any) -> tuple[str, Any]:
        extra = dict(kwargs.get("extra") or {})
        extra.update(self.extra or {})
        kwargs["extra"] = extra
        return msg, kwargs
