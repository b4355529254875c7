from __future__ import annotations

import atexit
import copy
import logging
import queue
import sys
from datetime import datetime, timezone
from logging.handlers import QueueHandler, QueueListener
from typing import Any, Optional

import structlog

from aggregarr.infrastructure.config.schema import AppConfig

log = structlog.get_logger(__name__)

# Loggers owned by uvicorn; they keep their names but emit through our queue.
_UVICORN_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access")

_QUEUE_LISTENER: Optional[QueueListener] = None


def _drop_color_message(_: Any, __: Any, event_dict: dict[str, Any]) -> dict[str, Any]:
    # uvicorn duplicates every message as "color_message"
    event_dict.pop("color_message", None)
    return event_dict


def _stamp_foreign_record(
    _: Any, __: Any, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """
    Timestamp stdlib (non-structlog) records with LogRecord.created.

    Records are formatted later on the listener thread, so "now" would be
    the emission time rather than the time of the log call.
    """
    record = event_dict.get("_record")
    if isinstance(record, logging.LogRecord):
        dt = datetime.fromtimestamp(record.created, tz=timezone.utc)
        event_dict["timestamp"] = dt.isoformat().replace("+00:00", "Z")
    return event_dict


class _LevelRangeFilter(logging.Filter):
    def __init__(self, min_level: int = logging.NOTSET, max_level: int = logging.CRITICAL) -> None:
        super().__init__()
        self._min = min_level
        self._max = max_level

    def filter(self, record: logging.LogRecord) -> bool:
        return self._min <= record.levelno <= self._max


class _StructlogQueueHandler(QueueHandler):
    """QueueHandler that leaves structlog's dict payload in record.msg intact."""

    def prepare(self, record: logging.LogRecord) -> logging.LogRecord:
        # The stock prepare() flattens record.msg into a string.
        return copy.copy(record)


def build_formatter(log_format: str) -> structlog.stdlib.ProcessorFormatter:
    """ProcessorFormatter rendering both structlog and stdlib records."""
    if log_format == "json":
        renderer: structlog.typing.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    return structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=[
            _drop_color_message,
            structlog.contextvars.merge_contextvars,
            _stamp_foreign_record,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
        ],
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )


def stop_logging() -> None:
    """Flush and stop the background listener (idempotent)."""
    global _QUEUE_LISTENER
    if _QUEUE_LISTENER is not None:
        try:
            _QUEUE_LISTENER.stop()
        finally:
            _QUEUE_LISTENER = None


def _install_queue_logging(config: AppConfig) -> None:
    """
    Route all stdlib logging through a QueueHandler.

    A QueueListener thread does the actual writing: DEBUG..WARNING to
    stdout, ERROR and above to stderr. The event loop never blocks on I/O.
    """
    global _QUEUE_LISTENER

    stop_logging()

    formatter = build_formatter(config.log_format or "console")

    stdout_handler = logging.StreamHandler(stream=sys.stdout)
    stdout_handler.setFormatter(formatter)
    stdout_handler.addFilter(_LevelRangeFilter(max_level=logging.WARNING))

    stderr_handler = logging.StreamHandler(stream=sys.stderr)
    stderr_handler.setFormatter(formatter)
    stderr_handler.addFilter(_LevelRangeFilter(min_level=logging.ERROR))

    q: queue.Queue[logging.LogRecord] = queue.Queue()

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(_StructlogQueueHandler(q))
    root.setLevel(config.log_level)

    for name in (*_UVICORN_LOGGERS, *logging.root.manager.loggerDict.keys()):
        logger = logging.getLogger(name)
        logger.handlers.clear()
        logger.propagate = True
        logger.setLevel(config.log_level)

    # httpx logs every request at INFO; keep it quiet unless debugging.
    if config.log_level != "DEBUG":
        logging.getLogger("httpx").setLevel(logging.WARNING)

    _QUEUE_LISTENER = QueueListener(
        q, stdout_handler, stderr_handler, respect_handler_level=True
    )
    _QUEUE_LISTENER.start()
    atexit.register(stop_logging)


def configure_logging(config: AppConfig) -> None:
    """Configure structlog on top of stdlib logging with queue-based emission."""
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    _install_queue_logging(config)

    log.info(
        "logging_configured", log_format=config.log_format, log_level=config.log_level
    )
