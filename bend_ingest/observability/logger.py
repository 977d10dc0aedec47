"""
Structured JSON logging for bend-ingest

Every module logs through logging.getLogger(__name__). The CLI configures
the "bend_ingest" logger once with setup_logger(), so all module loggers
below it write through the same stdout handler. JSON output comes from
python-json-logger and names the worker thread that emitted each line.
"""
import logging
import os
import sys
import time
from typing import IO

from pythonjsonlogger import jsonlogger

APP_LOGGER = "bend_ingest"
SERVICE_NAME = "bend-ingest"

JSON_FIELDS = "%(timestamp)s %(level)s %(logger)s %(module)s %(function)s %(message)s"
TEXT_FORMAT = "%(asctime)s %(levelname)-8s [%(threadName)s] %(name)s: %(message)s"


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """
    JSON formatter for ingestion logs

    Adds: timestamp, level, logger, module, function, process id, thread
    (the worker name when logged from a consume worker) and service.
    """

    def add_fields(self, log_record: dict, record: logging.LogRecord, message_dict: dict) -> None:
        super().add_fields(log_record, record, message_dict)

        log_record.setdefault("timestamp", None)
        if not log_record["timestamp"]:
            log_record["timestamp"] = self.formatTime(record, self.datefmt)

        level = log_record.get("level") or record.levelname
        log_record["level"] = level.upper()

        log_record.update(
            logger=record.name,
            module=record.module,
            function=record.funcName,
            process_id=record.process,
            thread=record.threadName,
            service=SERVICE_NAME,
        )


def _resolve_level(level: str | None) -> int:
    name = (level or os.getenv("LOG_LEVEL") or "INFO").upper()
    resolved = logging.getLevelName(name)
    return resolved if isinstance(resolved, int) else logging.INFO


def setup_logger(
    name: str = APP_LOGGER,
    level: str | None = None,
    format_type: str = "json",
    stream: IO[str] | None = None,
) -> logging.Logger:
    """
    Configure the handler of a logger, replacing any previous one

    Args:
        name: Logger name (the application logger by default)
        level: Level name; falls back to $LOG_LEVEL, then INFO
        format_type: "json" for production, "text" for local runs
        stream: Output stream (stdout by default)

    Returns:
        The configured logger
    """
    log_level = _resolve_level(level)

    if format_type == "json":
        formatter: logging.Formatter = CustomJsonFormatter(fmt=JSON_FIELDS, datefmt="%Y-%m-%dT%H:%M:%S")
    else:
        formatter = logging.Formatter(fmt=TEXT_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setLevel(log_level)
    handler.setFormatter(formatter)

    logger = logging.getLogger(name)
    logger.setLevel(log_level)
    logger.handlers.clear()
    logger.addHandler(handler)
    # The handler above is the only output; the root logger stays untouched
    logger.propagate = False

    return logger


def get_logger(name: str = APP_LOGGER) -> logging.Logger:
    """
    Get a logger

    Loggers in the bend_ingest hierarchy rely on the application handler.
    Any other logger without a handler is configured on first use.
    """
    logger = logging.getLogger(name)
    in_app = name == APP_LOGGER or name.startswith(APP_LOGGER + ".")
    if in_app or logger.handlers:
        return logger
    return setup_logger(name)


class log_operation:
    """
    Context manager logging the start, outcome and duration of a step

    Usage:
        with log_operation("Creating target table", logger=logger, table="events"):
            ingester.create_target_table()

    Exceptions are logged with their traceback and re-raised.
    """

    def __init__(self, operation_name: str, logger: logging.Logger | None = None, **extra_fields):
        self.operation_name = operation_name
        self.logger = logger or get_logger(APP_LOGGER)
        self.extra_fields = extra_fields
        self._started: float | None = None

    def _fields(self, **fields) -> dict:
        return {"operation": self.operation_name, **fields, **self.extra_fields}

    def __enter__(self):
        self._started = time.monotonic()
        self.logger.info(f"Starting: {self.operation_name}", extra=self._fields())
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        duration = round(time.monotonic() - self._started, 3)

        if exc_type is None:
            self.logger.info(
                f"Completed: {self.operation_name}",
                extra=self._fields(duration_seconds=duration, status="success"),
            )
        else:
            self.logger.error(
                f"Failed: {self.operation_name}",
                extra=self._fields(
                    duration_seconds=duration,
                    status="error",
                    error_type=exc_type.__name__,
                    error_message=str(exc_val),
                ),
                exc_info=(exc_type, exc_val, exc_tb),
            )
        return False
