from __future__ import annotations

import json
import logging
import sys
from typing import Any, Dict

from loguru import logger
from opentelemetry import trace


# Attributes every stdlib record carries; anything else was passed through `extra=`
_STANDARD_RECORD_FIELDS = frozenset(logging.makeLogRecord({}).__dict__) | {"message", "asctime"}

_QUIET_LOGGERS = {
    "stripe": logging.WARNING,
    "apscheduler.executors.default": logging.WARNING,
    "apscheduler.scheduler": logging.INFO,
    "sqlalchemy.engine.Engine": logging.WARNING,
}


class InterceptHandler(logging.Handler):
    """Forward records from stripe, apscheduler and sqlalchemy to Loguru."""

    def emit(self, record: logging.LogRecord) -> None:  # pragma: no cover - bridging glue
        level: str | int
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        try:
            text = record.getMessage()
        except (TypeError, ValueError):
            text = str(record.msg)

        context = {key: value for key, value in vars(record).items() if key not in _STANDARD_RECORD_FIELDS}
        context.setdefault("stdlib_logger", record.name)

        logger.bind(**context).opt(depth=6, exception=record.exc_info).log(
            level, text.replace("{", "{{").replace("}", "}}")
        )


class _JsonSink:
    """Write one JSON document per Loguru record to stdout."""

    def __init__(self, *, service_name: str, environment: str, version: str) -> None:
        self._static = {"service": service_name, "environment": environment, "version": version}

    def __call__(self, message: Any) -> None:
        sys.stdout.write(json.dumps(self.build_payload(message.record), default=str) + "\n")

    def build_payload(self, record: Dict[str, Any]) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "timestamp": record["time"].isoformat(),
            "level": record["level"].name.lower(),
            "message": record["message"],
            "logger": record["name"],
            "function": record["function"],
            **self._static,
        }
        payload.update(_trace_fields())
        payload.update(record["extra"])

        exception = record["exception"]
        if exception is not None and exception.type is not None:
            payload["error_type"] = exception.type.__name__
            payload["error"] = str(exception.value)
        return payload


def _trace_fields() -> Dict[str, str]:
    span_context = trace.get_current_span().get_span_context()
    if not span_context.is_valid:
        return {}
    return {
        "trace_id": format(span_context.trace_id, "032x"),
        "span_id": format(span_context.span_id, "016x"),
    }


def configure_logging(
    *,
    service_name: str,
    environment: str,
    version: str,
    level: str = "INFO",
) -> None:
    """Route Loguru and stdlib logging to a structured JSON sink on stdout."""

    logger.remove()
    logger.add(
        _JsonSink(service_name=service_name, environment=environment, version=version),
        level=level,
        backtrace=False,
        diagnose=False,
    )

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for name, quiet_level in _QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(quiet_level)
