from __future__ import annotations

import json
import logging
from logging import LogRecord
from typing import Any, Dict

from loguru import logger
from opentelemetry import trace


_STDLIB_RECORD_FIELDS = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", None, None)).keys()
) | {"message", "asctime"}

# Bound context keys whose values must never reach the log sink.
_REDACTED_KEYS = frozenset(
    {
        "token",
        "raw_token",
        "session_token",
        "jwt",
        "routing_number",
        "account_number",
        "postmark_server_token",
    }
)


class InterceptHandler(logging.Handler):
    """Route stdlib log records (uvicorn, sqlalchemy) through Loguru."""

    def emit(self, record: LogRecord) -> None:  # pragma: no cover - bridging glue
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        extra = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _STDLIB_RECORD_FIELDS
        }
        message = record.getMessage().replace("{", "{{").replace("}", "}}")

        target = logger.bind(**extra) if extra else logger
        target.opt(depth=6, exception=record.exc_info).log(level, message)


def redact(context: Dict[str, Any]) -> Dict[str, Any]:
    """Return a copy of ``context`` with secret-bearing keys masked."""

    return {
        key: ("***" if key in _REDACTED_KEYS and value else value)
        for key, value in context.items()
    }


def _serialize_log(message: "logger.Message", metadata: Dict[str, Any]) -> None:
    record = message.record
    span_context = trace.get_current_span().get_span_context()

    payload: Dict[str, Any] = {
        "timestamp": record["time"].isoformat(),
        "level": record["level"].name.lower(),
        "message": record["message"],
        "logger": record["name"],
        **metadata,
    }

    if span_context.is_valid:
        payload["trace_id"] = f"{span_context.trace_id:032x}"
        payload["span_id"] = f"{span_context.span_id:016x}"

    if record["extra"]:
        payload.update(redact(record["extra"]))

    if record["exception"] is not None:
        payload["exception"] = str(record["exception"].value)

    print(json.dumps(payload, default=str))


def configure_logging(*, service_name: str, environment: str, version: str) -> None:
    """Install the JSON sink on Loguru and bridge stdlib logging into it."""

    logger.remove()
    metadata = {"service": service_name, "environment": environment, "version": version}
    logger.add(lambda message: _serialize_log(message, metadata), backtrace=False, diagnose=False)

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for noisy in ("uvicorn.access", "sqlalchemy.engine", "botocore", "httpx"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
