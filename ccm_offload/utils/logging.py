"""Structured JSON logging helpers for workflow events."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any


class JsonFormatter(logging.Formatter):
    """Format log records as JSON with required workflow fields."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname.lower(),
            "workflow_step": getattr(record, "workflow_step", "unknown"),
            "target": getattr(record, "target", None),
            "status": getattr(record, "status", record.levelname.lower()),
        }

        count = getattr(record, "count", None)
        if count is not None:
            payload["count"] = count

        error_code = getattr(record, "error_code", None)
        error_message = getattr(record, "error_message", None)
        if error_code is not None:
            payload["error_code"] = error_code
        if error_message is not None:
            payload["error_message"] = error_message

        message = record.getMessage()
        if message:
            payload["message"] = message

        return json.dumps(payload, ensure_ascii=False)


def get_structured_logger(name: str = "ccm_offload.workflow") -> logging.Logger:
    """Return a logger configured to emit JSON records."""
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    logger.setLevel(logging.INFO)
    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    logger.addHandler(handler)
    logger.propagate = False
    return logger


def log_workflow_event(
    logger: logging.Logger,
    *,
    workflow_step: str,
    status: str,
    target: str | None = None,
    message: str = "",
    count: int | None = None,
    error_code: str | None = None,
    error_message: str | None = None,
) -> None:
    """Emit a structured workflow event.

    Events with an ``error_code`` are logged at ERROR level, everything else
    at INFO.
    """
    extra: dict[str, Any] = {
        "workflow_step": workflow_step,
        "target": target,
        "status": status,
        "count": count,
        "error_code": error_code,
        "error_message": error_message,
    }
    level = logging.ERROR if error_code else logging.INFO
    logger.log(level, message, extra=extra)
