"""Logging utilities for Ragline.

Records are emitted as one JSON object per line. ``extra`` keys prefixed with
``ctx_`` are collected under ``context`` with the prefix removed, and the id
of the HTTP request being served (if any) is attached as ``request_id``.
"""

from __future__ import annotations

import contextvars
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any

import orjson

_CONTEXT_PREFIX = "ctx_"
_REQUEST_ID: contextvars.ContextVar[str | None] = contextvars.ContextVar("ragline_request_id", default=None)


class JsonFormatter(logging.Formatter):
    """Lightweight JSON log formatter."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "name": record.name,
            "thread": record.threadName,
            "message": record.getMessage(),
        }
        request_id = _REQUEST_ID.get()
        if request_id:
            payload["request_id"] = request_id
        context = {
            key[len(_CONTEXT_PREFIX) :]: value
            for key, value in record.__dict__.items()
            if key.startswith(_CONTEXT_PREFIX)
        }
        if context:
            payload["context"] = context
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return orjson.dumps(payload, default=str).decode("utf-8")


def set_request_id(request_id: str | None) -> contextvars.Token:
    """Attach ``request_id`` to records logged from the current context."""
    return _REQUEST_ID.set(request_id)


def reset_request_id(token: contextvars.Token) -> None:
    _REQUEST_ID.reset(token)


def configure_logging(level: str | int | None = None, use_json: bool = True) -> None:
    """Configure root logger; level defaults to ``RAGLINE_LOG_LEVEL`` or INFO."""
    logging.captureWarnings(True)
    root = logging.getLogger()
    root.setLevel(level or os.environ.get("RAGLINE_LOG_LEVEL", "INFO").upper())
    handler = logging.StreamHandler(sys.stdout)
    if use_json:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s [%(threadName)s] %(name)s: %(message)s"))
    root.handlers = [handler]


def get_logger(name: str = "ragline") -> logging.Logger:
    """Return configured logger, configuring root on first call."""
    if not logging.getLogger().handlers:
        configure_logging()
    return logging.getLogger(name)


__all__ = ["JsonFormatter", "configure_logging", "get_logger", "set_request_id", "reset_request_id"]
