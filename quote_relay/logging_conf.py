# quote_relay/logging_conf.py
# Purpose: One JSON line per log record on stdout, for the service and uvicorn.
# Pitfalls: Upstream URLs carry the apikey query param; every record passes
#           through ApiKeyRedactFilter before it is formatted.

from __future__ import annotations

import json
import logging
import os
from logging.config import dictConfig
from typing import Any

from quote_relay.errors import sanitize
from quote_relay.version import SERVICE_NAME


class ApiKeyRedactFilter(logging.Filter):
    """Mask apikey=... and the configured credential in the rendered message."""

    def __init__(self, secret: str | None = None) -> None:
        super().__init__()
        self.secret = secret

    def filter(self, record: logging.LogRecord) -> bool:
        msg = record.getMessage()
        clean = sanitize(msg, self.secret)
        if clean != msg:
            record.msg, record.args = clean, None
        return True


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "time": self.formatTime(record, datefmt="%Y-%m-%dT%H:%M:%S%z"),
            "level": record.levelname,
            "service": SERVICE_NAME,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def setup_logging(level: str | None = None) -> None:
    """JSON logs for quote_relay + uvicorn; uvicorn access lines are replaced by our middleware."""
    log_level = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    handler = ["console"]

    def _logger(lvl: str = log_level) -> dict[str, Any]:
        return {"level": lvl, "handlers": handler, "propagate": False}

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "filters": {
                "redact": {
                    "()": ApiKeyRedactFilter,
                    "secret": os.getenv("ALPHA_VANTAGE_API_KEY") or None,
                },
            },
            "formatters": {"json": {"()": JsonFormatter}},
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "json",
                    "filters": ["redact"],
                    "stream": "ext://sys.stdout",
                },
            },
            "root": {"level": log_level, "handlers": handler},
            "loggers": {
                "uvicorn": _logger(),
                "uvicorn.error": _logger(),
                "uvicorn.access": _logger("WARNING"),
                # one INFO line per upstream request otherwise; data_client logs its own
                "httpx": _logger("WARNING"),
                "quote_relay": _logger(),
                "request": _logger(),
            },
        }
    )
