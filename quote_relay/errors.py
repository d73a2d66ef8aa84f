from __future__ import annotations

import re
from typing import Any

from fastapi import Request, status
from fastapi.responses import JSONResponse

from quote_relay.schemas import ErrorKind, ErrorResult

# Fixed user-facing messages; upstream text never goes here.
MSG_UNAVAILABLE = "Service not available"
MSG_RATE_LIMITED = "Service temporarily unavailable - API rate limit reached"
MSG_NOT_CONFIGURED = "API key not configured"
MSG_STALE_RATE_LIMIT = "Serving cached data due to rate limit"
MSG_STALE_ERROR = "Serving cached data due to API error"

_STATUS_BY_KIND = {
    ErrorKind.CONFIG: status.HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorKind.RATE_LIMIT: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorKind.UPSTREAM: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorKind.MALFORMED: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorKind.INTERNAL: status.HTTP_503_SERVICE_UNAVAILABLE,
}

_APIKEY_PARAM = re.compile(r"(apikey=)[^&\s]+", re.IGNORECASE)
_APIKEY_PHRASE = re.compile(r"API key as [A-Z0-9]+", re.IGNORECASE)


class QuoteRelayError(Exception):
    """Base class for errors raised inside the service."""


class ConfigError(QuoteRelayError):
    """Local misconfiguration (e.g. missing credential). Fatal to the request."""


def status_for(kind: ErrorKind) -> int:
    return _STATUS_BY_KIND[kind]


def sanitize(text: str, secret: str | None = None) -> str:
    """Mask anything that could carry the API key before echoing upstream text."""
    out = _APIKEY_PARAM.sub(r"\1***", text)
    out = _APIKEY_PHRASE.sub("API key", out)
    if secret:
        out = out.replace(secret, "***")
    return out


def error_response(
    kind: ErrorKind, message: str, debug: dict[str, Any] | None = None
) -> JSONResponse:
    body = ErrorResult(message=message, debug=debug)
    return JSONResponse(status_code=status_for(kind), content=body.to_json())


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    # Last resort: every request still ends in the JSON error envelope
    return error_response(ErrorKind.INTERNAL, MSG_UNAVAILABLE)
