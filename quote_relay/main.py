# quote_relay/main.py
from __future__ import annotations

import time
from collections.abc import Callable

import httpx
from fastapi import FastAPI, Request

from quote_relay.config import Settings, load_settings
from quote_relay.errors import unhandled_exception_handler
from quote_relay.logging_conf import setup_logging

# --- Observability ---
from quote_relay.observability import metrics_endpoint, timing_middleware

# --- Routers ---
from quote_relay.routers import ticker  # /api/stock-ticker, /api/admin/...
from quote_relay.schemas import HealthResponse, VersionResponse
from quote_relay.service import QuoteService
from quote_relay.utils import epoch_to_iso, utc_now_iso
from quote_relay.version import SERVICE_NAME, service_version_payload


def create_app(
    settings: Settings | None = None,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
    clock: Callable[[], float] = time.time,
) -> FastAPI:
    """Build the app with one QuoteService shared by every request."""
    settings = settings or load_settings()
    app = FastAPI(title="Quote Relay", version=service_version_payload()["service_version"])
    app.state.quote_service = QuoteService.from_settings(settings, transport=transport, clock=clock)

    app.include_router(ticker.router)
    app.middleware("http")(timing_middleware)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    # --- Utility endpoints ---
    @app.get("/health", response_model=HealthResponse)
    def health(request: Request):
        limiter = request.app.state.quote_service.limiter
        limited = limiter.is_limited()
        return HealthResponse(
            status="degraded" if limited else "ok",
            as_of=utc_now_iso(),
            service=SERVICE_NAME,
            rate_limited=limited,
            rate_limited_until=epoch_to_iso(limiter.blocked_until) if limited else None,
        )

    @app.get("/version", response_model=VersionResponse)
    def version():
        return VersionResponse(**service_version_payload())

    @app.get("/metrics")
    def metrics():
        return metrics_endpoint()

    return app


setup_logging()
app = create_app()
