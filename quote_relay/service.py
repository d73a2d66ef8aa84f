"""
Request policy for the quote endpoint.

Each request walks these gates in order and stops at the first that answers:

  1. rate-limit window open  -> stale copy, else 503 (no upstream call)
  2. fresh cache hit         -> cached quote verbatim
  3. upstream fetch
       Success      -> cache for TTL, return
       RateLimited  -> open the window, stale copy, else 503
       UpstreamError / Malformed / unexpected exception -> stale copy, else 503
       ConfigError  -> 500, no stale fallback

An expired entry never short-circuits step 3: the service revalidates against
the upstream and only serves the stale copy when that attempt fails. Nothing
is retried inside a request; the polling client's next call is the retry.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import httpx

from quote_relay.backends import JsonFileBackend, KeyValueBackend
from quote_relay.cache import QuoteStore
from quote_relay.config import Settings
from quote_relay.data_client import (
    AlphaVantageClient,
    Malformed,
    Outcome,
    RateLimited,
    Success,
    UpstreamError,
)
from quote_relay.errors import (
    MSG_NOT_CONFIGURED,
    MSG_RATE_LIMITED,
    MSG_STALE_ERROR,
    MSG_STALE_RATE_LIMIT,
    MSG_UNAVAILABLE,
    ConfigError,
    status_for,
)
from quote_relay.observability import CACHE_LOOKUPS, RATE_LIMIT_ACTIVE, UPSTREAM_CALLS
from quote_relay.rate_limit import RateLimiter
from quote_relay.schemas import ErrorKind, ErrorResult
from quote_relay.utils import epoch_to_iso

logger = logging.getLogger("quote_relay.service")


@dataclass(frozen=True)
class QuoteResponse:
    status_code: int
    body: dict[str, Any]
    # fresh | upstream | stale | error
    source: str = field(default="error")


class QuoteService:
    def __init__(
        self,
        settings: Settings,
        *,
        store: QuoteStore,
        limiter: RateLimiter,
        client: AlphaVantageClient,
    ) -> None:
        self.settings = settings
        self.store = store
        self.limiter = limiter
        self.client = client

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Callable[[], float] = time.time,
    ) -> QuoteService:
        backend: KeyValueBackend | None = None
        if settings.shared_cache_dir:
            backend = JsonFileBackend(settings.shared_cache_dir)
        return cls(
            settings,
            store=QuoteStore(clock=clock, backend=backend),
            limiter=RateLimiter(
                window_seconds=settings.rate_limit_seconds, clock=clock, backend=backend
            ),
            client=AlphaVantageClient(settings, transport=transport),
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    async def get_quote(self) -> QuoteResponse:
        key = self.settings.cache_key

        if self.limiter.is_limited():
            RATE_LIMIT_ACTIVE.set(1)
            logger.info(
                "rate limit active until %s; skipping upstream",
                epoch_to_iso(self.limiter.blocked_until),
            )
            return self._fallback(key, ErrorKind.RATE_LIMIT, reason=None)
        RATE_LIMIT_ACTIVE.set(0)

        cached = self.store.get(key)
        if cached is not None:
            CACHE_LOOKUPS.labels(result="fresh").inc()
            logger.debug("cache hit for %s", key)
            return QuoteResponse(200, cached.to_json(), source="fresh")
        CACHE_LOOKUPS.labels(result="miss").inc()

        try:
            outcome = await self.client.fetch_quote(self.settings.symbol)
        except ConfigError as e:
            logger.error("configuration error: %s", e)
            return self._error(ErrorKind.CONFIG, MSG_NOT_CONFIGURED, reason=None)
        except Exception as e:
            logger.exception("unexpected error fetching quote")
            UPSTREAM_CALLS.labels(outcome="exception").inc()
            reason = f"unexpected error: {type(e).__name__}"
            return self._fallback(key, ErrorKind.UPSTREAM, reason=reason)

        return self._handle_outcome(key, outcome)

    @property
    def _key_configured(self) -> bool:
        cred = self.settings.credential
        return bool(cred and cred.get_secret_value())

    def reset_rate_limit(self) -> None:
        self.limiter.reset()
        RATE_LIMIT_ACTIVE.set(0)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _handle_outcome(self, key: str, outcome: Outcome) -> QuoteResponse:
        if isinstance(outcome, Success):
            UPSTREAM_CALLS.labels(outcome="success").inc()
            self.store.set(key, outcome.result, self.settings.cache_ttl_seconds)
            logger.info(
                "quote refreshed for %s; cached for %ss",
                outcome.result.symbol,
                self.settings.cache_ttl_seconds,
            )
            return QuoteResponse(200, outcome.result.to_json(), source="upstream")

        if isinstance(outcome, RateLimited):
            UPSTREAM_CALLS.labels(outcome="rate_limited").inc()
            logger.warning("upstream throttled: %s", outcome.reason)
            self.limiter.mark_limited()
            RATE_LIMIT_ACTIVE.set(1)
            return self._fallback(key, ErrorKind.RATE_LIMIT, reason=outcome.reason)

        if isinstance(outcome, Malformed):
            UPSTREAM_CALLS.labels(outcome="malformed").inc()
            logger.error("malformed upstream reply: %s", outcome.reason)
            return self._fallback(key, ErrorKind.MALFORMED, reason=outcome.reason)

        if isinstance(outcome, UpstreamError):
            UPSTREAM_CALLS.labels(outcome="upstream_error").inc()
            logger.error("upstream error: %s", outcome.reason)
            return self._fallback(key, ErrorKind.UPSTREAM, reason=outcome.reason)

        raise TypeError(f"unknown outcome: {outcome!r}")

    def _fallback(self, key: str, kind: ErrorKind, reason: str | None) -> QuoteResponse:
        stale = self.store.get_stale(key)
        if stale is not None:
            CACHE_LOOKUPS.labels(result="stale").inc()
            note = MSG_STALE_RATE_LIMIT if kind is ErrorKind.RATE_LIMIT else MSG_STALE_ERROR
            logger.info("serving stale quote for %s (%s)", key, kind.value)
            return QuoteResponse(200, stale.as_stale(note).to_json(), source="stale")

        message = MSG_RATE_LIMITED if kind is ErrorKind.RATE_LIMIT else MSG_UNAVAILABLE
        return self._error(kind, message, reason=reason)

    def _error(self, kind: ErrorKind, message: str, reason: str | None) -> QuoteResponse:
        debug = None
        if self.settings.expose_debug:
            debug = {
                "stockSymbol": self.settings.symbol,
                "apiKeyConfigured": self._key_configured,
                "rateLimitActive": self.limiter.blocked_until is not None,
                "rateLimitUntil": epoch_to_iso(self.limiter.blocked_until),
            }
            if reason:
                debug["reason"] = reason
        body = ErrorResult(message=message, debug=debug).to_json()
        return QuoteResponse(status_for(kind), body, source="error")
