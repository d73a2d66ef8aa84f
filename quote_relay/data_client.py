"""
Alpha Vantage GLOBAL_QUOTE client.

fetch_quote() never raises for upstream trouble; it returns one of:
  Success(result)      well-formed quote (symbol + numeric price)
  RateLimited(reason)  "Note"/"Information" payload or HTTP 429
  UpstreamError(reason) "Error Message" payload, other non-2xx, timeout, network error
  Malformed(reason)    2xx but no usable "Global Quote"

Notes / Pitfalls:
- Upstream payloads can carry several advisory keys at once; the error check
  runs before the throttle check, which runs before structural validation.
- Only symbol and price are mandatory. change / change percent / latest
  trading day pass through as None when missing.
- Reasons are sanitized: the API key never leaves this module.
- A missing credential raises ConfigError (local misconfiguration, not upstream).
"""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass
from typing import Any

import httpx

from quote_relay.config import Settings
from quote_relay.errors import ConfigError, sanitize
from quote_relay.schemas import QuoteResult
from quote_relay.utils import utc_now_iso

logger = logging.getLogger("quote_relay.data_client")


# --------------------------------------------------------------------------------------
# Outcomes
# --------------------------------------------------------------------------------------
@dataclass(frozen=True)
class Success:
    result: QuoteResult


@dataclass(frozen=True)
class RateLimited:
    reason: str


@dataclass(frozen=True)
class UpstreamError:
    reason: str


@dataclass(frozen=True)
class Malformed:
    reason: str


Outcome = Success | RateLimited | UpstreamError | Malformed


# --------------------------------------------------------------------------------------
# Payload classification
# --------------------------------------------------------------------------------------
def _parse_number(raw: Any) -> float | None:
    if raw is None:
        return None
    try:
        val = float(str(raw).strip())
    except ValueError:
        return None
    if math.isnan(val) or math.isinf(val):
        return None
    return val


def _blank_to_none(raw: Any) -> str | None:
    if raw is None:
        return None
    s = str(raw).strip()
    return s or None


def normalize_global_quote(quote: dict[str, Any], now_iso: str) -> QuoteResult | None:
    """Map a "Global Quote" object onto QuoteResult, or None if symbol/price are unusable."""
    symbol = _blank_to_none(quote.get("01. symbol"))
    price = _parse_number(quote.get("05. price"))
    if symbol is None or price is None:
        return None
    change = _parse_number(quote.get("09. change"))
    return QuoteResult(
        symbol=symbol,
        price=f"{price:.2f}",
        change=f"{change:.2f}" if change is not None else None,
        change_percent=_blank_to_none(quote.get("10. change percent")),
        last_trading_day=_blank_to_none(quote.get("07. latest trading day")),
        timestamp=now_iso,
        last_refreshed=now_iso,
    )


def classify_payload(
    data: Any, *, secret: str | None = None, now_iso: str | None = None
) -> Outcome:
    """Classify a decoded 2xx body. Order: error > throttle > structure > fields."""
    if not isinstance(data, dict):
        return Malformed("response body is not a JSON object")

    if data.get("Error Message"):
        return UpstreamError(sanitize(str(data["Error Message"]), secret))

    for note_key in ("Note", "Information"):
        if data.get(note_key):
            return RateLimited(sanitize(str(data[note_key]), secret))

    quote = data.get("Global Quote")
    if not isinstance(quote, dict) or not quote:
        return Malformed("no Global Quote data")

    result = normalize_global_quote(quote, now_iso or utc_now_iso())
    if result is None:
        return Malformed("invalid data format: empty symbol or non-numeric price")
    return Success(result)


# --------------------------------------------------------------------------------------
# Client
# --------------------------------------------------------------------------------------
class AlphaVantageClient:
    """Single-request quote fetcher with a bounded timeout."""

    def __init__(self, settings: Settings, *, transport: httpx.AsyncBaseTransport | None = None):
        self.settings = settings
        # Injected in tests (httpx.MockTransport); real network otherwise
        self._transport = transport

    @property
    def _secret(self) -> str | None:
        cred = self.settings.credential
        return cred.get_secret_value() if cred is not None else None

    async def fetch_quote(self, symbol: str) -> Outcome:
        secret = self._secret
        if not secret:
            raise ConfigError("ALPHA_VANTAGE_API_KEY is not set")

        params = {"function": "GLOBAL_QUOTE", "symbol": symbol, "apikey": secret}
        timeout = httpx.Timeout(self.settings.upstream_timeout_s)
        logger.info("upstream call: GLOBAL_QUOTE symbol=%s", symbol)
        start = time.perf_counter()
        try:
            async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as client:
                r = await client.get(self.settings.upstream_url, params=params)
        except httpx.TimeoutException as e:
            return UpstreamError(sanitize(f"upstream timeout: {type(e).__name__}", secret))
        except httpx.RequestError as e:
            return UpstreamError(sanitize(f"upstream request failed: {e}", secret))

        logger.info(
            "upstream reply: status=%s duration_s=%.3f",
            r.status_code,
            time.perf_counter() - start,
        )
        if r.status_code == 429:
            return RateLimited(f"upstream HTTP {r.status_code}")
        if not r.is_success:
            return UpstreamError(f"upstream HTTP {r.status_code}")

        try:
            data = r.json()
        except ValueError:
            return Malformed("response body is not valid JSON")
        return classify_payload(data, secret=secret)
