import asyncio
from collections.abc import Callable

import httpx
import pytest

from quote_relay.config import Settings
from quote_relay.service import QuoteService

# 2024-05-10T12:00:00Z
T0 = 1715342400.0

GOOD_PAYLOAD = {
    "Global Quote": {
        "01. symbol": "AAPL",
        "02. open": "122.0000",
        "05. price": "123.4500",
        "07. latest trading day": "2024-05-10",
        "09. change": "1.2300",
        "10. change percent": "1.01%",
    }
}

NOTE_PAYLOAD = {
    "Note": "Thank you for using Alpha Vantage! Our standard API call frequency is "
    "5 calls per minute. We have detected your API key as SECRETKEY123 and ..."
}

INFO_PAYLOAD = {
    "Information": "We have detected your API key as SECRETKEY123 and our standard "
    "API rate limit is 25 requests per day."
}


class FakeClock:
    def __init__(self, now: float = T0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeUpstream:
    """Scripted upstream: each call pops the next reply (the last one repeats)."""

    def __init__(self, *replies: Callable[[httpx.Request], httpx.Response] | dict):
        self.replies = list(replies) or [GOOD_PAYLOAD]
        self.requests: list[httpx.Request] = []

    @property
    def calls(self) -> int:
        return len(self.requests)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        if callable(reply):
            return reply(request)
        return httpx.Response(200, json=reply)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


def run(coro):
    return asyncio.run(coro)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings():
    return Settings(symbol="AAPL", cache_ttl_seconds=300, credential="SECRETKEY123")


@pytest.fixture
def make_service(settings, clock):
    def _make(upstream: FakeUpstream, **overrides) -> QuoteService:
        s = settings.model_copy(update=overrides) if overrides else settings
        return QuoteService.from_settings(s, transport=upstream.transport, clock=clock)

    return _make
