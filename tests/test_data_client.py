import httpx
import pytest
from conftest import GOOD_PAYLOAD, INFO_PAYLOAD, NOTE_PAYLOAD, FakeUpstream, run

from quote_relay.config import Settings
from quote_relay.data_client import (
    AlphaVantageClient,
    Malformed,
    RateLimited,
    Success,
    UpstreamError,
    classify_payload,
)
from quote_relay.errors import ConfigError, sanitize

NOW = "2024-05-10T12:00:00+00:00"


def _client(upstream: FakeUpstream, **overrides) -> AlphaVantageClient:
    s = Settings(credential="SECRETKEY123", **overrides)
    return AlphaVantageClient(s, transport=upstream.transport)


# =============================================================================
# classify_payload
# =============================================================================


def test_classify_success_normalizes_fields():
    outcome = classify_payload(GOOD_PAYLOAD, now_iso=NOW)
    assert isinstance(outcome, Success)
    assert outcome.result.to_json() == {
        "status": "success",
        "symbol": "AAPL",
        "price": "123.45",
        "change": "1.23",
        "changePercent": "1.01%",
        "lastTradingDay": "2024-05-10",
        "timestamp": NOW,
        "lastRefreshed": NOW,
    }


def test_classify_rounds_to_two_decimals():
    payload = {"Global Quote": {"01. symbol": "IBM", "05. price": "187.1", "09. change": "-0.005"}}
    result = classify_payload(payload, now_iso=NOW).result
    assert result.price == "187.10"
    assert result.change in {"-0.01", "-0.00"}


def test_classify_optional_fields_may_be_missing():
    payload = {"Global Quote": {"01. symbol": "IBM", "05. price": "187.10"}}
    outcome = classify_payload(payload, now_iso=NOW)
    assert isinstance(outcome, Success)
    body = outcome.result.to_json()
    assert "change" not in body
    assert "changePercent" not in body
    assert "lastTradingDay" not in body


@pytest.mark.parametrize(
    "payload",
    [
        {},
        {"Global Quote": {}},
        {"Global Quote": {"01. symbol": "", "05. price": "1.00"}},
        {"Global Quote": {"01. symbol": "AAPL", "05. price": "n/a"}},
        {"Global Quote": {"01. symbol": "AAPL"}},
        ["not", "an", "object"],
    ],
)
def test_classify_malformed(payload):
    assert isinstance(classify_payload(payload, now_iso=NOW), Malformed)


def test_error_message_wins_over_note_and_quote():
    payload = {"Error Message": "Invalid API call.", "Note": "slow down", **GOOD_PAYLOAD}
    outcome = classify_payload(payload)
    assert isinstance(outcome, UpstreamError)
    assert outcome.reason == "Invalid API call."


@pytest.mark.parametrize("payload", [NOTE_PAYLOAD, INFO_PAYLOAD])
def test_throttle_notes_are_rate_limited_and_sanitized(payload):
    outcome = classify_payload({**payload, **GOOD_PAYLOAD}, secret="SECRETKEY123")
    assert isinstance(outcome, RateLimited)
    assert "SECRETKEY123" not in outcome.reason


def test_sanitize_masks_query_param_and_secret():
    text = "GET https://x/query?symbol=AAPL&apikey=abc123&x=1 failed for abc123"
    out = sanitize(text, "abc123")
    assert "abc123" not in out
    assert "apikey=***" in out


# =============================================================================
# AlphaVantageClient.fetch_quote
# =============================================================================


def test_fetch_sends_expected_query():
    upstream = FakeUpstream(GOOD_PAYLOAD)
    outcome = run(_client(upstream, symbol="AAPL").fetch_quote("AAPL"))
    assert isinstance(outcome, Success)
    params = upstream.requests[0].url.params
    assert params["function"] == "GLOBAL_QUOTE"
    assert params["symbol"] == "AAPL"
    assert params["apikey"] == "SECRETKEY123"


def test_fetch_without_credential_raises_config_error():
    upstream = FakeUpstream(GOOD_PAYLOAD)
    client = AlphaVantageClient(Settings(), transport=upstream.transport)
    with pytest.raises(ConfigError):
        run(client.fetch_quote("AAPL"))
    assert upstream.calls == 0


def test_fetch_http_500_is_upstream_error():
    upstream = FakeUpstream(lambda req: httpx.Response(500, text="boom"))
    assert isinstance(run(_client(upstream).fetch_quote("AAPL")), UpstreamError)


def test_fetch_http_429_is_rate_limited():
    upstream = FakeUpstream(lambda req: httpx.Response(429))
    assert isinstance(run(_client(upstream).fetch_quote("AAPL")), RateLimited)


def test_fetch_non_json_body_is_malformed():
    upstream = FakeUpstream(lambda req: httpx.Response(200, text="<html>oops</html>"))
    assert isinstance(run(_client(upstream).fetch_quote("AAPL")), Malformed)


def test_fetch_timeout_is_upstream_error():
    def _timeout(request):
        raise httpx.ReadTimeout("timed out", request=request)

    outcome = run(_client(FakeUpstream(_timeout)).fetch_quote("AAPL"))
    assert isinstance(outcome, UpstreamError)
    assert "timeout" in outcome.reason


def test_fetch_connect_error_reason_hides_key():
    def _down(request):
        raise httpx.ConnectError(f"cannot reach {request.url}", request=request)

    outcome = run(_client(FakeUpstream(_down)).fetch_quote("AAPL"))
    assert isinstance(outcome, UpstreamError)
    assert "SECRETKEY123" not in outcome.reason
