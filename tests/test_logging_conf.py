import json
import logging

from quote_relay.logging_conf import ApiKeyRedactFilter, JsonFormatter


def _record(msg, *args):
    return logging.LogRecord("quote_relay.data_client", logging.INFO, __file__, 1, msg, args, None)


def test_redact_filter_masks_query_param_and_secret():
    url = "https://x/query?apikey=SECRETKEY123&x=1"
    rec = _record("GET %s failed for key %s", url, "SECRETKEY123")
    assert ApiKeyRedactFilter("SECRETKEY123").filter(rec) is True
    assert "SECRETKEY123" not in rec.getMessage()
    assert "apikey=***" in rec.getMessage()


def test_redact_filter_leaves_clean_records_alone():
    rec = _record("cache hit for %s", "aapl")
    ApiKeyRedactFilter().filter(rec)
    assert rec.args == ("aapl",)


def test_json_formatter_fields():
    line = JsonFormatter().format(_record("quote refreshed for %s", "AAPL"))
    payload = json.loads(line)
    assert payload["message"] == "quote refreshed for AAPL"
    assert payload["service"] == "quote-relay"
    assert payload["logger"] == "quote_relay.data_client"
    assert payload["level"] == "INFO"
