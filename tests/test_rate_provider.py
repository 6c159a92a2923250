from datetime import date
from decimal import Decimal

import httpx
import pytest

from budget_ledger.models import ExchangeRate
from budget_ledger.services import rate_provider
from budget_ledger.services.rate_provider import (
    ExchangeRateApiError,
    ExchangeRateClient,
    parse_timeframe_quotes,
    refresh_rates,
)


ON = date(2024, 1, 31)


def _quotes_payload(**quotes):
    return {"success": True, "quotes": {ON.isoformat(): {f"USD{code}": value for code, value in quotes.items()}}}


@pytest.fixture(autouse=True)
def no_sleep(monkeypatch):
    monkeypatch.setattr(rate_provider.time, "sleep", lambda *_: None)


def test_parse_timeframe_quotes():
    payload = _quotes_payload(EUR=0.92, GBP="0.79", BAD="x", JPY=0)
    payload["quotes"][ON.isoformat()]["EURGBP"] = 0.86

    assert parse_timeframe_quotes(payload, ON) == {"EUR": Decimal("0.92"), "GBP": Decimal("0.79")}
    assert parse_timeframe_quotes(payload, date(2024, 2, 1)) == {}


def test_fetch_sends_day_range_and_key():
    seen = {}

    def handler(request):
        seen.update(dict(request.url.params))
        return httpx.Response(200, json=_quotes_payload(EUR=0.92))

    rates = ExchangeRateClient(transport=httpx.MockTransport(handler)).fetch_rates(ON)

    assert rates == {"EUR": Decimal("0.92")}
    assert seen == {
        "start_date": "2024-01-31",
        "end_date": "2024-01-31",
        "source": "USD",
        "access_key": "rates_key",
    }


def test_server_errors_are_retried():
    calls = []

    def handler(request):
        calls.append(request)
        if len(calls) < 3:
            return httpx.Response(502, text="bad gateway")
        return httpx.Response(200, json=_quotes_payload(EUR=0.9))

    rates = ExchangeRateClient(transport=httpx.MockTransport(handler)).fetch_rates(ON)

    assert len(calls) == 3
    assert rates["EUR"] == Decimal("0.9")


def test_client_errors_are_not_retried():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(401, json={"success": False})

    with pytest.raises(ExchangeRateApiError) as excinfo:
        ExchangeRateClient(transport=httpx.MockTransport(handler)).fetch_rates(ON)

    assert len(calls) == 1
    assert excinfo.value.status_code == 401


def test_provider_failure_payload_raises():
    def handler(request):
        return httpx.Response(200, json={"success": False, "error": {"info": "Invalid access key"}})

    with pytest.raises(ExchangeRateApiError) as excinfo:
        ExchangeRateClient(transport=httpx.MockTransport(handler)).fetch_rates(ON)

    assert excinfo.value.message == "Invalid access key"


def test_network_errors_surface_after_retries():
    calls = []

    def handler(request):
        calls.append(request)
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(ExchangeRateApiError):
        ExchangeRateClient(transport=httpx.MockTransport(handler)).fetch_rates(ON)

    assert len(calls) == 3


def test_refresh_stores_rates_once(db):
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, json=_quotes_payload(EUR=0.92, GBP=0.79))

    client = ExchangeRateClient(transport=httpx.MockTransport(handler))

    assert refresh_rates(db, ON, client=client) == 2
    assert refresh_rates(db, ON, client=client) == 0
    assert len(calls) == 1
    stored = {row.to_currency: row.rate for row in db.query(ExchangeRate).all()}
    assert stored == {"EUR": Decimal("0.92"), "GBP": Decimal("0.79")}
    assert {row.source for row in db.query(ExchangeRate).all()} == {"exchangerate.host"}
