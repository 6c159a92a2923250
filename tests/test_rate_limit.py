import json
from types import SimpleNamespace

from limits import parse
from slowapi.errors import RateLimitExceeded
from starlette.requests import Request

from budget_ledger.core.security import create_access_token
from budget_ledger.middlewares.rate_limit import rate_limit_exceeded_handler, rate_limit_key, retry_after_seconds


def _request(headers=None, client=("203.0.113.9", 5000)):
    scope = {
        "type": "http",
        "method": "POST",
        "path": "/api/transactions",
        "headers": [(key.lower().encode(), value.encode()) for key, value in (headers or {}).items()],
        "client": client,
        "query_string": b"",
    }
    return Request(scope)


def _exceeded(limit_string):
    return RateLimitExceeded(SimpleNamespace(limit=parse(limit_string), error_message=None))


def test_key_uses_token_subject():
    token = create_access_token("17")
    assert rate_limit_key(_request({"Authorization": f"Bearer {token}"})) == "user:17"


def test_key_falls_back_to_client_address():
    assert rate_limit_key(_request()) == "ip:203.0.113.9"
    assert rate_limit_key(_request({"Authorization": "Bearer garbage"})) == "ip:203.0.113.9"


def test_retry_after_follows_limit_window():
    assert retry_after_seconds(_exceeded("10 per 10 seconds")) == 10
    assert retry_after_seconds(_exceeded("120 per hour")) == 3600


def test_handler_returns_retry_hint():
    response = rate_limit_exceeded_handler(_request(), _exceeded("10 per 10 seconds"))

    assert response.status_code == 429
    assert response.headers["Retry-After"] == "10"
    body = json.loads(response.body)
    assert body == {"detail": "Too many requests. Please slow down.", "kind": "rate_limited", "retryAfter": 10}
