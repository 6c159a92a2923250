import time
import logging
from datetime import date
from decimal import Decimal, InvalidOperation

import httpx
from sqlalchemy.orm import Session

from budget_ledger.core.config import get_settings
from budget_ledger.models import ExchangeRate
from budget_ledger.services.exchange_rates import store_rates


settings = get_settings()
logger = logging.getLogger(__name__)

FEED_BASE_CURRENCY = "USD"
FEED_SOURCE = "exchangerate.host"


class ExchangeRateApiError(Exception):
    def __init__(self, message: str, *, status_code: int | None = None, raw: str | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.raw = raw


def parse_timeframe_quotes(payload: dict, on_date: date, base_currency: str = FEED_BASE_CURRENCY) -> dict[str, Decimal]:
    """``{"quotes": {"2024-01-31": {"USDEUR": 0.92, ...}}}`` -> ``{"EUR": Decimal("0.92")}``."""
    day_quotes = (payload.get("quotes") or {}).get(on_date.isoformat()) or {}
    rates: dict[str, Decimal] = {}
    for pair, value in day_quotes.items():
        pair = str(pair or "").upper()
        if len(pair) != 6 or not pair.startswith(base_currency):
            continue
        try:
            rate = Decimal(str(value))
        except (InvalidOperation, ValueError):
            logger.warning("Skipping unparseable quote %s=%r", pair, value)
            continue
        if rate > 0:
            rates[pair[3:]] = rate
    return rates


class ExchangeRateClient:
    def __init__(self, *, transport: httpx.BaseTransport | None = None):
        self.base_url = settings.exchange_rate_api_url
        self.api_key = settings.exchange_rate_api_key
        self.timeout = settings.exchange_rate_timeout_seconds
        self.retry_count = max(0, int(settings.exchange_rate_retry_count))
        self._transport = transport

    def _request(self, params: dict) -> dict:
        last_exc = None
        for attempt in range(self.retry_count + 1):
            start = time.time()
            try:
                with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                    response = client.get(self.base_url, params=params)
                duration_ms = round((time.time() - start) * 1000, 2)
                logger.info("Exchange rate API status=%s duration=%sms", response.status_code, duration_ms)
                if response.status_code >= 500 and attempt < self.retry_count:
                    time.sleep(0.5 * (attempt + 1))
                    continue
                if response.status_code >= 400:
                    raise ExchangeRateApiError(
                        f"Exchange rate API returned HTTP {response.status_code}.",
                        status_code=response.status_code,
                        raw=response.text,
                    )
                try:
                    data = response.json()
                except ValueError as exc:
                    raise ExchangeRateApiError(
                        "Exchange rate API returned invalid JSON.", status_code=response.status_code, raw=response.text
                    ) from exc
                if not data.get("success", False):
                    error = data.get("error") or {}
                    message = error.get("info") if isinstance(error, dict) else str(error)
                    raise ExchangeRateApiError(message or "Exchange rate API reported a failure.", raw=response.text)
                return data
            except ExchangeRateApiError as exc:
                last_exc = exc
                if exc.status_code is not None and exc.status_code < 500 and exc.status_code != 429:
                    raise last_exc
                if attempt < self.retry_count:
                    time.sleep(0.5 * (attempt + 1))
                    continue
                raise last_exc
            except (httpx.TimeoutException, httpx.NetworkError, httpx.RemoteProtocolError) as exc:
                last_exc = ExchangeRateApiError("Unable to reach exchange rate provider.", raw=str(exc))
                if attempt < self.retry_count:
                    time.sleep(0.5 * (attempt + 1))
                    continue
                raise last_exc

    def fetch_rates(self, on_date: date) -> dict[str, Decimal]:
        params = {
            "start_date": on_date.isoformat(),
            "end_date": on_date.isoformat(),
            "source": FEED_BASE_CURRENCY,
        }
        if self.api_key:
            params["access_key"] = self.api_key
        rates = parse_timeframe_quotes(self._request(params), on_date)
        if not rates:
            raise ExchangeRateApiError(f"No quotes returned for {on_date.isoformat()}.")
        return rates


def refresh_rates(db: Session, on_date: date, client: ExchangeRateClient | None = None) -> int:
    """Fetch and store one day of USD-based quotes; days already stored are skipped."""
    already = (
        db.query(ExchangeRate.id)
        .filter(ExchangeRate.date == on_date, ExchangeRate.from_currency == FEED_BASE_CURRENCY)
        .first()
    )
    if already:
        logger.info("Exchange rates for %s already stored, skipping fetch", on_date)
        return 0
    client = client or ExchangeRateClient()
    rates = client.fetch_rates(on_date)
    inserted = store_rates(db, on_date, FEED_BASE_CURRENCY, rates, source=FEED_SOURCE)
    db.commit()
    logger.info("Stored %s exchange rate(s) for %s", inserted, on_date)
    return inserted
