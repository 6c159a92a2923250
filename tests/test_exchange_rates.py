from datetime import date, timedelta
from decimal import Decimal

import pytest

from budget_ledger.core.errors import ExchangeRateRequired, ValidationError
from budget_ledger.models import ExchangeRate
from budget_ledger.services.exchange_rates import (
    ExchangeRateResolver,
    RateSeverity,
    classify_staleness,
    most_recent_rates_date,
    store_rates,
)


ON = date(2024, 3, 15)


@pytest.mark.parametrize(
    "days, severity",
    [
        (0, RateSeverity.NONE),
        (1, RateSeverity.RECENT),
        (7, RateSeverity.RECENT),
        (8, RateSeverity.OUTDATED),
        (30, RateSeverity.OUTDATED),
        (31, RateSeverity.OLD),
        (None, RateSeverity.CRITICAL),
    ],
)
def test_classify_staleness_thresholds(days, severity):
    assert classify_staleness(days) == severity


def test_classify_staleness_thresholds_are_configurable():
    assert classify_staleness(5, recent_max_days=3, outdated_max_days=10) == RateSeverity.OUTDATED


def test_same_currency_is_an_exact_match(db):
    resolution = ExchangeRateResolver(db).resolve(ON, "usd", "USD")
    assert resolution.rate == Decimal("1")
    assert resolution.exact_match is True
    assert resolution.severity == RateSeverity.NONE


def test_exact_date_rate(db, add_rate):
    add_rate(ON, "EUR", "USD", "1.0850")
    resolution = ExchangeRateResolver(db).resolve(ON, "EUR", "USD")
    assert resolution.rate == Decimal("1.085")
    assert resolution.exact_match is True
    assert resolution.days_difference == 0
    assert resolution.severity == RateSeverity.NONE
    assert resolution.requires_manual_input is False


def test_ten_day_old_rate_is_outdated(db, add_rate):
    add_rate(ON - timedelta(days=10), "EUR", "USD", "1.08")
    resolution = ExchangeRateResolver(db).resolve(ON, "EUR", "USD")
    assert resolution.exact_match is False
    assert resolution.rate_date == ON - timedelta(days=10)
    assert resolution.days_difference == 10
    assert resolution.severity == RateSeverity.OUTDATED


def test_rate_older_than_a_month_is_old(db, add_rate):
    add_rate(ON - timedelta(days=45), "EUR", "USD", "1.08")
    assert ExchangeRateResolver(db).resolve(ON, "EUR", "USD").severity == RateSeverity.OLD


def test_no_rate_within_lookback_is_critical(db, add_rate):
    add_rate(ON - timedelta(days=61), "EUR", "USD", "1.08")
    resolution = ExchangeRateResolver(db).resolve(ON, "EUR", "USD")
    assert resolution.severity == RateSeverity.CRITICAL
    assert resolution.requires_manual_input is True
    assert resolution.rate is None
    assert resolution.available is False


def test_future_rates_are_never_used(db, add_rate):
    add_rate(ON + timedelta(days=1), "EUR", "USD", "1.09")
    resolution = ExchangeRateResolver(db).resolve(ON, "EUR", "USD")
    assert resolution.requires_manual_input is True


def test_inverse_quote_is_derived(db, add_rate):
    add_rate(ON - timedelta(days=2), "USD", "EUR", "0.8")
    resolution = ExchangeRateResolver(db).resolve(ON, "EUR", "USD")
    assert resolution.rate == Decimal("1.25")
    assert resolution.severity == RateSeverity.RECENT


def test_cross_rate_through_pivot_uses_older_quote_date(db, add_rate):
    add_rate(ON - timedelta(days=1), "USD", "EUR", "0.8")
    add_rate(ON - timedelta(days=3), "USD", "GBP", "0.7")
    resolution = ExchangeRateResolver(db).resolve(ON, "EUR", "GBP")
    assert resolution.rate == Decimal("0.875")
    assert resolution.rate_date == ON - timedelta(days=3)
    assert resolution.days_difference == 3


def test_freshest_candidate_wins(db, add_rate):
    add_rate(ON - timedelta(days=20), "EUR", "USD", "1.05")
    add_rate(ON - timedelta(days=1), "USD", "EUR", "0.8")
    resolution = ExchangeRateResolver(db).resolve(ON, "EUR", "USD")
    assert resolution.rate == Decimal("1.25")
    assert resolution.rate_date == ON - timedelta(days=1)


def test_manual_rate_overrides_lookup(db, add_rate):
    add_rate(ON, "EUR", "USD", "1.08")
    resolution = ExchangeRateResolver(db).resolve(ON, "EUR", "USD", manual_rate="1.1")
    assert resolution.rate == Decimal("1.1")
    assert resolution.manual is True
    assert resolution.severity == RateSeverity.NONE
    assert resolution.rate_date == ON


@pytest.mark.parametrize("manual", ["0", "-1.2", "abc"])
def test_invalid_manual_rate_is_rejected(db, manual):
    with pytest.raises(ValidationError):
        ExchangeRateResolver(db).resolve(ON, "EUR", "USD", manual_rate=manual)


def test_require_raises_when_manual_input_needed(db):
    with pytest.raises(ExchangeRateRequired) as excinfo:
        ExchangeRateResolver(db).require(ON, "EUR", "USD")
    assert excinfo.value.kind == "exchange_rate_required"
    assert excinfo.value.extra["from_currency"] == "EUR"


def test_convert_rounds_to_target_currency(db, add_rate):
    add_rate(ON, "USD", "JPY", "151.37")
    converted, resolution = ExchangeRateResolver(db).convert(Decimal("10.55"), ON, "USD", "JPY")
    assert converted == Decimal("1597")
    assert resolution.exact_match is True


def test_resolutions_are_memoized_per_resolver(db, add_rate):
    add_rate(ON, "EUR", "USD", "1.08")
    resolver = ExchangeRateResolver(db)
    first = resolver.resolve(ON, "EUR", "USD")
    db.query(ExchangeRate).delete()
    db.commit()
    assert resolver.resolve(ON, "EUR", "USD") is first
    assert ExchangeRateResolver(db).resolve(ON, "EUR", "USD").requires_manual_input is True


def test_availability_payload_shape(db, add_rate):
    add_rate(ON - timedelta(days=4), "USD", "EUR", "0.8")
    payload = ExchangeRateResolver(db).resolve(ON, "EUR", "USD").as_dict()
    assert payload["available"] is True
    assert payload["exactMatch"] is False
    assert payload["requiresManualInput"] is False
    assert payload["severity"] == "recent"
    assert payload["rateDate"] == (ON - timedelta(days=4)).isoformat()
    assert payload["daysDifference"] == 4
    assert payload["rateDisplay"] == {"from": "EUR", "to": "USD", "value": "1.2500000000"}


def test_store_rates_never_overwrites(db, add_rate):
    add_rate(ON, "USD", "EUR", "0.9")
    inserted = store_rates(db, ON, "USD", {"EUR": Decimal("0.95"), "GBP": Decimal("0.79"), "USD": Decimal("1")}, source="test")
    db.commit()
    assert inserted == 1
    eur = db.query(ExchangeRate).filter(ExchangeRate.to_currency == "EUR").one()
    assert eur.rate == Decimal("0.9")
    assert most_recent_rates_date(db) == ON
    assert most_recent_rates_date(db, on_or_before=ON - timedelta(days=1)) is None
