from decimal import Decimal

import pytest

from budget_ledger.services.amounts import (
    clamp_amount,
    exceeds_max_amount,
    get_max_amount_display,
    get_max_amount_string,
    validate_amount,
)
from budget_ledger.services.currency import minor_unit


def test_max_amount_strings_follow_currency_exponent():
    assert get_max_amount_string("USD") == "999999999999999.99"
    assert get_max_amount_string("JPY") == "999999999999999"
    assert get_max_amount_string("KWD") == "999999999999999.999"
    assert get_max_amount_string("CLF") == "999999999999999.9999"


def test_max_amount_display_uses_thousands_separators():
    assert get_max_amount_display("USD") == "999,999,999,999,999.99"
    assert get_max_amount_display("JPY") == "999,999,999,999,999"


@pytest.mark.parametrize("code", ["USD", "JPY", "KWD", "CLF", "EUR"])
def test_max_amount_is_allowed_but_one_minor_unit_more_is_not(code):
    maximum = get_max_amount_string(code)
    assert not exceeds_max_amount(maximum, code)
    above = format(Decimal(maximum) + minor_unit(code), "f")
    assert exceeds_max_amount(above, code)


def test_exceeds_max_amount_ignores_commas_and_leading_zeros():
    assert not exceeds_max_amount("000999,999,999,999,999.99", "USD")
    assert exceeds_max_amount("1,000,000,000,000,000", "USD")


def test_exceeds_max_amount_checks_fraction_at_integer_limit():
    assert exceeds_max_amount("999999999999999.991", "USD")
    assert not exceeds_max_amount("999999999999999.990", "USD")
    assert exceeds_max_amount("999999999999999.5", "JPY")


def test_exceeds_max_amount_uses_absolute_value():
    assert exceeds_max_amount("-1000000000000000", "USD")
    assert not exceeds_max_amount(Decimal("-5.25"), "USD")


@pytest.mark.parametrize(
    "raw, currency, message",
    [
        ("", "USD", "Amount is required."),
        ("   ", "USD", "Amount is required."),
        ("abc", "USD", "Invalid amount."),
        ("1.2.3", "USD", "Invalid amount."),
        ("0", "USD", "Amount must be greater than 0."),
        ("-5", "USD", "Amount must be greater than 0."),
        ("1.234", "USD", "USD supports up to 2 decimal places."),
        ("1.5", "JPY", "JPY does not support decimal amounts."),
        ("1.2345", "KWD", "KWD supports up to 3 decimal places."),
        ("1000000000000000", "USD", "The maximum allowed amount for USD is 999,999,999,999,999.99."),
    ],
)
def test_validate_amount_messages(raw, currency, message):
    result = validate_amount(raw, currency)
    assert result.valid is False
    assert result.error == message


def test_validate_amount_checks_positivity_before_decimal_places():
    assert validate_amount("-1.234", "USD").error == "Amount must be greater than 0."


def test_validate_amount_checks_decimal_places_before_maximum():
    result = validate_amount("1000000000000000.123", "USD")
    assert result.error == "USD supports up to 2 decimal places."


def test_validate_amount_strips_trailing_zeros_before_counting_decimals():
    result = validate_amount("10.500", "USD")
    assert result.valid is True
    assert result.value == Decimal("10.500")
    assert validate_amount("1500.00", "JPY").valid is True


def test_validate_amount_accepts_thousands_separators_and_max():
    assert validate_amount("1,234.56", "USD").value == Decimal("1234.56")
    assert validate_amount("999999999999999.99", "USD").valid is True


def test_signed_validation_allows_zero_and_negative_balances():
    assert validate_amount("0", "USD", signed=True).valid is True
    assert validate_amount("-250.75", "USD", signed=True).value == Decimal("-250.75")
    assert validate_amount("-1.234", "USD", signed=True).error == "USD supports up to 2 decimal places."
    assert validate_amount("-1000000000000000", "USD", signed=True).valid is False


def test_clamp_amount_replaces_oversized_values_with_the_maximum():
    assert clamp_amount("12345678901234567", "USD") == "999999999999999.99"
    assert clamp_amount("1,250.00", "USD") == "1250.00"
