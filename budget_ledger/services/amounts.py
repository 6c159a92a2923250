"""Amount bounds and validation.

Every check works on the decimal string itself so that values close to the
column limit are never rounded through a float.
"""
import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from budget_ledger.services.currency import currency_exponent


MAX_INTEGER_DIGITS = 15

_AMOUNT_PATTERN = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)$")


@dataclass(frozen=True)
class AmountValidation:
    valid: bool
    error: str | None = None
    value: Decimal | None = None


def _plain(amount_value) -> str:
    if isinstance(amount_value, float):
        amount_value = Decimal(str(amount_value))
    if isinstance(amount_value, (Decimal, int)):
        return format(Decimal(amount_value), "f")
    return str(amount_value if amount_value is not None else "").strip().replace(",", "")


def get_max_amount_string(currency_code: str) -> str:
    exponent = currency_exponent(currency_code)
    integer_part = "9" * MAX_INTEGER_DIGITS
    if exponent == 0:
        return integer_part
    return f"{integer_part}.{'9' * exponent}"


def get_max_amount_display(currency_code: str) -> str:
    integer_part, _, fraction = get_max_amount_string(currency_code).partition(".")
    grouped = f"{int(integer_part):,}"
    return f"{grouped}.{fraction}" if fraction else grouped


def exceeds_max_amount(amount_value, currency_code: str) -> bool:
    text = _plain(amount_value)
    if text[:1] in ("+", "-"):
        text = text[1:]
    integer_part, _, fraction = text.partition(".")
    integer_part = integer_part.lstrip("0")

    if len(integer_part) > MAX_INTEGER_DIGITS:
        return True
    if len(integer_part) < MAX_INTEGER_DIGITS or integer_part != "9" * MAX_INTEGER_DIGITS:
        return False

    # Integer part sits exactly at the limit; the fraction decides.
    fraction = fraction.rstrip("0")
    limit = "9" * currency_exponent(currency_code)
    width = max(len(fraction), len(limit))
    return fraction.ljust(width, "0") > limit.ljust(width, "0")


def clamp_amount(amount_str, currency_code: str) -> str:
    if exceeds_max_amount(amount_str, currency_code):
        return get_max_amount_string(currency_code)
    return _plain(amount_str)


def validate_amount(amount_str, currency_code: str, *, signed: bool = False) -> AmountValidation:
    """Validate a user-entered amount for ``currency_code``.

    ``signed`` allows zero and negative values (balances, adjustments); the
    decimal-place and maximum checks then apply to the absolute value.
    """
    text = _plain(amount_str)
    if not text:
        return AmountValidation(False, "Amount is required.")
    if not _AMOUNT_PATTERN.match(text):
        return AmountValidation(False, "Invalid amount.")
    try:
        value = Decimal(text)
    except InvalidOperation:
        return AmountValidation(False, "Invalid amount.")

    if not signed and value <= 0:
        return AmountValidation(False, "Amount must be greater than 0.")

    code = str(currency_code or "").strip().upper()
    unsigned = text.lstrip("+-")
    exponent = currency_exponent(code)
    fraction = unsigned.partition(".")[2].rstrip("0")
    if len(fraction) > exponent:
        if exponent == 0:
            return AmountValidation(False, f"{code} does not support decimal amounts.")
        plural = "" if exponent == 1 else "s"
        return AmountValidation(False, f"{code} supports up to {exponent} decimal place{plural}.")

    if exceeds_max_amount(unsigned, code):
        return AmountValidation(False, f"The maximum allowed amount for {code} is {get_max_amount_display(code)}.")

    return AmountValidation(True, None, value)
