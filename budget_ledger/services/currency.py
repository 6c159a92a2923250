import re
from decimal import Decimal, ROUND_HALF_UP

from budget_ledger.core.errors import ValidationError


DEFAULT_EXPONENT = 2

# ISO 4217 minor units for every currency that does not use two decimals.
_NON_DEFAULT_EXPONENTS = {
    "BIF": 0,
    "CLP": 0,
    "DJF": 0,
    "GNF": 0,
    "ISK": 0,
    "JPY": 0,
    "KMF": 0,
    "KRW": 0,
    "PYG": 0,
    "RWF": 0,
    "UGX": 0,
    "UYI": 0,
    "VND": 0,
    "VUV": 0,
    "XAF": 0,
    "XOF": 0,
    "XPF": 0,
    "BHD": 3,
    "IQD": 3,
    "JOD": 3,
    "KWD": 3,
    "LYD": 3,
    "OMR": 3,
    "TND": 3,
    "CLF": 4,
    "UYW": 4,
}

SUPPORTED_CURRENCIES = frozenset(
    """
    AED AFN ALL AMD ANG AOA ARS AUD AWG AZN BAM BBD BDT BGN BHD BIF BMD BND BOB BRL BSD BTN BWP BYN
    BZD CAD CDF CHF CLF CLP CNY COP CRC CUP CVE CZK DJF DKK DOP DZD EGP ERN ETB EUR FJD FKP GBP GEL
    GHS GIP GMD GNF GTQ GYD HKD HNL HTG HUF IDR ILS INR IQD IRR ISK JMD JOD JPY KES KGS KHR KMF KPW
    KRW KWD KYD KZT LAK LBP LKR LRD LSL LYD MAD MDL MGA MKD MMK MNT MOP MRU MUR MVR MWK MXN MYR MZN
    NAD NGN NIO NOK NPR NZD OMR PAB PEN PGK PHP PKR PLN PYG QAR RON RSD RUB RWF SAR SBD SCR SDG SEK
    SGD SHP SLE SOS SRD SSP STN SVC SYP SZL THB TJS TMT TND TOP TRY TTD TWD TZS UAH UGX USD UYI UYU
    UYW UZS VES VND VUV WST XAF XCD XOF XPF YER ZAR ZMW ZWL
    """.split()
)

_CODE_PATTERN = re.compile(r"^[A-Z]{3}$")


def normalize_currency(value) -> str:
    code = str(value or "").strip().upper()
    if not _CODE_PATTERN.match(code):
        raise ValidationError(f"Invalid currency code: {value!r}.")
    return code


def is_supported_currency(code: str) -> bool:
    return str(code or "").strip().upper() in SUPPORTED_CURRENCIES


def currency_exponent(code: str) -> int:
    """Number of minor-unit digits of ``code``; unknown codes use two."""
    return _NON_DEFAULT_EXPONENTS.get(str(code or "").strip().upper(), DEFAULT_EXPONENT)


def minor_unit(code: str) -> Decimal:
    return Decimal(1).scaleb(-currency_exponent(code))


def quantize_amount(amount: Decimal, code: str) -> Decimal:
    return Decimal(amount).quantize(minor_unit(code), rounding=ROUND_HALF_UP)
