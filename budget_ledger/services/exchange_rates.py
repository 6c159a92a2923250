import enum
import logging
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal, InvalidOperation

from sqlalchemy import func
from sqlalchemy.orm import Session

from budget_ledger.core.config import get_settings
from budget_ledger.core.errors import ExchangeRateRequired, ValidationError
from budget_ledger.models import ExchangeRate
from budget_ledger.services.currency import normalize_currency, quantize_amount


settings = get_settings()
logger = logging.getLogger(__name__)

ONE = Decimal("1")
RATE_QUANTUM = Decimal("0.0000000001")


class RateSeverity(str, enum.Enum):
    NONE = "none"
    RECENT = "recent"
    OUTDATED = "outdated"
    OLD = "old"
    CRITICAL = "critical"


@dataclass(frozen=True)
class RateResolution:
    from_currency: str
    to_currency: str
    requested_date: date
    rate: Decimal | None
    rate_date: date | None
    days_difference: int | None
    severity: RateSeverity
    exact_match: bool
    requires_manual_input: bool
    manual: bool = False

    @property
    def available(self) -> bool:
        return self.rate is not None

    def as_dict(self) -> dict:
        return {
            "available": self.available,
            "exactMatch": self.exact_match,
            "requiresManualInput": self.requires_manual_input,
            "severity": self.severity.value,
            "rate": str(self.rate) if self.rate is not None else None,
            "date": self.requested_date.isoformat(),
            "rateDate": self.rate_date.isoformat() if self.rate_date else None,
            "daysDifference": self.days_difference,
            "manual": self.manual,
            "rateDisplay": {
                "from": self.from_currency,
                "to": self.to_currency,
                "value": str(self.rate) if self.rate is not None else None,
            },
        }


def classify_staleness(
    days_difference: int | None,
    *,
    recent_max_days: int | None = None,
    outdated_max_days: int | None = None,
) -> RateSeverity:
    if days_difference is None:
        return RateSeverity.CRITICAL
    recent_max = settings.exchange_rate_recent_max_days if recent_max_days is None else recent_max_days
    outdated_max = settings.exchange_rate_outdated_max_days if outdated_max_days is None else outdated_max_days
    if days_difference <= 0:
        return RateSeverity.NONE
    if days_difference <= recent_max:
        return RateSeverity.RECENT
    if days_difference <= outdated_max:
        return RateSeverity.OUTDATED
    return RateSeverity.OLD


def parse_manual_rate(value) -> Decimal | None:
    if value is None or str(value).strip() == "":
        return None
    try:
        rate = Decimal(str(value).strip())
    except InvalidOperation:
        raise ValidationError("Invalid exchange rate.")
    if not rate.is_finite() or rate <= 0:
        raise ValidationError("Exchange rate must be greater than 0.")
    return rate


class ExchangeRateResolver:
    """Resolves historical rates from the sparse rate table.

    Only rates dated on or before the requested date are considered, within
    the look-back window. Direct, inverse and pivot-cross quotes compete and
    the freshest wins. Lookups are memoized for the lifetime of the resolver,
    which is one request.
    """

    def __init__(
        self,
        db: Session,
        *,
        lookback_days: int | None = None,
        recent_max_days: int | None = None,
        outdated_max_days: int | None = None,
        pivot_currency: str | None = None,
    ):
        self.db = db
        self.lookback_days = settings.exchange_rate_lookback_days if lookback_days is None else lookback_days
        self.recent_max_days = settings.exchange_rate_recent_max_days if recent_max_days is None else recent_max_days
        self.outdated_max_days = (
            settings.exchange_rate_outdated_max_days if outdated_max_days is None else outdated_max_days
        )
        self.pivot_currency = normalize_currency(pivot_currency or settings.exchange_rate_pivot_currency)
        self._quotes: dict[tuple[str, str, date], tuple[Decimal, date] | None] = {}
        self._resolutions: dict[tuple, RateResolution] = {}

    def _stored_quote(self, from_currency: str, to_currency: str, on_date: date) -> tuple[Decimal, date] | None:
        cache_key = (from_currency, to_currency, on_date)
        if cache_key in self._quotes:
            return self._quotes[cache_key]
        earliest = on_date - timedelta(days=self.lookback_days)
        row = (
            self.db.query(ExchangeRate.rate, ExchangeRate.date)
            .filter(
                ExchangeRate.from_currency == from_currency,
                ExchangeRate.to_currency == to_currency,
                ExchangeRate.date <= on_date,
                ExchangeRate.date >= earliest,
            )
            .order_by(ExchangeRate.date.desc())
            .first()
        )
        quote = (Decimal(str(row[0])), row[1]) if row and row[0] else None
        self._quotes[cache_key] = quote
        return quote

    def _pair_quote(self, from_currency: str, to_currency: str, on_date: date) -> tuple[Decimal, date] | None:
        if from_currency == to_currency:
            return ONE, on_date
        candidates = []
        direct = self._stored_quote(from_currency, to_currency, on_date)
        if direct:
            candidates.append(direct)
        inverse = self._stored_quote(to_currency, from_currency, on_date)
        if inverse:
            candidates.append((ONE / inverse[0], inverse[1]))
        if not candidates:
            return None
        # Freshest wins; max() keeps the first (direct) on ties.
        return max(candidates, key=lambda item: item[1])

    def _best_quote(self, from_currency: str, to_currency: str, on_date: date) -> tuple[Decimal, date] | None:
        candidates = []
        pair = self._pair_quote(from_currency, to_currency, on_date)
        if pair:
            candidates.append(pair)
        pivot = self.pivot_currency
        if pivot not in (from_currency, to_currency):
            pivot_to = self._pair_quote(pivot, to_currency, on_date)
            pivot_from = self._pair_quote(pivot, from_currency, on_date)
            if pivot_to and pivot_from:
                candidates.append((pivot_to[0] / pivot_from[0], min(pivot_to[1], pivot_from[1])))
        if not candidates:
            return None
        return max(candidates, key=lambda item: item[1])

    def resolve(self, on_date: date, from_currency: str, to_currency: str, manual_rate=None) -> RateResolution:
        from_code = normalize_currency(from_currency)
        to_code = normalize_currency(to_currency)
        manual = parse_manual_rate(manual_rate)

        if from_code == to_code:
            return RateResolution(from_code, to_code, on_date, ONE, on_date, 0, RateSeverity.NONE, True, False)
        if manual is not None:
            return RateResolution(
                from_code, to_code, on_date, manual, on_date, 0, RateSeverity.NONE, False, False, manual=True
            )

        cache_key = (on_date, from_code, to_code)
        cached = self._resolutions.get(cache_key)
        if cached is not None:
            return cached

        quote = self._best_quote(from_code, to_code, on_date)
        if quote is None:
            logger.info("No %s->%s rate within %s days of %s", from_code, to_code, self.lookback_days, on_date)
            resolution = RateResolution(
                from_code, to_code, on_date, None, None, None, RateSeverity.CRITICAL, False, True
            )
        else:
            rate, rate_date = quote
            days = (on_date - rate_date).days
            severity = classify_staleness(
                days, recent_max_days=self.recent_max_days, outdated_max_days=self.outdated_max_days
            )
            resolution = RateResolution(
                from_code,
                to_code,
                on_date,
                rate.quantize(RATE_QUANTUM),
                rate_date,
                days,
                severity,
                days == 0,
                False,
            )
        self._resolutions[cache_key] = resolution
        return resolution

    def require(self, on_date: date, from_currency: str, to_currency: str, manual_rate=None) -> RateResolution:
        resolution = self.resolve(on_date, from_currency, to_currency, manual_rate=manual_rate)
        if resolution.requires_manual_input:
            raise ExchangeRateRequired(
                f"No {resolution.from_currency} to {resolution.to_currency} exchange rate is available "
                f"for {on_date.isoformat()}. Please enter the rate manually.",
                from_currency=resolution.from_currency,
                to_currency=resolution.to_currency,
                date=on_date.isoformat(),
            )
        return resolution

    def convert(self, amount: Decimal, on_date: date, from_currency: str, to_currency: str, manual_rate=None):
        """Returns ``(converted, resolution)``; ``converted`` is None when no rate exists."""
        resolution = self.resolve(on_date, from_currency, to_currency, manual_rate=manual_rate)
        if resolution.rate is None:
            return None, resolution
        return quantize_amount(Decimal(amount) * resolution.rate, resolution.to_currency), resolution


def store_rates(db: Session, on_date: date, base_currency: str, rates: dict[str, Decimal], *, source: str) -> int:
    """Insert ``1 base_currency = rate code`` rows, never overwriting existing ones."""
    base_code = normalize_currency(base_currency)
    existing = {
        code
        for (code,) in db.query(ExchangeRate.to_currency)
        .filter(ExchangeRate.date == on_date, ExchangeRate.from_currency == base_code)
        .all()
    }
    inserted = 0
    for code, rate in sorted(rates.items()):
        code = normalize_currency(code)
        if code == base_code or code in existing or rate is None or Decimal(rate) <= 0:
            continue
        db.add(
            ExchangeRate(
                date=on_date,
                from_currency=base_code,
                to_currency=code,
                rate=Decimal(rate).quantize(RATE_QUANTUM),
                source=source,
            )
        )
        inserted += 1
    db.flush()
    return inserted


def most_recent_rates_date(db: Session, on_or_before: date | None = None) -> date | None:
    query = db.query(func.max(ExchangeRate.date))
    if on_or_before is not None:
        query = query.filter(ExchangeRate.date <= on_or_before)
    return query.scalar()
