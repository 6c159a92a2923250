#!/usr/bin/env python3
"""Fetch one day of exchange rates (default: today, UTC) into the rate table."""

import argparse
import logging
from datetime import date, datetime, timedelta, timezone

from budget_ledger.core.database import SessionLocal
from budget_ledger.core.logging import configure_logging
from budget_ledger.services.rate_provider import ExchangeRateApiError, ExchangeRateClient, refresh_rates


logger = logging.getLogger("fetch_exchange_rates")


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--date", type=date.fromisoformat, default=None, help="YYYY-MM-DD")
    parser.add_argument("--backfill-days", type=int, default=0, help="Also fetch this many previous days.")
    args = parser.parse_args()

    configure_logging()
    end = args.date or datetime.now(timezone.utc).date()
    days = [end - timedelta(days=offset) for offset in range(max(0, args.backfill_days), -1, -1)]

    client = ExchangeRateClient()
    db = SessionLocal()
    failures = 0
    try:
        for day in days:
            try:
                inserted = refresh_rates(db, day, client)
                print(f"{day.isoformat()}: stored {inserted} rate(s)")
            except ExchangeRateApiError as exc:
                db.rollback()
                failures += 1
                logger.warning("Rate fetch for %s failed: %s", day, exc.message)
    finally:
        db.close()

    if failures:
        raise SystemExit(1)


if __name__ == "__main__":
    main()
