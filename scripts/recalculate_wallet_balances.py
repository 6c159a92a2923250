#!/usr/bin/env python3
"""Recompute cached wallet balances from their transactions."""

import argparse

from budget_ledger.core.database import SessionLocal
from budget_ledger.core.logging import configure_logging
from budget_ledger.services.ledger import recalculate_wallet_balances


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--user-id", type=int, default=None)
    parser.add_argument("--dry-run", action="store_true", help="Report mismatches without fixing them.")
    args = parser.parse_args()

    configure_logging()
    db = SessionLocal()
    try:
        corrections = recalculate_wallet_balances(db, user_id=args.user_id, apply=not args.dry_run)
        if args.dry_run:
            db.rollback()
        else:
            db.commit()
    finally:
        db.close()

    if not corrections:
        print("All wallet balances are consistent.")
        return
    verb = "Would fix" if args.dry_run else "Fixed"
    for item in corrections:
        print(f"{verb} wallet {item['wallet_id']} ({item['name']}): {item['stored']} -> {item['expected']}")


if __name__ == "__main__":
    main()
