from budget_ledger.core.database import SessionLocal
from budget_ledger.services.idempotency import purge_expired_idempotency_keys


def main():
    db = SessionLocal()
    try:
        deleted = purge_expired_idempotency_keys(db)
        print(f"Purged {deleted} expired idempotency key(s).")
    finally:
        db.close()


if __name__ == "__main__":
    main()
