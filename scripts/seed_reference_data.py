from budget_ledger.core.database import SessionLocal
from budget_ledger.services.reference_data import seed_reference_data


def main():
    db = SessionLocal()
    try:
        created = seed_reference_data(db)
        db.commit()
        print(f"Seeded {created['categories']} categories and {created['tags']} tags.")
    finally:
        db.close()


if __name__ == "__main__":
    main()
