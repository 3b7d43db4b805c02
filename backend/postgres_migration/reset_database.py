"""
Drop and recreate the ledger tables.
WARNING: This deletes every account and transaction!

Run with:
  cd backend && python postgres_migration/reset_database.py
"""
import os
import sys

from sqlalchemy import inspect, text

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from ledger.database import Base, engine  # noqa: E402
from ledger import models  # noqa: E402,F401  (registers tables on Base)


def reset_database():
    """Drop the ledger tables and recreate them from the models."""
    print("⚠️  WARNING: This will delete all ledger data!")
    engine.dispose()

    with engine.connect() as conn:
        # Other sessions hold row locks that would block DROP TABLE
        try:
            conn.execute(text("""
                SELECT pg_terminate_backend(pid)
                FROM pg_stat_activity
                WHERE datname = current_database()
                AND pid <> pg_backend_pid();
            """))
            conn.commit()
            print("✓ Active connections terminated")
        except Exception as e:
            print(f"⚠ Could not terminate connections: {e}")
            conn.rollback()

    Base.metadata.drop_all(bind=engine)
    print("✓ Ledger tables dropped")

    Base.metadata.create_all(bind=engine)
    print("✓ Ledger tables created:")
    for table_name in sorted(inspect(engine).get_table_names()):
        print(f"  - {table_name}")


if __name__ == "__main__":
    confirm = input("Type 'reset' to drop all ledger data: ")
    if confirm.strip() != "reset":
        print("Aborted.")
        sys.exit(1)
    reset_database()
