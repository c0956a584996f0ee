"""
Permanently remove soft-deleted callbacks whose grace period has expired.

Usage:
  python scripts/purge_expired_callbacks.py

Meant to run from cron; safe to run as often as needed.
"""
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.db import SessionLocal
from app.logging import setup_logging
from app.services.callback_service import purge_expired_callbacks


def main() -> int:
    setup_logging()
    db = SessionLocal()
    try:
        purged = purge_expired_callbacks(db)
    finally:
        db.close()
    print(f"[OK] Purged {purged} expired callback(s)")
    return purged


if __name__ == "__main__":
    main()
