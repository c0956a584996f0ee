"""
Rewrite legacy task status spellings ("todo", "done", "In Progress", ...)
to the canonical values stored by the API.

Usage:
  python scripts/normalize_task_statuses.py [--dry-run]

Runs in raw SQL because rows with unknown spellings cannot be loaded
through the ORM.
"""
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy import text

from app.db import engine
from app.models.enums import TaskStatus


def plan_updates(conn):
    """Return [(old_value, new_value, row_count)] for every non-canonical status."""
    rows = conn.execute(text("SELECT status, COUNT(*) FROM tasks GROUP BY status")).all()
    canonical = {s.value for s in TaskStatus}
    plan = []
    for raw, count in rows:
        if raw in canonical:
            continue
        try:
            target = TaskStatus.parse(raw)
        except ValueError:
            print(f"[WARN] Unknown task status {raw!r} on {count} row(s), left unchanged")
            continue
        plan.append((raw, target.value, count))
    return plan


def main(dry_run: bool = False) -> int:
    print("=" * 60)
    print("Normalizing task statuses")
    print("=" * 60)
    total = 0
    try:
        with engine.begin() as conn:
            for old, new, count in plan_updates(conn):
                print(f"  {old!r} -> {new!r} ({count} row(s))")
                if not dry_run:
                    conn.execute(
                        text("UPDATE tasks SET status = :new WHERE status = :old"),
                        {"new": new, "old": old},
                    )
                total += count
    except Exception as e:
        print(f"ERROR: Failed to normalize task statuses: {e}")
        sys.exit(1)
    verb = "Would update" if dry_run else "Updated"
    print(f"[OK] {verb} {total} task(s)")
    return total


if __name__ == "__main__":
    main(dry_run="--dry-run" in sys.argv[1:])
