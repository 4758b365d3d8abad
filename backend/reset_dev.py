"""
DEV RESET: deletes all draft data and manager accounts.

What it wipes:
- audit_logs
- captain_draft_queues
- draft_picks
- players
- captains
- leagues
- users

Safety:
- Requires env var CONFIRM_RESET=YES to run.
"""

import os
from sqlalchemy import text
from db.session import engine

# Children first because of foreign keys
TABLES = [
    "audit_logs",
    "captain_draft_queues",
    "draft_picks",
    "players",
    "captains",
    "leagues",
    "users",
]


def main() -> None:
    confirm = os.getenv("CONFIRM_RESET", "")
    if confirm != "YES":
        raise SystemExit(
            "Refusing to reset without confirmation.\n"
            "Run like:\n"
            "  CONFIRM_RESET=YES python reset_dev.py\n"
        )

    with engine.begin() as conn:
        for table in TABLES:
            conn.execute(text(f"delete from {table}"))

    print(f"✅ Dev reset complete. Wiped: {', '.join(TABLES)}.")


if __name__ == "__main__":
    main()
