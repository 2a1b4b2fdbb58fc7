"""
Migration: role-based admin access
- Adds 'role' column to users if missing (older databases marked the admin
  only through the ADMIN_EMAIL setting)
- Backfills NULL roles as 'USER'
- Promotes the given admin email to 'ADMIN'

Usage:
  python -m migration.migration_add_user_role --db path/to/bookvault.db --admin-email admin@example.com
"""
import argparse
import os
import sqlite3
from contextlib import closing
from typing import Optional


def has_column(conn: sqlite3.Connection, table: str, column: str) -> bool:
    cur = conn.execute(f"PRAGMA table_info({table})")
    return any(row[1] == column for row in cur.fetchall())


def migrate(db_path: str, admin_email: Optional[str] = None) -> int:
    """Run the migration; returns the number of users promoted to ADMIN."""
    if db_path == ":memory:":
        raise ValueError("Use a file-backed DB for migration script")

    if not os.path.exists(db_path):
        raise FileNotFoundError(db_path)

    with closing(sqlite3.connect(db_path)) as conn:
        tables = {r[0] for r in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")}
        if "users" not in tables:
            raise RuntimeError("users table missing; cannot migrate")

        if not has_column(conn, "users", "role"):
            conn.execute("ALTER TABLE users ADD COLUMN role VARCHAR(16) DEFAULT 'USER' NOT NULL")

        conn.execute("UPDATE users SET role = 'USER' WHERE role IS NULL")

        promoted = 0
        if admin_email:
            cur = conn.execute(
                "UPDATE users SET role = 'ADMIN' WHERE lower(email) = ?",
                (admin_email.strip().lower(),),
            )
            promoted = cur.rowcount
        conn.commit()
    return promoted


def main():
    parser = argparse.ArgumentParser()
    parser.add_argument("--db", required=True, help="Path to SQLite database file")
    parser.add_argument("--admin-email", default=os.getenv("ADMIN_EMAIL"), help="Email to promote to ADMIN")
    args = parser.parse_args()
    promoted = migrate(args.db, args.admin_email)
    print(f"promoted {promoted} user(s) to ADMIN")


if __name__ == "__main__":
    main()
