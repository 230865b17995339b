import argparse
import sys
from pathlib import Path
from typing import List, Optional, Set
from urllib.parse import urlsplit, urlunsplit

import psycopg

from shopfloor.app.config.env import get_db_url, load_env


MIGRATIONS_DIR = Path(__file__).resolve().parent / "migrations"


def redact(database_url: str) -> str:
    """DSN with the password replaced, for log output."""
    parts = urlsplit(database_url)
    if not parts.password:
        return database_url
    netloc = parts.netloc.replace(f":{parts.password}@", ":***@", 1)
    return urlunsplit(parts._replace(netloc=netloc))


def ensure_schema_migrations_table(conn: psycopg.Connection) -> None:
    with conn.cursor() as cur:
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS schema_migrations (
              filename TEXT PRIMARY KEY,
              applied_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
            );
            """
        )
    conn.commit()


def applied_filenames(conn: psycopg.Connection) -> Set[str]:
    with conn.cursor() as cur:
        cur.execute("SELECT filename FROM schema_migrations")
        return {row[0] for row in cur.fetchall()}


def pending_migrations(conn: psycopg.Connection, migrations_dir: Path) -> List[Path]:
    applied = applied_filenames(conn)
    # Numeric prefixes keep lexical order == apply order
    return [p for p in sorted(migrations_dir.glob("*.sql")) if p.is_file() and p.name not in applied]


def apply_migration(conn: psycopg.Connection, migration_path: Path) -> None:
    """Run one file and record it in the same transaction."""
    with conn.cursor() as cur:
        cur.execute(migration_path.read_text(encoding="utf-8"))
        cur.execute("INSERT INTO schema_migrations (filename) VALUES (%s)", (migration_path.name,))
    conn.commit()


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Apply pending SQL migrations")
    parser.add_argument("--database-url", default=None, help="Postgres URL (defaults to DATABASE_URL / DB_* env)")
    parser.add_argument("--migrations-dir", type=Path, default=MIGRATIONS_DIR)
    parser.add_argument("--dry-run", action="store_true", help="List pending migrations without applying them")
    args = parser.parse_args(argv if argv is not None else [])

    if not args.migrations_dir.is_dir():
        print(f"Migrations directory not found: {args.migrations_dir}", file=sys.stderr)
        return 2

    load_env()
    database_url = args.database_url or get_db_url()
    print(f"Connecting to: {redact(database_url)}")

    try:
        with psycopg.connect(database_url) as conn:
            ensure_schema_migrations_table(conn)
            pending = pending_migrations(conn, args.migrations_dir)
            if not pending:
                print("Schema is up to date.")
                return 0
            if args.dry_run:
                for path in pending:
                    print(f"Pending: {path.name}")
                return 0
            for path in pending:
                print(f"Applying: {path.name} ...", end="", flush=True)
                try:
                    apply_migration(conn, path)
                except psycopg.Error as e:
                    conn.rollback()
                    print(" failed.")
                    print(f"{path.name}: {e}", file=sys.stderr)
                    return 1
                print(" done.")
    except psycopg.OperationalError as e:
        print(f"Database connection failed: {e}", file=sys.stderr)
        return 1

    print(f"Applied {len(pending)} migration(s).")
    return 0


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
