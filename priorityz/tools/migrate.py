# File: priorityz/tools/migrate.py
# Rev 0.7.0
# Usage examples:
#   priorityz-migrate up
#   priorityz-migrate status
#   priorityz-migrate rebuild
#   priorityz-migrate verify --db /path/to/priorityZ.db
#
# Notes:
# - DB path defaults to env PRIORITYZ_DB or $XDG_DATA_HOME/priorityZ/priorityZ.db
# - Applies priorityz/data/migrations/*.sql in lexicographic order
# - Records applied migrations in schema_migrations

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Optional

from ..repositories.db import Database
from ..utils.logging_setup import get_logger
from ..utils.paths import DB_PATH, MIGRATIONS_DIR

log = get_logger("migrate")

REQUIRED_TABLES = [
    "users",
    "projects",
    "modules",
    "tasks",
    "rank_counters",
    "task_dependencies",
    "pert_estimates",
    "priority_change_log",
    "schema_migrations",
]

EXPECTED_TRIGGERS = [
    "trg_tasks_module_project_insert",
    "trg_tasks_module_project_update",
    "trg_rank_counters_monotonic",
    "trg_priority_change_log_terminal",
    "trg_priority_change_log_transition",
    "trg_priority_change_log_request_frozen",
    "trg_priority_change_log_append_only",
]


def list_migration_files(migrations_dir: Path) -> list[Path]:
    return sorted(Path(migrations_dir).glob("*.sql"))


def cmd_status(db_path: Path, migrations_dir: Path) -> int:
    db = Database(db_path)
    try:
        applied = db.applied()
        print(f"DB: {db_path}")
        print(f"Migrations dir: {migrations_dir}")
        print(f"Applied count: {len(applied)}")
        for name in sorted(applied):
            print(f"  ✔ {name}")

        pending = [p.name for p in list_migration_files(migrations_dir) if p.name not in applied]
        print(f"Pending count: {len(pending)}")
        for name in pending:
            print(f"  ⧗ {name}")
        return 0
    finally:
        db.close()


def cmd_up(db_path: Path, migrations_dir: Path) -> int:
    db = Database(db_path)
    try:
        applied_now = db.run_migrations(migrations_dir)
        for name in applied_now:
            print(f"→ Applied migration: {name}")
        if applied_now:
            print("✓ Database is up to date.")
        else:
            print("✓ No changes. Database already up to date.")
        return 0
    finally:
        db.close()


def cmd_rebuild(db_path: Path, migrations_dir: Path) -> int:
    # WAL side files go with the main file
    for suffix in ("", "-wal", "-shm"):
        p = Path(f"{db_path}{suffix}")
        if p.exists():
            print(f"⟲ Rebuilding: removing {p}")
            p.unlink()
    rc = cmd_up(db_path, migrations_dir)
    if rc == 0:
        print("✓ Rebuild complete.")
    return rc


def cmd_verify(db_path: Path) -> int:
    db = Database(db_path)
    try:
        conn = db.conn
        names = {
            r[0] for r in conn.execute(
                "SELECT name FROM sqlite_master WHERE type='table' AND name NOT LIKE 'sqlite_%';"
            )
        }
        missing = [t for t in REQUIRED_TABLES if t not in names]
        if missing:
            print("❌ Missing tables:", ", ".join(missing))
            return 2

        trig = {r[0] for r in conn.execute("SELECT name FROM sqlite_master WHERE type='trigger';")}
        trig_missing = [t for t in EXPECTED_TRIGGERS if t not in trig]
        if trig_missing:
            print("❌ Missing triggers:", ", ".join(trig_missing))
            return 3

        (mode,) = conn.execute("PRAGMA journal_mode;").fetchone()
        if str(mode).lower() != "wal":
            print(f"❌ journal_mode is not WAL (got {mode})")
            return 4

        print("✓ Verification passed.")
        return 0
    finally:
        db.close()


def parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="priorityz-migrate", description="SQLite migration runner for priorityZ")
    sub = p.add_subparsers(dest="cmd", required=True)

    def add_common(sp: argparse.ArgumentParser):
        sp.add_argument("--db", type=Path, default=DB_PATH, help=f"Path to SQLite DB (default: {DB_PATH})")
        sp.add_argument("--migrations-dir", type=Path, default=MIGRATIONS_DIR,
                        help=f"Migrations directory (default: {MIGRATIONS_DIR})")

    add_common(sub.add_parser("up", help="Run pending migrations"))
    add_common(sub.add_parser("rebuild", help="Drop and recreate DB from migrations"))
    add_common(sub.add_parser("status", help="Show applied and pending migrations"))

    s_verify = sub.add_parser("verify", help="Lightweight structural verification")
    s_verify.add_argument("--db", type=Path, default=DB_PATH, help=f"Path to SQLite DB (default: {DB_PATH})")

    return p.parse_args(argv)


def main(argv: Optional[list[str]] = None) -> int:
    ns = parse_args(sys.argv[1:] if argv is None else argv)
    log.debug("migrate %s db=%s", ns.cmd, ns.db)
    if ns.cmd == "status":
        return cmd_status(ns.db, ns.migrations_dir)
    if ns.cmd == "up":
        return cmd_up(ns.db, ns.migrations_dir)
    if ns.cmd == "rebuild":
        return cmd_rebuild(ns.db, ns.migrations_dir)
    if ns.cmd == "verify":
        return cmd_verify(ns.db)
    raise SystemExit(1)


if __name__ == "__main__":
    raise SystemExit(main())
