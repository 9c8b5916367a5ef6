#!/usr/bin/env python3
"""
Database migration management script.

Usage:
    python apps/api/migrate.py migrate       # Run all pending migrations
    python apps/api/migrate.py rollback      # Rollback last migration
    python apps/api/migrate.py status        # Show migration status
    python apps/api/migrate.py history       # Show migration history
    python apps/api/migrate.py make <name>   # Autogenerate a new migration
    python apps/api/migrate.py upgrade <revision>
    python apps/api/migrate.py downgrade <revision>
"""

import sys
from pathlib import Path

from alembic import command
from alembic.config import Config

ALEMBIC_INI = Path(__file__).resolve().parent / "alembic.ini"


def get_alembic_config() -> Config:
    if not ALEMBIC_INI.exists():
        print(f"❌ Error: alembic.ini not found at {ALEMBIC_INI}")
        sys.exit(1)
    return Config(str(ALEMBIC_INI))


def migrate() -> None:
    print("🚀 Running migrations...")
    command.upgrade(get_alembic_config(), "head")
    print("✅ Migrations completed successfully!")


def rollback() -> None:
    print("⏪ Rolling back last migration...")
    command.downgrade(get_alembic_config(), "-1")
    print("✅ Rollback completed successfully!")


def status() -> None:
    print("📊 Migration Status:")
    command.current(get_alembic_config())


def history() -> None:
    print("📜 Migration History:")
    command.history(get_alembic_config())


def make_migration(name: str | None) -> None:
    if not name:
        print("❌ Error: Migration name is required")
        sys.exit(1)
    print(f"📝 Creating new migration: {name}")
    command.revision(get_alembic_config(), message=name, autogenerate=True)


def main() -> None:
    if len(sys.argv) < 2:
        print(__doc__)
        sys.exit(1)

    command_name = sys.argv[1].lower()
    argument = sys.argv[2] if len(sys.argv) > 2 else None
    simple = {
        "migrate": migrate,
        "rollback": rollback,
        "status": status,
        "history": history,
    }

    if command_name in simple:
        simple[command_name]()
    elif command_name == "make":
        make_migration(argument)
    elif command_name == "upgrade":
        command.upgrade(get_alembic_config(), argument or "head")
    elif command_name == "downgrade":
        command.downgrade(get_alembic_config(), argument or "-1")
    elif command_name in ("help", "--help", "-h"):
        print(__doc__)
    else:
        print(f"❌ Unknown command: {command_name}")
        print(__doc__)
        sys.exit(1)


if __name__ == "__main__":
    main()
