# src/sealpost/scripts/migrate.py
"""Apply Alembic migrations up to head, or create tables directly for development."""
from __future__ import annotations

import argparse
import logging
import os

from alembic import command
from alembic.config import Config

from sealpost.core.settings import settings

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "..", "..", "migrations"))


def run_upgrade_head() -> None:
    """Upgrade the configured database to the latest revision."""
    cfg = Config(os.path.join(MIGRATIONS_DIR, "alembic.ini"))
    cfg.set_main_option("sqlalchemy.url", settings.effective_database_url)
    cfg.set_main_option("script_location", MIGRATIONS_DIR)
    command.upgrade(cfg, "head")


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Prepare the relay database schema.")
    parser.add_argument(
        "--create-all",
        action="store_true",
        help="Create tables from the ORM models instead of running migrations (development only).",
    )
    args = parser.parse_args(argv)

    if args.create_all:
        from sealpost.db.session import create_tables

        create_tables()
        logger.info("Tables created from models")
        return
    run_upgrade_head()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    main()
