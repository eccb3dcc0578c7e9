"""Ordering database management CLI.

Creates or drops the relational schema for the configured providers. Only
meaningful with a SQL overlay, e.g. ``PROTEAN_ENV=sqlite``.

Usage:
    PROTEAN_ENV=sqlite python src/manage.py setup-db
    PROTEAN_ENV=sqlite python src/manage.py drop-db
"""

import argparse
import sys

import structlog

logger = structlog.get_logger(__name__)


def _domain():
    from ordering.domain import ordering
    from ordering.utils.logging import configure_logging

    configure_logging()
    ordering.init()
    return ordering


def setup_databases():
    from ordering.utils.db import setup_db

    domain = _domain()
    setup_db(domain)
    logger.info("Schema ready", domain=domain.name)


def drop_databases():
    from ordering.utils.db import drop_db

    domain = _domain()
    drop_db(domain)
    logger.info("Schema dropped", domain=domain.name)


def main():
    parser = argparse.ArgumentParser(description="Ordering database management")
    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser("setup-db", help="Create all database tables")
    subparsers.add_parser("drop-db", help="Drop all database tables")

    args = parser.parse_args()

    if args.command == "setup-db":
        setup_databases()
    elif args.command == "drop-db":
        drop_databases()
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
