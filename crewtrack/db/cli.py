from __future__ import annotations

import argparse
from collections.abc import Sequence

from crewtrack.db.bootstrap import initialize_database
from crewtrack.db.migrations import current_revision, upgrade_to_head


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="crewtrack-db",
        description="Crewtrack database management commands.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    init_parser = subparsers.add_parser(
        "init",
        help="Create database directory, apply migrations and optionally seed demo data.",
    )
    init_parser.add_argument("--database-url", default=None)
    init_parser.add_argument("--seed", action="store_true")

    migrate_parser = subparsers.add_parser(
        "migrate",
        help="Apply database migrations to latest revision.",
    )
    migrate_parser.add_argument("--database-url", default=None)

    current_parser = subparsers.add_parser(
        "current",
        help="Show the revision the database is at.",
    )
    current_parser.add_argument("--database-url", default=None)

    return parser


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "init":
        initialize_database(
            database_url=args.database_url,
            seed=args.seed,
        )
        print("Database initialized.")
        return 0

    if args.command == "migrate":
        upgrade_to_head(args.database_url)
        print("Database migrations applied.")
        return 0

    if args.command == "current":
        current_revision(args.database_url)
        return 0

    parser.error(f"Unsupported command: {args.command}")
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
