"""Initialize the AlbumCraft database and optionally seed a user."""

from __future__ import annotations

import argparse
import sys

from albumcraft.config import load_config
from albumcraft.db import build_database
from albumcraft.repositories import AlbumRepository


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Create tables and seed a user.")
    parser.add_argument("--user-id", help="Identifier of a user to create.")
    parser.add_argument("--email", help="E-mail of the seeded user.")
    parser.add_argument("--role", default="user", choices=("user", "admin"))
    args = parser.parse_args(argv)

    config = load_config()
    database = build_database(config.database_url)
    if args.user_id:
        repository = AlbumRepository(database.session_factory)
        if not repository.user_exists(args.user_id):
            repository.create_user(
                user_id=args.user_id,
                email=args.email or f"{args.user_id}@example.invalid",
                role=args.role,
            )
    print("Database initialized.")
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
