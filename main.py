"""Command-line interface for the users service."""

from __future__ import annotations
import argparse
import logging
import os
import sys
from typing import Sequence

from users_api.config import Settings, load_settings
from users_api.errors import StorageConflictError, StorageError
from users_api.models import User
from users_api.schema import USERS
from users_api.storage import StorageAccessor, Store

logger = logging.getLogger("users_api.main")

SAMPLE_USERS: tuple[tuple[str, str], ...] = (
    ("John Doe", "john@example.com"),
    ("Jane Smith", "jane@example.com"),
    ("Bob Johnson", "bob@example.com"),
)


def _default_port() -> int:
    return int(os.getenv("PORT", "3000"))


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Users API utilities")
    subparsers = parser.add_subparsers(dest="command")

    parser.set_defaults(command="serve")

    subparsers.add_parser("init-db", help="Create the users table in the configured store")
    subparsers.add_parser("seed", help="Insert the sample users")
    subparsers.add_parser("list-users", help="Print the stored users")

    serve_parser = subparsers.add_parser("serve", help="Start the HTTP API")
    serve_parser.add_argument("--host", default="0.0.0.0", help="Bind address for the API")
    serve_parser.add_argument(
        "--port",
        type=int,
        default=_default_port(),
        help="Port for the API (default: $PORT or 3000)",
    )

    args_list = list(argv) if argv is not None else sys.argv[1:]
    known_commands = {"serve", "init-db", "seed", "list-users"}

    if not args_list:
        args_list = ["serve"]
    else:
        first = args_list[0]
        if first in ("-h", "--help"):
            return parser.parse_args(args_list)
        if first not in known_commands:
            if any(flag in args_list for flag in ("-h", "--help")):
                return parser.parse_args(args_list)
            args_list = ["serve", *args_list]

    return parser.parse_args(args_list)


def _initialise_store(accessor: StorageAccessor) -> Store:
    store = accessor.get()
    store.initialize()
    logger.info("Storage initialised using %r", store)
    return store


def _serve(settings: Settings, *, host: str, port: int) -> None:
    from users_api.api import create_app
    import uvicorn

    logger.info("Starting users API on http://%s:%s", host, port)
    app = create_app(settings)
    uvicorn.run(app, host=host, port=port, log_level=settings.log_level.lower())


def _seed(store: Store) -> int:
    print("Seeding database...")
    for name, email in SAMPLE_USERS:
        try:
            row = store.insert(USERS).values(name=name, email=email)
        except StorageConflictError:
            print(f"Skipping {email}: a user with that email already exists.")
            continue
        except StorageError as exc:
            print(f"Error seeding database: {exc}", file=sys.stderr)
            return 1
        user = User.from_row(row)
        print(f"Created user #{user.id}: {user.name} <{user.email}>")
    print("Database seeded successfully!")
    return 0


def _list_users(store: Store) -> None:
    users = [User.from_row(row) for row in store.select(USERS).all()]
    if not users:
        print("No users are currently registered.")
        return

    print(f"{len(users)} user(s) found:")
    print(f"{'ID':>4}  {'Name':<24}  {'Email':<32}  Created")
    print("-" * 80)
    for user in users:
        created = user.created_at.strftime("%Y-%m-%d %H:%M:%S %Z")
        print(f"{user.id:>4}  {user.name:<24}  {user.email:<32}  {created}")


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for CLI usage."""

    args = _parse_args(argv)
    settings = load_settings()

    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(message)s",
    )

    if args.command == "serve":
        _serve(settings, host=args.host, port=args.port)
        return 0

    accessor = StorageAccessor.from_settings(settings.storage)
    try:
        store = _initialise_store(accessor)
        if args.command == "init-db":
            print("Database initialisation complete.")
        elif args.command == "seed":
            return _seed(store)
        elif args.command == "list-users":
            _list_users(store)
    except StorageError as exc:
        print(f"Storage error: {exc}", file=sys.stderr)
        return 1
    finally:
        accessor.close()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
