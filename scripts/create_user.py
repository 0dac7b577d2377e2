import argparse
import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from users_api.config import resolve_database_path
from users_api.errors import StorageConflictError, StorageError
from users_api.models import User
from users_api.schema import USERS
from users_api.storage import SQLiteStore


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create a user in the local users database")
    parser.add_argument("name", help="Display name for the user")
    parser.add_argument("email", help="Email address for the user")
    parser.add_argument(
        "--db",
        dest="db_path",
        default=None,
        help="Path to the SQLite database (defaults to USERS_API_DB_PATH or data/users.sqlite3)",
    )
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)

    name = args.name.strip()
    email = args.email.strip()
    if not name or not email:
        print("Error: Name and email are required", file=sys.stderr)
        return 1

    db_path = resolve_database_path(args.db_path or os.getenv("USERS_API_DB_PATH"))

    try:
        store = SQLiteStore.open(db_path)
        store.initialize()
        row = store.insert(USERS).values(name=name, email=email)
        user = User.from_row(row)
    except StorageConflictError:
        print("Error: A user with that email already exists", file=sys.stderr)
        return 1
    except StorageError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    print(f"Created user #{user.id}: {user.name} <{user.email}>")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
