import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from main import _parse_args, main


@pytest.fixture()
def local_db(tmp_path, monkeypatch):
    db_path = tmp_path / "cli.sqlite3"
    monkeypatch.delenv("USERS_API_CONFIG", raising=False)
    monkeypatch.delenv("USERS_API_STORAGE_BACKEND", raising=False)
    monkeypatch.setenv("USERS_API_DB_PATH", str(db_path))
    return db_path


def test_default_command_invokes_serve() -> None:
    args = _parse_args([])
    assert args.command == "serve"


def test_default_command_accepts_options_without_subcommand() -> None:
    args = _parse_args(["--host", "127.0.0.1", "--port", "8080"])
    assert args.command == "serve"
    assert args.host == "127.0.0.1"
    assert args.port == 8080


def test_serve_port_defaults_to_port_environment(monkeypatch) -> None:
    monkeypatch.setenv("PORT", "4321")
    args = _parse_args(["serve"])
    assert args.port == 4321


def test_seed_and_list_users(local_db, capsys) -> None:
    assert main(["seed"]) == 0
    output = capsys.readouterr().out
    assert "Created user #1: John Doe <john@example.com>" in output
    assert "Database seeded successfully!" in output

    assert main(["list-users"]) == 0
    listing = capsys.readouterr().out
    assert "3 user(s) found:" in listing
    for email in ("john@example.com", "jane@example.com", "bob@example.com"):
        assert email in listing


def test_seed_twice_skips_existing_users(local_db, capsys) -> None:
    assert main(["seed"]) == 0
    capsys.readouterr()

    assert main(["seed"]) == 0
    output = capsys.readouterr().out
    assert "Skipping john@example.com" in output

    main(["list-users"])
    assert "3 user(s) found:" in capsys.readouterr().out


def test_init_db_creates_database(local_db, capsys) -> None:
    assert main(["init-db"]) == 0
    assert local_db.exists()
    assert "Database initialisation complete." in capsys.readouterr().out


def test_storage_errors_exit_non_zero(local_db, monkeypatch, capsys) -> None:
    monkeypatch.setenv("USERS_API_CREATE_DB", "false")
    assert main(["list-users"]) == 1
    assert "Storage error" in capsys.readouterr().err
