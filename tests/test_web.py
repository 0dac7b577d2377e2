from __future__ import annotations

import sys
from pathlib import Path

from fastapi.testclient import TestClient

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from users_api.api import create_app
from users_api.config import Settings, StorageSettings


def _settings(tmp_path: Path, *, web_enabled: bool) -> Settings:
    return Settings(storage=StorageSettings(database_path=tmp_path / "users.sqlite3"), web_enabled=web_enabled)


def test_index_page_lists_users_from_the_api(tmp_path: Path) -> None:
    app = create_app(_settings(tmp_path, web_enabled=True))

    with TestClient(app) as client:
        response = client.get("/")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/html")
    body = response.text
    assert "<title>Fullstack Demo</title>" in body
    assert 'const endpoint = "/api/users";' in body
    assert "Refresh Users" in body
    assert "No users found. Add some users to the database." in body


def test_index_page_can_be_disabled(tmp_path: Path) -> None:
    app = create_app(_settings(tmp_path, web_enabled=False))

    with TestClient(app) as client:
        response = client.get("/")

    assert response.status_code == 404
    assert response.json() == {"error": "Not Found"}
