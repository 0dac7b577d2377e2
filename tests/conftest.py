"""Shared fixtures: a fake D1 HTTP endpoint backed by in-memory SQLite."""
from __future__ import annotations

import json
import sqlite3
import sys
import threading
from pathlib import Path
from typing import Any, Dict, List

import httpx
import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from users_api.config import D1Settings
from users_api.storage import D1Binding

D1_SETTINGS = D1Settings(
    account_id="acct-123",
    database_id="db-456",
    api_token="token-789",
    base_url="https://d1.test/client/v4",
)


class FakeD1:
    """Answers D1 query requests by running them on an in-memory SQLite database."""

    def __init__(self) -> None:
        self._conn = sqlite3.connect(":memory:", check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.Lock()
        self.requests: List[Dict[str, Any]] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        payload = json.loads(request.content)
        self.requests.append(payload)
        try:
            with self._lock, self._conn:
                rows = [dict(row) for row in self._conn.execute(payload["sql"], payload["params"]).fetchall()]
        except sqlite3.Error as exc:
            return httpx.Response(
                400,
                json={"success": False, "errors": [{"code": 7500, "message": str(exc)}], "result": []},
            )
        return httpx.Response(
            200,
            json={
                "success": True,
                "errors": [],
                "messages": [],
                "result": [{"results": rows, "success": True, "meta": {"changes": 0}}],
            },
        )

    def binding(self) -> D1Binding:
        client = httpx.Client(transport=httpx.MockTransport(self))
        return D1Binding(D1_SETTINGS, client=client)


@pytest.fixture()
def d1_settings() -> D1Settings:
    return D1_SETTINGS


@pytest.fixture()
def fake_d1() -> FakeD1:
    return FakeD1()
