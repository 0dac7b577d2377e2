"""Domain models for the users service."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Mapping

from .errors import StorageError


def _parse_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        # SQLite's CURRENT_TIMESTAMP uses a space separator and no offset.
        parsed = datetime.fromisoformat(text.replace(" ", "T", 1))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True)
class User:
    """Represents a user record held in the relational store."""

    id: int
    name: str
    email: str
    created_at: datetime

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "User":
        try:
            if row["created_at"] is None:
                raise ValueError("created_at is null")
            return cls(
                id=int(row["id"]),
                name=str(row["name"]),
                email=str(row["email"]),
                created_at=_parse_datetime(row["created_at"]),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise StorageError(f"Malformed users row: {exc}") from exc


__all__ = ["User"]
