"""Table definitions for the relational store."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Tuple


@dataclass(frozen=True)
class Column:
    name: str
    definition: str
    store_assigned: bool = False


@dataclass(frozen=True)
class Table:
    """Describes a table: its columns, which of them the store assigns, and its DDL."""

    name: str
    columns: Tuple[Column, ...]
    order_by: str = "id"

    def column(self, name: str) -> Column:
        for column in self.columns:
            if column.name == name:
                return column
        raise KeyError(f"Unknown column '{name}' on table '{self.name}'")

    @property
    def column_names(self) -> Tuple[str, ...]:
        return tuple(column.name for column in self.columns)

    @property
    def writable_columns(self) -> Tuple[str, ...]:
        return tuple(column.name for column in self.columns if not column.store_assigned)

    def create_statement(self) -> str:
        body = ",\n    ".join(f"{column.name} {column.definition}" for column in self.columns)
        return f"CREATE TABLE IF NOT EXISTS {self.name} (\n    {body}\n)"


USERS = Table(
    name="users",
    columns=(
        Column("id", "INTEGER PRIMARY KEY AUTOINCREMENT", store_assigned=True),
        Column("name", "TEXT NOT NULL"),
        Column("email", "TEXT NOT NULL UNIQUE"),
        Column(
            "created_at",
            "TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now'))",
            store_assigned=True,
        ),
    ),
)

TABLES: Tuple[Table, ...] = (USERS,)


def schema_statements(tables: Iterable[Table] = TABLES) -> Tuple[str, ...]:
    return tuple(table.create_statement() for table in tables)


__all__ = ["Column", "Table", "USERS", "TABLES", "schema_statements"]
