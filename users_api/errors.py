"""Exception hierarchy shared by the storage layer and the request handlers."""
from __future__ import annotations


class UsersAPIError(Exception):
    """Base class for errors that map onto an HTTP status code."""

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(UsersAPIError):
    status_code = 400


class NotFoundError(UsersAPIError):
    status_code = 404


class StorageError(UsersAPIError):
    """Raised for any failure reaching or querying the relational store."""

    status_code = 500


class StorageConflictError(StorageError):
    """The store rejected a write because of a uniqueness constraint."""


class StorageUnavailableError(StorageError):
    """The store could not be opened at all."""


__all__ = [
    "UsersAPIError",
    "ValidationError",
    "NotFoundError",
    "StorageError",
    "StorageConflictError",
    "StorageUnavailableError",
]
