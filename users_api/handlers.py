"""List/get/create operations for the ``users`` resource.

Handlers never raise for expected failures: every outcome is translated into
a :class:`HandlerResponse` carrying the status code and the JSON envelope.
Anything that is not a storage or input problem propagates to the router.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError as PydanticValidationError

from .errors import (
    NotFoundError,
    StorageError,
    UsersAPIError,
    ValidationError,
)
from .models import User
from .schema import USERS
from .storage import D1Binding, StorageAccessor

logger = logging.getLogger("users_api.handlers")


class UserResponse(BaseModel):
    id: int
    name: str
    email: str
    created_at: datetime = Field(serialization_alias="createdAt")


class Envelope(BaseModel):
    success: bool
    data: Any = None
    error: Optional[str] = None


class CreateUserRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = None
    email: Optional[str] = None


@dataclass(frozen=True)
class HandlerResponse:
    status_code: int
    body: Dict[str, Any]


def user_to_response(user: User) -> UserResponse:
    return UserResponse(
        id=user.id,
        name=user.name,
        email=user.email,
        created_at=user.created_at,
    )


def _serialize(user: User) -> Dict[str, Any]:
    return user_to_response(user).model_dump(mode="json", by_alias=True)


def _success(data: Any, status_code: int = 200) -> HandlerResponse:
    envelope = Envelope(success=True, data=data)
    return HandlerResponse(status_code, envelope.model_dump(mode="json", exclude_none=True))


def _failure(exc: UsersAPIError) -> HandlerResponse:
    envelope = Envelope(success=False, error=exc.message)
    return HandlerResponse(exc.status_code, envelope.model_dump(mode="json", exclude_none=True))


_USER_ID_PATTERN = re.compile(r"-?\d+")
# Store ids are signed 64-bit integers.
_MIN_USER_ID = -(2**63)
_MAX_USER_ID = 2**63 - 1


def parse_user_id(raw_id: str) -> int:
    text = str(raw_id).strip()
    if not _USER_ID_PATTERN.fullmatch(text):
        raise ValidationError("Invalid user id")
    user_id = int(text)
    if not _MIN_USER_ID <= user_id <= _MAX_USER_ID:
        raise ValidationError("Invalid user id")
    return user_id


class UserHandlers:
    """Stateless request handlers for the ``users`` resource."""

    def __init__(self, accessor: StorageAccessor) -> None:
        self._accessor = accessor

    def list_users(self, *, binding: D1Binding | None = None) -> HandlerResponse:
        try:
            rows = self._accessor.get(binding).select(USERS).all()
            users = [User.from_row(row) for row in rows]
        except StorageError:
            logger.exception("list_users failed")
            return _failure(StorageError("Failed to fetch users"))

        return _success([_serialize(user) for user in users])

    def get_user(self, raw_id: str, *, binding: D1Binding | None = None) -> HandlerResponse:
        try:
            user_id = parse_user_id(raw_id)
        except ValidationError as exc:
            logger.info("get_user rejected id %r", raw_id)
            return _failure(exc)

        try:
            row = self._accessor.get(binding).select(USERS).where(id=user_id).first()
            user = User.from_row(row) if row is not None else None
        except StorageError:
            logger.exception("get_user failed for id %s", user_id)
            return _failure(StorageError("Failed to fetch user"))

        if user is None:
            return _failure(NotFoundError("User not found"))
        return _success(_serialize(user))

    def create_user(self, body: Any, *, binding: D1Binding | None = None) -> HandlerResponse:
        if not isinstance(body, dict):
            return _failure(ValidationError("Invalid request body"))

        try:
            payload = CreateUserRequest.model_validate(body)
        except PydanticValidationError:
            return _failure(ValidationError("Name and email are required"))

        if not payload.name or not payload.email:
            return _failure(ValidationError("Name and email are required"))

        try:
            row = self._accessor.get(binding).insert(USERS).values(name=payload.name, email=payload.email)
            user = User.from_row(row)
        except StorageError:
            logger.exception("create_user failed")
            return _failure(StorageError("Failed to create user"))

        logger.info("Created user %s", user.id)
        return _success(_serialize(user), status_code=201)


__all__ = [
    "CreateUserRequest",
    "Envelope",
    "HandlerResponse",
    "UserHandlers",
    "UserResponse",
    "parse_user_id",
    "user_to_response",
]
