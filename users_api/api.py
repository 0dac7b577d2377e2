"""FastAPI application exposing the users REST API."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from functools import partial
from typing import AsyncIterator, Dict

import anyio
from fastapi import APIRouter, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import Settings, load_settings
from .handlers import HandlerResponse, UserHandlers
from .middleware import AccessLogMiddleware, ErrorBoundaryMiddleware
from .storage import D1Binding, StorageAccessor
from .web import register_ui_routes

logger = logging.getLogger("users_api.api")


def _utc_timestamp() -> str:
    now = datetime.now(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _to_json(result: HandlerResponse) -> JSONResponse:
    return JSONResponse(status_code=result.status_code, content=result.body)


def _request_binding(request: Request) -> D1Binding | None:
    # Edge runtimes attach their per-request database binding to the ASGI state.
    return getattr(request.state, "db_binding", None)


def create_users_router(handlers: UserHandlers) -> APIRouter:
    """Return the router mounted at ``/api/users``."""

    router = APIRouter()

    @router.get("")
    async def list_users(request: Request) -> JSONResponse:
        result = await anyio.to_thread.run_sync(
            partial(handlers.list_users, binding=_request_binding(request))
        )
        return _to_json(result)

    @router.get("/{user_id}")
    async def read_user(user_id: str, request: Request) -> JSONResponse:
        result = await anyio.to_thread.run_sync(
            partial(handlers.get_user, user_id, binding=_request_binding(request))
        )
        return _to_json(result)

    @router.post("")
    async def create_user(request: Request) -> JSONResponse:
        try:
            body = await request.json()
        except ValueError:
            body = None
        result = await anyio.to_thread.run_sync(
            partial(handlers.create_user, body, binding=_request_binding(request))
        )
        return _to_json(result)

    return router


def create_app(
    settings: Settings | None = None,
    *,
    accessor: StorageAccessor | None = None,
    initialize_storage: bool = True,
) -> FastAPI:
    """Instantiate the FastAPI application for the users API."""

    if settings is None:
        settings = load_settings()
    if accessor is None:
        accessor = StorageAccessor.from_settings(settings.storage)

    handlers = UserHandlers(accessor)

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        if initialize_storage:
            await anyio.to_thread.run_sync(lambda: accessor.get().initialize())
            logger.info("Storage schema is ready")
        try:
            yield
        finally:
            accessor.close()

    app = FastAPI(
        title="Users API",
        version="0.1.0",
        description="Single-resource REST API backed by a relational store.",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.accessor = accessor
    app.state.handlers = handlers

    app.add_middleware(ErrorBoundaryMiddleware)
    app.add_middleware(AccessLogMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(StarletteHTTPException)
    async def http_error(_request: Request, exc: StarletteHTTPException) -> JSONResponse:
        if exc.status_code == 404:
            content = {"error": "Not Found"}
        else:
            content = {"error": str(exc.detail)}
        return JSONResponse(status_code=exc.status_code, content=content, headers=exc.headers)

    @app.get("/health")
    async def healthcheck() -> Dict[str, str]:
        return {"status": "ok", "timestamp": _utc_timestamp()}

    app.include_router(create_users_router(handlers), prefix="/api/users")

    if settings.web_enabled:
        register_ui_routes(app)

    return app


__all__ = ["create_app", "create_users_router"]
