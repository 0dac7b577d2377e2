"""Single-page view that lists the users exposed by the API."""
from __future__ import annotations

from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.responses import HTMLResponse
from fastapi.templating import Jinja2Templates

TEMPLATE_DIR = Path(__file__).resolve().parent / "templates"


def _template_environment() -> Jinja2Templates:
    return Jinja2Templates(directory=str(TEMPLATE_DIR))


def register_ui_routes(app: FastAPI, *, users_endpoint: str = "/api/users") -> None:
    """Serve the users page at ``/``. The page fetches ``users_endpoint`` itself."""

    templates = _template_environment()

    @app.get("/", response_class=HTMLResponse, include_in_schema=False)
    async def index(request: Request) -> HTMLResponse:
        return templates.TemplateResponse(
            request,
            "index.html",
            {"title": "Fullstack Demo", "users_endpoint": users_endpoint},
        )


__all__ = ["register_ui_routes"]
