from pathlib import Path
from typing import Any

from fastapi import Request
from fastapi.responses import RedirectResponse
from fastapi.templating import Jinja2Templates

from market.services.roles import Viewer

TEMPLATES_DIR = Path(__file__).resolve().parents[1] / "templates"

templates = Jinja2Templates(directory=str(TEMPLATES_DIR))


def render(
    request: Request,
    name: str,
    *,
    viewer: Viewer | None,
    status_code: int = 200,
    **context: Any,
):
    return templates.TemplateResponse(request, name, {"viewer": viewer, **context}, status_code=status_code)


def redirect(url: str) -> RedirectResponse:
    # 303 so the browser follows with GET after POST/PUT/DELETE
    return RedirectResponse(url, status_code=303)
