import logging

from fastapi import FastAPI, Request
from fastapi.exception_handlers import http_exception_handler
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from market.api.deps import LoginRequired, SellerRequired
from market.api.rendering import redirect, render
from market.core.errors import Conflict, Forbidden, NotFound, StorageFailure

log = logging.getLogger(__name__)


def _listing_url(listing_id: str | None) -> str:
    return f"/listings/{listing_id}" if listing_id else "/listings"


async def _login_required(request: Request, exc: LoginRequired):
    return redirect("/login")


async def _seller_required(request: Request, exc: SellerRequired):
    return redirect("/listings")


async def _guard_failed(request: Request, exc: Forbidden | NotFound | Conflict):
    # Guard failures are answered with navigation, never with an error page.
    log.info("guard failed on %s %s: %s", request.method, request.url.path, exc.code)
    return redirect(_listing_url(exc.listing_id))


async def _storage_failure(request: Request, exc: StorageFailure):
    log.error("storage failure on %s %s: %s", request.method, request.url.path, exc.message)
    return render(request, "error.html", viewer=None, status_code=500, message="Something went wrong. Please try again.")


async def _database_failure(request: Request, exc: SQLAlchemyError):
    log.error("database failure on %s %s", request.method, request.url.path, exc_info=exc)
    return render(request, "error.html", viewer=None, status_code=500, message="Something went wrong. Please try again.")


async def _not_found_page(request: Request, exc: StarletteHTTPException):
    if exc.status_code == 404:
        return render(request, "error.html", viewer=None, status_code=404, message="Page not found")
    return await http_exception_handler(request, exc)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(LoginRequired, _login_required)
    app.add_exception_handler(SellerRequired, _seller_required)
    app.add_exception_handler(Forbidden, _guard_failed)
    app.add_exception_handler(NotFound, _guard_failed)
    app.add_exception_handler(Conflict, _guard_failed)
    app.add_exception_handler(StorageFailure, _storage_failure)
    app.add_exception_handler(SQLAlchemyError, _database_failure)
    app.add_exception_handler(StarletteHTTPException, _not_found_page)
