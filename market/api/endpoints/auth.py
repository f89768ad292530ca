import logging

from fastapi import APIRouter, Depends, Request
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from market.api.deps import get_viewer
from market.api.rendering import redirect, render
from market.core.config import settings
from market.core.db import get_db
from market.core.errors import (
    DuplicateEmail,
    InvalidCredentials,
    NoSuchAccount,
    TokenInvalidOrExpired,
)
from market.schemas.auth import ForgotForm, LoginForm, ResetForm, SignupForm
from market.schemas.common import first_error_message
from market.services import auth as auth_service
from market.services.roles import Viewer
from market.services.sessions import close_session, open_session

log = logging.getLogger(__name__)

router = APIRouter()


def _start_session(response, token: str):
    response.set_cookie(
        settings.session_cookie_name,
        token,
        max_age=settings.session_ttl_hours * 3600,
        httponly=True,
        samesite="lax",
        secure=settings.session_cookie_secure,
    )
    return response


@router.get("/")
async def root(viewer: Viewer | None = Depends(get_viewer)):
    return redirect("/listings" if viewer else "/login")


@router.get("/login")
async def login_form(request: Request, viewer: Viewer | None = Depends(get_viewer)):
    return render(request, "auth/login.html", viewer=viewer, error=None)


@router.post("/login")
async def login(request: Request, db: AsyncSession = Depends(get_db)):
    raw = dict(await request.form())
    try:
        form = LoginForm.model_validate(raw)
        user = await auth_service.log_in(db, email=form.email, raw_password=form.password)
    except PydanticValidationError:
        return render(request, "auth/login.html", viewer=None, status_code=400,
                      error="Invalid email or password", email=raw.get("email", ""))
    except InvalidCredentials as e:
        return render(request, "auth/login.html", viewer=None, status_code=400,
                      error=e.message, email=raw.get("email", ""))

    token = await open_session(db, user)
    await db.commit()
    return _start_session(redirect("/listings"), token)


@router.get("/signup")
async def signup_form(request: Request, viewer: Viewer | None = Depends(get_viewer)):
    return render(request, "auth/signup.html", viewer=viewer, error=None)


@router.post("/signup")
async def signup(request: Request, db: AsyncSession = Depends(get_db)):
    raw = dict(await request.form())
    try:
        form = SignupForm.model_validate(raw)
        user = await auth_service.sign_up(db, username=form.username, email=form.email, raw_password=form.password)
    except PydanticValidationError as e:
        return render(request, "auth/signup.html", viewer=None, status_code=400,
                      error=first_error_message(e), form=raw)
    except DuplicateEmail as e:
        return render(request, "auth/signup.html", viewer=None, status_code=400,
                      error=e.message, form=raw)

    token = await open_session(db, user)
    await db.commit()
    return _start_session(redirect("/listings"), token)


@router.get("/logout")
async def logout(request: Request, db: AsyncSession = Depends(get_db)):
    token = request.cookies.get(settings.session_cookie_name)
    if token:
        await close_session(db, token)
        await db.commit()
    response = redirect("/login")
    response.delete_cookie(settings.session_cookie_name)
    return response


@router.get("/forgot")
async def forgot_form(request: Request, viewer: Viewer | None = Depends(get_viewer)):
    return render(request, "auth/forgot.html", viewer=viewer, error=None, sent=False)


@router.post("/forgot")
async def forgot(request: Request, db: AsyncSession = Depends(get_db)):
    raw = dict(await request.form())
    try:
        form = ForgotForm.model_validate(raw)
        await auth_service.request_password_reset(db, email=form.email)
    except PydanticValidationError:
        return render(request, "auth/forgot.html", viewer=None, status_code=400,
                      error="Enter the email address of your account", sent=False)
    except NoSuchAccount as e:
        return render(request, "auth/forgot.html", viewer=None, status_code=400, error=e.message, sent=False)

    await db.commit()
    return render(request, "auth/forgot.html", viewer=None, error=None, sent=True)


@router.get("/reset/{token}")
async def reset_form(token: str, request: Request, db: AsyncSession = Depends(get_db)):
    try:
        await auth_service.find_user_by_reset_token(db, token)
    except TokenInvalidOrExpired as e:
        return render(request, "auth/reset.html", viewer=None, status_code=400, error=e.message, token=None)
    return render(request, "auth/reset.html", viewer=None, error=None, token=token)


@router.post("/reset/{token}")
async def reset(token: str, request: Request, db: AsyncSession = Depends(get_db)):
    raw = dict(await request.form())
    try:
        form = ResetForm.model_validate(raw)
    except PydanticValidationError as e:
        return render(request, "auth/reset.html", viewer=None, status_code=400,
                      error=first_error_message(e), token=token)
    try:
        await auth_service.reset_password(db, token=token, new_raw_password=form.password)
    except TokenInvalidOrExpired as e:
        return render(request, "auth/reset.html", viewer=None, status_code=400, error=e.message, token=None)

    await db.commit()
    response = redirect("/login")
    response.delete_cookie(settings.session_cookie_name)
    return response
