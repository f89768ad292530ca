from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from market.core.config import settings
from market.core.crypto import encrypt_json
from market.core.errors import DuplicateEmail, InvalidCredentials, NoSuchAccount, TokenInvalidOrExpired
from market.core.security import generate_token, hash_password, hash_token, verify_password
from market.models.user import User
from market.services import outbox
from market.services.sessions import revoke_user_sessions

log = logging.getLogger(__name__)


def normalize_email(email: str) -> str:
    return email.strip().lower()


async def find_user_by_email(db: AsyncSession, email: str) -> User | None:
    stmt = select(User).where(User.email == normalize_email(email))
    return (await db.execute(stmt)).scalar_one_or_none()


async def sign_up(db: AsyncSession, *, username: str, email: str, raw_password: str) -> User:
    """
    Create an identity. Emails are unique ignoring case.
    The caller opens the session and commits.
    """
    if await find_user_by_email(db, email):
        raise DuplicateEmail("Email already registered")

    user = User(username=username, email=normalize_email(email), password_hash=hash_password(raw_password))
    db.add(user)
    try:
        await db.flush()
    except IntegrityError:
        # Lost a race against a concurrent signup for the same address
        await db.rollback()
        raise DuplicateEmail("Email already registered")

    log.info("user signed up: %s", user.id)
    return user


async def log_in(db: AsyncSession, *, email: str, raw_password: str) -> User:
    user = await find_user_by_email(db, email)
    if user is None or not verify_password(raw_password, user.password_hash):
        raise InvalidCredentials("Invalid email or password")
    return user


def reset_link(token: str) -> str:
    return f"{settings.base_url.rstrip('/')}/reset/{token}"


async def request_password_reset(db: AsyncSession, *, email: str) -> str:
    """
    Issue a single-use reset token (replacing any outstanding one) and queue
    the link for delivery. Returns the link.
    """
    user = await find_user_by_email(db, email)
    if user is None:
        raise NoSuchAccount("No account with that email address")

    token = generate_token()
    user.reset_token_hash = token.hashed
    user.reset_token_expires_at = datetime.now(timezone.utc) + timedelta(minutes=settings.reset_token_ttl_minutes)

    link = reset_link(token.plain)
    outbox.emit(
        db,
        aggregate_type="user",
        aggregate_id=user.id,
        event_type=outbox.PASSWORD_RESET_REQUESTED,
        # the link is a bearer credential; keep it encrypted at rest
        payload={"sealed": encrypt_json({"email": user.email, "username": user.username, "link": link})},
    )
    await db.flush()
    return link


async def find_user_by_reset_token(db: AsyncSession, token: str) -> User:
    stmt = select(User).where(
        User.reset_token_hash == hash_token(token),
        User.reset_token_expires_at > datetime.now(timezone.utc),
    )
    user = (await db.execute(stmt)).scalar_one_or_none()
    if user is None:
        raise TokenInvalidOrExpired("Password reset link is invalid or has expired")
    return user


async def reset_password(db: AsyncSession, *, token: str, new_raw_password: str) -> User:
    """
    Consume the reset token and set the new password. The token is cleared
    with a conditional update so only one of two racing resets can win.
    """
    user = await find_user_by_reset_token(db, token)

    res = await db.execute(
        update(User)
        .where(User.id == user.id, User.reset_token_hash == hash_token(token))
        .values(password_hash=hash_password(new_raw_password), reset_token_hash=None, reset_token_expires_at=None)
        .execution_options(synchronize_session=False)
    )
    if res.rowcount != 1:
        raise TokenInvalidOrExpired("Password reset link is invalid or has expired")
    await db.refresh(user)

    # Sessions opened with the old password do not survive a reset.
    await revoke_user_sessions(db, user.id)
    await db.flush()

    log.info("password reset for user %s", user.id)
    return user
