from __future__ import annotations

from datetime import datetime, timedelta, timezone

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from market.core.config import settings
from market.core.security import generate_token, hash_token
from market.models.user import User
from market.models.web_session import WebSession


async def open_session(db: AsyncSession, user: User) -> str:
    """Create a server-side session and return the opaque cookie value."""
    token = generate_token()
    db.add(WebSession(
        user_id=user.id,
        token_hash=token.hashed,
        expires_at=datetime.now(timezone.utc) + timedelta(hours=settings.session_ttl_hours),
    ))
    await db.flush()
    return token.plain


async def resolve_session(db: AsyncSession, token: str) -> User | None:
    stmt = (
        select(User)
        .join(WebSession, WebSession.user_id == User.id)
        .where(
            WebSession.token_hash == hash_token(token),
            WebSession.expires_at > datetime.now(timezone.utc),
        )
    )
    return (await db.execute(stmt)).scalar_one_or_none()


async def close_session(db: AsyncSession, token: str) -> None:
    await db.execute(delete(WebSession).where(WebSession.token_hash == hash_token(token)))


async def revoke_user_sessions(db: AsyncSession, user_id: str) -> None:
    await db.execute(delete(WebSession).where(WebSession.user_id == user_id))
