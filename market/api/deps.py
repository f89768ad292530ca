from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from market.core.config import settings
from market.core.db import get_db
from market.services.roles import Viewer, resolve_viewer
from market.services.sessions import resolve_session


class LoginRequired(Exception):
    pass


class SellerRequired(Exception):
    pass


async def get_viewer(request: Request, db: AsyncSession = Depends(get_db)) -> Viewer | None:
    token = request.cookies.get(settings.session_cookie_name)
    if not token:
        return None
    user = await resolve_session(db, token)
    if user is None:
        return None
    return await resolve_viewer(db, user)


def require_viewer(viewer: Viewer | None = Depends(get_viewer)) -> Viewer:
    if viewer is None:
        raise LoginRequired()
    return viewer


def require_seller(viewer: Viewer = Depends(require_viewer)) -> Viewer:
    if not viewer.is_seller:
        raise SellerRequired()
    return viewer
