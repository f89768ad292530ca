from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import exists, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from market.models.listing import Listing
from market.models.user import User


@dataclass(frozen=True)
class Viewer:
    user_id: str
    username: str
    email: str
    is_seller: bool = False
    pending_request_count: int = 0


async def is_seller(db: AsyncSession, user_id: str) -> bool:
    stmt = select(exists().where(Listing.owner_id == user_id))
    return bool((await db.execute(stmt)).scalar())


def pending_unseen_filter(user_id: str):
    return (
        Listing.owner_id == user_id,
        Listing.purchase_request.is_not(None),
        Listing.purchase_request["status"].as_string() == "pending",
        Listing.purchase_request["seen_by_seller"].as_boolean().is_(False),
    )


async def pending_unseen_count(db: AsyncSession, user_id: str) -> int:
    stmt = select(func.count()).select_from(Listing).where(*pending_unseen_filter(user_id))
    return int((await db.execute(stmt)).scalar_one())


async def resolve_viewer(db: AsyncSession, user: User) -> Viewer:
    # Recomputed on every request; nothing here is cached.
    seller = await is_seller(db, user.id)
    count = await pending_unseen_count(db, user.id) if seller else 0
    return Viewer(
        user_id=user.id,
        username=user.username,
        email=user.email,
        is_seller=seller,
        pending_request_count=count,
    )
