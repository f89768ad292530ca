from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from market.core.config import settings
from market.core.errors import Conflict, Forbidden, NotFound, ValidationError
from market.models.listing import Listing
from market.models.review import Review
from market.models.user import User
from market.schemas.listing import BuyerDetails, ListingDraft, ListingImage, PurchaseRequest
from market.services import outbox
from market.services.audit import audit
from market.services.roles import Viewer

log = logging.getLogger(__name__)


class ListingState(str, Enum):
    ACTIVE = "active"
    REQUEST_PENDING = "request_pending"
    SOLD = "sold"


def listing_state(listing: Listing) -> ListingState:
    if listing.is_sold:
        return ListingState.SOLD
    if listing.purchase_request is not None:
        return ListingState.REQUEST_PENDING
    return ListingState.ACTIVE


@dataclass(frozen=True)
class ReviewView:
    review: Review
    author_username: str


@dataclass(frozen=True)
class ListingDetail:
    listing: Listing
    state: ListingState
    owner: User
    buyer: User | None
    reviews: list[ReviewView]


async def load_listing(db: AsyncSession, listing_id: str) -> Listing:
    stmt = select(Listing).where(Listing.id == listing_id)
    listing = (await db.execute(stmt)).scalar_one_or_none()
    if listing is None:
        raise NotFound("Listing not found")
    return listing


def _require_owner(listing: Listing, viewer: Viewer | None) -> Viewer:
    if viewer is None or listing.owner_id != viewer.user_id:
        raise Forbidden("Only the seller can do that", listing_id=listing.id)
    return viewer


def _require_state(listing: Listing, *allowed: ListingState) -> None:
    state = listing_state(listing)
    if state not in allowed:
        raise Conflict(f"Listing is {state.value}", listing_id=listing.id)


async def compare_and_set(db: AsyncSession, listing: Listing, *, actor_id: str, values: dict[str, Any]) -> None:
    """
    Write ``values`` only if the row still carries the version we read.
    A concurrent writer makes this raise Conflict and nothing is applied.
    """
    stmt = (
        update(Listing)
        .where(Listing.id == listing.id, Listing.version == listing.version)
        .values(version=Listing.version + 1, updated_by=actor_id, **values)
        .execution_options(synchronize_session=False)
    )
    res = await db.execute(stmt)
    if res.rowcount != 1:
        raise Conflict("Listing was changed by another request", listing_id=listing.id)
    await db.refresh(listing)


def _release_images(db: AsyncSession, listing: Listing, images: list[ListingImage]) -> None:
    keys = [i.key for i in images if i.key]
    if not keys:
        return
    outbox.emit(
        db,
        aggregate_type="listing",
        aggregate_id=listing.id,
        event_type=outbox.IMAGES_RELEASED,
        payload={"listing_id": listing.id, "keys": keys},
    )


# Reads

async def list_active_listings(db: AsyncSession) -> list[Listing]:
    stmt = select(Listing).where(Listing.is_sold.is_(False)).order_by(Listing.created_at.desc(), Listing.id)
    return list((await db.execute(stmt)).scalars().all())


async def get_listing_detail(db: AsyncSession, listing_id: str) -> ListingDetail:
    listing = await load_listing(db, listing_id)

    owner = (await db.execute(select(User).where(User.id == listing.owner_id))).scalar_one()
    buyer = None
    if listing.buyer_id:
        buyer = (await db.execute(select(User).where(User.id == listing.buyer_id))).scalar_one_or_none()

    reviews: list[ReviewView] = []
    if listing.review_ids:
        stmt = (
            select(Review, User.username)
            .join(User, User.id == Review.author_id)
            .where(Review.id.in_(listing.review_ids))
        )
        by_id = {r.id: ReviewView(review=r, author_username=name) for r, name in (await db.execute(stmt)).all()}
        # keep the listing's ordering
        reviews = [by_id[rid] for rid in listing.review_ids if rid in by_id]

    return ListingDetail(listing=listing, state=listing_state(listing), owner=owner, buyer=buyer, reviews=reviews)


async def get_editable_listing(db: AsyncSession, *, viewer: Viewer | None, listing_id: str) -> Listing:
    listing = await load_listing(db, listing_id)
    _require_owner(listing, viewer)
    _require_state(listing, ListingState.ACTIVE)
    return listing


async def get_buyable_listing(db: AsyncSession, *, viewer: Viewer | None, listing_id: str) -> Listing:
    listing = await load_listing(db, listing_id)
    if viewer is None or listing.owner_id == viewer.user_id:
        raise Forbidden("Sellers cannot buy their own listing", listing_id=listing.id)
    _require_state(listing, ListingState.ACTIVE)
    return listing


# Owner operations

async def create_listing(
    db: AsyncSession,
    *,
    viewer: Viewer,
    draft: ListingDraft,
    images: list[ListingImage],
) -> Listing:
    if len(images) > settings.max_listing_images:
        raise ValidationError(f"At most {settings.max_listing_images} images per listing")

    listing = Listing(
        owner_id=viewer.user_id,
        title=draft.title,
        description=draft.description,
        price=draft.price,
        location=draft.location,
        country=draft.country,
        images=[i.model_dump() for i in images],
        is_sold=False,
        purchase_request=None,
        review_ids=[],
        version=1,
        created_by=viewer.user_id,
        updated_by=viewer.user_id,
    )
    db.add(listing)
    await db.flush()

    await audit(db, actor_user_id=viewer.user_id, action="listing.created", target_type="listing", target_id=listing.id)
    log.info("listing %s created by %s", listing.id, viewer.user_id)
    return listing


async def edit_listing(
    db: AsyncSession,
    *,
    viewer: Viewer | None,
    listing_id: str,
    draft: ListingDraft,
    new_images: list[ListingImage] | None = None,
    remove_keys: list[str] | None = None,
) -> Listing:
    """
    Apply field changes and image additions/removals to an Active listing.
    Owner and sale fields are never touched here. Removed blobs are released
    through the outbox once the transaction commits.
    """
    listing = await load_listing(db, listing_id)
    _require_owner(listing, viewer)
    _require_state(listing, ListingState.ACTIVE)

    drop = set(remove_keys or [])
    current = listing.image_refs
    kept = [i for i in current if i.key is None or i.key not in drop]
    removed = [i for i in current if i.key is not None and i.key in drop]
    images = kept + list(new_images or [])
    if len(images) > settings.max_listing_images:
        raise ValidationError(f"At most {settings.max_listing_images} images per listing")

    await compare_and_set(
        db,
        listing,
        actor_id=viewer.user_id,
        values={
            "title": draft.title,
            "description": draft.description,
            "price": draft.price,
            "location": draft.location,
            "country": draft.country,
            "images": [i.model_dump() for i in images],
        },
    )
    _release_images(db, listing, removed)

    await audit(
        db,
        actor_user_id=viewer.user_id,
        action="listing.edited",
        target_type="listing",
        target_id=listing.id,
        detail={"removed_images": len(removed), "added_images": len(new_images or [])},
    )
    return listing


async def delete_listing(db: AsyncSession, *, viewer: Viewer | None, listing_id: str) -> None:
    listing = await load_listing(db, listing_id)
    _require_owner(listing, viewer)
    _require_state(listing, ListingState.ACTIVE)

    images = listing.image_refs
    # Reviews are not cascaded by the database; remove them with the listing.
    await db.execute(delete(Review).where(Review.listing_id == listing.id))
    res = await db.execute(
        delete(Listing)
        .where(Listing.id == listing.id, Listing.version == listing.version)
        .execution_options(synchronize_session=False)
    )
    if res.rowcount != 1:
        raise Conflict("Listing was changed by another request", listing_id=listing.id)
    db.expunge(listing)

    _release_images(db, listing, images)
    await audit(db, actor_user_id=viewer.user_id, action="listing.deleted", target_type="listing", target_id=listing_id)
    log.info("listing %s deleted by %s", listing_id, viewer.user_id)


# Purchase workflow

async def request_purchase(
    db: AsyncSession,
    *,
    viewer: Viewer | None,
    listing_id: str,
    details: BuyerDetails,
) -> Listing:
    listing = await get_buyable_listing(db, viewer=viewer, listing_id=listing_id)

    request = PurchaseRequest(buyer_id=viewer.user_id, buyer_details=details)
    await compare_and_set(
        db,
        listing,
        actor_id=viewer.user_id,
        values={"purchase_request": request.model_dump(mode="json")},
    )

    await audit(db, actor_user_id=viewer.user_id, action="purchase.requested", target_type="listing", target_id=listing.id)
    log.info("purchase requested on %s by %s", listing.id, viewer.user_id)
    return listing


async def approve_purchase(db: AsyncSession, *, viewer: Viewer | None, listing_id: str) -> Listing:
    listing = await load_listing(db, listing_id)
    _require_owner(listing, viewer)
    _require_state(listing, ListingState.REQUEST_PENDING)

    request = listing.pending_request
    await compare_and_set(
        db,
        listing,
        actor_id=viewer.user_id,
        values={
            "is_sold": True,
            "buyer_id": request.buyer_id,
            "buyer_details": request.buyer_details.model_dump(mode="json"),
            "sold_price": listing.price,
            "purchase_request": None,
        },
    )

    await audit(
        db,
        actor_user_id=viewer.user_id,
        action="purchase.approved",
        target_type="listing",
        target_id=listing.id,
        detail={"buyer_id": request.buyer_id, "sold_price": listing.sold_price},
    )
    log.info("listing %s sold to %s", listing.id, request.buyer_id)
    return listing


async def decline_purchase(db: AsyncSession, *, viewer: Viewer | None, listing_id: str) -> Listing:
    listing = await load_listing(db, listing_id)
    _require_owner(listing, viewer)
    _require_state(listing, ListingState.REQUEST_PENDING)

    buyer_id = listing.pending_request.buyer_id
    await compare_and_set(db, listing, actor_id=viewer.user_id, values={"purchase_request": None})

    await audit(
        db,
        actor_user_id=viewer.user_id,
        action="purchase.declined",
        target_type="listing",
        target_id=listing.id,
        detail={"buyer_id": buyer_id},
    )
    return listing


async def seller_requests(db: AsyncSession, *, viewer: Viewer) -> list[Listing]:
    """
    Pending requests on the viewer's listings. Every unseen request is
    marked seen as a side effect.
    """
    stmt = (
        select(Listing)
        .where(Listing.owner_id == viewer.user_id, Listing.purchase_request.is_not(None))
        .order_by(Listing.updated_at.desc(), Listing.id)
    )
    listings = list((await db.execute(stmt)).scalars().all())

    for listing in listings:
        request = listing.pending_request
        if request.seen_by_seller:
            continue
        seen = request.model_copy(update={"seen_by_seller": True})
        # Bookkeeping only: the version is matched but not bumped, so a
        # concurrent approve/decline is never turned into a Conflict.
        await db.execute(
            update(Listing)
            .where(Listing.id == listing.id, Listing.version == listing.version)
            .values(purchase_request=seen.model_dump(mode="json"))
            .execution_options(synchronize_session=False)
        )
        await db.refresh(listing)

    return [l for l in listings if l.purchase_request is not None]
