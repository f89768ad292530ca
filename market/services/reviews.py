from __future__ import annotations

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from market.core.errors import Forbidden, NotFound
from market.models.review import Review
from market.schemas.review import ReviewDraft
from market.services.audit import audit
from market.services.listings import compare_and_set, load_listing
from market.services.roles import Viewer


async def add_review(db: AsyncSession, *, viewer: Viewer, listing_id: str, draft: ReviewDraft) -> Review:
    """
    Insert the review and register it on the listing in the same transaction;
    if the listing write loses a race the insert is rolled back with it.
    """
    listing = await load_listing(db, listing_id)

    review = Review(listing_id=listing.id, author_id=viewer.user_id, comment=draft.comment, rating=draft.rating)
    db.add(review)
    await db.flush()

    await compare_and_set(
        db,
        listing,
        actor_id=viewer.user_id,
        values={"review_ids": [*listing.review_ids, review.id]},
    )
    await audit(
        db,
        actor_user_id=viewer.user_id,
        action="review.added",
        target_type="review",
        target_id=review.id,
        detail={"listing_id": listing.id},
    )
    return review


async def remove_review(db: AsyncSession, *, viewer: Viewer | None, listing_id: str, review_id: str) -> None:
    listing = await load_listing(db, listing_id)

    stmt = select(Review).where(Review.id == review_id, Review.listing_id == listing.id)
    review = (await db.execute(stmt)).scalar_one_or_none()
    if review is None:
        raise NotFound("Review not found", listing_id=listing.id)

    is_author = viewer is not None and review.author_id == viewer.user_id
    is_owner = viewer is not None and listing.owner_id == viewer.user_id
    if not (is_author or is_owner):
        raise Forbidden("Only the author or the seller can remove a review", listing_id=listing.id)

    await compare_and_set(
        db,
        listing,
        actor_id=viewer.user_id,
        values={"review_ids": [rid for rid in listing.review_ids if rid != review_id]},
    )
    await db.execute(
        delete(Review).where(Review.id == review_id).execution_options(synchronize_session=False)
    )
    db.expunge(review)

    await audit(
        db,
        actor_user_id=viewer.user_id,
        action="review.removed",
        target_type="review",
        target_id=review_id,
        detail={"listing_id": listing.id},
    )
