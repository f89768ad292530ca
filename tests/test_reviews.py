import pytest
from sqlalchemy import select

from fixtures_seed import viewer_for
from market.core.errors import Forbidden, NotFound
from market.models.listing import Listing
from market.models.review import Review
from market.schemas.listing import ListingDraft
from market.schemas.review import ReviewDraft
from market.services import listings as lifecycle
from market.services import reviews as review_service


@pytest.fixture
async def listing(db_session, seed_users):
    draft = ListingDraft(title="Lamp", description="Brass", price=40, location="Ghent", country="Belgium")
    listing = await lifecycle.create_listing(db_session, viewer=viewer_for(seed_users["alice"]), draft=draft, images=[])
    await db_session.commit()
    return listing


async def _state(session_factory, listing_id):
    async with session_factory() as s:
        listing = (await s.execute(select(Listing).where(Listing.id == listing_id))).scalar_one()
        review_rows = (await s.execute(select(Review.id).where(Review.listing_id == listing_id))).scalars().all()
    return listing.review_ids, sorted(review_rows)


@pytest.mark.asyncio
async def test_add_and_remove_keep_both_sides_in_step(db_session, session_factory, seed_users, listing):
    bob = viewer_for(seed_users["bob"])

    review = await review_service.add_review(db_session, viewer=bob, listing_id=listing.id,
                                             draft=ReviewDraft(comment="Works great", rating=5))
    await db_session.commit()
    assert await _state(session_factory, listing.id) == ([review.id], [review.id])

    await review_service.remove_review(db_session, viewer=bob, listing_id=listing.id, review_id=review.id)
    await db_session.commit()
    assert await _state(session_factory, listing.id) == ([], [])


@pytest.mark.asyncio
async def test_listing_owner_can_remove_any_review(db_session, session_factory, seed_users, listing):
    review = await review_service.add_review(db_session, viewer=viewer_for(seed_users["bob"]), listing_id=listing.id,
                                             draft=ReviewDraft(comment="Meh", rating=2))
    await db_session.commit()

    await review_service.remove_review(db_session, viewer=viewer_for(seed_users["alice"]), listing_id=listing.id,
                                       review_id=review.id)
    await db_session.commit()
    assert await _state(session_factory, listing.id) == ([], [])


@pytest.mark.asyncio
async def test_third_party_cannot_remove_review(db_session, session_factory, seed_users, listing):
    review = await review_service.add_review(db_session, viewer=viewer_for(seed_users["bob"]), listing_id=listing.id,
                                             draft=ReviewDraft(comment="Fine", rating=3))
    await db_session.commit()
    listing_id, review_id = listing.id, review.id

    with pytest.raises(Forbidden) as exc:
        await review_service.remove_review(db_session, viewer=viewer_for(seed_users["carol"]), listing_id=listing.id,
                                           review_id=review.id)
    assert exc.value.listing_id == listing_id
    await db_session.rollback()
    assert await _state(session_factory, listing_id) == ([review_id], [review_id])


@pytest.mark.asyncio
async def test_missing_review_is_not_found(db_session, seed_users, listing):
    with pytest.raises(NotFound) as exc:
        await review_service.remove_review(db_session, viewer=viewer_for(seed_users["alice"]), listing_id=listing.id,
                                           review_id="rev_missing")
    assert exc.value.listing_id == listing.id


@pytest.mark.asyncio
async def test_reviews_keep_insertion_order_in_detail(db_session, seed_users, listing):
    for name, rating in (("bob", 4), ("carol", 1)):
        await review_service.add_review(db_session, viewer=viewer_for(seed_users[name]), listing_id=listing.id,
                                        draft=ReviewDraft(comment=f"from {name}", rating=rating))
    await db_session.commit()

    detail = await lifecycle.get_listing_detail(db_session, listing.id)
    assert [(r.author_username, r.review.rating) for r in detail.reviews] == [("bob", 4), ("carol", 1)]
    assert detail.owner.username == "alice"
