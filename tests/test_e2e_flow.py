import pytest
from sqlalchemy import func, select

from fixtures_seed import buyer_form, create_listing, login, logout, signup
from market.models.listing import Listing
from market.models.outbox import OutboxEvent


async def _listing(session_factory, listing_id) -> Listing:
    async with session_factory() as s:
        return (await s.execute(select(Listing).where(Listing.id == listing_id))).scalar_one()


@pytest.mark.asyncio
async def test_sell_request_and_approve_end_to_end(client, session_factory):
    r = await signup(client, "alice", "a@x.com", "pw1")
    assert r.status_code == 303
    listing_id = await create_listing(client, title="Bike", price="100")
    await logout(client)

    assert (await signup(client, "bob", "b@x.com", "pw2")).status_code == 303
    r = await client.get(f"/listings/{listing_id}/buy")
    assert r.status_code == 200
    r = await client.post(f"/listings/{listing_id}/buy", data=buyer_form())
    assert r.status_code == 303
    assert r.headers["location"] == f"/listings/{listing_id}"

    listing = await _listing(session_factory, listing_id)
    assert listing.is_sold is False
    assert listing.pending_request.buyer_id.startswith("usr_")
    bob_id = listing.pending_request.buyer_id
    await logout(client)

    assert (await login(client, "a@x.com", "pw1")).status_code == 303
    r = await client.get("/listings")
    assert "Requests (1)" in r.text

    r = await client.get("/seller/requests")
    assert r.status_code == 200
    assert "Bob Buyer" in r.text

    r = await client.post(f"/listings/{listing_id}/approve")
    assert r.status_code == 303
    assert r.headers["location"] == "/seller/requests"

    listing = await _listing(session_factory, listing_id)
    assert listing.is_sold is True
    assert listing.buyer_id == bob_id
    assert listing.sold_price == 100
    assert listing.purchase_request is None

    # replayed approve changes nothing
    r = await client.post(f"/listings/{listing_id}/approve")
    assert r.status_code == 303
    again = await _listing(session_factory, listing_id)
    assert (again.version, again.buyer_id, again.sold_price) == (listing.version, bob_id, 100)

    r = await client.get(f"/listings/{listing_id}")
    assert "Sold" in r.text
    assert "Bob Buyer" in r.text

    # sold listings leave the index
    r = await client.get("/listings")
    assert f"/listings/{listing_id}" not in r.text


@pytest.mark.asyncio
async def test_decline_puts_listing_back_on_sale(client, session_factory):
    await signup(client, "alice", "a@x.com", "pw1")
    listing_id = await create_listing(client)
    await logout(client)
    await signup(client, "bob", "b@x.com", "pw2")
    await client.post(f"/listings/{listing_id}/buy", data=buyer_form())
    await logout(client)

    await login(client, "a@x.com", "pw1")
    r = await client.post(f"/listings/{listing_id}/decline")
    assert r.status_code == 303

    listing = await _listing(session_factory, listing_id)
    assert listing.purchase_request is None
    assert listing.is_sold is False


@pytest.mark.asyncio
async def test_seller_cannot_buy_own_listing(client, session_factory):
    await signup(client, "bob", "b@x.com", "pw2")
    listing_id = await create_listing(client)

    r = await client.post(f"/listings/{listing_id}/buy", data=buyer_form())
    assert r.status_code == 303
    assert r.headers["location"] == f"/listings/{listing_id}"

    listing = await _listing(session_factory, listing_id)
    assert listing.purchase_request is None


@pytest.mark.asyncio
async def test_second_buyer_is_turned_away(client, session_factory):
    await signup(client, "alice", "a@x.com", "pw1")
    listing_id = await create_listing(client)
    await logout(client)
    await signup(client, "bob", "b@x.com", "pw2")
    await client.post(f"/listings/{listing_id}/buy", data=buyer_form())
    await logout(client)

    await signup(client, "carol", "c@x.com", "pw3")
    r = await client.get(f"/listings/{listing_id}/buy")
    assert r.status_code == 303
    r = await client.post(f"/listings/{listing_id}/buy", data=buyer_form(name="Carol"))
    assert r.status_code == 303

    listing = await _listing(session_factory, listing_id)
    assert listing.pending_request.buyer_details.name == "Bob Buyer"


@pytest.mark.asyncio
async def test_non_owner_cannot_edit_delete_or_approve(client, session_factory):
    await signup(client, "alice", "a@x.com", "pw1")
    listing_id = await create_listing(client, title="Bike")
    await logout(client)
    await signup(client, "bob", "b@x.com", "pw2")

    r = await client.get(f"/listings/{listing_id}/edit")
    assert r.status_code == 303
    r = await client.post(f"/listings/{listing_id}?_method=PUT", data={
        "title": "Stolen", "description": "", "price": "1", "location": "X", "country": "Y"})
    assert r.status_code == 303
    r = await client.post(f"/listings/{listing_id}?_method=DELETE")
    assert r.status_code == 303
    assert r.headers["location"] == f"/listings/{listing_id}"

    # bob is not a seller yet, so the seller pages send him to the index
    r = await client.post(f"/listings/{listing_id}/approve")
    assert r.headers["location"] == "/listings"

    listing = await _listing(session_factory, listing_id)
    assert listing.title == "Bike"
    assert listing.version == 1


@pytest.mark.asyncio
async def test_owner_deletes_listing_and_blobs_are_queued(client, session_factory, blob_store):
    await signup(client, "alice", "a@x.com", "pw1")
    listing_id = await create_listing(
        client,
        files=[("images", ("bike.jpg", b"\xff\xd8\xff", "image/jpeg"))],
    )
    assert len(blob_store.blobs) == 1

    r = await client.post(f"/listings/{listing_id}?_method=DELETE")
    assert r.status_code == 303
    assert r.headers["location"] == "/listings"

    async with session_factory() as s:
        assert (await s.execute(select(func.count()).select_from(Listing))).scalar_one() == 0
        event = (await s.execute(select(OutboxEvent))).scalar_one()
    assert event.payload["keys"] == list(blob_store.blobs)

    r = await client.get(f"/listings/{listing_id}")
    assert r.status_code == 303
    assert r.headers["location"] == "/listings"
