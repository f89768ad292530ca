import pytest
from sqlalchemy import func, select

from fixtures_seed import create_listing, login, logout, signup
from market.models.listing import Listing
from market.models.outbox import OutboxEvent
from market.models.review import Review


def _jpeg(name):
    return ("images", (name, b"\xff\xd8\xff" + name.encode(), "image/jpeg"))


def _fields(**over):
    data = {"title": "Bike", "description": "Red", "price": "100", "location": "Utrecht", "country": "Netherlands"}
    data.update(over)
    return data


async def _listing(session_factory, listing_id) -> Listing:
    async with session_factory() as s:
        return (await s.execute(select(Listing).where(Listing.id == listing_id))).scalar_one()


async def _count(session_factory, model) -> int:
    async with session_factory() as s:
        return (await s.execute(select(func.count()).select_from(model))).scalar_one()


@pytest.mark.asyncio
async def test_index_is_public(client):
    r = await client.get("/listings")
    assert r.status_code == 200
    assert "Nothing for sale yet" in r.text


@pytest.mark.asyncio
async def test_creating_requires_login(client):
    r = await client.get("/listings/new")
    assert r.status_code == 303
    assert r.headers["location"] == "/login"

    r = await client.post("/listings", data=_fields())
    assert r.headers["location"] == "/login"


@pytest.mark.asyncio
async def test_create_without_images_uses_placeholder(client, session_factory):
    await signup(client, "alice", "a@x.com", "pw1")
    listing_id = await create_listing(client)

    listing = await _listing(session_factory, listing_id)
    assert listing.images == []
    r = await client.get(f"/listings/{listing_id}")
    assert r.status_code == 200
    assert listing.cover_image_url in r.text


@pytest.mark.asyncio
async def test_create_with_missing_title_rerenders_form(client, session_factory, blob_store):
    await signup(client, "alice", "a@x.com", "pw1")
    r = await client.post("/listings", data=_fields(title="  "), files=[_jpeg("a.jpg")])

    assert r.status_code == 400
    assert 'class="error"' in r.text
    assert await _count(session_factory, Listing) == 0
    assert blob_store.blobs == {}


@pytest.mark.asyncio
async def test_create_rejects_negative_price(client, session_factory):
    await signup(client, "alice", "a@x.com", "pw1")
    r = await client.post("/listings", data=_fields(price="-1"))
    assert r.status_code == 400
    assert await _count(session_factory, Listing) == 0


@pytest.mark.asyncio
@pytest.mark.parametrize("price", ["inf", "nan", "10000000000"])
async def test_create_rejects_prices_the_column_cannot_hold(client, session_factory, price):
    await signup(client, "alice", "a@x.com", "pw1")
    r = await client.post("/listings", data=_fields(price=price))
    assert r.status_code == 400
    assert 'class="error"' in r.text
    assert await _count(session_factory, Listing) == 0


@pytest.mark.asyncio
async def test_create_rejects_six_images(client, session_factory, blob_store):
    await signup(client, "alice", "a@x.com", "pw1")
    r = await client.post("/listings", data=_fields(), files=[_jpeg(f"{i}.jpg") for i in range(6)])

    assert r.status_code == 400
    assert "At most 5 images" in r.text
    assert blob_store.blobs == {}


@pytest.mark.asyncio
async def test_storage_outage_is_a_server_error(client, session_factory, blob_store):
    await signup(client, "alice", "a@x.com", "pw1")
    blob_store.fail_puts = True

    r = await client.post("/listings", data=_fields(), files=[_jpeg("a.jpg")])
    assert r.status_code == 500
    assert "Something went wrong" in r.text
    assert await _count(session_factory, Listing) == 0


@pytest.mark.asyncio
async def test_edit_adds_and_removes_images(client, session_factory, blob_store):
    await signup(client, "alice", "a@x.com", "pw1")
    listing_id = await create_listing(client, files=[_jpeg("a.jpg"), _jpeg("b.jpg")])
    before = await _listing(session_factory, listing_id)
    drop = before.image_refs[0].key

    r = await client.get(f"/listings/{listing_id}/edit")
    assert r.status_code == 200
    assert drop in r.text

    r = await client.post(
        f"/listings/{listing_id}?_method=PUT",
        data={**_fields(title="Blue bike", price="80"), "remove_images": [drop]},
        files=[_jpeg("c.jpg")],
    )
    assert r.status_code == 303
    assert r.headers["location"] == f"/listings/{listing_id}"

    after = await _listing(session_factory, listing_id)
    assert after.title == "Blue bike"
    assert after.price == 80
    keys = [i.key for i in after.image_refs]
    assert len(keys) == 2
    assert drop not in keys
    assert before.image_refs[1].key in keys
    assert after.version == before.version + 1

    async with session_factory() as s:
        event = (await s.execute(select(OutboxEvent))).scalar_one()
    assert event.payload["keys"] == [drop]


@pytest.mark.asyncio
async def test_edit_over_the_image_limit_discards_new_uploads(client, session_factory, blob_store):
    await signup(client, "alice", "a@x.com", "pw1")
    listing_id = await create_listing(client, files=[_jpeg(f"{i}.jpg") for i in range(4)])
    stored = set(blob_store.blobs)

    r = await client.post(
        f"/listings/{listing_id}?_method=PUT",
        data=_fields(),
        files=[_jpeg("x.jpg"), _jpeg("y.jpg")],
    )
    assert r.status_code == 400
    assert "At most 5 images" in r.text
    assert set(blob_store.blobs) == stored
    assert (await _listing(session_factory, listing_id)).version == 1


@pytest.mark.asyncio
async def test_reviews_over_http(client, session_factory):
    await signup(client, "alice", "a@x.com", "pw1")
    listing_id = await create_listing(client)
    await logout(client)
    await signup(client, "bob", "b@x.com", "pw2")

    r = await client.post(f"/listings/{listing_id}/reviews", data={"comment": "Solid", "rating": "9"})
    assert r.status_code == 400
    assert await _count(session_factory, Review) == 0

    r = await client.post(f"/listings/{listing_id}/reviews", data={"comment": "Solid", "rating": "4"})
    assert r.status_code == 303
    r = await client.get(f"/listings/{listing_id}")
    assert "Solid" in r.text
    assert "4/5 by bob" in r.text

    review_id = (await _listing(session_factory, listing_id)).review_ids[0]
    await logout(client)

    # a third party is sent back to the listing and nothing changes
    await signup(client, "carol", "c@x.com", "pw3")
    r = await client.post(f"/listings/{listing_id}/reviews/{review_id}?_method=DELETE")
    assert r.status_code == 303
    assert r.headers["location"] == f"/listings/{listing_id}"
    assert await _count(session_factory, Review) == 1
    await logout(client)

    await login(client, "b@x.com", "pw2")
    r = await client.post(f"/listings/{listing_id}/reviews/{review_id}?_method=DELETE")
    assert r.status_code == 303
    assert await _count(session_factory, Review) == 0
    assert (await _listing(session_factory, listing_id)).review_ids == []


@pytest.mark.asyncio
async def test_plain_post_is_not_treated_as_delete(client, session_factory):
    await signup(client, "alice", "a@x.com", "pw1")
    listing_id = await create_listing(client)

    r = await client.post(f"/listings/{listing_id}")
    assert r.status_code == 405
    assert await _count(session_factory, Listing) == 1


@pytest.mark.asyncio
async def test_seller_requests_page_is_for_sellers_only(client):
    await signup(client, "alice", "a@x.com", "pw1")
    r = await client.get("/seller/requests")
    assert r.status_code == 303
    assert r.headers["location"] == "/listings"

    await create_listing(client)
    r = await client.get("/seller/requests")
    assert r.status_code == 200
    assert "No pending requests" in r.text
