import pytest

from market.core.security import hash_password
from market.models.user import User
from market.services.roles import Viewer


def viewer_for(user: User) -> Viewer:
    return Viewer(user_id=user.id, username=user.username, email=user.email)


@pytest.fixture
async def seed_users(db_session):
    users = {
        name: User(username=name, email=f"{name}@example.com", password_hash=hash_password(f"{name}-pw"))
        for name in ("alice", "bob", "carol")
    }
    db_session.add_all(users.values())
    await db_session.commit()
    return users


async def signup(client, username: str, email: str, password: str):
    return await client.post("/signup", data={"username": username, "email": email, "password": password})


async def login(client, email: str, password: str):
    return await client.post("/login", data={"email": email, "password": password})


async def logout(client):
    return await client.get("/logout")


async def create_listing(client, *, title="Bike", price="100", files=None) -> str:
    r = await client.post(
        "/listings",
        data={
            "title": title,
            "description": "A good one",
            "price": price,
            "location": "Utrecht",
            "country": "Netherlands",
        },
        files=files,
    )
    assert r.status_code == 303, r.text
    return r.headers["location"].rsplit("/", 1)[-1]


def buyer_form(name="Bob Buyer", email="bob.buyer@example.com", address="1 Canal St"):
    return {"name": name, "email": email, "address": address}
