import asyncio
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker

from market.core.config import settings
from market.core.security import hash_password
from market.models.listing import Listing
from market.models.user import User

log = logging.getLogger(__name__)

DEMO_SELLER_EMAIL = "demo-seller@market.local"

DEMO_LISTINGS = [
    {"title": "Road Bike", "description": "Aluminium frame, 21 gears, new tyres.", "price": 350.0,
     "location": "Amsterdam", "country": "Netherlands"},
    {"title": "Oak Dining Table", "description": "Seats six. Minor scratches.", "price": 220.0,
     "location": "Porto", "country": "Portugal"},
    {"title": "Film Camera", "description": "35mm rangefinder with case.", "price": 180.0,
     "location": "Lyon", "country": "France"},
    {"title": "Bookshelf", "description": "Five shelves, white.", "price": 40.0,
     "location": "Berlin", "country": "Germany"},
]


async def main():
    logging.basicConfig(level=settings.log_level)
    engine = create_async_engine(settings.database_url, pool_pre_ping=True)
    Session = async_sessionmaker(engine, expire_on_commit=False)

    async with Session() as db:
        seller = (await db.execute(select(User).where(User.email == DEMO_SELLER_EMAIL))).scalar_one_or_none()
        if not seller:
            seller = User(username="demo-seller", email=DEMO_SELLER_EMAIL, password_hash=hash_password("demo-password"))
            db.add(seller)
            await db.flush()

        existing = (await db.execute(select(Listing.id).where(Listing.owner_id == seller.id))).first()
        if existing:
            log.info("demo listings already present")
        else:
            for d in DEMO_LISTINGS:
                db.add(Listing(owner_id=seller.id, images=[], review_ids=[], created_by="system", updated_by="system", **d))
            log.info("inserted %d demo listings", len(DEMO_LISTINGS))
        await db.commit()

    await engine.dispose()

if __name__ == "__main__":
    asyncio.run(main())
# Seeds a demo seller account with a handful of listings when none exist yet.
