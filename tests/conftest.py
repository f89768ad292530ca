import os

# Settings are read at import time; configure the test environment first.
os.environ.setdefault("TELEMETRY_ENABLED", "false")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("SESSION_SECRET", "test-session-secret")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("BLOB_BACKEND", "local")
if "OUTBOX_ENCRYPTION_KEY" not in os.environ:
    from cryptography.fernet import Fernet

    os.environ["OUTBOX_ENCRYPTION_KEY"] = Fernet.generate_key().decode("utf-8")

import pytest
import httpx

from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession

# Import Base + all models so metadata is complete
import market.models  # noqa: F401
from market.models.base import Base

from market.main import app
from market.core.db import get_db
from market.services.storage import get_blob_store

from fixtures_seed import seed_users  # noqa: F401


class InMemoryBlobStore:
    def __init__(self):
        self.blobs: dict[str, bytes] = {}
        self.deleted: list[str] = []
        self.fail_puts = False

    def put_bytes(self, *, key: str, data: bytes, content_type: str | None = None) -> str:
        from market.core.errors import StorageFailure

        if self.fail_puts:
            raise StorageFailure(f"put failed for {key}")
        self.blobs[key] = data
        return f"memory://{key}"

    def delete(self, *, key: str) -> None:
        self.blobs.pop(key, None)
        self.deleted.append(key)


def _test_db_url(tmp_path) -> str:
    # A file database gives every session its own connection, like PostgreSQL.
    return os.getenv("DATABASE_URL_TEST") or f"sqlite+aiosqlite:///{tmp_path / 'market.db'}"


@pytest.fixture
async def async_engine(tmp_path):
    engine = create_async_engine(_test_db_url(tmp_path), future=True)
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
            await conn.run_sync(Base.metadata.create_all)
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture
def session_factory(async_engine):
    return async_sessionmaker(bind=async_engine, expire_on_commit=False, class_=AsyncSession)


@pytest.fixture
async def db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        await session.close()


@pytest.fixture
def blob_store():
    return InMemoryBlobStore()


@pytest.fixture
async def client(session_factory, blob_store):
    """
    HTTP client wired to the test database (one session per request, as in
    production) and to an in-memory blob store.
    """
    async def _override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_blob_store] = lambda: blob_store

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
