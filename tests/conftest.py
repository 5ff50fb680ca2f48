import os

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession

# Import Base + all models so metadata is complete
from gbp_hub.models import Base

from gbp_hub.main import app
from gbp_hub.core.db import get_db
from gbp_hub.services.google_credentials import get_google_client

from fakes import FakeGoogle
from fixtures_seed import seed_org_admin, seed_other_org, seed_member, seed_listing  # noqa: F401


def _test_db_url() -> str | None:
    return os.getenv("DATABASE_URL_TEST")


@pytest_asyncio.fixture(scope="session", loop_scope="session")
async def async_engine():
    url = _test_db_url()
    if not url:
        pytest.skip("DATABASE_URL_TEST is not set")

    engine = create_async_engine(url, pool_pre_ping=True)
    try:
        # Create schema once per test session
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
            await conn.run_sync(Base.metadata.create_all)
        yield engine
    finally:
        await engine.dispose()


@pytest_asyncio.fixture(loop_scope="session")
async def db_session(async_engine):
    """
    Transactional rollback per test:
    - Start an outer transaction on a dedicated connection
    - Bind the session with join_transaction_mode="create_savepoint" so the
      code under test can commit/rollback freely; each of those only ends a
      SAVEPOINT inside the outer transaction
    """
    async with async_engine.connect() as conn:
        trans = await conn.begin()

        session_factory = async_sessionmaker(
            bind=conn,
            expire_on_commit=False,
            class_=AsyncSession,
            join_transaction_mode="create_savepoint",
        )
        session = session_factory()

        try:
            yield session
        finally:
            await session.close()
            await trans.rollback()


@pytest_asyncio.fixture(loop_scope="session")
async def client(db_session: AsyncSession):
    """
    HTTP client that uses the test DB session via dependency override.
    """
    async def _override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = _override_get_db

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def fake_google(client):
    fake = FakeGoogle()
    app.dependency_overrides[get_google_client] = lambda: fake
    return fake
