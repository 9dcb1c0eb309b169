import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool

from minicrm.main import app
from minicrm.database import Base, build_engine, get_db
from minicrm.api.deps import create_access_token
from minicrm.services.queue_service import get_delivery_queue, get_ingestion_queue


class RecordingQueue:
    """Stands in for a WorkQueue; keeps every published body."""

    def __init__(self, name: str):
        self.name = name
        self.published = []

    async def publish(self, body):
        self.published.append(body)
        return f"test-{len(self.published)}"


@pytest_asyncio.fixture
async def test_engine(tmp_path):
    """Create a SQLite test database with all tables."""
    engine = build_engine(
        f"sqlite+aiosqlite:///{tmp_path}/test.db",
        poolclass=NullPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    """Session factory bound to the test database (used by the consumers)."""
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def test_db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def ingestion_queue():
    return RecordingQueue("ingestion_queue")


@pytest.fixture
def delivery_queue():
    return RecordingQueue("campaign_delivery_queue")


@pytest_asyncio.fixture
async def client(test_db: AsyncSession, ingestion_queue, delivery_queue):
    """Create test client with overridden database and queues."""

    async def override_get_db():
        yield test_db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_ingestion_queue] = lambda: ingestion_queue
    app.dependency_overrides[get_delivery_queue] = lambda: delivery_queue

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def authenticated_client(client: AsyncClient):
    """Create authenticated test client."""
    token = create_access_token(data={"sub": "user-1", "email": "marketer@example.com"})
    client.headers["Authorization"] = f"Bearer {token}"
    return client
