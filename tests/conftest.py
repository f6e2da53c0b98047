"""
Test infrastructure for the marketplace records API.

Strategy
--------
- SQLite in-memory via aiosqlite removes the need for a running Postgres
  instance; StaticPool makes every session share the one connection that
  holds the in-memory database.  Foreign keys are enforced on it.
- The app's get_db dependency is overridden so requests use the test
  session factory.
- Tables are created before each test and dropped after it.
- ``catalog`` seeds the read-only collaborators (users, products, orders)
  that reviews, notifications and wishlist entries point at, and hands
  back plain integer ids so tests never touch expired ORM instances.
"""
from types import SimpleNamespace

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from marketplace.database import Base, get_db
from marketplace.main import app
from marketplace.middleware import install_query_counter
from marketplace.models import Category, Order, Product, User

# ---------------------------------------------------------------------------
# Test database engine - SQLite in-memory with aiosqlite
# ---------------------------------------------------------------------------

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

engine_test = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

install_query_counter(engine_test)


@event.listens_for(engine_test.sync_engine, "connect")
def _enable_foreign_keys(dbapi_connection, connection_record):
    # SQLite leaves foreign keys unenforced unless asked per connection.
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


async_session_test = async_sessionmaker(
    engine_test,
    class_=AsyncSession,
    expire_on_commit=False,
)


# ---------------------------------------------------------------------------
# Dependency override
# ---------------------------------------------------------------------------

async def override_get_db():
    async with async_session_test() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


app.dependency_overrides[get_db] = override_get_db


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture(autouse=True)
async def setup_db():
    """Create all tables before each test, drop after to guarantee isolation."""
    async with engine_test.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine_test.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest_asyncio.fixture
async def db_session() -> AsyncSession:
    """A live AsyncSession for calling services directly."""
    async with async_session_test() as session:
        yield session


@pytest.fixture
def session_factory():
    """The test session factory, for tests that need a second session."""
    return async_session_test


@pytest_asyncio.fixture
async def catalog(setup_db) -> SimpleNamespace:
    """
    Seed an admin, a producer, three consumers, two products and one order
    per consumer.  Returns their ids.
    """
    async with async_session_test() as session:
        admin = User(name="Admin", email="admin@example.com", role="admin")
        producer = User(name="Green Valley Farm", email="farm@example.com", role="producer")
        alice = User(name="Alice", email="alice@example.com", role="consumer")
        bob = User(name="Bob", email="bob@example.com", role="consumer")
        carol = User(name="Carol", email="carol@example.com", role="consumer")
        vegetables = Category(name="vegetables")
        session.add_all([admin, producer, alice, bob, carol, vegetables])
        await session.flush()

        tomato = Product(
            name="Tomato", description="Vine ripened", price=2.5, stock=40, unit="kg",
            producer_id=producer.id, category_id=vegetables.id,
        )
        potato = Product(
            name="Potato", price=1.2, stock=5, unit="kg", producer_id=producer.id,
        )
        session.add_all([tomato, potato])
        await session.flush()

        alice_order = Order(consumer_id=alice.id, producer_id=producer.id, total=5.0, status="delivered")
        bob_order = Order(consumer_id=bob.id, producer_id=producer.id, total=2.4, status="delivered")
        carol_order = Order(consumer_id=carol.id, producer_id=producer.id, total=7.5, status="delivered")
        session.add_all([alice_order, bob_order, carol_order])
        await session.commit()

        return SimpleNamespace(
            admin=admin.id,
            producer=producer.id,
            alice=alice.id,
            bob=bob.id,
            carol=carol.id,
            tomato=tomato.id,
            potato=potato.id,
            alice_order=alice_order.id,
            bob_order=bob_order.id,
            carol_order=carol_order.id,
        )


@pytest_asyncio.fixture
async def async_client() -> AsyncClient:
    """An httpx.AsyncClient wired to the FastAPI app via ASGITransport."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


def actor_headers(actor_id: int, role: str) -> dict:
    """Headers the upstream gateway forwards for an authenticated actor."""
    return {"X-Actor-Id": str(actor_id), "X-Actor-Role": role}


@pytest.fixture
def as_actor():
    return actor_headers
