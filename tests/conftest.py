"""
Test infrastructure for the blog CMS.

Strategy
--------
- SQLite in-memory via aiosqlite eliminates the need for a running Postgres
  instance in CI, keeping the suite fast and self-contained.
- StaticPool forces all async tasks to share the same in-memory database
  connection, which is required because SQLite in-memory databases are
  connection-scoped; a new connection would see an empty database.
- Foreign keys are switched on for the test engine so RESTRICT/CASCADE
  rules behave as they do on Postgres.
- The app's get_db dependency is overridden so every test-time request uses
  the test session factory rather than the production one.
- Each test gets its own engine, created inside the test's event loop,
  with all tables created fresh; tables are dropped and the engine disposed
  after.
- The Redis cache is disabled by setting cache._redis = None; reads miss,
  writes and invalidations are skipped, so tests exercise the database path.
- Callers are plain ``Identity`` values.  Service tests pass them directly;
  HTTP tests send them as the gateway headers via ``auth_headers``.
"""
import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from blog_cms.auth import Identity, StaticIdentityProvider
from blog_cms.cache import cache
from blog_cms.database import Base, enable_sqlite_foreign_keys, get_db
from blog_cms.main import app
from blog_cms.models import Category

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


# ---------------------------------------------------------------------------
# Identities
# ---------------------------------------------------------------------------

AUTHOR = Identity(subject_id="user_author", email="alice@example.com", name="Alice Author")
OTHER_AUTHOR = Identity(subject_id="user_other", email="bob@example.com", name="Bob Writer")
ADMIN = Identity(
    subject_id="user_admin",
    email="admin@example.com",
    name="Ada Admin",
    metadata={"role": "Admin"},
)


def auth_headers(identity: Identity) -> dict[str, str]:
    """Gateway headers describing *identity*."""
    headers = {"X-User-Id": identity.subject_id, "X-User-Email": identity.email}
    if identity.name:
        headers["X-User-Name"] = identity.name
    if identity.metadata.get("role"):
        headers["X-User-Role"] = identity.metadata["role"]
    return headers


@pytest.fixture
def author() -> Identity:
    return AUTHOR


@pytest.fixture
def other_author() -> Identity:
    return OTHER_AUTHOR


@pytest.fixture
def admin() -> Identity:
    return ADMIN


@pytest.fixture
def author_headers() -> dict[str, str]:
    return auth_headers(AUTHOR)


@pytest.fixture
def other_headers() -> dict[str, str]:
    return auth_headers(OTHER_AUTHOR)


@pytest.fixture
def admin_headers() -> dict[str, str]:
    return auth_headers(ADMIN)


@pytest.fixture
def identity_provider() -> StaticIdentityProvider:
    return StaticIdentityProvider([AUTHOR, OTHER_AUTHOR, ADMIN])


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture(autouse=True)
async def session_factory():
    """
    Build a fresh in-memory database for each test and return its session
    factory.  The engine lives inside the test's own event loop and is
    disposed afterwards, so no connection outlives the loop it was opened in.
    """
    cache._redis = None
    engine_test = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_foreign_keys(engine_test)
    async with engine_test.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine_test, class_=AsyncSession, expire_on_commit=False)

    async def override_get_db():
        async with factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    yield factory

    app.dependency_overrides.pop(get_db, None)
    async with engine_test.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine_test.dispose()


@pytest_asyncio.fixture
async def db_session(session_factory: async_sessionmaker) -> AsyncSession:
    """
    Yield a live AsyncSession for tests that call services directly.
    Services flush but never commit, so one session spans the whole test.
    """
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def category(db_session: AsyncSession) -> Category:
    category = Category(name="Technology", slug="technology", description="Tech posts")
    db_session.add(category)
    await db_session.flush()
    return category


@pytest_asyncio.fixture
async def async_client() -> AsyncClient:
    """
    Yield an httpx.AsyncClient wired to the FastAPI app via ASGITransport.
    Redis stays disabled so responses always come from the database.
    """
    cache._redis = None
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
