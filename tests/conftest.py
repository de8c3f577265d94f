"""Pytest fixtures for testing."""
import os
from collections.abc import AsyncGenerator, Callable, Generator

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

# api.main reads settings at import time; give it a database URL before any test imports it.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from core.config import Settings  # noqa: E402
from core.identity import ExternalSession, LocalIdentityProvider  # noqa: E402
from core.tag_cache import InMemoryTagCache  # noqa: E402
from models.base import Base  # noqa: E402

CLAIMS_NAMESPACE = "https://courses.test"
WEBHOOK_SECRET = "test-webhook-secret"


@pytest.fixture(scope="session")
def postgres_url() -> Generator[str | None]:
    """
    PostgreSQL container URL when TEST_POSTGRES is set, otherwise None.

    Tests default to a per-test SQLite database so they run without Docker.
    """
    if not os.environ.get("TEST_POSTGRES"):
        yield None
        return

    from testcontainers.postgres import PostgresContainer  # noqa: PLC0415

    with PostgresContainer("postgres:16", driver="asyncpg") as postgres:
        yield postgres.get_connection_url()


@pytest.fixture
def database_url(postgres_url: str | None, tmp_path: os.PathLike) -> str:
    """Database URL for the current test."""
    return postgres_url or f"sqlite+aiosqlite:///{tmp_path}/test.db"


@pytest.fixture
async def async_engine(database_url: str) -> AsyncGenerator[AsyncEngine]:
    """Create an async engine with a fresh schema."""
    engine = create_async_engine(database_url, echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(async_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Factory for independent sessions (separate connections and transactions)."""
    return async_sessionmaker(
        bind=async_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession]:
    """
    Session for a single test.

    Services commit for real; isolation comes from each test getting its own database.
    """
    async with session_factory() as session:
        yield session


@pytest.fixture
def tag_cache() -> InMemoryTagCache:
    """Fresh read cache per test."""
    return InMemoryTagCache(max_entries=100)


@pytest.fixture
def identity_provider() -> LocalIdentityProvider:
    """In-memory identity provider with no identities registered."""
    return LocalIdentityProvider(claims_namespace=CLAIMS_NAMESPACE)


@pytest.fixture
def test_settings(database_url: str) -> Settings:
    """Settings with auth enabled and a known webhook secret."""
    return Settings(
        _env_file=None,
        database_url=database_url,
        dev_mode=False,
        webhook_secret=WEBHOOK_SECRET,
        frontend_url="http://localhost:5173",
        auth0_claims_namespace=CLAIMS_NAMESPACE,
    )


@pytest.fixture
async def client(
    db_session: AsyncSession,
    tag_cache: InMemoryTagCache,
    identity_provider: LocalIdentityProvider,
    test_settings: Settings,
) -> AsyncGenerator[AsyncClient]:
    """Create a test client with database, cache, identity provider and settings overridden."""
    from api.main import app  # noqa: PLC0415
    from core.auth import get_identity_provider, get_tag_cache  # noqa: PLC0415
    from core.config import get_settings  # noqa: PLC0415
    from db.session import get_async_session  # noqa: PLC0415

    async def override_get_async_session() -> AsyncGenerator[AsyncSession]:
        yield db_session

    app.dependency_overrides[get_async_session] = override_get_async_session
    app.dependency_overrides[get_tag_cache] = lambda: tag_cache
    app.dependency_overrides[get_identity_provider] = lambda: identity_provider
    app.dependency_overrides[get_settings] = lambda: test_settings

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture
def act_as(client: AsyncClient) -> Callable[[ExternalSession], None]:  # noqa: ARG001
    """Return a function that makes later requests authenticate as the given session."""
    from api.main import app  # noqa: PLC0415
    from core.auth import get_current_session  # noqa: PLC0415

    def _act_as(session: ExternalSession) -> None:
        app.dependency_overrides[get_current_session] = lambda: session

    return _act_as
