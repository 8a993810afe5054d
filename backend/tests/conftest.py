"""
Pytest configuration and fixtures for StudyMate tests.

Provides common fixtures for:
- Test database setup (in-memory SQLite)
- Fake identity provider and blob store wired in through dependency overrides
- Async HTTP client against the ASGI app
- Sample users and materials
"""

import os

# Must be set before studymate.core.config is imported
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("TOKEN_REAPER_ENABLED", "false")
os.environ.setdefault("ENVIRONMENT", "test")

from collections.abc import AsyncGenerator, AsyncIterator

import pytest
import pytest_asyncio
from fastapi import Request
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from studymate.api.deps import get_blob_store, get_identity_provider
from studymate.db.session import Base, get_db
from studymate.main import app
from studymate.models import Material, User
from studymate.services.blob_store import BlobStore, BlobStream
from studymate.services.exceptions import UpstreamFetchError
from studymate.services.identity import IdentityProvider, Principal, UserProfile


# =============================================================================
# Database Fixtures
# =============================================================================


# Use SQLite for tests (faster, no external dependencies)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture(scope="function")
async def async_engine():
    """Create async test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture(scope="function")
def session_factory(async_engine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the test engine."""
    return async_sessionmaker(
        async_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create async database session for tests."""
    async with session_factory() as session:
        yield session
        await session.rollback()


# =============================================================================
# Fake Capabilities
# =============================================================================


class FakeIdentityProvider(IdentityProvider):
    """Resolves callers from opaque test bearer tokens."""

    def __init__(self):
        self._principals: dict[str, Principal] = {}

    def register(self, principal: Principal) -> dict[str, str]:
        """Register ``principal`` and return auth headers that resolve to it."""
        token = f"session-{principal.user_id}"
        self._principals[token] = principal
        return {"Authorization": f"Bearer {token}"}

    async def resolve_caller(self, request: Request) -> Principal | None:
        header = request.headers.get("authorization", "")
        if not header.startswith("Bearer "):
            return None
        return self._principals.get(header[len("Bearer "):])


class FakeBlobStream(BlobStream):
    """In-memory blob stream that records whether it was closed."""

    def __init__(
        self,
        chunks: list[bytes],
        content_type: str | None = None,
        content_length: int | None = None,
    ):
        self._chunks = chunks
        self.content_type = content_type
        self.content_length = content_length
        self.closed = False

    async def iter_bytes(self) -> AsyncIterator[bytes]:
        try:
            for chunk in self._chunks:
                yield chunk
        finally:
            await self.aclose()

    async def aclose(self) -> None:
        self.closed = True


class FakeBlobStore(BlobStore):
    """Serves registered URLs from memory; unknown URLs fail like a 404 upstream."""

    def __init__(self):
        self.blobs: dict[str, tuple[bytes, str | None]] = {}
        self.failing: set[str] = set()
        self.opened: list[str] = []
        self.streams: list[FakeBlobStream] = []

    def put(self, url: str, data: bytes, content_type: str | None = None) -> None:
        self.blobs[url] = (data, content_type)

    def fail(self, url: str) -> None:
        self.failing.add(url)

    async def open(self, url: str) -> BlobStream:
        self.opened.append(url)
        if url in self.failing:
            raise UpstreamFetchError("Blob store returned HTTP 500", status_code=500)
        if url not in self.blobs:
            raise UpstreamFetchError("Blob store returned HTTP 404", status_code=404)

        data, content_type = self.blobs[url]
        half = len(data) // 2
        stream = FakeBlobStream([data[:half], data[half:]], content_type, len(data))
        self.streams.append(stream)
        return stream


@pytest.fixture
def identity_provider() -> FakeIdentityProvider:
    return FakeIdentityProvider()


@pytest.fixture
def blob_store() -> FakeBlobStore:
    return FakeBlobStore()


# =============================================================================
# Principal Fixtures
# =============================================================================


@pytest.fixture
def alice() -> Principal:
    return Principal(
        user_id="user_alice",
        profile=UserProfile(email="alice@example.edu", name="Alice Kumar"),
    )


@pytest.fixture
def bob() -> Principal:
    return Principal(
        user_id="user_bob",
        profile=UserProfile(email="bob@example.edu", name="Bob Fernandes"),
    )


@pytest.fixture
def alice_headers(identity_provider, alice) -> dict:
    return identity_provider.register(alice)


@pytest.fixture
def bob_headers(identity_provider, bob) -> dict:
    return identity_provider.register(bob)


# =============================================================================
# Test Client Fixtures
# =============================================================================


@pytest_asyncio.fixture(scope="function")
async def client(db_session, identity_provider, blob_store) -> AsyncGenerator[AsyncClient, None]:
    """Async client against the app with database and capability overrides."""

    async def _override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_identity_provider] = lambda: identity_provider
    app.dependency_overrides[get_blob_store] = lambda: blob_store

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c

    app.dependency_overrides.clear()


# =============================================================================
# Catalog Fixtures
# =============================================================================


MATERIAL_URL = "https://files.example.edu/materials/ds-unit-1.pdf"
MATERIAL_BYTES = b"%PDF-1.7 data structures unit one"


@pytest_asyncio.fixture
async def uploader(db_session) -> User:
    user = User(id="user_uploader", email="uploader@example.edu", name="Uma Uploader")
    db_session.add(user)
    await db_session.commit()
    return user


@pytest_asyncio.fixture
async def material(db_session, uploader, blob_store) -> Material:
    """A catalog entry whose file is available in the fake blob store."""
    material = Material(
        title="Data Structures Unit 1",
        description="Arrays and linked lists",
        subject="Data Structures",
        course="BCA",
        year="2",
        semester="3",
        material_type="notes",
        file_type="pdf",
        file_url=MATERIAL_URL,
        file_size=len(MATERIAL_BYTES),
        uploaded_by=uploader.id,
        downloads=0,
    )
    db_session.add(material)
    await db_session.commit()

    blob_store.put(MATERIAL_URL, MATERIAL_BYTES, "application/pdf")
    return material
