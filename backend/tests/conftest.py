"""Shared test fixtures for the Foldly backend tests."""

import uuid

import pytest
import pytest_asyncio
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.core.errors import StorageFailureError
from app.core.rate_limit import InMemoryCounterStore, RateLimiter
from app.db.models import Base, File, Folder, Link, Permission, User, Workspace
from app.services.identity import Caller, CallerProfile, IdentityProviderError


# Use an in-memory SQLite database for tests.
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

engine = create_async_engine(TEST_DATABASE_URL, echo=False)
TestSessionFactory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


# Cascading folder and file deletes rely on foreign keys, which SQLite
# leaves off unless asked.
@event.listens_for(engine.sync_engine, "connect")
def _set_sqlite_pragma(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


@pytest_asyncio.fixture
async def db() -> AsyncSession:
    """Create tables and yield a fresh async session for each test."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with TestSessionFactory() as session:
        yield session

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


# ---------------------------------------------------------------------------
# Tenants
# ---------------------------------------------------------------------------


class Tenant:
    """An onboarded user: caller identity plus committed user and workspace rows."""

    def __init__(self, caller: Caller, user: User, workspace: Workspace):
        self.caller = caller
        self.user = user
        self.workspace = workspace


@pytest.fixture
def make_tenant(db: AsyncSession):
    """Factory creating a committed user with its workspace."""
    counter = {"n": 0}

    async def _make(username: str | None = None, email: str | None = None) -> Tenant:
        counter["n"] += 1
        username = username or f"tenant{counter['n']}"
        user = User(
            id=f"user_{uuid.uuid4().hex[:12]}",
            email=email or f"{username}@example.com",
            username=username,
            storage_used=0,
        )
        db.add(user)
        await db.flush()
        workspace = Workspace(user_id=user.id, name="My Files")
        db.add(workspace)
        await db.commit()
        return Tenant(Caller(user_id=user.id), user, workspace)

    return _make


@pytest_asyncio.fixture
async def tenant(make_tenant) -> Tenant:
    return await make_tenant("alice")


@pytest_asyncio.fixture
async def other_tenant(make_tenant) -> Tenant:
    return await make_tenant("mallory")


# ---------------------------------------------------------------------------
# Row builders (bypass the core so tests can set up arbitrary trees)
# ---------------------------------------------------------------------------


@pytest.fixture
def make_folder(db: AsyncSession):
    async def _make(workspace: Workspace, name: str, parent: Folder | None = None) -> Folder:
        folder = Folder(
            workspace_id=workspace.id,
            parent_folder_id=parent.id if parent is not None else None,
            name=name,
        )
        db.add(folder)
        await db.commit()
        return folder

    return _make


@pytest.fixture
def make_chain(make_folder):
    """Build a straight chain of ``length`` nested folders; returns them root first."""

    async def _make(workspace: Workspace, length: int, prefix: str = "level") -> list[Folder]:
        chain: list[Folder] = []
        parent = None
        for i in range(length):
            parent = await make_folder(workspace, f"{prefix}-{i}", parent)
            chain.append(parent)
        return chain

    return _make


@pytest.fixture
def make_file(db: AsyncSession):
    async def _make(
        workspace: Workspace,
        name: str,
        folder: Folder | None = None,
        size: int = 100,
    ) -> File:
        file = File(
            workspace_id=workspace.id,
            folder_id=folder.id if folder is not None else None,
            file_name=name,
            file_size=size,
            mime_type="text/plain",
            storage_path=f"{workspace.id}/{uuid.uuid4().hex}/{name}",
        )
        db.add(file)
        await db.commit()
        return file

    return _make


@pytest.fixture
def make_link(db: AsyncSession):
    async def _make(tenant: Tenant, slug: str) -> Link:
        link = Link(workspace_id=tenant.workspace.id, slug=slug, title=slug, link_type="custom")
        db.add(link)
        await db.flush()
        db.add(Permission(link_id=link.id, email=tenant.user.email.lower(), role="owner"))
        await db.commit()
        return link

    return _make


# ---------------------------------------------------------------------------
# Collaborators
# ---------------------------------------------------------------------------


class FakeObjectStore:
    """Records deletions; paths listed in ``failing_paths`` raise ``StorageFailureError``."""

    def __init__(self, contents: dict[str, bytes] | None = None):
        self.deleted: list[str] = []
        self.signed: list[str] = []
        self.failing_paths: set[str] = set()
        self.contents = contents or {}

    async def delete_file(self, path: str, bucket: str | None = None) -> None:
        if path in self.failing_paths:
            raise StorageFailureError(f"Failed to delete {path} from storage")
        self.deleted.append(path)

    async def get_signed_url(self, path: str, bucket: str | None = None, expires_in: int | None = None) -> str:
        self.signed.append(path)
        return f"https://storage.test/signed/{path}"

    async def fetch(self, url: str) -> bytes:
        path = url.removeprefix("https://storage.test/signed/")
        return self.contents.get(path, f"content of {path}".encode())


@pytest.fixture
def object_store() -> FakeObjectStore:
    return FakeObjectStore()


class FakeIdentityProvider:
    def __init__(self, profile: CallerProfile | None = None, fail_username_sync: bool = False):
        self.profile = profile or CallerProfile(
            email="Alice@Example.com", display_name="Alice Doe", first_name="Alice", last_name="Doe"
        )
        self.fail_username_sync = fail_username_sync
        self.synced: list[tuple[str, str]] = []

    async def resolve_profile(self, user_id: str) -> CallerProfile:
        return self.profile

    async def update_username(self, user_id: str, username: str) -> None:
        if self.fail_username_sync:
            raise IdentityProviderError("Username update rejected: 422")
        self.synced.append((user_id, username))


@pytest.fixture
def identity_provider() -> FakeIdentityProvider:
    return FakeIdentityProvider()


@pytest.fixture
def limiter() -> RateLimiter:
    return RateLimiter(InMemoryCounterStore())


@pytest.fixture
def identity_provider_factory():
    """The fake provider class, for tests that need a custom profile or failure."""
    return FakeIdentityProvider
