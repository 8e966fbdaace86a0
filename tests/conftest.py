"""
Shared test fixtures for the MenuHub identity service test suite.

Async throughout (aiosqlite + AsyncSession). The application's ``get_db``
dependency is overridden to use an in-memory database shared by one
connection (StaticPool).
"""

import os
import sys
from collections.abc import AsyncGenerator, Awaitable, Callable

import pytest

# Ensure project root is importable
ROOT_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT_DIR not in sys.path:
    sys.path.insert(0, ROOT_DIR)

# Override environment BEFORE importing application modules
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["JWT_SECRET"] = "test-secret-for-the-menuhub-suite-0123456789abcdef"
os.environ["JWT_COOKIE_NAME"] = "jwt_token"
os.environ["ENVIRONMENT"] = "test"
os.environ["BCRYPT_ROUNDS"] = "10"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["GOOGLE_CLIENT_ID"] = "test-client-id.apps.googleusercontent.com"
os.environ["CORS_ORIGINS"] = "*"
os.environ["FIRST_ADMIN_EMAIL"] = ""

from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.api.v1.deps import get_db
from app.core.errors import InvalidCredentials
from app.core.permissions import permissions_to_columns
from app.core.roles import AccountState, Role
from app.core.security import get_password_hash
from app.core.tokens import token_codec
from app.db.base import Base
from app.main import app
from app.models.user import EmployeePermission, User
from app.services.google import FederatedIdentity
from app.services.session import build_claims, session_service

DEFAULT_PASSWORD = "correct-horse-battery"

test_engine = create_async_engine(
    "sqlite+aiosqlite:///:memory:",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = async_sessionmaker(
    test_engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


@pytest.fixture(autouse=True)
async def setup_db():
    """Create all tables before usage and drop after."""
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


async def _override_get_db() -> AsyncGenerator[AsyncSession, None]:
    async with TestingSessionLocal() as session:
        yield session


app.dependency_overrides[get_db] = _override_get_db


@pytest.fixture
async def async_client() -> AsyncGenerator[AsyncClient, None]:
    """Return a httpx AsyncClient wired to the app."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Return a raw database session for direct queries in tests."""
    async with TestingSessionLocal() as session:
        yield session


# ── Identities ──────────────────────────────────────────────────────
UserFactory = Callable[..., Awaitable[User]]


@pytest.fixture
def make_user(db_session: AsyncSession) -> UserFactory:
    """Insert a user; employees get a branch and a permission record."""

    async def _make_user(
        email: str = "owner@example.com",
        role: Role = Role.ADMIN,
        state: AccountState = AccountState.ACTIVE,
        password: str | None = DEFAULT_PASSWORD,
        branch_id: int | None = None,
        permissions: dict | None = None,
        is_active: bool = True,
    ) -> User:
        user = User(
            email=email,
            hashed_password=get_password_hash(password) if password else "",
            first_name="Test",
            last_name=role.value.title(),
            role=role.value,
            state=state.value,
            is_active=is_active,
        )
        if role == Role.EMPLOYEE:
            user.branch_id = branch_id or 1
            user.permission = EmployeePermission(**permissions_to_columns(permissions))
        db_session.add(user)
        await db_session.commit()
        return user

    return _make_user


def bearer_for(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {token_codec.issue(build_claims(user))}"}


@pytest.fixture
async def admin_user(make_user: UserFactory) -> User:
    return await make_user(email="admin@example.com", role=Role.ADMIN)


@pytest.fixture
def admin_headers(admin_user: User) -> dict[str, str]:
    return bearer_for(admin_user)


@pytest.fixture
def auth_headers() -> Callable[[User], dict[str, str]]:
    """Bearer headers carrying the claims a login would issue for a user."""
    return bearer_for


# ── Federated login ─────────────────────────────────────────────────
class FakeGoogleVerifier:
    """Accepts credentials of the form ``good:<subject>:<email>``."""

    provider = "google"

    def __init__(self) -> None:
        self.calls: list[str] = []

    async def verify(self, credential: str) -> FederatedIdentity:
        self.calls.append(credential)
        parts = credential.split(":")
        if len(parts) != 3 or parts[0] != "good":
            raise InvalidCredentials("Invalid Google credential")
        return FederatedIdentity(
            provider="google",
            subject=parts[1],
            email=parts[2],
            email_verified=True,
            picture="https://example.com/avatar.png",
        )


@pytest.fixture
def fake_verifier() -> FakeGoogleVerifier:
    return FakeGoogleVerifier()


@pytest.fixture
def fake_google(
    monkeypatch: pytest.MonkeyPatch, fake_verifier: FakeGoogleVerifier
) -> FakeGoogleVerifier:
    """Route the app's federated logins through the fake verifier."""
    monkeypatch.setattr(session_service, "federated_verifier", fake_verifier)
    return fake_verifier


# ── Clock ───────────────────────────────────────────────────────────
class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
