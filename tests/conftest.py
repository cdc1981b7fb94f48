"""
Pytest configuration and fixtures for Zielvereinbarung tests.

Every test gets its own in-memory SQLite database. Sessions share one
connection (StaticPool), so a test must commit or close its own session
before calling the API.
"""
import os
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

# Set test environment before importing app modules
os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["RESEND_API_KEY"] = ""
os.environ["CRON_SECRET"] = "test-cron-secret"
os.environ["RATE_LIMIT_ENABLED"] = "true"

from zielvereinbarung.core.database import Base, get_db  # noqa: E402
from zielvereinbarung.core.rate_limit import MemoryRateLimitStore  # noqa: E402
from zielvereinbarung.core.security import get_password_hash  # noqa: E402
from zielvereinbarung.main import create_app  # noqa: E402
from zielvereinbarung.models import User, UserRole  # noqa: E402

TEST_PASSWORD = "Sicheres-Passwort-2024"

FORM_REQUEST = {
    "school": {
        "externalId": "NRW-166042",
        "schoolNumber": "166042",
        "name": "Gesamtschule Köln-Holweide",
        "city": "Köln",
        "state": "NW",
    },
    "title": "Zielvereinbarung 2025/26",
}


class FakeClock:
    """Controllable clock for services that take clock=."""

    def __init__(self, start: datetime = None):
        self.now = start or datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    # SAVEPOINT support for pysqlite: take over transaction control from the driver
    @event.listens_for(engine.sync_engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    """Session for service-level tests (no API calls in the same test)."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def rate_limit_store() -> MemoryRateLimitStore:
    return MemoryRateLimitStore()


@pytest.fixture
def app(session_factory, rate_limit_store):
    @asynccontextmanager
    async def background_session():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    application = create_app(rate_limit_store=rate_limit_store, session_factory=background_session)

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    application.dependency_overrides[get_db] = override_get_db
    return application


@pytest.fixture
async def client(app):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as ac:
        yield ac


@pytest.fixture
def create_user(session_factory):
    """Insert a user in its own committed transaction."""

    async def _create(
        email: str = "leitung@schulamt-koeln.de",
        password: str = TEST_PASSWORD,
        role: UserRole = UserRole.ADMIN,
        active: bool = True,
        email_verified: bool = True,
        **fields,
    ) -> User:
        async with session_factory() as session:
            user = User(
                email=email,
                hashed_password=get_password_hash(password),
                name=fields.pop("name", "Anna Schmidt"),
                schulamt_name=fields.pop("schulamt_name", "Schulamt Köln"),
                role=role,
                active=active,
                email_verified=email_verified,
                failed_login_attempts=0,
                **fields,
            )
            session.add(user)
            await session.commit()
            return user

    return _create


@pytest.fixture
def login(client):
    async def _login(email: str = "leitung@schulamt-koeln.de", password: str = TEST_PASSWORD, **kwargs):
        return await client.post("/api/auth/login", json={"email": email, "password": password}, **kwargs)

    return _login


@pytest.fixture
def create_form(client, create_user, login):
    """
    Create a staff account, log in and create a form over the API.

    Returns the form payload including its access code. The staff session
    cookie stays on the client.
    """

    async def _create(email: str = "leitung@schulamt-koeln.de", **request_fields) -> dict:
        await create_user(email=email)
        await login(email=email)
        response = await client.post("/api/forms", json={**FORM_REQUEST, **request_fields})
        assert response.status_code == 200
        return response.json()["form"]

    return _create
