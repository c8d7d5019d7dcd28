"""Pytest configuration and fixtures for testing."""
from pathlib import Path
from typing import AsyncGenerator
from uuid import uuid4

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import Settings
from app.core.enums import UserRole
from app.core.security import create_access_token, hash_password
from app.db.database import Database
from app.main import create_app
from app.models.user import User
from app.services.activity_service import ActivityRecorder
from app.services.event_dispatcher import EventDispatcher
from app.services.file_storage import LocalBlobStorage
from app.services.notification_service import NotificationDispatcher


TEST_PASSWORD = "correct-horse-battery"
# Hashing is slow with bcrypt; every fixture user shares one hash
TEST_PASSWORD_HASH = hash_password(TEST_PASSWORD)


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    """Settings pointing at a throwaway sqlite file and storage directory."""
    return Settings(
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'case_os_test.db'}",
        LOCAL_STORAGE_PATH=str(tmp_path / "uploads"),
        SECRET_KEY="test-secret-key",
        EVENT_QUEUE_ENABLED=False,
        RQ_ASYNC_ENABLED=False,
        DB_CREATE_ALL_ON_STARTUP=False,
        CASE_TRANSITION_POLICY="strict",
    )


@pytest_asyncio.fixture
async def database(test_settings: Settings) -> AsyncGenerator[Database, None]:
    """Create a test database with all tables."""
    db = Database(test_settings.DATABASE_URL)
    await db.create_all()
    yield db
    await db.drop_all()
    await db.dispose()


@pytest_asyncio.fixture
async def db_session(database: Database) -> AsyncGenerator[AsyncSession, None]:
    async with database.session() as session:
        yield session
        await session.rollback()


@pytest.fixture
def storage(test_settings: Settings) -> LocalBlobStorage:
    return LocalBlobStorage(test_settings.LOCAL_STORAGE_PATH, test_settings)


@pytest.fixture
def dispatcher(database: Database, test_settings: Settings) -> EventDispatcher:
    return EventDispatcher(
        database,
        test_settings,
        recorder=ActivityRecorder(database),
        notifier=NotificationDispatcher(database, test_settings),
    )


async def _make_user(db: AsyncSession, role: UserRole, first_name: str) -> User:
    user = User(
        id=uuid4(),
        email=f"{first_name.lower()}-{uuid4().hex[:8]}@example.com",
        hashed_password=TEST_PASSWORD_HASH,
        first_name=first_name,
        last_name="Tester",
        phone="+15555550100",
        role=role.value,
        is_active=True,
    )
    db.add(user)
    await db.commit()
    return user


@pytest_asyncio.fixture
async def client_user(db_session: AsyncSession) -> User:
    return await _make_user(db_session, UserRole.CLIENT, "Casey")


@pytest_asyncio.fixture
async def other_client(db_session: AsyncSession) -> User:
    return await _make_user(db_session, UserRole.CLIENT, "Morgan")


@pytest_asyncio.fixture
async def tax_pro(db_session: AsyncSession) -> User:
    return await _make_user(db_session, UserRole.TAX_PROFESSIONAL, "Robin")


@pytest_asyncio.fixture
async def admin_user(db_session: AsyncSession) -> User:
    return await _make_user(db_session, UserRole.ADMIN, "Alex")


@pytest_asyncio.fixture
async def support_user(db_session: AsyncSession) -> User:
    return await _make_user(db_session, UserRole.SUPPORT, "Sam")


# ═══════════════════════════════════════════════════════════════
# HTTP CLIENT
# ═══════════════════════════════════════════════════════════════

@pytest_asyncio.fixture
async def app(test_settings: Settings, database: Database):
    """Application wired to the test database.

    ASGITransport does not run the lifespan, so the database built by the
    ``database`` fixture replaces the one ``create_app`` constructed.
    """
    application = create_app(test_settings)
    await application.state.database.dispose()
    application.state.database = database
    application.state.dispatcher = EventDispatcher(
        database,
        test_settings,
        recorder=ActivityRecorder(database),
        notifier=NotificationDispatcher(database, test_settings),
    )
    yield application


@pytest_asyncio.fixture
async def http_client(app) -> AsyncGenerator[httpx.AsyncClient, None]:
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client


@pytest.fixture
def auth_headers(test_settings: Settings):
    """Build a bearer header for a fixture user."""

    def _headers(user: User) -> dict:
        token = create_access_token(
            user_id=str(user.id),
            email=user.email,
            role=user.role,
            settings=test_settings,
        )
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture
def test_password() -> str:
    """Plain-text password of every fixture user."""
    return TEST_PASSWORD
