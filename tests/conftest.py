"""
Pytest configuration and fixtures.

WHY: Fixtures provide reusable test setup/teardown logic, reducing
duplication and ensuring consistent test environments.

HOW: Settings are read from the environment at import time, so the
required variables are set before any ``app`` module is imported.
Each test gets its own SQLite file so the services' independent
sessions (one per unit of work) all see the same data.
"""

import os

os.environ.setdefault("JWT_SECRET", "test-secret-key-not-for-production")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./test-unused.db")
os.environ.setdefault("SCHEDULER_ENABLED", "false")

from typing import AsyncGenerator, List  # noqa: E402
from unittest.mock import MagicMock  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402

from app import models as _models  # noqa: E402,F401
from app.core.deps import get_dispatcher, get_storage  # noqa: E402
from app.db.session import get_db, get_session_factory  # noqa: E402
from app.main import app  # noqa: E402
from app.models.base import Base  # noqa: E402
from app.services.document_service import DocumentService  # noqa: E402
from app.services.membership_service import MembershipService  # noqa: E402
from app.services.notification_dispatcher import (  # noqa: E402
    NotificationConsumer,
    NotificationDispatcher,
    OrderEventMessage,
)
from app.services.payment_order_service import PaymentOrderService  # noqa: E402
from app.services.profile_service import ProfileAccessService  # noqa: E402
from app.services.storage_service import StorageService  # noqa: E402
from app.services.tag_service import TagService  # noqa: E402

from tests.factories import Workspace, create_workspace  # noqa: E402


class RecordingConsumer(NotificationConsumer):
    """
    Consumer that keeps every message it receives.

    WHY: Lets tests assert which events were delivered after commit
    without a real notification service.
    """

    name = "recording"

    def __init__(self) -> None:
        self.messages: List[OrderEventMessage] = []
        self.fail = False

    async def handle(self, message: OrderEventMessage) -> None:
        if self.fail:
            raise RuntimeError("consumer unavailable")
        self.messages.append(message)

    def event_types(self) -> List[str]:
        return [m.event_type.value for m in self.messages]


@pytest_asyncio.fixture
async def db_engine(tmp_path):
    """
    Create a test database engine backed by a per-test SQLite file.

    WHY: Function scope ensures each test gets a fresh database state,
    preventing test pollution and ensuring test isolation.
    """
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'workflow.db'}",
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> async_sessionmaker:
    return async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """
    Session for seeding and inspecting data.

    Services open their own sessions; this one is only for the test body.
    """
    async with session_factory() as session:
        yield session


@pytest.fixture
def recorder() -> RecordingConsumer:
    return RecordingConsumer()


@pytest_asyncio.fixture
async def dispatcher(session_factory, recorder) -> AsyncGenerator[NotificationDispatcher, None]:
    """Dispatcher delivering to the recorder; drained before the engine closes."""
    dispatcher = NotificationDispatcher(session_factory, consumers=[recorder])
    yield dispatcher
    await dispatcher.drain()


@pytest.fixture
def s3_client() -> MagicMock:
    return MagicMock()


@pytest.fixture
def storage(s3_client) -> StorageService:
    return StorageService(s3_client=s3_client, bucket_name="test-bucket")


@pytest.fixture
def order_service(session_factory, dispatcher) -> PaymentOrderService:
    return PaymentOrderService(session_factory, dispatcher)


@pytest.fixture
def document_service(session_factory, dispatcher, storage) -> DocumentService:
    return DocumentService(session_factory, dispatcher, storage)


@pytest.fixture
def profile_service(session_factory) -> ProfileAccessService:
    return ProfileAccessService(session_factory)


@pytest.fixture
def tag_service(session_factory) -> TagService:
    return TagService(session_factory)


@pytest.fixture
def membership_service(session_factory) -> MembershipService:
    return MembershipService(session_factory)


@pytest_asyncio.fixture
async def workspace(db_session) -> Workspace:
    """
    Organization, profile, tag and one user per access tier.

    WHY: Almost every workflow test needs the same cast: an owner, an
    admin, a member, an allow-listed outsider and a stranger.
    """
    return await create_workspace(db_session)


@pytest_asyncio.fixture
async def client(session_factory, dispatcher, storage) -> AsyncGenerator[AsyncClient, None]:
    """
    Create a test HTTP client.

    WHY: AsyncClient allows testing FastAPI endpoints without running
    a real server, making tests faster and more reliable.
    """

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher
    app.dependency_overrides[get_storage] = lambda: storage

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    await dispatcher.drain()
    app.dependency_overrides.clear()

