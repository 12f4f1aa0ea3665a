"""
Pytest Configuration and Fixtures

Provides fixtures for:
- Database sessions (async, in-memory SQLite)
- A recording chat transport in place of the Telegram Bot API
- Document storage under a temporary directory
- Test data factories
"""
import os
import tempfile

# before importing app: no Postgres engine, no ./uploads in the working tree
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("UPLOAD_DIR", tempfile.mkdtemp(prefix="driver-bot-uploads-"))
# the rate limiter is built once with the app and lives for the whole run
os.environ.setdefault("WEBHOOK_RATE_LIMIT_MAX_REQUESTS", "100000")

import pytest
from typing import AsyncGenerator, Optional

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from app.db.database import Base, get_db
from app.db.models.driver import Driver, DriverStatus
from app.core.circuit_breaker import CircuitBreaker
from app.core.config import settings
from app.core.exceptions import CircuitBreakerOpenError, TelegramError
from app.domain.services.document_storage import LocalDocumentStorage, set_document_storage
from app.domain.services.driver_service import DriverService
from app.domain.services.telegram import set_transport
from app.domain.services.telegram.base_transport import BaseChatTransport
from app.api.webhooks.telegram import is_hr_actor
from app.main import app
from app.state_machine.dispatcher import ConversationDispatcher, InboundUpdate
from app.state_machine.handlers import Actor, InboundPhoto, MessageResponse


# Test database URL (SQLite in memory for fast tests)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

HR_GROUP_ID = -100100
SUPPORT_GROUP_ID = -100200
HR_USER_ID = 9001
ADMIN_API_KEY = "test-admin-key"

# returned by FakeTransport.download_file
FAKE_PHOTO_BYTES = b"\xff\xd8\xff\xe0fake-jpeg"


class FakeTransport(BaseChatTransport):
    """Records every outbound call instead of talking to Telegram"""

    def __init__(self):
        self.sent: list[dict] = []
        self.callbacks: list[tuple[str, Optional[str]]] = []
        self.downloads: list[str] = []
        # chat ids whose sends raise TelegramError
        self.failing_chats: set[str] = set()
        self.fail_downloads = False
        # every call raises CircuitBreakerOpenError, as an open telegram breaker would
        self.breaker_open = False

    async def send_text(self, chat_id, text, keyboard=None, inline_keyboard=None) -> None:
        if self.breaker_open:
            raise CircuitBreakerOpenError("telegram", 30.0)
        if str(chat_id) in self.failing_chats:
            raise TelegramError("sendMessage returned status 403", details={"chat_id": str(chat_id)})
        self.sent.append({
            "chat_id": str(chat_id),
            "text": text,
            "keyboard": keyboard,
            "inline_keyboard": inline_keyboard,
        })

    async def answer_callback(self, callback_query_id, text=None) -> None:
        if self.breaker_open:
            raise CircuitBreakerOpenError("telegram", 30.0)
        self.callbacks.append((callback_query_id, text))

    async def download_file(self, file_id: str) -> tuple[bytes, str]:
        if self.fail_downloads:
            raise TelegramError("getFile returned status 400", details={"file_id": file_id})
        self.downloads.append(file_id)
        return FAKE_PHOTO_BYTES, f"photos/{file_id}.jpg"

    def messages_to(self, chat_id) -> list[dict]:
        return [m for m in self.sent if m["chat_id"] == str(chat_id)]

    def texts_to(self, chat_id) -> list[str]:
        return [m["text"] for m in self.messages_to(chat_id)]

    def last_to(self, chat_id) -> Optional[dict]:
        messages = self.messages_to(chat_id)
        return messages[-1] if messages else None

    def clear(self) -> None:
        self.sent.clear()
        self.callbacks.clear()
        self.downloads.clear()


@pytest.fixture(scope="function")
async def async_engine():
    """Create async test database engine"""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture(scope="function")
async def db_session(async_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create async database session for tests"""
    async_session_maker = async_sessionmaker(
        async_engine,
        class_=AsyncSession,
        expire_on_commit=False
    )

    async with async_session_maker() as session:
        yield session
        await session.rollback()


@pytest.fixture(scope="function")
async def test_client(db_session: AsyncSession):
    """Create test client with database override"""
    from httpx import AsyncClient, ASGITransport

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


# ============================================================================
# Settings and external services
# ============================================================================

@pytest.fixture(autouse=True)
def bot_settings(monkeypatch):
    """Chat ids and keys every test can rely on"""
    monkeypatch.setattr(settings, "TELEGRAM_HR_GROUP_ID", str(HR_GROUP_ID))
    monkeypatch.setattr(settings, "TELEGRAM_SUPPORT_GROUP_ID", str(SUPPORT_GROUP_ID))
    monkeypatch.setattr(settings, "TELEGRAM_HR_USER_IDS", str(HR_USER_ID))
    monkeypatch.setattr(settings, "TELEGRAM_WEBHOOK_SECRET_TOKEN", "")
    monkeypatch.setattr(settings, "ADMIN_API_KEY", ADMIN_API_KEY)
    monkeypatch.setattr(settings, "DOCUMENT_ANALYSIS_ENABLED", False)
    monkeypatch.setattr(settings, "OPENAI_API_KEY", "")
    return settings


@pytest.fixture(autouse=True)
def fake_transport() -> FakeTransport:
    """Install the recording transport as the process-wide chat transport"""
    transport = FakeTransport()
    set_transport(transport)
    yield transport
    set_transport(None)


@pytest.fixture(autouse=True)
def document_storage(tmp_path) -> LocalDocumentStorage:
    storage = LocalDocumentStorage(
        root=str(tmp_path / "uploads"),
        public_base_url="http://test",
        max_file_size=1024 * 1024,
    )
    set_document_storage(storage)
    yield storage
    set_document_storage(None)


@pytest.fixture(autouse=True)
def reset_circuit_breakers():
    """Every test starts with closed circuits"""
    CircuitBreaker.reset_all()
    yield
    CircuitBreaker.reset_all()


# ============================================================================
# Test Data Factories
# ============================================================================

@pytest.fixture
def driver_factory(db_session: AsyncSession):
    """Factory for creating test drivers"""
    async def _create_driver(
        telegram_id: int = 555001,
        full_name: Optional[str] = "John Smith",
        phone_number: Optional[str] = "+1 555 123 4567",
        status: DriverStatus = DriverStatus.ACTIVE,
        onboarding_completed: bool = True,
        **fields,
    ) -> Driver:
        return await DriverService(db_session).create_driver(
            telegram_id,
            full_name=full_name,
            phone_number=phone_number,
            status=status,
            onboarding_completed=onboarding_completed,
            **fields,
        )

    return _create_driver


# ============================================================================
# Conversation harness
# ============================================================================

class BotHarness:
    """Feeds inbound updates straight into the dispatcher, one dispatcher per update"""

    def __init__(self, db: AsyncSession, transport: FakeTransport):
        self.db = db
        self.transport = transport
        self._update_id = 0

    def _next_id(self) -> int:
        self._update_id += 1
        return self._update_id

    def actor(self, user_id: int, chat_id: Optional[int] = None) -> Actor:
        chat_id = user_id if chat_id is None else chat_id
        return Actor(user_id=user_id, chat_id=chat_id, is_hr=is_hr_actor(user_id, chat_id))

    async def _dispatch(self, update: InboundUpdate) -> Optional[MessageResponse]:
        return await ConversationDispatcher(self.db, self.transport).dispatch(update)

    async def text(self, user_id: int, text: str, chat_id: Optional[int] = None):
        return await self._dispatch(
            InboundUpdate(self._next_id(), self.actor(user_id, chat_id), text=text)
        )

    async def photo(self, user_id: int, file_id: str = "photo-1", chat_id: Optional[int] = None):
        return await self._dispatch(
            InboundUpdate(
                self._next_id(), self.actor(user_id, chat_id), photo=InboundPhoto(file_id)
            )
        )

    async def document(self, user_id: int, file_name: str = "cdl.pdf"):
        return await self._dispatch(
            InboundUpdate(
                self._next_id(),
                self.actor(user_id),
                document=InboundPhoto("doc-1", file_name=file_name),
            )
        )

    async def press(self, user_id: int, data: str, chat_id: Optional[int] = None):
        update_id = self._next_id()
        return await self._dispatch(
            InboundUpdate(
                update_id,
                self.actor(user_id, chat_id),
                callback_query_id=f"cb-{update_id}",
                callback_data=data,
            )
        )


@pytest.fixture
def bot(db_session: AsyncSession, fake_transport: FakeTransport) -> BotHarness:
    return BotHarness(db_session, fake_transport)
