"""
Pytest fixtures for the OTP verification service.

Every test gets its own SQLite file so concurrent sessions see committed
state the way they would against Postgres.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("TELEGRAM_WEBHOOK_SECRET", "test-webhook-secret")
os.environ.setdefault("TELEGRAM_BOT_TOKEN", "123:test-token")

from datetime import datetime, timedelta, timezone
from typing import Optional, Sequence

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from adapters.dispatch.base import BaseDispatcher, DispatchResult
from core.database import Base
from core.errors import EmailTaken
from core.phone import international_digits
from models.models import MessagingIdentity
from schemas.account import AccountBinding, NewAccount
from services.directory_service import IdentityDirectory
from services.lifecycle_service import LifecycleService
from services.registry_service import RegistryService
from services.session_store import SessionStore
from services.validator_service import ValidatorService

START = datetime(2026, 3, 1, 9, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


class InMemoryDirectory(IdentityDirectory):
    def __init__(self):
        self.accounts: list[AccountBinding] = []
        self.passwords: dict[str, str] = {}
        self.created: list[NewAccount] = []

    def add(self, **fields) -> AccountBinding:
        fields.setdefault("user_id", f"user-{len(self.accounts) + 1}")
        account = AccountBinding(**fields)
        self.accounts.append(account)
        return account

    async def find_account_by_email(self, email: str) -> Optional[AccountBinding]:
        email = email.strip().lower()
        return next((a for a in self.accounts if a.email.lower() == email), None)

    async def find_account_by_phone_candidates(self, candidates: Sequence[str]) -> Optional[AccountBinding]:
        wanted = set(candidates)
        return next((a for a in self.accounts if a.phone_number in wanted), None)

    async def find_account_by_messaging_handle(
        self,
        handle: Optional[str],
        username: Optional[str] = None,
    ) -> Optional[AccountBinding]:
        username = (username or "").lstrip("@").lower()
        for account in self.accounts:
            if handle and account.messaging_handle == handle:
                return account
            if username and (account.messaging_username or "").lower() == username:
                return account
        return None

    async def create_account(self, account: NewAccount) -> AccountBinding:
        if await self.find_account_by_email(account.email):
            raise EmailTaken()
        self.created.append(account)
        binding = self.add(**account.model_dump(exclude={"password"}))
        self.passwords[binding.user_id] = account.password
        return binding

    async def update_password(self, user_id: str, password: str) -> None:
        self.passwords[user_id] = password

    async def update_email(self, user_id: str, email: str) -> None:
        for account in self.accounts:
            if account.user_id != user_id and account.email == email:
                raise EmailTaken()
        for account in self.accounts:
            if account.user_id == user_id:
                account.email = email


class RecordingDispatcher(BaseDispatcher):
    def __init__(
        self,
        channel: str = "telegram",
        requires_messaging_identity: bool = True,
        rate_limit_seconds: Optional[int] = None,
        result: DispatchResult = DispatchResult.delivered,
    ):
        self.channel = channel
        self.requires_messaging_identity = requires_messaging_identity
        self.rate_limit_seconds = rate_limit_seconds
        self.result = result
        self.sent: list[tuple[str, str]] = []

    async def send(self, target: str, message: str) -> DispatchResult:
        self.sent.append((target, message))
        return self.result

    def resolve_target(self, phone_number: str, identity: Optional[MessagingIdentity]) -> str:
        if identity is not None:
            return identity.chat_handle
        return international_digits(phone_number)

    def format_code_message(self, code: str, ttl_seconds: int, purpose: str) -> str:
        return f"{purpose}:{code}"

    @property
    def last_code(self) -> str:
        return self.sent[-1][1].rsplit(":", 1)[1]


@pytest.fixture
def engine(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'otp.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def directory():
    return InMemoryDirectory()


@pytest.fixture
def registry():
    return RegistryService()


@pytest.fixture
def store():
    return SessionStore()


@pytest.fixture
def bot_dispatcher():
    return RecordingDispatcher()


@pytest.fixture
def sms_dispatcher():
    return RecordingDispatcher(channel="sms", requires_messaging_identity=False, rate_limit_seconds=60)


@pytest.fixture
def lifecycle(directory, registry, store, clock):
    return LifecycleService(
        directory=directory,
        registry=registry,
        store=store,
        ttl_seconds=180,
        bot_username="iqromaxbot",
        clock=clock,
    )


@pytest.fixture
def validator(directory, store, clock):
    return ValidatorService(directory=directory, store=store, max_attempts=5, clock=clock)


@pytest.fixture
def bound_identity(db, registry):
    """Chat 5001 has completed the /start + contact handshake."""
    return registry.bind_phone(
        db,
        chat_handle="5001",
        phone_number="+998901112233",
        username="ali_v",
        display_name="Ali Valiyev",
        now=START,
    )


@pytest.fixture
def client(session_factory, directory, bot_dispatcher, sms_dispatcher):
    from fastapi.testclient import TestClient

    from core.database import get_db
    from dependencies.services import get_directory, get_sms_dispatcher, get_telegram_dispatcher
    from endpoints import webhook
    from main import app

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_directory] = lambda: directory
    app.dependency_overrides[get_telegram_dispatcher] = lambda: bot_dispatcher
    app.dependency_overrides[get_sms_dispatcher] = lambda: sms_dispatcher
    webhook.chat_limiter.reset()

    yield TestClient(app, raise_server_exceptions=False)

    app.dependency_overrides.clear()
    webhook.chat_limiter.reset()
