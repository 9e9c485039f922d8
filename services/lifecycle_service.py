import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from sqlalchemy.orm import Session

from adapters.dispatch.base import BaseDispatcher, DispatchResult
from core.errors import (
    AccountNotFound,
    DispatchFailed,
    EmailAlreadyRegistered,
    IdentityAlreadyRegistered,
    InvalidEmail,
    InvalidPhone,
    MessagingIdentityNotFound,
    PhoneAlreadyRegistered,
    RateLimited,
)
from core.phone import DEFAULT_COUNTRY_CODE, clean_phone, is_valid_phone, phone_candidates
from models.models import MessagingIdentity, SessionPurpose, VerificationSession
from schemas.account import AccountBinding
from services.directory_service import IdentityDirectory
from services.registry_service import RegistryService
from services.session_store import SessionStore, generate_code, generate_session_token

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
MAX_EMAIL_LENGTH = 255
_MASK_RE = re.compile(r"^(.{2})(.*)(@.*)$")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def normalize_email(value: str | None) -> str:
    return (value or "").strip().lower()


def is_valid_email(value: str | None) -> bool:
    email = (value or "").strip()
    return bool(email) and len(email) <= MAX_EMAIL_LENGTH and bool(EMAIL_RE.match(email))


def mask_email(email: str) -> str:
    """``john.doe@mail.uz`` -> ``jo***@mail.uz``."""
    local, sep, domain = email.partition("@")
    if not sep:
        return "***"
    if len(local) <= 2:
        return f"{local[:1]}***@{domain}"
    return _MASK_RE.sub(r"\1***\3", email)


@dataclass
class IssuedSession:
    session_token: str
    expires_in_seconds: int
    masked_email_hint: Optional[str] = None


class LifecycleService:
    """Creates verification sessions and hands the code to a dispatcher.

    At most one unused session exists per email: issuing a new one deletes the
    previous ones in the same transaction as the insert.
    """

    def __init__(
        self,
        directory: IdentityDirectory,
        registry: Optional[RegistryService] = None,
        store: Optional[SessionStore] = None,
        ttl_seconds: int = 180,
        country_code: str = DEFAULT_COUNTRY_CODE,
        bot_username: Optional[str] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.directory = directory
        self.bot_username = (bot_username or "").lstrip("@") or None
        self.registry = registry or RegistryService()
        self.store = store or SessionStore()
        self.ttl_seconds = ttl_seconds
        self.country_code = country_code
        self.clock = clock or utc_now

    async def create_session(
        self,
        db: Session,
        email: str,
        phone_number: str,
        dispatcher: BaseDispatcher,
    ) -> IssuedSession:
        """Registration flow: email + phone, code delivered via ``dispatcher``."""
        if not is_valid_email(email):
            raise InvalidEmail()
        if not is_valid_phone(phone_number):
            raise InvalidPhone()

        email = normalize_email(email)
        phone_number = clean_phone(phone_number)
        candidates = phone_candidates(phone_number, self.country_code)

        if await self.directory.find_account_by_email(email):
            raise EmailAlreadyRegistered()
        if await self.directory.find_account_by_phone_candidates(candidates):
            raise PhoneAlreadyRegistered()

        identity = None
        if dispatcher.requires_messaging_identity:
            identity = self.registry.find_active_by_phone_candidates(db, candidates)
            if identity is None:
                raise self._identity_missing()
            bound = await self.directory.find_account_by_messaging_handle(
                identity.chat_handle, identity.username
            )
            if bound:
                raise IdentityAlreadyRegistered()

        self._enforce_rate_limit(db, dispatcher, candidates)

        return await self._issue(
            db,
            dispatcher,
            email=email,
            phone_number=phone_number,
            identity=identity,
            purpose=SessionPurpose.registration,
        )

    async def create_reset_session(
        self,
        db: Session,
        dispatcher: BaseDispatcher,
        messaging_handle: Optional[str] = None,
        phone_number: Optional[str] = None,
    ) -> IssuedSession:
        """Password-reset flow: the code goes to the chat bound to the account."""
        handle = (messaging_handle or "").strip().lstrip("@")
        phone_number = (phone_number or "").strip()

        if handle:
            account = await self.directory.find_account_by_messaging_handle(handle, handle)
            candidates = phone_candidates(account.phone_number, self.country_code) if account else []
        elif phone_number:
            if not is_valid_phone(phone_number):
                raise InvalidPhone()
            candidates = phone_candidates(phone_number, self.country_code)
            account = await self.directory.find_account_by_phone_candidates(candidates)
        else:
            raise InvalidPhone("Telefon raqam yoki Telegram username kiriting")

        if account is None:
            raise AccountNotFound()

        identity = None
        if dispatcher.requires_messaging_identity:
            identity = self._identity_for_account(db, account, candidates)
            if identity is None:
                raise self._identity_missing()

        self._enforce_rate_limit(db, dispatcher, candidates)

        issued = await self._issue(
            db,
            dispatcher,
            email=normalize_email(account.email),
            phone_number=clean_phone(account.phone_number or phone_number),
            identity=identity,
            purpose=SessionPurpose.password_reset,
        )
        issued.masked_email_hint = mask_email(account.email)
        return issued

    def _identity_for_account(
        self,
        db: Session,
        account: AccountBinding,
        candidates: list[str],
    ) -> MessagingIdentity | None:
        if account.messaging_handle:
            identity = self.registry.find_active_by_handle(db, account.messaging_handle)
            if identity:
                return identity
        if account.phone_number:
            identity = self.registry.find_active_by_phone_candidates(
                db, phone_candidates(account.phone_number, self.country_code)
            )
            if identity:
                return identity
        return self.registry.find_active_by_phone_candidates(db, candidates)

    def _identity_missing(self) -> MessagingIdentityNotFound:
        if not self.bot_username:
            return MessagingIdentityNotFound()
        return MessagingIdentityNotFound(
            f"Telegram akkaunt topilmadi. Avval @{self.bot_username} botiga /start yuboring va "
            "📱 tugmasini bosib telefon raqamingizni ulashing."
        )

    def _enforce_rate_limit(self, db: Session, dispatcher: BaseDispatcher, candidates: list[str]) -> None:
        window = dispatcher.rate_limit_seconds
        if not window:
            return
        since = self.clock() - timedelta(seconds=window)
        if self.store.exists_recent_for_phone(db, candidates, since):
            logger.info("Session rate limited", extra={"channel": dispatcher.channel})
            raise RateLimited()

    async def _issue(
        self,
        db: Session,
        dispatcher: BaseDispatcher,
        email: str,
        phone_number: str,
        identity: Optional[MessagingIdentity],
        purpose: SessionPurpose,
    ) -> IssuedSession:
        now = self.clock()
        code = generate_code()
        record = VerificationSession(
            session_token=generate_session_token(),
            email=email,
            phone_number=phone_number,
            code=code,
            channel=dispatcher.channel,
            purpose=purpose.value,
            is_used=False,
            is_verified=False,
            attempts=0,
            messaging_identity_id=identity.chat_handle if identity else None,
            messaging_username=identity.username if identity else None,
            messaging_display_name=identity.display_name if identity else None,
            created_at=now,
            expires_at=now + timedelta(seconds=self.ttl_seconds),
        )
        record = self.store.replace_for_email(db, record)
        session_token = record.session_token

        try:
            target = dispatcher.resolve_target(phone_number, identity)
            message = dispatcher.format_code_message(code, self.ttl_seconds, purpose.value)
            result = await dispatcher.send(target, message)
        except Exception:
            logger.exception("Dispatcher raised", extra={"channel": dispatcher.channel})
            result = DispatchResult.failed
        if result != DispatchResult.delivered:
            try:
                self.store.delete(db, record)
            except Exception:
                db.rollback()
                logger.exception("Failed to discard undelivered session")
            logger.warning(
                "Code dispatch failed",
                extra={"channel": dispatcher.channel, "purpose": purpose.value},
            )
            raise DispatchFailed()

        logger.info(
            "Verification session created",
            extra={
                "channel": dispatcher.channel,
                "purpose": purpose.value,
                "session_token": session_token,
            },
        )
        return IssuedSession(session_token=session_token, expires_in_seconds=self.ttl_seconds)
