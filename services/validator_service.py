import logging
import re
import secrets
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.orm import Session

from core.errors import (
    AccountNotFound,
    AlreadyUsed,
    CodeMismatch,
    EmailAlreadyRegistered,
    EmailTaken,
    Expired,
    IdentityAlreadyRegistered,
    InvalidCode,
    InvalidEmail,
    InvalidPassword,
    SessionNotFound,
    TooManyAttempts,
    VerificationError,
)
from core.phone import DEFAULT_COUNTRY_CODE, phone_candidates
from models.models import SessionPurpose, SessionStatus, VerificationSession
from schemas.account import AccountBinding, NewAccount
from services.directory_service import IdentityDirectory
from services.lifecycle_service import is_valid_email, normalize_email, utc_now
from services.session_store import SessionStore, as_utc

logger = logging.getLogger(__name__)

CODE_RE = re.compile(r"^\d{6}$")
MIN_PASSWORD_LENGTH = 6


@dataclass
class VerifiedSession:
    email: str
    phone_number: str
    purpose: str
    consumed: bool
    messaging_identity_id: Optional[str] = None
    messaging_username: Optional[str] = None
    messaging_display_name: Optional[str] = None

    @classmethod
    def from_record(cls, record: VerificationSession, consumed: bool) -> "VerifiedSession":
        return cls(
            email=record.email,
            phone_number=record.phone_number,
            purpose=record.purpose,
            consumed=consumed,
            messaging_identity_id=record.messaging_identity_id,
            messaging_username=record.messaging_username,
            messaging_display_name=record.messaging_display_name,
        )


@dataclass
class SessionState:
    status: SessionStatus
    record: VerificationSession


@dataclass
class RegistrationResult:
    account: AccountBinding
    session: VerifiedSession


@dataclass
class PasswordResetResult:
    email: str
    email_changed: bool = False
    email_error: Optional[VerificationError] = None


def _check_code_format(code: str) -> str:
    code = (code or "").strip()
    if not CODE_RE.match(code):
        raise InvalidCode()
    return code


def _check_password(password: str) -> None:
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise InvalidPassword()


class ValidatorService:
    """Checks a presented code against a session.

    Checks run in a fixed order: existence, expiry, single use, attempt
    budget, then the code itself. Every presented code spends an attempt
    before it is compared, whether it matches or not.

    ``directory`` may be None when the instance only serves
    ``confirm_from_chat``.
    """

    def __init__(
        self,
        directory: Optional[IdentityDirectory],
        store: Optional[SessionStore] = None,
        max_attempts: int = 5,
        country_code: str = DEFAULT_COUNTRY_CODE,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.directory = directory
        self.store = store or SessionStore()
        self.max_attempts = max_attempts
        self.country_code = country_code
        self.clock = clock or utc_now

    def _is_expired(self, record: VerificationSession) -> bool:
        return self.clock() > as_utc(record.expires_at)

    def _load(self, db: Session, session_token: str, purpose: SessionPurpose) -> VerificationSession:
        record = self.store.get_by_token(db, (session_token or "").strip())
        if record is None or record.purpose != purpose.value:
            raise SessionNotFound()
        if self._is_expired(record):
            raise Expired()
        if record.is_used:
            raise AlreadyUsed()
        if record.attempts >= self.max_attempts:
            raise TooManyAttempts()
        return record

    def _spend_attempt(self, db: Session, record: VerificationSession, session_token: str) -> None:
        if self.store.increment_attempts(db, record, self.max_attempts):
            return
        # Lost a race: the row was replaced, consumed or ran out of attempts.
        current = self.store.get_by_token(db, session_token)
        if current is None:
            raise SessionNotFound()
        if current.is_used:
            raise AlreadyUsed()
        raise TooManyAttempts()

    async def _guard_registration(self, record: VerificationSession) -> None:
        """Re-check uniqueness right before the binding is finalized.

        Either collision means the binding was taken since the session was
        issued, so both report ``IdentityAlreadyRegistered``.
        """
        if record.messaging_identity_id:
            bound = await self.directory.find_account_by_messaging_handle(
                record.messaging_identity_id, record.messaging_username
            )
            if bound:
                raise IdentityAlreadyRegistered()
        candidates = phone_candidates(record.phone_number, self.country_code)
        if candidates and await self.directory.find_account_by_phone_candidates(candidates):
            raise IdentityAlreadyRegistered()

    def _consume(self, db: Session, record: VerificationSession) -> None:
        if not self.store.consume(db, record):
            logger.info("Session consumed concurrently", extra={"session_id": str(record.id)})
            raise AlreadyUsed()

    def _match(
        self,
        db: Session,
        session_token: str,
        code: str,
        purpose: SessionPurpose,
    ) -> VerificationSession:
        code = _check_code_format(code)
        record = self._load(db, session_token, purpose)
        token = record.session_token
        self._spend_attempt(db, record, token)
        if not secrets.compare_digest(record.code, code):
            logger.info(
                "Code mismatch",
                extra={"session_id": str(record.id), "attempts": record.attempts},
            )
            raise CodeMismatch()
        return record

    async def verify(
        self,
        db: Session,
        session_token: str,
        code: str,
        consume: bool = False,
    ) -> VerifiedSession:
        record = self._match(db, session_token, code, SessionPurpose.registration)
        await self._guard_registration(record)

        if consume:
            self._consume(db, record)
        elif not self.store.mark_verified(db, record):
            raise AlreadyUsed()

        logger.info(
            "Session verified",
            extra={"session_id": str(record.id), "consumed": consume, "channel": record.channel},
        )
        return VerifiedSession.from_record(record, consumed=consume)

    async def status(self, db: Session, session_token: str) -> SessionState:
        record = self.store.get_by_token(db, (session_token or "").strip())
        if record is None:
            raise SessionNotFound()
        if self._is_expired(record):
            status = SessionStatus.expired
        elif record.is_used:
            status = SessionStatus.used
        elif record.is_verified:
            # A chat confirmation says nothing about an account bound since issue.
            if record.messaging_identity_id and await self.directory.find_account_by_messaging_handle(
                record.messaging_identity_id, record.messaging_username
            ):
                raise IdentityAlreadyRegistered()
            status = SessionStatus.verified
        else:
            status = SessionStatus.pending
        return SessionState(status=status, record=record)

    async def register(
        self,
        db: Session,
        session_token: str,
        code: str,
        password: str,
        username: Optional[str] = None,
    ) -> RegistrationResult:
        _check_password(password)
        record = self._match(db, session_token, code, SessionPurpose.registration)
        await self._guard_registration(record)
        if await self.directory.find_account_by_email(record.email):
            raise EmailAlreadyRegistered()

        self._consume(db, record)
        session = VerifiedSession.from_record(record, consumed=True)

        try:
            account = await self.directory.create_account(
                NewAccount(
                    email=record.email,
                    password=password,
                    phone_number=record.phone_number or None,
                    username=username or record.messaging_username,
                    messaging_handle=record.messaging_identity_id,
                    messaging_username=record.messaging_username,
                )
            )
        except VerificationError:
            logger.error(
                "Account creation failed after session was consumed",
                extra={"session_id": str(record.id)},
            )
            raise

        logger.info("Account registered", extra={"user_id": account.user_id, "channel": record.channel})
        return RegistrationResult(account=account, session=session)

    async def confirm_password_reset(
        self,
        db: Session,
        session_token: str,
        code: str,
        new_password: str,
        new_email: Optional[str] = None,
    ) -> PasswordResetResult:
        _check_password(new_password)
        record = self._match(db, session_token, code, SessionPurpose.password_reset)

        account = await self.directory.find_account_by_email(record.email)
        if account is None:
            raise AccountNotFound()

        self._consume(db, record)
        await self.directory.update_password(account.user_id, new_password)
        logger.info("Password reset", extra={"user_id": account.user_id})

        result = PasswordResetResult(email=account.email)
        if new_email and normalize_email(new_email) != normalize_email(account.email):
            try:
                result.email = await self._change_email(account, new_email)
                result.email_changed = True
            except (InvalidEmail, EmailTaken) as exc:
                logger.info(
                    "Email change skipped",
                    extra={"user_id": account.user_id, "reason": exc.kind},
                )
                result.email_error = exc
        return result

    async def _change_email(self, account: AccountBinding, new_email: str) -> str:
        if not is_valid_email(new_email):
            raise InvalidEmail()
        new_email = normalize_email(new_email)
        existing = await self.directory.find_account_by_email(new_email)
        if existing and existing.user_id != account.user_id:
            raise EmailTaken()
        await self.directory.update_email(account.user_id, new_email)
        return new_email

    def confirm_from_chat(self, db: Session, chat_handle: str, code: str) -> VerificationSession | None:
        """Code typed into the bot chat marks the matching pending session verified.

        A wrong code spends an attempt on the newest pending session for the chat.
        """
        code = _check_code_format(code)
        pending = [
            record
            for record in self.store.find_pending_for_chat(db, chat_handle, self.clock())
            if record.attempts < self.max_attempts
        ]
        if not pending:
            return None

        for record in pending:
            if secrets.compare_digest(record.code, code):
                if record.is_verified:
                    return record
                if not self.store.increment_attempts(db, record, self.max_attempts):
                    return None
                if not self.store.mark_verified(db, record):
                    return None
                logger.info("Session confirmed from chat", extra={"session_id": str(record.id)})
                return record

        self.store.increment_attempts(db, pending[0], self.max_attempts)
        return None
