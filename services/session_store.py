import secrets
import string
from datetime import datetime, timezone
from typing import Sequence

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session

from models.models import VerificationSession

SESSION_TOKEN_LENGTH = 48
CODE_LENGTH = 6

_TOKEN_ALPHABET = string.ascii_letters + string.digits


def generate_code() -> str:
    return f"{secrets.randbelow(10 ** CODE_LENGTH):0{CODE_LENGTH}d}"


def generate_session_token() -> str:
    return "".join(secrets.choice(_TOKEN_ALPHABET) for _ in range(SESSION_TOKEN_LENGTH))


def as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class SessionStore:
    """Persistence for verification sessions.

    Every state transition that guards an invariant is a single conditional
    UPDATE so concurrent requests on the same token cannot both win.
    """

    def get_by_token(self, db: Session, session_token: str) -> VerificationSession | None:
        stmt = select(VerificationSession).where(VerificationSession.session_token == session_token)
        return db.scalar(stmt)

    def replace_for_email(self, db: Session, record: VerificationSession) -> VerificationSession:
        """Drop unused sessions for the email and insert ``record`` in one transaction."""
        try:
            db.execute(
                delete(VerificationSession).where(
                    VerificationSession.email == record.email,
                    VerificationSession.is_used.is_(False),
                )
            )
            db.add(record)
            db.commit()
        except Exception:
            db.rollback()
            raise
        db.refresh(record)
        return record

    def delete(self, db: Session, record: VerificationSession) -> None:
        db.execute(delete(VerificationSession).where(VerificationSession.id == record.id))
        db.commit()

    def exists_recent_for_phone(self, db: Session, candidates: Sequence[str], since: datetime) -> bool:
        if not candidates:
            return False
        stmt = (
            select(VerificationSession.id)
            .where(
                VerificationSession.phone_number.in_(list(candidates)),
                VerificationSession.created_at >= since,
            )
            .limit(1)
        )
        return db.scalar(stmt) is not None

    def increment_attempts(self, db: Session, record: VerificationSession, max_attempts: int) -> bool:
        """Spend one attempt. False when the budget was already exhausted."""
        result = db.execute(
            update(VerificationSession)
            .where(
                VerificationSession.id == record.id,
                VerificationSession.attempts < max_attempts,
            )
            .values(attempts=VerificationSession.attempts + 1)
            .execution_options(synchronize_session=False)
        )
        db.commit()
        if result.rowcount != 1:
            return False
        db.refresh(record)
        return True

    def consume(self, db: Session, record: VerificationSession) -> bool:
        """Compare-and-swap ``is_used`` false -> true."""
        result = db.execute(
            update(VerificationSession)
            .where(
                VerificationSession.id == record.id,
                VerificationSession.is_used.is_(False),
            )
            .values(is_used=True, is_verified=True)
            .execution_options(synchronize_session=False)
        )
        db.commit()
        if result.rowcount != 1:
            return False
        db.refresh(record)
        return True

    def mark_verified(self, db: Session, record: VerificationSession) -> bool:
        result = db.execute(
            update(VerificationSession)
            .where(
                VerificationSession.id == record.id,
                VerificationSession.is_used.is_(False),
            )
            .values(is_verified=True)
            .execution_options(synchronize_session=False)
        )
        db.commit()
        if result.rowcount != 1:
            return False
        db.refresh(record)
        return True

    def find_pending_for_chat(
        self,
        db: Session,
        chat_handle: str,
        now: datetime,
    ) -> list[VerificationSession]:
        stmt = (
            select(VerificationSession)
            .where(
                VerificationSession.messaging_identity_id == chat_handle,
                VerificationSession.is_used.is_(False),
                VerificationSession.expires_at > now,
            )
            .order_by(VerificationSession.created_at.desc())
        )
        return list(db.scalars(stmt))

    def delete_expired(self, db: Session, before: datetime) -> int:
        result = db.execute(
            delete(VerificationSession).where(VerificationSession.expires_at < before)
        )
        db.commit()
        return result.rowcount or 0
