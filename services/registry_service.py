from datetime import datetime, timezone
from typing import Optional, Sequence

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from models.models import MessagingIdentity


class RegistryService:
    """Phone -> Telegram chat bindings.

    Lookups are used by the verification flows; the upserts are only ever
    called from the webhook path.
    """

    def find_by_chat_handle(self, db: Session, chat_handle: str) -> MessagingIdentity | None:
        stmt = select(MessagingIdentity).where(MessagingIdentity.chat_handle == chat_handle)
        return db.scalar(stmt)

    def find_active_by_phone_candidates(
        self,
        db: Session,
        candidates: Sequence[str],
    ) -> MessagingIdentity | None:
        if not candidates:
            return None
        stmt = (
            select(MessagingIdentity)
            .where(
                MessagingIdentity.is_active.is_(True),
                MessagingIdentity.phone_number.in_(list(candidates)),
            )
            .order_by(MessagingIdentity.updated_at.desc())
            .limit(1)
        )
        return db.scalar(stmt)

    def find_active_by_handle(self, db: Session, handle: str) -> MessagingIdentity | None:
        """Match a chat id or a ``@username`` (case-insensitive)."""
        cleaned = (handle or "").strip().lstrip("@")
        if not cleaned:
            return None
        by_chat = select(MessagingIdentity).where(
            MessagingIdentity.is_active.is_(True),
            MessagingIdentity.chat_handle == cleaned,
        )
        identity = db.scalar(by_chat)
        if identity:
            return identity
        by_username = (
            select(MessagingIdentity)
            .where(
                MessagingIdentity.is_active.is_(True),
                func.lower(MessagingIdentity.username) == cleaned.lower(),
            )
            .order_by(MessagingIdentity.updated_at.desc())
            .limit(1)
        )
        return db.scalar(by_username)

    def upsert_profile(
        self,
        db: Session,
        chat_handle: str,
        username: Optional[str],
        display_name: Optional[str],
        now: Optional[datetime] = None,
    ) -> MessagingIdentity:
        now = now or datetime.now(timezone.utc)
        identity = self.find_by_chat_handle(db, chat_handle)
        if identity is None:
            identity = MessagingIdentity(chat_handle=chat_handle, is_active=True)
            db.add(identity)
            try:
                db.flush()
            except IntegrityError:
                # Duplicate webhook delivery inserted the row first.
                db.rollback()
                identity = self.find_by_chat_handle(db, chat_handle)
                if identity is None:
                    raise

        if username:
            identity.username = username
        if display_name:
            identity.display_name = display_name
        identity.is_active = True
        identity.updated_at = now
        db.add(identity)
        db.commit()
        db.refresh(identity)
        return identity

    def bind_phone(
        self,
        db: Session,
        chat_handle: str,
        phone_number: str,
        username: Optional[str],
        display_name: Optional[str],
        now: Optional[datetime] = None,
    ) -> MessagingIdentity:
        now = now or datetime.now(timezone.utc)
        identity = self.upsert_profile(db, chat_handle, username, display_name, now=now)

        # A phone follows the chat that shared it last.
        db.execute(
            update(MessagingIdentity)
            .where(
                MessagingIdentity.phone_number == phone_number,
                MessagingIdentity.chat_handle != chat_handle,
                MessagingIdentity.is_active.is_(True),
            )
            .values(is_active=False, updated_at=now)
        )
        identity.phone_number = phone_number
        identity.updated_at = now
        db.add(identity)
        db.commit()
        db.refresh(identity)
        return identity
