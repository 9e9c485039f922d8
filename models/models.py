import enum
import uuid
from sqlalchemy import Column, String, Boolean, DateTime, Integer, Index, Uuid
from sqlalchemy.sql import func
from core.database import Base

class DispatchChannel(str, enum.Enum):
    telegram = "telegram"
    sms = "sms"

class SessionPurpose(str, enum.Enum):
    registration = "registration"
    password_reset = "password_reset"

class SessionStatus(str, enum.Enum):
    pending = "pending"
    verified = "verified"
    expired = "expired"
    used = "used"


class MessagingIdentity(Base):
    __tablename__ = "messaging_identities"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    chat_handle = Column(String, unique=True, nullable=False, index=True)
    username = Column(String, nullable=True, index=True)
    display_name = Column(String, nullable=True)
    phone_number = Column(String, nullable=True, index=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at = Column(DateTime(timezone=True), nullable=True)


class VerificationSession(Base):
    __tablename__ = "verification_sessions"
    __table_args__ = (
        Index("ix_verification_sessions_email_is_used", "email", "is_used"),
        Index("ix_verification_sessions_phone_created", "phone_number", "created_at"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    session_token = Column(String(64), nullable=False, unique=True, index=True)
    email = Column(String(255), nullable=False)
    phone_number = Column(String, nullable=False, default="")
    code = Column(String(6), nullable=False)
    channel = Column(String, nullable=False, default=DispatchChannel.telegram.value)
    purpose = Column(String, nullable=False, default=SessionPurpose.registration.value)
    is_used = Column(Boolean, nullable=False, default=False)
    is_verified = Column(Boolean, nullable=False, default=False)
    attempts = Column(Integer, nullable=False, default=0)
    messaging_identity_id = Column(String, nullable=True)
    messaging_username = Column(String, nullable=True)
    messaging_display_name = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
