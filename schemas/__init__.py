from .message import IncomingMessage, SharedContact
from .otp import (
    CreateSessionRequest,
    PasswordResetSessionRequest,
    SessionCreated,
    StatusRequest,
    StatusResponse,
    VerifyRequest,
    VerifyResponse,
    IdentitySnapshot,
    RegisterRequest,
    RegisterResponse,
    PasswordResetConfirmRequest,
    PasswordResetConfirmResponse,
)

__all__ = [
    "IncomingMessage",
    "SharedContact",
    "CreateSessionRequest",
    "PasswordResetSessionRequest",
    "SessionCreated",
    "StatusRequest",
    "StatusResponse",
    "VerifyRequest",
    "VerifyResponse",
    "IdentitySnapshot",
    "RegisterRequest",
    "RegisterResponse",
    "PasswordResetConfirmRequest",
    "PasswordResetConfirmResponse",
]
