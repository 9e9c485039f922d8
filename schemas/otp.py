from typing import Optional

from pydantic import BaseModel, Field, field_validator


def _strip(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    cleaned = value.strip()
    return cleaned or None


class IdentitySnapshot(BaseModel):
    messaging_identity_id: Optional[str] = None
    messaging_username: Optional[str] = None
    messaging_display_name: Optional[str] = None


class CreateSessionRequest(BaseModel):
    email: str
    phone_number: str

    @field_validator("email", "phone_number")
    @classmethod
    def strip_value(cls, value: str) -> str:
        return value.strip()


class PasswordResetSessionRequest(BaseModel):
    messaging_handle: Optional[str] = None
    phone_number: Optional[str] = None

    @field_validator("messaging_handle", "phone_number")
    @classmethod
    def strip_optional(cls, value: Optional[str]) -> Optional[str]:
        return _strip(value)


class SessionCreated(BaseModel):
    success: bool = True
    session_token: str
    expires_in_seconds: int
    masked_email_hint: Optional[str] = None


class StatusRequest(BaseModel):
    session_token: str


class StatusResponse(BaseModel):
    success: bool = True
    status: str
    messaging_identity: Optional[IdentitySnapshot] = None


class VerifyRequest(BaseModel):
    session_token: str
    code: str
    consume: bool = False


class VerifyResponse(BaseModel):
    success: bool = True
    consumed: bool
    email: str
    phone_number: str
    messaging_identity: IdentitySnapshot


class RegisterRequest(BaseModel):
    session_token: str
    code: str
    password: str
    username: Optional[str] = Field(None, max_length=60)

    @field_validator("username")
    @classmethod
    def clean_username(cls, value: Optional[str]) -> Optional[str]:
        return _strip(value)


class RegisterResponse(BaseModel):
    success: bool = True
    user_id: str
    email: str
    messaging_identity: IdentitySnapshot


class PasswordResetConfirmRequest(BaseModel):
    session_token: str
    code: str
    new_password: str
    new_email: Optional[str] = None

    @field_validator("new_email")
    @classmethod
    def strip_email(cls, value: Optional[str]) -> Optional[str]:
        return _strip(value)


class PasswordResetConfirmResponse(BaseModel):
    success: bool = True
    message: str
    email_changed: bool
    email_error: Optional[dict] = None
