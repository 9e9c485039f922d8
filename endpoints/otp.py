from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from adapters.dispatch import SmsDispatcher, TelegramDispatcher
from core.database import get_db
from dependencies.services import (
    get_lifecycle_service,
    get_sms_dispatcher,
    get_telegram_dispatcher,
    get_validator_service,
)
from models.models import VerificationSession
from schemas.otp import (
    CreateSessionRequest,
    IdentitySnapshot,
    PasswordResetConfirmRequest,
    PasswordResetConfirmResponse,
    PasswordResetSessionRequest,
    RegisterRequest,
    RegisterResponse,
    SessionCreated,
    StatusRequest,
    StatusResponse,
    VerifyRequest,
    VerifyResponse,
)
from services.lifecycle_service import LifecycleService
from services.validator_service import ValidatorService

router = APIRouter(prefix="/otp", tags=["otp"])


def _snapshot(source) -> IdentitySnapshot:
    return IdentitySnapshot(
        messaging_identity_id=source.messaging_identity_id,
        messaging_username=source.messaging_username,
        messaging_display_name=source.messaging_display_name,
    )


@router.post("/sessions", response_model=SessionCreated)
async def create_session(
    payload: CreateSessionRequest,
    db: Session = Depends(get_db),
    lifecycle: LifecycleService = Depends(get_lifecycle_service),
    dispatcher: TelegramDispatcher = Depends(get_telegram_dispatcher),
):
    issued = await lifecycle.create_session(db, payload.email, payload.phone_number, dispatcher)
    return SessionCreated(session_token=issued.session_token, expires_in_seconds=issued.expires_in_seconds)


@router.post("/sessions/sms", response_model=SessionCreated)
async def create_sms_session(
    payload: CreateSessionRequest,
    db: Session = Depends(get_db),
    lifecycle: LifecycleService = Depends(get_lifecycle_service),
    dispatcher: SmsDispatcher = Depends(get_sms_dispatcher),
):
    issued = await lifecycle.create_session(db, payload.email, payload.phone_number, dispatcher)
    return SessionCreated(session_token=issued.session_token, expires_in_seconds=issued.expires_in_seconds)


@router.post("/sessions/password-reset", response_model=SessionCreated)
async def create_password_reset_session(
    payload: PasswordResetSessionRequest,
    db: Session = Depends(get_db),
    lifecycle: LifecycleService = Depends(get_lifecycle_service),
    dispatcher: TelegramDispatcher = Depends(get_telegram_dispatcher),
):
    issued = await lifecycle.create_reset_session(
        db,
        dispatcher,
        messaging_handle=payload.messaging_handle,
        phone_number=payload.phone_number,
    )
    return SessionCreated(
        session_token=issued.session_token,
        expires_in_seconds=issued.expires_in_seconds,
        masked_email_hint=issued.masked_email_hint,
    )


@router.post("/status", response_model=StatusResponse)
async def session_status(
    payload: StatusRequest,
    db: Session = Depends(get_db),
    validator: ValidatorService = Depends(get_validator_service),
):
    state = await validator.status(db, payload.session_token)
    record: VerificationSession = state.record
    snapshot = _snapshot(record) if record.messaging_identity_id else None
    return StatusResponse(status=state.status.value, messaging_identity=snapshot)


@router.post("/verify", response_model=VerifyResponse)
async def verify(
    payload: VerifyRequest,
    db: Session = Depends(get_db),
    validator: ValidatorService = Depends(get_validator_service),
):
    verified = await validator.verify(db, payload.session_token, payload.code, consume=payload.consume)
    return VerifyResponse(
        consumed=verified.consumed,
        email=verified.email,
        phone_number=verified.phone_number,
        messaging_identity=_snapshot(verified),
    )


@router.post("/register", response_model=RegisterResponse)
async def register(
    payload: RegisterRequest,
    db: Session = Depends(get_db),
    validator: ValidatorService = Depends(get_validator_service),
):
    result = await validator.register(
        db,
        payload.session_token,
        payload.code,
        payload.password,
        username=payload.username,
    )
    return RegisterResponse(
        user_id=result.account.user_id,
        email=result.account.email,
        messaging_identity=_snapshot(result.session),
    )


@router.post("/password-reset/confirm", response_model=PasswordResetConfirmResponse)
async def confirm_password_reset(
    payload: PasswordResetConfirmRequest,
    db: Session = Depends(get_db),
    validator: ValidatorService = Depends(get_validator_service),
):
    result = await validator.confirm_password_reset(
        db,
        payload.session_token,
        payload.code,
        payload.new_password,
        new_email=payload.new_email,
    )
    if result.email_changed:
        message = "Parol va email muvaffaqiyatli yangilandi"
    else:
        message = "Parol muvaffaqiyatli yangilandi"
    return PasswordResetConfirmResponse(
        message=message,
        email_changed=result.email_changed,
        email_error=result.email_error.to_dict() if result.email_error else None,
    )
