from fastapi import Depends
from adapters.dispatch import SmsDispatcher, TelegramDispatcher
from core.config import settings
from services.directory_service import DirectoryService, IdentityDirectory
from services.lifecycle_service import LifecycleService
from services.registry_service import RegistryService
from services.session_store import SessionStore
from services.validator_service import ValidatorService
from services.webhook_service import WebhookService

def get_session_store() -> SessionStore:
    return SessionStore()

def get_registry_service() -> RegistryService:
    return RegistryService()

def get_directory() -> IdentityDirectory:
    base_url, service_key = settings.require_directory()
    return DirectoryService(
        base_url=base_url,
        service_key=service_key,
        timeout=settings.dispatch_timeout_seconds,
    )

def get_telegram_dispatcher() -> TelegramDispatcher:
    return TelegramDispatcher(timeout=settings.dispatch_timeout_seconds)

def get_sms_dispatcher() -> SmsDispatcher:
    base_url, email, password, sender = settings.require_sms()
    return SmsDispatcher(
        base_url=base_url,
        email=email,
        password=password,
        sender=sender,
        accepted_statuses=settings.accepted_sms_statuses,
        rate_limit_seconds=settings.sms_rate_limit_seconds,
        timeout=settings.dispatch_timeout_seconds,
        country_code=settings.default_country_code,
    )

def get_lifecycle_service(
    directory: IdentityDirectory = Depends(get_directory),
    registry: RegistryService = Depends(get_registry_service),
    store: SessionStore = Depends(get_session_store),
) -> LifecycleService:
    return LifecycleService(
        directory=directory,
        registry=registry,
        store=store,
        ttl_seconds=settings.otp_ttl_seconds,
        country_code=settings.default_country_code,
        bot_username=settings.telegram_bot_username,
    )

def get_validator_service(
    directory: IdentityDirectory = Depends(get_directory),
    store: SessionStore = Depends(get_session_store),
) -> ValidatorService:
    return ValidatorService(
        directory=directory,
        store=store,
        max_attempts=settings.otp_max_attempts,
        country_code=settings.default_country_code,
    )

def get_chat_validator_service(store: SessionStore = Depends(get_session_store)) -> ValidatorService:
    # In-chat confirmation never reads the account store.
    return ValidatorService(
        directory=None,
        store=store,
        max_attempts=settings.otp_max_attempts,
        country_code=settings.default_country_code,
    )

def get_webhook_service(
    registry: RegistryService = Depends(get_registry_service),
    validator: ValidatorService = Depends(get_chat_validator_service),
) -> WebhookService:
    return WebhookService(registry=registry, validator=validator)
