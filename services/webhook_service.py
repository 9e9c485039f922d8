import asyncio
import logging
import re
from typing import Optional

from sqlalchemy.orm import Session

from adapters.registry import send_reply
from core.phone import is_valid_phone, normalize_contact_phone
from schemas.message import IncomingMessage
from services.registry_service import RegistryService
from services.validator_service import ValidatorService

_CODE_RE = re.compile(r"^\d{6}$")

CONTACT_KEYBOARD = {
    "keyboard": [[{"text": "📱 Telefon raqamni ulashish", "request_contact": True}]],
    "resize_keyboard": True,
    "one_time_keyboard": True,
}
REMOVE_KEYBOARD = {"remove_keyboard": True}


class WebhookService:
    """Handles bot updates: the /start handshake, contact shares and typed codes."""

    def __init__(self, registry: RegistryService, validator: ValidatorService):
        self.registry = registry
        self.validator = validator
        self.logger = logging.getLogger(__name__)

    async def handle_incoming_message(self, db: Session, message: IncomingMessage) -> None:
        self.logger.info(
            "WebhookService received message",
            extra={
                "platform": message.platform,
                "external_user_id": message.external_user_id,
                "message_id": message.message_id,
            },
        )
        if message.contact:
            await self._handle_contact(db, message)
            return

        text = (message.text or "").strip()
        if self._is_start_command(text):
            await self._handle_start(db, message)
            return
        if _CODE_RE.match(text):
            await self._handle_code(db, message, text)
            return

        await self._reply(message, "Ro'yxatdan o'tish uchun /start buyrug'ini yuboring.")

    async def _reply(self, message: IncomingMessage, text: str, reply_markup: Optional[dict] = None) -> None:
        await asyncio.to_thread(send_reply, message, text, reply_markup)

    def _is_start_command(self, text: str) -> bool:
        command = text.split(maxsplit=1)[0].lower() if text else ""
        # /start@botname in group chats
        return command == "/start" or command.startswith("/start@")

    async def _handle_start(self, db: Session, message: IncomingMessage) -> None:
        identity = self.registry.upsert_profile(
            db,
            chat_handle=message.chat_id,
            username=message.username,
            display_name=message.display_name,
        )
        self.logger.info("Messaging profile recorded", extra={"chat_handle": identity.chat_handle})

        name = message.first_name or message.username or "foydalanuvchi"
        await self._reply(
            message,
            f"Assalomu alaykum, {name}! 👋\n\n"
            "Ro'yxatdan o'tish uchun quyidagi tugmani bosib telefon raqamingizni ulashing 👇",
            CONTACT_KEYBOARD,
        )

    async def _handle_contact(self, db: Session, message: IncomingMessage) -> None:
        contact = message.contact
        # Address-book cards carry no user_id; only the sender's own card binds.
        if not contact.user_id or contact.user_id != message.external_user_id:
            self.logger.warning(
                "Foreign contact share ignored",
                extra={"chat_handle": message.chat_id},
            )
            await self._reply(
                message,
                "Iltimos, faqat o'zingizning telefon raqamingizni ulashing.",
                CONTACT_KEYBOARD,
            )
            return

        phone_number = normalize_contact_phone(contact.phone_number)
        if not is_valid_phone(phone_number):
            await self._reply(message, "Telefon raqam noto'g'ri. Qaytadan urinib ko'ring.", CONTACT_KEYBOARD)
            return

        identity = self.registry.bind_phone(
            db,
            chat_handle=message.chat_id,
            phone_number=phone_number,
            username=message.username,
            display_name=message.display_name,
        )
        self.logger.info("Phone bound to messaging identity", extra={"chat_handle": identity.chat_handle})
        await self._reply(
            message,
            f"✅ Telefon raqamingiz ulandi: {phone_number}\n\n"
            "Endi saytga qaytib, ro'yxatdan o'tishni davom ettiring.",
            REMOVE_KEYBOARD,
        )

    async def _handle_code(self, db: Session, message: IncomingMessage, code: str) -> None:
        record = self.validator.confirm_from_chat(db, message.chat_id, code)
        if record is None:
            await self._reply(message, "❌ Kod noto'g'ri yoki muddati tugagan.")
            return
        await self._reply(message, "✅ Kod tasdiqlandi. Saytga qaytishingiz mumkin.")
