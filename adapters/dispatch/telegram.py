import asyncio
import logging
from typing import Optional

import requests

from adapters.dispatch.base import BaseDispatcher, DispatchResult
from adapters.telegram import TelegramAdapter
from models.models import DispatchChannel, MessagingIdentity, SessionPurpose

logger = logging.getLogger(__name__)


class TelegramDispatcher(BaseDispatcher):
    channel = DispatchChannel.telegram.value
    requires_messaging_identity = True
    rate_limit_seconds = None

    def __init__(self, adapter: Optional[TelegramAdapter] = None, timeout: Optional[float] = None):
        self.adapter = adapter or TelegramAdapter(timeout=timeout)
        self.timeout = timeout

    async def send(self, target: str, message: str) -> DispatchResult:
        send = asyncio.to_thread(self.adapter.send_message, target, message)
        try:
            if self.timeout:
                await asyncio.wait_for(send, timeout=self.timeout)
            else:
                await send
        except asyncio.TimeoutError:
            logger.warning("Telegram code dispatch timed out", extra={"chat_handle": target})
            return DispatchResult.failed
        except (requests.exceptions.RequestException, RuntimeError):
            logger.warning("Telegram code dispatch failed", extra={"chat_handle": target})
            return DispatchResult.failed
        return DispatchResult.delivered

    def resolve_target(self, phone_number: str, identity: Optional[MessagingIdentity]) -> str:
        if identity is None:
            raise ValueError("Telegram dispatch needs a resolved messaging identity")
        return identity.chat_handle

    def format_code_message(self, code: str, ttl_seconds: int, purpose: str) -> str:
        minutes = max(ttl_seconds // 60, 1)
        if purpose == SessionPurpose.password_reset.value:
            title = "🔑 <b>Parolni tiklash kodi</b>"
        else:
            title = "🔐 <b>Tasdiqlash kodi</b>"
        return (
            f"{title}\n\n"
            f"<code>{code}</code>\n\n"
            f"⏱ Kod {minutes} daqiqa davomida amal qiladi.\n"
            "⚠️ Bu kodni hech kimga bermang!\n"
            "Agar bu siz bo'lmasangiz, e'tibor bermang."
        )
