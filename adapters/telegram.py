import logging
import time
from typing import Optional

import requests
from core.config import settings
from adapters.base import BaseAdapter
from schemas.message import IncomingMessage, SharedContact

logger = logging.getLogger(__name__)

_HTML_TAGS = ("<b>", "<i>", "<code>", "<pre>", "<a ")

class TelegramAdapter(BaseAdapter):

    def __init__(
        self,
        bot_token: Optional[str] = None,
        api_base: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self.bot_token = bot_token
        self.api_base = api_base
        self.timeout = timeout

    def _url(self, method: str) -> str:
        token = self.bot_token or settings.telegram_bot_token
        if not token:
            raise RuntimeError("Telegram bot token is not configured.")
        base = (self.api_base or settings.telegram_api_base).rstrip("/")
        return f"{base}/bot{token}/{method}"

    def parse(self, payload: dict) -> IncomingMessage:
        message = payload.get("message") or payload.get("edited_message")
        if not message:
            raise ValueError("Unsupported Telegram update type")

        sender = message["from"]
        contact = message.get("contact")
        shared = None
        if contact:
            contact_user_id = contact.get("user_id")
            shared = SharedContact(
                phone_number=contact["phone_number"],
                user_id=str(contact_user_id) if contact_user_id is not None else None,
                first_name=contact.get("first_name"),
            )

        return IncomingMessage(
            platform="telegram",
            external_user_id=str(sender["id"]),
            chat_id=str(message["chat"]["id"]),
            message_id=str(message["message_id"]),
            text=message.get("text") or "",
            username=sender.get("username"),
            first_name=sender.get("first_name"),
            last_name=sender.get("last_name"),
            contact=shared,
            raw_payload=payload,
        )

    def send_message(self, chat_id: str, text: str, reply_markup: Optional[dict] = None) -> None:
        payload = {
            "chat_id": chat_id,
            "text": text,
        }
        if any(tag in text for tag in _HTML_TAGS):
            payload["parse_mode"] = "HTML"
        if reply_markup:
            payload["reply_markup"] = reply_markup
        timeout = self.timeout or settings.dispatch_timeout_seconds
        start = time.perf_counter()
        try:
            response = requests.post(self._url("sendMessage"), json=payload, timeout=timeout)
            elapsed = time.perf_counter() - start
            logger.info(
                "Telegram sendMessage completed",
                extra={
                    "status_code": response.status_code,
                    "elapsed_s": round(elapsed, 3),
                },
            )
            response.raise_for_status()
            body = response.json()
            if not isinstance(body, dict) or not body.get("ok", False):
                description = body.get("description") if isinstance(body, dict) else body
                raise RuntimeError(f"Telegram API rejected message: {description}")
        except requests.exceptions.RequestException:
            elapsed = time.perf_counter() - start
            logger.exception(
                "Telegram sendMessage failed",
                extra={"elapsed_s": round(elapsed, 3)},
            )
            raise

    def set_webhook(self, url: str, secret_token: str) -> dict:
        response = requests.post(
            self._url("setWebhook"),
            json={
                "url": url,
                "secret_token": secret_token,
                "allowed_updates": ["message"],
            },
            timeout=self.timeout or settings.dispatch_timeout_seconds,
        )
        response.raise_for_status()
        return response.json()
