from typing import Optional

from adapters.telegram import TelegramAdapter
from schemas.message import IncomingMessage

ADAPTERS = {
    "telegram": TelegramAdapter(),
}

def send_reply(message: IncomingMessage, reply_text: str, reply_markup: Optional[dict] = None) -> None:
    adapter = ADAPTERS.get(message.platform)
    if not adapter:
        raise RuntimeError(f"No adapter found for platform: {message.platform}")

    adapter.send_reply(message, reply_text, reply_markup)
