from abc import ABC, abstractmethod
from typing import Optional
from schemas.message import IncomingMessage

class BaseAdapter(ABC):

    @abstractmethod
    def parse(self, payload: dict) -> IncomingMessage:
        pass

    @abstractmethod
    def send_message(self, chat_id: str, text: str, reply_markup: Optional[dict] = None) -> None:
        """Push a message to a chat on the platform. Raises on delivery failure."""

    def send_reply(
        self,
        message: IncomingMessage,
        reply_text: str,
        reply_markup: Optional[dict] = None,
    ) -> None:
        """Deliver response back to the originating platform."""
        self.send_message(message.chat_id, reply_text, reply_markup)
