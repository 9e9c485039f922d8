from adapters.base import BaseAdapter
from adapters.telegram import TelegramAdapter

__all__ = ["BaseAdapter", "TelegramAdapter"]
