from adapters.dispatch.base import BaseDispatcher, DispatchResult
from adapters.dispatch.sms import SmsDispatcher
from adapters.dispatch.telegram import TelegramDispatcher

__all__ = ["BaseDispatcher", "DispatchResult", "SmsDispatcher", "TelegramDispatcher"]
