import enum
from abc import ABC, abstractmethod
from typing import Optional

from models.models import MessagingIdentity


class DispatchResult(str, enum.Enum):
    delivered = "delivered"
    failed = "failed"


class BaseDispatcher(ABC):
    """Out-of-band channel that delivers a one-time code to its owner.

    ``rate_limit_seconds`` is the minimum gap between two sessions created for
    the same phone on this channel; ``None`` disables the check.
    """

    channel: str = ""
    requires_messaging_identity: bool = True
    rate_limit_seconds: Optional[int] = None

    @abstractmethod
    async def send(self, target: str, message: str) -> DispatchResult:
        """Deliver ``message`` to ``target``. Never raises for delivery problems."""

    @abstractmethod
    def resolve_target(self, phone_number: str, identity: Optional[MessagingIdentity]) -> str:
        pass

    @abstractmethod
    def format_code_message(self, code: str, ttl_seconds: int, purpose: str) -> str:
        pass
