import logging
from typing import Iterable, Optional

import httpx

from adapters.dispatch.base import BaseDispatcher, DispatchResult
from core.http_client import get_async_client
from core.phone import DEFAULT_COUNTRY_CODE, international_digits
from models.models import DispatchChannel, MessagingIdentity, SessionPurpose

logger = logging.getLogger(__name__)


class SmsGatewayError(RuntimeError):
    pass


class SmsDispatcher(BaseDispatcher):
    """Eskiz-style SMS gateway: form-encoded login for a bearer token, then send."""

    channel = DispatchChannel.sms.value
    requires_messaging_identity = False

    def __init__(
        self,
        base_url: str,
        email: str,
        password: str,
        sender: str,
        accepted_statuses: Iterable[str] = ("waiting", "success"),
        rate_limit_seconds: Optional[int] = 60,
        timeout: float = 5.0,
        country_code: str = DEFAULT_COUNTRY_CODE,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.email = email
        self.password = password
        self.sender = sender
        self.accepted_statuses = frozenset(status.lower() for status in accepted_statuses)
        self.rate_limit_seconds = rate_limit_seconds
        self.timeout = timeout
        self.country_code = country_code
        self._client = client

    def _url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    @property
    def client(self) -> httpx.AsyncClient:
        return self._client or get_async_client()

    async def authenticate(self) -> str:
        resp = await self.client.post(
            self._url("/api/auth/login"),
            data={"email": self.email, "password": self.password},
            timeout=self.timeout,
        )
        if resp.status_code >= 400:
            logger.error("SMS gateway auth failed (%s)", resp.status_code)
            raise SmsGatewayError("SMS gateway auth failed")
        body = resp.json()
        data = body.get("data") if isinstance(body, dict) else None
        token = data.get("token") if isinstance(data, dict) else None
        if not token:
            raise SmsGatewayError("SMS gateway auth returned no token")
        return token

    async def send_sms(self, phone_digits: str, text: str) -> str:
        token = await self.authenticate()
        resp = await self.client.post(
            self._url("/api/message/sms/send"),
            headers={"Authorization": f"Bearer {token}"},
            data={"mobile_phone": phone_digits, "message": text, "from": self.sender},
            timeout=self.timeout,
        )
        if resp.status_code >= 400:
            logger.error("SMS gateway send failed (%s): %s", resp.status_code, resp.text)
            raise SmsGatewayError("SMS gateway send failed")
        body = resp.json()
        if not isinstance(body, dict):
            raise SmsGatewayError("SMS gateway returned an unexpected body")
        return str(body.get("status") or "").lower()

    async def send(self, target: str, message: str) -> DispatchResult:
        try:
            status = await self.send_sms(target, message)
        except httpx.TimeoutException:
            logger.warning("SMS code dispatch timed out")
            return DispatchResult.failed
        except (httpx.HTTPError, SmsGatewayError, ValueError):
            logger.exception("SMS code dispatch failed")
            return DispatchResult.failed

        if status not in self.accepted_statuses:
            logger.warning("SMS gateway did not accept message", extra={"gateway_status": status})
            return DispatchResult.failed
        return DispatchResult.delivered

    def resolve_target(self, phone_number: str, identity: Optional[MessagingIdentity]) -> str:
        return international_digits(phone_number, self.country_code)

    def format_code_message(self, code: str, ttl_seconds: int, purpose: str) -> str:
        minutes = max(ttl_seconds // 60, 1)
        if purpose == SessionPurpose.password_reset.value:
            return f"IQROMAX parolni tiklash kodi: {code}\nKod {minutes} daqiqa amal qiladi."
        return f"IQROMAX tasdiqlash kodi: {code}\nKod {minutes} daqiqa amal qiladi."
