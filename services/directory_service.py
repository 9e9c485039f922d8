import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Sequence

import httpx

from core.errors import DirectoryUnavailable, EmailTaken
from core.http_client import get_async_client
from schemas.account import AccountBinding, NewAccount

logger = logging.getLogger(__name__)


class IdentityDirectory(ABC):
    """Read/write contract with the external account store."""

    @abstractmethod
    async def find_account_by_email(self, email: str) -> Optional[AccountBinding]:
        pass

    @abstractmethod
    async def find_account_by_phone_candidates(self, candidates: Sequence[str]) -> Optional[AccountBinding]:
        pass

    @abstractmethod
    async def find_account_by_messaging_handle(
        self,
        handle: Optional[str],
        username: Optional[str] = None,
    ) -> Optional[AccountBinding]:
        pass

    @abstractmethod
    async def create_account(self, account: NewAccount) -> AccountBinding:
        pass

    @abstractmethod
    async def update_password(self, user_id: str, password: str) -> None:
        pass

    @abstractmethod
    async def update_email(self, user_id: str, email: str) -> None:
        """Raises EmailTaken if another account already owns ``email``."""


class DirectoryService(IdentityDirectory):
    """HTTP client for the account store's admin API."""

    def __init__(
        self,
        base_url: str,
        service_key: str,
        timeout: float = 5.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url
        self.service_key = service_key
        self.timeout = timeout
        self._client = client

    def _headers(self) -> Dict[str, str]:
        return {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "apikey": self.service_key,
            "Authorization": f"Bearer {self.service_key}",
        }

    def _url(self, path: str) -> str:
        return f"{self.base_url.rstrip('/')}{path}"

    @property
    def client(self) -> httpx.AsyncClient:
        return self._client or get_async_client()

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            resp = await self.client.request(
                method,
                self._url(path),
                headers=self._headers(),
                timeout=self.timeout,
                **kwargs,
            )
        except httpx.RequestError:
            logger.exception("Directory request failed", extra={"path": path})
            raise DirectoryUnavailable()
        return resp

    async def _lookup(self, params: Any) -> Optional[AccountBinding]:
        resp = await self._request("GET", "/accounts", params=params)
        if resp.status_code >= 400:
            logger.error("Directory lookup failed (%s): %s", resp.status_code, resp.text)
            raise DirectoryUnavailable()
        accounts = resp.json().get("accounts", [])
        if not accounts:
            return None
        return AccountBinding.model_validate(accounts[0])

    async def find_account_by_email(self, email: str) -> Optional[AccountBinding]:
        return await self._lookup({"email": email.strip().lower()})

    async def find_account_by_phone_candidates(self, candidates: Sequence[str]) -> Optional[AccountBinding]:
        if not candidates:
            return None
        return await self._lookup([("phone_number", candidate) for candidate in candidates])

    async def find_account_by_messaging_handle(
        self,
        handle: Optional[str],
        username: Optional[str] = None,
    ) -> Optional[AccountBinding]:
        params = []
        if handle:
            params.append(("messaging_handle", handle))
        if username:
            params.append(("messaging_username", username.lstrip("@").lower()))
        if not params:
            return None
        return await self._lookup(params)

    async def create_account(self, account: NewAccount) -> AccountBinding:
        resp = await self._request("POST", "/accounts", json=account.model_dump(exclude_none=True))
        if resp.status_code == 409:
            raise EmailTaken()
        if resp.status_code >= 400:
            logger.error("Directory create_account failed (%s): %s", resp.status_code, resp.text)
            raise DirectoryUnavailable()
        return AccountBinding.model_validate(resp.json())

    async def update_password(self, user_id: str, password: str) -> None:
        resp = await self._request("PATCH", f"/accounts/{user_id}", json={"password": password})
        if resp.status_code >= 400:
            logger.error("Directory update_password failed (%s)", resp.status_code)
            raise DirectoryUnavailable()

    async def update_email(self, user_id: str, email: str) -> None:
        resp = await self._request("PATCH", f"/accounts/{user_id}", json={"email": email})
        if resp.status_code == 409:
            raise EmailTaken()
        if resp.status_code >= 400:
            logger.error("Directory update_email failed (%s): %s", resp.status_code, resp.text)
            raise DirectoryUnavailable()
