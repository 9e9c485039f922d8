from typing import Optional

import httpx

from core.config import settings

_async_client: Optional[httpx.AsyncClient] = None

def _default_timeout() -> httpx.Timeout:
    seconds = settings.dispatch_timeout_seconds
    return httpx.Timeout(seconds, connect=min(seconds, 3.0))

def init_async_client() -> None:
    global _async_client
    if _async_client is None:
        _async_client = httpx.AsyncClient(timeout=_default_timeout())

def get_async_client() -> httpx.AsyncClient:
    if _async_client is None:
        init_async_client()
    return _async_client

async def close_async_client() -> None:
    global _async_client
    if _async_client is not None:
        await _async_client.aclose()
        _async_client = None
