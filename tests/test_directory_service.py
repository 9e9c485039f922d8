import json

import httpx
import pytest

from core.errors import DirectoryUnavailable, EmailTaken
from schemas.account import NewAccount
from services.directory_service import DirectoryService

ACCOUNT = {
    "user_id": "u-1",
    "email": "ali@mail.uz",
    "phone_number": "+998901112233",
    "messaging_handle": "5001",
    "messaging_username": "ali_v",
}


def _directory(handler, calls=None):
    def recording(request):
        if calls is not None:
            calls.append(request)
        return handler(request)

    client = httpx.AsyncClient(transport=httpx.MockTransport(recording))
    return DirectoryService("https://directory.test/admin/", "service-key", client=client)


@pytest.mark.asyncio
async def test_lookup_by_email_sends_service_key():
    calls = []
    directory = _directory(lambda request: httpx.Response(200, json={"accounts": [ACCOUNT]}), calls)

    account = await directory.find_account_by_email(" Ali@Mail.UZ ")

    assert account.user_id == "u-1"
    request = calls[0]
    assert request.url.path == "/admin/accounts"
    assert request.url.params["email"] == "ali@mail.uz"
    assert request.headers["apikey"] == "service-key"
    assert request.headers["Authorization"] == "Bearer service-key"


@pytest.mark.asyncio
async def test_lookup_by_phone_sends_every_candidate():
    calls = []
    directory = _directory(lambda request: httpx.Response(200, json={"accounts": []}), calls)

    account = await directory.find_account_by_phone_candidates(["+998901112233", "998901112233"])

    assert account is None
    assert calls[0].url.params.get_list("phone_number") == ["+998901112233", "998901112233"]


@pytest.mark.asyncio
async def test_lookup_by_handle_normalizes_username():
    calls = []
    directory = _directory(lambda request: httpx.Response(200, json={"accounts": [ACCOUNT]}), calls)

    account = await directory.find_account_by_messaging_handle("5001", "@Ali_V")

    assert account.messaging_handle == "5001"
    assert calls[0].url.params["messaging_handle"] == "5001"
    assert calls[0].url.params["messaging_username"] == "ali_v"


@pytest.mark.asyncio
async def test_lookup_without_any_key_skips_request():
    calls = []
    directory = _directory(lambda request: httpx.Response(500), calls)

    assert await directory.find_account_by_messaging_handle(None, None) is None
    assert await directory.find_account_by_phone_candidates([]) is None
    assert calls == []


@pytest.mark.asyncio
async def test_create_account_conflict_maps_to_email_taken():
    directory = _directory(lambda request: httpx.Response(409, json={"error": "duplicate"}))

    with pytest.raises(EmailTaken):
        await directory.create_account(NewAccount(email="ali@mail.uz", password="secret1"))


@pytest.mark.asyncio
async def test_create_account_omits_empty_fields():
    calls = []
    directory = _directory(lambda request: httpx.Response(201, json=ACCOUNT), calls)

    account = await directory.create_account(
        NewAccount(email="ali@mail.uz", password="secret1", messaging_handle="5001")
    )

    assert account.user_id == "u-1"
    body = json.loads(calls[0].content)
    assert body == {"email": "ali@mail.uz", "password": "secret1", "messaging_handle": "5001"}


@pytest.mark.asyncio
async def test_update_email_conflict_and_password_patch():
    calls = []

    def handler(request):
        body = json.loads(request.content)
        if "email" in body:
            return httpx.Response(409)
        return httpx.Response(204)

    directory = _directory(handler, calls)

    await directory.update_password("u-1", "newpass1")
    with pytest.raises(EmailTaken):
        await directory.update_email("u-1", "taken@mail.uz")
    assert calls[0].method == "PATCH"
    assert calls[0].url.path == "/admin/accounts/u-1"


@pytest.mark.asyncio
async def test_server_error_and_network_error_are_unavailable():
    directory = _directory(lambda request: httpx.Response(503))
    with pytest.raises(DirectoryUnavailable):
        await directory.find_account_by_email("ali@mail.uz")

    def broken(request):
        raise httpx.ConnectError("refused", request=request)

    directory = _directory(broken)
    with pytest.raises(DirectoryUnavailable):
        await directory.update_password("u-1", "newpass1")
