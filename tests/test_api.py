"""
Tests for the task API client.
"""
import socket

import aiohttp
import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from clients.api import DEFAULT_HEADERS, PharosApiClient
from core.errors import BusinessRejection, ConnectivityError

ADDRESS = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"


def mock_session(payload=None, error=None):
    session = MagicMock()
    if error is not None:
        session.post.side_effect = error
    else:
        resp = MagicMock()
        resp.json = AsyncMock(return_value=payload)
        session.post.return_value.__aenter__.return_value = resp
    return session


@pytest.fixture
def client():
    return PharosApiClient("https://api.pharosnetwork.xyz/")


class TestPost:

    @pytest.mark.asyncio
    async def test_posts_query_params(self, client):
        session = mock_session({"code": 0, "data": {}})
        with patch.object(client, "_get_session", AsyncMock(return_value=session)):
            payload = await client._post("/sign/in", {"address": ADDRESS})

        assert payload == {"code": 0, "data": {}}
        url = session.post.call_args.args[0]
        assert url == "https://api.pharosnetwork.xyz/sign/in"
        assert session.post.call_args.kwargs["params"] == {"address": ADDRESS}
        assert session.post.call_args.kwargs["headers"] == DEFAULT_HEADERS

    @pytest.mark.asyncio
    async def test_resolution_failure_translated(self, client):
        error = aiohttp.ClientConnectorError(MagicMock(), socket.gaierror(-2, "Name or service not known"))
        with patch.object(client, "_get_session", AsyncMock(return_value=mock_session(error=error))):
            with pytest.raises(ConnectivityError):
                await client._post("/sign/in", {"address": ADDRESS})

    @pytest.mark.asyncio
    async def test_other_client_errors_propagate(self, client):
        error = aiohttp.ClientPayloadError("truncated")
        with patch.object(client, "_get_session", AsyncMock(return_value=mock_session(error=error))):
            with pytest.raises(aiohttp.ClientPayloadError):
                await client._post("/sign/in", {"address": ADDRESS})

    @pytest.mark.asyncio
    async def test_non_envelope_is_rejection(self, client):
        with patch.object(client, "_get_session", AsyncMock(return_value=mock_session(["nope"]))):
            with pytest.raises(BusinessRejection):
                await client._post("/sign/in", {"address": ADDRESS})


class TestEndpoints:

    @pytest.mark.asyncio
    async def test_login_returns_jwt(self, client):
        client._post = AsyncMock(return_value={"code": 0, "data": {"jwt": "token"}, "msg": "ok"})
        assert await client.login(ADDRESS, "0xsig", "INVITE") == "token"
        path, params = client._post.await_args.args
        assert path == "/user/login"
        assert params == {"address": ADDRESS, "signature": "0xsig", "invite_code": "INVITE"}

    @pytest.mark.asyncio
    async def test_login_without_jwt(self, client):
        client._post = AsyncMock(return_value={"code": 0, "data": {}})
        with pytest.raises(BusinessRejection, match="no token"):
            await client.login(ADDRESS, "0xsig", "INVITE")

    @pytest.mark.asyncio
    async def test_non_zero_code_rejected(self, client):
        client._post = AsyncMock(return_value={"code": 1, "msg": "already signed in"})
        with pytest.raises(BusinessRejection) as exc_info:
            await client.check_in(ADDRESS, {"authorization": "Bearer t"})
        assert exc_info.value.code == 1
        assert "already signed in" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_faucet_path(self, client):
        client._post = AsyncMock(return_value={"code": 0})
        await client.claim_faucet(ADDRESS, {"authorization": "Bearer t"})
        assert client._post.await_args.args[0] == "/faucet/daily"

    @pytest.mark.asyncio
    async def test_verify_params(self, client):
        client._post = AsyncMock(return_value={"code": 0})
        headers = {"authorization": "Bearer t"}
        await client.verify_task(ADDRESS, 103, "0xhash", headers)
        path, params, sent_headers = client._post.await_args.args
        assert path == "/task/verify"
        assert params == {"address": ADDRESS, "task_id": 103, "tx_hash": "0xhash"}
        assert sent_headers is headers
