"""HTTP client for the Pharos task API.

Every endpoint answers with the envelope ``{"code": int, "data": ..., "msg":
str}``; ``code == 0`` means success.  Non-zero codes raise
:class:`BusinessRejection`, host resolution failures raise
:class:`ConnectivityError`; nothing aiohttp-specific escapes this module.
"""

import logging
from typing import Any, Dict, Optional

import aiohttp
from aiohttp_socks import ProxyConnector

from core.errors import BusinessRejection, translate_transport_error

logger = logging.getLogger(__name__)

DEFAULT_HEADERS: Dict[str, str] = {
    "accept": "application/json, text/plain, */*",
    "accept-language": "en-US,en;q=0.8",
    "authorization": "Bearer null",
    "Referer": "https://testnet.pharosnetwork.xyz/",
    "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
                  "AppleWebKit/537.36 (KHTML, like Gecko) "
                  "Chrome/136.0.0.0 Safari/537.36",
}


class PharosApiClient:
    """Thin async wrapper over the task API.

    One instance per account pipeline run; the egress proxy is bound at
    construction; call :meth:`close` when the run ends.

    Args:
        base_url: API root, e.g. ``https://api.pharosnetwork.xyz``.
        proxy: Optional proxy URI (http or socks).
        timeout: Total per-request timeout in seconds.
    """

    def __init__(self, base_url: str, proxy: Optional[str] = None, timeout: float = 10.0) -> None:
        self.base_url = base_url.rstrip("/")
        self.proxy = proxy
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self._session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            connector = ProxyConnector.from_url(self.proxy) if self.proxy else None
            self._session = aiohttp.ClientSession(connector=connector, timeout=self.timeout)
        return self._session

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()

    async def _post(
        self,
        path: str,
        params: Dict[str, Any],
        headers: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        session = await self._get_session()
        try:
            async with session.post(
                f"{self.base_url}{path}",
                params=params,
                headers=headers or DEFAULT_HEADERS,
            ) as resp:
                payload = await resp.json(content_type=None)
        except aiohttp.ClientError as e:
            translated = translate_transport_error(e)
            if translated is e:
                raise
            raise translated from e

        if not isinstance(payload, dict):
            raise BusinessRejection(f"Unexpected response from {path}: {payload!r}")
        return payload

    @staticmethod
    def _expect_ok(envelope: Dict[str, Any], action: str) -> Dict[str, Any]:
        code = envelope.get("code")
        if code != 0:
            raise BusinessRejection(
                f"{action} failed: {envelope.get('msg') or 'Unknown error'}",
                code=code,
            )
        return envelope

    async def login(self, address: str, signature: str, invite_code: str) -> str:
        """Exchange a signed message for a JWT.

        Raises:
            BusinessRejection: Non-zero code or no token in the response.
        """
        envelope = self._expect_ok(
            await self._post(
                "/user/login",
                {"address": address, "signature": signature, "invite_code": invite_code},
            ),
            "Login",
        )
        data = envelope.get("data") or {}
        jwt = data.get("jwt") if isinstance(data, dict) else None
        if not jwt:
            raise BusinessRejection("Login failed: no token in response", code=envelope.get("code"))
        return jwt

    async def check_in(self, address: str, headers: Dict[str, str]) -> Dict[str, Any]:
        """Daily sign-in."""
        return self._expect_ok(
            await self._post("/sign/in", {"address": address}, headers), "Check-in"
        )

    async def claim_faucet(self, address: str, headers: Dict[str, str]) -> Dict[str, Any]:
        """Daily faucet claim."""
        return self._expect_ok(
            await self._post("/faucet/daily", {"address": address}, headers), "Faucet claim"
        )

    async def verify_task(
        self,
        address: str,
        task_id: int,
        tx_hash: str,
        headers: Dict[str, str],
    ) -> Dict[str, Any]:
        """Report an on-chain transaction for task verification."""
        return self._expect_ok(
            await self._post(
                "/task/verify",
                {"address": address, "task_id": task_id, "tx_hash": tx_hash},
                headers,
            ),
            "Verification",
        )
