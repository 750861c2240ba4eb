"""Egress path selection.

Loads the optional ``proxies.txt`` list and picks one entry per account
per cycle.  The selected proxy is fixed for that account's whole pipeline
run; it is never rotated mid-pipeline.

Key class:
    ProxyManager: Holds the static proxy list and performs selection.
"""

import logging
import random
from dataclasses import dataclass
from typing import List, Optional
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

# Schemes aiohttp_socks.ProxyConnector.from_url accepts
SUPPORTED_SCHEMES = ("http", "socks4", "socks5")


@dataclass
class Proxy:
    """Represents a single proxy endpoint.

    Attributes:
        ip: Proxy hostname or IP address.
        port: Proxy port number.
        username: Authentication username (may be empty).
        password: Authentication password (may be empty).
        protocol: URL scheme -- one of ``SUPPORTED_SCHEMES``.
    """

    ip: str
    port: int
    username: str = ""
    password: str = ""
    protocol: str = "http"

    @classmethod
    def parse(cls, raw: str) -> "Proxy":
        """Parse ``[scheme://][user:pass@]host:port``.

        Raises:
            ValueError: If host or port is missing or the scheme is not in
                ``SUPPORTED_SCHEMES``.
        """
        text = raw.strip()
        if "://" not in text:
            text = f"http://{text}"
        parsed = urlparse(text)
        if not parsed.hostname or not parsed.port:
            raise ValueError(f"Invalid proxy line: {raw!r}")
        if parsed.scheme not in SUPPORTED_SCHEMES:
            raise ValueError(f"Unsupported proxy scheme {parsed.scheme!r}: {raw!r}")
        return cls(
            ip=parsed.hostname,
            port=parsed.port,
            username=parsed.username or "",
            password=parsed.password or "",
            protocol=parsed.scheme,
        )

    def to_string(self) -> str:
        """Format the proxy as a URL string for aiohttp.

        Returns:
            ``protocol://user:pass@ip:port`` (with credentials)
            or ``protocol://ip:port`` (without).
        """
        if self.username:
            return (
                f"{self.protocol}://{self.username}:"
                f"{self.password}@{self.ip}:{self.port}"
            )
        return f"{self.protocol}://{self.ip}:{self.port}"

    def masked(self) -> str:
        """URL form with the password hidden, for logs."""
        if self.username:
            return f"{self.protocol}://{self.username}:***@{self.ip}:{self.port}"
        return self.to_string()


def select_egress(paths: List[str], rng: Optional[random.Random] = None) -> Optional[str]:
    """Pick one egress path uniformly at random.

    Returns:
        ``None`` when *paths* is empty (direct connection), else one entry.
    """
    if not paths:
        return None
    return (rng or random).choice(paths)


class ProxyManager:
    """Static proxy list with per-account random selection.

    Args:
        proxies: Proxy URIs; malformed entries are dropped with a warning.
        rng: Optional random source (tests pass a seeded one).
    """

    def __init__(self, proxies: Optional[List[str]] = None, rng: Optional[random.Random] = None) -> None:
        self.rng = rng or random.Random()
        self.proxies: List[Proxy] = []
        for line in proxies or []:
            try:
                self.proxies.append(Proxy.parse(line))
            except ValueError as e:
                logger.warning(f"Skipping proxy: {e}")

    @classmethod
    def from_file(cls, path: str, rng: Optional[random.Random] = None) -> "ProxyManager":
        """Load one proxy per line from *path*; a missing file means none."""
        try:
            with open(path, "r", encoding="utf-8") as fh:
                lines = [line.strip() for line in fh if line.strip()]
        except FileNotFoundError:
            logger.info("No proxy file found, continuing without proxy")
            lines = []
        manager = cls(lines, rng=rng)
        if manager.proxies:
            logger.info(f"Loaded {len(manager.proxies)} proxies from {path}")
        return manager

    def select(self) -> Optional[str]:
        """Egress path for the next account, or ``None`` for direct."""
        proxy_url = select_egress([p.to_string() for p in self.proxies], self.rng)
        if proxy_url:
            logger.info(f"Using proxy: {Proxy.parse(proxy_url).masked()}")
        else:
            logger.info("Running without proxy")
        return proxy_url
