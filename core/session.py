"""Authentication session cache.

One :class:`Session` per wallet address, created by the first successful
login and reused for the rest of the process lifetime.  The cache is only
written by the authenticate operation; accounts run sequentially so no
locking is needed.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Optional

logger = logging.getLogger(__name__)


@dataclass
class Session:
    """Cached authentication material for one address.

    Attributes:
        token: JWT returned by the login endpoint.
        headers: Request headers including ``authorization: Bearer <token>``.
    """

    token: str
    headers: Dict[str, str] = field(default_factory=dict)


class SessionCache:
    """Address-keyed session store (case-insensitive on the address)."""

    def __init__(self) -> None:
        self._sessions: Dict[str, Session] = {}

    @staticmethod
    def _key(address: str) -> str:
        return address.lower()

    def get(self, address: str) -> Optional[Session]:
        return self._sessions.get(self._key(address))

    def store(self, address: str, session: Session) -> Session:
        """Cache *session* for *address*; an empty token is refused."""
        if not session.token:
            raise ValueError("Refusing to cache a session without a token")
        self._sessions[self._key(address)] = session
        logger.debug(f"Session cached for {address}")
        return session

    def __contains__(self, address: object) -> bool:
        return isinstance(address, str) and self._key(address) in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

