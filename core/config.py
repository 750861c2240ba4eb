"""Application configuration for the Pharos task runner.

Central configuration module powered by Pydantic v2.  Settings are loaded
from environment variables (with ``.env`` file support); the recipient list
and the proxy list live in plain files next to the process.

Key exports:
    BotSettings: Root settings model (instantiate once in ``main.py``).
    AccountProfile: One wallet derived from a private key.
    load_accounts / load_recipients: Startup loaders.
    BASE_DIR / LOGS_DIR: Canonical project paths.
"""

# pylint: disable=no-member

import json
import logging
from pathlib import Path
from typing import List, Tuple

from eth_account import Account
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from web3 import Web3

from core.errors import ConfigError

# ---------------------------------------------------------------------------
# Base Paths
# ---------------------------------------------------------------------------
BASE_DIR: Path = Path(__file__).parent.parent
"""Project root directory (parent of ``core/``)."""

LOGS_DIR: Path = BASE_DIR / "logs"
"""Directory for log output files."""

RECIPIENT_COUNT = 65

logger: logging.Logger = logging.getLogger(__name__)


class AccountProfile(BaseModel):
    """A wallet processed by the account pipeline.

    Attributes:
        index: Position in the ``PRIVATE_KEYS`` list (1-based, for logs).
        private_key: Hex private key.  Excluded from ``repr``.
        address: Checksum address derived from *private_key*.
    """

    index: int
    private_key: str = Field(repr=False)
    address: str

    @classmethod
    def from_private_key(cls, private_key: str, index: int = 1) -> "AccountProfile":
        """Derive the profile for *private_key*.

        Raises:
            ConfigError: If the key is not a valid secp256k1 private key.
        """
        key = private_key.strip()
        if not key.startswith("0x"):
            key = "0x" + key
        try:
            address = Account.from_key(key).address
        except Exception as exc:
            raise ConfigError(f"Invalid private key at position {index}: {exc}") from exc
        return cls(index=index, private_key=key, address=address)

    @property
    def short_address(self) -> str:
        return f"{self.address[:6]}...{self.address[-4:]}"


class BotSettings(BaseSettings):
    """Root configuration model.

    All fields can be set via environment variables or a ``.env`` file.

    Section overview:
        * **Core** -- credentials, log level, input files.
        * **Network** -- RPC endpoint, chain id, API base URL, timeouts.
        * **Retry / freeze** -- retry budget and freeze timeout.
        * **Pacing** -- inter-step delay windows and cycle timing.
        * **Amounts** -- transfer, swap, wrap and liquidity sizes.
    """

    # Core
    # Comma separated; parsed by load_accounts()
    private_keys: str = ""
    log_level: str = "INFO"
    recipients_file: str = "recipients.json"
    proxies_file: str = "proxies.txt"

    # Network
    rpc_url: str = "https://testnet.dplabs-internal.com"
    chain_id: int = 688688
    currency_symbol: str = "PHRS"
    api_base_url: str = "https://api.pharosnetwork.xyz"
    invite_code: str = "S6NGMzXSCDBxhnwo"
    login_message: str = "pharos"
    verify_task_id: int = 103
    http_timeout_seconds: float = 10.0
    rpc_timeout_seconds: float = 30.0
    # Receipt wait per transaction; the freeze guard still caps the step
    receipt_timeout_seconds: float = 600.0

    # Retry / freeze
    max_retries: int = 3
    retry_delay_seconds: float = 5.0
    freeze_timeout_seconds: float = 3600.0
    shutdown_grace_seconds: float = 5.0

    # Pacing: (low, high) windows in seconds, drawn uniformly
    verify_iterations: int = 5
    verify_delay: Tuple[float, float] = (1.0, 3.0)
    verify_settle_delay: Tuple[float, float] = (5.0, 6.0)
    liquidity_delay: Tuple[float, float] = (20.0, 35.0)
    wrap_swap_delay: Tuple[float, float] = (5.0, 20.0)
    random_swap_delay: Tuple[float, float] = (10.0, 30.0)
    cycle_loader_seconds: float = 180.0
    cycle_sleep_seconds: float = 60.0
    heartbeat_interval_seconds: float = 300.0

    # Amounts
    transfer_amount: float = 0.00001
    swap_amount_range: Tuple[float, float] = (0.0001, 0.001)
    wrap_amount_range: Tuple[float, float] = (0.001, 0.005)
    liquidity_usdc_amount: float = 2.0
    liquidity_wphrs_amount: float = 0.001

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    def get_private_keys(self) -> List[str]:
        """Split ``PRIVATE_KEYS`` on commas, dropping empty entries."""
        return [pk.strip() for pk in self.private_keys.split(",") if pk.strip()]


def load_accounts(settings: BotSettings) -> List[AccountProfile]:
    """Build account profiles from ``settings.private_keys``.

    Raises:
        ConfigError: If no key is configured or a key is malformed.
    """
    keys = settings.get_private_keys()
    if not keys:
        raise ConfigError("No private keys found in PRIVATE_KEYS")
    return [
        AccountProfile.from_private_key(key, index=i)
        for i, key in enumerate(keys, start=1)
    ]


def load_recipients(path: str, expected_count: int = RECIPIENT_COUNT) -> List[str]:
    """Load and validate the verification-transfer recipient list.

    The file must hold a JSON array of exactly *expected_count* distinct,
    syntactically valid addresses.  Order is preserved.

    Raises:
        ConfigError: On a missing file, bad JSON, wrong count, an invalid
            address or a duplicate.
    """
    try:
        with open(path, "r", encoding="utf-8") as fh:
            addresses = json.load(fh)
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigError(f"Failed to read {path}: {exc}") from exc

    if not isinstance(addresses, list) or len(addresses) != expected_count:
        raise ConfigError(f"Recipients file must contain exactly {expected_count} addresses")

    seen = set()
    for addr in addresses:
        if not isinstance(addr, str) or not Web3.is_address(addr):
            raise ConfigError(f"Invalid address found in {path}: {addr}")
        key = addr.lower()
        if key in seen:
            raise ConfigError(f"Duplicate address found in {path}: {addr}")
        seen.add(key)
    return addresses
