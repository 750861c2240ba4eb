"""Retryable operations performed for one wallet.

:class:`PharosTasks` bundles the concrete operations of a pipeline run:
authenticate, check-in, faucet claim, verify-transfer, wrap, wrap-swap,
random swap and add-liquidity.  Each one goes through
:func:`core.retry.execute`, so only host-resolution failures are retried and
every other failure comes back as a terminal :class:`Outcome`.

Dependencies (clients, session cache, shutdown flag, randomness) are passed
in so tests can substitute them.
"""

import logging
import random
import time
from decimal import ROUND_DOWN, Decimal
from typing import Any, Awaitable, Callable, Dict, List, Optional

from eth_account import Account
from eth_account.messages import encode_defunct
from web3 import Web3

from clients.api import DEFAULT_HEADERS, PharosApiClient
from clients.chain import ChainClient
from clients.contracts import (
    LIQUIDITY_TICK_LOWER,
    LIQUIDITY_TICK_UPPER,
    POOL_FEE,
    POSITION_MANAGER_ADDRESS,
    SWAP_PAIRS,
    TOKEN_DECIMALS,
    TOKENS,
)
from core.config import AccountProfile, BotSettings
from core.errors import ErrorType, InsufficientBalance
from core.logging_setup import log_success
from core.retry import Outcome, execute
from core.session import Session, SessionCache
from core.shutdown import ShutdownCoordinator

logger = logging.getLogger(__name__)


def to_base_units(amount: float, decimals: int) -> int:
    """Convert a human amount to integer base units, truncating at *decimals*."""
    quantized = Decimal(str(amount)).quantize(Decimal(1).scaleb(-decimals), rounding=ROUND_DOWN)
    return int(quantized.scaleb(decimals))


def from_base_units(value: int, decimals: int) -> str:
    return f"{Decimal(value).scaleb(-decimals).normalize():f}"


class PharosTasks:
    """Operation catalog for a single account and egress path.

    Args:
        settings: Global configuration.
        account: Wallet being processed.
        api: Task API client bound to this run's egress path.
        chain: Chain client bound to this run's egress path.
        sessions: Process-wide session cache.
        recipients: Validated verification-transfer recipients.
        shutdown: Shutdown coordinator.
        rng: Random source for amounts, pairs and recipients.
    """

    def __init__(
        self,
        settings: BotSettings,
        account: AccountProfile,
        api: PharosApiClient,
        chain: ChainClient,
        sessions: SessionCache,
        recipients: List[str],
        shutdown: ShutdownCoordinator,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.settings = settings
        self.account = account
        self.api = api
        self.chain = chain
        self.sessions = sessions
        self.recipients = recipients
        self.shutdown = shutdown
        self.rng = rng or random.Random()

    @property
    def address(self) -> str:
        return self.account.address

    async def _retry(self, label: str, operation: Callable[[], Awaitable[Any]]) -> Outcome:
        return await execute(
            operation,
            label=label,
            shutdown=self.shutdown,
            max_retries=self.settings.max_retries,
            retry_delay=self.settings.retry_delay_seconds,
        )

    # ------------------------------------------------------------------
    # Session
    # ------------------------------------------------------------------

    async def connect(self) -> Outcome:
        """Bring up the RPC provider (retried on resolution failures)."""
        return await self._retry("Provider setup", self.chain.connect)

    async def authenticate(self) -> Optional[Session]:
        """Return the cached session, logging in on first use.

        Returns:
            The :class:`Session`, or ``None`` if login failed.  Failed logins
            are never cached.
        """
        cached = self.sessions.get(self.address)
        if cached is not None:
            return cached
        if self.shutdown.requested:
            return None

        async def _login() -> Session:
            signed = Account.sign_message(
                encode_defunct(text=self.settings.login_message), self.account.private_key
            )
            signature = Web3.to_hex(signed.signature)
            logger.info(f"Sending login request for {self.account.short_address}...")
            jwt = await self.api.login(self.address, signature, self.settings.invite_code)
            headers = dict(DEFAULT_HEADERS)
            headers["authorization"] = f"Bearer {jwt}"
            return Session(token=jwt, headers=headers)

        outcome = await self._retry("Login", _login)
        if not outcome.success:
            return None
        log_success(logger, "Login successful")
        return self.sessions.store(self.address, outcome.value)

    @staticmethod
    def _not_authenticated(label: str) -> Outcome:
        logger.error(f"{label}: failed to get login data")
        return Outcome.failed(f"{label}: not authenticated", error_type=ErrorType.BUSINESS, attempts=0)

    # ------------------------------------------------------------------
    # API tasks
    # ------------------------------------------------------------------

    async def check_in(self) -> Outcome:
        """Daily check-in."""
        session = await self.authenticate()
        if session is None:
            return self._not_authenticated("Check-in")
        logger.info("Sending daily check-in request...")
        outcome = await self._retry("Check-in", lambda: self.api.check_in(self.address, session.headers))
        if outcome.success:
            log_success(logger, f"Check-in successful for {self.address}")
        return outcome

    async def claim_faucet(self) -> Outcome:
        """Daily faucet claim."""
        session = await self.authenticate()
        if session is None:
            return self._not_authenticated("Faucet claim")
        logger.info("Sending faucet request...")
        outcome = await self._retry("Faucet claim", lambda: self.api.claim_faucet(self.address, session.headers))
        if outcome.success:
            log_success(logger, f"Faucet claim successful for {self.address}")
        return outcome

    # ------------------------------------------------------------------
    # Chain tasks
    # ------------------------------------------------------------------

    async def transfer(self, index: int) -> Outcome:
        """Send the fixed transfer amount to a random recipient.

        Outcome value is the transaction hash.
        """
        async def _transfer() -> str:
            amount = self.settings.transfer_amount
            to_address = self.rng.choice(self.recipients)
            logger.info(f"Preparing transfer {index + 1}: {amount} {self.settings.currency_symbol} to {to_address}")
            required = Web3.to_wei(Decimal(str(amount)), "ether")
            balance = await self.chain.get_balance()
            if balance < required:
                raise InsufficientBalance(
                    f"Insufficient {self.settings.currency_symbol} balance: "
                    f"{Web3.from_wei(balance, 'ether')} < {amount}"
                )
            tx_hash = await self.chain.send_native(to_address, required)
            log_success(logger, f"Transfer {index + 1} completed: {tx_hash}")
            return tx_hash

        return await self._retry(f"Transfer {index + 1}", _transfer)

    async def verify_transfer(self, index: int) -> Outcome:
        """Transfer, wait briefly, then report the hash for verification."""
        session = await self.authenticate()
        transfer = await self.transfer(index)
        if not transfer.success:
            logger.error("Transfer failed, skipping verification")
            return transfer

        await self.shutdown.sleep(self.rng.uniform(*self.settings.verify_settle_delay))

        if session is None:
            return self._not_authenticated("Verification")

        tx_hash = transfer.value
        logger.info("Sending verification request...")
        outcome = await self._retry(
            "Verification",
            lambda: self.api.verify_task(self.address, self.settings.verify_task_id, tx_hash, session.headers),
        )
        if outcome.success:
            log_success(logger, f"Verification successful for {self.address}")
            outcome.value = tx_hash
        return outcome

    async def wrap(self, amount: float) -> Outcome:
        """Deposit *amount* native currency into WPHRS."""
        async def _wrap() -> Dict[str, Any]:
            symbol = self.settings.currency_symbol
            logger.info(f"Starting to wrap {amount} {symbol} -> WPHRS for {self.address}...")
            balance = await self.chain.get_balance()
            logger.info(f"{symbol} balance: {Web3.from_wei(balance, 'ether')} {symbol}")
            value = Web3.to_wei(Decimal(str(amount)), "ether")
            if balance < value:
                raise InsufficientBalance(
                    f"Insufficient balance! Need {amount} {symbol}, "
                    f"only have {Web3.from_wei(balance, 'ether')} {symbol}"
                )
            result = await self.chain.wrap_native(value)
            if result.get("wrapped") is not None:
                log_success(logger, f"Wrapped {amount} {symbol} successfully!")
            else:
                logger.info("Wrapping successful but event not found")
            return result

        return await self._retry("Wrapping", _wrap)

    async def wrap_swap(self, index: int) -> Outcome:
        """Wrap a random amount in ``wrap_amount_range`` and report it."""
        low, high = self.settings.wrap_amount_range
        amount = round(self.rng.uniform(low, high), 5)
        logger.info(f"Starting swap {index + 1} for {self.address}")
        outcome = await self.wrap(amount)
        if outcome.success:
            log_success(logger, f"Swap {index + 1} successful! Tx Hash: {outcome.value['tx_hash']}")
        return outcome

    def pick_swap(self) -> Dict[str, Any]:
        """Random pair from ``SWAP_PAIRS`` with a random input amount."""
        pair = dict(self.rng.choice(SWAP_PAIRS))
        decimals = TOKEN_DECIMALS[pair["from"]]
        low, high = self.settings.swap_amount_range
        pair["amount_in"] = to_base_units(self.rng.uniform(low, high), decimals)
        return pair

    async def random_swap(self, index: int) -> Outcome:
        """Swap a random amount over a random token pair."""
        async def _swap() -> Dict[str, Any]:
            pair = self.pick_swap()
            decimals = TOKEN_DECIMALS[pair["from"]]
            logger.info(f"Starting swap {index + 1} ({pair['from']} -> {pair['to']}) for wallet: {self.address}")
            logger.info(f"Swap amount: {from_base_units(pair['amount_in'], decimals)} {pair['from']}")
            result = await self.chain.swap_exact_input(pair["from"], pair["to"], pair["amount_in"], POOL_FEE)
            log_success(logger, f"Swap {index + 1} successful! Block: {result.get('block')}")
            return result

        return await self._retry(f"Swap {index + 1}", _swap)

    async def add_liquidity(self, index: int = 0) -> Outcome:
        """Mint a fixed-range WPHRS/USDC position."""
        async def _add() -> Dict[str, Any]:
            logger.info(f"Starting liquidity addition {index} for {self.address}")
            amount_usdc = to_base_units(self.settings.liquidity_usdc_amount, TOKEN_DECIMALS["USDC"])
            amount_wphrs = to_base_units(self.settings.liquidity_wphrs_amount, TOKEN_DECIMALS["WPHRS"])

            usdc_balance = await self.chain.token_balance("USDC")
            if usdc_balance < amount_usdc:
                raise InsufficientBalance(
                    f"Insufficient USDC balance! Required: "
                    f"{from_base_units(amount_usdc, 6)} USDC, "
                    f"Available: {from_base_units(usdc_balance, 6)} USDC"
                )

            logger.info("Approving USDC...")
            await self.chain.approve("USDC", POSITION_MANAGER_ADDRESS, amount_usdc)
            logger.info("Approving WPHRS...")
            await self.chain.approve("WPHRS", POSITION_MANAGER_ADDRESS, amount_wphrs)

            params = {
                "token0": TOKENS["WPHRS"],
                "token1": TOKENS["USDC"],
                "fee": POOL_FEE,
                "tickLower": LIQUIDITY_TICK_LOWER,
                "tickUpper": LIQUIDITY_TICK_UPPER,
                "amount0Desired": amount_wphrs,
                "amount1Desired": amount_usdc,
                "amount0Min": 0,
                "amount1Min": 0,
                "recipient": self.address,
                "deadline": int(time.time()) + 1200,
            }
            logger.info("Sending mint liquidity transaction...")
            result = await self.chain.mint_position(POSITION_MANAGER_ADDRESS, params)
            if result.get("liquidity") is None:
                logger.info("Event not found in receipt logs")
            log_success(logger, f"Completed liquidity addition {index}")
            return result

        return await self._retry("Liquidity addition", _add)
