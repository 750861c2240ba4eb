"""Account pipeline and cycle driver.

This module drives all wallet activity.  Accounts are processed strictly one
after another; for each one the :class:`CycleDriver` picks an egress path,
builds the per-account clients and hands a :class:`PharosTasks` catalog to
an :class:`AccountPipeline`, which runs the fixed step order:

    authenticate -> check-in -> faucet -> verify x5 -> liquidity
    -> wrap-swap -> random-swap

Every step runs under the :class:`FreezeGuard`; a failed, frozen or crashed
step is logged and the pipeline moves on.  The shutdown flag is checked
before every step and every account, so an interrupt stops new work at the
next boundary.

Classes:
    PipelineState: Progress marker for one account's pipeline run.
    StepRecord: History entry for one attempted step.
    AccountPipeline: Runs the step sequence for one account.
    CycleDriver: Loops over all accounts forever (or for N cycles).
"""

import asyncio
import logging
import random
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, List, Optional, Tuple

from clients.api import PharosApiClient
from clients.chain import ChainClient
from core.config import AccountProfile, BotSettings
from core.guard import FreezeGuard
from core.logging_setup import log_success
from core.monitoring import CycleLoader, CycleMonitor
from core.proxy_manager import ProxyManager
from core.retry import Outcome
from core.session import SessionCache
from core.shutdown import ShutdownCoordinator
from tasks.catalog import PharosTasks

logger = logging.getLogger(__name__)

ClientFactory = Callable[[AccountProfile, Optional[str]], Tuple[PharosApiClient, ChainClient]]


class PipelineState(Enum):
    INIT = "init"
    AUTHENTICATED = "authenticated"
    CHECKED_IN = "checked_in"
    FAUCET_CLAIMED = "faucet_claimed"
    VERIFYING = "verifying"
    LIQUIDITY_ADDED = "liquidity_added"
    SWAPPED = "swapped"
    WRAPPED = "wrapped"
    DONE = "done"


@dataclass
class StepRecord:
    """One attempted pipeline step.

    ``status`` is one of ``success``, ``failure``, ``frozen`` or ``error``
    (the step raised instead of returning an outcome).
    """

    name: str
    state: PipelineState
    status: str
    detail: Optional[str] = None
    elapsed: float = 0.0


class AccountPipeline:
    """Fixed-order step sequence for a single account.

    Authentication is a soft precondition: when it fails, each dependent
    step fails fast on its own and the pipeline still advances.

    Args:
        tasks: Operation catalog bound to the account and its egress path.
        guard: Freeze guard shared by the driver.
        settings: Delay windows and verify iteration count.
        shutdown: Checked before every step.
        monitor: Optional per-cycle statistics collector.
        rng: Random source for the inter-step delays.
    """

    def __init__(
        self,
        tasks: PharosTasks,
        guard: FreezeGuard,
        settings: BotSettings,
        shutdown: ShutdownCoordinator,
        monitor: Optional[CycleMonitor] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.tasks = tasks
        self.guard = guard
        self.settings = settings
        self.shutdown = shutdown
        self.monitor = monitor
        self.rng = rng or random.Random()
        self.state = PipelineState.INIT
        self.history: List[StepRecord] = []

    @property
    def address(self) -> str:
        return self.tasks.address

    async def _step(
        self,
        name: str,
        state: PipelineState,
        operation: Callable[..., Awaitable[Any]],
        *args: Any,
    ) -> Optional[StepRecord]:
        """Run one guarded step; ``None`` means shutdown stopped the pipeline."""
        if self.shutdown.requested:
            logger.info(f"Shutdown requested, skipping remaining steps for {self.address}")
            return None

        started = time.monotonic()
        freezes_before = self.guard.freezes
        detail = None
        try:
            result = await self.guard.guard(name, operation, *args)
        except Exception as e:
            logger.error(f"Error in {name}: {e}")
            status, detail = "error", str(e)
        else:
            if self.guard.freezes > freezes_before:
                status = "frozen"
            elif isinstance(result, Outcome):
                status = "success" if result.success else "failure"
                detail = result.error
            else:
                status = "success" if result is not None else "failure"

        record = StepRecord(name, state, status, detail, time.monotonic() - started)
        self.history.append(record)
        self.state = state
        if self.monitor is not None:
            self.monitor.record(self.address, name, status, record.elapsed)
        return record

    async def _pause(self, window: Tuple[float, float]) -> bool:
        return await self.shutdown.sleep(self.rng.uniform(*window))

    async def run(self) -> None:
        """Run every step in order unless shutdown intervenes."""
        head = [
            ("Authenticate", PipelineState.AUTHENTICATED, self.tasks.authenticate),
            ("Check-in", PipelineState.CHECKED_IN, self.tasks.check_in),
            ("Faucet claim", PipelineState.FAUCET_CLAIMED, self.tasks.claim_faucet),
        ]
        for name, state, operation in head:
            if await self._step(name, state, operation) is None:
                return

        for i in range(self.settings.verify_iterations):
            if await self._step(f"Verify {i + 1}", PipelineState.VERIFYING, self.tasks.verify_transfer, i) is None:
                return
            await self._pause(self.settings.verify_delay)

        tail = [
            ("Liquidity", PipelineState.LIQUIDITY_ADDED, self.tasks.add_liquidity, self.settings.liquidity_delay),
            ("Wrap swap", PipelineState.SWAPPED, self.tasks.wrap_swap, self.settings.wrap_swap_delay),
            ("Random swap", PipelineState.WRAPPED, self.tasks.random_swap, self.settings.random_swap_delay),
        ]
        for name, state, operation, window in tail:
            if await self._step(name, state, operation, 0) is None:
                return
            await self._pause(window)

        if not self.shutdown.requested:
            self.state = PipelineState.DONE


class CycleDriver:
    """Supervisory loop over all configured accounts.

    Any exception escaping one account's run is logged with its traceback
    and the driver continues with the next account.

    Args:
        settings: Global configuration.
        accounts: Wallets in processing order; fixed for the process lifetime.
        recipients: Validated verification-transfer recipients.
        sessions: Process-wide session cache.
        shutdown: Shutdown coordinator.
        proxy_manager: Egress selector; ``None`` means direct egress.
        client_factory: Builds ``(api, chain)`` clients for an account and
            proxy.  Defaults to the real HTTP / RPC clients.
        monitor: Per-cycle statistics collector.
        loader: Cycle-boundary spinner.
        rng: Random source shared with the catalog and pipelines.
    """

    def __init__(
        self,
        settings: BotSettings,
        accounts: List[AccountProfile],
        recipients: List[str],
        sessions: SessionCache,
        shutdown: ShutdownCoordinator,
        proxy_manager: Optional[ProxyManager] = None,
        client_factory: Optional[ClientFactory] = None,
        monitor: Optional[CycleMonitor] = None,
        loader: Optional[CycleLoader] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.settings = settings
        self.accounts = list(accounts)
        self.recipients = recipients
        self.sessions = sessions
        self.shutdown = shutdown
        self.proxy_manager = proxy_manager
        self.client_factory = client_factory or self._build_clients
        self.monitor = monitor or CycleMonitor()
        self.loader = loader or CycleLoader(shutdown, console=self.monitor.console)
        self.rng = rng or random.Random()
        self.guard = FreezeGuard(settings.freeze_timeout_seconds, shutdown)
        self.cycles_completed = 0

    def _build_clients(self, account: AccountProfile, proxy: Optional[str]) -> Tuple[PharosApiClient, ChainClient]:
        api = PharosApiClient(
            self.settings.api_base_url,
            proxy=proxy,
            timeout=self.settings.http_timeout_seconds,
        )
        chain = ChainClient(
            self.settings.rpc_url,
            self.settings.chain_id,
            account.private_key,
            proxy=proxy,
            timeout=self.settings.rpc_timeout_seconds,
            receipt_timeout=self.settings.receipt_timeout_seconds,
        )
        return api, chain

    async def run_account(self, account: AccountProfile) -> Optional[AccountPipeline]:
        """Process one account; returns the finished pipeline for inspection."""
        proxy = self.proxy_manager.select() if self.proxy_manager else None
        api, chain = self.client_factory(account, proxy)
        try:
            tasks = PharosTasks(
                self.settings,
                account,
                api,
                chain,
                self.sessions,
                self.recipients,
                self.shutdown,
                rng=self.rng,
            )
            logger.info(f"Processing wallet {account.index}/{len(self.accounts)}: {account.address}")
            connected = await tasks.connect()
            if not connected:
                logger.error(f"Provider setup failed for {account.short_address}, skipping wallet")
                return None

            pipeline = AccountPipeline(
                tasks, self.guard, self.settings, self.shutdown, monitor=self.monitor, rng=self.rng
            )
            await pipeline.run()
            return pipeline
        finally:
            await api.close()
            await chain.close()

    async def run_cycle(self) -> bool:
        """One pass over every account.

        Returns:
            ``True`` if every account was visited, ``False`` on shutdown.
        """
        self.monitor.start_cycle()
        for account in self.accounts:
            if self.shutdown.requested:
                return False
            try:
                await self.run_account(account)
            except Exception:
                logger.exception(f"Unexpected error while processing {account.short_address}")

        if self.shutdown.requested:
            return False
        self.cycles_completed += 1
        log_success(logger, "All actions completed for all wallets!")
        self.monitor.print_summary()
        return True

    async def _heartbeat(self) -> None:
        while await self.shutdown.sleep(self.settings.heartbeat_interval_seconds):
            logger.info("Health check: Script is running")

    async def run(self, max_cycles: Optional[int] = None) -> None:
        """Loop over all accounts until shutdown (or *max_cycles* passes)."""
        logger.info(f"Cycle driver started with {len(self.accounts)} wallet(s)")
        heartbeat = asyncio.create_task(self._heartbeat())
        try:
            while not self.shutdown.requested:
                if not await self.run_cycle():
                    break
                if max_cycles is not None and self.cycles_completed >= max_cycles:
                    break
                if not await self.loader.run(self.settings.cycle_loader_seconds):
                    break
                await self.shutdown.sleep(self.settings.cycle_sleep_seconds)
        finally:
            heartbeat.cancel()
            try:
                await heartbeat
            except asyncio.CancelledError:
                pass
        logger.info("Cycle driver stopped.")
