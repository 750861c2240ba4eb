"""
Tests for the account pipeline and the cycle driver.
"""
import asyncio
import io

import pytest
from unittest.mock import AsyncMock, MagicMock
from rich.console import Console
from web3 import Web3

from core.config import AccountProfile, BotSettings
from core.guard import FreezeGuard
from core.monitoring import CycleMonitor
from core.orchestrator import AccountPipeline, CycleDriver, PipelineState
from core.retry import Outcome
from core.session import SessionCache
from core.shutdown import ShutdownCoordinator

KEY_1 = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
KEY_2 = "0x59c6995e998f97a5a0044966f0945389dc9e86dae88c7a8412f4603b6b78690d"
RECIPIENTS = [f"0x{i:040x}" for i in range(1, 66)]

EXPECTED_ORDER = [
    "authenticate", "check_in", "claim_faucet",
    "verify_transfer", "verify_transfer", "verify_transfer", "verify_transfer", "verify_transfer",
    "add_liquidity", "wrap_swap", "random_swap",
]


def fast_settings(**overrides):
    values = dict(
        private_keys=f"{KEY_1},{KEY_2}",
        retry_delay_seconds=0,
        verify_delay=(0, 0),
        verify_settle_delay=(0, 0),
        liquidity_delay=(0, 0),
        wrap_swap_delay=(0, 0),
        random_swap_delay=(0, 0),
        cycle_loader_seconds=0,
        cycle_sleep_seconds=0,
    )
    values.update(overrides)
    return BotSettings(**values)


def quiet_monitor():
    return CycleMonitor(console=Console(file=io.StringIO()))


class RecordingTasks:
    """Stand-in catalog that records which operations were attempted."""

    address = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"

    def __init__(self, fail=()):
        self.calls = []
        self.fail = set(fail)

    def _op(name):
        async def op(self, *args):
            self.calls.append(name)
            if name in self.fail:
                raise RuntimeError(f"{name} exploded")
            return Outcome.ok(name)
        return op

    authenticate = _op("authenticate")
    check_in = _op("check_in")
    claim_faucet = _op("claim_faucet")
    verify_transfer = _op("verify_transfer")
    add_liquidity = _op("add_liquidity")
    wrap_swap = _op("wrap_swap")
    random_swap = _op("random_swap")


@pytest.fixture
def shutdown():
    return ShutdownCoordinator(exit_func=MagicMock())


class TestAccountPipeline:
    """Step ordering, failure isolation and shutdown handling."""

    @pytest.mark.asyncio
    async def test_step_order(self, shutdown):
        """Operations are attempted in the fixed pipeline order."""
        tasks = RecordingTasks()
        pipeline = AccountPipeline(tasks, FreezeGuard(1.0, shutdown), fast_settings(), shutdown)

        await pipeline.run()

        assert tasks.calls == EXPECTED_ORDER
        assert pipeline.state is PipelineState.DONE
        assert all(record.status == "success" for record in pipeline.history)

    @pytest.mark.asyncio
    async def test_failures_do_not_stop_pipeline(self, shutdown):
        """Every verify iteration runs even when each one raises."""
        tasks = RecordingTasks(fail={"authenticate", "verify_transfer", "add_liquidity"})
        pipeline = AccountPipeline(tasks, FreezeGuard(1.0, shutdown), fast_settings(), shutdown)

        await pipeline.run()

        assert tasks.calls == EXPECTED_ORDER
        statuses = [record.status for record in pipeline.history]
        assert statuses.count("error") == 7
        assert pipeline.state is PipelineState.DONE

    @pytest.mark.asyncio
    async def test_failed_outcome_recorded(self, shutdown):
        tasks = RecordingTasks()
        tasks.check_in = AsyncMock(return_value=Outcome.failed("already checked in"))
        pipeline = AccountPipeline(tasks, FreezeGuard(1.0, shutdown), fast_settings(), shutdown)

        await pipeline.run()

        check_in = pipeline.history[1]
        assert check_in.name == "Check-in"
        assert check_in.status == "failure"
        assert check_in.detail == "already checked in"

    @pytest.mark.asyncio
    async def test_frozen_step_continues(self, shutdown):
        """A hung verify is abandoned and the next step still runs."""
        tasks = RecordingTasks()
        calls = {"n": 0}

        async def verify(index):
            tasks.calls.append("verify_transfer")
            calls["n"] += 1
            if calls["n"] == 2:
                await asyncio.sleep(60)
            return Outcome.ok()

        tasks.verify_transfer = verify
        guard = FreezeGuard(0.05, shutdown)
        pipeline = AccountPipeline(tasks, guard, fast_settings(), shutdown)

        await pipeline.run()

        assert tasks.calls == EXPECTED_ORDER
        assert guard.freezes == 1
        assert [r.status for r in pipeline.history].count("frozen") == 1

    @pytest.mark.asyncio
    async def test_shutdown_skips_remaining_steps(self, shutdown):
        """Once the flag is set no further step is started."""
        tasks = RecordingTasks()

        async def check_in():
            tasks.calls.append("check_in")
            shutdown.request("test")
            return Outcome.ok()

        tasks.check_in = check_in
        pipeline = AccountPipeline(tasks, FreezeGuard(1.0, shutdown), fast_settings(), shutdown)

        await pipeline.run()

        assert tasks.calls == ["authenticate", "check_in"]
        assert pipeline.state is PipelineState.CHECKED_IN

    @pytest.mark.asyncio
    async def test_records_metrics(self, shutdown):
        monitor = quiet_monitor()
        monitor.start_cycle()
        tasks = RecordingTasks(fail={"wrap_swap"})
        pipeline = AccountPipeline(
            tasks, FreezeGuard(1.0, shutdown), fast_settings(), shutdown, monitor=monitor
        )

        await pipeline.run()

        metrics = monitor.wallet(tasks.address)
        assert metrics.succeeded == 10
        assert metrics.failed == 1
        assert dict(metrics.failures) == {"Wrap swap": 1}


def make_clients():
    api = MagicMock()
    api.login = AsyncMock(return_value="jwt")
    api.check_in = AsyncMock(return_value={"code": 0})
    api.claim_faucet = AsyncMock(return_value={"code": 0})
    api.verify_task = AsyncMock(return_value={"code": 0})
    api.close = AsyncMock()

    chain = MagicMock()
    chain.connect = AsyncMock()
    chain.close = AsyncMock()
    chain.get_balance = AsyncMock(return_value=Web3.to_wei(1, "ether"))
    chain.token_balance = AsyncMock(return_value=10_000_000)
    chain.send_native = AsyncMock(return_value="0xhash")
    chain.wrap_native = AsyncMock(return_value={"tx_hash": "0xwrap", "wrapped": 1})
    chain.swap_exact_input = AsyncMock(return_value={"tx_hash": "0xswap", "block": 1})
    chain.approve = AsyncMock(return_value="0xapprove")
    chain.mint_position = AsyncMock(return_value={"tx_hash": "0xmint", "liquidity": 1})
    return api, chain


class TestCycleDriver:

    @pytest.fixture
    def accounts(self):
        return [
            AccountProfile.from_private_key(KEY_1, index=1),
            AccountProfile.from_private_key(KEY_2, index=2),
        ]

    @pytest.mark.asyncio
    async def test_two_account_cycle(self, accounts, shutdown):
        """Both wallets run the full pipeline in order, sharing one cache."""
        built = []

        def factory(account, proxy):
            api, chain = make_clients()
            built.append((account.address, proxy, api, chain))
            return api, chain

        sessions = SessionCache()
        driver = CycleDriver(
            fast_settings(), accounts, RECIPIENTS, sessions, shutdown,
            client_factory=factory, monitor=quiet_monitor(),
        )

        await driver.run(max_cycles=1)

        assert [b[0] for b in built] == [a.address for a in accounts]
        assert all(b[1] is None for b in built)
        for _, _, api, chain in built:
            api.login.assert_awaited_once()
            api.check_in.assert_awaited_once()
            api.claim_faucet.assert_awaited_once()
            assert chain.send_native.await_count == 5
            assert api.verify_task.await_count == 5
            chain.mint_position.assert_awaited_once()
            chain.wrap_native.assert_awaited_once()
            chain.swap_exact_input.assert_awaited_once()
            api.close.assert_awaited_once()
            chain.close.assert_awaited_once()
        assert len(sessions) == 2
        assert driver.cycles_completed == 1

    @pytest.mark.asyncio
    async def test_sessions_reused_across_cycles(self, accounts, shutdown):
        """The second cycle authenticates from the cache."""
        logins = []

        def factory(account, proxy):
            api, chain = make_clients()
            logins.append(api.login)
            return api, chain

        driver = CycleDriver(
            fast_settings(), accounts, RECIPIENTS, SessionCache(), shutdown,
            client_factory=factory, monitor=quiet_monitor(),
        )
        driver.loader = MagicMock()
        driver.loader.run = AsyncMock(return_value=True)

        await driver.run(max_cycles=2)

        assert sum(login.await_count for login in logins) == 2
        driver.loader.run.assert_awaited_once_with(0)

    @pytest.mark.asyncio
    async def test_account_crash_does_not_stop_cycle(self, accounts, shutdown, caplog):
        """An unexpected error for one wallet is logged and the next runs."""
        built = []

        def factory(account, proxy):
            if account.index == 1:
                raise RuntimeError("factory broke")
            clients = make_clients()
            built.append(clients)
            return clients

        driver = CycleDriver(
            fast_settings(), accounts, RECIPIENTS, SessionCache(), shutdown,
            client_factory=factory, monitor=quiet_monitor(),
        )

        with caplog.at_level("ERROR"):
            await driver.run(max_cycles=1)

        assert "Unexpected error while processing" in caplog.text
        assert len(built) == 1
        built[0][0].login.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_provider_failure_skips_wallet(self, accounts, shutdown):
        api, chain = make_clients()
        chain.connect.side_effect = RuntimeError("wrong chain")
        driver = CycleDriver(
            fast_settings(), accounts[:1], RECIPIENTS, SessionCache(), shutdown,
            client_factory=lambda account, proxy: (api, chain), monitor=quiet_monitor(),
        )

        assert await driver.run_account(accounts[0]) is None
        api.login.assert_not_awaited()
        chain.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_shutdown_before_second_account(self, accounts, shutdown):
        """Shutdown during account 1 prevents account 2 from starting."""
        built = []

        def factory(account, proxy):
            api, chain = make_clients()
            if account.index == 1:
                async def check_in(*args):
                    shutdown.request("test")
                    return {"code": 0}
                api.check_in = AsyncMock(side_effect=check_in)
            built.append(account.index)
            return api, chain

        driver = CycleDriver(
            fast_settings(), accounts, RECIPIENTS, SessionCache(), shutdown,
            client_factory=factory, monitor=quiet_monitor(),
        )

        await driver.run()

        assert built == [1]
        assert driver.cycles_completed == 0

    @pytest.mark.asyncio
    async def test_proxy_selected_once_per_account(self, accounts, shutdown):
        proxy_manager = MagicMock()
        proxy_manager.select.return_value = "http://1.1.1.1:8080"
        proxies = []

        def factory(account, proxy):
            proxies.append(proxy)
            return make_clients()

        driver = CycleDriver(
            fast_settings(), accounts, RECIPIENTS, SessionCache(), shutdown,
            proxy_manager=proxy_manager, client_factory=factory, monitor=quiet_monitor(),
        )
        await driver.run(max_cycles=1)

        assert proxy_manager.select.call_count == 2
        assert proxies == ["http://1.1.1.1:8080", "http://1.1.1.1:8080"]

    @pytest.mark.asyncio
    async def test_cycle_boundary_loader_then_sleep(self, accounts, shutdown):
        """Between cycles the loader runs its full window, then the cycle sleep."""
        settings = fast_settings(
            cycle_loader_seconds=180, cycle_sleep_seconds=60, heartbeat_interval_seconds=999
        )
        events = []

        async def sleep(seconds):
            if seconds == 999:
                await asyncio.sleep(3600)
            if seconds:
                events.append(("sleep", seconds))
            return True

        async def loader_run(seconds):
            events.append(("loader", seconds))
            return True

        shutdown.sleep = sleep
        driver = CycleDriver(
            settings, accounts, RECIPIENTS, SessionCache(), shutdown,
            client_factory=lambda account, proxy: make_clients(), monitor=quiet_monitor(),
        )
        driver.loader = MagicMock()
        driver.loader.run = AsyncMock(side_effect=loader_run)

        await driver.run(max_cycles=2)

        assert events == [("loader", 180), ("sleep", 60)]
        assert driver.cycles_completed == 2

    @pytest.mark.asyncio
    async def test_interrupted_loader_skips_sleep(self, accounts, shutdown):
        """A loader cut short by shutdown ends the driver without sleeping."""
        driver = CycleDriver(
            fast_settings(cycle_sleep_seconds=60), accounts, RECIPIENTS, SessionCache(), shutdown,
            client_factory=lambda account, proxy: make_clients(), monitor=quiet_monitor(),
        )
        driver.loader = MagicMock()
        driver.loader.run = AsyncMock(return_value=False)
        sleeps = []
        real_sleep = shutdown.sleep

        async def sleep(seconds):
            sleeps.append(seconds)
            return await real_sleep(seconds)

        shutdown.sleep = sleep

        await driver.run()

        driver.loader.run.assert_awaited_once()
        assert 60 not in sleeps
        assert driver.cycles_completed == 1
