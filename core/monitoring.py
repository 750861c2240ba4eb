"""Per-cycle step statistics and the cycle-boundary loader.

Tracks how each wallet's pipeline steps ended during a cycle and renders
a summary table with Rich once every account has been processed.  The
:class:`CycleLoader` shows a spinner with a countdown while the driver
waits between cycles.
"""

import logging
import time
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, Optional

from rich import box
from rich.console import Console
from rich.table import Table

from core.shutdown import ShutdownCoordinator

logger = logging.getLogger(__name__)


@dataclass
class WalletMetrics:
    """Step outcome counters for one wallet within one cycle."""

    address: str
    succeeded: int = 0
    failed: int = 0
    frozen: int = 0
    elapsed: float = 0.0
    failures: Dict[str, int] = field(default_factory=lambda: defaultdict(int))

    @property
    def total(self) -> int:
        return self.succeeded + self.failed + self.frozen


class CycleMonitor:
    """Collects :class:`WalletMetrics` for the current cycle."""

    def __init__(self, console: Optional[Console] = None) -> None:
        self.console = console or Console()
        self.cycle = 0
        self.wallets: Dict[str, WalletMetrics] = {}

    def start_cycle(self) -> None:
        self.cycle += 1
        self.wallets = {}

    def wallet(self, address: str) -> WalletMetrics:
        if address not in self.wallets:
            self.wallets[address] = WalletMetrics(address=address)
        return self.wallets[address]

    def record(self, address: str, step: str, status: str, elapsed: float = 0.0) -> None:
        """Count one step result (``success`` / ``failure`` / ``frozen`` / ``error``)."""
        metrics = self.wallet(address)
        metrics.elapsed += elapsed
        if status == "success":
            metrics.succeeded += 1
        elif status == "frozen":
            metrics.frozen += 1
        else:
            metrics.failed += 1
            metrics.failures[step] += 1

    def render_table(self) -> Table:
        table = Table(title=f"Cycle {self.cycle} summary", box=box.ROUNDED)
        table.add_column("Wallet", style="cyan")
        table.add_column("OK", justify="right", style="green")
        table.add_column("Failed", justify="right", style="red")
        table.add_column("Frozen", justify="right", style="yellow")
        table.add_column("Time", justify="right")
        table.add_column("Failed steps")
        for metrics in self.wallets.values():
            table.add_row(
                f"{metrics.address[:6]}...{metrics.address[-4:]}",
                str(metrics.succeeded),
                str(metrics.failed),
                str(metrics.frozen),
                f"{metrics.elapsed:.0f}s",
                ", ".join(sorted(metrics.failures)) or "-",
            )
        return table

    def print_summary(self) -> None:
        self.console.print(self.render_table())


class CycleLoader:
    """Spinner with a countdown shown between cycles.

    Args:
        shutdown: The spinner stops early once shutdown is requested.
        console: Rich console to draw on.
    """

    def __init__(self, shutdown: ShutdownCoordinator, console: Optional[Console] = None) -> None:
        self.shutdown = shutdown
        self.console = console or Console()

    async def run(self, seconds: float, message: str = "Waiting for next cycle") -> bool:
        """Show the spinner for *seconds*.

        Returns:
            ``True`` if the full window elapsed, ``False`` on shutdown.
        """
        deadline = time.monotonic() + seconds
        with self.console.status(f"{message}...", spinner="dots") as status:
            while True:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return True
                status.update(f"{message}... {int(remaining)}s remaining")
                if not await self.shutdown.sleep(min(1.0, remaining)):
                    return False
