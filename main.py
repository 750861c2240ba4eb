"""
Pharos Testnet Task Runner - Main Entry Point

Loads the wallets, the verification recipients and the optional proxy list,
then hands them to the CycleDriver, which walks every wallet through the
daily task pipeline and repeats until interrupted.

Usage:
    python main.py           # Run cycles until Ctrl+C
    python main.py --once    # Run a single cycle and exit
"""
from dotenv import load_dotenv

# Load environment variables from .env file into os.environ
load_dotenv()

import asyncio
import argparse
import logging
import sys
from typing import Any, Dict

from core.config import BotSettings, load_accounts, load_recipients
from core.errors import ConfigError
from core.logging_setup import setup_logging
from core.monitoring import CycleMonitor
from core.orchestrator import CycleDriver
from core.proxy_manager import ProxyManager
from core.session import SessionCache
from core.shutdown import ShutdownCoordinator

logger = logging.getLogger(__name__)


def _log_unhandled(loop: asyncio.AbstractEventLoop, context: Dict[str, Any]) -> None:
    exc = context.get("exception")
    message = context.get("message", "Unhandled error in event loop")
    if exc is not None:
        logger.error(f"Unhandled error: {message}", exc_info=exc)
    else:
        logger.error(f"Unhandled error: {message}")


async def main() -> int:
    """
    Main execution flow.

    1. Parses command line arguments and configures logging.
    2. Loads wallets and recipients (fatal on bad input).
    3. Loads the optional proxy list.
    4. Installs the shutdown signal handlers.
    5. Runs the CycleDriver until shutdown.
    """
    parser = argparse.ArgumentParser(description="Pharos testnet task runner")
    parser.add_argument("--once", action="store_true", help="Run a single cycle and exit")
    args = parser.parse_args()

    settings = BotSettings()
    setup_logging(settings.log_level)

    try:
        accounts = load_accounts(settings)
        recipients = load_recipients(settings.recipients_file)
    except ConfigError as e:
        logger.error(f"❌ {e}")
        return 1
    logger.info(f"Loaded {len(accounts)} wallet(s) and {len(recipients)} recipients")

    proxy_manager = ProxyManager.from_file(settings.proxies_file)

    loop = asyncio.get_running_loop()
    loop.set_exception_handler(_log_unhandled)
    shutdown = ShutdownCoordinator(grace_period=settings.shutdown_grace_seconds)
    shutdown.install_signal_handlers(loop)

    driver = CycleDriver(
        settings,
        accounts,
        recipients,
        SessionCache(),
        shutdown,
        proxy_manager=proxy_manager,
        monitor=CycleMonitor(),
    )
    await driver.run(max_cycles=1 if args.once else None)
    return 0


def cli() -> None:
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        logger.info("👋 Stopping (KeyboardInterrupt)...")
        sys.exit(0)


if __name__ == "__main__":
    cli()
