"""
Farmers World maintenance bot - Main Entry Point

Loads the configuration, validates every account and key, prepares the
endpoint pools, gateways and signing wallet, loads the template catalog and
then hands control to the Scheduler, which runs until interrupted.

Usage:
    python main.py                  # Run forever on CHECK_INTERVAL
    python main.py --once           # Run a single cycle and exit
    python main.py --dry-run        # Build transactions without pushing them
    python main.py --account name   # Only process one configured account
"""
from dotenv import load_dotenv

# Load environment variables from .env file into os.environ
load_dotenv()

import argparse
import asyncio
import logging
import signal
import sys
from typing import List, Optional

from chain.atomic import AssetIndexGateway
from chain.exceptions import ConfigError, SigningError
from chain.rpc import ChainDataGateway
from chain.signer import WalletDaemonSigner
from chain.transaction import TransactionBuilder
from core.config import BotSettings
from core.endpoint_pool import EndpointPool
from core.logging_setup import setup_logging
from core.orchestrator import TaskOrchestrator
from core.scheduler import Scheduler
from farming.models import TemplateCatalog

logger = logging.getLogger(__name__)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Farmers World maintenance bot")
    parser.add_argument("--once", action="store_true", help="Run a single cycle and exit")
    parser.add_argument("--dry-run", action="store_true", help="Build transactions but never push them")
    parser.add_argument("--account", type=str, help="Only process this configured account")
    return parser.parse_args(argv)


def load_settings(args: argparse.Namespace) -> BotSettings:
    """Build the frozen settings, applying CLI overrides.

    Raises:
        ConfigError: On any invalid configuration.
    """
    settings = BotSettings.load()
    if args.dry_run:
        settings = settings.model_copy(update={"dry_run": True})
    if args.account:
        account = settings.get_account(args.account)
        if account is None:
            raise ConfigError(f"Account {args.account} is not configured")
        settings = settings.model_copy(update={"accounts": (account,)})
    return settings


async def load_catalog(chain: ChainDataGateway) -> TemplateCatalog:
    tools = await chain.fetch_tool_configs()
    animals = await chain.fetch_animal_configs()
    if not tools:
        logger.warning("Tool configs unavailable; durability checks will be skipped")
    logger.info(f"Loaded {len(tools)} tool and {len(animals)} animal templates")
    return TemplateCatalog(tools=tools, animals=animals)


async def main(argv: Optional[List[str]] = None) -> int:
    """
    Main execution flow.

    1. Parses command line arguments and loads settings (fatal on error).
    2. Sets up logging.
    3. Builds endpoint pools, gateways, signer and transaction builder.
    4. Registers every account key with the wallet daemon (skipped in dry run).
    5. Loads the template catalog once.
    6. Starts the Scheduler and waits for SIGTERM or interruption.
    """
    args = parse_args(argv)
    print("FW Bot initialization")
    try:
        settings = load_settings(args)
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1

    setup_logging(settings.log_level)
    names = ", ".join(a.name for a in settings.accounts)
    logger.info(f"Loaded {len(settings.accounts)} account(s): {names}")
    if settings.dry_run:
        logger.warning("DRY RUN enabled: transactions will not be signed or pushed")

    chain = ChainDataGateway(
        EndpointPool("wax", settings.wax_endpoints),
        timeout=settings.chain_read_timeout,
        game_contract=settings.game_contract,
        token_contract=settings.token_contract,
        row_limit=settings.table_row_limit,
    )
    assets = AssetIndexGateway(
        EndpointPool("atomic", settings.atomic_endpoints),
        connect_timeout=settings.atomic_connect_timeout,
        collection=settings.atomic_collection,
        page_limit=settings.atomic_page_limit,
    )
    signer = WalletDaemonSigner(settings.wallet_url, settings.wallet_name, settings.wallet_password)
    builder = TransactionBuilder(chain, signer, dry_run=settings.dry_run)

    try:
        if not settings.dry_run:
            for account in settings.accounts:
                await signer.register_keys(account.private_keys)

        catalog = await load_catalog(chain)
        orchestrator = TaskOrchestrator(settings, chain, assets, builder, catalog)
        scheduler = Scheduler(settings, orchestrator)

        def handle_sigterm():
            logger.info("🛑 Received SIGTERM. Finishing current step and stopping...")
            scheduler.stop()

        loop = asyncio.get_running_loop()
        if sys.platform != "win32":
            loop.add_signal_handler(signal.SIGTERM, handle_sigterm)

        await scheduler.scheduler_loop(max_cycles=1 if args.once else None)
    except SigningError as e:
        logger.error(f"Wallet setup failed: {e}")
        return 1
    except KeyboardInterrupt:
        logger.info("👋 Stopping bot...")
    finally:
        logger.info("🧹 Cleaning up resources...")
        await chain.close()
        await assets.close()
        await signer.close()
    return 0


def run() -> None:
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        sys.exit(0)


if __name__ == "__main__":
    run()
