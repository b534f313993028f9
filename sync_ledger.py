#!/usr/bin/env python3
"""
Copy honey batches recorded on the blockchain into the PostgreSQL record store
"""
import argparse
import asyncio
import logging
import sys

from blockchain import BlockchainService
from config import settings
from services import LedgerSyncService
from store import HoneyBatchStore

logger = logging.getLogger("honeytrace.sync")


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__.strip())
    parser.add_argument(
        "--watch",
        action="store_true",
        help="keep running and re-sync every --interval seconds",
    )
    parser.add_argument(
        "--interval",
        type=int,
        default=settings.SYNC_INTERVAL_SECONDS,
        help="seconds between passes in --watch mode (default: %(default)s)",
    )
    return parser.parse_args(argv)


async def run(args: argparse.Namespace) -> int:
    ledger = BlockchainService()
    await ledger.initialize()

    store = HoneyBatchStore.from_settings(settings)
    try:
        await asyncio.to_thread(store.ensure_schema)
        sync = LedgerSyncService(ledger, store)
        if args.watch:
            logger.info(f"Watching the ledger every {args.interval}s (Ctrl+C to stop)")
            await sync.run_forever(args.interval)
            return 0
        report = await sync.run_once()
        return 1 if report.failed else 0
    finally:
        store.close()


def main(argv=None) -> int:
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    args = parse_args(argv)
    try:
        return asyncio.run(run(args))
    except KeyboardInterrupt:
        logger.info("Sync stopped")
        return 0


if __name__ == "__main__":
    sys.exit(main())
