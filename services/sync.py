"""Mirror batches anchored on the ledger into the record store."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from schemas import BatchRecord
from utils import parse_date, verify_url

logger = logging.getLogger(__name__)


@dataclass
class SyncReport:
    scanned: int = 0
    inserted: int = 0
    failed: int = 0


def row_from_record(record: BatchRecord) -> Dict[str, Any]:
    return {
        "batch_id": record.displayId,
        "beekeeper_name": record.beekeeperName,
        # Blank or unparseable harvest dates are stored as NULL
        "harvest_date": parse_date(record.harvestDate),
        "flower_type": record.flowerType,
        "description": record.description or "",
        "region": record.region,
        "qr_code_url": verify_url(record.displayId),
    }


class LedgerSyncService:
    """Insert ledger batches missing from the store; existing rows are left alone."""

    def __init__(self, ledger, store):
        self.ledger = ledger
        self.store = store

    async def run_once(self) -> SyncReport:
        report = SyncReport()
        batch_ids = await self.ledger.list_batch_ids()

        for batch_id in batch_ids:
            report.scanned += 1
            try:
                record = await self.ledger.get_batch(batch_id, with_tx_hash=False)
                if record is None:
                    logger.warning(f"Batch {batch_id} is listed on chain but could not be read")
                    report.failed += 1
                    continue
                if await asyncio.to_thread(self.store.insert_if_absent, row_from_record(record)):
                    report.inserted += 1
                    logger.info(f"Synced batch {batch_id} to the record store")
            except Exception as exc:
                logger.error(f"Error syncing batch {batch_id}: {exc}")
                report.failed += 1

        logger.info(
            f"Ledger sync finished: scanned={report.scanned} inserted={report.inserted} failed={report.failed}"
        )
        return report

    async def run_forever(self, interval_seconds: int, stop_event: Optional[asyncio.Event] = None) -> None:
        stop_event = stop_event or asyncio.Event()
        while not stop_event.is_set():
            try:
                await self.run_once()
            except Exception as exc:
                logger.error(f"Ledger sync pass failed: {exc}", exc_info=True)
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval_seconds)
            except asyncio.TimeoutError:
                pass
