"""Consumer-facing batch verification: find the record, then assess it."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from schemas import BatchRecord, VerificationVerdict
from utils import ZERO_ADDRESS, to_iso

from .evaluator import evaluate
from .lookup import LookupChain, LookupStrategy

logger = logging.getLogger(__name__)

SOURCE_DATABASE = "database"
SOURCE_BLOCKCHAIN = "blockchain"


def record_from_row(row: Dict[str, Any]) -> BatchRecord:
    """Normalize a ``verify_honey`` row; store rows carry no on-chain identity."""
    harvest = row.get("harvest_date")
    if isinstance(harvest, date):
        harvest = harvest.isoformat()
    created = row.get("created_at")
    if isinstance(created, datetime):
        created = to_iso(created)

    return BatchRecord(
        displayId=row["batch_id"],
        beekeeperName=row.get("beekeeper_name") or "",
        region=row.get("region") or "",
        flowerType=row.get("flower_type") or "",
        harvestDate=harvest or "",
        description=row.get("description"),
        farmer=ZERO_ADDRESS,
        timestamp=created,
        blockchainTxHash=None,
        exists=True,
    )


@dataclass
class VerificationOutcome:
    source: str
    record: BatchRecord
    verdict: VerificationVerdict


class VerificationService:
    """Record store first, ledger second; the evaluator only sees a found record."""

    def __init__(
        self,
        store=None,
        ledger=None,
        evaluator: Callable[[BatchRecord], VerificationVerdict] = evaluate,
    ):
        self.store = store
        self.ledger = ledger
        self.evaluator = evaluator

        strategies: List[Tuple[str, LookupStrategy]] = []
        if store is not None:
            strategies.append((SOURCE_DATABASE, self._from_store))
        if ledger is not None:
            strategies.append((SOURCE_BLOCKCHAIN, self._from_ledger))
        self.chain = LookupChain(strategies)

    async def _from_store(self, batch_id: str) -> Optional[BatchRecord]:
        row = await asyncio.to_thread(self.store.get, batch_id)
        return record_from_row(row) if row else None

    async def _from_ledger(self, batch_id: str) -> Optional[BatchRecord]:
        return await self.ledger.get_batch(batch_id)

    async def verify(self, batch_id: str) -> VerificationOutcome:
        """Raises BatchNotFoundError or UpstreamFailure when no record is available."""
        hit = await self.chain.resolve(batch_id)
        verdict = self.evaluator(hit.record)
        logger.info(
            f"Batch {batch_id} from {hit.source}: authentic={verdict.isAuthentic}, "
            f"risk={verdict.riskLevel.value}, warnings={len(verdict.warnings)}"
        )
        return VerificationOutcome(source=hit.source, record=hit.record, verdict=verdict)
