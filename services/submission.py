"""Beekeeper batch submission: anchor on the ledger, then mirror to the store."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from blockchain import BlockchainService
from schemas import CreateHoneyBatchRequest
from utils import verify_url

logger = logging.getLogger(__name__)


class LedgerWriteError(Exception):
    """The createHoneyBatch transaction could not be sent or was reverted."""


@dataclass
class SubmissionResult:
    display_id: str
    transaction_hash: str
    farmer: str
    wallet_address: str
    timestamp: datetime
    qr_code_url: str
    mirrored: bool
    qr_image_base64: Optional[str] = None


class SubmissionService:
    def __init__(self, ledger, store=None, qr_service=None):
        self.ledger = ledger
        self.store = store
        self.qr_service = qr_service

    @staticmethod
    def new_batch_id() -> str:
        return BlockchainService.generate_batch_id()

    async def submit(self, request: CreateHoneyBatchRequest, username: str, wallet_address: str) -> SubmissionResult:
        display_id = request.batchId or self.new_batch_id()
        harvest_date = request.harvestDate.isoformat()
        description = request.description or ""

        try:
            tx_hash = await self.ledger.create_batch(
                batch_id=display_id,
                beekeeper_name=request.beekeeperName,
                region=request.region.value,
                flower_type=request.flowerType.value,
                harvest_date=harvest_date,
                description=description,
                created_by=username,
                on_behalf_of=wallet_address,
            )
        except Exception as exc:
            raise LedgerWriteError(f"Could not anchor batch {display_id}: {exc}") from exc

        qr_code_url = verify_url(display_id)
        mirrored = False
        if self.store is not None:
            try:
                await asyncio.to_thread(
                    self.store.upsert,
                    {
                        "batch_id": display_id,
                        "beekeeper_name": request.beekeeperName,
                        "harvest_date": request.harvestDate,
                        "flower_type": request.flowerType.value,
                        "description": description,
                        "region": request.region.value,
                        "qr_code_url": qr_code_url,
                    },
                )
                mirrored = True
            except Exception as exc:
                # The ledger write already succeeded; the sync job can backfill the row
                logger.error(f"Failed to mirror batch {display_id} into the record store: {exc}")

        qr_image = None
        if self.qr_service is not None:
            qr_image = self.qr_service.generate(display_id, qr_code_url, cache=True)["qrImageBase64"]

        return SubmissionResult(
            display_id=display_id,
            transaction_hash=tx_hash,
            # The contract stores the transaction sender as the farmer
            farmer=self.ledger.sender_address,
            wallet_address=wallet_address,
            timestamp=datetime.now(timezone.utc),
            qr_code_url=qr_code_url,
            mirrored=mirrored,
            qr_image_base64=qr_image,
        )
