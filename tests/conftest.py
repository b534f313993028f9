from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

import pytest

from schemas import BatchRecord
from utils import ZERO_ADDRESS

FARMER = "0x70997970C51812dc3A010C7d01b50e0d17dc79C8"
TX_HASH = "0x" + "ab" * 32
# Hardhat account #0, the default system signer
SYSTEM_WALLET = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


class InMemoryStore:
    """Stands in for HoneyBatchStore with the same method surface."""

    def __init__(self, rows: Optional[List[Dict[str, Any]]] = None, fail: bool = False) -> None:
        self.rows: Dict[str, Dict[str, Any]] = {row["batch_id"]: dict(row) for row in rows or []}
        self.fail = fail
        self.calls: List[str] = []

    def _check(self, name: str) -> None:
        self.calls.append(name)
        if self.fail:
            raise ConnectionError("database is down")

    def get(self, batch_id: str) -> Optional[Dict[str, Any]]:
        self._check("get")
        row = self.rows.get(batch_id)
        return dict(row) if row else None

    def upsert(self, record: Dict[str, Any]) -> Dict[str, Any]:
        self._check("upsert")
        row = dict(record)
        row.setdefault("description", "")
        row.setdefault("certificate_hash", None)
        row["created_at"] = NOW
        self.rows[row["batch_id"]] = row
        return dict(row)

    def insert_if_absent(self, record: Dict[str, Any]) -> bool:
        self._check("insert_if_absent")
        if record["batch_id"] in self.rows:
            return False
        self.upsert(record)
        return True

    def list_batches(self, flower_type=None, region=None, search=None, limit=50, offset=0) -> Tuple[List[Dict[str, Any]], int]:
        self._check("list_batches")
        rows = list(self.rows.values())
        if flower_type:
            rows = [r for r in rows if r["flower_type"] == flower_type]
        if region:
            rows = [r for r in rows if r["region"] == region]
        if search:
            needle = search.lower()
            rows = [
                r for r in rows
                if needle in r["batch_id"].lower()
                or needle in r["beekeeper_name"].lower()
                or needle in (r.get("description") or "").lower()
            ]
        return [dict(r) for r in rows[offset:offset + limit]], len(rows)

    def check_connection(self) -> bool:
        return not self.fail


class FakeLedger:
    """Async surface of BlockchainService backed by a dict."""

    sender_address = SYSTEM_WALLET

    def __init__(self, records: Optional[Dict[str, BatchRecord]] = None, fail: bool = False) -> None:
        self.records = dict(records or {})
        self.fail = fail
        self.created: List[Dict[str, Any]] = []
        self.lookups: List[str] = []

    async def get_batch(self, batch_id: str, with_tx_hash: bool = True) -> Optional[BatchRecord]:
        self.lookups.append(batch_id)
        if self.fail:
            raise ConnectionError("rpc endpoint unreachable")
        record = self.records.get(batch_id)
        if record is not None and not with_tx_hash:
            return record.model_copy(update={"blockchainTxHash": None})
        return record

    async def create_batch(self, **fields: Any) -> str:
        if self.fail:
            raise ConnectionError("rpc endpoint unreachable")
        self.created.append(fields)
        self.records[fields["batch_id"]] = ledger_record(
            fields["batch_id"],
            beekeeperName=fields["beekeeper_name"],
            region=fields["region"],
            flowerType=fields["flower_type"],
            harvestDate=fields["harvest_date"],
            description=fields["description"],
            farmer=self.sender_address,
        )
        return TX_HASH

    async def verify_batch(self, batch_id: str) -> bool:
        if self.fail:
            raise ConnectionError("rpc endpoint unreachable")
        return batch_id in self.records

    async def list_batch_ids(self) -> List[str]:
        return list(self.records)

    async def get_farmer_batches(self, farmer: str) -> List[str]:
        return [bid for bid, rec in self.records.items() if (rec.farmer or "").lower() == farmer.lower()]

    async def check_connection(self) -> bool:
        return not self.fail


def store_row(batch_id: str = "HNY2025-001", **overrides: Any) -> Dict[str, Any]:
    row = {
        "id": 1,
        "batch_id": batch_id,
        "beekeeper_name": "Ahmed Saleh",
        "harvest_date": date(2024, 5, 1),
        "flower_type": "sidr",
        "description": "Sidr honey from the Hadramout valley",
        "region": "Hadramout, Yemen",
        "qr_code_url": f"http://localhost:3000/verify?id={batch_id}",
        "certificate_hash": None,
        "created_at": datetime(2024, 5, 2, tzinfo=timezone.utc),
    }
    row.update(overrides)
    return row


def ledger_record(batch_id: str = "HNY2025-002", **overrides: Any) -> BatchRecord:
    fields = {
        "displayId": batch_id,
        "beekeeperName": "Fatima Al-Amri",
        "region": "Taiz, Yemen",
        "flowerType": "acacia",
        "harvestDate": "2024-04-10",
        "description": "",
        "farmer": FARMER,
        "timestamp": "2024-04-11T08:30:00Z",
        "blockchainTxHash": TX_HASH,
        "exists": True,
    }
    fields.update(overrides)
    return BatchRecord(**fields)


def database_record(**overrides: Any) -> BatchRecord:
    fields = {
        "displayId": "HNY2025-001",
        "beekeeperName": "Ahmed Saleh",
        "region": "Sana'a, Yemen",
        "flowerType": "sidr",
        "harvestDate": "2024-05-01",
        "description": "",
        "farmer": ZERO_ADDRESS,
        "timestamp": "2024-05-02T00:00:00Z",
        "exists": True,
    }
    fields.update(overrides)
    return BatchRecord(**fields)


@pytest.fixture
def memory_store() -> InMemoryStore:
    return InMemoryStore([store_row()])


@pytest.fixture
def fake_ledger() -> FakeLedger:
    return FakeLedger({"HNY2025-002": ledger_record()})
