import json
import asyncio
import random
from typing import Dict, List, Optional
from datetime import datetime, timezone
from web3 import Web3
from web3.exceptions import ContractLogicError
from web3.middleware import ExtraDataToPOAMiddleware
from eth_account import Account
import logging

from config import settings
from schemas import BatchRecord
from utils import to_iso

logger = logging.getLogger(__name__)

# Upper bound when walking the contract's public arrays
MAX_ARRAY_SCAN = 100000


class BlockchainService:
    """Thin binding to the HoneyTracker contract."""

    def __init__(self):
        self.w3: Optional[Web3] = None
        self.contract = None
        self.system_account = None

    @property
    def sender_address(self) -> Optional[str]:
        """Address that signs createHoneyBatch; the contract records it as the farmer"""
        return self.system_account.address if self.system_account else None

    async def initialize(self):
        """Initialize blockchain connection and load contract"""
        try:
            self.w3 = Web3(Web3.HTTPProvider(settings.RPC_URL))

            # PoA chains put extra bytes in the header; harmless elsewhere
            self.w3.middleware_onion.inject(ExtraDataToPOAMiddleware, layer=0)

            # Load system account from private key
            self.system_account = Account.from_key(settings.SYSTEM_PRIVATE_KEY)

            self._load_contract()

            logger.info("Blockchain service initialized successfully")
            logger.info(f"System wallet: {self.system_account.address}")
            logger.info(f"Network: {settings.NETWORK_NAME}")

        except Exception as e:
            logger.error(f"Failed to initialize blockchain service: {e}")
            raise

    def _load_contract(self):
        """Load smart contract ABI and create contract instance"""
        try:
            with open(settings.CONTRACT_ABI_PATH, 'r') as f:
                contract_data = json.load(f)

            # Hardhat artifacts wrap the ABI, bare ABI files do not
            if isinstance(contract_data, dict) and 'abi' in contract_data:
                abi = contract_data['abi']
            else:
                abi = contract_data

            self.contract = self.w3.eth.contract(
                address=Web3.to_checksum_address(settings.CONTRACT_ADDRESS),
                abi=abi
            )

            logger.info(f"Contract loaded at address: {settings.CONTRACT_ADDRESS}")

        except Exception as e:
            logger.error(f"Failed to load contract: {e}")
            raise

    async def check_connection(self) -> bool:
        """Check if blockchain connection is healthy"""
        try:
            latest_block = await asyncio.to_thread(self.w3.eth.get_block, 'latest')
            return latest_block is not None
        except Exception as e:
            logger.error(f"Blockchain connection check failed: {e}")
            return False

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------
    def _send_transaction(self, transaction_data: Dict) -> str:
        """Sign and send a transaction from the system wallet, wait for the receipt"""
        nonce = self.w3.eth.get_transaction_count(self.system_account.address)

        transaction = {
            'from': self.system_account.address,
            'nonce': nonce,
            'chainId': settings.CHAIN_ID,
        }
        transaction.update(transaction_data)

        try:
            estimated_gas = self.w3.eth.estimate_gas(transaction)
            gas_with_buffer = min(int(estimated_gas * settings.GAS_ESTIMATION_BUFFER), settings.GAS_LIMIT)
            transaction['gas'] = gas_with_buffer
            logger.info(f"Estimated gas: {estimated_gas}, Using: {gas_with_buffer} (buffer: {settings.GAS_ESTIMATION_BUFFER}x)")
        except ContractLogicError:
            # A revert during estimation means the call itself would fail
            raise
        except Exception as gas_error:
            logger.warning(f"Gas estimation failed: {gas_error}, using default limit")
            transaction['gas'] = settings.GAS_LIMIT

        try:
            latest_block = self.w3.eth.get_block('latest')
            base_fee = latest_block['baseFeePerGas']
            max_priority_fee = self.w3.eth.max_priority_fee
            transaction['maxFeePerGas'] = base_fee * 2 + max_priority_fee
            transaction['maxPriorityFeePerGas'] = max_priority_fee
        except Exception as fee_error:
            # Fallback to legacy transaction with network gas price
            logger.warning(f"EIP-1559 not available, using legacy transaction: {fee_error}")
            transaction.pop('maxFeePerGas', None)
            transaction.pop('maxPriorityFeePerGas', None)
            transaction['gasPrice'] = self.w3.eth.gas_price

        signed_txn = self.w3.eth.account.sign_transaction(transaction, settings.SYSTEM_PRIVATE_KEY)
        tx_hash = self.w3.eth.send_raw_transaction(signed_txn.raw_transaction)

        receipt = self.w3.eth.wait_for_transaction_receipt(tx_hash, timeout=settings.TX_RECEIPT_TIMEOUT)
        tx_hex = Web3.to_hex(tx_hash)
        if receipt.status != 1:
            raise RuntimeError(f"Transaction failed: {tx_hex}")

        logger.info(f"Transaction successful: {tx_hex} (gas used: {receipt.gasUsed})")
        return tx_hex

    async def create_batch(
        self,
        batch_id: str,
        beekeeper_name: str,
        region: str,
        flower_type: str,
        harvest_date: str,
        description: str,
        created_by: str,
        on_behalf_of: Optional[str] = None,
    ) -> str:
        """Anchor a honey batch from the system wallet, returns the transaction hash"""
        try:
            transaction_data = {
                'to': self.contract.address,
                'data': self.contract.encode_abi(
                    "createHoneyBatch",
                    args=[batch_id, beekeeper_name, region, flower_type, harvest_date, description or "", batch_id],
                ),
            }

            tx_hash = await asyncio.to_thread(self._send_transaction, transaction_data)
            logger.info(f"Batch {batch_id} created by {created_by} (wallet {on_behalf_of}, sender {self.sender_address})")
            return tx_hash

        except Exception as e:
            logger.error(f"Failed to create batch {batch_id}: {e}")
            raise

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    async def get_batch(self, batch_id: str, with_tx_hash: bool = True) -> Optional[BatchRecord]:
        """Read a batch from the contract; None when the contract does not know it.

        Transport errors propagate so callers can tell a miss from an outage.
        """
        try:
            batch_data = await asyncio.to_thread(self.contract.functions.getHoneyBatch(batch_id).call)
        except ContractLogicError as e:
            logger.info(f"Batch {batch_id} lookup reverted: {e}")
            return None

        record = self._record_from_tuple(batch_data)
        if record is None:
            logger.info(f"Batch {batch_id} does not exist on chain")
            return None

        if with_tx_hash:
            record.blockchainTxHash = await asyncio.to_thread(self._find_creation_tx, batch_id)
        return record

    @staticmethod
    def _record_from_tuple(batch_data) -> Optional[BatchRecord]:
        # (beekeeperName, region, flowerType, harvestDate, description, displayId, farmer, timestamp, exists)
        if not batch_data or len(batch_data) < 9 or not batch_data[8]:
            return None

        beekeeper_name, region, flower_type, harvest_date, description, display_id, farmer, created_ts, exists = batch_data
        return BatchRecord(
            displayId=display_id,
            beekeeperName=beekeeper_name,
            region=region,
            flowerType=flower_type,
            harvestDate=harvest_date,
            description=description,
            farmer=farmer,
            timestamp=to_iso(datetime.fromtimestamp(int(created_ts), timezone.utc)),
            blockchainTxHash=None,
            exists=bool(exists),
        )

    def _find_creation_tx(self, batch_id: str) -> Optional[str]:
        """Hash of the transaction that emitted HoneyBatchCreated for this batch, if found"""
        try:
            events = self.contract.events.HoneyBatchCreated.get_logs(
                from_block=0,
                to_block='latest',
                argument_filters={'batchId': batch_id},
            )
        except Exception as e:
            logger.warning(f"Could not get HoneyBatchCreated events for {batch_id}: {e}")
            return None

        if not events:
            return None
        # Re-submissions emit again; the latest one is the current record
        return Web3.to_hex(events[-1]['transactionHash'])

    async def verify_batch(self, batch_id: str) -> bool:
        """Ask the contract whether it considers the batch valid"""
        try:
            return bool(await asyncio.to_thread(self.contract.functions.verifyBatch(batch_id).call))
        except ContractLogicError as e:
            logger.info(f"verifyBatch reverted for {batch_id}: {e}")
            return False

    def _walk_array(self, getter) -> List[str]:
        items: List[str] = []
        for index in range(MAX_ARRAY_SCAN):
            try:
                items.append(getter(index).call())
            except ContractLogicError:
                # Out-of-range index reverts: end of the array
                break
        return items

    async def list_batch_ids(self) -> List[str]:
        """Every batch id the contract has recorded, in creation order"""
        batch_ids = await asyncio.to_thread(self._walk_array, self.contract.functions.allBatchIds)
        logger.info(f"Contract reports {len(batch_ids)} batch ids")
        return batch_ids

    async def get_farmer_batches(self, farmer: str) -> List[str]:
        """Batch ids anchored by one farmer address"""
        address = Web3.to_checksum_address(farmer)
        return await asyncio.to_thread(
            self._walk_array,
            lambda index: self.contract.functions.farmerBatches(address, index),
        )

    @staticmethod
    def generate_batch_id(now: Optional[datetime] = None) -> str:
        """HNY<year>-<3 digit random number>, e.g. HNY2025-042"""
        year = (now or datetime.now(timezone.utc)).year
        return f"HNY{year}-{random.randint(0, 999):03d}"
