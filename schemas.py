from pydantic import BaseModel, Field, field_validator
from typing import List, Optional, Dict
from datetime import date, datetime
from enum import Enum

from utils import ZERO_ADDRESS, is_valid_address, utc_today

EARLIEST_HARVEST_DATE = date(2020, 1, 1)


class Region(str, Enum):
    SANAA = "Sana'a, Yemen"
    ADEN = "Aden, Yemen"
    TAIZ = "Taiz, Yemen"
    IBB = "Ibb, Yemen"
    HODEIDAH = "Hodeidah, Yemen"
    HADRAMOUT = "Hadramout, Yemen"
    SOCOTRA = "Socotra, Yemen"
    CALIFORNIA = "California, USA"
    NEW_ZEALAND = "New Zealand"
    AUSTRALIA = "Australia"
    MEDITERRANEAN = "Mediterranean Region"
    OTHER = "Other"


class FlowerType(str, Enum):
    SIDR = "sidr"
    ACACIA = "acacia"
    WILDFLOWER = "wildflower"
    ORANGE_BLOSSOM = "orange-blossom"
    MOUNTAIN_HERBS = "mountain-herbs"
    MANUKA = "manuka"
    LAVENDER = "lavender"
    CLOVER = "clover"
    OTHER = "other"


FLOWER_TYPE_LABELS: Dict[str, str] = {
    FlowerType.SIDR.value: "Sidr",
    FlowerType.ACACIA.value: "Acacia",
    FlowerType.WILDFLOWER.value: "Wildflower",
    FlowerType.ORANGE_BLOSSOM.value: "Orange Blossom",
    FlowerType.MOUNTAIN_HERBS.value: "Mountain Herbs",
    FlowerType.MANUKA.value: "Manuka",
    FlowerType.LAVENDER.value: "Lavender",
    FlowerType.CLOVER.value: "Clover",
    FlowerType.OTHER.value: "Other",
}


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class UserRole(str, Enum):
    ADMIN = "admin"
    BEEKEEPER = "beekeeper"


# Authentication Models
class LoginRequest(BaseModel):
    username: str = Field(..., min_length=3)
    password: str = Field(..., min_length=6)

class LoginResponse(BaseModel):
    success: bool
    token: str
    user: dict
    message: str

class UserInfo(BaseModel):
    username: str
    role: UserRole
    walletAddress: Optional[str] = None

class WalletConnectRequest(BaseModel):
    walletAddress: str = Field(..., description="0x-prefixed account address")

    @field_validator("walletAddress")
    @classmethod
    def _check_address(cls, value: str) -> str:
        value = value.strip()
        if not is_valid_address(value):
            raise ValueError("walletAddress must be a 42 character 0x-prefixed address")
        if value == ZERO_ADDRESS:
            raise ValueError("walletAddress cannot be the zero address")
        return value


# Request Models
class CreateHoneyBatchRequest(BaseModel):
    beekeeperName: str = Field(..., min_length=2, description="Beekeeper or apiary name")
    region: Region = Field(..., description="Harvest region")
    flowerType: FlowerType = Field(..., description="Dominant nectar source")
    harvestDate: date = Field(..., description="Harvest date (YYYY-MM-DD)")
    description: Optional[str] = Field("", description="Free-text notes")
    batchId: Optional[str] = Field(None, max_length=64, description="Identifier; generated when omitted")

    @field_validator("beekeeperName")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        value = value.strip()
        if len(value) < 2:
            raise ValueError("Beekeeper name must be at least 2 characters")
        return value

    @field_validator("harvestDate")
    @classmethod
    def _check_harvest_date(cls, value: date) -> date:
        if value > utc_today():
            raise ValueError("Harvest date cannot be in the future")
        if value < EARLIEST_HARVEST_DATE:
            raise ValueError("Harvest date cannot be before 2020-01-01")
        return value

    @field_validator("batchId")
    @classmethod
    def _blank_batch_id(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        return value.strip() or None


class HoneyRecordRequest(BaseModel):
    """Direct write into the record store, keyed by batchId."""
    batchId: str = Field(..., min_length=1, max_length=64)
    beekeeperName: str = Field(..., min_length=1)
    flowerType: str = Field(..., min_length=1)
    region: str = Field(..., min_length=1)
    harvestDate: Optional[date] = None
    description: Optional[str] = ""
    qrCodeUrl: Optional[str] = None
    certificateHash: Optional[str] = None


# Record Store rows
class HoneyRecord(BaseModel):
    batch_id: str
    beekeeper_name: str
    harvest_date: Optional[date] = None
    flower_type: str
    description: Optional[str] = ""
    region: str
    qr_code_url: Optional[str] = None
    certificate_hash: Optional[str] = None
    created_at: datetime

class Pagination(BaseModel):
    total: int
    limit: int
    offset: int

class HoneyRecordResponse(BaseModel):
    success: bool = True
    data: HoneyRecord

class HoneyListResponse(BaseModel):
    success: bool = True
    data: List[HoneyRecord]
    pagination: Pagination


# Verification Models
class BatchRecord(BaseModel):
    """One batch normalized from either the record store or the ledger."""
    displayId: str
    beekeeperName: str = ""
    region: str = ""
    flowerType: str = ""
    harvestDate: str = ""
    description: Optional[str] = None
    farmer: Optional[str] = None
    timestamp: Optional[str] = None
    blockchainTxHash: Optional[str] = None
    exists: bool = True

class VerificationVerdict(BaseModel):
    isAuthentic: bool
    isRegisteredFarmer: bool
    blockchainVerified: bool
    timestampValid: bool
    detailsValid: bool
    riskLevel: RiskLevel
    warnings: List[str] = Field(default_factory=list)

class VerificationResponse(BaseModel):
    success: bool = True
    batchId: str
    source: str = Field(..., description="Which store answered: database or blockchain")
    record: BatchRecord
    verdict: VerificationVerdict
    flowerTypeLabel: Optional[str] = None
    explorerUrl: Optional[str] = None

class LedgerVerifyResponse(BaseModel):
    batchId: str
    verified: bool

class FarmerBatchesResponse(BaseModel):
    farmer: str
    batchIds: List[str]


# Submission Models
class BatchIdResponse(BaseModel):
    batchId: str

class SubmissionResponse(BaseModel):
    success: bool = True
    message: str
    displayId: str
    transactionHash: str
    explorerUrl: Optional[str] = None
    farmer: str = Field(..., description="On-chain sender recorded as the batch farmer")
    walletAddress: str = Field(..., description="Wallet connected to the submitting session")
    timestamp: datetime
    qrCodeUrl: str
    qrImageBase64: Optional[str] = None
    mirrored: bool = Field(..., description="Whether the record store accepted the mirror write")


class QRCodeResponse(BaseModel):
    batchId: str
    payload: str
    qrImageBase64: str


class SyncResponse(BaseModel):
    success: bool = True
    scanned: int
    inserted: int
    failed: int


class FlowerTypeOption(BaseModel):
    value: str
    label: str

class OptionsResponse(BaseModel):
    regions: List[str]
    flowerTypes: List[FlowerTypeOption]


# Response Models
class SuccessResponse(BaseModel):
    success: bool = True
    message: str
