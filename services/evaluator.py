"""Authenticity assessment for a single honey batch record.

The evaluator is a pure function of the record (plus the reference "now" used
for the harvest date check). It never raises on malformed data: every failed
check becomes a warning and, for most checks, a step up in risk.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional

from schemas import BatchRecord, RiskLevel, VerificationVerdict
from utils import EPOCH, ZERO_ADDRESS, parse_date, parse_iso_datetime, utc_today

EARLIEST_HARVEST = date(2020, 1, 1)
MIN_BEEKEEPER_NAME_LENGTH = 2
MAX_DESCRIPTION_LENGTH = 1000

WARNING_NOT_FOUND = "This batch ID is not found on the blockchain or database"
WARNING_FARMER = "Invalid farmer registration detected"
WARNING_TIMESTAMP = "Invalid timestamp detected"
WARNING_HARVEST_DATE = "Harvest date appears to be invalid"
WARNING_MISSING_DETAILS = "Missing required batch information"
WARNING_SHORT_NAME = "Beekeeper name appears to be too short"
WARNING_LONG_DESCRIPTION = "Description is unusually long"


def escalate(level: RiskLevel) -> RiskLevel:
    """low -> medium, anything already elevated -> high."""
    return RiskLevel.MEDIUM if level == RiskLevel.LOW else RiskLevel.HIGH


def is_blockchain_verified(record: BatchRecord) -> bool:
    return bool(record.exists and record.farmer and record.farmer != ZERO_ADDRESS)


def is_registered_farmer(record: BatchRecord) -> bool:
    farmer = record.farmer or ""
    return is_blockchain_verified(record) and len(farmer) == 42 and farmer.startswith("0x")


def is_database_record(record: BatchRecord) -> bool:
    return record.farmer == ZERO_ADDRESS


def is_timestamp_valid(record: BatchRecord) -> bool:
    parsed = parse_iso_datetime(record.timestamp)
    return parsed is not None and parsed > EPOCH


def is_harvest_date_valid(record: BatchRecord, today: date) -> bool:
    harvested = parse_date(record.harvestDate)
    return harvested is not None and EARLIEST_HARVEST <= harvested <= today


def has_required_details(record: BatchRecord) -> bool:
    return all([record.beekeeperName, record.region, record.flowerType, record.harvestDate])


def evaluate(record: BatchRecord, now: Optional[datetime] = None) -> VerificationVerdict:
    """Combine the integrity checks for ``record`` into a verdict."""
    today = now.date() if now else utc_today()

    blockchain_verified = is_blockchain_verified(record)
    registered_farmer = is_registered_farmer(record)
    database_record = is_database_record(record)
    timestamp_valid = is_timestamp_valid(record)
    harvest_date_valid = is_harvest_date_valid(record, today)
    details_valid = has_required_details(record)

    risk = RiskLevel.LOW
    warnings: List[str] = []

    if not blockchain_verified and not database_record:
        warnings.append(WARNING_NOT_FOUND)
        risk = RiskLevel.HIGH

    if not registered_farmer and not database_record:
        warnings.append(WARNING_FARMER)
        risk = escalate(risk)

    if not timestamp_valid:
        warnings.append(WARNING_TIMESTAMP)
        risk = escalate(risk)

    if not harvest_date_valid:
        warnings.append(WARNING_HARVEST_DATE)
        risk = escalate(risk)

    if not details_valid:
        warnings.append(WARNING_MISSING_DETAILS)
        risk = escalate(risk)

    if record.beekeeperName and len(record.beekeeperName) < MIN_BEEKEEPER_NAME_LENGTH:
        warnings.append(WARNING_SHORT_NAME)
        risk = escalate(risk)

    # Informational only, no escalation
    if record.description and len(record.description) > MAX_DESCRIPTION_LENGTH:
        warnings.append(WARNING_LONG_DESCRIPTION)

    is_authentic = (
        ((blockchain_verified and registered_farmer) or database_record)
        and timestamp_valid
        and harvest_date_valid
        and details_valid
    )

    return VerificationVerdict(
        isAuthentic=is_authentic,
        isRegisteredFarmer=registered_farmer,
        blockchainVerified=blockchain_verified,
        timestampValid=timestamp_valid,
        detailsValid=details_valid,
        riskLevel=risk,
        warnings=warnings,
    )
