#!/usr/bin/env python3
"""
Utility functions for the honey provenance backend
"""
import re
from datetime import date, datetime, timezone
from typing import Optional
from config import settings

# Placeholder farmer for records that only exist in the relational store
ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def is_valid_transaction_hash(tx_hash: str) -> bool:
    """
    Validate if a transaction hash is a valid Ethereum transaction hash
    """
    if not tx_hash:
        return False

    # Check if it's a valid hex string starting with 0x and 64 characters long
    pattern = r'^0x[a-fA-F0-9]{64}$'
    return bool(re.match(pattern, tx_hash))


def is_valid_address(address: Optional[str]) -> bool:
    """Check for a 0x-prefixed, 40 hex digit account address."""
    if not address:
        return False
    return bool(re.match(r'^0x[a-fA-F0-9]{40}$', address))


def generate_explorer_url(tx_hash: str) -> Optional[str]:
    """
    Generate explorer URL for a transaction hash
    Returns None if the transaction hash is invalid or no explorer is configured
    """
    if not settings.EXPLORER_TX_URL or not is_valid_transaction_hash(tx_hash):
        return None

    return f"{settings.EXPLORER_TX_URL.rstrip('/')}/{tx_hash}"


def format_transaction_hash_display(tx_hash: Optional[str]) -> str:
    """
    Format transaction hash for display
    """
    if not tx_hash:
        return "N/A"

    if is_valid_transaction_hash(tx_hash):
        # Show first 6 and last 4 characters
        return f"{tx_hash[:6]}...{tx_hash[-4:]}"
    return tx_hash


def verify_url(batch_id: str) -> str:
    """Consumer URL that a batch QR code points to."""
    return f"{settings.PUBLIC_BASE_URL.rstrip('/')}/verify?id={batch_id}"


def utc_today() -> date:
    """Current date in UTC, shared by submission validation and verification."""
    return datetime.now(timezone.utc).date()


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 string, returning None when it cannot be parsed.

    Naive values are taken as UTC, and a trailing ``Z`` is accepted.
    """
    if not value or not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_date(value: Optional[str]) -> Optional[date]:
    """Parse ``YYYY-MM-DD`` or a full ISO datetime into a date."""
    if not value or not isinstance(value, str):
        return None
    text = value.strip()
    try:
        return date.fromisoformat(text)
    except ValueError:
        parsed = parse_iso_datetime(text)
        return parsed.date() if parsed else None


def to_iso(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")
