import pytest

from schemas import RiskLevel
from services.evaluator import (
    WARNING_FARMER,
    WARNING_HARVEST_DATE,
    WARNING_LONG_DESCRIPTION,
    WARNING_MISSING_DETAILS,
    WARNING_NOT_FOUND,
    WARNING_SHORT_NAME,
    WARNING_TIMESTAMP,
    escalate,
    evaluate,
)
from utils import ZERO_ADDRESS

from conftest import FARMER, NOW, database_record, ledger_record

RISK_ORDER = [RiskLevel.LOW, RiskLevel.MEDIUM, RiskLevel.HIGH]


def test_database_record_with_valid_fields_is_authentic_and_low_risk():
    verdict = evaluate(database_record(), now=NOW)

    assert verdict.isAuthentic is True
    assert verdict.riskLevel == RiskLevel.LOW
    assert verdict.warnings == []
    assert verdict.blockchainVerified is False
    assert verdict.isRegisteredFarmer is False
    assert verdict.timestampValid is True
    assert verdict.detailsValid is True


def test_ledger_record_with_registered_farmer_is_authentic():
    verdict = evaluate(ledger_record(), now=NOW)

    assert verdict.isAuthentic is True
    assert verdict.blockchainVerified is True
    assert verdict.isRegisteredFarmer is True
    assert verdict.riskLevel == RiskLevel.LOW
    assert verdict.warnings == []


def test_future_harvest_date_blocks_authenticity():
    verdict = evaluate(database_record(harvestDate="2025-07-15"), now=NOW)

    assert verdict.isAuthentic is False
    assert verdict.riskLevel in (RiskLevel.MEDIUM, RiskLevel.HIGH)
    assert WARNING_HARVEST_DATE in verdict.warnings


def test_harvest_date_before_2020_is_invalid():
    verdict = evaluate(database_record(harvestDate="2019-12-31"), now=NOW)

    assert verdict.isAuthentic is False
    assert verdict.warnings == [WARNING_HARVEST_DATE]


def test_harvest_date_boundaries_are_inclusive():
    assert evaluate(database_record(harvestDate="2020-01-01"), now=NOW).isAuthentic is True
    assert evaluate(database_record(harvestDate="2025-06-01"), now=NOW).isAuthentic is True


def test_short_beekeeper_name_warns_but_stays_authentic():
    record = database_record(
        displayId="HNY2025-001",
        beekeeperName="A",
        region="Sana'a, Yemen",
        flowerType="sidr",
        harvestDate="2024-05-01",
        timestamp="2024-05-02T00:00:00Z",
    )

    verdict = evaluate(record, now=NOW)

    assert verdict.warnings == [WARNING_SHORT_NAME]
    assert verdict.riskLevel == RiskLevel.MEDIUM
    assert verdict.isAuthentic is True


def test_unknown_farmer_forces_high_risk():
    verdict = evaluate(ledger_record(farmer=None), now=NOW)

    assert verdict.blockchainVerified is False
    assert verdict.riskLevel == RiskLevel.HIGH
    assert verdict.warnings[:2] == [WARNING_NOT_FOUND, WARNING_FARMER]
    assert verdict.isAuthentic is False


def test_record_marked_missing_is_not_blockchain_verified():
    verdict = evaluate(ledger_record(exists=False), now=NOW)

    assert verdict.blockchainVerified is False
    assert verdict.riskLevel == RiskLevel.HIGH


def test_malformed_address_keeps_predicates_independent():
    # 41 characters: present and non-zero, but not a registered farmer
    verdict = evaluate(ledger_record(farmer=FARMER[:-1]), now=NOW)

    assert verdict.blockchainVerified is True
    assert verdict.isRegisteredFarmer is False
    assert verdict.warnings == [WARNING_FARMER]
    assert verdict.riskLevel == RiskLevel.MEDIUM
    assert verdict.isAuthentic is False


@pytest.mark.parametrize("timestamp", [None, "", "yesterday", "1970-01-01T00:00:00Z"])
def test_bad_timestamps_are_invalid(timestamp):
    verdict = evaluate(database_record(timestamp=timestamp), now=NOW)

    assert verdict.timestampValid is False
    assert verdict.isAuthentic is False
    assert verdict.warnings == [WARNING_TIMESTAMP]


def test_unparseable_harvest_date_does_not_raise():
    verdict = evaluate(database_record(harvestDate="sometime in spring"), now=NOW)

    assert verdict.isAuthentic is False
    assert verdict.warnings == [WARNING_HARVEST_DATE]


def test_missing_details_warns_after_harvest_check():
    verdict = evaluate(database_record(region="", harvestDate=""), now=NOW)

    assert verdict.detailsValid is False
    assert verdict.warnings == [WARNING_HARVEST_DATE, WARNING_MISSING_DETAILS]
    assert verdict.riskLevel == RiskLevel.HIGH


def test_long_description_warns_without_escalating():
    verdict = evaluate(database_record(description="x" * 1001), now=NOW)

    assert verdict.warnings == [WARNING_LONG_DESCRIPTION]
    assert verdict.riskLevel == RiskLevel.LOW
    assert verdict.isAuthentic is True


def test_warning_order_follows_check_order():
    record = ledger_record(
        farmer=ZERO_ADDRESS[:-1],
        timestamp="garbage",
        harvestDate="",
        beekeeperName="B",
        description="y" * 2000,
    )

    verdict = evaluate(record, now=NOW)

    assert verdict.warnings == [
        WARNING_FARMER,
        WARNING_TIMESTAMP,
        WARNING_HARVEST_DATE,
        WARNING_MISSING_DETAILS,
        WARNING_SHORT_NAME,
        WARNING_LONG_DESCRIPTION,
    ]
    assert verdict.riskLevel == RiskLevel.HIGH


def test_risk_never_decreases_as_failures_accumulate():
    records = [
        database_record(),
        database_record(beekeeperName="A"),
        database_record(beekeeperName="A", timestamp=None),
        database_record(beekeeperName="A", timestamp=None, harvestDate="2030-01-01"),
    ]

    levels = [RISK_ORDER.index(evaluate(r, now=NOW).riskLevel) for r in records]

    assert levels == sorted(levels)
    assert levels[-1] == RISK_ORDER.index(RiskLevel.HIGH)


def test_escalation_steps():
    assert escalate(RiskLevel.LOW) == RiskLevel.MEDIUM
    assert escalate(RiskLevel.MEDIUM) == RiskLevel.HIGH
    assert escalate(RiskLevel.HIGH) == RiskLevel.HIGH


def test_evaluation_is_repeatable():
    record = ledger_record(beekeeperName="Z", harvestDate="2031-01-01")

    assert evaluate(record, now=NOW) == evaluate(record, now=NOW)
