"""Tests for structured logging."""

import json
from datetime import date
from decimal import Decimal

import pytest
import structlog
from structlog.testing import capture_logs

from tokenomics_domain.engine import DistributionEngine, SupplyCalculator
from tokenomics_domain.log_config import configure_logging
from tokenomics_domain.schemas import DistributionCFG, FractionalizationParams, TaxRates


@pytest.fixture(autouse=True)
def reset_structlog():
    yield
    structlog.reset_defaults()


def calculate():
    return SupplyCalculator().calculate_supply(
        Decimal("1000000"), "fixed_price", FractionalizationParams(target_token_price=Decimal("10"))
    )


def test_json_output(capsys):
    configure_logging("DEBUG", json_output=True)
    calculate()

    lines = [json.loads(line) for line in capsys.readouterr().out.splitlines() if line]
    event = next(line for line in lines if line["event"] == "supply_calculated")
    assert event["level"] == "info"
    assert event["final_supply"] == 117_810
    assert event["timestamp"].endswith("Z")


def test_level_filtering(capsys):
    configure_logging("WARNING", json_output=True)
    calculate()

    assert capsys.readouterr().out == ""


def test_unknown_level():
    with pytest.raises(ValueError):
        configure_logging("LOUD")


def test_failed_transfer_is_logged(directory, ledger):
    ledger.reject.add("0xccc")
    engine = DistributionEngine(directory, ledger, DistributionCFG(max_workers=1))

    with capture_logs() as logs:
        engine.execute(
            "asset-1", Decimal("100"), "USD", TaxRates.flat(Decimal("0")),
            as_of=date(2024, 12, 1), run_id="run-1",
        )

    failures = [e for e in logs if e["event"] == "distribution_transfer_failed"]
    assert failures == [{
        "event": "distribution_transfer_failed",
        "log_level": "warning",
        "run_id": "run-1",
        "recipient": "0xccc",
        "amount": "20.00",
        "reason": "insufficient gas",
    }]
    assert [e["event"] for e in logs][-1] == "distribution_completed"
