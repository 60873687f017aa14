"""Tests for TokenomicsReportRenderer.

Runs the domain blocks on a small tokenized asset, renders the workbook and
reads it back with openpyxl to check layout, values and styling.
"""

from datetime import date
from decimal import Decimal

import pytest
from openpyxl import load_workbook

from tokenomics_domain.blocks import (
    BlockContext,
    BlockExecutor,
    ConcentrationBlock,
    DistributionBlock,
    SupplyBlock,
    VestingBlock,
)
from tokenomics_domain.engine import DistributionEngine, SupplyCalculator, VestingEngine
from tokenomics_domain.interfaces import TransferResult
from tokenomics_domain.schemas import (
    FractionalizationParams,
    OwnershipPosition,
    ReportCFG,
    SupplyAdjustment,
    TaxRates,
)
from tokenomics_excel import TokenomicsReportRenderer


# =============================================================================
# Test Data Builders
# =============================================================================

class StaticDirectory:
    def get_current_ownership(self, asset_id):
        return [
            OwnershipPosition(owner_address="0xaaa", ownership_percentage=Decimal("50"), jurisdiction="US"),
            OwnershipPosition(owner_address="0xbbb", ownership_percentage=Decimal("30"), jurisdiction="DE"),
            OwnershipPosition(owner_address="0xccc", ownership_percentage=Decimal("20")),
        ]


class RejectingLedger:
    """Pays everyone except 0xbbb."""

    def transfer(self, recipient, amount, currency, request_id):
        if recipient == "0xbbb":
            return TransferResult(success=False, error="insufficient gas")
        return TransferResult(success=True, transaction_ref=f"tx-{request_id}")


def build_context() -> BlockContext:
    calc = SupplyCalculator()
    supply = calc.calculate_supply(
        Decimal("1000000"), "fixed_price", FractionalizationParams(target_token_price=Decimal("10"))
    )
    calc.adjust_supply(supply, SupplyAdjustment(type="unlock", amount=1_781, reason="TGE"))

    vesting = VestingEngine()
    vesting.create_schedule(
        "team", "0xteam", 12_000, date(2024, 1, 1), date(2027, 12, 31),
        cliff_date=date(2024, 12, 31), name="Team",
    )

    run = DistributionEngine(StaticDirectory(), RejectingLedger()).execute(
        "warehouse-7", Decimal("10000"), "USD", TaxRates.flat(Decimal("0.15")),
        as_of=date(2024, 12, 1), run_id="q3",
    )

    context = BlockContext()
    context.set("token_supply", supply)
    context.set("vesting_schedules", list(vesting.schedules.values()))
    context.set("ownership_snapshot", run.snapshot)
    context.set("distribution_run", run)
    BlockExecutor([
        SupplyBlock(),
        VestingBlock(as_of=date(2025, 3, 31)),
        ConcentrationBlock(),
        DistributionBlock(),
    ]).execute(context)
    return context


def find_row(sheet, value, column=1):
    for row in range(1, sheet.max_row + 1):
        if sheet.cell(row=row, column=column).value == value:
            return row
    raise AssertionError(f"{value!r} not found in column {column} of {sheet.title}")


@pytest.fixture(scope="module")
def context():
    return build_context()


@pytest.fixture
def workbook(context, tmp_path):
    path = tmp_path / "warehouse7.xlsx"
    TokenomicsReportRenderer(ReportCFG(title="Warehouse 7"), context).render(str(path))
    return load_workbook(path)


# =============================================================================
# Layout
# =============================================================================

def test_sheets_in_configured_order(workbook):
    assert workbook.sheetnames == ["Supply", "Vesting", "Concentration", "Distribution"]


def test_sheet_subset(context, tmp_path):
    path = tmp_path / "subset.xlsx"
    config = ReportCFG(title="Warehouse 7", sheets=["distribution", "supply"])
    TokenomicsReportRenderer(config, context).render(str(path))

    assert load_workbook(path).sheetnames == ["Distribution", "Supply"]


def test_title_row(workbook):
    assert workbook["Supply"]["A1"].value == "Warehouse 7 - Supply"
    assert workbook["Distribution"]["A1"].value == "Warehouse 7 - Distribution"
    assert workbook["Supply"]["A1"].font.bold


def test_missing_block_output(tmp_path):
    with pytest.raises(KeyError):
        TokenomicsReportRenderer(ReportCFG(title="x", sheets=["supply"]), BlockContext()).build_workbook()


# =============================================================================
# Values
# =============================================================================

def test_supply_summary_values(workbook):
    sheet = workbook["Supply"]
    assert sheet["A3"].value == "Supply Summary"

    row = find_row(sheet, "Total Supply")
    assert sheet.cell(row=row, column=2).value == 117_810
    assert sheet.cell(row=find_row(sheet, "Circulating Supply"), column=2).value == 1_781
    assert sheet.cell(row=find_row(sheet, "Method"), column=2).value == "fixed_price"


def test_adjustment_ledger_table(workbook):
    sheet = workbook["Supply"]
    header = find_row(sheet, "Adjustment Ledger") + 1

    assert sheet.cell(row=header, column=1).value == "Timestamp"
    assert sheet.cell(row=header + 1, column=2).value == "unlock"
    assert sheet.freeze_panes == f"A{header + 1}"


def test_distribution_tables(workbook):
    sheet = workbook["Distribution"]

    assert sheet.cell(row=find_row(sheet, "Failed"), column=2).value == 1
    assert sheet.cell(row=find_row(sheet, "Distributed Net"), column=2).value == pytest.approx(5_950)

    tax_header = find_row(sheet, "Tax by Jurisdiction") + 1
    assert [sheet.cell(row=tax_header + i, column=1).value for i in (1, 2, 3)] == [
        "US", "DE", "unspecified",
    ]

    header = find_row(sheet, "Recipient Records") + 1
    assert sheet.cell(row=header, column=1).value == "Recipient Address"
    assert sheet.cell(row=header, column=3).value == "Ownership %"
    assert [sheet.cell(row=header + i, column=1).value for i in (1, 2, 3)] == [
        "0xaaa", "0xbbb", "0xccc",
    ]


def test_concentration_metrics(workbook):
    sheet = workbook["Concentration"]

    hhi = sheet.cell(row=find_row(sheet, "Herfindahl Index"), column=2)
    assert hhi.value == pytest.approx(0.38)
    assert hhi.number_format == "0.0000"
    assert sheet.cell(row=find_row(sheet, "Risk Level"), column=2).value == "critical"


def test_vesting_overview(workbook):
    sheet = workbook["Vesting"]
    header = find_row(sheet, "Schedules") + 1

    columns = [sheet.cell(row=header, column=c).value for c in range(1, 13)]
    vested_col = columns.index("Vested Amount") + 1
    # Cliff plus three 30-day entries by 2025-03-31
    assert sheet.cell(row=header + 1, column=vested_col).value == 3_750


# =============================================================================
# Styling
# =============================================================================

def test_table_header_style(workbook):
    sheet = workbook["Distribution"]
    cell = sheet.cell(row=find_row(sheet, "Recipient Records") + 1, column=1)

    assert cell.font.bold
    assert cell.fill.fgColor.rgb.endswith("1F4E78")


def test_failed_rows_highlighted(workbook):
    sheet = workbook["Distribution"]
    header = find_row(sheet, "Recipient Records") + 1

    assert sheet.cell(row=header + 2, column=1).fill.fgColor.rgb.endswith("FCE4D6")
    assert not sheet.cell(row=header + 1, column=1).fill.fgColor.rgb.endswith("FCE4D6")


def test_money_format(workbook):
    sheet = workbook["Distribution"]
    header = find_row(sheet, "Recipient Records") + 1
    entitled_col = [sheet.cell(row=header, column=c).value for c in range(1, 11)].index("Entitled Amount") + 1

    cell = sheet.cell(row=header + 1, column=entitled_col)
    assert cell.value == pytest.approx(5_000)
    assert cell.number_format == "#,##0.00"
