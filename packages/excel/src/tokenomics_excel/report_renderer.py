"""Tokenomics report renderer.

Writes the DataFrames produced by the tokenomics blocks into a styled
workbook, one sheet per ReportCFG.sheets entry. Single-row summaries are
written as label/value pairs; everything else as a table with a dark header
row and thin borders.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Tuple

import pandas as pd
from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.worksheet import Worksheet

from tokenomics_domain.blocks import BlockContext
from tokenomics_domain.schemas import ReportCFG


# (context key, section title, layout) per sheet
SHEET_LAYOUT: Dict[str, Tuple[str, List[Tuple[str, str, str]]]] = {
    "supply": ("Supply", [
        ("supply_summary", "Supply Summary", "summary"),
        ("supply_adjustments", "Adjustment Ledger", "table"),
    ]),
    "vesting": ("Vesting", [
        ("vesting_overview", "Schedules", "table"),
        ("vesting_releases", "Release Entries", "table"),
    ]),
    "concentration": ("Concentration", [
        ("concentration_metrics", "Concentration Metrics", "summary"),
        ("concentration_risk_factors", "Risk Factors", "table"),
        ("ownership_distribution", "Ownership Distribution", "table"),
    ]),
    "distribution": ("Distribution", [
        ("distribution_summary", "Run Summary", "summary"),
        ("tax_by_jurisdiction", "Tax by Jurisdiction", "table"),
        ("distribution_records", "Recipient Records", "table"),
    ]),
}

MONEY_COLUMNS = {
    "asset_value",
    "token_price",
    "distributable_amount",
    "entitled_amount",
    "tax_withheld",
    "net_amount",
    "total_entitled",
    "total_tax_withheld",
    "total_net",
    "distributed_net",
}

TOKEN_COLUMNS = {
    "total_supply",
    "circulating_supply",
    "reserved_supply",
    "burned_supply",
    "unallocated_supply",
    "max_supply",
    "calculated_supply",
    "amount",
    "total_supply_after",
    "total_amount",
    "vested_amount",
    "claimed_amount",
    "claimable_amount",
    "unvested_amount",
    "cumulative_amount",
}

RATE_COLUMNS = {"tax_rate"}

INDEX_COLUMNS = {"herfindahl_index", "gini_coefficient", "diversification_index"}


def _label(column: str) -> str:
    return column.replace("_", " ").replace("pct", "%").title()


def _cell_value(value):
    """Convert pandas/numpy scalars into values openpyxl accepts."""
    if value is None or value is pd.NaT:
        return None
    if isinstance(value, pd.Timestamp):
        value = value.to_pydatetime()
    if isinstance(value, datetime):
        # Excel has no timezone support; values are UTC
        return value.replace(tzinfo=None)
    if isinstance(value, (str, bool, int, Decimal)):
        return value
    if hasattr(value, "dtype"):
        value = value.item()
    if isinstance(value, float) and pd.isna(value):
        return None
    return value


class TokenomicsReportRenderer:
    """Render block outputs to an Excel workbook.

    Example:
        context = BlockExecutor([SupplyBlock(), DistributionBlock()]).execute(context)
        renderer = TokenomicsReportRenderer(
            ReportCFG(title="Warehouse 7", sheets=["supply", "distribution"]),
            context,
        )
        renderer.render("warehouse7.xlsx")
    """

    def __init__(self, config: ReportCFG, context: BlockContext):
        self.config = config
        self.context = context

        self.title_font = Font(bold=True, size=14)
        self.bold_font = Font(bold=True)

        # Header styling
        self.header_font = Font(bold=True, color="FFFFFF")  # White text on dark blue
        self.header_fill = PatternFill(start_color="1F4E78", end_color="1F4E78", fill_type="solid")

        # Section header styling
        self.section_header_font = Font(italic=True, bold=True)
        self.section_header_fill = PatternFill(start_color="E7E6E6", end_color="E7E6E6", fill_type="solid")

        # Failed distribution rows
        self.failed_fill = PatternFill(start_color="FCE4D6", end_color="FCE4D6", fill_type="solid")

        self.thin_border = Border(
            left=Side(style='thin'),
            right=Side(style='thin'),
            top=Side(style='thin'),
            bottom=Side(style='thin')
        )
        self.center_align = Alignment(horizontal='center', vertical='center')

    def render(self, output_path: str) -> str:
        wb = self.build_workbook()
        wb.save(output_path)
        return output_path

    def build_workbook(self) -> Workbook:
        """Build the workbook in memory.

        Raises:
            KeyError: A configured sheet's DataFrames are missing from the context
        """
        wb = Workbook()
        wb.remove(wb.active)
        for sheet_key in self.config.sheets:
            self._render_sheet(wb, sheet_key)
        return wb

    # ------------------------------------------------------------------ #
    # Sheets
    # ------------------------------------------------------------------ #

    def _render_sheet(self, wb: Workbook, sheet_key: str) -> None:
        sheet_name, sections = SHEET_LAYOUT[sheet_key]
        sheet = wb.create_sheet(sheet_name)

        title = sheet.cell(row=1, column=1, value=f"{self.config.title} - {sheet_name}")
        title.font = self.title_font

        row = 3
        first_table_header = None
        for key, section_title, layout in sections:
            df: pd.DataFrame = self.context.get(key)
            self._write_section_header(sheet, row, section_title, max(len(df.columns), 2))
            row += 1
            if layout == "summary":
                row = self._write_summary(sheet, row, df)
            else:
                if first_table_header is None:
                    first_table_header = row
                row = self._write_table(sheet, row, df)
            row += 1

        if self.config.freeze_header and first_table_header is not None:
            sheet.freeze_panes = f"A{first_table_header + 1}"

        self._fit_columns(sheet)

    def _write_section_header(self, sheet: Worksheet, row: int, text: str, width: int) -> None:
        for col in range(1, width + 1):
            cell = sheet.cell(row=row, column=col)
            cell.fill = self.section_header_fill
        cell = sheet.cell(row=row, column=1, value=text)
        cell.font = self.section_header_font

    def _write_summary(self, sheet: Worksheet, row: int, df: pd.DataFrame) -> int:
        """Label/value pairs from the first row of df."""
        if df.empty:
            sheet.cell(row=row, column=1, value="(none)")
            return row + 1

        record = df.iloc[0]
        for column in df.columns:
            label = sheet.cell(row=row, column=1, value=_label(column))
            label.font = self.bold_font
            label.border = self.thin_border
            value = sheet.cell(row=row, column=2, value=_cell_value(record[column]))
            value.border = self.thin_border
            self._format(value, column)
            row += 1
        return row

    def _write_table(self, sheet: Worksheet, row: int, df: pd.DataFrame) -> int:
        for col_idx, column in enumerate(df.columns, start=1):
            cell = sheet.cell(row=row, column=col_idx, value=_label(column))
            cell.font = self.header_font
            cell.fill = self.header_fill
            cell.alignment = self.center_align
            cell.border = self.thin_border
        row += 1

        if df.empty:
            sheet.cell(row=row, column=1, value="(none)")
            return row + 1

        status_idx = list(df.columns).index("status") if "status" in df.columns else None
        for values in df.itertuples(index=False, name=None):
            failed = status_idx is not None and values[status_idx] == "failed"
            for col_idx, (column, value) in enumerate(zip(df.columns, values), start=1):
                cell = sheet.cell(row=row, column=col_idx, value=_cell_value(value))
                cell.border = self.thin_border
                if failed:
                    cell.fill = self.failed_fill
                self._format(cell, column)
            row += 1
        return row

    def _format(self, cell, column: str) -> None:
        if column in MONEY_COLUMNS:
            cell.number_format = self.config.currency_format
        elif column in TOKEN_COLUMNS:
            cell.number_format = self.config.token_format
        elif column in RATE_COLUMNS:
            cell.number_format = '0.0%'
        elif column in INDEX_COLUMNS:
            cell.number_format = '0.0000'
        elif column.endswith("_pct") or column == "percentage":
            cell.number_format = '0.00'
        elif column.endswith("date") or column in ("as_of", "timestamp", "taken_at"):
            cell.number_format = 'yyyy-mm-dd'

    def _fit_columns(self, sheet: Worksheet) -> None:
        widths: Dict[int, int] = {}
        for row in sheet.iter_rows(min_row=3):
            for cell in row:
                if cell.value is None:
                    continue
                widths[cell.column] = max(widths.get(cell.column, 0), len(str(cell.value)))
        for column, width in widths.items():
            sheet.column_dimensions[get_column_letter(column)].width = min(max(width + 2, 10), 50)
