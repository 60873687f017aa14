"""Supply computation block.

Output DataFrames:
- supply_summary: One row of supply counters and derivation inputs
- supply_adjustments: Adjustment ledger with running total supply
"""

from typing import List

import pandas as pd

from .base import Block, BlockContext
from ..schemas import TokenSupply


SUMMARY_COLUMNS = [
    "total_supply",
    "circulating_supply",
    "reserved_supply",
    "burned_supply",
    "unallocated_supply",
    "max_supply",
    "method",
    "asset_value",
    "token_price",
    "calculated_supply",
]

ADJUSTMENT_COLUMNS = [
    "timestamp",
    "type",
    "amount",
    "reason",
    "authorized_by",
    "total_supply_after",
]


class SupplyBlock(Block):
    """Converts a TokenSupply into summary and ledger DataFrames.

    Inputs (from context):
        - token_supply: TokenSupply

    Outputs (to context):
        - supply_summary: single row, columns SUMMARY_COLUMNS
        - supply_adjustments: one row per adjustment in ledger order, with
          total_supply_after replayed from the initial supply
    """

    def __init__(self, supply_key: str = "token_supply"):
        self.supply_key = supply_key

    def inputs(self) -> List[str]:
        return [self.supply_key]

    def outputs(self) -> List[str]:
        return ["supply_summary", "supply_adjustments"]

    def execute(self, context: BlockContext) -> None:
        supply: TokenSupply = context.get(self.supply_key)
        context.set("supply_summary", self._summary(supply))
        context.set("supply_adjustments", self._adjustments(supply))

    def _summary(self, supply: TokenSupply) -> pd.DataFrame:
        calc = supply.calculation
        row = {
            "total_supply": supply.total_supply,
            "circulating_supply": supply.circulating_supply,
            "reserved_supply": supply.reserved_supply,
            "burned_supply": supply.burned_supply,
            "unallocated_supply": supply.unallocated_supply,
            "max_supply": supply.max_supply,
            "method": calc.method if calc else None,
            "asset_value": float(calc.asset_value) if calc else None,
            "token_price": float(calc.token_price) if calc else None,
            "calculated_supply": calc.calculated_supply if calc else None,
        }
        return pd.DataFrame([row], columns=SUMMARY_COLUMNS)

    def _adjustments(self, supply: TokenSupply) -> pd.DataFrame:
        if not supply.adjustments:
            return pd.DataFrame(columns=ADJUSTMENT_COLUMNS)

        # Replay backwards from the current total to get the opening total
        total = supply.total_supply
        for adj in supply.adjustments:
            if adj.type == "mint":
                total -= adj.amount
            elif adj.type == "burn":
                total += adj.amount

        rows = []
        for adj in supply.adjustments:
            if adj.type == "mint":
                total += adj.amount
            elif adj.type == "burn":
                total -= adj.amount
            rows.append({
                "timestamp": adj.timestamp,
                "type": adj.type,
                "amount": adj.amount,
                "reason": adj.reason,
                "authorized_by": adj.authorized_by,
                "total_supply_after": total,
            })
        return pd.DataFrame(rows, columns=ADJUSTMENT_COLUMNS)
