"""Distribution computation block.

Output DataFrames:
- distribution_records: One row per recipient
- distribution_summary: One row of run totals and counts
- tax_by_jurisdiction: Withholding aggregated by jurisdiction
"""

from typing import List

import pandas as pd

from .base import Block, BlockContext
from ..engine.distribution import UNSPECIFIED_JURISDICTION
from ..schemas import DistributionRun


RECORD_COLUMNS = [
    "recipient_address",
    "jurisdiction",
    "ownership_pct",
    "entitled_amount",
    "tax_rate",
    "tax_withheld",
    "net_amount",
    "status",
    "transaction_ref",
    "failure_reason",
]

TAX_COLUMNS = ["jurisdiction", "recipients", "entitled_amount", "tax_withheld", "net_amount"]


class DistributionBlock(Block):
    """Converts a DistributionRun into DataFrames.

    Inputs (from context):
        - distribution_run: DistributionRun

    Outputs (to context):
        - distribution_records: sorted by entitled_amount descending
        - distribution_summary
        - tax_by_jurisdiction: computed from records, so failed and pending
          records are included at their computed withholding
    """

    def __init__(self, run_key: str = "distribution_run"):
        self.run_key = run_key

    def inputs(self) -> List[str]:
        return [self.run_key]

    def outputs(self) -> List[str]:
        return ["distribution_records", "distribution_summary", "tax_by_jurisdiction"]

    def execute(self, context: BlockContext) -> None:
        run: DistributionRun = context.get(self.run_key)

        records = self._records(run)
        context.set("distribution_records", records)
        context.set("distribution_summary", self._summary(run))
        context.set("tax_by_jurisdiction", self._tax_by_jurisdiction(records))

    def _records(self, run: DistributionRun) -> pd.DataFrame:
        rows = [
            {
                "recipient_address": r.recipient_address,
                "jurisdiction": r.jurisdiction or UNSPECIFIED_JURISDICTION,
                "ownership_pct": float(r.ownership_percentage),
                "entitled_amount": float(r.entitled_amount),
                "tax_rate": float(r.tax_rate),
                "tax_withheld": float(r.tax_withheld),
                "net_amount": float(r.net_amount),
                "status": r.status,
                "transaction_ref": r.transaction_ref,
                "failure_reason": r.failure_reason,
            }
            for r in run.records
        ]
        df = pd.DataFrame(rows, columns=RECORD_COLUMNS)
        if not df.empty:
            df = df.sort_values(
                ["entitled_amount", "recipient_address"], ascending=[False, True]
            ).reset_index(drop=True)
        return df

    def _summary(self, run: DistributionRun) -> pd.DataFrame:
        return pd.DataFrame([{
            "run_id": run.id,
            "asset_id": run.asset_id,
            "method": run.method,
            "status": run.status,
            "currency": run.currency,
            "as_of": run.as_of,
            "distributable_amount": float(run.distributable_amount),
            "total_entitled": float(run.total_entitled),
            "total_tax_withheld": float(run.total_tax_withheld),
            "total_net": float(run.total_net),
            "distributed_net": float(run.distributed_net),
            "recipients": len(run.records),
            "distributed": run.successful_count,
            "failed": run.failed_count,
            "pending": run.pending_count,
        }])

    def _tax_by_jurisdiction(self, records: pd.DataFrame) -> pd.DataFrame:
        if records.empty:
            return pd.DataFrame(columns=TAX_COLUMNS)

        grouped = records.groupby("jurisdiction").agg(
            recipients=("recipient_address", "count"),
            entitled_amount=("entitled_amount", "sum"),
            tax_withheld=("tax_withheld", "sum"),
            net_amount=("net_amount", "sum"),
        ).reset_index()
        return grouped.sort_values("tax_withheld", ascending=False).reset_index(drop=True)[TAX_COLUMNS]
