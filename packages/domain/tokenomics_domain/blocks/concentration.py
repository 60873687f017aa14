"""Concentration computation block.

Output DataFrames:
- ownership_distribution: Positions sorted by percentage with cumulative share
- concentration_metrics: One row of HHI, Gini, level and risk
- concentration_risk_factors: Triggered risk factors
"""

from typing import List

import pandas as pd

from .base import Block, BlockContext
from ..engine.concentration import ConcentrationAnalyzer
from ..schemas import OwnershipSnapshot


class ConcentrationBlock(Block):
    """Inputs: ownership_snapshot (OwnershipSnapshot)."""

    def __init__(self, snapshot_key: str = "ownership_snapshot"):
        self.snapshot_key = snapshot_key
        self.analyzer = ConcentrationAnalyzer()

    def inputs(self) -> List[str]:
        return [self.snapshot_key]

    def outputs(self) -> List[str]:
        return [
            "ownership_distribution",
            "concentration_metrics",
            "concentration_risk_factors",
        ]

    def execute(self, context: BlockContext) -> None:
        snapshot: OwnershipSnapshot = context.get(self.snapshot_key)
        risk = self.analyzer.assess_risk(snapshot)
        metrics = risk.concentration

        positions = pd.DataFrame(
            [
                {
                    "owner_address": p.owner_address,
                    "ownership_pct": float(p.ownership_percentage),
                    "jurisdiction": p.jurisdiction,
                    "acquisition_date": p.acquisition_date,
                }
                for p in snapshot.positions
            ],
            columns=["owner_address", "ownership_pct", "jurisdiction", "acquisition_date"],
        )
        positions = positions.sort_values(
            ["ownership_pct", "owner_address"], ascending=[False, True]
        ).reset_index(drop=True)
        positions["cumulative_pct"] = positions["ownership_pct"].cumsum()
        positions["rank"] = range(1, len(positions) + 1)
        context.set("ownership_distribution", positions)

        row = {
            "asset_id": snapshot.asset_id,
            "taken_at": snapshot.taken_at,
            "owner_count": metrics.owner_count,
            "herfindahl_index": metrics.herfindahl_index,
            "gini_coefficient": metrics.gini_coefficient,
            "largest_owner_pct": metrics.largest_owner_percentage,
            "diversification_index": metrics.diversification_index,
            "concentration_level": metrics.concentration_level,
            "risk_score": risk.risk_score,
            "risk_level": risk.risk_level,
        }
        row.update({f"holders_{size}": count for size, count in risk.holders_by_size.items()})
        context.set("concentration_metrics", pd.DataFrame([row]))

        context.set(
            "concentration_risk_factors",
            pd.DataFrame(
                [f.model_dump() for f in risk.risk_factors],
                columns=["factor", "impact", "score", "mitigation"],
            ),
        )
