"""Vesting computation block.

Output DataFrames:
- vesting_overview: One row per schedule with vested/claimed/claimable amounts
- vesting_releases: One row per release entry across all schedules
"""

from datetime import date
from typing import List, Optional

import pandas as pd

from .base import Block, BlockContext
from ..schemas import VestingSchedule
from ..schemas.base import utcnow


OVERVIEW_COLUMNS = [
    "schedule_id",
    "name",
    "beneficiary",
    "status",
    "total_amount",
    "vested_amount",
    "claimed_amount",
    "claimable_amount",
    "unvested_amount",
    "start_date",
    "cliff_date",
    "end_date",
]

RELEASE_COLUMNS = [
    "schedule_id",
    "beneficiary",
    "release_date",
    "amount",
    "percentage",
    "released",
    "cumulative_amount",
]


class VestingBlock(Block):
    """Summarises vesting schedules as of a date.

    Inputs (from context):
        - vesting_schedules: list of VestingSchedule

    Outputs (to context):
        - vesting_overview
        - vesting_releases (cumulative_amount runs per schedule)
    """

    def __init__(self, schedules_key: str = "vesting_schedules", as_of: Optional[date] = None):
        self.schedules_key = schedules_key
        self.as_of = as_of

    def inputs(self) -> List[str]:
        return [self.schedules_key]

    def outputs(self) -> List[str]:
        return ["vesting_overview", "vesting_releases"]

    def execute(self, context: BlockContext) -> None:
        schedules: List[VestingSchedule] = list(context.get(self.schedules_key))
        as_of = self.as_of or utcnow().date()

        overview = []
        releases = []
        for schedule in schedules:
            vested = schedule.vested_amount(as_of)
            overview.append({
                "schedule_id": schedule.id,
                "name": schedule.name,
                "beneficiary": schedule.beneficiary,
                "status": schedule.status,
                "total_amount": schedule.total_amount,
                "vested_amount": vested,
                "claimed_amount": schedule.claimed_amount,
                "claimable_amount": schedule.claimable_amount(as_of),
                "unvested_amount": schedule.total_amount - vested,
                "start_date": schedule.start_date,
                "cliff_date": schedule.cliff_date,
                "end_date": schedule.end_date,
            })

            cumulative = 0
            for entry in schedule.release_schedule:
                cumulative += entry.amount
                releases.append({
                    "schedule_id": schedule.id,
                    "beneficiary": schedule.beneficiary,
                    "release_date": entry.release_date,
                    "amount": entry.amount,
                    "percentage": float(entry.percentage),
                    "released": entry.released,
                    "cumulative_amount": cumulative,
                })

        context.set("vesting_overview", pd.DataFrame(overview, columns=OVERVIEW_COLUMNS))
        context.set("vesting_releases", pd.DataFrame(releases, columns=RELEASE_COLUMNS))
