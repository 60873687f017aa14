"""Vesting schedules and release entries.

A VestingSchedule is created at grant time with a precomputed release
schedule (see engine.vesting.generate_schedule). It is mutated only by claim
operations and administrative pause/resume/cancel.

Status machine:

    not_started ──claim──> active ──(claimed == total)──> completed
         │                   │
         └──── pause/cancel ─┴──> paused <──resume──> active
                                  cancelled (terminal)
"""

from typing import List, Literal, Optional
from datetime import date, datetime
from decimal import Decimal
from pydantic import Field, model_validator

from .base import DomainModel, Address, TokenCount


VestingStatus = Literal["not_started", "active", "completed", "paused", "cancelled"]


class ReleaseEntry(DomainModel):
    """One tranche of a vesting schedule."""

    release_date: date = Field(
        description="Date from which the tranche may be claimed"
    )

    amount: TokenCount = Field(
        description="Tokens released by this tranche"
    )

    percentage: Decimal = Field(
        default=Decimal("0"),
        ge=0,
        le=100,
        description="Share of the grant, for display"
    )

    released: bool = Field(
        default=False,
        description="True once claimed; never reset"
    )


class VestingSchedule(DomainModel):
    """A beneficiary's token grant with its release schedule.

    Example:
        12,000 tokens, start 2024-01-01, cliff 2024-12-31, end 2027-12-31
        → 3,000 at the cliff, then 36 x 250 every 30 days
    """

    id: str = Field(
        description="Unique schedule identifier"
    )

    name: str = Field(
        default="",
        description="Human-readable label (e.g., 'Team Vesting')"
    )

    beneficiary: Address = Field(
        description="Address entitled to claim"
    )

    total_amount: TokenCount = Field(
        description="Tokens granted"
    )

    start_date: date
    end_date: date
    cliff_date: Optional[date] = None

    release_schedule: List[ReleaseEntry] = Field(
        default_factory=list,
        description="Tranches; amounts sum to total_amount"
    )

    claimed_amount: TokenCount = Field(
        default=0,
        description="Tokens claimed so far (monotonically non-decreasing)"
    )

    status: VestingStatus = "not_started"

    last_claim_date: Optional[date] = None
    created_at: Optional[datetime] = None

    @model_validator(mode='after')
    def validate_amounts(self):
        """Release schedule must sum to the grant; claims cannot exceed it."""
        scheduled = sum(entry.amount for entry in self.release_schedule)
        if self.release_schedule and scheduled != self.total_amount:
            raise ValueError(
                f"Release schedule sums to {scheduled}, expected {self.total_amount}"
            )
        if self.claimed_amount > self.total_amount:
            raise ValueError(
                f"claimed_amount {self.claimed_amount} exceeds total_amount {self.total_amount}"
            )
        return self

    @property
    def is_frozen(self) -> bool:
        return self.status in ("paused", "cancelled")

    @property
    def remaining_amount(self) -> int:
        return self.total_amount - self.claimed_amount

    def vested_amount(self, as_of: date) -> int:
        """Tokens in tranches matured by as_of (claimed or not)."""
        return sum(e.amount for e in self.release_schedule if e.release_date <= as_of)

    def claimable_amount(self, as_of: date) -> int:
        """Tokens in matured tranches not yet released.

        Returns 0 for paused or cancelled schedules.
        """
        if self.is_frozen:
            return 0
        return sum(
            e.amount for e in self.release_schedule
            if e.release_date <= as_of and not e.released
        )
