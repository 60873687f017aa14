"""Initial token allocation.

An AllocationPlan splits a freshly calculated TokenSupply into categories
(public sale, team, reserve, ...) at the token generation event (TGE). Each
category goes to one beneficiary address and is released according to its
AllocationPolicy:

    instant   issue    unallocated -> circulating
    vesting   reserve  unallocated -> reserved; claims unlock into circulation
    lockup    reserve  unallocated -> reserved (or the creation reserve);
                       the unlock moves it into circulation

A plan is executed at most once per asset.
"""

from typing import List, Literal, Optional
from datetime import date, datetime
from decimal import Decimal
from pydantic import Field

from .base import DomainModel, Address, AssetId, TokenCount
from .config import AllocationCategory, AllocationMethod, SupplySource


AllocationStatus = Literal["planned", "executed"]


class Allocation(DomainModel):
    """One category's share of the supply."""

    category: AllocationCategory
    percentage: Decimal
    amount: TokenCount
    method: AllocationMethod
    source: SupplySource = "unallocated"
    beneficiary: Address

    release_start: date
    release_end: Optional[date] = Field(
        default=None,
        description="Vesting end or lockup end; None for instant allocations"
    )
    cliff_date: Optional[date] = None

    vesting_schedule_id: Optional[str] = None
    lockup_id: Optional[str] = None


class AllocationPlan(DomainModel):
    """Category split of one asset's supply at TGE."""

    asset_id: AssetId
    tge_date: date
    basis_supply: TokenCount = Field(
        description="Total supply the percentages were applied to"
    )
    allocations: List[Allocation] = Field(default_factory=list)
    status: AllocationStatus = "planned"
    executed_at: Optional[datetime] = None

    @property
    def allocated_amount(self) -> int:
        return sum(a.amount for a in self.allocations)

    @property
    def remainder(self) -> int:
        """Tokens of the basis left out by flooring or a split under 100%."""
        return self.basis_supply - self.allocated_amount

    def amount_from(self, source: str) -> int:
        return sum(a.amount for a in self.allocations if a.source == source)

    def get(self, category: str) -> Optional[Allocation]:
        return next((a for a in self.allocations if a.category == category), None)
