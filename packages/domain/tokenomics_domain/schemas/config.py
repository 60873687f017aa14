"""Engine configuration - top-level entry point for tuning the engines.

The EngineCFG ties together the per-component configuration objects:
- Supply derivation (adjustment factors, reserve ratio, bounds)
- Initial allocation (category split and per-category release policy)
- Vesting release policy (interval, linear periods, cliff share)
- Distribution execution (precision, worker pool, timeouts)

The ReportCFG drives the Excel renderer in the tokenomics_excel package.
"""

from decimal import Decimal
from typing import List, Literal, Optional, Tuple
from pydantic import Field, field_validator, model_validator

from .base import DomainModel, Rate


# =============================================================================
# Supply Configuration
# =============================================================================

# Order is significant: factors are multiplied left to right.
DEFAULT_ADJUSTMENT_FACTORS: List[Tuple[str, Decimal]] = [
    ("liquidity_buffer", Decimal("1.05")),
    ("community_reserve", Decimal("1.10")),
    ("market_stability", Decimal("1.02")),
]


class SupplyCFG(DomainModel):
    """Configuration for supply derivation.

    Examples:
        # Defaults: 1.05 x 1.10 x 1.02, 10% reserved, max supply 2x final
        SupplyCFG()

        # No post-calculation padding
        SupplyCFG(adjustment_factors=[])
    """

    adjustment_factors: List[Tuple[str, Decimal]] = Field(
        default_factory=lambda: list(DEFAULT_ADJUSTMENT_FACTORS),
        description="Ordered (name, multiplier) pairs applied after the base calculation"
    )

    reserve_ratio: Rate = Field(
        default=Decimal("0.10"),
        description="Share of final supply reserved at creation"
    )

    max_supply_multiple: Decimal = Field(
        default=Decimal("2"),
        ge=1,
        description="max_supply = final_supply * multiple"
    )

    max_market_adjustment: Rate = Field(
        default=Decimal("0.20"),
        description="Bound on |market adjustment| for dynamic pricing"
    )

    market_history_window: int = Field(
        default=5,
        ge=2,
        description="Number of most recent valuations used for the market trend"
    )

    @field_validator('adjustment_factors')
    @classmethod
    def validate_factors(cls, v: List[Tuple[str, Decimal]]) -> List[Tuple[str, Decimal]]:
        """Factors must be positive and uniquely named."""
        names = [name for name, _ in v]
        if len(names) != len(set(names)):
            raise ValueError(f"Duplicate adjustment factor names: {names}")
        for name, factor in v:
            if factor <= 0:
                raise ValueError(f"Adjustment factor '{name}' must be positive, got {factor}")
        return v


# =============================================================================
# Initial Allocation Configuration
# =============================================================================

AllocationCategory = Literal[
    "public_sale", "private_sale", "team", "advisors", "investors", "reserve",
    "liquidity", "marketing", "development", "community", "treasury",
]
AllocationMethod = Literal["instant", "vesting", "lockup"]
SupplySource = Literal["unallocated", "reserve"]


class AllocationPolicy(DomainModel):
    """How one category's share of the supply is handed out at TGE.

    - instant:  issued straight into circulation
    - vesting:  reserved, then released by a vesting schedule running
                vesting_days from TGE (cliff_days after TGE when set)
    - lockup:   reserved, then released when a lockup of lockup_days ends

    source="reserve" draws a lockup from the reserve set aside at supply
    creation instead of reserving unallocated tokens.

    Example:
        AllocationPolicy(category="team", percentage=Decimal("15"),
                         method="vesting", vesting_days=1460, cliff_days=365)
    """

    category: AllocationCategory

    percentage: Decimal = Field(
        gt=0,
        le=100,
        description="Share of total supply, floored to whole tokens"
    )

    method: AllocationMethod = "instant"

    vesting_days: Optional[int] = Field(default=None, gt=0)
    cliff_days: Optional[int] = Field(default=None, ge=0)
    lockup_days: Optional[int] = Field(default=None, ge=0)

    source: SupplySource = "unallocated"

    @model_validator(mode='after')
    def validate_method_terms(self):
        if self.method == "vesting":
            if self.vesting_days is None:
                raise ValueError(f"{self.category}: vesting allocations need vesting_days")
            if self.cliff_days is not None and self.cliff_days > self.vesting_days:
                raise ValueError(f"{self.category}: cliff_days exceeds vesting_days")
        if self.method == "lockup" and self.lockup_days is None:
            raise ValueError(f"{self.category}: lockup allocations need lockup_days")
        if self.source == "reserve" and self.method != "lockup":
            raise ValueError(f"{self.category}: only lockups can draw on the reserve")
        return self


DEFAULT_ALLOCATION_POLICIES: List[AllocationPolicy] = [
    AllocationPolicy(category="public_sale", percentage=Decimal("40")),
    AllocationPolicy(
        category="private_sale", percentage=Decimal("20"),
        method="vesting", vesting_days=365, cliff_days=180,
    ),
    AllocationPolicy(
        category="team", percentage=Decimal("15"),
        method="vesting", vesting_days=1460, cliff_days=365,
    ),
    AllocationPolicy(category="liquidity", percentage=Decimal("10")),
    AllocationPolicy(
        category="reserve", percentage=Decimal("10"),
        method="lockup", lockup_days=365, source="reserve",
    ),
    AllocationPolicy(category="community", percentage=Decimal("5")),
]


class AllocationCFG(DomainModel):
    """Category split applied by the initial allocation.

    Defaults: public sale 40%, private sale 20% (1y vesting, 6m cliff),
    team 15% (4y vesting, 1y cliff), liquidity 10%, reserve 10% (locked
    1y out of the creation reserve), community 5%.
    """

    policies: List[AllocationPolicy] = Field(
        default_factory=lambda: [p.model_copy() for p in DEFAULT_ALLOCATION_POLICIES]
    )

    @field_validator('policies')
    @classmethod
    def validate_policies(cls, v: List[AllocationPolicy]) -> List[AllocationPolicy]:
        categories = [p.category for p in v]
        if len(categories) != len(set(categories)):
            raise ValueError(f"Duplicate allocation categories: {categories}")
        total = sum((p.percentage for p in v), Decimal("0"))
        if total > 100:
            raise ValueError(f"Allocation percentages sum to {total}%, more than 100%")
        return v


# =============================================================================
# Vesting Configuration
# =============================================================================

class VestingCFG(DomainModel):
    """Release policy for generated vesting schedules."""

    release_interval_days: int = Field(
        default=30,
        gt=0,
        description="Days between periodic releases ('monthly')"
    )

    linear_periods: int = Field(
        default=12,
        gt=0,
        description="Number of releases for schedules without a cliff"
    )

    cliff_release_pct: Decimal = Field(
        default=Decimal("25"),
        ge=0,
        le=100,
        description="Percent of the grant released at the cliff date"
    )


# =============================================================================
# Distribution Configuration
# =============================================================================

class DistributionCFG(DomainModel):
    """Execution settings for distribution runs."""

    amount_precision: Decimal = Field(
        default=Decimal("0.01"),
        gt=0,
        description="Smallest payable unit; all amounts are multiples of it"
    )

    snapshot_epsilon: Decimal = Field(
        default=Decimal("0.000001"),
        gt=0,
        description="Tolerance for ownership percentages summing to 100"
    )

    max_workers: int = Field(
        default=8,
        gt=0,
        description="Bound on concurrent ledger transfer requests"
    )

    transfer_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="A transfer not answered within this time is marked failed"
    )


# =============================================================================
# Engine Configuration
# =============================================================================

class EngineCFG(DomainModel):
    """Root configuration passed to AssetEconomicsService.

    Example:
        EngineCFG(
            distribution=DistributionCFG(max_workers=4, transfer_timeout_seconds=10),
            lock_timeout_seconds=5,
        )
    """

    supply: SupplyCFG = Field(default_factory=SupplyCFG)
    allocation: AllocationCFG = Field(default_factory=AllocationCFG)
    vesting: VestingCFG = Field(default_factory=VestingCFG)
    distribution: DistributionCFG = Field(default_factory=DistributionCFG)

    lock_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="How long a writer waits for an asset held by another writer"
    )


# =============================================================================
# Report Configuration
# =============================================================================

ReportSheet = Literal["supply", "vesting", "concentration", "distribution"]


class ReportCFG(DomainModel):
    """Configuration for the Excel report.

    Example:
        ReportCFG(
            title="Rotterdam Warehouse - Q3 Distribution",
            sheets=["supply", "distribution"],
        )
    """

    title: str = Field(
        description="Title written at the top of every sheet"
    )

    sheets: List[ReportSheet] = Field(
        default_factory=lambda: ["supply", "vesting", "concentration", "distribution"],
        description="Sheets to render, in order"
    )

    currency_format: str = Field(
        default="#,##0.00",
        description="Excel number format for money columns"
    )

    token_format: str = Field(
        default="#,##0",
        description="Excel number format for token columns"
    )

    freeze_header: bool = Field(
        default=True,
        description="Freeze panes below the column header row"
    )
