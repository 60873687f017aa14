"""Tokenomics domain schemas.

This package contains all Pydantic models for the domain layer:
- Base types and conventions
- Token supply, fractionalization parameters and the adjustment ledger
- Vesting schedules and release entries
- Lockup periods and unlock conditions
- Ownership snapshots and concentration metrics
- Initial allocation plans
- Distribution runs, records, withholding and notifications
- Distribution schedules and history summaries
- Engine and report configuration

Usage:
    from tokenomics_domain.schemas import (
        TokenSupply, SupplyAdjustment, VestingSchedule, LockupPeriod,
        OwnershipSnapshot, DistributionRun, EngineCFG
    )
"""

# Base types
from .base import (
    DomainModel,
    FrozenModel,
    TokenCount,
    MoneyAmount,
    OwnershipPercentage,
    Rate,
    AssetId,
    Address,
    CurrencyCode,
)

# Supply
from .supply import (
    FractionalizationMethod,
    FractionalizationParams,
    SupplyCalculation,
    SupplyAdjustment,
    TokenSupply,
)

# Vesting
from .vesting import (
    ReleaseEntry,
    VestingSchedule,
)

# Lockup
from .lockup import (
    UnlockCondition,
    LockupPeriod,
    UnlockEntry,
)

# Ownership and concentration
from .ownership import (
    OwnershipPosition,
    OwnershipSnapshot,
    ConcentrationSnapshot,
    ConcentrationRisk,
    RiskFactor,
)

# Distribution
from .distribution import (
    EligibilityCFG,
    TaxRates,
    RevenueData,
    ExpenseData,
    DistributionRecord,
    DistributionRun,
    TaxWithholding,
    DistributionNotification,
    RecipientStats,
    TaxSummary,
    DistributionSchedule,
    ScheduledRunResult,
    DistributionTrend,
    DistributionSummary,
)

# Initial allocation
from .allocation import (
    Allocation,
    AllocationPlan,
)

# Configuration
from .config import (
    SupplyCFG,
    AllocationPolicy,
    AllocationCFG,
    VestingCFG,
    DistributionCFG,
    EngineCFG,
    ReportCFG,
)

__all__ = [
    # Base types
    "DomainModel",
    "FrozenModel",
    "TokenCount",
    "MoneyAmount",
    "OwnershipPercentage",
    "Rate",
    "AssetId",
    "Address",
    "CurrencyCode",
    # Supply
    "FractionalizationMethod",
    "FractionalizationParams",
    "SupplyCalculation",
    "SupplyAdjustment",
    "TokenSupply",
    # Vesting
    "ReleaseEntry",
    "VestingSchedule",
    # Lockup
    "UnlockCondition",
    "LockupPeriod",
    "UnlockEntry",
    # Ownership
    "OwnershipPosition",
    "OwnershipSnapshot",
    "ConcentrationSnapshot",
    "ConcentrationRisk",
    "RiskFactor",
    # Distribution
    "EligibilityCFG",
    "TaxRates",
    "RevenueData",
    "ExpenseData",
    "DistributionRecord",
    "DistributionRun",
    "TaxWithholding",
    "DistributionNotification",
    "RecipientStats",
    "TaxSummary",
    "DistributionSchedule",
    "ScheduledRunResult",
    "DistributionTrend",
    "DistributionSummary",
    # Allocation
    "Allocation",
    "AllocationPlan",
    # Configuration
    "SupplyCFG",
    "AllocationPolicy",
    "AllocationCFG",
    "VestingCFG",
    "DistributionCFG",
    "EngineCFG",
    "ReportCFG",
]
