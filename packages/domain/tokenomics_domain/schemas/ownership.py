"""Ownership snapshots and concentration metrics.

An OwnershipSnapshot is an immutable point-in-time copy of the Ownership
Directory's holdings for one asset. Distribution runs and concentration
analysis read a snapshot; they never mutate ownership.
"""

from typing import Dict, List, Literal, Optional, Sequence, Tuple
from datetime import date, datetime
from decimal import Decimal
from pydantic import Field, ValidationInfo, model_validator

from .base import FrozenModel, Address, AssetId, OwnershipPercentage, utcnow
from ..errors import InvalidOwnershipSnapshot


DEFAULT_SNAPSHOT_EPSILON = Decimal("0.000001")

ConcentrationLevel = Literal["highly_concentrated", "moderately_concentrated", "diversified"]
RiskLevel = Literal["low", "medium", "high", "critical"]


# =============================================================================
# Ownership Position & Snapshot
# =============================================================================

class OwnershipPosition(FrozenModel):
    """One owner's holding as reported by the Ownership Directory.

    Example:
        OwnershipPosition(
            owner_address="0xabc",
            ownership_percentage=Decimal("12.5"),
            acquisition_date=date(2024, 3, 1),
            jurisdiction="DE",
        )
    """

    owner_address: Address

    ownership_percentage: OwnershipPercentage

    acquisition_date: Optional[date] = Field(
        default=None,
        description="When the position was acquired (needed for holding-period rules)"
    )

    jurisdiction: Optional[str] = Field(
        default=None,
        description="Tax jurisdiction code used for withholding lookup"
    )

    def holding_period_days(self, as_of: date) -> Optional[int]:
        if self.acquisition_date is None:
            return None
        return (as_of - self.acquisition_date).days


def check_positions(
    asset_id: str,
    positions: Sequence[OwnershipPosition],
    epsilon: Decimal = DEFAULT_SNAPSHOT_EPSILON,
) -> None:
    """Raises InvalidOwnershipSnapshot unless positions form a valid snapshot."""
    if not positions:
        raise InvalidOwnershipSnapshot(f"Asset {asset_id} has no owners")

    addresses = [p.owner_address for p in positions]
    if len(addresses) != len(set(addresses)):
        raise InvalidOwnershipSnapshot(
            f"Asset {asset_id} snapshot lists an owner more than once"
        )

    total = sum((p.ownership_percentage for p in positions), Decimal("0"))
    if abs(total - Decimal("100")) > epsilon:
        raise InvalidOwnershipSnapshot(
            f"Ownership for asset {asset_id} sums to {total}%, expected 100%"
        )


class OwnershipSnapshot(FrozenModel):
    """Immutable list of positions taken at one moment.

    Every snapshot is checked on construction: at least one owner, unique
    owner addresses, percentages summing to 100 within epsilon. The
    tolerance defaults to DEFAULT_SNAPSHOT_EPSILON; take() passes its own
    through the validation context.
    """

    asset_id: AssetId
    taken_at: datetime = Field(default_factory=utcnow)
    positions: Tuple[OwnershipPosition, ...] = ()

    @model_validator(mode='after')
    def validate_positions(self, info: ValidationInfo):
        epsilon = (info.context or {}).get("epsilon", DEFAULT_SNAPSHOT_EPSILON)
        check_positions(self.asset_id, self.positions, epsilon)
        return self

    @classmethod
    def take(
        cls,
        asset_id: str,
        positions: Sequence[OwnershipPosition],
        epsilon: Decimal = DEFAULT_SNAPSHOT_EPSILON,
        taken_at: Optional[datetime] = None,
    ) -> "OwnershipSnapshot":
        """Validate directory output and freeze it.

        Raises:
            InvalidOwnershipSnapshot: Empty, duplicated owners, or total not
                within epsilon of 100
        """
        # Raise the typed error here; inside the validator pydantic wraps it
        check_positions(asset_id, positions, epsilon)
        return cls.model_validate(
            {
                "asset_id": asset_id,
                "taken_at": taken_at or utcnow(),
                "positions": tuple(positions),
            },
            context={"epsilon": epsilon},
        )

    @property
    def owner_count(self) -> int:
        return len(self.positions)

    @property
    def total_percentage(self) -> Decimal:
        return sum((p.ownership_percentage for p in self.positions), Decimal("0"))

    def percentages(self) -> List[Decimal]:
        return [p.ownership_percentage for p in self.positions]

    def get(self, owner_address: str) -> Optional[OwnershipPosition]:
        return next((p for p in self.positions if p.owner_address == owner_address), None)


# =============================================================================
# Concentration
# =============================================================================

class ConcentrationSnapshot(FrozenModel):
    """Concentration metrics derived from an OwnershipSnapshot.

    Always recomputed; never stored as mutable state.
    """

    herfindahl_index: float = Field(
        description="Σ (p/100)², from 1/n (equal split) to 1 (single owner)"
    )

    gini_coefficient: float = Field(
        description="0 = perfectly equal, approaching 1 = maximally unequal"
    )

    largest_owner_percentage: float
    owner_count: int
    concentration_level: ConcentrationLevel

    diversification_index: float = Field(
        description="1 - HHI"
    )


class RiskFactor(FrozenModel):
    """A single contributor to the concentration risk score."""

    factor: str
    impact: RiskLevel
    score: int = Field(ge=0, le=100)
    mitigation: str = ""


class ConcentrationRisk(FrozenModel):
    """Risk view over a concentration snapshot.

    holders_by_size buckets owners by percentage:
        small (<1%), medium (1-5%), large (5-10%), institutional (>=10%)
    """

    concentration: ConcentrationSnapshot
    risk_factors: Tuple[RiskFactor, ...] = ()
    risk_score: float = Field(ge=0, le=100)
    risk_level: RiskLevel
    holders_by_size: Dict[str, int] = Field(default_factory=dict)
