"""Token supply models.

A TokenSupply is created once per tokenization from the asset's appraised
value. After creation its counters move only through SupplyAdjustment
entries appended to an append-only ledger:

    mint     total += x
    burn     total -= x, burned += x
    reserve  reserved += x
    unlock   reserved -= x, circulating += x
    issue    circulating += x            (unallocated straight into circulation)

Invariant held after every adjustment:
    circulating + reserved + burned <= total  (and total <= max_supply)
"""

from typing import List, Literal, Optional, Tuple, Any
from datetime import datetime
from decimal import Decimal
from pydantic import Field

from .base import DomainModel, FrozenModel, TokenCount, MoneyAmount, utcnow
from ..errors import InvalidAmount, SupplyInvariantViolation


FractionalizationMethod = Literal["fixed_price", "dynamic_pricing", "target_supply"]
AdjustmentType = Literal["mint", "burn", "reserve", "unlock", "issue"]

FRACTIONALIZATION_METHODS = ("fixed_price", "dynamic_pricing", "target_supply")


# =============================================================================
# Fractionalization Parameters
# =============================================================================

class FractionalizationParams(DomainModel):
    """Parameters for the selected fractionalization method.

    - fixed_price:      target_token_price required
    - dynamic_pricing:  target_token_price required; market_adjustment optional
                        (None = derive from valuation history, 0 if unavailable)
    - target_supply:    target_supply required; price is derived
    """

    target_token_price: Optional[Decimal] = Field(
        default=None,
        description="Desired price per token in the valuation currency"
    )

    target_supply: Optional[TokenCount] = Field(
        default=None,
        description="Desired base supply (target_supply method only)"
    )

    market_adjustment: Optional[Decimal] = Field(
        default=None,
        description="Relative price adjustment for dynamic pricing (0.05 = +5%)"
    )


# =============================================================================
# Supply Calculation Record
# =============================================================================

class SupplyCalculation(FrozenModel):
    """How a supply was derived. Kept so the result can be reproduced.

    Example:
        asset_value=1_000_000, token_price=10, calculated_supply=100_000
        factors: liquidity_buffer 1.05 -> community_reserve 1.10 -> market_stability 1.02
        final_supply = floor(100_000 * 1.05 * 1.10 * 1.02) = 117_810
    """

    asset_value: MoneyAmount
    currency: Optional[str] = None
    method: FractionalizationMethod
    token_price: Decimal = Field(
        description="Effective price per token (adjusted or derived)"
    )
    market_adjustment: Decimal = Decimal("0")
    calculated_supply: TokenCount
    adjustment_factors: Tuple[Tuple[str, Decimal], ...] = ()
    final_supply: TokenCount
    calculated_at: datetime = Field(default_factory=utcnow)


# =============================================================================
# Supply Adjustment
# =============================================================================

class SupplyAdjustment(FrozenModel):
    """Immutable entry in the supply ledger."""

    type: AdjustmentType = Field(
        description="mint | burn | reserve | unlock | issue"
    )

    amount: TokenCount = Field(
        description="Tokens affected by the adjustment"
    )

    reason: str = Field(
        default="",
        description="Why the adjustment was made (audit trail)"
    )

    authorized_by: str = Field(
        default="system",
        description="Who approved the adjustment"
    )

    timestamp: datetime = Field(default_factory=utcnow)


# =============================================================================
# Token Supply
# =============================================================================

class TokenSupply(DomainModel):
    """Supply counters for one tokenized asset plus their adjustment ledger."""

    total_supply: TokenCount
    circulating_supply: TokenCount = 0
    reserved_supply: TokenCount = 0
    burned_supply: TokenCount = 0
    max_supply: Optional[TokenCount] = None

    calculation: Optional[SupplyCalculation] = Field(
        default=None,
        description="Derivation record (None when created directly)"
    )

    adjustments: List[SupplyAdjustment] = Field(
        default_factory=list,
        description="Append-only adjustment history"
    )

    def model_post_init(self, __context: Any) -> None:
        _check_counters(
            self.total_supply,
            self.circulating_supply,
            self.reserved_supply,
            self.burned_supply,
            self.max_supply,
        )

    @property
    def unallocated_supply(self) -> int:
        """Tokens in total supply not yet circulating, reserved or burned."""
        return (
            self.total_supply
            - self.circulating_supply
            - self.reserved_supply
            - self.burned_supply
        )

    def apply(self, adjustment: SupplyAdjustment) -> "TokenSupply":
        """Validate and apply an adjustment, appending it to the ledger.

        Args:
            adjustment: Adjustment to apply

        Returns:
            self, for chaining

        Raises:
            InvalidAmount: If amount is zero
            SupplyInvariantViolation: If the result would break the invariant.
                Nothing is changed in that case.
        """
        if adjustment.amount <= 0:
            raise InvalidAmount(f"Adjustment amount must be positive, got {adjustment.amount}")

        total = self.total_supply
        circulating = self.circulating_supply
        reserved = self.reserved_supply
        burned = self.burned_supply
        amount = adjustment.amount

        if adjustment.type == "mint":
            total += amount
        elif adjustment.type == "burn":
            if amount > total:
                raise SupplyInvariantViolation(
                    f"Cannot burn {amount}: total supply is {total}"
                )
            total -= amount
            burned += amount
        elif adjustment.type == "reserve":
            reserved += amount
        elif adjustment.type == "unlock":
            if amount > reserved:
                raise SupplyInvariantViolation(
                    f"Cannot unlock {amount}: only {reserved} reserved"
                )
            reserved -= amount
            circulating += amount
        elif adjustment.type == "issue":
            circulating += amount

        _check_counters(total, circulating, reserved, burned, self.max_supply)

        # All checks passed - commit
        self.total_supply = total
        self.circulating_supply = circulating
        self.reserved_supply = reserved
        self.burned_supply = burned
        self.adjustments.append(adjustment)
        return self


def _check_counters(
    total: int,
    circulating: int,
    reserved: int,
    burned: int,
    max_supply: Optional[int],
) -> None:
    if min(total, circulating, reserved, burned) < 0:
        raise SupplyInvariantViolation("Supply counters must be non-negative")
    if circulating + reserved + burned > total:
        raise SupplyInvariantViolation(
            f"circulating ({circulating}) + reserved ({reserved}) + burned ({burned}) "
            f"exceeds total supply ({total})"
        )
    if max_supply is not None and total > max_supply:
        raise SupplyInvariantViolation(
            f"Total supply {total} would exceed max supply {max_supply}"
        )
