"""Base classes and type system for tokenomics domain models.

This module provides the foundational types and base classes used
throughout the schema system: token counts, money, ownership percentages,
withholding rates and identifier conventions.
"""

from decimal import Decimal
from datetime import datetime, timezone
from typing import Annotated
from pydantic import BaseModel, Field, ConfigDict

# =============================================================================
# Base Model
# =============================================================================

class DomainModel(BaseModel):
    """Base class for all domain models.

    Provides common configuration for all Pydantic models in the domain layer:
    - Validation on assignment (counters are mutated by engine operations)
    - Support for Decimal and date types
    - Enum/Literal values serialized as plain strings
    """

    model_config = ConfigDict(
        frozen=False,
        validate_assignment=True,
        use_enum_values=True,
        arbitrary_types_allowed=True,
    )


class FrozenModel(BaseModel):
    """Base class for immutable records (ledger entries, snapshots)."""

    model_config = ConfigDict(
        frozen=True,
        use_enum_values=True,
        arbitrary_types_allowed=True,
    )


def utcnow() -> datetime:
    """Timezone-aware current time used for audit timestamps."""
    return datetime.now(timezone.utc)


# =============================================================================
# Type Aliases - Numeric
# =============================================================================

TokenCount = Annotated[
    int,
    Field(ge=0, description="Whole number of tokens (non-negative)")
]

MoneyAmount = Annotated[
    Decimal,
    Field(ge=0, description="Currency amount (non-negative)")
]

OwnershipPercentage = Annotated[
    Decimal,
    Field(ge=0, le=100, description="Ownership share in percent (0 to 100)")
]

Rate = Annotated[
    Decimal,
    Field(ge=0, le=1, description="Rate as decimal (0.15 = 15%)")
]


# =============================================================================
# ID Conventions
# =============================================================================

AssetId = Annotated[
    str,
    Field(min_length=1, description="Identifier of the tokenized asset")
]

Address = Annotated[
    str,
    Field(min_length=1, description="Owner/recipient wallet address or account id")
]

CurrencyCode = Annotated[
    str,
    Field(
        pattern=r'^[A-Z][A-Z0-9]{2,9}$',
        description="ISO 4217 code or token symbol (e.g., 'USD', 'USDC')"
    )
]


# =============================================================================
# ID Examples and Conventions
# =============================================================================
#
# Asset IDs:
#   - "warehouse_rotterdam_07", "painting_basquiat_1982"
#
# Addresses:
#   - "0x9f3c...a1" (EVM wallet), "custodian:acme" (custodial account)
#
# Schedule / lockup / run IDs:
#   - UUID4 strings generated at creation time
#
# =============================================================================
