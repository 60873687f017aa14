"""Typed errors raised by the tokenomics engine.

Every operation either returns a fully-formed result or raises one of these.

    TokenomicsError
    ├── ValidationError (ValueError)       bad input, nothing mutated
    ├── InvariantViolation                 operation would break an invariant
    ├── StateError                         operation not allowed in current state
    ├── NotFound (KeyError)                unknown asset / schedule / lockup / run
    └── ExternalDependencyError            collaborator failures
"""


class TokenomicsError(Exception):
    """Base class for all engine errors."""
    pass


# =============================================================================
# Validation
# =============================================================================

class ValidationError(TokenomicsError, ValueError):
    """Input rejected before any state was touched."""
    pass


class InvalidMethod(ValidationError):
    """Unknown fractionalization method."""
    pass


class NonPositivePrice(ValidationError):
    """Token price (after any market adjustment) is zero or negative."""
    pass


class MissingParameter(ValidationError):
    """A parameter required by the selected method was not supplied."""
    pass


class InvalidAmount(ValidationError):
    """Amount is zero, negative, or otherwise unusable."""
    pass


class InvalidOwnershipSnapshot(ValidationError):
    """Ownership percentages out of range, duplicated, or not summing to 100."""
    pass


class MissingTaxRate(ValidationError):
    """No withholding rate configured for a recipient's jurisdiction."""
    pass


# =============================================================================
# Invariants
# =============================================================================

class InvariantViolation(TokenomicsError):
    """Operation rejected because it would break a conservation invariant."""
    pass


class SupplyInvariantViolation(InvariantViolation):
    """Supply adjustment would break circulating + reserved + burned <= total."""
    pass


class VestingOverClaim(InvariantViolation):
    """Claim would push claimed_amount past total_amount."""
    pass


class InvalidStatusTransition(InvariantViolation):
    """Status change that goes backwards or skips the allowed path."""
    pass


# =============================================================================
# State
# =============================================================================

class StateError(TokenomicsError):
    """Operation not permitted in the object's current state."""
    pass


class NothingClaimable(StateError):
    """No matured, unreleased vesting entries."""
    pass


class VestingFrozen(StateError):
    """Schedule is paused or cancelled."""
    pass


class BeneficiaryMismatch(StateError):
    """Claimant is not the schedule's beneficiary."""
    pass


class NoEligibleRecipients(StateError):
    """Eligibility filters left nobody to distribute to."""
    pass


class NothingToClaim(StateError):
    """No pending distribution record for the claimant."""
    pass


# =============================================================================
# Lookup
# =============================================================================

class NotFound(TokenomicsError, KeyError):
    """Referenced object does not exist."""

    def __str__(self) -> str:
        # KeyError quotes its argument; keep messages readable.
        return str(self.args[0]) if self.args else ""


class AssetNotFound(NotFound):
    pass


class ScheduleNotFound(NotFound):
    pass


class LockupNotFound(NotFound):
    pass


class DistributionNotFound(NotFound):
    pass


# =============================================================================
# External dependencies
# =============================================================================

class ExternalDependencyError(TokenomicsError):
    """A collaborator (ledger, oracle, directory) could not serve the request."""
    pass


class LedgerUnavailable(ExternalDependencyError):
    """Ledger client unreachable; pending records stay pending for retry."""
    pass


class ValuationUnavailable(ExternalDependencyError):
    """Oracle has no (fresh) valuation for the asset."""
    pass


class TransferFailed(ExternalDependencyError):
    """A single transfer was rejected or timed out."""
    pass


class RevenueUnavailable(ExternalDependencyError):
    """Revenue feed has no financials for the requested period."""
    pass


class AssetBusy(TokenomicsError):
    """Another writer holds the asset and the wait timed out."""
    pass

