"""Interfaces of the external collaborators the engine consumes.

The engine never talks to a chain, a directory service, an accounting
system or an appraisal provider directly. Callers supply objects satisfying
these protocols; tests use in-memory fakes.
"""

from typing import List, Optional, Protocol, Sequence, runtime_checkable
from datetime import date, datetime
from decimal import Decimal

from .schemas.base import FrozenModel
from .schemas.ownership import OwnershipPosition
from .schemas.distribution import DistributionNotification, ExpenseData, RevenueData


class Valuation(FrozenModel):
    """Appraised value reported by the Valuation Oracle."""

    value: Decimal
    currency: str
    as_of: datetime


class TransferResult(FrozenModel):
    """Outcome of a single ledger transfer request."""

    success: bool
    transaction_ref: Optional[str] = None
    error: Optional[str] = None


@runtime_checkable
class OwnershipDirectory(Protocol):
    """Source of current holdings per asset."""

    def get_current_ownership(self, asset_id: str) -> Sequence[OwnershipPosition]:
        """Return current positions; percentages sum to ~100."""
        ...


@runtime_checkable
class ValuationOracle(Protocol):
    """Source of appraised asset values.

    Implementations raise ValuationUnavailable when no valuation exists.
    """

    def get_latest_value(self, asset_id: str) -> Valuation:
        ...

    def get_valuation_history(self, asset_id: str) -> List[Valuation]:
        ...


@runtime_checkable
class LedgerClient(Protocol):
    """Executes approved transfers.

    At-most-once per call. Raise LedgerUnavailable when the ledger cannot be
    reached at all; return TransferResult(success=False) (or raise any other
    exception) when this particular transfer was rejected.
    """

    def transfer(
        self,
        recipient: str,
        amount: Decimal,
        currency: str,
        request_id: str,
    ) -> TransferResult:
        ...


@runtime_checkable
class NotificationSink(Protocol):
    """Delivers distribution notifications (email, wallet push, ...)."""

    def send(self, notification: DistributionNotification) -> None:
        ...


class PeriodFinancials(FrozenModel):
    """Revenue and expenses booked for one asset over one period."""

    revenue: RevenueData
    expenses: ExpenseData


@runtime_checkable
class RevenueFeed(Protocol):
    """Accounting source consulted by scheduled distributions.

    Implementations raise RevenueUnavailable when the period's books are not
    available yet.
    """

    def get_period_financials(
        self,
        asset_id: str,
        period_start: date,
        period_end: date,
    ) -> PeriodFinancials:
        ...
