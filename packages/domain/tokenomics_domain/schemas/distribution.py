"""Revenue distribution models.

A DistributionRun pays a distributable amount pro-rata to the eligible owners
of one fixed OwnershipSnapshot. Each DistributionRecord moves independently:

    pending ──> distributed   (terminal)
           └──> failed        (terminal)

Run status:
    pending      records computed, no transfer attempted yet
    processing   transfers in progress
    interrupted  ledger unavailable or cancelled; pending records remain
    completed    every record terminal (some may have failed)

Conservation (exact, fixed-point):
    Σ entitled_amount == distributable_amount
    net_amount + tax_withheld == entitled_amount   (per record)
"""

from typing import Dict, List, Literal, Optional
from datetime import date, datetime
from decimal import Decimal
from pydantic import Field, field_validator

from .base import (
    DomainModel,
    FrozenModel,
    Address,
    AssetId,
    CurrencyCode,
    MoneyAmount,
    OwnershipPercentage,
    Rate,
    utcnow,
)
from .ownership import OwnershipSnapshot
from ..errors import InvalidStatusTransition, MissingTaxRate


RecordStatus = Literal["pending", "distributed", "failed"]
RunStatus = Literal["pending", "processing", "interrupted", "completed"]
DistributionMethod = Literal["automatic", "claim"]
NotificationType = Literal["entitlement", "payment"]


# =============================================================================
# Eligibility & Tax Configuration
# =============================================================================

class EligibilityCFG(DomainModel):
    """Filters applied to the ownership snapshot before allocation.

    Example:
        # Owners with at least 0.5% held for 30+ days
        EligibilityCFG(min_holding=Decimal("0.5"), min_holding_period_days=30)
    """

    min_holding: Optional[OwnershipPercentage] = Field(
        default=None,
        description="Minimum ownership percentage to qualify"
    )

    min_holding_period_days: Optional[int] = Field(
        default=None,
        ge=0,
        description="Minimum days since acquisition_date to qualify"
    )


class TaxRates(DomainModel):
    """Withholding rates by jurisdiction.

    Lookup order: the recipient's jurisdiction, then default_rate. If neither
    applies the run is rejected with MissingTaxRate; no rate is assumed.

    Example:
        TaxRates(rates={"US": Decimal("0.30"), "DE": Decimal("0.25")},
                 default_rate=Decimal("0.15"))
    """

    rates: Dict[str, Rate] = Field(default_factory=dict)

    default_rate: Optional[Rate] = Field(
        default=None,
        description="Rate for recipients with no (or unlisted) jurisdiction"
    )

    tax_type: str = Field(
        default="dividend_tax",
        description="Label carried onto withholding records"
    )

    @classmethod
    def flat(cls, rate: Decimal) -> "TaxRates":
        return cls(default_rate=rate)

    def rate_for(self, jurisdiction: Optional[str]) -> Decimal:
        if jurisdiction is not None and jurisdiction in self.rates:
            return self.rates[jurisdiction]
        if self.default_rate is not None:
            return self.default_rate
        raise MissingTaxRate(
            f"No withholding rate for jurisdiction {jurisdiction!r} and no default rate"
        )


# =============================================================================
# Revenue inputs (distributable amount calculation)
# =============================================================================

class RevenueData(DomainModel):
    """Revenue for the distribution period."""

    total_revenue: MoneyAmount
    recognized_revenue: MoneyAmount
    deferred_revenue: MoneyAmount = Decimal("0")
    currency: CurrencyCode = "USD"


class ExpenseData(DomainModel):
    """Expenses for the distribution period."""

    operating_expenses: MoneyAmount = Decimal("0")
    depreciation: MoneyAmount = Decimal("0")
    interest: MoneyAmount = Decimal("0")
    taxes: MoneyAmount = Decimal("0")
    other_expenses: MoneyAmount = Decimal("0")

    @property
    def total_expenses(self) -> Decimal:
        return (
            self.operating_expenses
            + self.depreciation
            + self.interest
            + self.taxes
            + self.other_expenses
        )


# =============================================================================
# Records
# =============================================================================

class DistributionRecord(DomainModel):
    """One recipient's share of a distribution run."""

    id: str
    request_id: str = Field(
        description="Idempotency tag sent with the ledger transfer"
    )
    recipient_address: Address
    ownership_percentage: OwnershipPercentage
    jurisdiction: Optional[str] = None

    entitled_amount: MoneyAmount
    tax_rate: Rate
    tax_withheld: MoneyAmount
    net_amount: MoneyAmount

    status: RecordStatus = "pending"
    transaction_ref: Optional[str] = None
    failure_reason: Optional[str] = None
    processed_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in ("distributed", "failed")

    def mark_distributed(self, transaction_ref: Optional[str]) -> None:
        self._leave_pending("distributed")
        self.transaction_ref = transaction_ref

    def mark_failed(self, reason: str) -> None:
        self._leave_pending("failed")
        self.failure_reason = reason

    def _leave_pending(self, new_status: RecordStatus) -> None:
        if self.status != "pending":
            raise InvalidStatusTransition(
                f"Record {self.id} for {self.recipient_address} is already {self.status}"
            )
        self.status = new_status
        self.processed_at = utcnow()


class TaxWithholding(DomainModel):
    """Tax withheld from one record, for jurisdiction reporting."""

    distribution_id: str
    recipient_address: Address
    jurisdiction: Optional[str] = None
    tax_rate: Rate
    taxable_amount: MoneyAmount
    withheld_amount: MoneyAmount
    tax_type: str = "dividend_tax"
    reporting_status: Literal["pending", "reported"] = "pending"
    reported_at: Optional[datetime] = None


class DistributionNotification(FrozenModel):
    """Outbound message queued by a run; dispatched by the orchestrator."""

    distribution_id: str
    recipient_address: Address
    notification_type: NotificationType
    amount: MoneyAmount
    currency: CurrencyCode
    transaction_ref: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)

    @property
    def subject(self) -> str:
        if self.notification_type == "payment":
            return f"Distribution paid: {self.amount} {self.currency}"
        return f"Distribution available: {self.amount} {self.currency}"


# =============================================================================
# Distribution Run
# =============================================================================

class DistributionRun(DomainModel):
    """A single revenue distribution over a fixed ownership snapshot."""

    id: str
    asset_id: AssetId
    distributable_amount: MoneyAmount
    currency: CurrencyCode
    method: DistributionMethod = "automatic"
    as_of: date = Field(
        description="Date eligibility (holding period) was measured at"
    )

    snapshot: OwnershipSnapshot
    eligibility: EligibilityCFG = Field(default_factory=EligibilityCFG)

    tax_type: str = Field(
        default="dividend_tax",
        description="Label carried onto withholding records"
    )

    records: List[DistributionRecord] = Field(default_factory=list)
    tax_withholdings: List[TaxWithholding] = Field(default_factory=list)
    notifications: List[DistributionNotification] = Field(
        default_factory=list,
        description="Outbox; the orchestrator dispatches and drains it"
    )

    status: RunStatus = "pending"
    created_at: datetime = Field(default_factory=utcnow)
    processed_at: Optional[datetime] = None

    @field_validator('currency')
    @classmethod
    def validate_currency_code(cls, v: str) -> str:
        if not v.isupper():
            raise ValueError(f"Currency must be uppercase, got: {v}")
        return v

    # ------------------------------------------------------------------ #
    # Aggregates
    # ------------------------------------------------------------------ #

    @property
    def total_entitled(self) -> Decimal:
        return sum((r.entitled_amount for r in self.records), Decimal("0"))

    @property
    def total_tax_withheld(self) -> Decimal:
        return sum((r.tax_withheld for r in self.records), Decimal("0"))

    @property
    def total_net(self) -> Decimal:
        return sum((r.net_amount for r in self.records), Decimal("0"))

    @property
    def distributed_net(self) -> Decimal:
        return sum(
            (r.net_amount for r in self.records if r.status == "distributed"),
            Decimal("0"),
        )

    @property
    def successful_count(self) -> int:
        return sum(1 for r in self.records if r.status == "distributed")

    @property
    def failed_count(self) -> int:
        return sum(1 for r in self.records if r.status == "failed")

    @property
    def pending_count(self) -> int:
        return sum(1 for r in self.records if r.status == "pending")

    def pending_records(self) -> List[DistributionRecord]:
        return [r for r in self.records if r.status == "pending"]

    def record_for(self, recipient_address: str) -> Optional[DistributionRecord]:
        return next(
            (r for r in self.records if r.recipient_address == recipient_address),
            None,
        )

    def refresh_status(self) -> RunStatus:
        """Set completed once every record is terminal."""
        if self.records and all(r.is_terminal for r in self.records):
            self.status = "completed"
            if self.processed_at is None:
                self.processed_at = utcnow()
        return self.status


class RecipientStats(FrozenModel):
    """Summary of who received a run."""

    total_recipients: int
    average_holding: Decimal
    largest_recipient: Optional[Address] = None
    largest_recipient_percentage: Decimal = Decimal("0")
    largest_recipient_amount: Decimal = Decimal("0")
    holders_by_size: Dict[str, int] = Field(default_factory=dict)


class TaxSummary(FrozenModel):
    """Withholding totals for a run."""

    total_withheld: Decimal
    by_jurisdiction: Dict[str, Decimal] = Field(default_factory=dict)
    by_tax_type: Dict[str, Decimal] = Field(default_factory=dict)
    pending_reports: int = 0


# =============================================================================
# Scheduled distributions
# =============================================================================

DistributionFrequency = Literal[
    "daily", "weekly", "bi_weekly", "monthly", "quarterly", "semi_annual", "annual",
]
ScheduledRunStatus = Literal["executed", "skipped", "error"]


class DistributionSchedule(DomainModel):
    """Recurring distribution of an asset's net income.

    Occurrences are anchored on start_date: the n-th falls n periods after
    it (month-end dates clamp, so Jan 31 monthly gives Feb 29, Mar 31, ...).
    At each occurrence the income since last_distribution (or start_date) is
    fetched and distribution_ratio of it is paid out, unless that is below
    minimum_distribution. A skipped period's income rolls into the next.

    Example:
        DistributionSchedule(
            id="q-dividend", asset_id="warehouse-7", frequency="quarterly",
            currency="USD", tax_rates=TaxRates.flat(Decimal("0.15")),
            start_date=date(2024, 1, 1), next_distribution=date(2024, 4, 1),
            distribution_ratio=Decimal("0.8"), minimum_distribution=Decimal("1000"),
        )
    """

    id: str
    asset_id: AssetId
    name: str = ""
    frequency: DistributionFrequency
    currency: CurrencyCode
    tax_rates: TaxRates
    eligibility: EligibilityCFG = Field(default_factory=EligibilityCFG)
    method: DistributionMethod = "automatic"

    distribution_ratio: Rate = Field(
        default=Decimal("1"),
        description="Share of period net income distributed"
    )
    minimum_distribution: MoneyAmount = Field(
        default=Decimal("0"),
        description="Periods yielding less than this are skipped"
    )

    start_date: date
    next_distribution: date
    last_distribution: Optional[date] = None
    periods_elapsed: int = Field(
        default=0,
        ge=0,
        description="Occurrences already processed (executed or skipped)"
    )

    is_active: bool = True
    total_distributions: int = 0
    total_amount_distributed: MoneyAmount = Decimal("0")
    run_ids: List[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)


class ScheduledRunResult(FrozenModel):
    """What happened to one due occurrence of a schedule."""

    schedule_id: str
    asset_id: AssetId
    due_date: date
    status: ScheduledRunStatus
    amount: Decimal = Decimal("0")
    run_id: Optional[str] = None
    reason: Optional[str] = None


# =============================================================================
# History analytics
# =============================================================================

TrendDirection = Literal["increasing", "decreasing", "stable"]


class DistributionTrend(FrozenModel):
    """Direction and stability of distribution amounts over time."""

    growth_pct: float = Field(
        default=0.0,
        description="Second-half mean vs first-half mean, in percent"
    )
    direction: TrendDirection = "stable"
    volatility_pct: float = Field(
        default=0.0,
        description="Coefficient of variation of the amounts, in percent"
    )
    predictability: float = 0.0


class DistributionSummary(FrozenModel):
    """Aggregate view over an asset's distribution runs."""

    total_distributions: int = 0
    total_amount: Decimal = Decimal("0")
    total_distributed_net: Decimal = Decimal("0")
    total_tax_withheld: Decimal = Decimal("0")
    average_distribution: Decimal = Decimal("0")
    median_distribution: Decimal = Decimal("0")
    observed_frequency: str = "none"
    success_rate: float = 0.0
    error_rate: float = 0.0
    effective_tax_rate: float = 0.0
    trend: DistributionTrend = Field(default_factory=DistributionTrend)
