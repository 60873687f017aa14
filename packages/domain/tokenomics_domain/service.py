"""Administrative facade over the tokenomics engines.

AssetEconomicsService is the single entry point for callers. It resolves
the asset's book, takes the asset's write lock for every mutation, consults
the external collaborators and dispatches queued notifications.

Example:
    service = AssetEconomicsService(directory, ledger, oracle=oracle, notifier=sink)
    supply = service.calculate_supply(
        "warehouse-7", "fixed_price",
        FractionalizationParams(target_token_price=Decimal("10")),
    )
    run = service.execute_distribution(
        "warehouse-7", Decimal("10000"), "USD", TaxRates.flat(Decimal("0.15"))
    )
    service.dispatch_notifications("warehouse-7")
"""

import threading
from datetime import date
from decimal import Decimal
from typing import List, Mapping, Optional, Sequence

import structlog

from .engine.allocation import execute_allocation, plan_allocation
from .engine.book import AssetBook, AssetRegistry
from .engine.concentration import ConcentrationAnalyzer
from .engine.distribution import DistributionEngine, calculate_distributable_amount
from .engine.history import summarize_distributions
from .engine.schedule import DistributionScheduler
from .engine.supply import SupplyCalculator
from .engine.vesting import generate_schedule
from .errors import (
    AssetNotFound,
    SupplyInvariantViolation,
    ValuationUnavailable,
)
from .interfaces import (
    LedgerClient,
    NotificationSink,
    OwnershipDirectory,
    RevenueFeed,
    ValuationOracle,
)
from .schemas.allocation import AllocationPlan
from .schemas.config import EngineCFG
from .schemas.distribution import (
    DistributionRecord,
    DistributionRun,
    DistributionSchedule,
    DistributionSummary,
    EligibilityCFG,
    ExpenseData,
    RecipientStats,
    RevenueData,
    ScheduledRunResult,
    TaxRates,
    TaxSummary,
    TaxWithholding,
)
from .schemas.lockup import LockupPeriod, UnlockCondition, UnlockEntry
from .schemas.ownership import ConcentrationRisk, ConcentrationSnapshot
from .schemas.supply import FractionalizationParams, SupplyAdjustment, TokenSupply
from .schemas.vesting import ReleaseEntry, VestingSchedule

logger = structlog.get_logger()


class AssetEconomicsService:
    """Orchestrates supply, vesting, lockups, concentration and distributions."""

    def __init__(
        self,
        directory: OwnershipDirectory,
        ledger: LedgerClient,
        oracle: Optional[ValuationOracle] = None,
        notifier: Optional[NotificationSink] = None,
        config: Optional[EngineCFG] = None,
        revenue_feed: Optional[RevenueFeed] = None,
    ):
        self.config = config or EngineCFG()
        self.directory = directory
        self.oracle = oracle
        self.notifier = notifier
        self.registry = AssetRegistry(self.config)
        self.supply_calculator = SupplyCalculator(self.config.supply)
        self.analyzer = ConcentrationAnalyzer()
        self.distributions = DistributionEngine(directory, ledger, self.config.distribution)
        self.scheduler = DistributionScheduler(
            self.distributions, revenue_feed, self.config.distribution
        )

    def _book(self, asset_id: str) -> AssetBook:
        book = self.registry.get(asset_id)
        if book.supply is None:
            raise AssetNotFound(f"Asset {asset_id} has not been tokenized")
        return book

    # =========================================================================
    # Supply
    # =========================================================================

    def calculate_supply(
        self,
        asset_id: str,
        method: str,
        params: FractionalizationParams,
        asset_value: Optional[Decimal] = None,
        currency: Optional[str] = None,
    ) -> TokenSupply:
        """Tokenize an asset.

        Without asset_value the Valuation Oracle is consulted; dynamic
        pricing without a market adjustment derives one from the oracle's
        valuation history.

        Raises:
            ValuationUnavailable: No asset_value given and no oracle valuation
            SupplyInvariantViolation: The asset already has a supply
        """
        book = self.registry.open(asset_id)
        with book.writer():
            if book.supply is not None:
                raise SupplyInvariantViolation(f"Asset {asset_id} is already tokenized")

            if asset_value is not None:
                supply = self.supply_calculator.calculate_supply(
                    asset_value, method, params, currency=currency
                )
            else:
                valuation = self._latest_valuation(asset_id)
                history = []
                if method == "dynamic_pricing" and params.market_adjustment is None:
                    history = self.oracle.get_valuation_history(asset_id)
                supply = self.supply_calculator.calculate_from_valuation(
                    valuation, method, params, history
                )

            book.supply = supply
            logger.info("asset_tokenized", asset_id=asset_id, total_supply=supply.total_supply)
            return supply

    def _latest_valuation(self, asset_id: str):
        if self.oracle is None:
            raise ValuationUnavailable(f"No valuation source configured for asset {asset_id}")
        valuation = self.oracle.get_latest_value(asset_id)
        if valuation is None:
            raise ValuationUnavailable(f"No valuation available for asset {asset_id}")
        return valuation

    def get_supply(self, asset_id: str) -> TokenSupply:
        return self._book(asset_id).supply

    def adjust_supply(self, asset_id: str, adjustment: SupplyAdjustment) -> TokenSupply:
        book = self._book(asset_id)
        with book.writer():
            return self.supply_calculator.adjust_supply(book.supply, adjustment)

    # =========================================================================
    # Vesting
    # =========================================================================

    def generate_schedule(
        self,
        total_amount: int,
        start_date: date,
        end_date: date,
        cliff_date: Optional[date] = None,
    ) -> List[ReleaseEntry]:
        return generate_schedule(total_amount, start_date, end_date, cliff_date, self.config.vesting)

    def create_vesting_schedule(
        self,
        asset_id: str,
        schedule_id: str,
        beneficiary: str,
        total_amount: int,
        start_date: date,
        end_date: date,
        cliff_date: Optional[date] = None,
        name: str = "",
    ) -> VestingSchedule:
        """Grant tokens under a vesting schedule.

        The grant moves total_amount from unallocated into reserved supply.

        Raises:
            SupplyInvariantViolation: total_amount exceeds unallocated supply
        """
        book = self._book(asset_id)
        with book.writer():
            self._check_unallocated(book, total_amount, f"vesting schedule {schedule_id}")
            schedule = book.vesting.create_schedule(
                schedule_id, beneficiary, total_amount, start_date, end_date,
                cliff_date=cliff_date, name=name,
            )
            book.supply.apply(SupplyAdjustment(
                type="reserve", amount=total_amount, reason=f"vesting grant {schedule_id}",
            ))
            return schedule

    @staticmethod
    def _check_unallocated(book: AssetBook, amount: int, purpose: str) -> None:
        available = book.supply.unallocated_supply
        if amount > available:
            raise SupplyInvariantViolation(
                f"Cannot reserve {amount} for {purpose}: only {available} unallocated"
            )

    def get_vesting_schedule(self, asset_id: str, schedule_id: str) -> VestingSchedule:
        return self._book(asset_id).vesting.get(schedule_id)

    def claim(
        self,
        asset_id: str,
        schedule_id: str,
        now: date,
        claimant: Optional[str] = None,
    ) -> int:
        """Release matured vesting entries into circulation."""
        book = self._book(asset_id)
        with book.writer():
            claimable = book.vesting.claimable(schedule_id, now)
            if claimable > book.supply.reserved_supply:
                raise SupplyInvariantViolation(
                    f"Claim of {claimable} exceeds reserved supply {book.supply.reserved_supply}"
                )
            amount = book.vesting.claim(schedule_id, now, claimant=claimant)
            book.supply.apply(SupplyAdjustment(
                type="unlock", amount=amount, reason=f"vesting claim {schedule_id}",
            ))
            return amount

    def pause_vesting(self, asset_id: str, schedule_id: str) -> VestingSchedule:
        book = self._book(asset_id)
        with book.writer():
            return book.vesting.pause(schedule_id)

    def resume_vesting(self, asset_id: str, schedule_id: str) -> VestingSchedule:
        book = self._book(asset_id)
        with book.writer():
            return book.vesting.resume(schedule_id)

    def cancel_vesting(self, asset_id: str, schedule_id: str) -> VestingSchedule:
        book = self._book(asset_id)
        with book.writer():
            return book.vesting.cancel(schedule_id)

    # =========================================================================
    # Lockups
    # =========================================================================

    def create_lockup(
        self,
        asset_id: str,
        lockup_id: str,
        holder: str,
        amount: int,
        lock_start_date: date,
        lock_end_date: date,
        conditions: Sequence[UnlockCondition] = (),
        name: str = "",
    ) -> LockupPeriod:
        """Lock tokens, moving them from unallocated into reserved supply.

        Raises:
            SupplyInvariantViolation: amount exceeds unallocated supply
        """
        book = self._book(asset_id)
        with book.writer():
            self._check_unallocated(book, amount, f"lockup {lockup_id}")
            lockup = book.lockups.create_lockup(
                lockup_id, holder, amount, lock_start_date, lock_end_date,
                conditions=conditions, name=name,
            )
            book.supply.apply(SupplyAdjustment(
                type="reserve", amount=amount, reason=f"lockup {lockup_id}",
            ))
            return lockup

    def set_unlock_condition(
        self,
        asset_id: str,
        lockup_id: str,
        parameter: str,
        satisfied: bool = True,
    ) -> UnlockCondition:
        book = self._book(asset_id)
        with book.writer():
            return book.lockups.set_condition(lockup_id, parameter, satisfied)

    def revoke_unlock_condition(self, asset_id: str, lockup_id: str, parameter: str) -> UnlockCondition:
        book = self._book(asset_id)
        with book.writer():
            return book.lockups.revoke_condition(lockup_id, parameter)

    def check_unlocks(self, asset_id: str, now: date) -> List[UnlockEntry]:
        """Unlock every due lockup and move its tokens into circulation."""
        book = self._book(asset_id)
        with book.writer():
            unlockable = sum(l.amount for l in book.lockups.unlockable(now))
            if unlockable > book.supply.reserved_supply:
                raise SupplyInvariantViolation(
                    f"Unlock of {unlockable} exceeds reserved supply {book.supply.reserved_supply}"
                )
            entries = book.lockups.check_unlocks(now)
            for entry in entries:
                book.supply.apply(SupplyAdjustment(
                    type="unlock", amount=entry.actually_unlocked, reason=f"lockup {entry.lockup_id} ended",
                ))
            return entries

    # =========================================================================
    # Initial allocation
    # =========================================================================

    def plan_allocation(
        self,
        asset_id: str,
        beneficiaries: Mapping[str, str],
        tge_date: date,
    ) -> AllocationPlan:
        """Preview the configured category split without changing anything."""
        book = self._book(asset_id)
        return plan_allocation(asset_id, book.supply, beneficiaries, tge_date, self.config.allocation)

    def execute_allocation(
        self,
        asset_id: str,
        beneficiaries: Mapping[str, str],
        tge_date: date,
        authorized_by: str = "system",
    ) -> AllocationPlan:
        """Plan and apply the initial allocation in one step.

        Args:
            asset_id: Tokenized asset
            beneficiaries: Receiving address for every configured category
            tge_date: Start of every vesting schedule and lockup
            authorized_by: Recorded on each supply adjustment

        Raises:
            MissingParameter: A category has no beneficiary
            SupplyInvariantViolation: The split needs more tokens than are
                unallocated (or reserved, for lockups drawn on the reserve)
            InvalidStatusTransition: The asset was already allocated
        """
        book = self._book(asset_id)
        with book.writer():
            plan = plan_allocation(
                asset_id, book.supply, beneficiaries, tge_date, self.config.allocation
            )
            return execute_allocation(book, plan, authorized_by=authorized_by)

    def get_allocation(self, asset_id: str) -> Optional[AllocationPlan]:
        return self._book(asset_id).allocation

    # =========================================================================
    # Concentration
    # =========================================================================

    def analyze(self, asset_id: str) -> ConcentrationSnapshot:
        return self.analyzer.analyze(self.distributions.take_snapshot(asset_id))

    def assess_risk(self, asset_id: str) -> ConcentrationRisk:
        return self.analyzer.assess_risk(self.distributions.take_snapshot(asset_id))

    # =========================================================================
    # Distributions
    # =========================================================================

    def calculate_distributable_amount(
        self,
        revenue: RevenueData,
        expenses: ExpenseData,
        distribution_ratio: Decimal,
    ) -> Decimal:
        return calculate_distributable_amount(
            revenue, expenses, distribution_ratio, self.config.distribution.amount_precision
        )

    def execute_distribution(
        self,
        asset_id: str,
        distributable_amount: Decimal,
        currency: str,
        tax_rates: TaxRates,
        eligibility: Optional[EligibilityCFG] = None,
        method: str = "automatic",
        as_of: Optional[date] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> DistributionRun:
        """Build, record and (for automatic runs) pay a distribution.

        The run is stored in the asset's history before the first transfer,
        so an interrupted run can be found and resumed.
        """
        book = self._book(asset_id)
        with book.writer():
            run = self.distributions.build_run(
                asset_id,
                distributable_amount,
                currency,
                tax_rates,
                eligibility=eligibility,
                method=method,
                as_of=as_of,
            )
            book.distributions[run.id] = run
            return self.distributions.execute_run(run, cancel_event)

    def resume_distribution(
        self,
        asset_id: str,
        run_id: str,
        cancel_event: Optional[threading.Event] = None,
    ) -> DistributionRun:
        book = self._book(asset_id)
        with book.writer():
            return self.distributions.resume(book.get_distribution(run_id), cancel_event)

    def claim_distribution(self, asset_id: str, run_id: str, recipient_address: str) -> DistributionRecord:
        book = self._book(asset_id)
        with book.writer():
            return self.distributions.claim(book.get_distribution(run_id), recipient_address)

    def get_distribution(self, asset_id: str, run_id: str) -> DistributionRun:
        return self._book(asset_id).get_distribution(run_id)

    def distribution_history(self, asset_id: str) -> List[DistributionRun]:
        return self._book(asset_id).distribution_history()

    def tax_summary(self, asset_id: str, run_id: str) -> TaxSummary:
        return self.distributions.tax_summary(self.get_distribution(asset_id, run_id))

    def generate_tax_report(
        self,
        asset_id: str,
        run_id: str,
        jurisdiction: Optional[str] = None,
    ) -> List[TaxWithholding]:
        book = self._book(asset_id)
        with book.writer():
            return self.distributions.generate_tax_report(book.get_distribution(run_id), jurisdiction)

    def recipient_stats(self, asset_id: str, run_id: str) -> RecipientStats:
        return self.distributions.recipient_stats(self.get_distribution(asset_id, run_id))

    def distribution_summary(
        self,
        asset_id: str,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> DistributionSummary:
        return summarize_distributions(self.distribution_history(asset_id), start, end)

    # =========================================================================
    # Scheduled distributions
    # =========================================================================

    def create_distribution_schedule(
        self,
        asset_id: str,
        schedule_id: str,
        frequency: str,
        currency: str,
        tax_rates: TaxRates,
        start_date: date,
        distribution_ratio: Decimal = Decimal("1"),
        minimum_distribution: Decimal = Decimal("0"),
        eligibility: Optional[EligibilityCFG] = None,
        method: str = "automatic",
        name: str = "",
    ) -> DistributionSchedule:
        book = self._book(asset_id)
        with book.writer():
            return self.scheduler.create_schedule(
                book, schedule_id, frequency, currency, tax_rates, start_date,
                distribution_ratio=distribution_ratio,
                minimum_distribution=minimum_distribution,
                eligibility=eligibility,
                method=method,
                name=name,
            )

    def get_distribution_schedule(self, asset_id: str, schedule_id: str) -> DistributionSchedule:
        return self._book(asset_id).get_schedule(schedule_id)

    def distribution_schedules(self, asset_id: str) -> List[DistributionSchedule]:
        return sorted(self._book(asset_id).schedules.values(), key=lambda s: s.next_distribution)

    def deactivate_distribution_schedule(self, asset_id: str, schedule_id: str) -> DistributionSchedule:
        book = self._book(asset_id)
        with book.writer():
            return self.scheduler.deactivate(book, schedule_id)

    def run_due_distributions(
        self,
        as_of: date,
        asset_id: Optional[str] = None,
    ) -> List[ScheduledRunResult]:
        """Execute every schedule occurrence due on or before as_of.

        Covers one asset, or every tokenized asset when asset_id is None.
        A failing occurrence is reported as an error result and retried on
        the next call; it does not stop other schedules.

        Raises:
            RevenueUnavailable: Schedules are due but no revenue feed is configured
        """
        if asset_id is not None:
            asset_ids = [asset_id]
        else:
            asset_ids = [a for a in self.registry.asset_ids() if self.registry.get(a).supply is not None]

        results: List[ScheduledRunResult] = []
        for current in asset_ids:
            book = self._book(current)
            with book.writer():
                results.extend(self.scheduler.run_due(book, as_of))

        logger.info(
            "due_distributions_processed",
            as_of=as_of.isoformat(),
            executed=sum(1 for r in results if r.status == "executed"),
            skipped=sum(1 for r in results if r.status == "skipped"),
            errors=sum(1 for r in results if r.status == "error"),
        )
        return results

    def dispatch_notifications(self, asset_id: str, run_id: Optional[str] = None) -> int:
        """Send queued notifications and drain them from the outbox.

        Delivery stops at the first sink error; undelivered notifications
        stay queued for the next dispatch.

        Returns:
            Number of notifications delivered
        """
        book = self._book(asset_id)
        if self.notifier is None:
            logger.debug("notification_sink_missing", asset_id=asset_id)
            return 0

        with book.writer():
            runs = [book.get_distribution(run_id)] if run_id else book.distribution_history()
            sent = 0
            for run in runs:
                while run.notifications:
                    notification = run.notifications[0]
                    try:
                        self.notifier.send(notification)
                    except Exception as exc:
                        logger.warning(
                            "notification_dispatch_failed",
                            run_id=run.id,
                            recipient=notification.recipient_address,
                            error=str(exc),
                        )
                        return sent
                    run.notifications.pop(0)
                    sent += 1

            logger.info("notifications_dispatched", asset_id=asset_id, sent=sent)
            return sent
