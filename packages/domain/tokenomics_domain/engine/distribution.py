"""Revenue distribution engine.

A run is computed completely before the first transfer:

    1. One OwnershipSnapshot is taken from the directory and held for the
       whole run.
    2. Eligible owners (min_holding, min_holding_period_days) share the
       distributable amount pro-rata to their percentages, renormalised over
       the eligible total. Amounts are fixed-point at amount_precision,
       rounded down; the remainder goes to the largest eligible holder
       (ties: lowest address).
    3. tax = round(entitled * rate), net = entitled - tax.

Automatic runs then fan transfers out over a bounded thread pool. Worker
threads only call the ledger; records are updated on the calling thread.

    - rejected / raised / timed out transfer  -> that record failed
    - LedgerUnavailable or cancel             -> stop submitting, let in-flight
                                                 transfers finish, run interrupted
                                                 (untouched records stay pending)

A transfer is submitted only when a worker thread is free. A timed-out call
keeps its thread until the ledger returns, so when every worker is stuck the
run stops submitting and ends interrupted; the unsent records stay pending.

Records whose net amount is zero (share rounded away, or a 100% rate) are
settled as distributed without a ledger call. Their withholding is still
recorded; no notification is queued.

resume() re-issues transfers for pending records only; failed is terminal.
"""

import threading
import time
import uuid
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from datetime import date
from decimal import Decimal, ROUND_DOWN, ROUND_HALF_UP
from typing import Dict, List, Optional, Tuple

import structlog

from ..errors import (
    InvalidAmount,
    InvalidStatusTransition,
    LedgerUnavailable,
    NoEligibleRecipients,
    NothingToClaim,
)
from ..interfaces import LedgerClient, OwnershipDirectory, TransferResult
from ..schemas.base import utcnow
from ..schemas.config import DistributionCFG
from ..schemas.distribution import (
    DistributionNotification,
    DistributionRecord,
    DistributionRun,
    EligibilityCFG,
    ExpenseData,
    RecipientStats,
    RevenueData,
    TaxRates,
    TaxSummary,
    TaxWithholding,
)
from ..schemas.ownership import OwnershipPosition, OwnershipSnapshot
from .concentration import holders_by_size

logger = structlog.get_logger()

UNSPECIFIED_JURISDICTION = "unspecified"


# =============================================================================
# Pure helpers
# =============================================================================

def eligible_positions(
    snapshot: OwnershipSnapshot,
    eligibility: EligibilityCFG,
    as_of: date,
) -> List[OwnershipPosition]:
    """Positions passing the holding filters.

    With a holding-period rule, positions without an acquisition_date are
    not eligible.
    """
    eligible = []
    for position in snapshot.positions:
        if position.ownership_percentage <= 0:
            continue
        if eligibility.min_holding is not None and position.ownership_percentage < eligibility.min_holding:
            continue
        if eligibility.min_holding_period_days is not None:
            held = position.holding_period_days(as_of)
            if held is None or held < eligibility.min_holding_period_days:
                continue
        eligible.append(position)
    return eligible


def allocate(
    distributable_amount: Decimal,
    positions: List[OwnershipPosition],
    precision: Decimal,
) -> Dict[str, Decimal]:
    """Split an amount pro-rata with exact conservation.

    Returns:
        address -> entitled amount; values sum exactly to distributable_amount

    Example:
        >>> allocate(Decimal("100"), [a(1/3), b(1/3), c(1/3)], Decimal("0.01"))
        {a: 33.34, b: 33.33, c: 33.33}   # a is the tie-break winner
    """
    total_pct = sum((p.ownership_percentage for p in positions), Decimal("0"))
    shares = {
        p.owner_address: (distributable_amount * p.ownership_percentage / total_pct).quantize(
            precision, rounding=ROUND_DOWN
        )
        for p in positions
    }

    remainder = distributable_amount - sum(shares.values(), Decimal("0"))
    if remainder:
        largest = min(positions, key=lambda p: (-p.ownership_percentage, p.owner_address))
        shares[largest.owner_address] += remainder
    return shares


def calculate_distributable_amount(
    revenue: RevenueData,
    expenses: ExpenseData,
    distribution_ratio: Decimal,
    precision: Decimal = Decimal("0.01"),
) -> Decimal:
    """Net income share available for distribution.

    max(0, (recognized_revenue - total_expenses) * ratio), rounded down to
    precision.
    """
    net_income = revenue.recognized_revenue - expenses.total_expenses
    amount = max(Decimal("0"), net_income * Decimal(distribution_ratio))
    return amount.quantize(precision, rounding=ROUND_DOWN)


# =============================================================================
# Engine
# =============================================================================

class DistributionEngine:
    """Computes and executes distribution runs.

    Example:
        engine = DistributionEngine(directory, ledger)
        run = engine.execute(
            "asset-1",
            Decimal("10000"),
            "USD",
            tax_rates=TaxRates.flat(Decimal("0.15")),
        )
        run.status          # "completed"
        run.total_net       # Decimal("8500.00")
    """

    def __init__(
        self,
        directory: OwnershipDirectory,
        ledger: LedgerClient,
        config: Optional[DistributionCFG] = None,
    ):
        self.directory = directory
        self.ledger = ledger
        self.config = config or DistributionCFG()

    # ------------------------------------------------------------------ #
    # Run construction
    # ------------------------------------------------------------------ #

    def take_snapshot(self, asset_id: str) -> OwnershipSnapshot:
        positions = self.directory.get_current_ownership(asset_id)
        return OwnershipSnapshot.take(asset_id, positions, epsilon=self.config.snapshot_epsilon)

    def build_run(
        self,
        asset_id: str,
        distributable_amount: Decimal,
        currency: str,
        tax_rates: TaxRates,
        eligibility: Optional[EligibilityCFG] = None,
        method: str = "automatic",
        as_of: Optional[date] = None,
        run_id: Optional[str] = None,
    ) -> DistributionRun:
        """Compute records for a run without touching the ledger.

        Raises:
            InvalidAmount: Non-positive amount or finer than amount_precision
            InvalidOwnershipSnapshot: Directory data does not sum to 100%
            NoEligibleRecipients: Nobody passes the eligibility filters
            MissingTaxRate: An eligible recipient has no applicable rate
        """
        precision = self.config.amount_precision
        distributable_amount = Decimal(distributable_amount)
        if distributable_amount <= 0:
            raise InvalidAmount(f"Distributable amount must be positive, got {distributable_amount}")
        if distributable_amount != distributable_amount.quantize(precision):
            raise InvalidAmount(
                f"Distributable amount {distributable_amount} is finer than precision {precision}"
            )

        eligibility = eligibility or EligibilityCFG()
        as_of = as_of or utcnow().date()
        run_id = run_id or uuid.uuid4().hex

        snapshot = self.take_snapshot(asset_id)
        eligible = eligible_positions(snapshot, eligibility, as_of)
        if not eligible:
            raise NoEligibleRecipients(
                f"No owner of asset {asset_id} meets the eligibility criteria"
            )

        # Resolve every rate up front so a missing one rejects the whole run
        rates = {p.owner_address: tax_rates.rate_for(p.jurisdiction) for p in eligible}
        shares = allocate(distributable_amount, eligible, precision)

        records = []
        for index, position in enumerate(eligible, start=1):
            address = position.owner_address
            entitled = shares[address]
            tax = (entitled * rates[address]).quantize(precision, rounding=ROUND_HALF_UP)
            records.append(DistributionRecord(
                id=f"{run_id}-{index:04d}",
                request_id=f"{run_id}:{address}",
                recipient_address=address,
                ownership_percentage=position.ownership_percentage,
                jurisdiction=position.jurisdiction,
                entitled_amount=entitled,
                tax_rate=rates[address],
                tax_withheld=tax,
                net_amount=entitled - tax,
            ))

        run = DistributionRun(
            id=run_id,
            asset_id=asset_id,
            distributable_amount=distributable_amount,
            currency=currency,
            method=method,
            as_of=as_of,
            snapshot=snapshot,
            eligibility=eligibility,
            tax_type=tax_rates.tax_type,
            records=records,
        )
        logger.info(
            "distribution_built",
            run_id=run_id,
            asset_id=asset_id,
            method=method,
            amount=str(distributable_amount),
            owners=snapshot.owner_count,
            recipients=len(records),
        )
        return run

    def execute(
        self,
        asset_id: str,
        distributable_amount: Decimal,
        currency: str,
        tax_rates: TaxRates,
        eligibility: Optional[EligibilityCFG] = None,
        method: str = "automatic",
        as_of: Optional[date] = None,
        run_id: Optional[str] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> DistributionRun:
        """Build a run and, for automatic runs, pay it.

        Claim runs queue an entitlement notification per record and wait
        for claim() calls.
        """
        run = self.build_run(
            asset_id,
            distributable_amount,
            currency,
            tax_rates,
            eligibility=eligibility,
            method=method,
            as_of=as_of,
            run_id=run_id,
        )
        return self.execute_run(run, cancel_event)

    def execute_run(
        self,
        run: DistributionRun,
        cancel_event: Optional[threading.Event] = None,
    ) -> DistributionRun:
        """Start a freshly built run."""
        if run.status != "pending" or any(r.is_terminal for r in run.records):
            raise InvalidStatusTransition(f"Run {run.id} has already started")

        for record in run.pending_records():
            if record.net_amount == 0:
                self._settle_without_transfer(run, record)

        if run.method == "claim":
            for record in run.pending_records():
                run.notifications.append(DistributionNotification(
                    distribution_id=run.id,
                    recipient_address=record.recipient_address,
                    notification_type="entitlement",
                    amount=record.net_amount,
                    currency=run.currency,
                ))
            run.refresh_status()
            return run

        return self._process(run, cancel_event)

    def resume(
        self,
        run: DistributionRun,
        cancel_event: Optional[threading.Event] = None,
    ) -> DistributionRun:
        """Re-issue transfers for the run's pending records."""
        if run.method != "automatic":
            raise InvalidStatusTransition(
                f"Run {run.id} is paid by claims and cannot be resumed"
            )
        if run.status == "completed":
            return run
        return self._process(run, cancel_event)

    def claim(self, run: DistributionRun, recipient_address: str) -> DistributionRecord:
        """Pay one recipient of a claim-mode run.

        Raises:
            NothingToClaim: No pending record for the recipient
            LedgerUnavailable: Ledger unreachable; the record stays pending
        """
        if run.method != "claim":
            raise NothingToClaim(f"Run {run.id} is paid automatically")

        record = run.record_for(recipient_address)
        if record is None or record.status != "pending":
            raise NothingToClaim(
                f"{recipient_address} has nothing to claim from run {run.id}"
            )

        try:
            result = self._transfer(run, record)
        except LedgerUnavailable:
            logger.error("distribution_ledger_unavailable", run_id=run.id, recipient=recipient_address)
            raise
        except Exception as exc:
            self._record_failure(run, record, f"{type(exc).__name__}: {exc}")
        else:
            self._record_result(run, record, result)

        run.refresh_status()
        return record

    # ------------------------------------------------------------------ #
    # Transfer fan-out
    # ------------------------------------------------------------------ #

    def _transfer(self, run: DistributionRun, record: DistributionRecord) -> TransferResult:
        return self.ledger.transfer(
            record.recipient_address,
            record.net_amount,
            run.currency,
            record.request_id,
        )

    def _process(
        self,
        run: DistributionRun,
        cancel_event: Optional[threading.Event],
    ) -> DistributionRun:
        run.status = "processing"
        queue = list(run.pending_records())
        in_flight: Dict[Future, Tuple[DistributionRecord, float]] = {}
        # Timed-out calls still running in the ledger; each holds a worker thread
        abandoned: List[Future] = []
        stop_reason: Optional[str] = None
        timeout = self.config.transfer_timeout_seconds

        logger.info("distribution_processing", run_id=run.id, pending=len(queue))

        executor = ThreadPoolExecutor(
            max_workers=self.config.max_workers,
            thread_name_prefix=f"distribution-{run.id[:8]}",
        )
        try:
            while True:
                abandoned = [f for f in abandoned if not f.done()]
                free = self.config.max_workers - len(in_flight) - len(abandoned)
                while stop_reason is None and queue and free > 0:
                    if cancel_event is not None and cancel_event.is_set():
                        stop_reason = "cancelled"
                        break
                    record = queue.pop(0)
                    future = executor.submit(self._transfer, run, record)
                    in_flight[future] = (record, time.monotonic() + timeout)
                    free -= 1

                if not in_flight:
                    if stop_reason is None and queue:
                        # Every worker is stuck in a timed-out call; the rest stay pending
                        stop_reason = "workers_exhausted"
                    break

                nearest = min(deadline for _, deadline in in_flight.values())
                done, _ = wait(
                    list(in_flight),
                    timeout=max(0.0, nearest - time.monotonic()),
                    return_when=FIRST_COMPLETED,
                )

                for future in done:
                    record, _ = in_flight.pop(future)
                    try:
                        result = future.result()
                    except LedgerUnavailable as exc:
                        # Nothing was sent for this record; it stays pending
                        if stop_reason is None:
                            stop_reason = "ledger_unavailable"
                            logger.error(
                                "distribution_ledger_unavailable",
                                run_id=run.id,
                                error=str(exc),
                            )
                    except Exception as exc:
                        self._record_failure(run, record, f"{type(exc).__name__}: {exc}")
                    else:
                        self._record_result(run, record, result)

                now = time.monotonic()
                for future, (record, deadline) in list(in_flight.items()):
                    if deadline <= now and not future.done():
                        del in_flight[future]
                        if future.cancel():
                            # Never reached the ledger; leave it for resume
                            if stop_reason is None:
                                stop_reason = "workers_exhausted"
                            continue
                        abandoned.append(future)
                        self._record_failure(
                            run, record, f"Transfer timed out after {timeout}s"
                        )
        finally:
            # Timed-out calls may still be blocked in the ledger; do not wait on them
            executor.shutdown(wait=False)

        if stop_reason is not None and run.pending_count:
            run.status = "interrupted"
            logger.warning(
                "distribution_interrupted",
                run_id=run.id,
                reason=stop_reason,
                distributed=run.successful_count,
                failed=run.failed_count,
                pending=run.pending_count,
            )
        else:
            run.refresh_status()
            logger.info(
                "distribution_completed",
                run_id=run.id,
                distributed=run.successful_count,
                failed=run.failed_count,
                total_net=str(run.distributed_net),
            )
        return run

    def _record_result(
        self,
        run: DistributionRun,
        record: DistributionRecord,
        result: TransferResult,
    ) -> None:
        if not result.success:
            self._record_failure(run, record, result.error or "Transfer rejected by ledger")
            return

        record.mark_distributed(result.transaction_ref)
        self._record_withholding(run, record)
        run.notifications.append(DistributionNotification(
            distribution_id=run.id,
            recipient_address=record.recipient_address,
            notification_type="payment",
            amount=record.net_amount,
            currency=run.currency,
            transaction_ref=result.transaction_ref,
        ))

    def _settle_without_transfer(self, run: DistributionRun, record: DistributionRecord) -> None:
        record.mark_distributed(None)
        self._record_withholding(run, record)
        logger.info(
            "distribution_zero_net_settled",
            run_id=run.id,
            recipient=record.recipient_address,
            tax_withheld=str(record.tax_withheld),
        )

    @staticmethod
    def _record_withholding(run: DistributionRun, record: DistributionRecord) -> None:
        run.tax_withholdings.append(TaxWithholding(
            distribution_id=run.id,
            recipient_address=record.recipient_address,
            jurisdiction=record.jurisdiction,
            tax_rate=record.tax_rate,
            taxable_amount=record.entitled_amount,
            withheld_amount=record.tax_withheld,
            tax_type=run.tax_type,
        ))

    def _record_failure(self, run: DistributionRun, record: DistributionRecord, reason: str) -> None:
        record.mark_failed(reason)
        logger.warning(
            "distribution_transfer_failed",
            run_id=run.id,
            recipient=record.recipient_address,
            amount=str(record.net_amount),
            reason=reason,
        )

    # ------------------------------------------------------------------ #
    # Reporting
    # ------------------------------------------------------------------ #

    @staticmethod
    def tax_summary(run: DistributionRun) -> TaxSummary:
        by_jurisdiction: Dict[str, Decimal] = {}
        by_tax_type: Dict[str, Decimal] = {}
        for w in run.tax_withholdings:
            key = w.jurisdiction or UNSPECIFIED_JURISDICTION
            by_jurisdiction[key] = by_jurisdiction.get(key, Decimal("0")) + w.withheld_amount
            by_tax_type[w.tax_type] = by_tax_type.get(w.tax_type, Decimal("0")) + w.withheld_amount

        return TaxSummary(
            total_withheld=sum((w.withheld_amount for w in run.tax_withholdings), Decimal("0")),
            by_jurisdiction=by_jurisdiction,
            by_tax_type=by_tax_type,
            pending_reports=sum(1 for w in run.tax_withholdings if w.reporting_status == "pending"),
        )

    @staticmethod
    def generate_tax_report(run: DistributionRun, jurisdiction: Optional[str] = None) -> List[TaxWithholding]:
        """Mark pending withholdings for a jurisdiction as reported and return them.

        jurisdiction=None reports every jurisdiction.
        """
        reported = []
        for w in run.tax_withholdings:
            if w.reporting_status != "pending":
                continue
            if jurisdiction is not None and (w.jurisdiction or UNSPECIFIED_JURISDICTION) != jurisdiction:
                continue
            w.reporting_status = "reported"
            w.reported_at = utcnow()
            reported.append(w)

        logger.info(
            "tax_report_generated",
            run_id=run.id,
            jurisdiction=jurisdiction,
            entries=len(reported),
        )
        return reported

    @staticmethod
    def recipient_stats(run: DistributionRun) -> RecipientStats:
        if not run.records:
            return RecipientStats(total_recipients=0, average_holding=Decimal("0"))

        percentages = [r.ownership_percentage for r in run.records]
        largest = max(run.records, key=lambda r: (r.entitled_amount, r.ownership_percentage))
        return RecipientStats(
            total_recipients=len(run.records),
            average_holding=sum(percentages, Decimal("0")) / len(percentages),
            largest_recipient=largest.recipient_address,
            largest_recipient_percentage=largest.ownership_percentage,
            largest_recipient_amount=largest.entitled_amount,
            holders_by_size=holders_by_size([float(p) for p in percentages]),
        )
