"""Recurring distribution schedules.

Occurrence dates are computed from the schedule's start date, never from the
previous occurrence, so a monthly schedule started on the 31st lands on the
last day of shorter months and returns to the 31st afterwards:

    start 2024-01-31 monthly -> 2024-02-29, 2024-03-31, 2024-04-30, ...

run_due works through every occurrence up to as_of, oldest first. Each one
ends in exactly one of:

    executed   a run was built and stored; the schedule advances
    skipped    net income share below minimum_distribution; the schedule
               advances but last_distribution does not, so the next period
               covers the skipped income as well
    error      revenue feed or run construction failed; the schedule stays
               on this occurrence and the next call retries it
"""

from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

import pandas as pd
import structlog

from ..errors import InvalidAmount, RevenueUnavailable, TokenomicsError
from ..interfaces import RevenueFeed
from ..schemas.config import DistributionCFG
from ..schemas.distribution import (
    DistributionSchedule,
    EligibilityCFG,
    ScheduledRunResult,
    TaxRates,
)
from .book import AssetBook
from .distribution import DistributionEngine, calculate_distributable_amount

logger = structlog.get_logger()


FREQUENCY_STEPS: Dict[str, Tuple[str, int]] = {
    "daily": ("days", 1),
    "weekly": ("days", 7),
    "bi_weekly": ("days", 14),
    "monthly": ("months", 1),
    "quarterly": ("months", 3),
    "semi_annual": ("months", 6),
    "annual": ("years", 1),
}


def occurrence(start: date, frequency: str, n: int) -> date:
    """The n-th occurrence after start (n=0 is start itself)."""
    try:
        unit, step = FREQUENCY_STEPS[frequency]
    except KeyError:
        raise InvalidAmount(f"Unknown distribution frequency '{frequency}'") from None
    return (pd.Timestamp(start) + pd.DateOffset(**{unit: step * n})).date()


def next_distribution_date(frequency: str, from_date: date) -> date:
    return occurrence(from_date, frequency, 1)


def advance(schedule: DistributionSchedule) -> date:
    """Move the schedule to its following occurrence."""
    schedule.periods_elapsed += 1
    schedule.next_distribution = occurrence(
        schedule.start_date, schedule.frequency, schedule.periods_elapsed + 1
    )
    return schedule.next_distribution


class DistributionScheduler:
    """Creates schedules on asset books and executes their due occurrences."""

    def __init__(
        self,
        distributions: DistributionEngine,
        feed: Optional[RevenueFeed] = None,
        config: Optional[DistributionCFG] = None,
    ):
        self.distributions = distributions
        self.feed = feed
        self.config = config or DistributionCFG()

    def create_schedule(
        self,
        book: AssetBook,
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
        """Register a schedule whose first occurrence is one period after start_date.

        Must be called inside book.writer().
        """
        if schedule_id in book.schedules:
            raise InvalidAmount(f"Distribution schedule {schedule_id} already exists")

        schedule = DistributionSchedule(
            id=schedule_id,
            asset_id=book.asset_id,
            name=name,
            frequency=frequency,
            currency=currency,
            tax_rates=tax_rates,
            eligibility=eligibility or EligibilityCFG(),
            method=method,
            distribution_ratio=distribution_ratio,
            minimum_distribution=minimum_distribution,
            start_date=start_date,
            next_distribution=occurrence(start_date, frequency, 1),
        )
        book.schedules[schedule_id] = schedule

        logger.info(
            "distribution_schedule_created",
            asset_id=book.asset_id,
            schedule_id=schedule_id,
            frequency=frequency,
            next_distribution=schedule.next_distribution.isoformat(),
        )
        return schedule

    def deactivate(self, book: AssetBook, schedule_id: str) -> DistributionSchedule:
        schedule = book.get_schedule(schedule_id)
        schedule.is_active = False
        logger.info("distribution_schedule_deactivated", asset_id=book.asset_id, schedule_id=schedule_id)
        return schedule

    def run_due(self, book: AssetBook, as_of: date) -> List[ScheduledRunResult]:
        """Process every occurrence due on or before as_of.

        Must be called inside book.writer().

        Raises:
            RevenueUnavailable: No revenue feed is configured
        """
        due = [
            s for s in sorted(book.schedules.values(), key=lambda s: s.id)
            if s.is_active and s.next_distribution <= as_of
        ]
        if not due:
            return []
        if self.feed is None:
            raise RevenueUnavailable(
                f"No revenue feed configured; {len(due)} schedule(s) due for asset {book.asset_id}"
            )

        results: List[ScheduledRunResult] = []
        for schedule in due:
            while schedule.is_active and schedule.next_distribution <= as_of:
                result = self._run_occurrence(book, schedule)
                results.append(result)
                if result.status == "error":
                    break
        return results

    def _run_occurrence(self, book: AssetBook, schedule: DistributionSchedule) -> ScheduledRunResult:
        due_date = schedule.next_distribution
        period_start = schedule.last_distribution or schedule.start_date
        context = dict(asset_id=book.asset_id, schedule_id=schedule.id, due_date=due_date.isoformat())

        try:
            financials = self.feed.get_period_financials(book.asset_id, period_start, due_date)
            amount = calculate_distributable_amount(
                financials.revenue,
                financials.expenses,
                schedule.distribution_ratio,
                self.config.amount_precision,
            )
            if amount <= 0 or amount < schedule.minimum_distribution:
                advance(schedule)
                logger.info(
                    "scheduled_distribution_skipped",
                    **context,
                    amount=str(amount),
                    minimum=str(schedule.minimum_distribution),
                )
                return ScheduledRunResult(
                    schedule_id=schedule.id,
                    asset_id=book.asset_id,
                    due_date=due_date,
                    status="skipped",
                    amount=amount,
                    reason=f"Amount {amount} below minimum {schedule.minimum_distribution}",
                )

            run = self.distributions.build_run(
                book.asset_id,
                amount,
                schedule.currency,
                schedule.tax_rates,
                eligibility=schedule.eligibility,
                method=schedule.method,
                as_of=due_date,
            )
        except TokenomicsError as exc:
            logger.warning(
                "scheduled_distribution_failed",
                error=str(exc),
                error_type=type(exc).__name__,
                **context,
            )
            return ScheduledRunResult(
                schedule_id=schedule.id,
                asset_id=book.asset_id,
                due_date=due_date,
                status="error",
                reason=str(exc),
            )

        # Stored before execution: an interrupted run is resumed, not rebuilt
        book.distributions[run.id] = run
        schedule.last_distribution = due_date
        schedule.total_distributions += 1
        schedule.total_amount_distributed += amount
        schedule.run_ids.append(run.id)
        advance(schedule)

        self.distributions.execute_run(run)
        logger.info(
            "scheduled_distribution_executed",
            **context,
            run_id=run.id,
            amount=str(amount),
            run_status=run.status,
            next_distribution=schedule.next_distribution.isoformat(),
        )
        return ScheduledRunResult(
            schedule_id=schedule.id,
            asset_id=book.asset_id,
            due_date=due_date,
            status="executed",
            amount=amount,
            run_id=run.id,
            reason=None if run.status == "completed" or run.method == "claim" else f"Run {run.status}",
        )
