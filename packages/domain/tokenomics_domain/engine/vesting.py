"""Vesting engine.

Release schedule policies (interval = VestingCFG.release_interval_days, 30 by default):

    Cliff (cliff_date given):
        floor(25%) of the grant at cliff_date, then the remainder split into
        floor((end - cliff).days / interval) equal entries at cliff + i*interval.
        The final entry absorbs rounding. If no whole interval fits between
        cliff and end, the remainder is a single entry at end_date.

    Linear (no cliff):
        12 equal entries at start + i*interval (i = 1..12); the final entry
        absorbs rounding.

Claims release every matured, unreleased entry at once.
"""

from typing import Dict, List, Optional
from datetime import date, timedelta
from decimal import Decimal, ROUND_HALF_UP

import structlog

from ..errors import (
    BeneficiaryMismatch,
    InvalidAmount,
    InvalidStatusTransition,
    NothingClaimable,
    ScheduleNotFound,
    VestingFrozen,
    VestingOverClaim,
)
from ..schemas.base import utcnow
from ..schemas.config import VestingCFG
from ..schemas.vesting import ReleaseEntry, VestingSchedule

logger = structlog.get_logger()


def _share(amount: int, total: int) -> Decimal:
    if total == 0:
        return Decimal("0")
    return (Decimal(amount) * 100 / Decimal(total)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def _split(amount: int, parts: int) -> List[int]:
    """Equal integer parts; the last part takes the remainder."""
    base = amount // parts
    return [base] * (parts - 1) + [amount - base * (parts - 1)]


def generate_schedule(
    total_amount: int,
    start_date: date,
    end_date: date,
    cliff_date: Optional[date] = None,
    config: Optional[VestingCFG] = None,
) -> List[ReleaseEntry]:
    """Build the release schedule for a grant.

    Args:
        total_amount: Tokens granted (> 0)
        start_date: Grant start
        end_date: Grant end (>= start_date)
        cliff_date: Optional cliff, within [start_date, end_date]
        config: Release policy (defaults to VestingCFG())

    Returns:
        Entries in date order whose amounts sum exactly to total_amount

    Example:
        >>> entries = generate_schedule(12_000, date(2024, 1, 1), date(2027, 1, 1),
        ...                             cliff_date=date(2024, 12, 31))
        >>> entries[0].amount
        3000
        >>> sum(e.amount for e in entries[1:])
        9000
    """
    config = config or VestingCFG()

    if total_amount <= 0:
        raise InvalidAmount(f"Vesting total must be positive, got {total_amount}")
    if end_date < start_date:
        raise InvalidAmount(f"end_date {end_date} is before start_date {start_date}")
    if cliff_date is not None and not (start_date <= cliff_date <= end_date):
        raise InvalidAmount(
            f"cliff_date {cliff_date} must fall between {start_date} and {end_date}"
        )

    interval = timedelta(days=config.release_interval_days)
    entries: List[ReleaseEntry] = []

    if cliff_date is not None:
        cliff_amount = int(Decimal(total_amount) * config.cliff_release_pct / 100)
        remaining = total_amount - cliff_amount

        entries.append(ReleaseEntry(
            release_date=cliff_date,
            amount=cliff_amount,
            percentage=_share(cliff_amount, total_amount),
        ))

        if remaining > 0:
            periods = (end_date - cliff_date).days // config.release_interval_days
            if periods == 0:
                entries.append(ReleaseEntry(
                    release_date=end_date,
                    amount=remaining,
                    percentage=_share(remaining, total_amount),
                ))
            else:
                for i, amount in enumerate(_split(remaining, periods), start=1):
                    entries.append(ReleaseEntry(
                        release_date=cliff_date + interval * i,
                        amount=amount,
                        percentage=_share(amount, total_amount),
                    ))
    else:
        for i, amount in enumerate(_split(total_amount, config.linear_periods), start=1):
            entries.append(ReleaseEntry(
                release_date=start_date + interval * i,
                amount=amount,
                percentage=_share(amount, total_amount),
            ))

    # Drop zero tranches (tiny grants); the sum is unaffected
    return [e for e in entries if e.amount > 0]


class VestingEngine:
    """Registry of vesting schedules for one asset."""

    def __init__(self, config: Optional[VestingCFG] = None):
        self.config = config or VestingCFG()
        self.schedules: Dict[str, VestingSchedule] = {}

    def get(self, schedule_id: str) -> VestingSchedule:
        try:
            return self.schedules[schedule_id]
        except KeyError:
            raise ScheduleNotFound(f"Vesting schedule {schedule_id} not found") from None

    def create_schedule(
        self,
        schedule_id: str,
        beneficiary: str,
        total_amount: int,
        start_date: date,
        end_date: date,
        cliff_date: Optional[date] = None,
        name: str = "",
    ) -> VestingSchedule:
        if schedule_id in self.schedules:
            raise InvalidAmount(f"Vesting schedule {schedule_id} already exists")

        schedule = VestingSchedule(
            id=schedule_id,
            name=name,
            beneficiary=beneficiary,
            total_amount=total_amount,
            start_date=start_date,
            end_date=end_date,
            cliff_date=cliff_date,
            release_schedule=generate_schedule(
                total_amount, start_date, end_date, cliff_date, self.config
            ),
            created_at=utcnow(),
        )
        self.schedules[schedule_id] = schedule

        logger.info(
            "vesting_schedule_created",
            schedule_id=schedule_id,
            beneficiary=beneficiary,
            total_amount=total_amount,
            entries=len(schedule.release_schedule),
        )
        return schedule

    def claim(self, schedule_id: str, now: date, claimant: Optional[str] = None) -> int:
        """Release every matured, unreleased entry.

        Args:
            schedule_id: Schedule to claim from
            now: Evaluation date
            claimant: If given, must equal the schedule's beneficiary

        Returns:
            Tokens released by this call

        Raises:
            ScheduleNotFound, BeneficiaryMismatch, VestingFrozen, NothingClaimable
        """
        schedule = self.get(schedule_id)

        if claimant is not None and claimant != schedule.beneficiary:
            raise BeneficiaryMismatch(
                f"{claimant} is not the beneficiary of schedule {schedule_id}"
            )
        if schedule.is_frozen:
            raise VestingFrozen(f"Vesting schedule {schedule_id} is {schedule.status}")

        matured = [
            e for e in schedule.release_schedule
            if e.release_date <= now and not e.released
        ]
        amount = sum(e.amount for e in matured)
        if amount == 0:
            raise NothingClaimable(
                f"Nothing claimable on schedule {schedule_id} as of {now}"
            )
        if schedule.claimed_amount + amount > schedule.total_amount:
            raise VestingOverClaim(
                f"Claim of {amount} would exceed grant {schedule.total_amount} "
                f"(already claimed {schedule.claimed_amount})"
            )

        for entry in matured:
            entry.released = True
        schedule.claimed_amount += amount
        schedule.last_claim_date = now
        schedule.status = (
            "completed" if schedule.claimed_amount == schedule.total_amount else "active"
        )

        logger.info(
            "vesting_claimed",
            schedule_id=schedule_id,
            beneficiary=schedule.beneficiary,
            amount=amount,
            claimed_amount=schedule.claimed_amount,
            status=schedule.status,
        )
        return amount

    # ------------------------------------------------------------------ #
    # Administrative transitions
    # ------------------------------------------------------------------ #

    def pause(self, schedule_id: str) -> VestingSchedule:
        schedule = self.get(schedule_id)
        if schedule.status not in ("not_started", "active"):
            raise InvalidStatusTransition(
                f"Cannot pause schedule {schedule_id} in status {schedule.status}"
            )
        schedule.status = "paused"
        logger.info("vesting_paused", schedule_id=schedule_id)
        return schedule

    def resume(self, schedule_id: str) -> VestingSchedule:
        schedule = self.get(schedule_id)
        if schedule.status != "paused":
            raise InvalidStatusTransition(
                f"Cannot resume schedule {schedule_id} in status {schedule.status}"
            )
        schedule.status = "active" if schedule.claimed_amount > 0 else "not_started"
        logger.info("vesting_resumed", schedule_id=schedule_id, status=schedule.status)
        return schedule

    def cancel(self, schedule_id: str) -> VestingSchedule:
        """Freeze a schedule permanently. Past claims stand."""
        schedule = self.get(schedule_id)
        if schedule.status in ("completed", "cancelled"):
            raise InvalidStatusTransition(
                f"Cannot cancel schedule {schedule_id} in status {schedule.status}"
            )
        schedule.status = "cancelled"
        logger.info(
            "vesting_cancelled",
            schedule_id=schedule_id,
            unvested_amount=schedule.remaining_amount,
        )
        return schedule

    # ------------------------------------------------------------------ #
    # Queries
    # ------------------------------------------------------------------ #

    def claimable(self, schedule_id: str, now: date) -> int:
        """Tokens a claim at now would release (0 for frozen schedules)."""
        schedule = self.get(schedule_id)
        if schedule.is_frozen:
            return 0
        return sum(
            e.amount for e in schedule.release_schedule
            if e.release_date <= now and not e.released
        )

    def for_beneficiary(self, beneficiary: str) -> List[VestingSchedule]:
        return [s for s in self.schedules.values() if s.beneficiary == beneficiary]

    def total_unvested(self) -> int:
        return sum(
            s.remaining_amount for s in self.schedules.values()
            if s.status != "cancelled"
        )
