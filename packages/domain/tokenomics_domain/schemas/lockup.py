"""Lockup periods and unlock conditions.

A LockupPeriod holds an amount of a holder's tokens unavailable for transfer
until both:
    1. the lock end date has passed, and
    2. every unlock condition has been marked satisfied by its authority.

Status transitions are monotonic: locked → unlocking → unlocked.
A period whose conditions can never be met (e.g., revoked approval) stays
locked forever; that is a valid terminal state.
"""

from typing import Any, List, Literal, Optional
from datetime import date, datetime
from pydantic import Field, model_validator

from .base import DomainModel, FrozenModel, Address, TokenCount, utcnow
from ..errors import InvalidStatusTransition


LockupStatus = Literal["locked", "unlocking", "unlocked"]
ConditionType = Literal["time_based", "performance_based", "governance_approval", "custom"]
ConditionOperator = Literal["eq", "gt", "lt", "contains"]
UnlockMethod = Literal["automatic", "manual", "governance"]

_STATUS_ORDER = {"locked": 0, "unlocking": 1, "unlocked": 2}


class UnlockCondition(DomainModel):
    """External condition gating an unlock.

    The engine never evaluates parameter/operator/value itself; an external
    authority (oracle, governance module, operator) marks it satisfied.

    Example:
        UnlockCondition(
            type="governance_approval",
            parameter="board_vote_2025_q1",
            operator="eq",
            value="approved",
        )
    """

    type: ConditionType

    parameter: str = Field(
        description="What is being checked (unique within a lockup)"
    )

    value: Any = None

    operator: ConditionOperator = "eq"

    satisfied: bool = False

    revoked: bool = Field(
        default=False,
        description="A revoked condition can never become satisfied"
    )


class LockupPeriod(DomainModel):
    """Tokens held back from transfer until time and conditions allow."""

    id: str
    name: str = ""
    holder: Address
    amount: TokenCount
    lock_start_date: date
    lock_end_date: date

    unlock_conditions: List[UnlockCondition] = Field(
        default_factory=list,
        description="All must be satisfied for the unlock (empty = time only)"
    )

    status: LockupStatus = "locked"

    unlocked_at: Optional[datetime] = None

    @model_validator(mode='after')
    def validate_dates(self):
        if self.lock_end_date < self.lock_start_date:
            raise ValueError(
                f"lock_end_date {self.lock_end_date} is before lock_start_date {self.lock_start_date}"
            )
        return self

    def conditions_met(self) -> bool:
        return all(c.satisfied and not c.revoked for c in self.unlock_conditions)

    def can_unlock(self, now: date) -> bool:
        return self.status == "locked" and now >= self.lock_end_date and self.conditions_met()

    def transition(self, new_status: LockupStatus) -> None:
        """Move to the next status.

        Raises:
            InvalidStatusTransition: If new_status is not exactly one step forward
        """
        current = _STATUS_ORDER[self.status]
        target = _STATUS_ORDER[new_status]
        if target != current + 1:
            raise InvalidStatusTransition(
                f"Lockup {self.id}: cannot move from {self.status} to {new_status}"
            )
        self.status = new_status
        if new_status == "unlocked":
            self.unlocked_at = utcnow()


class UnlockEntry(FrozenModel):
    """Record of a completed unlock."""

    lockup_id: str
    holder: Address
    unlock_date: date
    total_unlockable: TokenCount
    actually_unlocked: TokenCount
    unlock_method: UnlockMethod = "automatic"
    recorded_at: datetime = Field(default_factory=utcnow)
