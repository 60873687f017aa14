"""Lockup engine.

Conditions are marked satisfied (or revoked) by external authorities through
set_condition / revoke_condition; check_unlocks only reads those flags.
"""

from typing import Dict, List, Optional, Sequence
from datetime import date

import structlog

from ..errors import InvalidAmount, LockupNotFound, MissingParameter
from ..schemas.lockup import LockupPeriod, UnlockCondition, UnlockEntry

logger = structlog.get_logger()


class LockupEngine:
    """Registry of lockup periods for one asset plus its unlock history."""

    def __init__(self):
        self.lockups: Dict[str, LockupPeriod] = {}
        self.unlock_history: List[UnlockEntry] = []

    def get(self, lockup_id: str) -> LockupPeriod:
        try:
            return self.lockups[lockup_id]
        except KeyError:
            raise LockupNotFound(f"Lockup {lockup_id} not found") from None

    def create_lockup(
        self,
        lockup_id: str,
        holder: str,
        amount: int,
        lock_start_date: date,
        lock_end_date: date,
        conditions: Sequence[UnlockCondition] = (),
        name: str = "",
    ) -> LockupPeriod:
        if lockup_id in self.lockups:
            raise InvalidAmount(f"Lockup {lockup_id} already exists")
        if amount <= 0:
            raise InvalidAmount(f"Lockup amount must be positive, got {amount}")

        parameters = [c.parameter for c in conditions]
        if len(parameters) != len(set(parameters)):
            raise MissingParameter(
                f"Lockup {lockup_id} has duplicate condition parameters: {parameters}"
            )

        lockup = LockupPeriod(
            id=lockup_id,
            name=name,
            holder=holder,
            amount=amount,
            lock_start_date=lock_start_date,
            lock_end_date=lock_end_date,
            unlock_conditions=[c.model_copy() for c in conditions],
        )
        self.lockups[lockup_id] = lockup

        logger.info(
            "lockup_created",
            lockup_id=lockup_id,
            holder=holder,
            amount=amount,
            lock_end_date=lock_end_date.isoformat(),
            conditions=len(lockup.unlock_conditions),
        )
        return lockup

    def _condition(self, lockup: LockupPeriod, parameter: str) -> UnlockCondition:
        for condition in lockup.unlock_conditions:
            if condition.parameter == parameter:
                return condition
        raise MissingParameter(
            f"Lockup {lockup.id} has no unlock condition {parameter!r}"
        )

    def set_condition(self, lockup_id: str, parameter: str, satisfied: bool = True) -> UnlockCondition:
        """Record an external authority's verdict on one condition.

        A revoked condition stays unsatisfied whatever is reported.
        """
        lockup = self.get(lockup_id)
        condition = self._condition(lockup, parameter)

        if condition.revoked:
            logger.warning(
                "unlock_condition_revoked_ignored",
                lockup_id=lockup_id,
                parameter=parameter,
            )
            return condition

        condition.satisfied = satisfied
        logger.info(
            "unlock_condition_set",
            lockup_id=lockup_id,
            parameter=parameter,
            satisfied=satisfied,
        )
        return condition

    def revoke_condition(self, lockup_id: str, parameter: str) -> UnlockCondition:
        """Permanently revoke a condition; the lockup can then never unlock."""
        lockup = self.get(lockup_id)
        condition = self._condition(lockup, parameter)
        condition.satisfied = False
        condition.revoked = True
        logger.info("unlock_condition_revoked", lockup_id=lockup_id, parameter=parameter)
        return condition

    def check_unlocks(self, now: date) -> List[UnlockEntry]:
        """Unlock every period whose end date has passed and conditions hold.

        Idempotent: periods already unlocked are skipped, so an unchanged
        world yields no new entries.
        """
        entries: List[UnlockEntry] = []

        for lockup in self.lockups.values():
            if not lockup.can_unlock(now):
                continue

            lockup.transition("unlocking")
            lockup.transition("unlocked")

            entry = UnlockEntry(
                lockup_id=lockup.id,
                holder=lockup.holder,
                unlock_date=now,
                total_unlockable=lockup.amount,
                actually_unlocked=lockup.amount,
                unlock_method="governance" if any(
                    c.type == "governance_approval" for c in lockup.unlock_conditions
                ) else "automatic",
            )
            entries.append(entry)

            logger.info(
                "lockup_unlocked",
                lockup_id=lockup.id,
                holder=lockup.holder,
                amount=lockup.amount,
            )

        self.unlock_history.extend(entries)
        return entries

    # ------------------------------------------------------------------ #
    # Queries
    # ------------------------------------------------------------------ #

    def unlockable(self, now: date) -> List[LockupPeriod]:
        """Periods check_unlocks(now) would release."""
        return [l for l in self.lockups.values() if l.can_unlock(now)]

    def locked_amount(self, holder: Optional[str] = None) -> int:
        """Tokens still locked, optionally for one holder."""
        return sum(
            l.amount for l in self.lockups.values()
            if l.status != "unlocked" and (holder is None or l.holder == holder)
        )

    @property
    def total_locked_amount(self) -> int:
        return self.locked_amount()
