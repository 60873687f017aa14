"""Tests for lockups and condition-gated unlocks."""

import pytest
from datetime import date

from tokenomics_domain.engine import LockupEngine
from tokenomics_domain.errors import (
    InvalidAmount,
    InvalidStatusTransition,
    LockupNotFound,
    MissingParameter,
)
from tokenomics_domain.schemas import LockupPeriod, UnlockCondition


START = date(2024, 1, 1)
END = date(2025, 1, 1)


def governance_vote():
    return UnlockCondition(
        type="governance_approval",
        parameter="board_vote",
        operator="eq",
        value="approved",
    )


def revenue_target():
    return UnlockCondition(
        type="performance_based",
        parameter="annual_revenue",
        operator="gt",
        value=1_000_000,
    )


@pytest.fixture
def engine():
    e = LockupEngine()
    e.create_lockup("time-only", "0xfounder", 10_000, START, END)
    e.create_lockup(
        "gated", "0xinvestor", 5_000, START, END,
        conditions=[governance_vote(), revenue_target()],
    )
    return e


def test_nothing_unlocks_before_end(engine):
    assert engine.check_unlocks(date(2024, 12, 31)) == []
    assert engine.total_locked_amount == 15_000


def test_time_only_unlocks_at_end(engine):
    entries = engine.check_unlocks(END)

    assert [e.lockup_id for e in entries] == ["time-only"]
    entry = entries[0]
    assert entry.holder == "0xfounder"
    assert entry.total_unlockable == 10_000
    assert entry.actually_unlocked == 10_000
    assert entry.unlock_method == "automatic"
    assert engine.get("time-only").status == "unlocked"
    assert engine.get("time-only").unlocked_at is not None
    assert engine.get("gated").status == "locked"


def test_check_unlocks_is_idempotent(engine):
    engine.check_unlocks(END)
    assert engine.check_unlocks(END) == []
    assert engine.check_unlocks(date(2026, 1, 1)) == []
    assert len(engine.unlock_history) == 1


def test_all_conditions_required(engine):
    engine.set_condition("gated", "board_vote")
    assert [e.lockup_id for e in engine.check_unlocks(END)] == ["time-only"]
    assert engine.get("gated").status == "locked"

    engine.set_condition("gated", "annual_revenue")
    entries = engine.check_unlocks(END)

    assert [e.lockup_id for e in entries] == ["gated"]
    assert entries[0].unlock_method == "governance"
    assert engine.locked_amount() == 0


def test_conditions_satisfied_early_wait_for_end_date(engine):
    engine.set_condition("gated", "board_vote")
    engine.set_condition("gated", "annual_revenue")

    assert engine.check_unlocks(date(2024, 6, 1)) == []
    assert engine.get("gated").status == "locked"


def test_condition_can_be_unset(engine):
    engine.set_condition("gated", "board_vote")
    engine.set_condition("gated", "annual_revenue")
    engine.set_condition("gated", "board_vote", satisfied=False)

    assert [e.lockup_id for e in engine.check_unlocks(END)] == ["time-only"]


def test_revoked_condition_stays_locked_forever(engine):
    engine.revoke_condition("gated", "board_vote")
    engine.set_condition("gated", "board_vote")
    engine.set_condition("gated", "annual_revenue")

    entries = engine.check_unlocks(date(2030, 1, 1))

    assert [e.lockup_id for e in entries] == ["time-only"]
    assert engine.get("gated").status == "locked"
    assert engine.get("gated").unlock_conditions[0].satisfied is False
    assert engine.locked_amount("0xinvestor") == 5_000


def test_locked_amount_by_holder(engine):
    engine.create_lockup("second", "0xfounder", 2_000, START, date(2026, 1, 1))
    assert engine.locked_amount("0xfounder") == 12_000

    engine.check_unlocks(END)
    assert engine.locked_amount("0xfounder") == 2_000
    assert engine.total_locked_amount == 7_000


def test_unknown_lockup(engine):
    with pytest.raises(LockupNotFound):
        engine.set_condition("missing", "board_vote")


def test_unknown_condition(engine):
    with pytest.raises(MissingParameter):
        engine.set_condition("gated", "nope")


def test_duplicate_condition_parameters():
    with pytest.raises(MissingParameter):
        LockupEngine().create_lockup(
            "dup", "0xa", 1, START, END, conditions=[governance_vote(), governance_vote()]
        )


def test_rejects_zero_amount_and_duplicate_id(engine):
    with pytest.raises(InvalidAmount):
        engine.create_lockup("zero", "0xa", 0, START, END)
    with pytest.raises(InvalidAmount):
        engine.create_lockup("gated", "0xa", 1, START, END)


def test_end_before_start_rejected():
    with pytest.raises(ValueError):
        LockupPeriod(id="x", holder="0xa", amount=1, lock_start_date=END, lock_end_date=START)


class TestStatusTransitions:

    def make(self):
        return LockupPeriod(id="x", holder="0xa", amount=1, lock_start_date=START, lock_end_date=END)

    def test_forward_one_step(self):
        lockup = self.make()
        lockup.transition("unlocking")
        lockup.transition("unlocked")
        assert lockup.status == "unlocked"

    def test_cannot_skip(self):
        with pytest.raises(InvalidStatusTransition):
            self.make().transition("unlocked")

    def test_cannot_go_back(self):
        lockup = self.make()
        lockup.transition("unlocking")
        with pytest.raises(InvalidStatusTransition):
            lockup.transition("locked")


def test_conditions_are_copied_on_create():
    condition = governance_vote()
    engine = LockupEngine()
    engine.create_lockup("a", "0xa", 1, START, END, conditions=[condition])
    engine.set_condition("a", "board_vote")

    assert condition.satisfied is False
