"""Initial allocation of a new asset's supply.

plan_allocation is pure: it turns the configured category split into an
AllocationPlan against the supply's total. execute_allocation applies a plan
to an AssetBook all-or-nothing: every check runs before the first supply
adjustment, so a rejected plan leaves the book untouched.
"""

from datetime import date, timedelta
from decimal import Decimal, ROUND_FLOOR
from typing import Mapping, Optional

import structlog

from ..errors import (
    InvalidAmount,
    InvalidStatusTransition,
    MissingParameter,
    SupplyInvariantViolation,
)
from ..schemas.allocation import Allocation, AllocationPlan
from ..schemas.base import utcnow
from ..schemas.config import AllocationCFG, AllocationPolicy
from ..schemas.supply import SupplyAdjustment, TokenSupply
from .book import AssetBook

logger = structlog.get_logger()


def _category_amount(total_supply: int, percentage: Decimal) -> int:
    return int(
        (Decimal(total_supply) * percentage / Decimal(100)).to_integral_value(rounding=ROUND_FLOOR)
    )


def _allocation(policy: AllocationPolicy, amount: int, beneficiary: str, tge_date: date) -> Allocation:
    allocation = Allocation(
        category=policy.category,
        percentage=policy.percentage,
        amount=amount,
        method=policy.method,
        source=policy.source,
        beneficiary=beneficiary,
        release_start=tge_date,
    )
    if policy.method == "vesting":
        allocation.release_end = tge_date + timedelta(days=policy.vesting_days)
        if policy.cliff_days:
            allocation.cliff_date = tge_date + timedelta(days=policy.cliff_days)
        allocation.vesting_schedule_id = f"{policy.category}-vesting"
    elif policy.method == "lockup":
        allocation.release_end = tge_date + timedelta(days=policy.lockup_days)
        allocation.lockup_id = f"{policy.category}-lockup"
    return allocation


def plan_allocation(
    asset_id: str,
    supply: TokenSupply,
    beneficiaries: Mapping[str, str],
    tge_date: date,
    config: Optional[AllocationCFG] = None,
) -> AllocationPlan:
    """Split supply.total_supply by the configured category percentages.

    Amounts are floored to whole tokens; categories that floor to zero are
    left out. The tokens lost to flooring stay unallocated (plan.remainder).

    Raises:
        MissingParameter: A configured category has no beneficiary address
    """
    config = config or AllocationCFG()

    missing = [p.category for p in config.policies if p.category not in beneficiaries]
    if missing:
        raise MissingParameter(f"No beneficiary given for categories: {missing}")

    plan = AllocationPlan(
        asset_id=asset_id,
        tge_date=tge_date,
        basis_supply=supply.total_supply,
    )
    for policy in config.policies:
        amount = _category_amount(supply.total_supply, policy.percentage)
        if amount == 0:
            logger.debug("allocation_category_empty", asset_id=asset_id, category=policy.category)
            continue
        plan.allocations.append(
            _allocation(policy, amount, beneficiaries[policy.category], tge_date)
        )
    return plan


def execute_allocation(book: AssetBook, plan: AllocationPlan, authorized_by: str = "system") -> AllocationPlan:
    """Issue, reserve, vest and lock the plan's categories on the book.

    Must be called inside book.writer().

    Raises:
        InvalidStatusTransition: The asset already has an executed allocation
        SupplyInvariantViolation: The plan needs more unallocated or reserved
            tokens than the supply holds
        InvalidAmount: A schedule or lockup id the plan uses is already taken
    """
    if book.allocation is not None:
        raise InvalidStatusTransition(f"Asset {book.asset_id} already has an initial allocation")
    if plan.status != "planned":
        raise InvalidStatusTransition(f"Allocation plan for {plan.asset_id} is {plan.status}")

    supply = book.supply
    from_unallocated = plan.amount_from("unallocated")
    from_reserve = plan.amount_from("reserve")
    if from_unallocated > supply.unallocated_supply:
        raise SupplyInvariantViolation(
            f"Allocation needs {from_unallocated} unallocated tokens, "
            f"only {supply.unallocated_supply} available"
        )
    if from_reserve > supply.reserved_supply:
        raise SupplyInvariantViolation(
            f"Allocation needs {from_reserve} reserved tokens, "
            f"only {supply.reserved_supply} reserved"
        )

    for allocation in plan.allocations:
        if allocation.vesting_schedule_id in book.vesting.schedules:
            raise InvalidAmount(f"Vesting schedule {allocation.vesting_schedule_id} already exists")
        if allocation.lockup_id in book.lockups.lockups:
            raise InvalidAmount(f"Lockup {allocation.lockup_id} already exists")

    for allocation in plan.allocations:
        reason = f"initial allocation: {allocation.category}"

        if allocation.method == "instant":
            supply.apply(SupplyAdjustment(
                type="issue", amount=allocation.amount,
                reason=reason, authorized_by=authorized_by,
            ))
            continue

        if allocation.source == "unallocated":
            supply.apply(SupplyAdjustment(
                type="reserve", amount=allocation.amount,
                reason=reason, authorized_by=authorized_by,
            ))

        if allocation.method == "vesting":
            book.vesting.create_schedule(
                allocation.vesting_schedule_id,
                allocation.beneficiary,
                allocation.amount,
                allocation.release_start,
                allocation.release_end,
                cliff_date=allocation.cliff_date,
                name=reason,
            )
        else:
            book.lockups.create_lockup(
                allocation.lockup_id,
                allocation.beneficiary,
                allocation.amount,
                allocation.release_start,
                allocation.release_end,
                name=reason,
            )

    plan.status = "executed"
    plan.executed_at = utcnow()
    book.allocation = plan

    logger.info(
        "initial_allocation_executed",
        asset_id=book.asset_id,
        categories=len(plan.allocations),
        allocated=plan.allocated_amount,
        remainder=plan.remainder,
        circulating=supply.circulating_supply,
        reserved=supply.reserved_supply,
    )
    return plan
