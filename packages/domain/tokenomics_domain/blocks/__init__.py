"""Computation blocks for tokenomics reporting.

Architecture:
    Domain objects (supply, schedules, snapshot, runs) → Blocks → DataFrames

Available blocks:
- SupplyBlock: Supply counters and adjustment ledger
- VestingBlock: Schedule overview and release entries
- ConcentrationBlock: Ownership distribution, HHI/Gini and risk factors
- DistributionBlock: Per-recipient records, run totals and tax by jurisdiction

Usage:
    from tokenomics_domain.blocks import BlockContext, BlockExecutor, SupplyBlock

    context = BlockContext()
    context.set("token_supply", supply)
    BlockExecutor([SupplyBlock()]).execute(context)
    summary_df = context.get("supply_summary")
"""

from .base import Block, BlockContext, BlockExecutor, CircularDependencyError, topological_sort
from .supply import SupplyBlock
from .vesting import VestingBlock
from .concentration import ConcentrationBlock
from .distribution import DistributionBlock

__all__ = [
    "Block",
    "BlockContext",
    "BlockExecutor",
    "CircularDependencyError",
    "topological_sort",
    "SupplyBlock",
    "VestingBlock",
    "ConcentrationBlock",
    "DistributionBlock",
]
