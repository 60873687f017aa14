"""Tokenomics engines.

Usage:
    from tokenomics_domain.engine import (
        SupplyCalculator, VestingEngine, LockupEngine,
        ConcentrationAnalyzer, DistributionEngine, DistributionScheduler,
        AssetRegistry
    )
"""

from .supply import SupplyCalculator, market_adjustment_from_history
from .vesting import VestingEngine, generate_schedule
from .lockup import LockupEngine
from .concentration import ConcentrationAnalyzer, gini, gini_pairwise, herfindahl_index
from .distribution import DistributionEngine, allocate, calculate_distributable_amount
from .book import AssetBook, AssetRegistry
from .allocation import plan_allocation, execute_allocation
from .schedule import DistributionScheduler, next_distribution_date, occurrence
from .history import summarize_distributions

__all__ = [
    "SupplyCalculator",
    "market_adjustment_from_history",
    "VestingEngine",
    "generate_schedule",
    "LockupEngine",
    "ConcentrationAnalyzer",
    "gini",
    "gini_pairwise",
    "herfindahl_index",
    "DistributionEngine",
    "allocate",
    "calculate_distributable_amount",
    "AssetBook",
    "AssetRegistry",
    "plan_allocation",
    "execute_allocation",
    "DistributionScheduler",
    "next_distribution_date",
    "occurrence",
    "summarize_distributions",
]
