"""Tokenomics Domain Engine - fractional ownership economics for tokenized assets.

This package provides:
- Token supply derivation from an appraised value, with an adjustment ledger
- Vesting schedules (cliff and linear) and lockups with external unlock conditions
- Ownership concentration metrics (HHI, Gini) and risk assessment
- Pro-rata revenue distribution with tax withholding and per-recipient isolation
- Computation blocks producing pandas DataFrames for reporting

The domain layer is designed to be:
- Framework-agnostic (no web dependencies)
- Testable (pure Python with Pydantic validation, in-memory collaborators)
- Explicit about failure (typed errors, no synthetic defaults)
"""

from .schemas import *  # noqa: F403, F401
from .errors import *  # noqa: F403, F401
from .service import AssetEconomicsService  # noqa: F401

__version__ = "0.1.0"
