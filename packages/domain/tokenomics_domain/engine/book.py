"""Per-asset aggregate and its single-writer boundary.

Each tokenized asset owns one AssetBook holding its supply, vesting
schedules, lockups, initial allocation, distribution schedules and
distribution history. Mutations of a book run inside
book.writer(); different assets never share mutable state, so writers on
different assets proceed in parallel.
"""

import threading
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional

import structlog

from ..errors import AssetBusy, AssetNotFound, DistributionNotFound, ScheduleNotFound
from ..schemas.allocation import AllocationPlan
from ..schemas.config import EngineCFG
from ..schemas.distribution import DistributionRun, DistributionSchedule
from ..schemas.supply import TokenSupply
from .lockup import LockupEngine
from .vesting import VestingEngine

logger = structlog.get_logger()


class AssetBook:
    """Everything the engine knows about one asset."""

    def __init__(self, asset_id: str, config: Optional[EngineCFG] = None):
        self.asset_id = asset_id
        self.config = config or EngineCFG()
        self.supply: Optional[TokenSupply] = None
        self.vesting = VestingEngine(self.config.vesting)
        self.lockups = LockupEngine()
        self.allocation: Optional[AllocationPlan] = None
        self.distributions: Dict[str, DistributionRun] = {}
        self.schedules: Dict[str, DistributionSchedule] = {}
        self._lock = threading.RLock()

    @contextmanager
    def writer(self, timeout: Optional[float] = None) -> Iterator["AssetBook"]:
        """Hold the asset's write lock.

        Raises:
            AssetBusy: The lock was not acquired within timeout seconds
        """
        timeout = self.config.lock_timeout_seconds if timeout is None else timeout
        if not self._lock.acquire(timeout=timeout):
            logger.warning("asset_busy", asset_id=self.asset_id, timeout=timeout)
            raise AssetBusy(f"Asset {self.asset_id} is busy; gave up after {timeout}s")
        try:
            yield self
        finally:
            self._lock.release()

    def get_distribution(self, run_id: str) -> DistributionRun:
        try:
            return self.distributions[run_id]
        except KeyError:
            raise DistributionNotFound(
                f"Distribution {run_id} not found for asset {self.asset_id}"
            ) from None

    def get_schedule(self, schedule_id: str) -> DistributionSchedule:
        try:
            return self.schedules[schedule_id]
        except KeyError:
            raise ScheduleNotFound(
                f"Distribution schedule {schedule_id} not found for asset {self.asset_id}"
            ) from None

    def distribution_history(self) -> List[DistributionRun]:
        return sorted(self.distributions.values(), key=lambda r: r.created_at)


class AssetRegistry:
    """Thread-safe map of asset id to AssetBook."""

    def __init__(self, config: Optional[EngineCFG] = None):
        self.config = config or EngineCFG()
        self._books: Dict[str, AssetBook] = {}
        self._lock = threading.Lock()

    def open(self, asset_id: str) -> AssetBook:
        """Return the asset's book, creating it on first use."""
        with self._lock:
            book = self._books.get(asset_id)
            if book is None:
                book = AssetBook(asset_id, self.config)
                self._books[asset_id] = book
                logger.debug("asset_book_opened", asset_id=asset_id)
            return book

    def get(self, asset_id: str) -> AssetBook:
        with self._lock:
            try:
                return self._books[asset_id]
            except KeyError:
                raise AssetNotFound(f"Asset {asset_id} has not been tokenized") from None

    def __contains__(self, asset_id: str) -> bool:
        with self._lock:
            return asset_id in self._books

    def asset_ids(self) -> List[str]:
        with self._lock:
            return sorted(self._books)
