"""In-memory collaborators shared by the domain tests."""

import threading
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Dict, List

import pytest

from tokenomics_domain.errors import LedgerUnavailable, RevenueUnavailable, ValuationUnavailable
from tokenomics_domain.interfaces import PeriodFinancials, TransferResult, Valuation
from tokenomics_domain.schemas import ExpenseData, OwnershipPosition, RevenueData


class InMemoryDirectory:
    def __init__(self):
        self.holdings: Dict[str, List[OwnershipPosition]] = {}

    def set(self, asset_id, positions):
        self.holdings[asset_id] = list(positions)

    def get_current_ownership(self, asset_id):
        return list(self.holdings.get(asset_id, []))


class InMemoryOracle:
    def __init__(self):
        self.history: Dict[str, List[Valuation]] = {}

    def add(self, asset_id, value, as_of, currency="USD"):
        self.history.setdefault(asset_id, []).append(
            Valuation(value=Decimal(value), currency=currency, as_of=as_of)
        )

    def get_latest_value(self, asset_id):
        if not self.history.get(asset_id):
            raise ValuationUnavailable(f"No valuation for {asset_id}")
        return max(self.history[asset_id], key=lambda v: v.as_of)

    def get_valuation_history(self, asset_id):
        return list(self.history.get(asset_id, []))


class FakeLedger:
    """Ledger whose behaviour is scripted per recipient.

    reject:          recipients whose transfer returns success=False
    explode:         recipients whose transfer raises RuntimeError
    block:           recipients whose transfer waits on `release`
    unavailable_for: recipients whose transfer raises LedgerUnavailable
    down:            every transfer raises LedgerUnavailable
    """

    def __init__(self):
        self.reject = set()
        self.explode = set()
        self.block = set()
        self.unavailable_for = set()
        self.down = False
        self.release = threading.Event()
        self.calls = []
        self._lock = threading.Lock()

    def transfer(self, recipient, amount, currency, request_id):
        with self._lock:
            self.calls.append((recipient, amount, currency, request_id))
        if self.down or recipient in self.unavailable_for:
            raise LedgerUnavailable("ledger offline")
        if recipient in self.block:
            self.release.wait(timeout=5)
        if recipient in self.explode:
            raise RuntimeError(f"node rejected {recipient}")
        if recipient in self.reject:
            return TransferResult(success=False, error="insufficient gas")
        return TransferResult(success=True, transaction_ref=f"tx-{request_id}")

    def paid(self):
        with self._lock:
            return [c[0] for c in self.calls]


class RecordingSink:
    def __init__(self):
        self.sent = []
        self.fail_after = None

    def send(self, notification):
        if self.fail_after is not None and len(self.sent) >= self.fail_after:
            raise ConnectionError("smtp down")
        self.sent.append(notification)


class InMemoryRevenueFeed:
    """Income booked on dates; a period (start, end] sums what falls inside.

    closed: asset ids whose books are unavailable
    """

    def __init__(self):
        self.entries: Dict[str, List[tuple]] = {}
        self.closed = set()
        self.requests = []

    def book(self, asset_id, on, revenue, expenses="0"):
        self.entries.setdefault(asset_id, []).append((on, Decimal(revenue), Decimal(expenses)))

    def get_period_financials(self, asset_id, period_start, period_end):
        self.requests.append((asset_id, period_start, period_end))
        if asset_id in self.closed:
            raise RevenueUnavailable(f"Books for {asset_id} are not closed")
        inside = [e for e in self.entries.get(asset_id, []) if period_start < e[0] <= period_end]
        revenue = sum((e[1] for e in inside), Decimal("0"))
        expenses = sum((e[2] for e in inside), Decimal("0"))
        return PeriodFinancials(
            revenue=RevenueData(total_revenue=revenue, recognized_revenue=revenue),
            expenses=ExpenseData(operating_expenses=expenses),
        )


def position(address, pct, acquired=None, jurisdiction=None):
    return OwnershipPosition(
        owner_address=address,
        ownership_percentage=Decimal(str(pct)),
        acquisition_date=acquired,
        jurisdiction=jurisdiction,
    )


@pytest.fixture
def directory():
    d = InMemoryDirectory()
    d.set("asset-1", [
        position("0xaaa", 50, date(2023, 1, 1), "US"),
        position("0xbbb", 30, date(2023, 6, 1), "DE"),
        position("0xccc", 20, date(2024, 5, 1)),
    ])
    return d


@pytest.fixture
def ledger():
    fake = FakeLedger()
    yield fake
    # Unblock any worker still waiting so the test process can exit
    fake.release.set()


@pytest.fixture
def oracle():
    o = InMemoryOracle()
    o.add("asset-1", "1000000", datetime(2024, 1, 1, tzinfo=timezone.utc))
    return o


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def revenue_feed():
    return InMemoryRevenueFeed()
