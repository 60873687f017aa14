"""Tests for scheduled distributions and distribution history analytics."""

from datetime import date
from decimal import Decimal

import pandas as pd
import pytest

from tokenomics_domain import AssetEconomicsService
from tokenomics_domain.engine import next_distribution_date, occurrence, summarize_distributions
from tokenomics_domain.engine.history import distribution_trend, observed_frequency
from tokenomics_domain.errors import (
    InvalidAmount,
    RevenueUnavailable,
    ScheduleNotFound,
    ValuationUnavailable,
)
from tokenomics_domain.schemas import EngineCFG, FractionalizationParams, TaxRates


FIXED_10 = FractionalizationParams(target_token_price=Decimal("10"))
FLAT_15 = TaxRates.flat(Decimal("0.15"))


@pytest.fixture
def service(directory, ledger, oracle, revenue_feed):
    service = AssetEconomicsService(
        directory, ledger, oracle=oracle,
        config=EngineCFG(lock_timeout_seconds=0.2),
        revenue_feed=revenue_feed,
    )
    service.calculate_supply("asset-1", "fixed_price", FIXED_10)
    return service


def schedule(service, frequency="quarterly", start=date(2024, 1, 1), **kwargs):
    return service.create_distribution_schedule(
        "asset-1", kwargs.pop("schedule_id", "dividend"), frequency, "USD", FLAT_15, start, **kwargs
    )


# =============================================================================
# Occurrence dates
# =============================================================================

@pytest.mark.parametrize("frequency, expected", [
    ("daily", date(2024, 1, 2)),
    ("weekly", date(2024, 1, 8)),
    ("bi_weekly", date(2024, 1, 15)),
    ("monthly", date(2024, 2, 1)),
    ("quarterly", date(2024, 4, 1)),
    ("semi_annual", date(2024, 7, 1)),
    ("annual", date(2025, 1, 1)),
])
def test_next_distribution_date(frequency, expected):
    assert next_distribution_date(frequency, date(2024, 1, 1)) == expected


def test_month_end_occurrences_do_not_drift():
    start = date(2024, 1, 31)
    assert [occurrence(start, "monthly", n) for n in range(1, 5)] == [
        date(2024, 2, 29),
        date(2024, 3, 31),
        date(2024, 4, 30),
        date(2024, 5, 31),
    ]


def test_leap_day_annual():
    assert occurrence(date(2024, 2, 29), "annual", 1) == date(2025, 2, 28)
    assert occurrence(date(2024, 2, 29), "annual", 4) == date(2028, 2, 29)


def test_unknown_frequency():
    with pytest.raises(InvalidAmount):
        next_distribution_date("hourly", date(2024, 1, 1))


# =============================================================================
# Schedule registry
# =============================================================================

class TestScheduleRegistry:

    def test_first_occurrence_is_one_period_after_start(self, service):
        created = schedule(service, "monthly", date(2024, 1, 31))

        assert created.next_distribution == date(2024, 2, 29)
        assert created.last_distribution is None
        assert service.get_distribution_schedule("asset-1", "dividend") is created

    def test_duplicate_id(self, service):
        schedule(service)
        with pytest.raises(InvalidAmount):
            schedule(service)

    def test_unknown_schedule(self, service):
        with pytest.raises(ScheduleNotFound):
            service.get_distribution_schedule("asset-1", "missing")

    def test_listed_by_next_due(self, service):
        schedule(service, "annual", schedule_id="yearly")
        schedule(service, "weekly", schedule_id="weekly")

        assert [s.id for s in service.distribution_schedules("asset-1")] == ["weekly", "yearly"]


# =============================================================================
# Running due occurrences
# =============================================================================

class TestRunDue:

    def test_executes_due_occurrence(self, service, revenue_feed, ledger):
        revenue_feed.book("asset-1", date(2024, 2, 15), "10000")
        created = schedule(service)

        results = service.run_due_distributions(date(2024, 4, 1))

        assert [(r.status, r.amount) for r in results] == [("executed", Decimal("10000"))]
        run = service.get_distribution("asset-1", results[0].run_id)
        assert run.as_of == date(2024, 4, 1)
        assert run.status == "completed"
        assert sorted(ledger.paid()) == ["0xaaa", "0xbbb", "0xccc"]

        assert created.last_distribution == date(2024, 4, 1)
        assert created.next_distribution == date(2024, 7, 1)
        assert created.total_distributions == 1
        assert created.total_amount_distributed == Decimal("10000")
        assert created.run_ids == [run.id]
        assert revenue_feed.requests == [("asset-1", date(2024, 1, 1), date(2024, 4, 1))]

    def test_nothing_due_yet(self, service, revenue_feed):
        schedule(service)

        assert service.run_due_distributions(date(2024, 3, 31)) == []
        assert revenue_feed.requests == []

    def test_distribution_ratio_and_expenses(self, service, revenue_feed):
        revenue_feed.book("asset-1", date(2024, 2, 15), "10000", expenses="2500")
        schedule(service, distribution_ratio=Decimal("0.8"))

        [result] = service.run_due_distributions(date(2024, 4, 1), asset_id="asset-1")

        assert result.amount == Decimal("6000.00")

    def test_catches_up_on_missed_occurrences(self, service, revenue_feed):
        revenue_feed.book("asset-1", date(2024, 2, 10), "1000")
        revenue_feed.book("asset-1", date(2024, 3, 10), "1000")
        created = schedule(service, "monthly", date(2024, 1, 31))

        results = service.run_due_distributions(date(2024, 4, 30))

        assert [(r.due_date, r.status) for r in results] == [
            (date(2024, 2, 29), "executed"),
            (date(2024, 3, 31), "executed"),
            (date(2024, 4, 30), "skipped"),
        ]
        assert created.next_distribution == date(2024, 5, 31)
        assert len(service.distribution_history("asset-1")) == 2

    def test_below_minimum_rolls_into_next_period(self, service, revenue_feed):
        revenue_feed.book("asset-1", date(2024, 1, 15), "1000")
        revenue_feed.book("asset-1", date(2024, 2, 15), "1000")
        created = schedule(service, "monthly", minimum_distribution=Decimal("1500"))

        results = service.run_due_distributions(date(2024, 3, 1))

        assert [(r.status, r.amount) for r in results] == [
            ("skipped", Decimal("1000")),
            ("executed", Decimal("2000")),
        ]
        assert revenue_feed.requests[-1] == ("asset-1", date(2024, 1, 1), date(2024, 3, 1))
        assert created.periods_elapsed == 2
        assert created.total_distributions == 1

    def test_feed_error_is_retried(self, service, revenue_feed):
        revenue_feed.book("asset-1", date(2024, 2, 15), "10000")
        revenue_feed.closed.add("asset-1")
        created = schedule(service)

        [result] = service.run_due_distributions(date(2024, 4, 1))

        assert result.status == "error"
        assert "not closed" in result.reason
        assert created.next_distribution == date(2024, 4, 1)
        assert service.distribution_history("asset-1") == []

        revenue_feed.closed.clear()
        [result] = service.run_due_distributions(date(2024, 4, 1))
        assert result.status == "executed"

    def test_interrupted_run_is_resumed_not_rebuilt(self, service, revenue_feed, ledger):
        revenue_feed.book("asset-1", date(2024, 2, 15), "10000")
        schedule(service)
        ledger.down = True

        [result] = service.run_due_distributions(date(2024, 4, 1))

        assert result.status == "executed"
        assert result.reason == "Run interrupted"
        assert service.run_due_distributions(date(2024, 4, 1)) == []

        ledger.down = False
        run = service.resume_distribution("asset-1", result.run_id)
        assert run.status == "completed"

    def test_deactivated_schedule_is_not_run(self, service, revenue_feed):
        revenue_feed.book("asset-1", date(2024, 2, 15), "10000")
        schedule(service)
        service.deactivate_distribution_schedule("asset-1", "dividend")

        assert service.run_due_distributions(date(2025, 1, 1)) == []

    def test_skips_assets_that_were_never_tokenized(self, service, revenue_feed):
        with pytest.raises(ValuationUnavailable):
            service.calculate_supply("asset-9", "fixed_price", FIXED_10)
        revenue_feed.book("asset-1", date(2024, 2, 15), "10000")
        schedule(service)

        assert [r.asset_id for r in service.run_due_distributions(date(2024, 4, 1))] == ["asset-1"]

    def test_requires_revenue_feed(self, directory, ledger, oracle):
        service = AssetEconomicsService(directory, ledger, oracle=oracle)
        service.calculate_supply("asset-1", "fixed_price", FIXED_10)
        schedule(service)

        assert service.run_due_distributions(date(2024, 3, 1)) == []
        with pytest.raises(RevenueUnavailable):
            service.run_due_distributions(date(2024, 4, 1))


# =============================================================================
# History analytics
# =============================================================================

MONTH_ENDS = [date(2024, 1, 31), date(2024, 2, 29), date(2024, 3, 31), date(2024, 4, 30)]


def distribute(service, amount, as_of):
    return service.execute_distribution("asset-1", Decimal(amount), "USD", FLAT_15, as_of=as_of)


class TestDistributionSummary:

    def test_growing_monthly_history(self, service):
        for amount, as_of in zip(["1000", "1000", "1200", "1200"], MONTH_ENDS):
            distribute(service, amount, as_of)

        summary = service.distribution_summary("asset-1")

        assert summary.total_distributions == 4
        assert summary.total_amount == Decimal("4400")
        assert summary.total_tax_withheld == Decimal("660.00")
        assert summary.total_distributed_net == Decimal("3740.00")
        assert summary.average_distribution == Decimal("1100.00")
        assert summary.median_distribution == Decimal("1100.00")
        assert summary.observed_frequency == "monthly"
        assert summary.success_rate == 1.0
        assert summary.error_rate == 0.0
        assert summary.effective_tax_rate == pytest.approx(0.15)
        assert summary.trend.direction == "increasing"
        assert summary.trend.growth_pct == pytest.approx(20.0)
        assert summary.trend.volatility_pct == pytest.approx(100 / 11)
        assert summary.trend.predictability == pytest.approx(100 - 100 / 11)

    def test_failed_transfers_lower_success_rate(self, service, ledger):
        ledger.reject = {"0xccc"}
        distribute(service, "1000", MONTH_ENDS[0])

        summary = service.distribution_summary("asset-1")

        assert summary.success_rate == pytest.approx(2 / 3)
        assert summary.error_rate == pytest.approx(1 / 3)
        assert summary.total_distributed_net == Decimal("680.00")

    def test_date_window(self, service):
        for amount, as_of in zip(["1000", "1000", "1200", "1200"], MONTH_ENDS):
            distribute(service, amount, as_of)

        summary = service.distribution_summary(
            "asset-1", start=date(2024, 3, 1), end=date(2024, 3, 31)
        )

        assert summary.total_distributions == 1
        assert summary.total_amount == Decimal("1200")
        assert summary.observed_frequency == "none"
        assert summary.trend.direction == "stable"

    def test_empty_history(self):
        summary = summarize_distributions([])

        assert summary.total_distributions == 0
        assert summary.total_amount == Decimal("0")
        assert summary.observed_frequency == "none"


class TestTrendHelpers:

    def test_decreasing(self):
        trend = distribution_trend(pd.Series([1200.0, 1200.0, 1000.0, 1000.0]))

        assert trend.direction == "decreasing"
        assert trend.growth_pct == pytest.approx(-100 / 6)

    def test_flat_series_is_fully_predictable(self):
        trend = distribution_trend(pd.Series([500.0, 500.0, 500.0]))

        assert trend.direction == "stable"
        assert trend.volatility_pct == 0.0
        assert trend.predictability == 100.0

    def test_small_change_is_stable(self):
        assert distribution_trend(pd.Series([1000.0, 1040.0])).direction == "stable"

    @pytest.mark.parametrize("dates, label", [
        ([date(2024, 1, 1), date(2024, 4, 1), date(2024, 7, 1)], "quarterly"),
        ([date(2024, 1, 1), date(2024, 1, 8), date(2024, 1, 15)], "weekly"),
        ([date(2024, 1, 1), date(2025, 1, 1)], "annual"),
        ([date(2024, 1, 1), date(2026, 1, 1)], "irregular"),
        ([date(2024, 1, 1)], "none"),
    ])
    def test_observed_frequency(self, dates, label):
        assert observed_frequency(dates) == label
