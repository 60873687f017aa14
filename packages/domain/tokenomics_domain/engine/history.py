"""Analytics over an asset's distribution history."""

import statistics
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional

import pandas as pd

from ..schemas.distribution import DistributionRun, DistributionSummary, DistributionTrend

# (upper bound on the mean gap in days, label)
FREQUENCY_BANDS = [
    (1, "daily"),
    (7, "weekly"),
    (14, "bi_weekly"),
    (31, "monthly"),
    (93, "quarterly"),
    (183, "semi_annual"),
    (366, "annual"),
]

TREND_THRESHOLD_PCT = 5.0

_CENT = Decimal("0.01")


def observed_frequency(dates: Iterable[date]) -> str:
    """Label the mean gap between consecutive distribution dates."""
    series = pd.Series(sorted(pd.Timestamp(d) for d in dates), dtype="datetime64[ns]")
    if len(series) < 2:
        return "none"
    mean_gap = series.diff().dt.days.dropna().mean()
    for bound, label in FREQUENCY_BANDS:
        if mean_gap <= bound:
            return label
    return "irregular"


def distribution_trend(amounts: pd.Series) -> DistributionTrend:
    """Growth of the later half over the earlier half, and dispersion.

    amounts must be in date order.
    """
    if len(amounts) < 2:
        return DistributionTrend()

    half = len(amounts) // 2
    first = amounts.iloc[:half].mean()
    second = amounts.iloc[half:].mean()
    growth = (second - first) / first * 100 if first > 0 else 0.0

    if growth > TREND_THRESHOLD_PCT:
        direction = "increasing"
    elif growth < -TREND_THRESHOLD_PCT:
        direction = "decreasing"
    else:
        direction = "stable"

    mean = amounts.mean()
    volatility = amounts.std(ddof=0) / mean * 100 if mean > 0 else 0.0

    return DistributionTrend(
        growth_pct=float(growth),
        direction=direction,
        volatility_pct=float(volatility),
        predictability=float(max(0.0, 100.0 - volatility)),
    )


def summarize_distributions(
    runs: Iterable[DistributionRun],
    start: Optional[date] = None,
    end: Optional[date] = None,
) -> DistributionSummary:
    """Totals, rates and trend for runs whose as_of falls in [start, end].

    success_rate and error_rate average each run's share of distributed and
    failed records; effective_tax_rate is withheld over entitled across
    distributed records. All three are fractions.
    """
    selected = sorted(
        (
            r for r in runs
            if (start is None or r.as_of >= start) and (end is None or r.as_of <= end)
        ),
        key=lambda r: (r.as_of, r.created_at),
    )
    if not selected:
        return DistributionSummary()

    amounts = [r.distributable_amount for r in selected]
    total_amount = sum(amounts, Decimal("0"))

    paid = [rec for r in selected for rec in r.records if rec.status == "distributed"]
    withheld = sum((rec.tax_withheld for rec in paid), Decimal("0"))
    entitled = sum((rec.entitled_amount for rec in paid), Decimal("0"))

    frame = pd.DataFrame(
        {
            "amount": [float(a) for a in amounts],
            "success": [r.successful_count / len(r.records) if r.records else 0.0 for r in selected],
            "error": [r.failed_count / len(r.records) if r.records else 0.0 for r in selected],
        }
    )

    return DistributionSummary(
        total_distributions=len(selected),
        total_amount=total_amount,
        total_distributed_net=sum((r.distributed_net for r in selected), Decimal("0")),
        total_tax_withheld=withheld,
        average_distribution=(total_amount / len(selected)).quantize(_CENT, rounding=ROUND_HALF_UP),
        median_distribution=statistics.median(amounts).quantize(_CENT, rounding=ROUND_HALF_UP),
        observed_frequency=observed_frequency(r.as_of for r in selected),
        success_rate=float(frame["success"].mean()),
        error_rate=float(frame["error"].mean()),
        effective_tax_rate=float(withheld / entitled) if entitled > 0 else 0.0,
        trend=distribution_trend(frame["amount"]),
    )
