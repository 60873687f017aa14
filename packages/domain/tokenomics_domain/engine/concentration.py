"""Ownership concentration metrics.

    HHI   = Σ (p_i / 100)²
    Gini  = Σ_i Σ_j |p_i - p_j| / (2 · n² · mean)

Gini is computed with the equivalent sorted-rank form
    Σ_i (2i - n - 1) · x_(i) / (n · Σ x)       (x sorted ascending, i = 1..n)
which is O(n log n). gini_pairwise() keeps the O(n²) definition for checks.

Classification by HHI:
    > 0.25          highly_concentrated
    (0.15, 0.25]    moderately_concentrated
    <= 0.15         diversified
"""

from typing import Dict, List, Sequence

import structlog

from ..errors import InvalidOwnershipSnapshot
from ..schemas.ownership import (
    ConcentrationRisk,
    ConcentrationSnapshot,
    OwnershipSnapshot,
    RiskFactor,
)

logger = structlog.get_logger()

HIGHLY_CONCENTRATED_HHI = 0.25
MODERATELY_CONCENTRATED_HHI = 0.15
DOMINANT_HOLDER_PCT = 50.0


def herfindahl_index(percentages: Sequence[float]) -> float:
    return sum((p / 100.0) ** 2 for p in percentages)


def gini(percentages: Sequence[float]) -> float:
    values = sorted(float(p) for p in percentages)
    n = len(values)
    total = sum(values)
    if n == 0 or total == 0:
        return 0.0
    weighted = sum((2 * i - n - 1) * x for i, x in enumerate(values, start=1))
    return weighted / (n * total)


def gini_pairwise(percentages: Sequence[float]) -> float:
    values = [float(p) for p in percentages]
    n = len(values)
    if n == 0:
        return 0.0
    mean = sum(values) / n
    if mean == 0:
        return 0.0
    diff_sum = sum(abs(a - b) for a in values for b in values)
    return diff_sum / (2 * n * n * mean)


def classify(hhi: float) -> str:
    if hhi > HIGHLY_CONCENTRATED_HHI:
        return "highly_concentrated"
    if hhi > MODERATELY_CONCENTRATED_HHI:
        return "moderately_concentrated"
    return "diversified"


def holders_by_size(percentages: Sequence[float]) -> Dict[str, int]:
    """Bucket owners: small <1%, medium 1-5%, large 5-10%, institutional >=10%."""
    buckets = {"small": 0, "medium": 0, "large": 0, "institutional": 0}
    for p in percentages:
        if p < 1:
            buckets["small"] += 1
        elif p < 5:
            buckets["medium"] += 1
        elif p < 10:
            buckets["large"] += 1
        else:
            buckets["institutional"] += 1
    return buckets


def risk_level(score: float) -> str:
    if score > 75:
        return "critical"
    if score > 60:
        return "high"
    if score > 40:
        return "medium"
    return "low"


class ConcentrationAnalyzer:
    """Pure functions over an OwnershipSnapshot. Holds no state."""

    def analyze(self, snapshot: OwnershipSnapshot) -> ConcentrationSnapshot:
        percentages = [float(p) for p in snapshot.percentages()]
        if not percentages:
            raise InvalidOwnershipSnapshot(f"Asset {snapshot.asset_id} has no owners")

        hhi = herfindahl_index(percentages)
        result = ConcentrationSnapshot(
            herfindahl_index=hhi,
            gini_coefficient=gini(percentages),
            largest_owner_percentage=max(percentages),
            owner_count=len(percentages),
            concentration_level=classify(hhi),
            diversification_index=1.0 - hhi,
        )

        logger.debug(
            "concentration_analyzed",
            asset_id=snapshot.asset_id,
            hhi=round(hhi, 6),
            gini=round(result.gini_coefficient, 6),
            level=result.concentration_level,
        )
        return result

    def assess_risk(self, snapshot: OwnershipSnapshot) -> ConcentrationRisk:
        """Score concentration risk.

        The score is the mean of the triggered factor scores (0 if none):
            high_ownership_concentration      75  high
            moderate_ownership_concentration  45  medium
            dominant_holder (largest >= 50%)  85  critical
        """
        concentration = self.analyze(snapshot)
        factors: List[RiskFactor] = []

        if concentration.concentration_level == "highly_concentrated":
            factors.append(RiskFactor(
                factor="high_ownership_concentration",
                impact="high",
                score=75,
                mitigation="Implement diversification requirements",
            ))
        elif concentration.concentration_level == "moderately_concentrated":
            factors.append(RiskFactor(
                factor="moderate_ownership_concentration",
                impact="medium",
                score=45,
                mitigation="Monitor accumulation by large holders",
            ))

        if concentration.largest_owner_percentage >= DOMINANT_HOLDER_PCT:
            factors.append(RiskFactor(
                factor="dominant_holder",
                impact="critical",
                score=85,
                mitigation="Cap single-holder ownership",
            ))

        score = sum(f.score for f in factors) / max(len(factors), 1)

        risk = ConcentrationRisk(
            concentration=concentration,
            risk_factors=tuple(factors),
            risk_score=score,
            risk_level=risk_level(score),
            holders_by_size=holders_by_size([float(p) for p in snapshot.percentages()]),
        )

        if risk.risk_level in ("high", "critical"):
            logger.warning(
                "concentration_risk_elevated",
                asset_id=snapshot.asset_id,
                risk_score=score,
                risk_level=risk.risk_level,
            )
        return risk
