"""Tests for concentration metrics and ownership snapshots."""

import pytest
from decimal import Decimal
from pydantic import ValidationError

from tokenomics_domain.engine import ConcentrationAnalyzer, gini, gini_pairwise, herfindahl_index
from tokenomics_domain.errors import InvalidOwnershipSnapshot
from tokenomics_domain.schemas import OwnershipPosition, OwnershipSnapshot


def snapshot(*percentages):
    positions = [
        OwnershipPosition(owner_address=f"0x{i:03d}", ownership_percentage=Decimal(str(p)))
        for i, p in enumerate(percentages)
    ]
    return OwnershipSnapshot.take("asset-1", positions)


# =============================================================================
# Snapshot validation
# =============================================================================

class TestSnapshot:

    def test_take_freezes_positions(self):
        snap = snapshot(50, 30, 20)
        assert snap.owner_count == 3
        assert snap.total_percentage == 100
        assert snap.get("0x001").ownership_percentage == 30
        assert snap.get("0xzzz") is None

    def test_within_epsilon(self):
        third = Decimal("33.3333333")
        snap = snapshot(third, third, third)
        assert snap.owner_count == 3

    def test_sum_off_by_more_than_epsilon(self):
        with pytest.raises(InvalidOwnershipSnapshot):
            snapshot(50, 30, 19)

    def test_empty(self):
        with pytest.raises(InvalidOwnershipSnapshot):
            OwnershipSnapshot.take("asset-1", [])

    def test_duplicate_owner(self):
        position = OwnershipPosition(owner_address="0xa", ownership_percentage=Decimal("50"))
        with pytest.raises(InvalidOwnershipSnapshot):
            OwnershipSnapshot.take("asset-1", [position, position])

    def test_direct_construction_is_validated(self):
        unbalanced = (
            OwnershipPosition(owner_address="0xa", ownership_percentage=Decimal("60")),
            OwnershipPosition(owner_address="0xb", ownership_percentage=Decimal("10")),
        )
        with pytest.raises(ValidationError):
            OwnershipSnapshot(asset_id="asset-1", positions=unbalanced)
        with pytest.raises(ValidationError):
            OwnershipSnapshot(asset_id="asset-1")

    def test_take_honours_wider_epsilon(self):
        positions = [
            OwnershipPosition(owner_address="0xa", ownership_percentage=Decimal("60")),
            OwnershipPosition(owner_address="0xb", ownership_percentage=Decimal("39.5")),
        ]
        snap = OwnershipSnapshot.take("asset-1", positions, epsilon=Decimal("1"))
        assert snap.total_percentage == Decimal("99.5")

    def test_snapshot_is_immutable(self):
        snap = snapshot(100)
        with pytest.raises(Exception):
            snap.asset_id = "other"


# =============================================================================
# Metrics
# =============================================================================

class TestAnalyze:

    def setup_method(self):
        self.analyzer = ConcentrationAnalyzer()

    def test_single_owner(self):
        result = self.analyzer.analyze(snapshot(100))

        assert result.herfindahl_index == pytest.approx(1.0)
        assert result.gini_coefficient == pytest.approx(0.0)
        assert result.largest_owner_percentage == 100
        assert result.owner_count == 1
        assert result.concentration_level == "highly_concentrated"
        assert result.diversification_index == pytest.approx(0.0)

    def test_fifty_thirty_twenty(self):
        result = self.analyzer.analyze(snapshot(50, 30, 20))

        assert result.herfindahl_index == pytest.approx(0.38)
        assert result.gini_coefficient == pytest.approx(0.2)
        assert result.concentration_level == "highly_concentrated"

    def test_boundary_is_moderate(self):
        # HHI exactly 0.25 is not above the threshold
        result = self.analyzer.analyze(snapshot(25, 25, 25, 25))

        assert result.herfindahl_index == pytest.approx(0.25)
        assert result.gini_coefficient == pytest.approx(0.0)
        assert result.concentration_level == "moderately_concentrated"

    def test_diversified(self):
        result = self.analyzer.analyze(snapshot(*[10] * 10))

        assert result.herfindahl_index == pytest.approx(0.1)
        assert result.concentration_level == "diversified"

    def test_unvalidated_empty_snapshot(self):
        # model_construct skips validation; the analyzer still refuses it
        with pytest.raises(InvalidOwnershipSnapshot):
            self.analyzer.analyze(OwnershipSnapshot.model_construct(asset_id="asset-1"))

    def test_merging_owners_increases_hhi(self):
        before = self.analyzer.analyze(snapshot(40, 30, 20, 10))
        after = self.analyzer.analyze(snapshot(40, 30, 30))

        assert after.herfindahl_index > before.herfindahl_index


@pytest.mark.parametrize("percentages", [
    [100],
    [50, 50],
    [50, 30, 20],
    [99, 0.5, 0.5],
    [1, 2, 3, 4, 5, 6, 7, 8, 9, 55],
    [12.5] * 8,
])
def test_sorted_gini_matches_pairwise(percentages):
    assert gini(percentages) == pytest.approx(gini_pairwise(percentages))
    assert 0.0 <= gini(percentages) < 1.0


def test_hhi_formula():
    assert herfindahl_index([60, 40]) == pytest.approx(0.52)


def test_gini_of_empty_is_zero():
    assert gini([]) == 0.0
    assert gini_pairwise([]) == 0.0


# =============================================================================
# Risk
# =============================================================================

class TestAssessRisk:

    def setup_method(self):
        self.analyzer = ConcentrationAnalyzer()

    def test_dominant_and_concentrated(self):
        risk = self.analyzer.assess_risk(snapshot(50, 30, 20))

        assert [f.factor for f in risk.risk_factors] == [
            "high_ownership_concentration",
            "dominant_holder",
        ]
        assert risk.risk_score == pytest.approx(80.0)
        assert risk.risk_level == "critical"
        assert risk.risk_factors[0].mitigation == "Implement diversification requirements"

    def test_moderate(self):
        risk = self.analyzer.assess_risk(snapshot(25, 25, 25, 25))

        assert [f.factor for f in risk.risk_factors] == ["moderate_ownership_concentration"]
        assert risk.risk_level == "medium"

    def test_diversified_is_low(self):
        risk = self.analyzer.assess_risk(snapshot(*[5] * 20))

        assert risk.risk_factors == ()
        assert risk.risk_score == 0
        assert risk.risk_level == "low"

    def test_holder_buckets(self):
        risk = self.analyzer.assess_risk(snapshot(0.5, 0.5, 3, 6, 90))

        assert risk.holders_by_size == {
            "small": 2,
            "medium": 1,
            "large": 1,
            "institutional": 1,
        }
