"""
Scoring Function Tests.

Covers the pure calculations behind every score the API reports:
- Half-up rounding and percentages
- Risk level bands and residual risk
- Gap priority and severity
- Recovery objective durations and BCP readiness
"""

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from complianceos.services.bcp_service import parse_duration, readiness_score, validate_objectives
from complianceos.services.exceptions import DomainError
from complianceos.services.gap_analysis import gap_severity, priority_score
from complianceos.services.risk_service import (
    inherent_score,
    level_priority,
    residual_score,
    risk_level,
    treatment_reduces_risk,
)
from complianceos.services.scoring import percentage, round_half_up


class TestRounding:
    @pytest.mark.parametrize("value,expected", [(0.5, 1), (1.5, 2), (2.5, 3), (2.49, 2), (0, 0)])
    def test_half_up(self, value, expected):
        assert round_half_up(value) == expected

    def test_percentage_of_empty_total(self):
        assert percentage(0, 0) == 0

    @pytest.mark.parametrize("part,total,expected", [(1, 12, 8), (1, 8, 13), (1, 2, 50), (2, 3, 67)])
    def test_percentage(self, part, total, expected):
        assert percentage(part, total) == expected

    @given(total=st.integers(min_value=1, max_value=10_000), data=st.data())
    @settings(max_examples=50)
    def test_percentage_bounded(self, total, data):
        part = data.draw(st.integers(min_value=0, max_value=total))
        assert 0 <= percentage(part, total) <= 100


class TestRiskScoring:
    @pytest.mark.parametrize(
        "score,level",
        [(25, "Very High"), (20, "Very High"), (16, "High"), (15, "High"), (12, "Medium"),
         (8, "Medium"), (6, "Low"), (4, "Low"), (3, "Very Low"), (1, "Very Low")],
    )
    def test_level_bands(self, score, level):
        assert risk_level(score) == level

    def test_inherent_range(self):
        assert inherent_score(4, 5) == 20
        with pytest.raises(DomainError):
            inherent_score(0, 3)
        with pytest.raises(DomainError):
            inherent_score(3, 6)

    def test_residual_steps(self):
        assert residual_score(20, 0) == 20
        assert residual_score(20, 1) == 14
        assert residual_score(20, 2) == 10
        assert residual_score(1, 3) == 1

    @pytest.mark.parametrize(
        "treatment_type,status,effectiveness,expected",
        [
            ("mitigate", "completed", None, True),
            ("avoid", "implemented", None, True),
            ("mitigate", "planned", "effective", True),
            ("mitigate", "planned", None, False),
            ("accept", "completed", "effective", False),
            ("transfer", "completed", None, False),
        ],
    )
    def test_treatment_counts(self, treatment_type, status, effectiveness, expected):
        assert treatment_reduces_risk(treatment_type, status, effectiveness) is expected

    def test_level_priority(self):
        assert level_priority("Very High") == "critical"
        assert level_priority(None) == "medium"

    @given(
        likelihood=st.integers(min_value=1, max_value=5),
        impact=st.integers(min_value=1, max_value=5),
        steps=st.integers(min_value=0, max_value=10),
    )
    @settings(max_examples=100)
    def test_residual_never_exceeds_inherent(self, likelihood, impact, steps):
        inherent = inherent_score(likelihood, impact)
        residual = residual_score(inherent, steps)
        assert 1 <= residual <= inherent
        assert residual_score(inherent, steps + 1) <= residual


class TestGapScoring:
    @pytest.mark.parametrize(
        "current,target,links,expected",
        [
            ("not_implemented", "required", None, 100),
            ("not_implemented", None, ["doc"], 70),
            ("partial", None, ["doc"], 40),
            ("partial", "not_required", ["doc"], 10),
            ("implemented", "not_required", None, 0),
            (None, None, None, 80),
        ],
    )
    def test_priority(self, current, target, links, expected):
        assert priority_score(current, target, links) == expected

    @pytest.mark.parametrize("score,severity", [(100, "critical"), (81, "critical"), (80, "high"), (51, "high"),
                                                (50, "medium"), (1, "medium"), (0, "none")])
    def test_severity(self, score, severity):
        assert gap_severity(score) == severity

    @given(
        current=st.sampled_from(["not_implemented", "partial", "implemented", "not_applicable", None]),
        target=st.sampled_from(["required", "not_required", "optional", None]),
        links=st.one_of(st.none(), st.lists(st.text(min_size=1), max_size=3)),
    )
    @settings(max_examples=100)
    def test_priority_bounded(self, current, target, links):
        assert 0 <= priority_score(current, target, links) <= 100


class TestRecoveryObjectives:
    @pytest.mark.parametrize("value,minutes", [("15m", 15), ("4h", 240), ("2d", 2880), (" 1.5 H ", 90)])
    def test_parse(self, value, minutes):
        assert parse_duration(value) == minutes

    @pytest.mark.parametrize("value", ["", "4", "h4", "four hours", "3w"])
    def test_parse_invalid(self, value):
        with pytest.raises(DomainError):
            parse_duration(value)

    def test_ordering(self):
        validate_objectives(rto="4h", rpo="1h", mtpd="1d")
        validate_objectives(rto=None, rpo="1d", mtpd=None)
        with pytest.raises(DomainError, match="RPO cannot exceed RTO"):
            validate_objectives(rto="1h", rpo="2h", mtpd=None)
        with pytest.raises(DomainError, match="RTO cannot exceed MTPD"):
            validate_objectives(rto="2d", rpo=None, mtpd="1d")
        with pytest.raises(DomainError, match="RPO cannot exceed MTPD"):
            validate_objectives(rto=None, rpo="2d", mtpd="1d")

    def test_readiness(self):
        assert readiness_score(0, 0, 0, 0, 0) == 0
        assert readiness_score(2, 1, 1, 2, 1) == 50
        assert readiness_score(1, 1, 1, 1, 1) == 100

    @given(
        processes=st.integers(min_value=0, max_value=50),
        plans=st.integers(min_value=0, max_value=50),
        data=st.data(),
    )
    @settings(max_examples=100)
    def test_readiness_bounded(self, processes, plans, data):
        completed = data.draw(st.integers(min_value=0, max_value=processes))
        approved = data.draw(st.integers(min_value=0, max_value=plans))
        tested = data.draw(st.integers(min_value=0, max_value=plans))
        assert 0 <= readiness_score(processes, completed, approved, plans, tested) <= 100
