"""
Tests for the deterministic ScoreCalculator.
"""
import math
from datetime import date

import pytest

from core.config_loader import FactorWeights
from core.scorer.calculator import ScoreCalculator, describe_band
from core.scorer.models import ALGORITHM_CALCULATION, Opportunity, Profile


class TestScoreCalculator:

    def test_strong_match_scores_every_factor_at_100(self, calculator, strong_opportunity, profile):
        result = calculator.calculate(strong_opportunity, profile)

        assert result.overall_score == 100
        assert result.confidence == 100
        assert result.algorithm_version == ALGORITHM_CALCULATION
        assert result.scoring_method == "calculation"
        assert result.cost_units == 0.0
        assert set(result.categories) == {
            'classification', 'geographic', 'certification', 'value_fit', 'clearance', 'performance_history',
            'capability',
        }

    def test_weak_match_sums_weighted_contributions(self, calculator, weak_opportunity, profile):
        result = calculator.calculate(weak_opportunity, profile)

        scores = {name: c.score for name, c in result.categories.items()}
        assert scores == {
            'classification': 40.0,
            'geographic': 30.0,
            'certification': 20.0,
            'value_fit': 15.0,
            'clearance': 40.0,
            'performance_history': 70.0,
            'capability': 60.0,
        }
        # 10 + 4.5 + 3 + 1.5 + 4 + 10.5 + 6 = 39.5
        assert result.overall_score == 40
        assert result.categories['value_fit'].contribution == 1.5

    def test_calculation_is_deterministic(self, calculator, weak_opportunity, profile):
        first = calculator.calculate(weak_opportunity, profile)
        second = calculator.calculate(weak_opportunity, profile)

        assert first.to_dict() == second.to_dict()

    def test_missing_data_gives_neutral_scores_and_lower_confidence(self, calculator):
        result = calculator.calculate(Opportunity(id="bare"), Profile(id="empty"))

        # No certification requirement scores 100 and no clearance requirement scores 100;
        # the other five factors are neutral.
        assert result.categories['classification'].score == 50.0
        assert result.categories['geographic'].score == 50.0
        assert result.categories['value_fit'].score == 50.0
        assert result.categories['certification'].score == 100.0
        assert result.categories['clearance'].score == 100.0
        assert result.categories['performance_history'].score == 50.0
        assert result.categories['capability'].score == 50.0
        # 50 + 50 * 2 / 7
        assert result.confidence == 64
        assert 0 <= result.overall_score <= 100

    def test_custom_weights_change_the_overall(self, weak_opportunity, profile):
        weights = FactorWeights(classification=100, geographic=0, certification=0, value_fit=0, clearance=0,
                                performance_history=0, capability=0)
        calculator = ScoreCalculator(weights, today=date(2026, 1, 1))

        result = calculator.calculate(weak_opportunity, profile)

        assert result.overall_score == 40

    def test_half_point_totals_round_up(self, calculator):
        profile = Profile.from_dict({"id": "p", "primaryNaics": "541512", "pastPerformance": {"yearsInBusiness": 10}})
        opportunity = Opportunity.from_dict({"id": "o", "naicsCodes": ["541512"]})

        result = calculator.calculate(opportunity, profile)

        # 25 + 7.5 + 15 + 5 + 10 + 9 + 5
        assert sum(c.contribution for c in result.categories.values()) == 76.5
        assert result.overall_score == 77

    def test_primary_naics_only_with_five_factor_weights(self):
        weights = FactorWeights(classification=30, geographic=20, certification=20, value_fit=15, clearance=15,
                                performance_history=0, capability=0)
        calculator = ScoreCalculator(weights, today=date(2026, 1, 1))
        profile = Profile.from_dict({"id": "p", "primaryNaics": "541512"})
        opportunity = Opportunity.from_dict({"id": "o", "naicsCodes": ["541512"]})

        # 30 + 10 + 20 + 7.5 + 15 = 82.5
        assert calculator.calculate(opportunity, profile).overall_score == 83

    def test_reference_date_drives_contract_recency(self):
        profile = Profile.from_dict({
            "id": "p",
            "pastPerformance": [
                {"agency": "Department of Energy", "performance": "EXCELLENT", "endDate": "2025-06-01"},
            ],
        })
        opportunity = Opportunity.from_dict({"id": "o", "agency": "Department of Energy"})

        this_year = ScoreCalculator(today=date(2026, 1, 1)).calculate(opportunity, profile)
        later = ScoreCalculator(today=date(2028, 1, 1)).calculate(opportunity, profile)

        assert this_year.categories['performance_history'].score == 100.0
        assert later.categories['performance_history'].score == 95.0

    def test_malformed_records_do_not_raise(self, calculator):
        profile = Profile.from_dict({
            "id": "p",
            "primaryNaics": None,
            "certifications": "not-a-list",
            "pastPerformance": {"keyProjects": [{"value": "n/a"}, "junk"]},
            "geographicPreferences": {"states": ["TX"]},
        })
        opportunity = Opportunity.from_dict({
            "id": "o",
            "estimatedValue": "unknown",
            "placeOfPerformance": {"state": "TX"},
            "securityClearanceRequired": "COSMIC",
        })

        result = calculator.calculate(opportunity, profile)

        assert isinstance(result.overall_score, int)
        assert not math.isnan(result.categories['value_fit'].score)

    def test_recommendations_list_weak_factors(self, calculator, weak_opportunity, profile):
        result = calculator.calculate(weak_opportunity, profile)

        assert result.recommendations[0].startswith("Low alignment")
        assert any("SDVOSB" in r for r in result.recommendations)

    @pytest.mark.parametrize("score,band", [
        (95, "Excellent match"),
        (70, "Good match"),
        (55, "Fair match"),
        (35, "Weak match"),
        (10, "Poor match"),
    ])
    def test_describe_band(self, score, band):
        assert describe_band(score) == band
