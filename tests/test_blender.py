"""Tests for confidence-weighted score blending."""

import pytest
from pydantic import TypeAdapter

from revivalscope.ml.blender import ScoreBlender
from revivalscope.models.schemas import (
    BlendedAnalysis,
    HeuristicScore,
    HybridAnalysis,
    MlEnhancedAnalysis,
    Prediction,
    RuleBasedAnalysis,
)


@pytest.fixture
def heuristic():
    return HeuristicScore(
        abandonment_score=80.0,
        revival_potential=40.0,
        reasons=["No commits in 2.5 years"],
        recommendations=["Multiple forks exist - check for active alternatives"],
    )


def make_prediction(confidence: float) -> Prediction:
    return Prediction(
        abandonment_probability=0.25,
        revival_success_probability=0.9,
        estimated_effort_days=21,
        community_adoption_likelihood=0.5,
        confidence_score=confidence,
        key_factors=["Long period without commits"],
        recommendations=["COMMUNITY READY: High likelihood of community adoption"],
    )


class TestBlend:
    def test_without_prediction_passes_through(self, heuristic):
        analysis = ScoreBlender().blend("acme/widget", heuristic)

        assert isinstance(analysis, RuleBasedAnalysis)
        assert analysis.scoring_method == "rule-based"
        assert analysis.abandonment_score == heuristic.abandonment_score
        assert analysis.revival_potential == heuristic.revival_potential
        assert analysis.reasons == heuristic.reasons
        assert not hasattr(analysis, "prediction")

    def test_full_confidence_equals_ml_value(self, heuristic):
        analysis = ScoreBlender().blend("acme/widget", heuristic, make_prediction(1.0))

        assert isinstance(analysis, MlEnhancedAnalysis)
        assert analysis.abandonment_score == 25.0
        assert analysis.revival_potential == 0.9 * 100

    def test_zero_confidence_equals_heuristic(self, heuristic):
        analysis = ScoreBlender().blend("acme/widget", heuristic, make_prediction(0.0))

        assert isinstance(analysis, HybridAnalysis)
        assert analysis.abandonment_score == 80.0
        assert analysis.revival_potential == 40.0

    def test_partial_confidence_interpolates(self, heuristic):
        analysis = ScoreBlender().blend("acme/widget", heuristic, make_prediction(0.5))
        assert analysis.abandonment_score == pytest.approx(52.5)
        assert analysis.revival_potential == pytest.approx(65.0)
        assert analysis.scoring_method == "hybrid"

    @pytest.mark.parametrize("confidence,method", [(0.8, "hybrid"), (0.81, "ml-enhanced")])
    def test_method_threshold(self, heuristic, confidence, method):
        analysis = ScoreBlender().blend("acme/widget", heuristic, make_prediction(confidence))
        assert analysis.scoring_method == method

    def test_explanations_are_concatenated(self, heuristic):
        analysis = ScoreBlender().blend("acme/widget", heuristic, make_prediction(0.9))

        assert analysis.reasons == [
            "No commits in 2.5 years",
            "Long period without commits",
            "ML confidence: 90%",
            "Estimated effort: 21 days",
        ]
        assert analysis.recommendations == [
            "Multiple forks exist - check for active alternatives",
            "COMMUNITY READY: High likelihood of community adoption",
        ]
        assert analysis.heuristic == heuristic

    def test_discriminated_by_scoring_method(self, heuristic):
        adapter = TypeAdapter(BlendedAnalysis)
        analysis = ScoreBlender().blend("acme/widget", heuristic, make_prediction(0.9))

        restored = adapter.validate_python(adapter.dump_python(analysis, mode="json"))
        assert isinstance(restored, MlEnhancedAnalysis)
        assert restored.prediction.estimated_effort_days == 21
