"""Confidence-weighted combination of heuristic and learned scores."""

from revivalscope.models.schemas import (
    BlendedAnalysis,
    HeuristicScore,
    HybridAnalysis,
    MlEnhancedAnalysis,
    Prediction,
    RuleBasedAnalysis,
)


class ScoreBlender:
    """Merges a heuristic score with an optional prediction.

    Without a prediction the heuristic scores pass through unchanged.
    With one, each score becomes ``ml * confidence + heuristic * (1 - confidence)``,
    where the ML value is the predicted probability scaled to 0-100.
    Reasons and recommendations from both sources are kept.
    """

    ML_ENHANCED_CONFIDENCE = 0.8

    def blend(
        self,
        repository: str,
        heuristic: HeuristicScore,
        prediction: Prediction | None = None,
    ) -> BlendedAnalysis:
        if prediction is None:
            return RuleBasedAnalysis(
                repository=repository,
                abandonment_score=heuristic.abandonment_score,
                revival_potential=heuristic.revival_potential,
                heuristic=heuristic,
                reasons=list(heuristic.reasons),
                recommendations=list(heuristic.recommendations),
            )

        confidence = prediction.confidence_score
        abandonment = self.weighted(
            prediction.abandonment_probability * 100, heuristic.abandonment_score, confidence
        )
        revival = self.weighted(
            prediction.revival_success_probability * 100, heuristic.revival_potential, confidence
        )

        reasons = [
            *heuristic.reasons,
            *prediction.key_factors,
            f"ML confidence: {round(confidence * 100)}%",
            f"Estimated effort: {prediction.estimated_effort_days} days",
        ]
        recommendations = [*heuristic.recommendations, *prediction.recommendations]

        variant = (
            MlEnhancedAnalysis if confidence > self.ML_ENHANCED_CONFIDENCE else HybridAnalysis
        )
        return variant(
            repository=repository,
            abandonment_score=abandonment,
            revival_potential=revival,
            heuristic=heuristic,
            reasons=reasons,
            recommendations=recommendations,
            prediction=prediction,
        )

    @staticmethod
    def weighted(ml_value: float, heuristic_value: float, confidence: float) -> float:
        """Blend two 0-100 values, returning each exactly at the extremes."""
        if confidence >= 1:
            value = ml_value
        elif confidence <= 0:
            value = heuristic_value
        else:
            value = ml_value * confidence + heuristic_value * (1 - confidence)
        return max(0.0, min(100.0, value))
