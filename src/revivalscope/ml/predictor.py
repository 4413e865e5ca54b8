"""Inference over the stored linear models."""

import logging
from typing import Callable

import numpy as np

from revivalscope.ml.features import (
    FEATURE_COUNT,
    FEATURE_NAMES,
    FEATURE_SCHEMA_VERSION,
    FeatureSchemaMismatchError,
    check_vector,
)
from revivalscope.ml.linear import sigmoid
from revivalscope.ml.store import ModelStore
from revivalscope.ml.trainer import OUTPUT_RANGES
from revivalscope.models.schemas import (
    Algorithm,
    FeatureVector,
    Prediction,
    PredictionTarget,
    TrainedModel,
)

logger = logging.getLogger(__name__)

# Value and accuracy used for a target with no stored model
MISSING_MODEL_DEFAULTS = {
    PredictionTarget.ABANDONMENT: 0.5,
    PredictionTarget.REVIVAL_SUCCESS: 0.5,
    PredictionTarget.EFFORT: 30.0,
    PredictionTarget.ADOPTION: 0.5,
}
MISSING_MODEL_ACCURACY = 0.1

EFFORT_RANGE = OUTPUT_RANGES[PredictionTarget.EFFORT]
TOP_FACTORS = 5

# feature name -> explanation given the raw (unscaled) value, None when nothing notable
FACTOR_EXPLANATIONS: dict[str, Callable[[float], str | None]] = {
    "years_since_last_commit": lambda v: (
        "Long period without commits" if v > 1 else "Recent commit history"
    ),
    "log_stargazers_count": lambda v: (
        "Strong community interest" if v > np.log1p(1000) else "Limited community interest"
    ),
    "critical_vulnerability_count": lambda v: (
        "Critical security vulnerabilities" if v > 0 else None
    ),
    "vulnerable_dependency_count": lambda v: "Vulnerable dependencies" if v > 0 else None,
    "outdated_dependency_ratio": lambda v: "Many outdated dependencies" if v > 0.5 else None,
    "commits_last_30_days": lambda v: (
        "Recent development activity" if v > 5 else "Little recent development activity"
    ),
    "commits_last_365_days": lambda v: "Low commit volume this year" if v < 10 else None,
    "contributor_count": lambda v: (
        "Active contributor community" if v > 10 else "Small contributor base"
    ),
    "unique_contributors_last_year": lambda v: (
        "Few active contributors" if v < 2 else "Several active contributors"
    ),
    "log_forks_count": lambda v: "Widely forked" if v > np.log1p(100) else None,
    "log_open_issues_count": lambda v: "Large open issue backlog" if v > np.log1p(50) else None,
    "issue_response_months": lambda v: "Slow issue response" if v > 1 else None,
    "pr_merge_rate": lambda v: "Pull requests rarely merged" if v < 0.3 else None,
    "age_years": lambda v: "Mature project" if v > 5 else None,
    "years_since_last_release": lambda v: "No release in over a year" if v > 1 else None,
    "has_tests": lambda v: "No test suite" if v == 0 else None,
    "has_license": lambda v: "No license" if v == 0 else None,
}


def harmonic_mean(values: list[float]) -> float:
    """Harmonic mean, zero if any value is zero."""
    if not values or any(v <= 0 for v in values):
        return 0.0
    return len(values) / sum(1 / v for v in values)


class Predictor:
    """Runs each target's model for a feature vector.

    Models are read from the store snapshot taken when the predictor is
    built. Call ``store.reload()`` and build a new predictor to pick up a
    retrained set.

    Usage:
        predictor = Predictor(ModelStore())
        prediction = predictor.predict(vector, confidence_threshold=0.7)
        if prediction is None:
            ...  # fall back to heuristics
    """

    TARGETS = (
        PredictionTarget.ABANDONMENT,
        PredictionTarget.REVIVAL_SUCCESS,
        PredictionTarget.EFFORT,
        PredictionTarget.ADOPTION,
    )

    def __init__(self, store: ModelStore) -> None:
        self.store = store
        self.models: dict[PredictionTarget, TrainedModel] = store.models
        for model in self.models.values():
            self._check_model(model)

    @property
    def available(self) -> bool:
        return self.store.is_ml_available()

    def _check_model(self, model: TrainedModel) -> None:
        """Refuse models built against a different feature schema."""
        name = model.target_name.value
        if model.feature_schema_version != FEATURE_SCHEMA_VERSION:
            raise FeatureSchemaMismatchError(
                f"Model '{name}' was trained on feature schema "
                f"v{model.feature_schema_version}, current is v{FEATURE_SCHEMA_VERSION}. "
                "Retrain the models."
            )
        if tuple(model.feature_names) != FEATURE_NAMES:
            raise FeatureSchemaMismatchError(f"Model '{name}' has a different feature order")
        if len(model.weights) != FEATURE_COUNT:
            raise FeatureSchemaMismatchError(
                f"Model '{name}' has {len(model.weights)} weights, expected {FEATURE_COUNT}"
            )
        for params in (model.feature_means, model.feature_stds):
            if params is not None and len(params) != FEATURE_COUNT:
                raise FeatureSchemaMismatchError(
                    f"Model '{name}' has scaling parameters for {len(params)} features, "
                    f"expected {FEATURE_COUNT}"
                )

    def _scaled(self, model: TrainedModel, values: np.ndarray) -> np.ndarray:
        if model.feature_means is None or model.feature_stds is None:
            return values
        stds = np.asarray(model.feature_stds)
        stds = np.where(stds > 0, stds, 1.0)
        return (values - np.asarray(model.feature_means)) / stds

    def _run(self, model: TrainedModel, values: np.ndarray) -> tuple[float, np.ndarray]:
        """Return the model output and the per-feature contributions."""
        contributions = self._scaled(model, values) * np.asarray(model.weights)
        raw = float(contributions.sum() + model.bias)
        if model.algorithm == Algorithm.LOGISTIC_REGRESSION:
            raw = float(sigmoid(raw))
        return raw, contributions

    def predict(
        self, vector: FeatureVector, confidence_threshold: float = 0.7
    ) -> Prediction | None:
        """Predict all targets for one repository.

        Args:
            vector: Features from FeatureExtractor.
            confidence_threshold: Minimum confidence for a prediction to be returned.

        Returns:
            The prediction, or None when ML is unavailable or confidence is below
            the threshold.

        Raises:
            FeatureSchemaMismatchError: If the vector or a model does not match
                the current feature schema.
        """
        if not self.available:
            logger.debug("ML models not available")
            return None

        check_vector(vector)
        values = np.asarray(vector.values, dtype=float)

        outputs: dict[PredictionTarget, float] = {}
        accuracies: list[float] = []
        importance = np.zeros(FEATURE_COUNT)

        for target in self.TARGETS:
            model = self.models.get(target)
            if model is None:
                outputs[target] = MISSING_MODEL_DEFAULTS[target]
                accuracies.append(MISSING_MODEL_ACCURACY)
                continue

            output, contributions = self._run(model, values)
            outputs[target] = output
            accuracies.append(model.accuracy)
            importance += np.abs(contributions)

        confidence = max(0.0, min(1.0, harmonic_mean(accuracies)))
        if confidence < confidence_threshold:
            logger.info(
                f"ML confidence {confidence:.2f} below threshold {confidence_threshold:.2f}"
            )
            return None

        low, high = EFFORT_RANGE
        abandonment = _unit(outputs[PredictionTarget.ABANDONMENT])
        revival = _unit(outputs[PredictionTarget.REVIVAL_SUCCESS])
        effort = int(round(max(low, min(high, outputs[PredictionTarget.EFFORT]))))
        adoption = _unit(outputs[PredictionTarget.ADOPTION])
        key_factors = self.key_factors(values, importance)

        return Prediction(
            abandonment_probability=abandonment,
            revival_success_probability=revival,
            estimated_effort_days=effort,
            community_adoption_likelihood=adoption,
            confidence_score=confidence,
            key_factors=key_factors,
            recommendations=ml_recommendations(
                abandonment, revival, effort, adoption, key_factors
            ),
        )

    def key_factors(self, values: np.ndarray, importance: np.ndarray) -> list[str]:
        """Explain the features with the largest absolute contributions."""
        factors: list[str] = []
        unexplained: list[str] = []

        for index in np.argsort(-importance)[:TOP_FACTORS]:
            if importance[index] == 0:
                break
            name = FEATURE_NAMES[index]
            explain = FACTOR_EXPLANATIONS.get(name)
            text = explain(float(values[index])) if explain else None
            if text is None:
                unexplained.append(name.replace("_", " "))
            elif text not in factors:
                factors.append(text)

        if unexplained:
            factors.append(f"Other contributing factors: {', '.join(unexplained)}")
        return factors or ["Multiple contributing factors"]

    def model_info(self) -> dict[str, dict]:
        return self.store.model_info()


def _unit(value: float) -> float:
    return max(0.0, min(1.0, value))


def ml_recommendations(
    abandonment: float,
    revival: float,
    effort_days: int,
    adoption: float,
    key_factors: list[str],
) -> list[str]:
    """Revival guidance derived from model outputs."""
    recommendations = []

    if abandonment > 0.8 and revival > 0.7:
        recommendations.append("PRIME CANDIDATE: High abandonment with strong revival potential")
    if effort_days < 14 and revival > 0.6:
        recommendations.append(f"QUICK WIN: Low effort revival (~{effort_days} days)")
    if adoption > 0.8:
        recommendations.append("COMMUNITY READY: High likelihood of community adoption")
    if abandonment > 0.9:
        recommendations.append("DEFINITELY ABANDONED: Clear abandonment signals detected")
    if effort_days > 90:
        recommendations.append(
            f"HIGH EFFORT: Significant work required (~{effort_days} days)"
        )
    if revival < 0.3:
        recommendations.append("LOW SUCCESS CHANCE: Consider alternatives or a fresh start")
    if "Critical security vulnerabilities" in key_factors:
        recommendations.append("SECURITY FOCUS: Address critical vulnerabilities first")
    if "Strong community interest" in key_factors:
        recommendations.append("LEVERAGE COMMUNITY: Engage existing users for support")

    return recommendations
