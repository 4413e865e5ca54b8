"""Supervised training of the per-target linear models."""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

import numpy as np

from revivalscope.ml.features import FEATURE_NAMES, FEATURE_SCHEMA_VERSION, to_matrix
from revivalscope.ml.linear import LinearModel, Standardizer, model_for
from revivalscope.models.schemas import (
    Algorithm,
    ModelPerformance,
    PredictionTarget,
    TrainedModel,
    TrainingConfig,
    TrainingSample,
)

logger = logging.getLogger(__name__)

CLASSIFICATION_THRESHOLD = 0.5

# Range each target's output is clamped to at inference
OUTPUT_RANGES = {
    PredictionTarget.ABANDONMENT: (0.0, 1.0),
    PredictionTarget.REVIVAL_SUCCESS: (0.0, 1.0),
    PredictionTarget.EFFORT: (1, 365),
    PredictionTarget.ADOPTION: (0.0, 1.0),
}


class InsufficientDataError(ValueError):
    """Raised when there are too few samples to train on."""

    def __init__(self, available: int, required: int) -> None:
        self.available = available
        self.required = required
        super().__init__(
            f"Need at least {required} training samples to train models, got {available}. "
            "Collect more data first."
        )


@dataclass
class TrainingResult:
    """Outcome of a training run.

    ``models`` holds only targets that passed the accuracy gate.
    """

    models: dict[PredictionTarget, TrainedModel] = field(default_factory=dict)
    performances: list[ModelPerformance] = field(default_factory=list)
    training_samples: int = 0
    validation_samples: int = 0

    @property
    def rejected(self) -> list[PredictionTarget]:
        return [p.target_name for p in self.performances if not p.accepted]


def _label_vector(samples: list[TrainingSample], target: PredictionTarget) -> np.ndarray:
    if target == PredictionTarget.ABANDONMENT:
        values = [1.0 if s.labels.is_abandoned else 0.0 for s in samples]
    elif target == PredictionTarget.REVIVAL_SUCCESS:
        values = [s.labels.revival_success_probability for s in samples]
    elif target == PredictionTarget.EFFORT:
        values = [float(s.labels.estimated_effort_days) for s in samples]
    else:
        values = [s.labels.community_adoption_likelihood for s in samples]
    return np.array(values, dtype=float)


def binary_metrics(predictions: np.ndarray, labels: np.ndarray) -> dict:
    """Confusion matrix and derived metrics at the 0.5 threshold.

    The confusion matrix is laid out as [[tn, fp], [fn, tp]].
    """
    predicted = predictions > CLASSIFICATION_THRESHOLD
    actual = labels > CLASSIFICATION_THRESHOLD

    tp = int(np.sum(predicted & actual))
    fp = int(np.sum(predicted & ~actual))
    tn = int(np.sum(~predicted & ~actual))
    fn = int(np.sum(~predicted & actual))

    total = tp + fp + tn + fn
    accuracy = (tp + tn) / total if total else 0.0
    precision = tp / (tp + fp) if tp + fp else 0.0
    recall = tp / (tp + fn) if tp + fn else 0.0
    f1 = 2 * precision * recall / (precision + recall) if precision + recall else 0.0

    return {
        "accuracy": accuracy,
        "precision": precision,
        "recall": recall,
        "f1_score": f1,
        "confusion_matrix": [[tn, fp], [fn, tp]],
    }


def r_squared(predictions: np.ndarray, labels: np.ndarray) -> float:
    """Coefficient of determination, 1 - SS_res / SS_tot."""
    ss_res = float(np.sum((labels - predictions) ** 2))
    ss_tot = float(np.sum((labels - labels.mean()) ** 2))
    if ss_tot == 0:
        return 1.0 if ss_res == 0 else 0.0
    return 1 - ss_res / ss_tot


class ModelTrainer:
    """Trains one linear model per prediction target.

    Steps per target:
    1. Shuffle and split samples into training/validation
    2. Optionally standardise features (parameters stored with the model)
    3. Batch gradient descent with L2 penalty and early stopping
    4. Evaluate on the validation split
    5. Keep the model only if validation accuracy clears the gate

    Usage:
        trainer = ModelTrainer(TrainingConfig(seed=7))
        result = trainer.train(samples)
        store.save_models(result.models)
    """

    TARGETS = (
        PredictionTarget.ABANDONMENT,
        PredictionTarget.REVIVAL_SUCCESS,
        PredictionTarget.EFFORT,
        PredictionTarget.ADOPTION,
    )

    def __init__(self, config: TrainingConfig | None = None) -> None:
        self.config = config or TrainingConfig()

    def _algorithm_for(self, target: PredictionTarget) -> Algorithm:
        if target == PredictionTarget.ABANDONMENT and self.config.abandonment_algorithm == "logistic":
            return Algorithm.LOGISTIC_REGRESSION
        return Algorithm.LINEAR_REGRESSION

    def _new_model(self, algorithm: Algorithm) -> LinearModel:
        return model_for(
            algorithm,
            learning_rate=self.config.learning_rate,
            epochs=self.config.epochs,
            l2_penalty=self.config.l2_penalty,
            max_patience=self.config.max_patience,
        )

    def split(
        self, samples: list[TrainingSample]
    ) -> tuple[list[TrainingSample], list[TrainingSample]]:
        """Shuffle and split into (training, validation)."""
        rng = np.random.default_rng(self.config.seed)
        order = rng.permutation(len(samples))
        shuffled = [samples[i] for i in order]

        validation_size = int(len(shuffled) * self.config.validation_fraction)
        validation = shuffled[:validation_size]
        training = shuffled[validation_size:]

        logger.info(f"Split data: {len(training)} training, {len(validation)} validation")
        return training, validation

    def train(
        self,
        samples: list[TrainingSample],
        targets: tuple[PredictionTarget, ...] | None = None,
    ) -> TrainingResult:
        """Train and gate a model for each target.

        Args:
            samples: Labelled samples.
            targets: Subset of targets to train. Defaults to all four.

        Returns:
            TrainingResult with accepted models and all performances.

        Raises:
            InsufficientDataError: If fewer than ``config.min_samples`` samples.
        """
        if len(samples) < self.config.min_samples:
            raise InsufficientDataError(len(samples), self.config.min_samples)

        logger.info(f"Training models on {len(samples)} samples")

        training, validation = self.split(samples)
        if not validation:
            logger.warning("Empty validation split, evaluating on training data")
            validation = training

        train_x = to_matrix([s.features for s in training])
        valid_x = to_matrix([s.features for s in validation])

        scaler = None
        if self.config.standardize:
            scaler = Standardizer.fit(train_x)
            train_x = scaler.transform(train_x)
            valid_x = scaler.transform(valid_x)

        result = TrainingResult(
            training_samples=len(training),
            validation_samples=len(validation),
        )

        for target in targets or self.TARGETS:
            train_y = _label_vector(training, target)
            valid_y = _label_vector(validation, target)
            model, performance = self._train_target(
                target, train_x, train_y, valid_x, valid_y, scaler, len(training)
            )
            result.performances.append(performance)

            if performance.accepted:
                logger.info(
                    f"{target.value} model trained with {performance.accuracy:.0%} accuracy"
                )
                result.models[target] = model
            else:
                logger.warning(
                    f"{target.value} model accuracy too low ({performance.accuracy:.0%} < "
                    f"{self.config.min_accuracy:.0%}), discarding"
                )

        return result

    def _train_target(
        self,
        target: PredictionTarget,
        train_x: np.ndarray,
        train_y: np.ndarray,
        valid_x: np.ndarray,
        valid_y: np.ndarray,
        scaler: Standardizer | None,
        sample_count: int,
    ) -> tuple[TrainedModel, ModelPerformance]:
        algorithm = self._algorithm_for(target)
        linear = self._new_model(algorithm)

        logger.info(f"Training {target.value} model ({algorithm.value})")
        fit = linear.fit(train_x, train_y, validation=(valid_x, valid_y))

        predictions = linear.predict(valid_x, fit.weights, fit.bias)
        performance = self.evaluate(target, predictions, valid_y)
        performance.validation_loss = fit.best_loss
        performance.epochs_run = fit.epochs_run
        performance.accepted = performance.accuracy >= self.config.min_accuracy

        model = TrainedModel(
            target_name=target,
            algorithm=algorithm,
            weights=[float(w) for w in fit.weights],
            bias=float(fit.bias),
            accuracy=performance.accuracy,
            trained_at=datetime.now(timezone.utc),
            training_sample_count=sample_count,
            feature_names=list(FEATURE_NAMES),
            feature_schema_version=FEATURE_SCHEMA_VERSION,
            feature_means=[float(m) for m in scaler.means] if scaler else None,
            feature_stds=[float(s) for s in scaler.stds] if scaler else None,
        )
        return model, performance

    def evaluate(
        self,
        target: PredictionTarget,
        predictions: np.ndarray,
        labels: np.ndarray,
    ) -> ModelPerformance:
        """Score predictions against held-out labels.

        Classification metrics for abandonment, R² (floored at zero) as the
        accuracy proxy for the continuous targets.

        Predictions are clamped to the target's output range first, matching
        what inference returns.
        """
        predictions = np.clip(predictions, *OUTPUT_RANGES[target])
        if target == PredictionTarget.ABANDONMENT:
            return ModelPerformance(target_name=target, **binary_metrics(predictions, labels))

        r2 = r_squared(predictions, labels)
        return ModelPerformance(
            target_name=target,
            accuracy=max(0.0, min(1.0, r2)),
            r_squared=r2,
        )
