"""Tests for model training, evaluation and quality gating."""

import numpy as np
import pytest

from conftest import make_separable_samples
from revivalscope.ml.features import FEATURE_COUNT, FEATURE_NAMES, FEATURE_SCHEMA_VERSION
from revivalscope.ml.trainer import (
    InsufficientDataError,
    ModelTrainer,
    binary_metrics,
    r_squared,
)
from revivalscope.models.schemas import (
    Algorithm,
    PredictionTarget,
    TrainingConfig,
    TrainingLabels,
    TrainingSample,
)


class TestTrain:
    def test_insufficient_data(self, separable_samples):
        trainer = ModelTrainer(TrainingConfig(min_samples=10))
        with pytest.raises(InsufficientDataError, match="Collect more data") as exc_info:
            trainer.train(separable_samples[:9])
        assert exc_info.value.available == 9
        assert exc_info.value.required == 10

    def test_separable_data_reaches_high_accuracy(self, separable_samples):
        result = ModelTrainer(TrainingConfig(seed=7)).train(separable_samples)
        performance = {p.target_name: p for p in result.performances}

        abandonment = performance[PredictionTarget.ABANDONMENT]
        assert abandonment.accuracy >= 0.95
        assert abandonment.accepted
        assert PredictionTarget.ABANDONMENT in result.models

    def test_continuous_targets_use_r_squared(self, separable_samples):
        result = ModelTrainer(TrainingConfig(seed=7)).train(separable_samples)
        for performance in result.performances:
            if performance.target_name == PredictionTarget.ABANDONMENT:
                assert performance.r_squared is None
            else:
                assert performance.r_squared is not None
                assert performance.accuracy == pytest.approx(max(0.0, performance.r_squared))
                assert performance.accepted

    def test_model_records_schema_and_scaling(self, separable_samples):
        result = ModelTrainer(TrainingConfig(seed=7)).train(separable_samples)
        model = result.models[PredictionTarget.ABANDONMENT]

        assert model.algorithm == Algorithm.LOGISTIC_REGRESSION
        assert len(model.weights) == FEATURE_COUNT
        assert model.feature_names == list(FEATURE_NAMES)
        assert model.feature_schema_version == FEATURE_SCHEMA_VERSION
        assert len(model.feature_means) == len(model.feature_stds) == FEATURE_COUNT
        assert model.training_sample_count == result.training_samples

        effort = result.models[PredictionTarget.EFFORT]
        assert effort.algorithm == Algorithm.LINEAR_REGRESSION

    def test_linear_abandonment_option(self, separable_samples):
        config = TrainingConfig(seed=7, abandonment_algorithm="linear")
        result = ModelTrainer(config).train(
            separable_samples, targets=(PredictionTarget.ABANDONMENT,)
        )
        assert result.models[PredictionTarget.ABANDONMENT].algorithm == Algorithm.LINEAR_REGRESSION

    def test_without_standardization(self, separable_samples):
        config = TrainingConfig(seed=7, standardize=False)
        result = ModelTrainer(config).train(
            separable_samples, targets=(PredictionTarget.ABANDONMENT,)
        )
        model = result.models[PredictionTarget.ABANDONMENT]
        assert model.feature_means is None
        assert model.feature_stds is None

    def test_gate_discards_weak_models(self, separable_samples):
        rng = np.random.default_rng(11)
        noisy = [
            TrainingSample(
                features=s.features,
                labels=TrainingLabels(
                    is_abandoned=bool(rng.integers(0, 2)),
                    revival_success_probability=float(rng.uniform()),
                    estimated_effort_days=int(rng.integers(1, 200)),
                    community_adoption_likelihood=float(rng.uniform()),
                ),
                source_repository=s.source_repository,
            )
            for s in separable_samples[:60]
        ]
        config = TrainingConfig(seed=1, min_accuracy=0.99, epochs=300)
        result = ModelTrainer(config).train(noisy)

        assert result.models == {}
        assert set(result.rejected) == set(ModelTrainer.TARGETS)

    def test_empty_validation_split_uses_training_data(self, separable_samples):
        config = TrainingConfig(seed=7, validation_fraction=0.0, epochs=200)
        result = ModelTrainer(config).train(
            separable_samples[:20], targets=(PredictionTarget.ADOPTION,)
        )
        assert result.validation_samples == result.training_samples == 20

    def test_split_is_seeded(self):
        samples = make_separable_samples(n=50)
        trainer = ModelTrainer(TrainingConfig(seed=5, validation_fraction=0.2))
        first_train, first_valid = trainer.split(samples)
        second_train, second_valid = trainer.split(samples)

        assert len(first_valid) == 10
        assert len(first_train) == 40
        assert [s.source_repository for s in first_valid] == [
            s.source_repository for s in second_valid
        ]


class TestMetrics:
    def test_confusion_matrix_layout(self):
        predictions = np.array([0.9, 0.8, 0.2, 0.6, 0.1])
        labels = np.array([1.0, 1.0, 1.0, 0.0, 0.0])
        metrics = binary_metrics(predictions, labels)

        # [[tn, fp], [fn, tp]]
        assert metrics["confusion_matrix"] == [[1, 1], [1, 2]]
        assert metrics["accuracy"] == pytest.approx(0.6)
        assert metrics["precision"] == pytest.approx(2 / 3)
        assert metrics["recall"] == pytest.approx(2 / 3)
        assert metrics["f1_score"] == pytest.approx(2 / 3)

    def test_no_positive_predictions(self):
        metrics = binary_metrics(np.array([0.1, 0.2]), np.array([1.0, 0.0]))
        assert metrics["precision"] == 0.0
        assert metrics["f1_score"] == 0.0

    def test_r_squared_perfect_fit(self):
        labels = np.array([1.0, 2.0, 3.0])
        assert r_squared(labels, labels) == 1.0

    def test_r_squared_constant_labels(self):
        labels = np.array([2.0, 2.0, 2.0])
        assert r_squared(labels, labels) == 1.0
        assert r_squared(np.array([1.0, 2.0, 3.0]), labels) == 0.0

    def test_negative_r_squared_floors_accuracy(self):
        trainer = ModelTrainer()
        performance = trainer.evaluate(
            PredictionTarget.EFFORT, np.array([10.0, 0.0, 10.0]), np.array([1.0, 2.0, 3.0])
        )
        assert performance.r_squared < 0
        assert performance.accuracy == 0.0

    def test_continuous_predictions_clamped_before_scoring(self):
        trainer = ModelTrainer()
        effort = trainer.evaluate(
            PredictionTarget.EFFORT, np.array([-20.0, 10.0, 400.0]), np.array([1.0, 10.0, 365.0])
        )
        assert effort.r_squared == 1.0
        assert effort.accuracy == 1.0

        revival = trainer.evaluate(
            PredictionTarget.REVIVAL_SUCCESS, np.array([-0.5, 1.4]), np.array([0.0, 1.0])
        )
        assert revival.accuracy == 1.0
