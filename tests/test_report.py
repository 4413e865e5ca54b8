"""Tests for training reports."""

import json
from datetime import datetime, timezone

from revivalscope.ml.report import TrainingReport
from revivalscope.ml.trainer import TrainingResult
from revivalscope.models.schemas import ModelPerformance, PredictionTarget


def make_report(accuracies, total_samples=50) -> TrainingReport:
    return TrainingReport(
        timestamp=datetime(2025, 6, 1, tzinfo=timezone.utc),
        total_samples=total_samples,
        training_samples=int(total_samples * 0.8),
        validation_samples=total_samples - int(total_samples * 0.8),
        performances=[
            ModelPerformance(target_name=target, accuracy=accuracy)
            for target, accuracy in zip(PredictionTarget, accuracies)
        ],
    )


class TestRecommendations:
    def test_unreliable_models(self):
        recommendations = make_report([0.3, 0.3, 0.3, 0.3]).recommendations()
        assert "Collect more diverse training data" in recommendations
        assert any("rule-based scoring" in r for r in recommendations)
        assert any("Collect more training samples" in r for r in recommendations)

    def test_good_models_with_enough_data(self):
        recommendations = make_report([0.9, 0.85, 0.7, 0.7], total_samples=500).recommendations()
        assert recommendations == ["Some models perform well - consider ML-enhanced mode"]

    def test_average_accuracy(self):
        assert make_report([1.0, 0.5, 0.5, 0.0]).average_accuracy == 0.5
        assert make_report([]).average_accuracy == 0.0


class TestSerialization:
    def test_save_writes_readable_json(self, tmp_path):
        path = make_report([0.9, 0.8, 0.7, 0.6]).save(tmp_path / "reports" / "training-report.json")
        data = json.loads(path.read_text())

        assert data["total_samples"] == 50
        assert data["performances"][0]["target_name"] == "abandonment"
        assert data["performances"][0]["confusion_matrix"] == [[0, 0], [0, 0]]
        assert len(data["feature_names"]) == 32
        assert "recommendations" in data

    def test_load_restores_report(self, tmp_path):
        report = make_report([0.9, 0.8, 0.7, 0.6])
        loaded = TrainingReport.load(report.save(tmp_path / "training-report.json"))
        assert loaded == report

    def test_from_result(self):
        result = TrainingResult(
            performances=[ModelPerformance(target_name=PredictionTarget.EFFORT, accuracy=0.7)],
            training_samples=80,
            validation_samples=20,
        )
        report = TrainingReport.from_result(result, total_samples=100)
        assert report.training_samples == 80
        assert report.validation_samples == 20
        assert report.performances[0].accuracy == 0.7
