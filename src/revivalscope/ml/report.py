"""Training run reports."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from revivalscope.ml.features import FEATURE_NAMES
from revivalscope.ml.trainer import TrainingResult
from revivalscope.models.schemas import ModelPerformance

logger = logging.getLogger(__name__)

RECOMMENDED_SAMPLES = 100


@dataclass
class TrainingReport:
    """Summary of one training run, written next to the models."""

    timestamp: datetime
    total_samples: int
    training_samples: int
    validation_samples: int
    performances: list[ModelPerformance] = field(default_factory=list)
    feature_names: list[str] = field(default_factory=lambda: list(FEATURE_NAMES))

    @classmethod
    def from_result(cls, result: TrainingResult, total_samples: int) -> TrainingReport:
        return cls(
            timestamp=datetime.now(timezone.utc),
            total_samples=total_samples,
            training_samples=result.training_samples,
            validation_samples=result.validation_samples,
            performances=list(result.performances),
        )

    @property
    def average_accuracy(self) -> float:
        if not self.performances:
            return 0.0
        return sum(p.accuracy for p in self.performances) / len(self.performances)

    def recommendations(self) -> list[str]:
        """Suggestions for improving the next training run."""
        recommendations = []
        average = self.average_accuracy

        if average < 0.6:
            recommendations.append("Collect more diverse training data")
            recommendations.append("Try different algorithms or hyperparameters")
            recommendations.append("Improve feature engineering")
        if average < 0.4:
            recommendations.append(
                "Models may not be reliable - use rule-based scoring for now"
            )
        if self.total_samples < RECOMMENDED_SAMPLES:
            recommendations.append(
                f"Collect more training samples ({self.total_samples} < {RECOMMENDED_SAMPLES})"
            )
        if any(p.accuracy > 0.8 for p in self.performances):
            recommendations.append("Some models perform well - consider ML-enhanced mode")

        return recommendations

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "total_samples": self.total_samples,
            "training_samples": self.training_samples,
            "validation_samples": self.validation_samples,
            "average_accuracy": self.average_accuracy,
            "performances": [p.model_dump(mode="json") for p in self.performances],
            "feature_names": self.feature_names,
            "recommendations": self.recommendations(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TrainingReport:
        return cls(
            timestamp=datetime.fromisoformat(data["timestamp"]),
            total_samples=data["total_samples"],
            training_samples=data["training_samples"],
            validation_samples=data["validation_samples"],
            performances=[ModelPerformance.model_validate(p) for p in data.get("performances", [])],
            feature_names=data.get("feature_names", list(FEATURE_NAMES)),
        )

    def save(self, path: Path) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(self.to_dict(), f, indent=2)
        logger.info(f"Training report saved to {path}")
        return path

    @classmethod
    def load(cls, path: Path) -> TrainingReport:
        with open(path) as f:
            return cls.from_dict(json.load(f))
