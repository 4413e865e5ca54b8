"""Data models and schemas."""

from revivalscope.models.schemas import (
    ActivitySignals,
    BlendedAnalysis,
    DependencyHealthSummary,
    HeuristicScore,
    Prediction,
    RepositorySnapshot,
    TrainedModel,
    TrainingSample,
)

__all__ = [
    "ActivitySignals",
    "BlendedAnalysis",
    "DependencyHealthSummary",
    "HeuristicScore",
    "Prediction",
    "RepositorySnapshot",
    "TrainedModel",
    "TrainingSample",
]
