"""Feature extraction, training and inference for learned viability scores."""

from revivalscope.ml.blender import ScoreBlender
from revivalscope.ml.features import FeatureExtractor, FeatureSchemaMismatchError
from revivalscope.ml.predictor import Predictor
from revivalscope.ml.store import ModelStore, ModelStoreLockedError, TrainingCorpus
from revivalscope.ml.trainer import InsufficientDataError, ModelTrainer

__all__ = [
    "FeatureExtractor",
    "FeatureSchemaMismatchError",
    "InsufficientDataError",
    "ModelStore",
    "ModelStoreLockedError",
    "ModelTrainer",
    "Predictor",
    "ScoreBlender",
    "TrainingCorpus",
]
