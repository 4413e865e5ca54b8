"""Linear models fitted by batch gradient descent."""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass

import numpy as np

from revivalscope.models.schemas import Algorithm

logger = logging.getLogger(__name__)


def sigmoid(x: np.ndarray | float) -> np.ndarray | float:
    """Numerically stable logistic function."""
    return 0.5 * (1.0 + np.tanh(0.5 * np.asarray(x, dtype=float)))


@dataclass
class FitResult:
    """Best weights seen during training."""

    weights: np.ndarray
    bias: float
    best_loss: float
    epochs_run: int
    stopped_early: bool = False


@dataclass
class Standardizer:
    """Per-feature mean/std scaling fitted on training data."""

    means: np.ndarray
    stds: np.ndarray

    @classmethod
    def fit(cls, features: np.ndarray) -> "Standardizer":
        means = features.mean(axis=0)
        stds = features.std(axis=0)
        # Constant columns scale to zero instead of dividing by zero
        stds = np.where(stds > 0, stds, 1.0)
        return cls(means=means, stds=stds)

    def transform(self, features: np.ndarray) -> np.ndarray:
        return (features - self.means) / self.stds


class LinearModel(ABC):
    """Gradient descent over a linear score ``X @ w + b``.

    Subclasses define the output link and the loss. The gradient of both
    supported losses with respect to the weights is ``mean((y - p) * x)``,
    so the update loop is shared.
    """

    algorithm: Algorithm

    def __init__(
        self,
        learning_rate: float = 0.05,
        epochs: int = 5000,
        l2_penalty: float = 0.01,
        max_patience: int = 100,
    ) -> None:
        """Initialize the model.

        Args:
            learning_rate: Step size.
            epochs: Epoch budget, the only stopping bound besides patience.
            l2_penalty: Weight decay applied to weights (not the bias).
            max_patience: Epochs without improvement before stopping early.
        """
        self.learning_rate = learning_rate
        self.epochs = epochs
        self.l2_penalty = l2_penalty
        self.max_patience = max_patience

    @abstractmethod
    def link(self, raw: np.ndarray) -> np.ndarray:
        """Map raw linear scores to predictions."""
        ...

    @abstractmethod
    def loss(self, predictions: np.ndarray, labels: np.ndarray) -> float:
        ...

    def raw_score(self, features: np.ndarray, weights: np.ndarray, bias: float) -> np.ndarray:
        features = np.atleast_2d(features)
        if features.shape[1] != len(weights):
            raise ValueError(
                f"Feature and weight dimensions must match ({features.shape[1]} != {len(weights)})"
            )
        return features @ weights + bias

    def predict(self, features: np.ndarray, weights: np.ndarray, bias: float = 0.0) -> np.ndarray:
        """Predict for a matrix (or single row) of features."""
        return self.link(self.raw_score(features, weights, bias))

    def fit(
        self,
        features: np.ndarray,
        labels: np.ndarray,
        validation: tuple[np.ndarray, np.ndarray] | None = None,
    ) -> FitResult:
        """Fit weights by batch gradient descent with early stopping.

        The loss tracked for early stopping is the validation loss when a
        non-empty validation split is given, else the training loss.

        Args:
            features: Training matrix (n_samples, n_features).
            labels: Training targets (n_samples,).
            validation: Optional (features, labels) held-out split.

        Returns:
            FitResult holding the best-loss weights, not the final epoch's.
        """
        if features.ndim != 2 or features.shape[0] == 0 or features.shape[1] == 0:
            raise ValueError("No features provided for training")
        labels = np.asarray(labels, dtype=float)

        n_samples, n_features = features.shape
        weights = np.zeros(n_features)
        bias = 0.0

        if validation is not None and len(validation[1]) > 0:
            monitor_x, monitor_y = validation[0], np.asarray(validation[1], dtype=float)
        else:
            monitor_x, monitor_y = features, labels

        best_weights = weights.copy()
        best_bias = bias
        best_loss = float("inf")
        patience = 0
        epoch = 0
        stopped_early = False

        for epoch in range(1, self.epochs + 1):
            errors = labels - self.predict(features, weights, bias)
            gradient = features.T @ errors / n_samples
            weights = weights + self.learning_rate * (gradient - self.l2_penalty * weights)
            bias += self.learning_rate * float(errors.mean())

            loss = self.loss(self.predict(monitor_x, weights, bias), monitor_y)
            if loss < best_loss:
                best_loss = loss
                best_weights = weights.copy()
                best_bias = bias
                patience = 0
            else:
                patience += 1
                if patience >= self.max_patience:
                    logger.info(f"Early stopping at epoch {epoch} (best loss {best_loss:.6f})")
                    stopped_early = True
                    break

            if epoch % 1000 == 0:
                logger.debug(f"Epoch {epoch}: loss = {loss:.6f}")

        return FitResult(
            weights=best_weights,
            bias=best_bias,
            best_loss=best_loss,
            epochs_run=epoch,
            stopped_early=stopped_early,
        )


class LinearRegressionGD(LinearModel):
    """Least-squares regression with an identity link."""

    algorithm = Algorithm.LINEAR_REGRESSION

    def link(self, raw: np.ndarray) -> np.ndarray:
        return raw

    def loss(self, predictions: np.ndarray, labels: np.ndarray) -> float:
        return float(np.mean((labels - predictions) ** 2))


class LogisticRegressionGD(LinearModel):
    """Binary classifier with a sigmoid link and log loss."""

    algorithm = Algorithm.LOGISTIC_REGRESSION

    EPSILON = 1e-12

    def link(self, raw: np.ndarray) -> np.ndarray:
        return sigmoid(raw)

    def loss(self, predictions: np.ndarray, labels: np.ndarray) -> float:
        p = np.clip(predictions, self.EPSILON, 1 - self.EPSILON)
        return float(-np.mean(labels * np.log(p) + (1 - labels) * np.log(1 - p)))


MODEL_CLASSES: dict[Algorithm, type[LinearModel]] = {
    Algorithm.LINEAR_REGRESSION: LinearRegressionGD,
    Algorithm.LOGISTIC_REGRESSION: LogisticRegressionGD,
}


def model_for(algorithm: Algorithm, **kwargs) -> LinearModel:
    """Instantiate the linear model class for an algorithm identifier."""
    return MODEL_CLASSES[algorithm](**kwargs)
