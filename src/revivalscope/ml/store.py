"""Durable JSON persistence for trained models and training samples."""

from __future__ import annotations

import json
import logging
import os
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from pydantic import ValidationError

from revivalscope.models.schemas import PredictionTarget, TrainedModel, TrainingSample

logger = logging.getLogger(__name__)

# Targets that must be present before learned scoring is offered
REQUIRED_TARGETS = (PredictionTarget.ABANDONMENT, PredictionTarget.REVIVAL_SUCCESS)


class ModelStoreLockedError(RuntimeError):
    """Raised when another writer holds the model store."""

    def __init__(self, lock_file: Path) -> None:
        self.lock_file = lock_file
        super().__init__(
            f"Model store is locked by another training run ({lock_file}). "
            "Delete the lock file if no training run is active."
        )


def _atomic_write(path: Path, payload: object) -> None:
    """Write JSON to a sibling temp file and rename it into place."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(json.dumps(payload, indent=2))
    os.replace(tmp, path)


def _lock_holder_alive(lock_file: Path) -> bool:
    """Whether the process recorded in a lock file is still running.

    Unreadable lock files count as held. Liveness is only checked on POSIX.
    """
    try:
        pid = int(lock_file.read_text().strip())
    except (OSError, ValueError):
        return True
    if os.name != "posix":
        return True
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    return True


class ModelStore:
    """Key-value store of trained models by target name.

    Readers get the snapshot loaded at construction (or at the last
    ``reload``); saves never mutate that snapshot in place. Writes are
    single-writer: a lock file next to the models file guards against a
    concurrent training run in another process.

    Usage:
        store = ModelStore(Path("data/models.json"))
        if store.is_ml_available():
            predictor = Predictor(store)
    """

    def __init__(self, models_file: Path = Path("data/models.json")) -> None:
        self.models_file = models_file
        self.lock_file = models_file.with_suffix(models_file.suffix + ".lock")
        self._lock = threading.Lock()
        self._models: dict[PredictionTarget, TrainedModel] = {}
        self.reload()

    def reload(self) -> dict[PredictionTarget, TrainedModel]:
        """Re-read the models file, replacing the in-memory snapshot.

        An absent or unreadable file yields an empty store rather than an error.
        """
        self._models = self._read()
        return dict(self._models)

    def _read(self) -> dict[PredictionTarget, TrainedModel]:
        if not self.models_file.exists():
            logger.info("No trained models found - using rule-based scoring only")
            return {}

        try:
            data = json.loads(self.models_file.read_text())
            models = {
                PredictionTarget(key): TrainedModel.model_validate(value)
                for key, value in data.items()
            }
        except (json.JSONDecodeError, ValidationError, ValueError, AttributeError) as e:
            logger.warning(f"Failed to load models from {self.models_file}: {e}")
            return {}

        logger.info(f"Loaded {len(models)} trained models")
        return models

    @property
    def models(self) -> dict[PredictionTarget, TrainedModel]:
        return dict(self._models)

    def get(self, target: PredictionTarget) -> TrainedModel | None:
        return self._models.get(target)

    def is_ml_available(self) -> bool:
        """Whether enough models are present for learned scoring."""
        return all(target in self._models for target in REQUIRED_TARGETS)

    @contextmanager
    def writer(self) -> Iterator[None]:
        """Hold the store's write lock for the duration of a training run.

        Raises:
            ModelStoreLockedError: If another writer holds the lock.
        """
        if not self._lock.acquire(blocking=False):
            raise ModelStoreLockedError(self.lock_file)
        try:
            self.lock_file.parent.mkdir(parents=True, exist_ok=True)
            fd = self._create_lock_file()
            os.write(fd, str(os.getpid()).encode())
            os.close(fd)
            try:
                yield
            finally:
                self.lock_file.unlink(missing_ok=True)
        finally:
            self._lock.release()

    def _create_lock_file(self) -> int:
        flags = os.O_CREAT | os.O_EXCL | os.O_WRONLY
        try:
            return os.open(self.lock_file, flags)
        except FileExistsError:
            if _lock_holder_alive(self.lock_file):
                raise ModelStoreLockedError(self.lock_file) from None

        logger.warning(f"Removing stale lock file {self.lock_file} left by a dead process")
        self.lock_file.unlink(missing_ok=True)
        try:
            return os.open(self.lock_file, flags)
        except FileExistsError:
            raise ModelStoreLockedError(self.lock_file) from None

    def save_models(self, models: dict[PredictionTarget, TrainedModel]) -> None:
        """Replace the given targets wholesale, keeping other targets.

        Must be called inside ``writer()``. The in-memory snapshot is
        replaced with the persisted state once the write succeeds.
        """
        if not self._lock.locked():
            raise RuntimeError("save_models() requires the writer() lock")

        merged = {**self._read(), **models}
        payload = {target.value: model.model_dump(mode="json") for target, model in merged.items()}
        _atomic_write(self.models_file, payload)
        self._models = merged
        logger.info(f"Saved {len(models)} trained models to {self.models_file}")

    def model_info(self) -> dict[str, dict]:
        """Summaries of each stored model for display."""
        return {
            target.value: {
                "algorithm": model.algorithm.value,
                "accuracy": model.accuracy,
                "trained_at": model.trained_at.isoformat(),
                "training_samples": model.training_sample_count,
                "feature_schema_version": model.feature_schema_version,
            }
            for target, model in self._models.items()
        }


class TrainingCorpus:
    """Collection of training samples persisted as readable JSON.

    Samples are keyed by source repository; adding a sample for a
    repository already in the corpus supersedes the older record.
    """

    def __init__(self, data_file: Path = Path("data/training-data.json")) -> None:
        self.data_file = data_file
        self._samples: dict[str, TrainingSample] = {}
        self.load()

    def load(self) -> list[TrainingSample]:
        self._samples = {}
        if not self.data_file.exists():
            return []

        data = json.loads(self.data_file.read_text())
        for item in data:
            sample = TrainingSample.model_validate(item)
            self._samples[sample.source_repository] = sample

        logger.info(f"Loaded {len(self._samples)} existing training samples")
        return self.samples

    @property
    def samples(self) -> list[TrainingSample]:
        return list(self._samples.values())

    def __len__(self) -> int:
        return len(self._samples)

    def add(self, samples: list[TrainingSample]) -> None:
        for sample in samples:
            self._samples[sample.source_repository] = sample

    def save(self) -> Path:
        payload = [sample.model_dump(mode="json") for sample in self._samples.values()]
        _atomic_write(self.data_file, payload)
        logger.info(f"Saved {len(self._samples)} training samples")
        return self.data_file
