"""Tests for model and training corpus persistence."""

import json
import os

import pytest

from conftest import make_separable_samples
from revivalscope.ml.store import ModelStore, ModelStoreLockedError, TrainingCorpus
from revivalscope.models.schemas import PredictionTarget


class TestModelStore:
    def test_missing_file_is_empty(self, tmp_path):
        store = ModelStore(tmp_path / "models.json")
        assert store.models == {}
        assert not store.is_ml_available()

    def test_save_and_reload(self, tmp_path, make_model):
        path = tmp_path / "models.json"
        store = ModelStore(path)
        with store.writer():
            store.save_models({
                PredictionTarget.ABANDONMENT: make_model(PredictionTarget.ABANDONMENT),
                PredictionTarget.REVIVAL_SUCCESS: make_model(PredictionTarget.REVIVAL_SUCCESS),
            })

        reloaded = ModelStore(path)
        assert set(reloaded.models) == {PredictionTarget.ABANDONMENT, PredictionTarget.REVIVAL_SUCCESS}
        assert reloaded.get(PredictionTarget.ABANDONMENT) == store.get(PredictionTarget.ABANDONMENT)
        assert reloaded.is_ml_available()

    def test_readable_json_keyed_by_target(self, store_with, make_model, tmp_path):
        store_with(make_model(PredictionTarget.EFFORT, bias=12.0))
        data = json.loads((tmp_path / "models.json").read_text())
        assert list(data) == ["effort_estimation"]
        assert data["effort_estimation"]["bias"] == 12.0

    def test_save_replaces_targets_and_keeps_others(self, store_with, make_model):
        store = store_with(
            make_model(PredictionTarget.ABANDONMENT, accuracy=0.6),
            make_model(PredictionTarget.EFFORT),
        )
        with store.writer():
            store.save_models({
                PredictionTarget.ABANDONMENT: make_model(PredictionTarget.ABANDONMENT, accuracy=0.9),
            })

        assert store.get(PredictionTarget.ABANDONMENT).accuracy == 0.9
        assert store.get(PredictionTarget.EFFORT) is not None

    def test_requires_both_core_models(self, store_with, make_model):
        store = store_with(make_model(PredictionTarget.ABANDONMENT), make_model(PredictionTarget.EFFORT))
        assert not store.is_ml_available()

    def test_readers_keep_their_snapshot_until_reload(self, tmp_path, make_model):
        path = tmp_path / "models.json"
        reader = ModelStore(path)
        writer = ModelStore(path)
        with writer.writer():
            writer.save_models({PredictionTarget.EFFORT: make_model(PredictionTarget.EFFORT)})

        assert reader.models == {}
        reader.reload()
        assert PredictionTarget.EFFORT in reader.models

    def test_save_outside_writer_is_refused(self, tmp_path, make_model):
        store = ModelStore(tmp_path / "models.json")
        with pytest.raises(RuntimeError):
            store.save_models({PredictionTarget.EFFORT: make_model(PredictionTarget.EFFORT)})

    def test_second_writer_in_process_is_refused(self, tmp_path):
        store = ModelStore(tmp_path / "models.json")
        with store.writer():
            with pytest.raises(ModelStoreLockedError):
                with store.writer():
                    pass

    def test_second_writer_on_same_file_is_refused(self, tmp_path):
        first = ModelStore(tmp_path / "models.json")
        second = ModelStore(tmp_path / "models.json")
        with first.writer():
            with pytest.raises(ModelStoreLockedError):
                with second.writer():
                    pass

    def test_lock_released_after_writer(self, tmp_path):
        store = ModelStore(tmp_path / "models.json")
        with store.writer():
            assert store.lock_file.exists()
        assert not store.lock_file.exists()
        with store.writer():
            pass

    @pytest.mark.skipif(os.name != "posix", reason="process liveness is checked on POSIX only")
    def test_stale_lock_from_dead_process_is_reclaimed(self, tmp_path, make_model):
        store = ModelStore(tmp_path / "models.json")
        # above the Linux pid_max ceiling, so no such process exists
        store.lock_file.write_text(str(2**22 + 1))

        with store.writer():
            store.save_models({PredictionTarget.ADOPTION: make_model(PredictionTarget.ADOPTION)})
            assert store.lock_file.read_text() == str(os.getpid())
        assert not store.lock_file.exists()

    def test_lock_held_by_live_process_names_the_file(self, tmp_path):
        store = ModelStore(tmp_path / "models.json")
        store.lock_file.write_text(str(os.getpid()))

        with pytest.raises(ModelStoreLockedError, match="Delete the lock file") as excinfo:
            with store.writer():
                pass
        assert excinfo.value.lock_file == store.lock_file
        assert store.lock_file.exists()

    def test_unreadable_lock_is_treated_as_held(self, tmp_path):
        store = ModelStore(tmp_path / "models.json")
        store.lock_file.write_text("")

        with pytest.raises(ModelStoreLockedError):
            with store.writer():
                pass

    def test_corrupt_file_degrades_to_empty(self, tmp_path):
        path = tmp_path / "models.json"
        path.write_text("{not json")
        store = ModelStore(path)
        assert store.models == {}
        assert not store.is_ml_available()

    def test_model_info(self, store_with, make_model):
        store = store_with(make_model(PredictionTarget.ADOPTION, accuracy=0.75))
        info = store.model_info()
        assert info["community_adoption"]["accuracy"] == 0.75
        assert info["community_adoption"]["algorithm"] == "linear_regression"
        assert info["community_adoption"]["training_samples"] == 100


class TestTrainingCorpus:
    def test_save_and_load(self, tmp_path):
        path = tmp_path / "training-data.json"
        corpus = TrainingCorpus(path)
        corpus.add(make_separable_samples(n=5))
        corpus.save()

        loaded = TrainingCorpus(path)
        assert len(loaded) == 5
        assert loaded.samples == corpus.samples

    def test_recollection_supersedes(self, tmp_path):
        corpus = TrainingCorpus(tmp_path / "training-data.json")
        original, replacement = make_separable_samples(n=2)
        replacement = replacement.model_copy(update={"source_repository": original.source_repository})

        corpus.add([original])
        corpus.add([replacement])
        assert corpus.samples == [replacement]

    def test_human_readable(self, tmp_path):
        path = tmp_path / "training-data.json"
        corpus = TrainingCorpus(path)
        corpus.add(make_separable_samples(n=1))
        corpus.save()

        text = path.read_text()
        assert text.startswith("[\n  {")
        assert json.loads(text)[0]["source_repository"] == "synthetic/repo-0"
