"""
Test Suite for Model Persistence
================================

Tests for saving, loading, restoring and deleting the model artifact.
"""

import os
import stat

import pytest
import joblib
import numpy as np

from croprec.exceptions import ArtifactCorruptError, ArtifactVersionWarning
from croprec.storage import SCHEMA_VERSION, ModelStore


class TestModelStore:
    """Tests for ModelStore class."""

    def test_load_without_model(self, store):
        assert store.load() is None
        assert not store.has_model()
        assert store.get_metadata() is None

    def test_save_and_load(self, store, trained_result):
        saved = store.save(trained_result)
        loaded = store.load()

        assert store.has_model()
        assert set(loaded) == {'model', 'label_encoder', 'scaler', 'metadata'}
        assert loaded['metadata'] == saved['metadata']
        assert loaded['metadata']['version'] == SCHEMA_VERSION
        assert loaded['metadata']['model_version'].startswith("model_v")
        assert loaded['metadata']['accuracy'] == trained_result.accuracy
        assert loaded['metadata']['training_stats']['train_size'] == 80

    def test_no_temporary_files_left(self, store, trained_result):
        store.save(trained_result)
        store.save(trained_result)

        assert [p.name for p in store.model_dir.iterdir()] == ["crop_model.joblib"]

    @pytest.mark.skipif(os.name != 'posix', reason="POSIX file modes")
    def test_saved_artifact_is_world_readable(self, store, trained_result):
        store.save(trained_result)

        assert stat.S_IMODE(store.path.stat().st_mode) == 0o644

    def test_save_replaces_previous_model(self, store, trained_result):
        store.save(trained_result)
        trained_result.accuracy = 0.5
        store.save(trained_result)

        assert store.load()['metadata']['accuracy'] == 0.5

    def test_delete_is_idempotent(self, store, trained_result):
        store.save(trained_result)

        assert store.delete() is True
        assert store.delete() is False
        assert store.load() is None

    def test_storage_key(self, tmp_path, trained_result):
        store = ModelStore(tmp_path, storage_key="field_a")
        store.save(trained_result)

        assert (tmp_path / "field_a.joblib").exists()

    def test_from_config(self, tmp_path):
        store = ModelStore.from_config({'storage': {'model_dir': str(tmp_path), 'storage_key': 'k'}})

        assert store.path == tmp_path / "k.joblib"

    def test_version_mismatch_warns(self, store, trained_result):
        artifact = store.save(trained_result)
        artifact['metadata']['version'] = "0.9.0"
        joblib.dump(artifact, store.path)

        with pytest.warns(ArtifactVersionWarning, match="0.9.0"):
            loaded = store.load()

        assert loaded['metadata']['version'] == "0.9.0"

    def test_corrupt_file(self, store):
        store.model_dir.mkdir(parents=True)
        store.path.write_bytes(b"not a joblib file")

        with pytest.raises(ArtifactCorruptError, match=r"\[load\]"):
            store.load()

    def test_foreign_object(self, store):
        store.model_dir.mkdir(parents=True)
        joblib.dump({'weights': [1, 2, 3]}, store.path)

        with pytest.raises(ArtifactCorruptError, match="not a model artifact"):
            store.load()


class TestRestore:
    """Tests for ModelStore.restore."""

    def test_restored_model_predicts_identically(self, store, trained_result, crop_dataset):
        store.save(trained_result)
        restored = ModelStore.restore(store.load())

        X = trained_result.scaler.transform(crop_dataset.features)
        np.testing.assert_array_equal(
            restored.model.vote_counts(restored.scaler.transform(crop_dataset.features)),
            trained_result.model.vote_counts(X)
        )
        assert restored.label_encoder.classes() == trained_result.label_encoder.classes()

    def test_scaler_dimension_mismatch(self, store, trained_result):
        artifact = store.save(trained_result)
        artifact['scaler'] = {'mean': [0.0, 0.0], 'std': [1.0, 1.0]}

        with pytest.raises(ArtifactCorruptError, match="scaler has 2 features"):
            ModelStore.restore(artifact)

    def test_encoder_missing_classes(self, store, trained_result):
        artifact = store.save(trained_result)
        artifact['label_encoder'] = {'label_to_index': {'rice': 0}, 'next_index': 1}

        with pytest.raises(ArtifactCorruptError, match="label encoder"):
            ModelStore.restore(artifact)

    def test_malformed_artifact(self):
        with pytest.raises(ArtifactCorruptError, match=r"\[restore\]"):
            ModelStore.restore({'model': {}})


class TestModelStatus:
    """Tests for ModelStore.status."""

    def test_untrained(self, store):
        status = store.status()

        assert status.is_trained is False
        assert status.to_dict()['model_version'] is None

    def test_trained(self, store, trained_result):
        artifact = store.save(trained_result)
        status = store.status()

        assert status.is_trained
        assert status.model_version == artifact['metadata']['model_version']
        assert status.accuracy == trained_result.accuracy
        assert status.training_stats == {'train_size': 80, 'test_size': 20}

    def test_null_training_stats(self, store, trained_result):
        artifact = store.save(trained_result)
        artifact['metadata']['training_stats'] = None
        joblib.dump(artifact, store.path)

        status = store.status()

        assert status.is_trained
        assert status.training_stats == {'train_size': None, 'test_size': None}
