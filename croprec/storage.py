"""
Model Persistence
=================

Stores the single current model artifact: classifier, label encoder,
scaler and metadata bundled into one joblib file. Saving a new model
supersedes the previous one; deleting it is the rollback.
"""

import os
import logging
import tempfile
import threading
import warnings
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Any, Optional, Union

import joblib

from .data_loader import FEATURE_COLUMNS
from .exceptions import ArtifactCorruptError, ArtifactVersionWarning
from .model import CropRandomForest
from .preprocessing import FeatureScaler, LabelEncoder

logger = logging.getLogger(__name__)

SCHEMA_VERSION = "1.0.0"
DEFAULT_STORAGE_KEY = "crop_model"

ARTIFACT_KEYS = ('model', 'label_encoder', 'scaler', 'metadata')


@dataclass
class RestoredModel:
    """Live objects rebuilt from an artifact; shared read-only by predictions."""
    model: CropRandomForest
    label_encoder: LabelEncoder
    scaler: FeatureScaler
    metadata: Dict[str, Any]


@dataclass
class ModelStatus:
    """Summary of the current model for display or polling."""
    is_trained: bool
    trained_at: Optional[str] = None
    model_version: Optional[str] = None
    accuracy: Optional[float] = None
    training_stats: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'is_trained': self.is_trained,
            'trained_at': self.trained_at,
            'model_version': self.model_version,
            'accuracy': self.accuracy,
            'training_stats': dict(self.training_stats),
        }


class ModelStore:
    """
    File-backed storage for the one current model.

    Create one store per process (or per request) and pass it to the
    services that need it. Writes go to a temporary file that is renamed
    over the artifact, so readers never see a partial file.
    """

    def __init__(
        self,
        model_dir: Union[str, Path] = "models",
        storage_key: str = DEFAULT_STORAGE_KEY
    ):
        self.model_dir = Path(model_dir)
        self.storage_key = storage_key
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls, config: Optional[Dict[str, Any]] = None) -> 'ModelStore':
        storage_config = (config or {}).get('storage', {})
        return cls(
            model_dir=storage_config.get('model_dir', 'models'),
            storage_key=storage_config.get('storage_key', DEFAULT_STORAGE_KEY)
        )

    @property
    def path(self) -> Path:
        return self.model_dir / f"{self.storage_key}.joblib"

    def save(self, result) -> Dict[str, Any]:
        """
        Persist a training result as the current artifact (mode 0644).

        Args:
            result: TrainingResult from a training run

        Returns:
            The artifact dictionary that was written
        """
        trained_at = datetime.now(timezone.utc)
        artifact = {
            'model': result.model.to_state(),
            'label_encoder': result.label_encoder.to_dict(),
            'scaler': result.scaler.to_dict(),
            'metadata': {
                'version': SCHEMA_VERSION,
                'model_version': f"model_v{int(trained_at.timestamp() * 1000)}",
                'trained_at': trained_at.isoformat(),
                'accuracy': result.accuracy,
                'training_stats': dict(result.training_stats),
                'feature_names': list(result.feature_names),
                'n_features': result.training_stats.get('n_features', len(FEATURE_COLUMNS)),
                'n_classes': result.training_stats.get('n_classes', result.label_encoder.n_classes),
                'training_time': result.training_stats.get('training_time'),
            },
        }

        with self._lock:
            self.model_dir.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self.storage_key}.", suffix=".tmp", dir=str(self.model_dir)
            )
            os.close(fd)
            try:
                joblib.dump(artifact, tmp_name)
                # mkstemp creates the file 0600
                os.chmod(tmp_name, 0o644)
                os.replace(tmp_name, self.path)
            except BaseException:
                if os.path.exists(tmp_name):
                    os.unlink(tmp_name)
                raise

        logger.info(f"Model saved to {self.path} ({artifact['metadata']['model_version']})")
        return artifact

    def load(self) -> Optional[Dict[str, Any]]:
        """
        Read the current artifact.

        Returns:
            The artifact dictionary, or None if no model is stored

        Raises:
            ArtifactCorruptError: If the file cannot be read or is malformed
        """
        if not self.path.exists():
            return None

        try:
            artifact = joblib.load(self.path)
        except FileNotFoundError:
            # Deleted between the existence check and the read
            return None
        except Exception as exc:
            raise ArtifactCorruptError(f"cannot read {self.path}: {exc}", stage="load") from exc

        if not isinstance(artifact, dict) or any(key not in artifact for key in ARTIFACT_KEYS):
            raise ArtifactCorruptError(
                f"{self.path} is not a model artifact (expected keys {list(ARTIFACT_KEYS)})",
                stage="load"
            )
        metadata = artifact['metadata']
        if not isinstance(metadata, dict):
            raise ArtifactCorruptError("artifact metadata must be a mapping", stage="load")

        version = metadata.get('version')
        if version != SCHEMA_VERSION:
            message = f"Model version mismatch: {version} vs {SCHEMA_VERSION}"
            logger.warning(message)
            warnings.warn(message, ArtifactVersionWarning, stacklevel=2)

        return artifact

    def delete(self) -> bool:
        """
        Remove the current artifact. Deleting when nothing is stored is a no-op.

        Returns:
            True if an artifact was removed
        """
        with self._lock:
            try:
                self.path.unlink()
            except FileNotFoundError:
                return False

        logger.info(f"Model deleted: {self.path}")
        return True

    @staticmethod
    def restore(artifact: Dict[str, Any]) -> RestoredModel:
        """
        Rebuild classifier, encoder and scaler from an artifact.

        Raises:
            ArtifactCorruptError: If any part fails validation
        """
        if not isinstance(artifact, dict) or any(key not in artifact for key in ARTIFACT_KEYS):
            raise ArtifactCorruptError(f"artifact must contain {list(ARTIFACT_KEYS)}", stage="restore")

        model = CropRandomForest.from_state(artifact['model'])
        label_encoder = LabelEncoder.from_dict(artifact['label_encoder'])
        scaler = FeatureScaler.from_dict(artifact['scaler'])

        if scaler.n_features != model.n_features_in_:
            raise ArtifactCorruptError(
                f"scaler has {scaler.n_features} features, classifier has {model.n_features_in_}",
                stage="restore"
            )
        if len(model.classes_) and int(model.classes_.max()) >= label_encoder.n_classes:
            raise ArtifactCorruptError("classifier predicts codes the label encoder does not know", stage="restore")

        return RestoredModel(
            model=model,
            label_encoder=label_encoder,
            scaler=scaler,
            metadata=dict(artifact['metadata'])
        )

    def has_model(self) -> bool:
        return self.path.exists()

    def get_metadata(self) -> Optional[Dict[str, Any]]:
        artifact = self.load()
        return artifact['metadata'] if artifact else None

    def status(self) -> ModelStatus:
        """Summarize the stored model."""
        metadata = self.get_metadata()
        if metadata is None:
            return ModelStatus(is_trained=False)

        stats = metadata.get('training_stats') or {}
        return ModelStatus(
            is_trained=True,
            trained_at=metadata.get('trained_at'),
            model_version=metadata.get('model_version'),
            accuracy=metadata.get('accuracy'),
            training_stats={
                'train_size': stats.get('train_size'),
                'test_size': stats.get('test_size'),
            },
        )


def print_model_status(status: ModelStatus) -> None:
    """
    Print the stored model status.

    Args:
        status: ModelStatus from ModelStore.status()
    """
    print("\n" + "=" * 50)
    print("MODEL STATUS")
    print("=" * 50)
    if not status.is_trained:
        print("No trained model found. Run the 'train' phase first.")
    else:
        print(f"Model version: {status.model_version}")
        print(f"Trained at: {status.trained_at}")
        if status.accuracy is None:
            print("Accuracy: N/A")
        else:
            print(f"Accuracy: {status.accuracy * 100:.2f}%")
        print(f"Train size: {status.training_stats.get('train_size')}")
        print(f"Test size: {status.training_stats.get('test_size')}")
    print("=" * 50 + "\n")
