"""
Model Training Module
=====================

Crop classifier built on scikit-learn's RandomForestClassifier.

Features:
    - Hard majority vote across trees
    - Vote-share confidence for every prediction
    - Hyperparameter configuration via config file
    - State export/import for persistence
"""

import logging
from typing import Dict, Any, Optional, Tuple
from datetime import datetime, timezone

import numpy as np
from sklearn.ensemble import RandomForestClassifier

from .exceptions import ArtifactCorruptError, DimensionMismatchError, ModelNotTrainedError

logger = logging.getLogger(__name__)


class CropRandomForest:
    """
    Random Forest crop classifier working on integer label codes.

    predict() uses a hard majority vote of the individual trees (ties go to
    the lowest class code) so that the reported confidence is the share of
    trees that agreed with the winning class.
    """

    def __init__(
        self,
        n_estimators: int = 100,
        max_depth: Optional[int] = 10,
        random_state: Optional[int] = 42,
        n_jobs: Optional[int] = -1
    ):
        """
        Initialize the model with hyperparameters.

        Args:
            n_estimators: Number of trees in the forest
            max_depth: Maximum depth of each tree
            random_state: Seed for bootstrap and feature sampling (None for random)
            n_jobs: Number of parallel jobs for tree building (-1 for all cores)
        """
        self.n_estimators = n_estimators
        self.max_depth = max_depth
        self.random_state = random_state
        self.n_jobs = n_jobs

        self.model: Optional[RandomForestClassifier] = None
        self.n_features_in_: Optional[int] = None
        self.classes_: Optional[np.ndarray] = None
        self.training_info: Dict[str, Any] = {}
        self._is_fitted = False

    def get_hyperparameters(self) -> Dict[str, Any]:
        return {
            'n_estimators': self.n_estimators,
            'max_depth': self.max_depth,
            'random_state': self.random_state,
            'n_jobs': self.n_jobs,
        }

    def _create_estimator(self) -> RandomForestClassifier:
        return RandomForestClassifier(
            n_estimators=self.n_estimators,
            max_depth=self.max_depth,
            random_state=self.random_state,
            n_jobs=self.n_jobs
        )

    def fit(self, X: np.ndarray, y: np.ndarray) -> 'CropRandomForest':
        """
        Train the forest.

        Args:
            X: Scaled feature array of shape (n_samples, n_features)
            y: Integer label codes of shape (n_samples,)

        Returns:
            Self for method chaining
        """
        X = np.asarray(X, dtype=float)
        y = np.asarray(y, dtype=np.int64)
        if X.ndim != 2 or len(X) == 0:
            raise ValueError(f"Expected a non-empty 2D feature matrix, got shape {X.shape}")
        if len(X) != len(y):
            raise ValueError(f"X and y must have equal length ({len(X)} != {len(y)})")

        start_time = datetime.now(timezone.utc)

        logger.info("=" * 60)
        logger.info("STARTING MODEL TRAINING")
        logger.info("=" * 60)
        logger.info(f"Training data shape: X={X.shape}, y={y.shape}")
        logger.info(f"Hyperparameters:")
        logger.info(f"  - n_estimators: {self.n_estimators}")
        logger.info(f"  - max_depth: {self.max_depth}")
        logger.info(f"  - random_state: {self.random_state}")

        self.model = self._create_estimator()
        self.model.fit(X, y)

        self.n_features_in_ = X.shape[1]
        self.classes_ = np.asarray(self.model.classes_, dtype=np.int64)

        end_time = datetime.now(timezone.utc)
        training_duration = (end_time - start_time).total_seconds()

        self.training_info = {
            'training_duration_seconds': training_duration,
            'n_samples': X.shape[0],
            'n_features': X.shape[1],
            'n_classes': len(self.classes_),
            'trained_at': end_time.isoformat(),
            'hyperparameters': self.get_hyperparameters(),
        }
        self._is_fitted = True

        logger.info("=" * 60)
        logger.info(f"MODEL TRAINING COMPLETE in {training_duration:.2f} seconds")
        logger.info("=" * 60)

        return self

    def _check_input(self, X) -> np.ndarray:
        if not self._is_fitted:
            raise ModelNotTrainedError("Model must be trained before prediction. Call fit() first.")

        X = np.asarray(X, dtype=float)
        if X.ndim != 2:
            raise ValueError(f"Expected a 2D feature matrix, got shape {X.shape}")
        if X.shape[1] != self.n_features_in_:
            raise DimensionMismatchError(self.n_features_in_, X.shape[1], component="classifier")
        return X

    def vote_counts(self, X: np.ndarray) -> np.ndarray:
        """
        Count the hard vote of every tree.

        Args:
            X: Feature array of shape (n_samples, n_features)

        Returns:
            Integer array of shape (n_samples, n_classes); columns follow classes_
        """
        X = self._check_input(X)
        n_classes = len(self.classes_)
        counts = np.zeros((X.shape[0], n_classes), dtype=np.int64)
        rows = np.arange(X.shape[0])

        for tree in self.model.estimators_:
            # Trees are fitted on class positions, so argmax indexes classes_
            votes = np.argmax(tree.predict_proba(X), axis=1)
            counts[rows, votes] += 1

        return counts

    def vote_shares(self, X: np.ndarray) -> np.ndarray:
        """Fraction of trees voting for each class; rows sum to 1."""
        counts = self.vote_counts(X)
        return counts / float(len(self.model.estimators_))

    def predict_with_confidence(self, X: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """
        Predict label codes together with the winning vote share.

        Returns:
            Tuple of (codes, confidence) with confidence in [0, 1]
        """
        shares = self.vote_shares(X)
        winners = np.argmax(shares, axis=1)
        confidence = shares[np.arange(len(winners)), winners]
        return self.classes_[winners], confidence

    def predict(self, X: np.ndarray) -> np.ndarray:
        """
        Predict one label code per row by majority vote.

        Args:
            X: Feature array of shape (n_samples, n_features)

        Returns:
            Integer label codes of shape (n_samples,)
        """
        codes, _ = self.predict_with_confidence(X)
        return codes

    def get_feature_importances(self) -> np.ndarray:
        """Impurity-based importance of each feature."""
        if not self._is_fitted:
            raise ModelNotTrainedError("Model must be trained first.")
        return np.asarray(self.model.feature_importances_)

    def to_state(self) -> Dict[str, Any]:
        """
        Export the fitted model for persistence.

        The fitted estimator is kept as an object; joblib serializes the
        learned trees exactly.
        """
        if not self._is_fitted:
            raise ModelNotTrainedError("Cannot save untrained model.")

        return {
            'estimator': self.model,
            'hyperparameters': self.get_hyperparameters(),
            'n_features_in_': self.n_features_in_,
            'classes_': self.classes_.tolist(),
            'training_info': self.training_info,
        }

    @classmethod
    def from_state(cls, state: Dict[str, Any]) -> 'CropRandomForest':
        """
        Rebuild a fitted model from to_state() output.

        Raises:
            ArtifactCorruptError: If the state is incomplete or holds a foreign estimator
        """
        required = ('estimator', 'hyperparameters', 'n_features_in_', 'classes_')
        if not isinstance(state, dict) or any(key not in state for key in required):
            raise ArtifactCorruptError(f"model state must contain {list(required)}", stage="restore")

        estimator = state['estimator']
        if not isinstance(estimator, RandomForestClassifier) or not hasattr(estimator, 'estimators_'):
            raise ArtifactCorruptError(
                f"expected a fitted RandomForestClassifier, got {type(estimator).__name__}",
                stage="restore"
            )

        try:
            model = cls(**state['hyperparameters'])
        except TypeError as exc:
            raise ArtifactCorruptError(f"invalid hyperparameters: {exc}", stage="restore") from exc

        model.model = estimator
        model.n_features_in_ = int(state['n_features_in_'])
        model.classes_ = np.asarray(state['classes_'], dtype=np.int64)
        model.training_info = dict(state.get('training_info') or {})
        model._is_fitted = True

        if estimator.n_features_in_ != model.n_features_in_:
            raise ArtifactCorruptError(
                f"estimator expects {estimator.n_features_in_} features, state says {model.n_features_in_}",
                stage="restore"
            )
        return model


def train_model(
    X_train: np.ndarray,
    y_train: np.ndarray,
    config: Optional[Dict[str, Any]] = None,
    **overrides
) -> CropRandomForest:
    """
    Train a model using configuration parameters.

    Args:
        X_train: Scaled training features
        y_train: Training label codes
        config: Configuration dictionary (reads the 'training' section)
        **overrides: Hyperparameters taking precedence over the config

    Returns:
        Trained CropRandomForest
    """
    training_config = (config or {}).get('training', {})

    params = {
        'n_estimators': training_config.get('n_estimators', 100),
        'max_depth': training_config.get('max_depth', 10),
        'random_state': training_config.get('random_seed', 42),
        'n_jobs': training_config.get('n_jobs', -1),
    }
    params.update({k: v for k, v in overrides.items() if v is not None})

    model = CropRandomForest(**params)
    model.fit(X_train, y_train)
    return model


def print_model_summary(model: CropRandomForest) -> None:
    """
    Print a summary of the trained model.

    Args:
        model: Trained model instance
    """
    print("\n" + "=" * 50)
    print("MODEL SUMMARY")
    print("=" * 50)
    print(f"Model Type: RandomForestClassifier (majority vote)")
    print(f"Number of classes: {len(model.classes_) if model.classes_ is not None else 'N/A'}")
    print(f"Number of input features: {model.n_features_in_}")
    print(f"\nHyperparameters:")
    print(f"  - n_estimators: {model.n_estimators}")
    print(f"  - max_depth: {model.max_depth}")
    print(f"  - random_state: {model.random_state}")

    if model.training_info:
        print(f"\nTraining Info:")
        print(f"  - Duration: {model.training_info.get('training_duration_seconds', 0.0):.2f}s")
        print(f"  - Samples: {model.training_info.get('n_samples', 'N/A')}")

    print("=" * 50 + "\n")
