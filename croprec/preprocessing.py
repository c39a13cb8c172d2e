"""
Data Preprocessing Module
=========================

Handles label encoding, feature standardization, and train/test splitting.

Classes:
    - LabelEncoder: Bidirectional crop name <-> integer code mapping
    - FeatureScaler: Per-feature z-score standardization
    - SeededShuffle: Deterministic linear-congruential generator

Functions:
    - shuffle_indices: Fisher-Yates permutation, seeded or not
    - split_indices: Partition sample indices into train and test
    - train_test_split: Split a feature matrix and labels
    - preprocess_pipeline: Split, encode and scale a Dataset
"""

import logging
from dataclasses import dataclass
from typing import Dict, Any, Iterable, List, Optional, Sequence, Tuple

import numpy as np
from sklearn.preprocessing import StandardScaler

from .exceptions import (
    ArtifactCorruptError,
    DimensionMismatchError,
    UnknownCodeError,
    UnknownLabelError,
)

logger = logging.getLogger(__name__)


class LabelEncoder:
    """
    Bijective mapping between crop labels and dense integer codes.

    Codes are assigned in first-seen order starting at 0. Fitting a second
    time extends the mapping instead of resetting it, so an encoder should
    be fitted once with the full label vocabulary.
    """

    def __init__(self):
        self._label_to_index: Dict[str, int] = {}
        self._index_to_label: Dict[int, str] = {}
        self._next_index = 0

    def fit(self, labels: Iterable[str]) -> 'LabelEncoder':
        """
        Assign codes to every label not already known.

        Args:
            labels: Labels in observation order

        Returns:
            Self for method chaining
        """
        for label in labels:
            if label not in self._label_to_index:
                self._label_to_index[label] = self._next_index
                self._index_to_label[self._next_index] = label
                self._next_index += 1
        return self

    def transform(self, labels: Iterable[str]) -> np.ndarray:
        """
        Convert labels to codes.

        Raises:
            UnknownLabelError: If a label was not seen during fit
        """
        codes = []
        for label in labels:
            index = self._label_to_index.get(label)
            if index is None:
                raise UnknownLabelError(label)
            codes.append(index)
        return np.asarray(codes, dtype=np.int64)

    def fit_transform(self, labels: Sequence[str]) -> np.ndarray:
        self.fit(labels)
        return self.transform(labels)

    def inverse_transform(self, codes: Iterable) -> List[str]:
        """
        Convert codes back to labels.

        Raises:
            UnknownCodeError: If a code is outside the mapping
        """
        labels = []
        for code in codes:
            try:
                index = int(code)
            except (TypeError, ValueError):
                raise UnknownCodeError(code) from None
            if index != code or index not in self._index_to_label:
                raise UnknownCodeError(code)
            labels.append(self._index_to_label[index])
        return labels

    @property
    def classes_(self) -> List[str]:
        """Known labels in code order."""
        return [self._index_to_label[i] for i in sorted(self._index_to_label)]

    def classes(self) -> List[str]:
        return self.classes_

    @property
    def n_classes(self) -> int:
        return len(self._label_to_index)

    def __contains__(self, label: str) -> bool:
        return label in self._label_to_index

    def to_dict(self) -> Dict[str, Any]:
        return {
            'label_to_index': dict(self._label_to_index),
            'next_index': self._next_index,
        }

    @classmethod
    def from_dict(cls, state: Dict[str, Any]) -> 'LabelEncoder':
        """
        Rebuild an encoder from to_dict() output.

        Raises:
            ArtifactCorruptError: If the structure is not a valid mapping
        """
        if not isinstance(state, dict) or 'label_to_index' not in state or 'next_index' not in state:
            raise ArtifactCorruptError("label encoder state must contain 'label_to_index' and 'next_index'", stage="restore")

        mapping = state['label_to_index']
        next_index = state['next_index']
        if not isinstance(mapping, dict) or not isinstance(next_index, int):
            raise ArtifactCorruptError("label encoder state has wrong types", stage="restore")

        encoder = cls()
        for label, index in mapping.items():
            if not isinstance(label, str) or not isinstance(index, int):
                raise ArtifactCorruptError(f"invalid encoder entry {label!r}: {index!r}", stage="restore")
            if index < 0 or index >= next_index or index in encoder._index_to_label:
                raise ArtifactCorruptError(f"encoder code {index} is duplicated or out of range", stage="restore")
            encoder._label_to_index[label] = index
            encoder._index_to_label[index] = label
        encoder._next_index = next_index
        return encoder


class FeatureScaler:
    """
    Per-feature standardization: (value - mean) / std.

    Statistics come from scikit-learn's StandardScaler (population std).
    A zero std is stored as 1, so constant columns are centred to 0
    instead of being divided by zero.
    """

    def __init__(self):
        self.mean_: np.ndarray = np.empty(0)
        self.std_: np.ndarray = np.empty(0)
        self._is_fitted = False

    @property
    def n_features(self) -> int:
        return int(self.mean_.shape[0])

    def fit(self, X) -> 'FeatureScaler':
        """
        Learn per-column mean and std.

        Fitting on zero rows leaves the scaler empty; callers must not
        fit on an empty matrix.

        Args:
            X: 2D array of shape (n_samples, n_features)

        Returns:
            Self for method chaining
        """
        X = np.asarray(X, dtype=float)
        if X.ndim != 2:
            raise ValueError(f"Expected a 2D feature matrix, got shape {X.shape}")
        if X.shape[0] == 0:
            logger.warning("FeatureScaler.fit called with zero rows; scaler left unfitted")
            return self

        scaler = StandardScaler().fit(X)
        self.mean_ = np.asarray(scaler.mean_, dtype=float)
        self.std_ = np.asarray(scaler.scale_, dtype=float)
        self._is_fitted = True
        return self

    def transform(self, X) -> np.ndarray:
        """
        Standardize a feature matrix with the fitted statistics.

        Raises:
            ValueError: If the scaler has not been fitted
            DimensionMismatchError: If the column count differs from fit time
        """
        if not self._is_fitted:
            raise ValueError("Scaler must be fitted before transform. Call fit() first.")

        X = np.asarray(X, dtype=float)
        if X.ndim != 2:
            raise ValueError(f"Expected a 2D feature matrix, got shape {X.shape}")
        if X.shape[1] != self.n_features:
            raise DimensionMismatchError(self.n_features, X.shape[1], component="scaler")

        return (X - self.mean_) / self.std_

    def fit_transform(self, X) -> np.ndarray:
        return self.fit(X).transform(X)

    def to_dict(self) -> Dict[str, List[float]]:
        return {'mean': self.mean_.tolist(), 'std': self.std_.tolist()}

    @classmethod
    def from_dict(cls, state: Dict[str, Any]) -> 'FeatureScaler':
        """
        Rebuild a scaler from to_dict() output.

        Raises:
            ArtifactCorruptError: If the vectors are missing or inconsistent
        """
        if not isinstance(state, dict) or 'mean' not in state or 'std' not in state:
            raise ArtifactCorruptError("scaler state must contain 'mean' and 'std'", stage="restore")

        try:
            mean = np.asarray(state['mean'], dtype=float)
            std = np.asarray(state['std'], dtype=float)
        except (TypeError, ValueError) as exc:
            raise ArtifactCorruptError(f"scaler vectors are not numeric: {exc}", stage="restore") from exc

        if mean.ndim != 1 or mean.shape != std.shape:
            raise ArtifactCorruptError("scaler mean and std must be vectors of equal length", stage="restore")
        if not (np.all(np.isfinite(mean)) and np.all(np.isfinite(std)) and np.all(std > 0)):
            raise ArtifactCorruptError("scaler contains non-finite values or non-positive std", stage="restore")

        scaler = cls()
        scaler.mean_ = mean
        scaler.std_ = std
        scaler._is_fitted = mean.shape[0] > 0
        return scaler


class SeededShuffle:
    """
    Linear-congruential generator used for reproducible splits.

    seed <- (seed * 9301 + 49297) mod 233280, yielding seed / 233280.
    """

    MULTIPLIER = 9301
    INCREMENT = 49297
    MODULUS = 233280

    def __init__(self, seed: int):
        self.state = int(seed)

    def random(self) -> float:
        self.state = (self.state * self.MULTIPLIER + self.INCREMENT) % self.MODULUS
        return self.state / self.MODULUS


def shuffle_indices(n: int, random_seed: Optional[int] = None) -> np.ndarray:
    """
    Produce a permutation of range(n).

    With a seed, a Fisher-Yates shuffle driven by SeededShuffle makes the
    permutation identical for the same seed and n. Without a seed, numpy's
    default generator is used and the result is NOT reproducible.

    Args:
        n: Number of samples
        random_seed: Optional seed for a deterministic permutation

    Returns:
        Integer array containing each index in [0, n) once
    """
    if random_seed is None:
        return np.random.default_rng().permutation(n)

    indices = list(range(n))
    rng = SeededShuffle(random_seed)
    for i in range(n - 1, 0, -1):
        j = int(rng.random() * (i + 1))
        indices[i], indices[j] = indices[j], indices[i]
    return np.asarray(indices, dtype=np.int64)


@dataclass(frozen=True, eq=False)
class SplitIndices:
    train: np.ndarray
    test: np.ndarray


def split_indices(
    n: int,
    test_fraction: float = 0.2,
    random_seed: Optional[int] = None
) -> SplitIndices:
    """
    Partition [0, n) into train and test indices.

    The permutation is cut at floor(n * (1 - test_fraction)): the head is
    train, the tail is test. For n >= 2 the cut is clamped so that both
    sides hold at least one sample; a single sample always goes to train.

    Args:
        n: Number of samples
        test_fraction: Fraction of samples for testing, in (0, 1)
        random_seed: Optional seed for a reproducible split

    Returns:
        SplitIndices with disjoint train and test arrays covering [0, n)
    """
    if not 0 < test_fraction < 1:
        raise ValueError(f"test_fraction must be in (0, 1), got {test_fraction}")
    if n < 0:
        raise ValueError(f"Number of samples must be non-negative, got {n}")

    permutation = shuffle_indices(n, random_seed)
    split_idx = int(np.floor(n * (1 - test_fraction)))
    if n >= 2:
        split_idx = min(max(split_idx, 1), n - 1)
    else:
        split_idx = n

    return SplitIndices(train=permutation[:split_idx], test=permutation[split_idx:])


def train_test_split(
    features,
    labels: Sequence[str],
    test_fraction: float = 0.2,
    random_seed: Optional[int] = None
) -> Tuple[np.ndarray, np.ndarray, List[str], List[str]]:
    """
    Split features and labels with split_indices.

    Returns:
        Tuple of (X_train, X_test, y_train, y_test)
    """
    X = np.asarray(features, dtype=float)
    if len(X) != len(labels):
        raise ValueError(
            f"features and labels must have equal length ({len(X)} != {len(labels)})"
        )

    split = split_indices(len(X), test_fraction, random_seed)
    X_train = X[split.train]
    X_test = X[split.test]
    y_train = [labels[i] for i in split.train]
    y_test = [labels[i] for i in split.test]

    logger.info(
        f"Train/Test split: {len(X_train)} train samples, {len(X_test)} test samples"
    )

    return X_train, X_test, y_train, y_test


def preprocess_pipeline(
    features,
    labels: Sequence[str],
    test_split: float = 0.2,
    random_seed: Optional[int] = 42
) -> Dict[str, Any]:
    """
    Split, encode and scale data for training.

    The label encoder is fitted on the full label set so every test label
    is representable. The scaler is fitted on the train split only and
    applied unchanged to the test split.

    Args:
        features: Feature matrix in canonical column order
        labels: Crop labels parallel to features
        test_split: Fraction of samples held out for testing
        random_seed: Seed for the split (None for a random split)

    Returns:
        Dictionary containing:
            - X_train, X_test: Scaled feature matrices
            - y_train, y_test: Encoded label codes
            - train_labels, test_labels: Label names
            - label_encoder, scaler: Fitted preprocessing state
    """
    logger.info("=" * 60)
    logger.info("STARTING DATA PREPROCESSING")
    logger.info("=" * 60)

    X_train_raw, X_test_raw, train_labels, test_labels = train_test_split(
        features, labels, test_split, random_seed
    )

    label_encoder = LabelEncoder().fit(labels)
    scaler = FeatureScaler().fit(X_train_raw)

    X_train = scaler.transform(X_train_raw)
    X_test = scaler.transform(X_test_raw) if len(X_test_raw) else X_test_raw

    result = {
        'X_train': X_train,
        'X_test': X_test,
        'y_train': label_encoder.transform(train_labels),
        'y_test': label_encoder.transform(test_labels),
        'train_labels': train_labels,
        'test_labels': test_labels,
        'label_encoder': label_encoder,
        'scaler': scaler,
    }

    logger.info("=" * 60)
    logger.info("PREPROCESSING COMPLETE")
    logger.info(f"  Training samples: {len(X_train)}")
    logger.info(f"  Test samples: {len(X_test)}")
    logger.info(f"  Classes: {label_encoder.n_classes}")
    logger.info("=" * 60)

    return result
