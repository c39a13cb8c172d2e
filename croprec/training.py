"""
Training Pipeline
=================

Runs a complete training pass: split, encode, scale, fit the forest and
score it on the held-out split.
"""

import time
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Any, List, Optional, Union

from .data_loader import Dataset, FEATURE_COLUMNS, load_dataset
from .evaluation import accuracy as accuracy_fraction
from .model import CropRandomForest, train_model
from .preprocessing import FeatureScaler, LabelEncoder, preprocess_pipeline

logger = logging.getLogger(__name__)


@dataclass
class TrainingResult:
    """
    Outcome of one training run.

    accuracy is a fraction in [0, 1], or None when the test split was empty.
    """
    model: CropRandomForest
    accuracy: Optional[float]
    test_predictions: List[str]
    test_labels: List[str]
    label_encoder: LabelEncoder
    scaler: FeatureScaler
    stats: Any
    training_stats: Dict[str, Any]
    feature_names: List[str] = field(default_factory=lambda: list(FEATURE_COLUMNS))


def run_training(
    dataset: Dataset,
    config: Optional[Dict[str, Any]] = None,
    test_split: Optional[float] = None,
    random_seed: Optional[int] = None,
    n_estimators: Optional[int] = None,
    max_depth: Optional[int] = None
) -> TrainingResult:
    """
    Train a crop classifier on a validated dataset.

    Keyword arguments override the 'training' section of the config.
    A random_seed of None falls back to the configured seed; set
    training.random_seed to null in the config for an unseeded run.

    Args:
        dataset: Dataset from the loader
        config: Configuration dictionary
        test_split: Fraction of samples held out for testing
        random_seed: Seed for the split and the forest
        n_estimators: Number of trees
        max_depth: Maximum tree depth

    Returns:
        TrainingResult with the fitted model and preprocessing state
    """
    start_time = time.perf_counter()
    training_config = (config or {}).get('training', {})

    if test_split is None:
        test_split = training_config.get('test_split', 0.2)
    if random_seed is None:
        random_seed = training_config.get('random_seed', 42)

    logger.info(f"Label distribution: {dataset.stats.label_distribution}")

    prep = preprocess_pipeline(
        dataset.features,
        list(dataset.labels),
        test_split=test_split,
        random_seed=random_seed
    )

    model = train_model(
        prep['X_train'],
        prep['y_train'],
        config,
        n_estimators=n_estimators,
        max_depth=max_depth,
        random_state=random_seed
    )

    label_encoder = prep['label_encoder']
    test_labels = list(prep['test_labels'])
    test_predictions: List[str] = []
    accuracy = None

    if test_labels:
        logger.info("Evaluating model on test split...")
        codes = model.predict(prep['X_test'])
        test_predictions = label_encoder.inverse_transform(codes)
        accuracy = accuracy_fraction(test_predictions, test_labels)
        logger.info(f"Test accuracy: {accuracy * 100:.2f}%")
    else:
        logger.warning("Test split is empty; accuracy is not available")

    training_time = time.perf_counter() - start_time

    training_stats = {
        'train_size': int(len(prep['X_train'])),
        'test_size': int(len(test_labels)),
        'n_features': int(prep['X_train'].shape[1]),
        'n_classes': int(label_encoder.n_classes),
        'training_time': training_time,
    }

    logger.info(f"Training run finished in {training_time:.2f}s: {training_stats}")

    return TrainingResult(
        model=model,
        accuracy=accuracy,
        test_predictions=test_predictions,
        test_labels=test_labels,
        label_encoder=label_encoder,
        scaler=prep['scaler'],
        stats=dataset.stats,
        training_stats=training_stats,
        feature_names=list(dataset.feature_names),
    )


def train_from_csv(
    csv_path: Union[str, Path],
    config: Optional[Dict[str, Any]] = None,
    **options
) -> TrainingResult:
    """
    Load a CSV file and train on it.

    Args:
        csv_path: Path to the dataset
        config: Configuration dictionary
        **options: Overrides accepted by run_training

    Returns:
        TrainingResult
    """
    logger.info("Loading dataset...")
    dataset = load_dataset(csv_path)
    logger.info(f"Loaded {dataset.stats.valid_rows} valid rows")
    return run_training(dataset, config, **options)


def print_training_summary(result: TrainingResult) -> None:
    """
    Print a summary of a training run.

    Args:
        result: TrainingResult from run_training
    """
    stats = result.training_stats
    print("\n" + "=" * 50)
    print("TRAINING SUMMARY")
    print("=" * 50)
    print(f"Training samples: {stats['train_size']}")
    print(f"Test samples: {stats['test_size']}")
    print(f"Features: {stats['n_features']}")
    print(f"Classes: {stats['n_classes']}")
    if result.accuracy is None:
        print("Accuracy: N/A (empty test split)")
    else:
        print(f"Accuracy: {result.accuracy * 100:.2f}%")
    print(f"Training time: {stats['training_time']:.2f}s")
    print("=" * 50 + "\n")
