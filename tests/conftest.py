"""
Shared fixtures: a synthetic, well separated three-crop dataset.
"""

import sys
from pathlib import Path

import matplotlib
matplotlib.use("Agg")

import numpy as np
import pandas as pd
import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from croprec.data_loader import FEATURE_COLUMNS, parse_dataset
from croprec.storage import ModelStore
from croprec.training import run_training

CENTROIDS = {
    'rice': [80.0, 48.0, 40.0, 23.5, 82.0, 6.4, 236.0],
    'chickpea': [40.0, 68.0, 80.0, 18.9, 16.9, 7.3, 80.0],
    'coffee': [101.0, 28.0, 30.0, 25.5, 58.9, 6.8, 158.0],
}
NOISE = [3.0, 3.0, 3.0, 0.8, 2.0, 0.15, 8.0]


def make_crop_frame(n_samples: int = 100, seed: int = 0) -> pd.DataFrame:
    """Balanced samples around CENTROIDS, rows shuffled."""
    rng = np.random.default_rng(seed)
    crops = list(CENTROIDS)
    counts = [n_samples // len(crops)] * len(crops)
    for i in range(n_samples % len(crops)):
        counts[i] += 1

    rows = []
    for crop, count in zip(crops, counts):
        values = rng.normal(CENTROIDS[crop], NOISE, size=(count, len(FEATURE_COLUMNS)))
        for row in values:
            rows.append(list(np.round(row, 3)) + [crop])

    df = pd.DataFrame(rows, columns=FEATURE_COLUMNS + ['label'])
    return df.iloc[rng.permutation(len(df))].reset_index(drop=True)


@pytest.fixture
def centroids():
    return {crop: list(values) for crop, values in CENTROIDS.items()}


@pytest.fixture
def crop_frame():
    return make_crop_frame()


@pytest.fixture
def crop_csv(tmp_path, crop_frame):
    path = tmp_path / "crops.csv"
    crop_frame.to_csv(path, index=False)
    return path


@pytest.fixture
def crop_dataset(crop_csv):
    return parse_dataset(crop_csv)


@pytest.fixture
def small_config():
    return {'training': {'test_split': 0.2, 'random_seed': 42, 'n_estimators': 25, 'max_depth': 6, 'n_jobs': 1}}


@pytest.fixture
def trained_result(crop_dataset, small_config):
    return run_training(crop_dataset, small_config)


@pytest.fixture
def store(tmp_path):
    return ModelStore(tmp_path / "models")
