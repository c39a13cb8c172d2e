"""
Prediction Module
=================

Serves crop recommendations from the persisted model.

Features:
    - Single prediction with vote-share confidence
    - Ranked recommendations from per-crop vote shares
    - Batch prediction with per-row error reporting
    - Export of batch predictions to CSV
"""

import math
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Dict, Any, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from .data_loader import COLUMN_ALIASES, FEATURE_COLUMNS, read_raw_table
from .exceptions import CropPipelineError, InvalidInputError, ModelNotTrainedError
from .storage import ModelStore, RestoredModel

logger = logging.getLogger(__name__)


@dataclass
class PredictionResult:
    """
    A single recommendation.

    confidence is the share of trees that voted for the crop, in [0, 1].
    """
    crop: str
    confidence: float
    probabilities: Dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'crop': self.crop,
            'confidence': self.confidence,
            'probabilities': dict(self.probabilities),
        }


@dataclass
class BatchPredictionResult:
    """Outcome of a batch; errors hold {'row': 1-indexed row, 'message': str}."""
    predictions: List[PredictionResult]
    success_count: int
    error_count: int
    errors: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'predictions': [p.to_dict() for p in self.predictions],
            'success_count': self.success_count,
            'error_count': self.error_count,
            'errors': list(self.errors),
        }


def build_feature_vector(values: Mapping[str, Any]) -> np.ndarray:
    """
    Assemble one input into the canonical feature order.

    Keys are matched like CSV headers (trimmed, case-insensitive, aliases).

    Args:
        values: Mapping with the seven agronomic measurements

    Returns:
        Array of shape (1, 7)

    Raises:
        InvalidInputError: If a field is missing, non-numeric or not finite
    """
    if not isinstance(values, Mapping):
        raise InvalidInputError(f"Prediction input must be a mapping, got {type(values).__name__}")

    resolved: Dict[str, Any] = {}
    for key, value in values.items():
        stripped = str(key).strip()
        canonical = COLUMN_ALIASES.get(stripped.casefold())
        if canonical in FEATURE_COLUMNS and (canonical not in resolved or stripped == canonical):
            resolved[canonical] = value

    vector = []
    for col in FEATURE_COLUMNS:
        if col not in resolved:
            raise InvalidInputError(f"Missing field '{col}'")
        raw = resolved[col]
        if isinstance(raw, bool):
            raise InvalidInputError(f"Field '{col}' must be numeric, got {raw!r}")
        try:
            number = float(str(raw).strip()) if isinstance(raw, str) else float(raw)
        except (TypeError, ValueError):
            raise InvalidInputError(f"Field '{col}' must be numeric, got {raw!r}") from None
        except OverflowError:
            raise InvalidInputError(f"Field '{col}' is out of range for a float") from None
        if not math.isfinite(number):
            raise InvalidInputError(f"Field '{col}' must be finite, got {raw!r}")
        vector.append(number)

    return np.asarray([vector], dtype=float)


class PredictionService:
    """
    Prediction front-end over a ModelStore.

    The restored model is cached after the first request and shared by all
    callers; it is never modified. Call refresh() after a new model has
    been saved or deleted.
    """

    def __init__(self, store: ModelStore):
        self.store = store
        self._restored: Optional[RestoredModel] = None
        self._lock = threading.Lock()

    def refresh(self) -> None:
        """Drop the cached model so the next request reloads it."""
        with self._lock:
            self._restored = None

    def _get_model(self) -> RestoredModel:
        with self._lock:
            if self._restored is None:
                artifact = self.store.load()
                if artifact is None:
                    raise ModelNotTrainedError("No trained model found. Please train a model first.")
                self._restored = ModelStore.restore(artifact)
                logger.info(f"Loaded model {self._restored.metadata.get('model_version')}")
            return self._restored

    def _vote_shares(self, restored: RestoredModel, values: Mapping[str, Any]) -> Dict[str, float]:
        features = build_feature_vector(values)
        # Same scaler as training; never refit at inference time
        scaled = restored.scaler.transform(features)
        shares = restored.model.vote_shares(scaled)[0]
        crops = restored.label_encoder.inverse_transform(restored.model.classes_)
        return {crop: float(share) for crop, share in zip(crops, shares)}

    def predict_one(self, values: Mapping[str, Any]) -> PredictionResult:
        """
        Recommend a crop for one set of measurements.

        Args:
            values: Mapping with N, P, K, temperature, humidity, ph, rainfall

        Returns:
            PredictionResult with the winning crop and its vote share

        Raises:
            ModelNotTrainedError: If no model has been saved
            InvalidInputError: If the input is malformed
        """
        restored = self._get_model()
        probabilities = self._vote_shares(restored, values)

        # First maximum wins, matching CropRandomForest.predict tie-breaking
        crop = max(probabilities, key=probabilities.get)
        return PredictionResult(
            crop=crop,
            confidence=probabilities[crop],
            probabilities=probabilities
        )

    def top_recommendations(self, values: Mapping[str, Any], top_n: int = 5) -> List[PredictionResult]:
        """
        Rank crops by vote share.

        Args:
            values: Mapping with the seven measurements
            top_n: Maximum number of crops to return

        Returns:
            PredictionResults sorted by descending confidence; crops with no votes are skipped
        """
        if top_n < 1:
            raise ValueError(f"top_n must be at least 1, got {top_n}")

        restored = self._get_model()
        probabilities = self._vote_shares(restored, values)
        ranked = sorted(probabilities.items(), key=lambda item: item[1], reverse=True)

        return [
            PredictionResult(crop=crop, confidence=share, probabilities=probabilities)
            for crop, share in ranked[:top_n]
            if share > 0
        ]

    def predict_batch(self, inputs: Sequence[Mapping[str, Any]]) -> BatchPredictionResult:
        """
        Predict every input independently.

        A bad row is recorded in errors (1-indexed) and skipped; it never
        aborts the batch. A missing model is raised once, before any row.

        Args:
            inputs: Sequence of measurement mappings

        Returns:
            BatchPredictionResult
        """
        return self._predict_numbered(list(enumerate(inputs, start=1)))

    def _predict_numbered(
        self,
        numbered: List[Tuple[int, Mapping[str, Any]]],
        errors: Optional[List[Dict[str, Any]]] = None
    ) -> BatchPredictionResult:
        self._get_model()

        predictions: List[PredictionResult] = []
        errors = list(errors or [])
        total = len(numbered) + len(errors)

        for row, values in numbered:
            try:
                predictions.append(self.predict_one(values))
            except CropPipelineError as e:
                errors.append({'row': row, 'message': str(e)})

        errors.sort(key=lambda error: error['row'])
        if errors:
            logger.warning(f"Batch prediction: {len(errors)} of {total} rows failed")
        logger.info(f"Batch prediction: {len(predictions)} rows predicted")

        return BatchPredictionResult(
            predictions=predictions,
            success_count=len(predictions),
            error_count=len(errors),
            errors=errors
        )

    def predict_csv(self, file_path: Union[str, Path]) -> BatchPredictionResult:
        """
        Run a batch prediction over a CSV file with a header row.

        Cells are read as raw text so malformed values, and rows with more
        fields than the header, are reported per row (1-indexed data rows).
        """
        file_path = Path(file_path)
        if not file_path.exists():
            raise FileNotFoundError(f"Input file not found: {file_path}")

        header, body, overlong_rows = read_raw_table(file_path)
        numbered = [
            (int(row), dict(zip(header, cells)))
            for row, *cells in body.itertuples(index=True, name=None)
        ]
        errors = [
            {'row': row, 'message': f"Row has more fields than the header ({len(header)} columns)"}
            for row in overlong_rows
        ]

        logger.info(f"Loaded {len(numbered) + len(errors)} rows for batch prediction from {file_path}")
        return self._predict_numbered(numbered, errors)


def export_predictions(
    batch: BatchPredictionResult,
    output_path: str,
    include_timestamp: bool = True
) -> str:
    """
    Export successful batch predictions to CSV.

    Args:
        batch: Result of predict_batch
        output_path: Directory to save the file
        include_timestamp: Whether to add timestamp to filename

    Returns:
        Path to the saved file
    """
    output_path = Path(output_path)
    output_path.mkdir(parents=True, exist_ok=True)

    df = pd.DataFrame(
        [{'crop': p.crop, 'confidence': p.confidence} for p in batch.predictions],
        columns=['crop', 'confidence']
    )

    if include_timestamp:
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        filename = f"crop_predictions_{timestamp}.csv"
    else:
        filename = "crop_predictions.csv"

    filepath = output_path / filename
    df.to_csv(filepath, index=False)

    logger.info(f"Predictions exported to {filepath}")
    return str(filepath)


def print_prediction_result(result: PredictionResult, top_n: int = 5) -> None:
    """
    Print a single recommendation with its runner-up crops.

    Args:
        result: PredictionResult from predict_one
        top_n: Number of crops to list
    """
    print("\n" + "=" * 50)
    print("CROP RECOMMENDATION")
    print("=" * 50)
    print(f"Recommended crop: {result.crop}")
    print(f"Confidence (tree vote share): {result.confidence * 100:.1f}%")

    ranked = sorted(result.probabilities.items(), key=lambda item: item[1], reverse=True)
    print(f"\n{'Crop':<20} {'Vote share':<12}")
    print("-" * 50)
    for crop, share in ranked[:top_n]:
        print(f"{crop:<20} {share * 100:<12.1f}")
    print("=" * 50 + "\n")


def print_batch_results(batch: BatchPredictionResult) -> None:
    """
    Print a batch summary with row errors.

    Args:
        batch: Result of predict_batch
    """
    print("\n" + "=" * 50)
    print("BATCH PREDICTION RESULTS")
    print("=" * 50)
    print(f"Predicted: {batch.success_count}")
    print(f"Failed: {batch.error_count}")

    if batch.errors:
        print("\nErrors:")
        print("-" * 50)
        for error in batch.errors:
            print(f"  row {error['row']}: {error['message']}")
    print("=" * 50 + "\n")
