"""
Data Loader Module
==================

Handles CSV ingestion, schema validation, and basic data quality checks
for the agronomic crop dataset.

Functions:
    - load_config: Load YAML configuration file
    - read_raw_table: Read CSV cells as text, tolerating ragged rows
    - resolve_columns: Map a CSV header onto the canonical columns
    - parse_dataset: Parse and validate rows into a Dataset
    - load_dataset: Load a CSV file from disk
    - validate_dataset: Report data quality warnings
    - get_data_summary: Generate basic statistics
"""

import io
import math
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Any, List, Optional, Tuple, Union, IO

import pandas as pd
import numpy as np
import yaml

from .exceptions import SchemaError, EmptyDatasetError

logger = logging.getLogger(__name__)

# Canonical feature order; identical for training, scaling and inference
FEATURE_COLUMNS: List[str] = ["N", "P", "K", "temperature", "humidity", "ph", "rainfall"]
TARGET_COLUMN = "label"

MISSING_SENTINELS = {"nan", "null"}

TOO_MANY_FIELDS = "too many fields"
_OVERLONG_ROW = "\x00overlong row"

COLUMN_ALIASES: Dict[str, str] = {
    "n": "N",
    "nitrogen": "N",
    "p": "P",
    "phosphorus": "P",
    "k": "K",
    "potassium": "K",
    "temperature": "temperature",
    "temp": "temperature",
    "humidity": "humidity",
    "ph": "ph",
    "rainfall": "rainfall",
    "rain": "rainfall",
    "label": "label",
    "crop": "label",
}


def load_config(config_path: str = "config/config.yaml") -> Dict[str, Any]:
    """
    Load configuration from YAML file.

    Args:
        config_path: Path to the configuration file

    Returns:
        Dictionary containing configuration parameters

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If config file is malformed
    """
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path, 'r') as f:
        config = yaml.safe_load(f) or {}

    logger.info(f"Loaded configuration from {config_path}")
    return config


@dataclass(frozen=True)
class RowIssue:
    """A single reason a data row was discarded (row numbers are 1-indexed)."""
    row: int
    column: str
    reason: str
    value: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {'row': self.row, 'column': self.column, 'reason': self.reason, 'value': self.value}


@dataclass(frozen=True)
class DatasetStats:
    """Quality statistics computed while loading a dataset."""
    total_rows: int
    valid_rows: int
    invalid_rows: int
    missing_values: Dict[str, int]
    label_distribution: Dict[str, int]
    feature_stats: Dict[str, Dict[str, float]]
    discarded_rows: Tuple[RowIssue, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            'total_rows': self.total_rows,
            'valid_rows': self.valid_rows,
            'invalid_rows': self.invalid_rows,
            'missing_values': dict(self.missing_values),
            'label_distribution': dict(self.label_distribution),
            'feature_stats': {k: dict(v) for k, v in self.feature_stats.items()},
            'discarded_rows': [issue.to_dict() for issue in self.discarded_rows],
        }


@dataclass(frozen=True, eq=False)
class Dataset:
    """
    Validated samples in canonical feature order.

    The feature matrix is marked read-only; a Dataset is never mutated
    after the loader produces it.
    """
    features: np.ndarray
    labels: Tuple[str, ...]
    stats: DatasetStats
    feature_names: Tuple[str, ...] = field(default_factory=lambda: tuple(FEATURE_COLUMNS))

    def __len__(self) -> int:
        return len(self.labels)

    @property
    def n_features(self) -> int:
        return self.features.shape[1]

    def to_frame(self) -> pd.DataFrame:
        """Return the samples as a DataFrame with a label column."""
        df = pd.DataFrame(self.features, columns=list(self.feature_names))
        df[TARGET_COLUMN] = list(self.labels)
        return df


def resolve_columns(header: List[str]) -> Dict[str, str]:
    """
    Map canonical column names onto the actual header names.

    Matching trims whitespace, ignores case and accepts common aliases
    ("pH", "Nitrogen", "crop"). An exact canonical name wins over an alias.

    Args:
        header: Column names as they appear in the file

    Returns:
        Dictionary of canonical name -> header name

    Raises:
        SchemaError: If any required column cannot be found
    """
    mapping: Dict[str, str] = {}
    for name in header:
        stripped = str(name).strip()
        canonical = COLUMN_ALIASES.get(stripped.casefold())
        if canonical is None:
            continue
        if canonical not in mapping or stripped == canonical:
            mapping[canonical] = name

    required = FEATURE_COLUMNS + [TARGET_COLUMN]
    missing = [col for col in required if col not in mapping]
    if missing:
        raise SchemaError(
            f"Missing required columns: {missing}. Found: {[str(h).strip() for h in header]}",
            missing_columns=missing
        )

    return mapping


def _cell_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and math.isnan(value):
        return ""
    return str(value).strip()


def _parse_feature(text: str) -> Tuple[Optional[float], str]:
    """Return (value, reason); value is None when the cell counts as missing."""
    if not text:
        return None, "empty"
    if text.casefold() in MISSING_SENTINELS:
        return None, "missing sentinel"
    try:
        value = float(text)
    except ValueError:
        return None, "not a number"
    if not math.isfinite(value):
        return None, "not finite"
    return value, ""


def _feature_statistics(features: np.ndarray) -> Dict[str, Dict[str, float]]:
    stats = {}
    for idx, col in enumerate(FEATURE_COLUMNS):
        values = features[:, idx]
        stats[col] = {
            'min': float(values.min()),
            'max': float(values.max()),
            'mean': float(values.mean()),
            # Population std (divide by N)
            'std': float(values.std(ddof=0)),
        }
    return stats


def _mark_overlong_row(fields: List[str]) -> List[str]:
    # Replaces the row in place so later rows keep their numbers
    return [_OVERLONG_ROW]


def read_raw_table(source: Union[str, Path, IO]) -> Tuple[List[str], pd.DataFrame, List[int]]:
    """
    Read a CSV with a header row as raw text cells.

    The header line fixes the column count. Rows with fewer fields are
    padded with None; rows with more fields are dropped from the frame
    and reported by number instead of failing the whole read.

    Args:
        source: Path or file-like object

    Returns:
        Tuple of (stripped header names, DataFrame of cells with positional
        columns indexed by 1-indexed row number, numbers of overlong rows)

    Raises:
        SchemaError: If the source is empty or cannot be parsed
    """
    try:
        raw = pd.read_csv(
            source,
            header=None,
            dtype=object,
            keep_default_na=False,
            skip_blank_lines=True,
            engine='python',
            on_bad_lines=_mark_overlong_row,
        )
    except pd.errors.EmptyDataError as exc:
        raise SchemaError("CSV source is empty (no header row)") from exc
    except (pd.errors.ParserError, UnicodeDecodeError) as exc:
        raise SchemaError(f"Invalid CSV file: {exc}") from exc

    header = [_cell_text(name) for name in raw.iloc[0]]
    body = raw.iloc[1:].copy()
    body.index = pd.RangeIndex(1, len(body) + 1)

    overlong = (body.iloc[:, 0] == _OVERLONG_ROW).to_numpy(dtype=bool)
    overlong_rows = [int(row) for row in body.index[overlong]]
    if overlong_rows:
        logger.warning(f"{len(overlong_rows)} rows have more fields than the header: {overlong_rows[:10]}")

    return header, body[~overlong], overlong_rows


def parse_dataset(source: Union[str, Path, IO]) -> Dataset:
    """
    Parse and validate a CSV source into a Dataset.

    Every feature cell must be non-empty, not a missing sentinel and a
    finite number; the label must be non-empty. A row failing any check is
    discarded as a whole (no imputation) and each failing field is counted
    against its column. A row with more fields than the header is discarded
    with column "*".

    Args:
        source: Path or file-like object with a header row

    Returns:
        Validated Dataset

    Raises:
        SchemaError: If the header lacks required columns or the CSV is unreadable
        EmptyDatasetError: If no valid rows remain
    """
    header, body, overlong_rows = read_raw_table(source)
    mapping = resolve_columns(header)

    positions = [header.index(mapping[col]) for col in FEATURE_COLUMNS + [TARGET_COLUMN]]

    features: List[List[float]] = []
    labels: List[str] = []
    issues: List[RowIssue] = [RowIssue(row, '*', TOO_MANY_FIELDS) for row in overlong_rows]
    missing_counts = {col: 0 for col in FEATURE_COLUMNS}
    label_counts: Dict[str, int] = {}
    invalid_rows = len(overlong_rows)

    raw = body.iloc[:, positions]
    for row_number, *cells in raw.itertuples(index=True, name=None):
        row_number = int(row_number)
        row_values: List[float] = []
        is_valid = True

        for col, cell in zip(FEATURE_COLUMNS, cells[:-1]):
            text = _cell_text(cell)
            value, reason = _parse_feature(text)
            if value is None:
                missing_counts[col] += 1
                issues.append(RowIssue(row_number, col, reason, text))
                is_valid = False
            else:
                row_values.append(value)

        label = _cell_text(cells[-1])
        if not label:
            issues.append(RowIssue(row_number, TARGET_COLUMN, "empty label"))
            is_valid = False

        if not is_valid:
            invalid_rows += 1
            continue

        features.append(row_values)
        labels.append(label)
        label_counts[label] = label_counts.get(label, 0) + 1

    total_rows = len(body) + len(overlong_rows)
    issues.sort(key=lambda issue: issue.row)
    if not features:
        stats = DatasetStats(
            total_rows=total_rows,
            valid_rows=0,
            invalid_rows=invalid_rows,
            missing_values=missing_counts,
            label_distribution={},
            feature_stats={},
            discarded_rows=tuple(issues),
        )
        raise EmptyDatasetError(
            f"No valid rows found in dataset ({total_rows} rows read)",
            stats=stats,
            row_issues=issues
        )

    matrix = np.asarray(features, dtype=float)
    matrix.setflags(write=False)

    stats = DatasetStats(
        total_rows=total_rows,
        valid_rows=len(features),
        invalid_rows=invalid_rows,
        missing_values=missing_counts,
        label_distribution=label_counts,
        feature_stats=_feature_statistics(matrix),
        discarded_rows=tuple(issues),
    )

    logger.info(
        f"Validated dataset: {stats.valid_rows} valid of {stats.total_rows} rows "
        f"({stats.invalid_rows} discarded), {len(label_counts)} labels"
    )
    if invalid_rows:
        missing = {k: v for k, v in missing_counts.items() if v}
        logger.warning(f"Discarded {invalid_rows} rows; missing values per column: {missing}")

    return Dataset(features=matrix, labels=tuple(labels), stats=stats)


def parse_csv_text(text: str) -> Dataset:
    """Parse CSV content held in memory (e.g. an uploaded file)."""
    return parse_dataset(io.StringIO(text))


def load_dataset(file_path: Union[str, Path]) -> Dataset:
    """
    Load the crop dataset from a CSV file.

    Args:
        file_path: Path to the CSV file

    Returns:
        Validated Dataset

    Raises:
        FileNotFoundError: If data file doesn't exist
        SchemaError: If data doesn't meet the schema
    """
    file_path = Path(file_path)

    if not file_path.exists():
        raise FileNotFoundError(f"Data file not found: {file_path}")

    logger.info(f"Loading dataset from {file_path}")
    with open(file_path, 'r', encoding='utf-8') as f:
        return parse_dataset(f)


def validate_dataset(
    dataset: Dataset,
    strict: bool = False,
    imbalance_ratio: float = 3.0
) -> Tuple[bool, Dict[str, Any]]:
    """
    Validate data quality of a loaded dataset.

    Checks:
        - Rows discarded during loading
        - Duplicate samples
        - Label imbalance (largest class vs smallest class)
        - Potential outliers (>4 std from the mean)

    Args:
        dataset: Dataset to validate
        strict: If True, raise errors on validation failure
        imbalance_ratio: Largest/smallest class ratio that counts as imbalanced

    Returns:
        Tuple of (is_valid, validation_report)
    """
    stats = dataset.stats
    report = {
        "total_rows": stats.total_rows,
        "valid_rows": stats.valid_rows,
        "n_labels": len(stats.label_distribution),
        "issues": []
    }

    # Check 1: Discarded rows
    if stats.invalid_rows > 0:
        issue = f"Discarded rows: {stats.invalid_rows} of {stats.total_rows}"
        report["issues"].append(issue)
        report["missing_by_column"] = {k: v for k, v in stats.missing_values.items() if v}
        logger.warning(issue)

    # Check 2: Duplicate samples
    duplicates = int(dataset.to_frame().duplicated().sum())
    if duplicates > 0:
        issue = f"Duplicate rows found: {duplicates}"
        report["issues"].append(issue)
        logger.warning(issue)

    # Check 3: Label balance
    counts = list(stats.label_distribution.values())
    if len(counts) > 1 and max(counts) / min(counts) > imbalance_ratio:
        issue = f"Imbalanced labels: largest class {max(counts)}, smallest class {min(counts)}"
        report["issues"].append(issue)
        logger.warning(issue)

    # Check 4: Potential outliers
    for idx, col in enumerate(dataset.feature_names):
        col_stats = stats.feature_stats[col]
        if col_stats['std'] == 0:
            continue
        deviation = np.abs(dataset.features[:, idx] - col_stats['mean'])
        outliers = int((deviation > 4 * col_stats['std']).sum())
        if outliers > 0:
            issue = f"Column '{col}' has {outliers} potential outliers (>4 std)"
            report["issues"].append(issue)
            logger.warning(issue)

    is_valid = len(report["issues"]) == 0
    report["is_valid"] = is_valid

    if strict and not is_valid:
        raise SchemaError(f"Data validation failed: {report['issues']}")

    return is_valid, report


def get_data_summary(dataset: Dataset) -> Dict[str, Any]:
    """
    Generate summary statistics for the dataset.

    Args:
        dataset: Dataset to summarize

    Returns:
        Dictionary containing summary statistics
    """
    summary = dataset.stats.to_dict()
    summary["shape"] = tuple(dataset.features.shape)
    summary["feature_names"] = list(dataset.feature_names)
    summary["n_labels"] = len(dataset.stats.label_distribution)
    return summary


def print_data_summary(dataset: Dataset) -> None:
    """
    Print a formatted summary of the dataset to console.

    Args:
        dataset: Dataset to summarize
    """
    stats = dataset.stats
    print("\n" + "=" * 60)
    print("DATASET SUMMARY")
    print("=" * 60)
    print(f"Rows: {stats.total_rows} total | {stats.valid_rows} valid | {stats.invalid_rows} discarded")
    print(f"Labels: {len(stats.label_distribution)}")

    print("\nFeature Statistics:")
    print("-" * 60)
    print(f"  {'Feature':<12} {'Min':>10} {'Max':>10} {'Mean':>10} {'Std':>10} {'Missing':>8}")
    for col in dataset.feature_names:
        s = stats.feature_stats[col]
        print(
            f"  {col:<12} {s['min']:>10.3f} {s['max']:>10.3f} "
            f"{s['mean']:>10.3f} {s['std']:>10.3f} {stats.missing_values[col]:>8}"
        )

    print("\nLabel Distribution:")
    print("-" * 60)
    for label, count in stats.label_distribution.items():
        print(f"  {label}: {count}")

    if stats.discarded_rows:
        print("\nDiscarded Rows (first 10):")
        print("-" * 60)
        for issue in stats.discarded_rows[:10]:
            print(f"  row {issue.row}: {issue.column} ({issue.reason})")
    print("=" * 60 + "\n")
