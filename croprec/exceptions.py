"""
Exception types raised by the crop recommendation pipeline.

Everything derives from CropPipelineError so callers can separate pipeline
failures from unexpected ones. ModelNotTrainedError signals the
"train first" condition and is not a ValueError.
"""

from typing import List, Optional, Sequence


class CropPipelineError(Exception):
    """Base class for all pipeline errors."""


class SchemaError(CropPipelineError, ValueError):
    """Raised when the input table does not match the expected schema."""

    def __init__(
        self,
        message: str,
        missing_columns: Optional[Sequence[str]] = None,
        row_issues: Optional[List] = None
    ):
        super().__init__(message)
        self.missing_columns = list(missing_columns or [])
        self.row_issues = list(row_issues or [])


class EmptyDatasetError(SchemaError):
    """Raised when no valid rows survive validation."""

    def __init__(self, message: str, stats=None, row_issues: Optional[List] = None):
        super().__init__(message, row_issues=row_issues)
        self.stats = stats


class UnknownLabelError(CropPipelineError, KeyError):
    """Raised when a label was not seen while fitting the encoder."""

    def __init__(self, label):
        super().__init__(f"Unknown label: {label!r}")
        self.label = label

    def __str__(self) -> str:
        return self.args[0]


class UnknownCodeError(CropPipelineError, KeyError):
    """Raised when a class code is outside the encoder's mapping."""

    def __init__(self, code):
        super().__init__(f"Unknown class code: {code!r}")
        self.code = code

    def __str__(self) -> str:
        return self.args[0]


class DimensionMismatchError(CropPipelineError, ValueError):
    """Raised when a matrix has a different column count than at fit time."""

    def __init__(self, expected: int, actual: int, component: str = "model"):
        super().__init__(
            f"{component} expected {expected} features, but got {actual}"
        )
        self.expected = expected
        self.actual = actual
        self.component = component


class ModelNotTrainedError(CropPipelineError):
    """Raised when inference is requested before a model has been trained."""


class InvalidInputError(CropPipelineError, ValueError):
    """Raised when a prediction input is missing a field or is not numeric."""


class ArtifactCorruptError(CropPipelineError):
    """Raised when a persisted artifact cannot be read or restored."""

    def __init__(self, message: str, stage: str = "load"):
        super().__init__(f"[{stage}] {message}")
        self.stage = stage


class ArtifactVersionWarning(UserWarning):
    """Issued when a stored artifact was written with another schema version."""
