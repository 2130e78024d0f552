"""Utility modules for CvSmith."""

from cvsmith.utils.errors import (
    CvSmithError,
    DataValidationError,
    FitFailureError,
    FoldFailureError,
    ParameterError,
    ScoreFailureError,
    ValidationError,
    WorkerFailureError,
    format_fold_failure,
    format_parameter_error,
    format_validation_error,
    raise_parameter_error,
    raise_validation_error,
)

__all__ = [
    "CvSmithError",
    "ValidationError",
    "DataValidationError",
    "ParameterError",
    "FoldFailureError",
    "FitFailureError",
    "ScoreFailureError",
    "WorkerFailureError",
    "format_validation_error",
    "format_parameter_error",
    "format_fold_failure",
    "raise_validation_error",
    "raise_parameter_error",
]
