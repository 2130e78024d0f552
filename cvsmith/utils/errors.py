"""Standardized errors for CvSmith.

Provides the error taxonomy of the resampling engine and consistent
message formatting. All errors survive pickling so that they can cross
worker process boundaries unchanged.
"""

from typing import Any, Dict, List, Optional


class CvSmithError(Exception):
    """Base exception for CvSmith errors."""

    def __init__(
        self,
        message: str,
        suggestion: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        """Initialize CvSmith error.

        Args:
            message: Primary error message.
            suggestion: Optional suggestion for fixing the error.
            details: Optional dictionary with additional error details.
        """
        super().__init__(message)
        self.message = message
        self.suggestion = suggestion
        self.details = details or {}

    def __str__(self) -> str:
        """Format error message with suggestion if available."""
        if self.suggestion:
            return f"{self.message}\n\nSuggestion: {self.suggestion}"
        return self.message

    def __reduce__(self):
        return (self.__class__, (self.message, self.suggestion, self.details))


class ValidationError(CvSmithError):
    """Error raised before dispatch when inputs or configuration are invalid."""

    pass


class DataValidationError(ValidationError):
    """Error raised when data or resampling plan validation fails."""

    pass


class ParameterError(ValidationError):
    """Error raised when parameters are invalid."""

    pass


class FoldFailureError(CvSmithError):
    """Error raised by a fold in strict failure mode."""

    pass


class FitFailureError(FoldFailureError):
    """The model-fitting callback raised."""

    pass


class ScoreFailureError(FoldFailureError):
    """The prediction or error-metric callback raised."""

    pass


class WorkerFailureError(CvSmithError):
    """A parallel backend failed; the whole batch is aborted."""

    pass


def format_validation_error(
    message: str,
    expected: Optional[str] = None,
    received: Optional[str] = None,
    suggestion: Optional[str] = None,
) -> str:
    """Format a standardized validation error message.

    Args:
        message: Primary error message.
        expected: What was expected (optional).
        received: What was received (optional).
        suggestion: How to fix the error (optional).

    Returns:
        Formatted error message string.
    """
    parts = [message]
    if expected and received:
        parts.append(f"Expected: {expected}, Received: {received}")
    elif expected:
        parts.append(f"Expected: {expected}")
    elif received:
        parts.append(f"Received: {received}")
    if suggestion:
        parts.append(f"Suggestion: {suggestion}")
    return "\n".join(parts)


def format_parameter_error(
    parameter_name: str,
    value: Any,
    valid_values: Optional[List[str]] = None,
    constraint: Optional[str] = None,
    suggestion: Optional[str] = None,
) -> str:
    """Format a standardized parameter error message.

    Args:
        parameter_name: Name of the invalid parameter.
        value: Invalid value that was provided.
        valid_values: List of valid values (optional).
        constraint: Constraint that was violated (optional).
        suggestion: How to fix the error (optional).

    Returns:
        Formatted error message string.
    """
    parts = [f"Invalid value for parameter '{parameter_name}': {value!r}"]
    if valid_values:
        parts.append(f"Valid values: {', '.join(map(str, valid_values))}")
    if constraint:
        parts.append(f"Constraint: {constraint}")
    if suggestion:
        parts.append(f"Suggestion: {suggestion}")
    return "\n".join(parts)


def format_fold_failure(
    stage: str,
    location: str,
    error: BaseException,
) -> str:
    """Format the message of a failed fold step.

    Args:
        stage: Step that failed ('fit', 'predict', 'score').
        location: Human-readable fold location, e.g. "repetition 'r1', fold 2".
        error: The exception raised by the user callback.

    Returns:
        Formatted error message string.
    """
    return f"{stage} failed in {location}: {type(error).__name__}: {error}"


def raise_validation_error(
    message: str,
    expected: Optional[str] = None,
    received: Optional[str] = None,
    suggestion: Optional[str] = None,
) -> None:
    """Raise a standardized validation error.

    Args:
        message: Primary error message.
        expected: What was expected (optional).
        received: What was received (optional).
        suggestion: How to fix the error (optional).

    Raises:
        DataValidationError: Always raises this exception.
    """
    error_msg = format_validation_error(message, expected, received, suggestion)
    raise DataValidationError(error_msg, suggestion=suggestion)


def raise_parameter_error(
    parameter_name: str,
    value: Any,
    valid_values: Optional[List[str]] = None,
    constraint: Optional[str] = None,
    suggestion: Optional[str] = None,
) -> None:
    """Raise a standardized parameter error.

    Args:
        parameter_name: Name of the invalid parameter.
        value: Invalid value that was provided.
        valid_values: List of valid values (optional).
        constraint: Constraint that was violated (optional).
        suggestion: How to fix the error (optional).

    Raises:
        ParameterError: Always raises this exception.
    """
    error_msg = format_parameter_error(
        parameter_name, value, valid_values, constraint, suggestion
    )
    raise ParameterError(
        error_msg,
        suggestion=suggestion,
        details={"parameter": parameter_name},
    )
