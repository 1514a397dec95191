"""Error kinds raised by the dataset and metrics pipeline."""

import logging
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class PipelineError(Exception):
    """
    Base class for dataset-level failures.

    Row-level problems (malformed lines, missing values) never raise; they
    are dropped or defaulted where they occur. Only conditions that leave
    the caller without a usable result end up here.

    Attributes:
        message: Human readable description
        details: Diagnostic context (counts, expected vs. actual shapes)
    """

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details: Dict[str, Any] = dict(details or {})

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for structured logging."""
        return {
            "error_type": type(self).__name__,
            "message": self.message,
            "details": self.details,
        }


class ParseError(PipelineError):
    """Input text could not be decoded or lacks the required header."""


class EmptyDatasetError(PipelineError):
    """No valid record survived ingestion."""


class InsufficientDataError(PipelineError):
    """Too few time steps to form a single window."""


class InvalidParameterError(PipelineError, ValueError):
    """A split fraction, window length, horizon or class count is out of range."""


class ShapeMismatchError(PipelineError, ValueError):
    """A prediction array does not match the label array it is compared with."""


class DatasetReleasedError(PipelineError):
    """A dataset was accessed after its storage was released."""


def check_ratio(name: str, value: float) -> float:
    """
    Validate a fraction that must lie strictly between 0 and 1.

    Raises:
        InvalidParameterError: If value is outside (0, 1)
    """
    if not 0.0 < value < 1.0:
        raise InvalidParameterError(
            f"{name} must be in (0, 1), got {value}",
            details={"parameter": name, "value": value},
        )
    return float(value)


def check_positive(name: str, value: int) -> int:
    """
    Validate a count that must be a positive integer.

    Raises:
        InvalidParameterError: If value is not an integer >= 1
    """
    if isinstance(value, bool) or int(value) != value or value < 1:
        raise InvalidParameterError(
            f"{name} must be a positive integer, got {value!r}",
            details={"parameter": name, "value": value},
        )
    return int(value)
