"""Utility functions for configuration, logging, errors and serialization."""

from tabwindow.utils.config_manager import ConfigManager, load_default_config
from tabwindow.utils.error_handling import (
    DatasetReleasedError,
    EmptyDatasetError,
    InsufficientDataError,
    InvalidParameterError,
    ParseError,
    PipelineError,
    ShapeMismatchError,
)
from tabwindow.utils.logging_config import setup_logging

__all__ = [
    "ConfigManager",
    "load_default_config",
    "DatasetReleasedError",
    "EmptyDatasetError",
    "InsufficientDataError",
    "InvalidParameterError",
    "ParseError",
    "PipelineError",
    "ShapeMismatchError",
    "setup_logging",
]
