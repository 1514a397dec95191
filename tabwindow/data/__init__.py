"""Data ingestion, alignment, scaling, windowing and splitting utilities."""

from .loaders import DataLoader, ValidationResult, read_text
from .preprocessors import MinMaxNormalizer, scale_pixels
from .splitters import SeriesAligner, TimeSeriesSplitter, SplitIndices
from .structs import (
    AlignedSeries,
    DatasetSplit,
    DigitDataset,
    FieldRange,
    NormalizationStats,
    WindowedDataset,
)
from .windows import WindowBuilder, build_digit_dataset

__all__ = [
    "DataLoader",
    "ValidationResult",
    "read_text",
    "MinMaxNormalizer",
    "scale_pixels",
    "SeriesAligner",
    "TimeSeriesSplitter",
    "SplitIndices",
    "AlignedSeries",
    "DatasetSplit",
    "DigitDataset",
    "FieldRange",
    "NormalizationStats",
    "WindowedDataset",
    "WindowBuilder",
    "build_digit_dataset",
]
