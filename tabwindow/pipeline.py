"""End-to-end dataset construction: CSV text in, trainer-ready arrays out."""

from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence, Tuple, Union
import logging

import numpy as np

from tabwindow.data.loaders import DataLoader
from tabwindow.data.preprocessors import MinMaxNormalizer
from tabwindow.data.splitters import SeriesAligner, TimeSeriesSplitter
from tabwindow.data.structs import (
    AlignedSeries,
    DatasetSplit,
    DigitDataset,
    NormalizationStats,
    WindowedDataset,
)
from tabwindow.data.windows import WindowBuilder, build_digit_dataset
from tabwindow.evaluation.metrics import MetricsCalculator, MetricsResult
from tabwindow.utils.config_manager import ConfigManager
from tabwindow.utils.error_handling import InvalidParameterError, check_positive, check_ratio

logger = logging.getLogger(__name__)

FIT_SCOPES = ("full", "train")


@dataclass(frozen=True)
class TimeSeriesLoad:
    """
    Everything one load of a price table produces.

    Attributes:
        series: Normalized aligned series (canonical orderings live here)
        stats: Scaling ranges used to normalize it
        dataset: All windows, in date order
        split: Train/test arrays for the external trainer
        fit_scope: "full" or "train", the dates the stats were fitted on
    """
    series: AlignedSeries
    stats: NormalizationStats
    dataset: WindowedDataset
    split: DatasetSplit
    fit_scope: str = "full"

    @property
    def entities(self) -> Tuple[str, ...]:
        return self.dataset.entities

    def summary(self) -> Dict[str, Any]:
        return {
            "entities": list(self.entities),
            "sample_count": len(self.dataset),
            "train_size": self.split.train_size,
            "test_size": self.split.test_size,
            "fit_scope": self.fit_scope,
        }

    def release(self) -> None:
        """Drop the window and split arrays."""
        self.dataset.release()
        self.split.release()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()


def load_timeseries_dataset(
    content: Union[str, bytes],
    date_column: str = "Date",
    entity_column: str = "Symbol",
    feature_fields: Sequence[str] = ("Open", "Close"),
    comparison_field: str = "Close",
    sequence_length: int = 12,
    horizons: int = 3,
    train_ratio: float = 0.8,
    fit_scope: str = "full",
) -> TimeSeriesLoad:
    """
    Parse, align, normalize, window and split a multi-entity price table.

    Args:
        content: CSV text with a ``Date,Symbol,...`` header
        date_column: Name of the date column
        entity_column: Name of the entity column
        feature_fields: Per-entity input fields, in feature order
        comparison_field: Field compared across horizons for the labels
        sequence_length: Window length T
        horizons: Number of future steps H
        train_ratio: Leading fraction of samples used for training
        fit_scope: "full" fits scaling on every date; "train" fits on the
            dates up to and including the last training anchor

    Returns:
        TimeSeriesLoad

    Raises:
        ParseError, EmptyDatasetError, InsufficientDataError,
        InvalidParameterError
    """
    if fit_scope not in FIT_SCOPES:
        raise InvalidParameterError(
            f"fit_scope must be one of {FIT_SCOPES}, got {fit_scope!r}",
            details={"fit_scope": fit_scope},
        )
    splitter = TimeSeriesSplitter()
    builder = WindowBuilder(
        sequence_length=sequence_length,
        horizons=horizons,
        fields=feature_fields,
        comparison_field=comparison_field,
    )
    check_ratio("train_ratio", train_ratio)

    records = DataLoader().parse_timeseries_csv(
        content, date_column=date_column, entity_column=entity_column
    )
    value_fields = list(dict.fromkeys(list(feature_fields) + [comparison_field]))
    schema = {date_column: "object", entity_column: "object"}
    schema.update({name: "float64" for name in value_fields})
    validation = DataLoader().validate_schema(records, schema)
    if not validation.is_valid:
        raise InvalidParameterError(
            f"Records do not match the requested fields: {validation.errors}",
            details=validation.to_dict(),
        )
    raw = SeriesAligner().pivot(
        records, date_column=date_column, entity_column=entity_column, fields=value_fields
    )

    fit_dates = None
    n_samples = builder.sample_count(len(raw.dates))
    if fit_scope == "train" and n_samples > 0:
        n_train = splitter.train_test_split(n_samples, train_ratio).metadata["train_samples"]
        fit_dates = raw.dates[: builder.last_anchor_index(n_train) + 1]
        logger.info(f"Fitting normalization on {len(fit_dates)} of {len(raw.dates)} dates")
    elif fit_scope == "full":
        logger.debug("Fitting normalization on the full series, including the test range")

    series, stats = MinMaxNormalizer().fit_transform(raw, dates=fit_dates)
    dataset = builder.build(series)
    split = splitter.split_dataset(dataset, train_ratio)

    return TimeSeriesLoad(
        series=series,
        stats=stats,
        dataset=dataset,
        split=split,
        fit_scope=fit_scope,
    )


def load_digit_dataset(
    content: Union[str, bytes],
    pixel_count: int = 784,
    num_classes: int = 10,
    image_shape: Sequence[int] = (28, 28, 1),
    max_intensity: float = 255.0,
) -> DigitDataset:
    """
    Parse ``label,p0..`` rows into scaled images and labels.

    Raises:
        ParseError, EmptyDatasetError, InvalidParameterError
    """
    check_positive("pixel_count", pixel_count)
    records = DataLoader().parse_digit_csv(
        content,
        pixel_count=pixel_count,
        num_classes=num_classes,
        max_intensity=max_intensity,
    )
    return build_digit_dataset(
        records,
        num_classes=num_classes,
        image_shape=tuple(image_shape),
        max_intensity=max_intensity,
    )


def split_digit_dataset(
    dataset: DigitDataset,
    validation_ratio: float = 0.1,
) -> DatasetSplit:
    """Hold out the trailing validation fraction, with one-hot targets."""
    splitter = TimeSeriesSplitter()
    split = splitter.train_validation_split(len(dataset), validation_ratio)
    return splitter.apply_split(dataset, split, one_hot=True)


def sample_preview_batch(
    n_samples: int,
    k: int = 5,
    seed: Optional[int] = None,
) -> np.ndarray:
    """
    Pick up to k distinct sample indices at random, for previewing.

    The same seed always yields the same indices.
    """
    check_positive("k", k)
    rng = np.random.default_rng(seed)
    return rng.permutation(n_samples)[:k]


def load_timeseries_from_config(
    content: Union[str, bytes],
    config: Optional[Dict[str, Any]] = None,
) -> TimeSeriesLoad:
    """load_timeseries_dataset with parameters from a pipeline config."""
    manager = ConfigManager()
    config = config if config is not None else manager.load_default()
    get = manager.get_value
    return load_timeseries_dataset(
        content,
        date_column=get(config, "timeseries.date_column", "Date"),
        entity_column=get(config, "timeseries.entity_column", "Symbol"),
        feature_fields=get(config, "timeseries.feature_fields", ["Open", "Close"]),
        comparison_field=get(config, "timeseries.comparison_field", "Close"),
        sequence_length=get(config, "timeseries.sequence_length", 12),
        horizons=get(config, "timeseries.horizons", 3),
        train_ratio=get(config, "timeseries.train_ratio", 0.8),
        fit_scope=get(config, "timeseries.normalization.fit_scope", "full"),
    )


def load_digits_from_config(
    content: Union[str, bytes],
    config: Optional[Dict[str, Any]] = None,
) -> DigitDataset:
    """load_digit_dataset with parameters from a pipeline config."""
    manager = ConfigManager()
    config = config if config is not None else manager.load_default()
    get = manager.get_value
    return load_digit_dataset(
        content,
        pixel_count=get(config, "digits.pixel_count", 784),
        num_classes=get(config, "digits.num_classes", 10),
        image_shape=get(config, "digits.image_shape", [28, 28, 1]),
        max_intensity=get(config, "digits.max_intensity", 255.0),
    )


def evaluate_digit_predictions(
    y_true: np.ndarray,
    y_pred: np.ndarray,
    num_classes: int = 10,
) -> MetricsResult:
    """Accuracy, confusion matrix and per-class accuracy for the classifier."""
    return MetricsCalculator().classification_report(y_true, y_pred, num_classes)


def evaluate_series_predictions(
    load: TimeSeriesLoad,
    y_pred: np.ndarray,
    threshold: float = 0.5,
) -> MetricsResult:
    """Score predictions for the held-out windows of a TimeSeriesLoad."""
    return MetricsCalculator(threshold=threshold).multi_label_report(
        load.split.y_test, y_pred, load.entities, load.dataset.horizons
    )


def split_digits_from_config(
    dataset: DigitDataset,
    config: Optional[Dict[str, Any]] = None,
) -> DatasetSplit:
    """split_digit_dataset with the validation ratio from a pipeline config."""
    manager = ConfigManager()
    config = config if config is not None else manager.load_default()
    return split_digit_dataset(
        dataset,
        validation_ratio=manager.get_value(config, "digits.validation_ratio", 0.1),
    )


def preview_batch_from_config(
    n_samples: int,
    config: Optional[Dict[str, Any]] = None,
    seed: Optional[int] = None,
) -> np.ndarray:
    """sample_preview_batch sized by ``digits.preview_size``."""
    manager = ConfigManager()
    config = config if config is not None else manager.load_default()
    return sample_preview_batch(
        n_samples,
        k=manager.get_value(config, "digits.preview_size", 5),
        seed=seed,
    )


def evaluate_series_from_config(
    load: TimeSeriesLoad,
    y_pred: np.ndarray,
    config: Optional[Dict[str, Any]] = None,
) -> MetricsResult:
    """evaluate_series_predictions thresholded at ``metrics.threshold``."""
    manager = ConfigManager()
    config = config if config is not None else manager.load_default()
    return evaluate_series_predictions(
        load,
        y_pred,
        threshold=manager.get_value(config, "metrics.threshold", 0.5),
    )
