"""Sliding-window samples and multi-horizon movement labels."""

from typing import Sequence, Tuple
import logging

import numpy as np
import pandas as pd

from tabwindow.data.loaders import LABEL_COLUMN
from tabwindow.data.preprocessors import scale_pixels
from tabwindow.data.structs import AlignedSeries, DigitDataset, WindowedDataset
from tabwindow.utils.error_handling import (
    InsufficientDataError,
    InvalidParameterError,
    check_positive,
)

logger = logging.getLogger(__name__)

# Value used for an input feature whose (entity, date) entry is missing
MISSING_FEATURE_VALUE = 0.0
# Label used when the anchor or future comparison value is missing
MISSING_LABEL_VALUE = 0.0


class WindowBuilder:
    """
    Slices an aligned series into fixed-length input windows and binary
    "did it go up" targets.

    For anchor index ``i`` in ``[T, D - H)``:

    * the sample holds steps ``i - T .. i - 1``; each step concatenates,
      per entity in canonical order, that entity's feature fields
    * the target holds, for each horizon ``h`` in ``1..H`` and each entity,
      1 when the comparison field at ``i + h`` is strictly greater than at
      ``i``, at flat position ``(h - 1) * S + s``
    """

    def __init__(
        self,
        sequence_length: int = 12,
        horizons: int = 3,
        fields: Sequence[str] = ("Open", "Close"),
        comparison_field: str = "Close",
    ):
        self.sequence_length = check_positive("sequence_length", sequence_length)
        self.horizons = check_positive("horizons", horizons)
        self.fields = tuple(fields)
        self.comparison_field = comparison_field
        if not self.fields:
            raise InvalidParameterError("At least one feature field is required")

    def sample_count(self, n_dates: int) -> int:
        """Number of samples a series with n_dates dates yields (may be <= 0)."""
        return n_dates - self.sequence_length - self.horizons

    def last_anchor_index(self, n_train: int) -> int:
        """Date index of the anchor of the last of the first n_train samples."""
        return self.sequence_length + n_train - 1

    def build(self, series: AlignedSeries) -> WindowedDataset:
        """
        Build every (sample, target) pair of the series, in date order.

        Args:
            series: Normalized aligned series

        Returns:
            WindowedDataset with features [N, T, S*F] and targets [N, H*S]

        Raises:
            InvalidParameterError: If a field is unknown to the series
            InsufficientDataError: If D - T - H <= 0
        """
        unknown = [
            f for f in self.fields + (self.comparison_field,) if f not in series.fields
        ]
        if unknown:
            raise InvalidParameterError(
                f"Field(s) {unknown} not present in series fields {list(series.fields)}",
                details={"unknown": unknown, "available": list(series.fields)},
            )

        T, H = self.sequence_length, self.horizons
        D, S, F = len(series.dates), len(series.entities), len(self.fields)
        n_samples = self.sample_count(D)
        if n_samples <= 0:
            raise InsufficientDataError(
                f"Need more than {T + H} dates for sequence_length={T} and "
                f"horizons={H}, got {D}",
                details={"dates": D, "sequence_length": T, "horizons": H},
            )

        cube = series.to_array(self.fields)
        steps = np.where(~np.isfinite(cube), MISSING_FEATURE_VALUE, cube).reshape(D, S * F)

        anchors = np.arange(T, D - H)
        offsets = np.arange(-T, 0)
        features = steps[anchors[:, None] + offsets[None, :]].astype(np.float32)

        reference = series.to_array((self.comparison_field,))[:, :, 0]
        current = reference[anchors]                                   # [N, S]
        future = reference[anchors[:, None] + np.arange(1, H + 1)]     # [N, H, S]
        present = np.isfinite(future) & np.isfinite(current)[:, None, :]
        increased = np.zeros(future.shape, dtype=bool)
        increased[present] = (
            future[present] > np.broadcast_to(current[:, None, :], future.shape)[present]
        )
        targets = np.where(increased, 1.0, MISSING_LABEL_VALUE).astype(np.float32)
        targets = targets.reshape(n_samples, H * S)

        missing_steps = int((~np.isfinite(cube)).any(axis=2).sum())
        if missing_steps:
            logger.debug(f"{missing_steps} (date, entity) inputs filled with {MISSING_FEATURE_VALUE}")

        dataset = WindowedDataset(
            _features=features,
            _targets=targets,
            anchor_dates=tuple(series.dates[i] for i in anchors),
            entities=series.entities,
            fields=self.fields,
            sequence_length=T,
            horizons=H,
            comparison_field=self.comparison_field,
        )
        logger.info(
            f"Built {n_samples} windows: features {features.shape}, targets {targets.shape}"
        )
        return dataset


def build_digit_dataset(
    records: pd.DataFrame,
    num_classes: int = 10,
    image_shape: Tuple[int, ...] = (28, 28, 1),
    max_intensity: float = 255.0,
) -> DigitDataset:
    """
    Turn parsed digit rows into scaled images and class labels.

    Args:
        records: Output of DataLoader.parse_digit_csv
        num_classes: Size of the label space
        image_shape: Per-sample shape; its product must equal the pixel count
        max_intensity: Raw intensity mapped to 1.0

    Returns:
        DigitDataset with images [N, *image_shape]

    Raises:
        InvalidParameterError: If image_shape does not match the pixel count
    """
    check_positive("num_classes", num_classes)
    pixel_columns = [c for c in records.columns if c != LABEL_COLUMN]
    if int(np.prod(image_shape)) != len(pixel_columns):
        raise InvalidParameterError(
            f"image_shape {tuple(image_shape)} does not hold {len(pixel_columns)} pixels",
            details={"image_shape": list(image_shape), "pixels": len(pixel_columns)},
        )

    labels = records[LABEL_COLUMN].to_numpy(dtype=np.int64)
    if labels.size and (labels.min() < 0 or labels.max() >= num_classes):
        raise InvalidParameterError(
            f"Labels must lie in [0, {num_classes}), found "
            f"[{labels.min()}, {labels.max()}]",
            details={"num_classes": num_classes},
        )
    images = scale_pixels(records[pixel_columns], max_value=max_intensity)
    images = images.reshape((len(records),) + tuple(image_shape))

    return DigitDataset(_images=images, _labels=labels.copy(), num_classes=num_classes)
