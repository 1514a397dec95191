"""Scaling utilities for aligned series and pixel data."""

from typing import Dict, Iterable, Optional, Tuple, Union
import logging
import math

import numpy as np
import pandas as pd

from tabwindow.data.structs import AlignedSeries, FieldRange, NormalizationStats, SeriesValues
from tabwindow.utils.error_handling import InvalidParameterError

logger = logging.getLogger(__name__)


def _is_present(value: float) -> bool:
    return value is not None and math.isfinite(value)


class MinMaxNormalizer:
    """
    Per-entity, per-field min-max scaling.

    Statistics come from present (finite) values only. Absent entries and
    NaN values pass through untouched, so later stages can still tell
    "missing" apart from "zero".
    """

    def fit(
        self,
        series: AlignedSeries,
        dates: Optional[Iterable[str]] = None,
    ) -> NormalizationStats:
        """
        Compute {min, max} for every (entity, field).

        Args:
            series: Aligned series to scan
            dates: Restrict the scan to these dates (e.g. the training
                range); defaults to the whole series

        Returns:
            NormalizationStats. Fields with no present value get no range.
        """
        date_filter = set(dates) if dates is not None else None
        ranges: Dict[str, Dict[str, FieldRange]] = {}

        for entity in series.entities:
            by_date = series.values.get(entity, {})
            by_field: Dict[str, FieldRange] = {}
            for name in series.fields:
                present = [
                    entry[name]
                    for date, entry in by_date.items()
                    if (date_filter is None or date in date_filter)
                    and _is_present(entry.get(name, math.nan))
                ]
                if present:
                    by_field[name] = FieldRange(min=min(present), max=max(present))
                else:
                    logger.debug(f"No present values for {entity}.{name}; left unscaled")
            ranges[entity] = by_field

        fitted = tuple(sorted(date_filter)) if date_filter is not None else series.dates
        return NormalizationStats(ranges=ranges, fitted_dates=fitted)

    def transform(
        self,
        series: AlignedSeries,
        stats: NormalizationStats,
    ) -> AlignedSeries:
        """
        Apply (v - min) / (max - min) to every present value.

        A degenerate range (max == min) maps every value to 0.0. Values of a
        field without a fitted range become NaN.

        Returns:
            New AlignedSeries sharing the canonical orderings
        """
        return self._map(series, stats, inverse=False)

    def fit_transform(
        self,
        series: AlignedSeries,
        dates: Optional[Iterable[str]] = None,
    ) -> Tuple[AlignedSeries, NormalizationStats]:
        """Fit on the series (or a date subset) and scale it."""
        stats = self.fit(series, dates=dates)
        return self.transform(series, stats), stats

    def inverse_transform(
        self,
        series: AlignedSeries,
        stats: NormalizationStats,
    ) -> AlignedSeries:
        """Map scaled values back to original units: v * (max - min) + min."""
        return self._map(series, stats, inverse=True)

    def _map(
        self,
        series: AlignedSeries,
        stats: NormalizationStats,
        inverse: bool,
    ) -> AlignedSeries:
        values: SeriesValues = {}
        for entity, by_date in series.values.items():
            out: Dict[str, Dict[str, float]] = {}
            for date, entry in by_date.items():
                out[date] = {
                    name: self._scale_value(value, stats.range_for(entity, name), inverse)
                    for name, value in entry.items()
                }
            values[entity] = out

        return AlignedSeries(
            entities=series.entities,
            dates=series.dates,
            fields=series.fields,
            values=values,
        )

    @staticmethod
    def _scale_value(value: float, rng: Optional[FieldRange], inverse: bool) -> float:
        if not _is_present(value):
            return math.nan
        if rng is None:
            return math.nan
        if inverse:
            return value * rng.span + rng.min
        if rng.span == 0:
            return 0.0
        return (value - rng.min) / rng.span


def scale_pixels(
    pixels: Union[np.ndarray, pd.DataFrame],
    max_value: float = 255.0,
) -> np.ndarray:
    """
    Scale raw intensities from [0, max_value] to float32 [0, 1].

    Args:
        pixels: [N, P] intensities
        max_value: Intensity mapped to 1.0

    Returns:
        float32 array of the same shape
    """
    if max_value <= 0:
        raise InvalidParameterError(f"max_value must be positive, got {max_value}")
    array = pixels.to_numpy() if isinstance(pixels, pd.DataFrame) else np.asarray(pixels)
    return (array.astype(np.float64) / max_value).astype(np.float32)
