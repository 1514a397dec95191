"""Unit tests for scaling utilities."""

import math

import numpy as np
import pandas as pd
import pytest

from tabwindow.data.loaders import DataLoader
from tabwindow.data.preprocessors import MinMaxNormalizer, scale_pixels
from tabwindow.data.splitters import SeriesAligner
from tabwindow.utils.error_handling import InvalidParameterError


def _series(text):
    return SeriesAligner().pivot(DataLoader().parse_timeseries_csv(text))


class TestMinMaxNormalizer:
    """Tests for MinMaxNormalizer."""

    def test_ranges_are_per_entity_and_field(self, small_price_csv):
        stats = MinMaxNormalizer().fit(_series(small_price_csv))
        assert stats.range_for("AAA", "Close").to_dict() == {"min": 10.0, "max": 15.0}
        assert stats.range_for("BBB", "Open").to_dict() == {"min": 17.0, "max": 21.0}

    def test_values_scaled_into_unit_interval(self, small_price_csv):
        scaled, _ = MinMaxNormalizer().fit_transform(_series(small_price_csv))
        assert scaled.values["AAA"]["2024-01-01"]["Close"] == 0.0
        assert scaled.values["AAA"]["2024-01-05"]["Close"] == 1.0
        assert scaled.values["AAA"]["2024-01-02"]["Close"] == pytest.approx(0.4)

    def test_constant_field_maps_to_zero(self):
        text = (
            "Date,Symbol,Open,Close\n"
            "2024-01-01,AAA,5,1\n"
            "2024-01-02,AAA,5,2\n"
        )
        scaled, stats = MinMaxNormalizer().fit_transform(_series(text))
        assert stats.range_for("AAA", "Open").span == 0
        assert scaled.values["AAA"]["2024-01-01"]["Open"] == 0.0
        assert scaled.values["AAA"]["2024-01-02"]["Open"] == 0.0

    def test_missing_stays_missing(self):
        text = (
            "Date,Symbol,Open,Close\n"
            "2024-01-01,AAA,1,bad\n"
            "2024-01-02,AAA,3,4\n"
            "2024-01-02,BBB,3,4\n"
            "2024-01-03,AAA,5,8\n"
        )
        scaled, stats = MinMaxNormalizer().fit_transform(_series(text))
        assert math.isnan(scaled.values["AAA"]["2024-01-01"]["Close"])
        assert stats.range_for("AAA", "Close").to_dict() == {"min": 4.0, "max": 8.0}
        assert "2024-01-01" not in scaled.values["BBB"]

    def test_infinite_values_are_not_fitted(self):
        records = pd.DataFrame({
            "Date": ["2024-01-01", "2024-01-02", "2024-01-03"],
            "Symbol": ["AAA", "AAA", "AAA"],
            "Close": [1.0, np.inf, 3.0],
        })
        scaled, stats = MinMaxNormalizer().fit_transform(SeriesAligner().pivot(records))
        assert stats.range_for("AAA", "Close").to_dict() == {"min": 1.0, "max": 3.0}
        assert scaled.values["AAA"]["2024-01-03"]["Close"] == 1.0
        assert math.isnan(scaled.values["AAA"]["2024-01-02"]["Close"])

    def test_field_without_values_has_no_range(self):
        text = "Date,Symbol,Open,Close\n2024-01-01,AAA,x,1\n"
        scaled, stats = MinMaxNormalizer().fit_transform(_series(text))
        assert stats.range_for("AAA", "Open") is None
        assert math.isnan(scaled.values["AAA"]["2024-01-01"]["Open"])

    def test_fit_on_date_subset(self, small_price_csv):
        series = _series(small_price_csv)
        normalizer = MinMaxNormalizer()
        stats = normalizer.fit(series, dates=series.dates[:2])
        assert stats.range_for("AAA", "Close").to_dict() == {"min": 10.0, "max": 12.0}
        assert stats.fitted_dates == series.dates[:2]
        scaled = normalizer.transform(series, stats)
        # later values may leave [0, 1] when fitted on the leading range only
        assert scaled.values["AAA"]["2024-01-05"]["Close"] == pytest.approx(2.5)

    def test_inverse_transform(self, small_price_csv):
        series = _series(small_price_csv)
        normalizer = MinMaxNormalizer()
        scaled, stats = normalizer.fit_transform(series)
        restored = normalizer.inverse_transform(scaled, stats)
        for entity in series.entities:
            for date, entry in series.values[entity].items():
                for name, value in entry.items():
                    assert restored.values[entity][date][name] == pytest.approx(value)

    def test_input_series_not_modified(self, small_price_csv):
        series = _series(small_price_csv)
        MinMaxNormalizer().fit_transform(series)
        assert series.values["AAA"]["2024-01-05"]["Close"] == 15.0


class TestScalePixels:
    """Tests for scale_pixels."""

    def test_scales_to_unit_range(self):
        result = scale_pixels(np.array([[0, 51, 255]]))
        assert result.dtype == np.float32
        np.testing.assert_allclose(result, [[0.0, 0.2, 1.0]], rtol=1e-6)

    def test_invalid_max(self):
        with pytest.raises(InvalidParameterError):
            scale_pixels(np.zeros((1, 1)), max_value=0)
