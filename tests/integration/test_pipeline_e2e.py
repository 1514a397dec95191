import numpy as np
import pytest

from tabwindow.pipeline import (
    evaluate_digit_predictions,
    evaluate_series_from_config,
    evaluate_series_predictions,
    load_digit_dataset,
    load_digits_from_config,
    load_timeseries_dataset,
    load_timeseries_from_config,
    preview_batch_from_config,
    sample_preview_batch,
    split_digit_dataset,
    split_digits_from_config,
)
from tabwindow.utils.config_manager import load_default_config
from tabwindow.utils.error_handling import (
    DatasetReleasedError,
    InsufficientDataError,
    InvalidParameterError,
)
from tabwindow.utils.serialization import load_windowed_dataset, save_windowed_dataset
from tests.helpers import make_digit_line, make_price_csv


def test_digit_pipeline(digit_csv):
    """
    Test the digit loop:
    1. Parse, dropping malformed rows
    2. Scale and reshape
    3. Evaluate perfect predictions
    """
    dataset = load_digit_dataset(digit_csv)
    assert len(dataset) == 2
    assert dataset.images.shape == (2, 28, 28, 1)
    assert np.all(dataset.images[0] == 0.0)
    assert np.all(dataset.images[1] == 1.0)
    assert dataset.labels.tolist() == [3, 7]

    result = evaluate_digit_predictions(dataset.one_hot(), dataset.one_hot())
    assert result.metrics["accuracy"] == 1.0
    assert result.metrics["per_class_accuracy"][3] == 1.0
    assert result.metrics["per_class_accuracy"][0] == 0.0


def test_digit_holdout_and_preview():
    text = "\n".join(make_digit_line(i % 10, i * 10, pixel_count=4) for i in range(20))
    dataset = load_digit_dataset(text, pixel_count=4, image_shape=(2, 2, 1))

    split = split_digit_dataset(dataset, validation_ratio=0.1)
    assert split.train_size == 18
    assert split.x_test.shape == (2, 2, 2, 1)
    assert np.argmax(split.y_test, axis=1).tolist() == [8, 9]

    batch = sample_preview_batch(len(dataset), k=5, seed=7)
    assert len(set(batch.tolist())) == 5
    assert all(0 <= i < 20 for i in batch)
    np.testing.assert_array_equal(batch, sample_preview_batch(len(dataset), k=5, seed=7))
    assert len(sample_preview_batch(3, k=5, seed=1)) == 3


def test_digits_from_config():
    config = load_default_config({"digits": {"pixel_count": 4, "image_shape": [2, 2, 1]}})
    dataset = load_digits_from_config(make_digit_line(2, 255, pixel_count=4), config)
    assert dataset.images.shape == (1, 2, 2, 1)


def test_timeseries_pipeline(tmp_path, price_csv):
    """
    Test the price loop:
    1. Parse, align and normalize
    2. Window and split
    3. Evaluate
    4. Serialization
    """
    load = load_timeseries_dataset(price_csv)
    assert load.entities == ("AAPL", "MSFT", "GOOG")
    assert load.summary() == {
        "entities": ["AAPL", "MSFT", "GOOG"],
        "sample_count": 15,
        "train_size": 12,
        "test_size": 3,
        "fit_scope": "full",
    }
    assert load.split.x_train.shape == (12, 12, 6)
    assert load.split.y_test.shape == (3, 9)
    assert load.dataset.features.min() >= 0.0
    assert load.dataset.features.max() <= 1.0

    result = evaluate_series_predictions(load, load.split.y_test.copy())
    assert result.metrics["binary_accuracy"] == 1.0
    assert set(result.metrics["per_entity_accuracy"]) == {"AAPL", "MSFT", "GOOG"}

    save_windowed_dataset(load.dataset, tmp_path / "windows")
    restored = load_windowed_dataset(tmp_path / "windows")
    np.testing.assert_array_equal(restored.targets, load.dataset.targets)

    load.release()
    with pytest.raises(DatasetReleasedError):
        _ = load.split.x_train


def test_train_fit_scope(price_csv):
    full = load_timeseries_dataset(price_csv, sequence_length=4, horizons=2, train_ratio=0.5)
    train = load_timeseries_dataset(
        price_csv, sequence_length=4, horizons=2, train_ratio=0.5, fit_scope="train"
    )
    # 24 samples, 12 train; last training anchor is date index 15
    assert train.stats.fitted_dates == full.series.dates[:16]
    assert full.stats.fitted_dates == full.series.dates

    assert train.split.x_train.min() >= 0.0
    assert train.split.x_train.max() <= 1.0
    # scaling is monotone per entity, so labels do not depend on the fit range
    np.testing.assert_array_equal(train.dataset.targets, full.dataset.targets)


def test_timeseries_from_config(price_csv, pipeline_config):
    with load_timeseries_from_config(price_csv, load_default_config(pipeline_config)) as load:
        assert load.summary()["sample_count"] == 24
        assert load.dataset.features.shape[1:] == (4, 6)
        assert load.split.test_size == 12
    with pytest.raises(DatasetReleasedError):
        _ = load.dataset.features


def test_timeseries_errors():
    short = make_price_csv(["A"], n_dates=15)
    with pytest.raises(InsufficientDataError):
        load_timeseries_dataset(short)
    with pytest.raises(InvalidParameterError):
        load_timeseries_dataset(short, feature_fields=("Volume",), sequence_length=2, horizons=1)
    with pytest.raises(InvalidParameterError):
        load_timeseries_dataset(short, sequence_length=2, horizons=1, fit_scope="test")
    with pytest.raises(InvalidParameterError):
        load_timeseries_dataset(short, sequence_length=2, horizons=1, train_ratio=1.0)


def test_digit_holdout_and_preview_follow_config():
    text = "\n".join(make_digit_line(i % 10, i * 10, pixel_count=4) for i in range(20))
    dataset = load_digit_dataset(text, pixel_count=4, image_shape=(2, 2, 1))

    assert split_digits_from_config(dataset, load_default_config()).test_size == 2
    config = load_default_config({"digits": {"validation_ratio": 0.25, "preview_size": 3}})
    split = split_digits_from_config(dataset, config)
    assert split.test_size == 5
    assert np.argmax(split.y_test, axis=1).tolist() == [5, 6, 7, 8, 9]

    assert len(preview_batch_from_config(len(dataset), load_default_config(), seed=3)) == 5
    batch = preview_batch_from_config(len(dataset), config, seed=3)
    assert len(batch) == 3
    np.testing.assert_array_equal(batch, sample_preview_batch(len(dataset), k=3, seed=3))


def test_series_threshold_follows_config(price_csv):
    load = load_timeseries_dataset(price_csv)
    y_test = load.split.y_test
    scores = np.where(y_test == 1, 0.7, 0.0)

    default = evaluate_series_from_config(load, scores, load_default_config())
    assert default.metrics["binary_accuracy"] == 1.0

    strict = evaluate_series_from_config(
        load, scores, load_default_config({"metrics": {"threshold": 0.9}})
    )
    # every positive score now falls below the cut-off
    assert strict.metadata["threshold"] == 0.9
    assert strict.metrics["binary_accuracy"] == pytest.approx(1.0 - y_test.mean())


def test_missing_field_reports_schema_violation():
    short = make_price_csv(["A"], n_dates=15)
    with pytest.raises(InvalidParameterError) as exc_info:
        load_timeseries_dataset(short, feature_fields=("Volume",), sequence_length=2, horizons=1)
    assert exc_info.value.details["schema_violations"] == {"Volume": "missing"}
    assert "Missing required column: Volume" in str(exc_info.value)
