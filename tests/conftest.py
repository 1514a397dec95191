"""Pytest configuration and shared fixtures."""

import pytest

from tests.helpers import make_digit_line, make_price_csv


@pytest.fixture
def price_csv():
    """Three symbols over 30 days."""
    return make_price_csv(["AAPL", "MSFT", "GOOG"], n_dates=30)


@pytest.fixture
def small_price_csv():
    """Two symbols, hand-picked closes for label checks."""
    return (
        "Date,Symbol,Open,Close\n"
        "2024-01-01,AAA,10,10\n"
        "2024-01-01,BBB,20,20\n"
        "2024-01-02,AAA,11,12\n"
        "2024-01-02,BBB,19,18\n"
        "2024-01-03,AAA,12,11\n"
        "2024-01-03,BBB,21,22\n"
        "2024-01-04,AAA,13,13\n"
        "2024-01-04,BBB,18,16\n"
        "2024-01-05,AAA,14,15\n"
        "2024-01-05,BBB,17,20\n"
    )


@pytest.fixture
def digit_csv():
    """Two valid rows and two malformed ones interleaved."""
    return "\n".join([
        make_digit_line(3, 0),
        "1,2,3",
        make_digit_line(7, 255),
        "",
        make_digit_line(5, 0, pixel_count=783),
    ])


@pytest.fixture
def pipeline_config():
    """Small override config for pipeline tests."""
    return {
        "timeseries": {
            "sequence_length": 4,
            "horizons": 2,
            "train_ratio": 0.5,
        },
    }
