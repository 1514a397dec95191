"""Builders for synthetic CSV inputs shared by the tests."""

import numpy as np
import pandas as pd


def make_price_csv(symbols, n_dates, start="2023-01-01", seed=42, header="Date,Symbol,Open,Close"):
    """Build a price table with one row per (date, symbol)."""
    rng = np.random.default_rng(seed)
    dates = pd.date_range(start=start, periods=n_dates, freq="D").strftime("%Y-%m-%d")
    lines = [header]
    for date in dates:
        for symbol in symbols:
            open_, close = rng.uniform(50, 150, 2)
            lines.append(f"{date},{symbol},{open_:.4f},{close:.4f}")
    return "\n".join(lines) + "\n"


def make_digit_line(label, value, pixel_count=784):
    """One digit row with every pixel set to value."""
    return ",".join([str(label)] + [str(value)] * pixel_count)
