"""Dataset construction and evaluation metrics for windowed neural-network demos."""

__version__ = "0.1.0"
