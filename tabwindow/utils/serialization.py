"""
Serialization utilities for the dataset pipeline.
Handles JSON and numpy archives for datasets, splits and statistics.
"""

import json
import logging
from pathlib import Path
from typing import Any, Union
from datetime import datetime
import pandas as pd
import numpy as np

from tabwindow.data.structs import (
    DatasetSplit,
    DigitDataset,
    NormalizationStats,
    WindowedDataset,
)

logger = logging.getLogger(__name__)


class DateTimeEncoder(json.JSONEncoder):
    """JSON encoder that handles datetime and numpy types."""
    def default(self, obj):
        if isinstance(obj, (datetime, pd.Timestamp)):
            return obj.isoformat()
        if isinstance(obj, np.integer):
            return int(obj)
        if isinstance(obj, np.floating):
            return float(obj)
        if isinstance(obj, np.bool_):
            return bool(obj)
        if isinstance(obj, np.ndarray):
            return obj.tolist()
        if hasattr(obj, "to_dict"):
            return obj.to_dict()
        return super().default(obj)


def save_json(data: Any, path: Union[str, Path], **kwargs) -> None:
    """Save data to JSON with datetime and numpy support."""
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    with open(path, 'w') as f:
        json.dump(data, f, cls=DateTimeEncoder, indent=2, **kwargs)
    logger.debug(f"Saved JSON to {path}")


def load_json(path: Union[str, Path]) -> Any:
    """Load data from JSON."""
    with open(path, 'r') as f:
        return json.load(f)


def save_windowed_dataset(dataset: WindowedDataset, path: Union[str, Path]) -> Path:
    """
    Save a WindowedDataset to a directory.

    Structure:
    - path/
        - arrays.npz (features, targets)
        - metadata.json (orderings, window parameters)
    """
    save_dir = Path(path)
    save_dir.mkdir(parents=True, exist_ok=True)

    np.savez_compressed(
        save_dir / "arrays.npz",
        features=dataset.features,
        targets=dataset.targets,
    )
    meta = dataset.metadata()
    meta["anchor_dates"] = list(dataset.anchor_dates)
    save_json(meta, save_dir / "metadata.json")

    logger.info(f"Saved WindowedDataset ({len(dataset)} samples) to {save_dir}")
    return save_dir


def load_windowed_dataset(path: Union[str, Path]) -> WindowedDataset:
    """Load a WindowedDataset from a directory."""
    load_dir = Path(path)
    if not load_dir.exists():
        raise FileNotFoundError(f"WindowedDataset directory not found: {path}")

    meta = load_json(load_dir / "metadata.json")
    with np.load(load_dir / "arrays.npz") as arrays:
        features = arrays["features"]
        targets = arrays["targets"]

    return WindowedDataset(
        _features=features,
        _targets=targets,
        anchor_dates=tuple(meta["anchor_dates"]),
        entities=tuple(meta["entities"]),
        fields=tuple(meta["fields"]),
        sequence_length=meta["sequence_length"],
        horizons=meta["horizons"],
        comparison_field=meta.get("comparison_field", "Close"),
    )


def save_digit_dataset(dataset: DigitDataset, path: Union[str, Path]) -> Path:
    """Save a DigitDataset as a single compressed archive."""
    file_path = Path(path)
    file_path.parent.mkdir(parents=True, exist_ok=True)
    with open(file_path, "wb") as f:
        np.savez_compressed(
            f,
            images=dataset.images,
            labels=dataset.labels,
            num_classes=np.array(dataset.num_classes),
        )
    logger.info(f"Saved DigitDataset ({len(dataset)} images) to {file_path}")
    return file_path


def load_digit_dataset_archive(path: Union[str, Path]) -> DigitDataset:
    """Load a DigitDataset saved by save_digit_dataset."""
    file_path = Path(path)
    if not file_path.exists():
        raise FileNotFoundError(f"DigitDataset archive not found: {path}")
    with np.load(file_path) as arrays:
        return DigitDataset(
            _images=arrays["images"],
            _labels=arrays["labels"],
            num_classes=int(arrays["num_classes"]),
        )


def save_dataset_split(split: DatasetSplit, path: Union[str, Path]) -> Path:
    """
    Save the trainer-facing arrays of a DatasetSplit.

    Structure:
    - path/
        - split_arrays.npz (x_train, y_train, x_test, y_test)
        - split_indices.json
    """
    save_dir = Path(path)
    save_dir.mkdir(parents=True, exist_ok=True)
    np.savez_compressed(
        save_dir / "split_arrays.npz",
        x_train=split.x_train,
        y_train=split.y_train,
        x_test=split.x_test,
        y_test=split.y_test,
    )
    save_json(split.split.to_dict(), save_dir / "split_indices.json")
    logger.info(f"Saved DatasetSplit {split.shapes()} to {save_dir}")
    return save_dir


def save_normalization_stats(stats: NormalizationStats, path: Union[str, Path]) -> None:
    """Save per-entity scaling ranges to JSON."""
    save_json(stats.to_dict(), path)


def load_normalization_stats(path: Union[str, Path]) -> NormalizationStats:
    """Load per-entity scaling ranges from JSON."""
    return NormalizationStats.from_dict(load_json(path))
