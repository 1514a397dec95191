"""Core data structures for the dataset pipeline."""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple
import math

import numpy as np

from tabwindow.utils.error_handling import DatasetReleasedError

# entity -> date -> field -> value
SeriesValues = Dict[str, Dict[str, Dict[str, float]]]


def _readonly(array: np.ndarray) -> np.ndarray:
    """Return the array with its write flag cleared."""
    array.setflags(write=False)
    return array


@dataclass(frozen=True)
class AlignedSeries:
    """
    Per-entity time series indexed by date.

    Attributes:
        entities: Canonical entity order (first seen in the input)
        dates: Canonical date order (sorted ascending, unique)
        fields: Numeric value fields carried for every entry
        values: entity -> date -> field -> value. A missing (entity, date)
            pair is absent from the inner mapping; NaN marks a missing value
            inside a present entry.
    """
    entities: Tuple[str, ...]
    dates: Tuple[str, ...]
    fields: Tuple[str, ...]
    values: SeriesValues

    def get(self, entity: str, date: str, field_name: str) -> float:
        """Value for (entity, date, field), NaN when missing."""
        entry = self.values.get(entity, {}).get(date)
        if entry is None:
            return math.nan
        return entry.get(field_name, math.nan)

    def has_entry(self, entity: str, date: str) -> bool:
        return date in self.values.get(entity, {})

    def to_array(self, fields: Optional[Tuple[str, ...]] = None) -> np.ndarray:
        """
        Dense float64 cube of shape [dates, entities, fields].

        Missing entries are NaN; callers decide how to fill them.
        """
        fields = tuple(fields) if fields is not None else self.fields
        date_pos = {d: i for i, d in enumerate(self.dates)}
        cube = np.full((len(self.dates), len(self.entities), len(fields)), np.nan)
        for s, entity in enumerate(self.entities):
            for date, entry in self.values.get(entity, {}).items():
                t = date_pos[date]
                for f, name in enumerate(fields):
                    cube[t, s, f] = entry.get(name, math.nan)
        return cube

    def entry_count(self) -> int:
        return sum(len(by_date) for by_date in self.values.values())


@dataclass(frozen=True)
class FieldRange:
    """Observed min/max of one (entity, field)."""
    min: float
    max: float

    @property
    def span(self) -> float:
        return self.max - self.min

    def to_dict(self) -> Dict[str, float]:
        return {"min": self.min, "max": self.max}


@dataclass(frozen=True)
class NormalizationStats:
    """Per entity, per field scaling ranges."""
    ranges: Dict[str, Dict[str, FieldRange]]
    fitted_dates: Tuple[str, ...] = ()

    def range_for(self, entity: str, field_name: str) -> Optional[FieldRange]:
        return self.ranges.get(entity, {}).get(field_name)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "ranges": {
                entity: {name: r.to_dict() for name, r in by_field.items()}
                for entity, by_field in self.ranges.items()
            },
            "fitted_dates": list(self.fitted_dates),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "NormalizationStats":
        """Create from dictionary."""
        ranges = {
            entity: {name: FieldRange(r["min"], r["max"]) for name, r in by_field.items()}
            for entity, by_field in data["ranges"].items()
        }
        return cls(ranges=ranges, fitted_dates=tuple(data.get("fitted_dates", ())))


class _OwnedArrays:
    """
    Exclusive ownership of large numpy buffers.

    Subclasses list their buffer attributes in ``_array_fields``. After
    ``release()`` the buffers are dropped and any access raises
    ``DatasetReleasedError``. Datasets are also context managers that
    release on exit.
    """

    _array_fields: Tuple[str, ...] = ()

    def _check_released(self) -> None:
        if self.released:
            raise DatasetReleasedError(
                f"{type(self).__name__} storage has been released",
                details={"dataset": type(self).__name__},
            )

    def release(self) -> None:
        """Drop the backing arrays. Safe to call more than once."""
        for name in self._array_fields:
            object.__setattr__(self, f"_{name}", None)
        object.__setattr__(self, "released", True)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()


@dataclass(frozen=True, eq=False)
class WindowedDataset(_OwnedArrays):
    """
    Ordered (sample, target) pairs built from an aligned series.

    Attributes:
        _features: float32 [N, T, S*F] input windows
        _targets: float32 [N, H*S] binary targets, horizon-major
        anchor_dates: Reference date of each sample
        entities: Canonical entity order shared with the metrics engine
        fields: Feature fields per entity, in feature-vector order
        sequence_length: Window length T
        horizons: Number of labelled future steps H
    """
    _features: np.ndarray
    _targets: np.ndarray
    anchor_dates: Tuple[str, ...]
    entities: Tuple[str, ...]
    fields: Tuple[str, ...]
    sequence_length: int
    horizons: int
    comparison_field: str = "Close"
    released: bool = field(default=False, init=False)

    _array_fields = ("features", "targets")

    def __post_init__(self):
        """Validate consistency after initialization."""
        n = len(self.anchor_dates)
        if self._features.shape[0] != n or self._targets.shape[0] != n:
            raise ValueError(
                f"Length mismatch: anchor_dates ({n}) vs features "
                f"({self._features.shape[0]}) vs targets ({self._targets.shape[0]})"
            )
        _readonly(self._features)
        _readonly(self._targets)

    @property
    def features(self) -> np.ndarray:
        self._check_released()
        return self._features

    @property
    def targets(self) -> np.ndarray:
        self._check_released()
        return self._targets

    def __len__(self) -> int:
        return len(self.anchor_dates)

    def __iter__(self) -> Iterator[Tuple[np.ndarray, np.ndarray]]:
        features, targets = self.features, self.targets
        for i in range(len(self)):
            yield features[i], targets[i]

    def target_index(self, horizon: int, entity: str) -> int:
        """Flat target position for a 1-based horizon and an entity."""
        return (horizon - 1) * len(self.entities) + self.entities.index(entity)

    def metadata(self) -> Dict[str, Any]:
        return {
            "n_samples": len(self),
            "sequence_length": self.sequence_length,
            "horizons": self.horizons,
            "entities": list(self.entities),
            "fields": list(self.fields),
            "comparison_field": self.comparison_field,
            "first_anchor": self.anchor_dates[0] if self.anchor_dates else None,
            "last_anchor": self.anchor_dates[-1] if self.anchor_dates else None,
        }


@dataclass(frozen=True, eq=False)
class DigitDataset(_OwnedArrays):
    """
    Scaled digit images with integer class labels.

    Attributes:
        _images: float32 [N, H, W, C] intensities in [0, 1]
        _labels: int64 [N] class indices in [0, num_classes)
        num_classes: Size of the label space
    """
    _images: np.ndarray
    _labels: np.ndarray
    num_classes: int = 10
    released: bool = field(default=False, init=False)

    _array_fields = ("images", "labels")

    def __post_init__(self):
        if self._images.shape[0] != self._labels.shape[0]:
            raise ValueError(
                f"Length mismatch: images ({self._images.shape[0]}) vs "
                f"labels ({self._labels.shape[0]})"
            )
        _readonly(self._images)
        _readonly(self._labels)

    @property
    def images(self) -> np.ndarray:
        self._check_released()
        return self._images

    @property
    def labels(self) -> np.ndarray:
        self._check_released()
        return self._labels

    def __len__(self) -> int:
        self._check_released()
        return int(self._labels.shape[0])

    def one_hot(self) -> np.ndarray:
        """Labels as float32 one-hot rows of width num_classes."""
        labels = self.labels
        encoded = np.zeros((labels.shape[0], self.num_classes), dtype=np.float32)
        encoded[np.arange(labels.shape[0]), labels] = 1.0
        return encoded

    def subset(self, indices: List[int]) -> "DigitDataset":
        """New dataset holding copies of the selected rows, in order."""
        idx = np.asarray(indices, dtype=np.int64)
        return DigitDataset(
            _images=self.images[idx].copy(),
            _labels=self.labels[idx].copy(),
            num_classes=self.num_classes,
        )


@dataclass(frozen=True, eq=False)
class DatasetSplit(_OwnedArrays):
    """Train/test arrays handed to the external trainer."""
    _x_train: np.ndarray
    _y_train: np.ndarray
    _x_test: np.ndarray
    _y_test: np.ndarray
    split: Any  # SplitIndices
    released: bool = field(default=False, init=False)

    _array_fields = ("x_train", "y_train", "x_test", "y_test")

    def __post_init__(self):
        for name in self._array_fields:
            _readonly(getattr(self, f"_{name}"))

    @property
    def x_train(self) -> np.ndarray:
        self._check_released()
        return self._x_train

    @property
    def y_train(self) -> np.ndarray:
        self._check_released()
        return self._y_train

    @property
    def x_test(self) -> np.ndarray:
        self._check_released()
        return self._x_test

    @property
    def y_test(self) -> np.ndarray:
        self._check_released()
        return self._y_test

    @property
    def train_size(self) -> int:
        return len(self.split.train_indices)

    @property
    def test_size(self) -> int:
        return len(self.split.test_indices)

    def shapes(self) -> Dict[str, List[int]]:
        return {name: list(getattr(self, name).shape) for name in self._array_fields}
