"""Series alignment and order-preserving dataset splitting."""

from typing import List, Dict, Any, Optional, Sequence, Tuple, Union
from dataclasses import dataclass, field
from pathlib import Path
from datetime import datetime
import json
import logging
import math

import numpy as np
import pandas as pd

from tabwindow.data.structs import (
    AlignedSeries,
    DatasetSplit,
    DigitDataset,
    SeriesValues,
    WindowedDataset,
)
from tabwindow.utils.error_handling import EmptyDatasetError, InvalidParameterError, check_ratio

logger = logging.getLogger(__name__)


@dataclass
class SplitIndices:
    """Container for train/test split indices with metadata."""
    train_indices: List[int]
    test_indices: List[int]
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "train_indices": self.train_indices,
            "test_indices": self.test_indices,
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SplitIndices":
        """Create from dictionary."""
        return cls(
            train_indices=data["train_indices"],
            test_indices=data["test_indices"],
            metadata=data.get("metadata", {}),
        )


class SeriesAligner:
    """Pivots flat records into per-entity series on a shared date axis."""

    def pivot(
        self,
        records: pd.DataFrame,
        date_column: str = "Date",
        entity_column: str = "Symbol",
        fields: Optional[Sequence[str]] = None,
    ) -> AlignedSeries:
        """
        Build an AlignedSeries in a single pass over the records.

        Args:
            records: Parsed rows, in input order
            date_column: Column holding sortable date strings (ISO dates)
            entity_column: Column holding the entity identifier
            fields: Value columns to carry (defaults to every other column)

        Returns:
            AlignedSeries with first-seen entity order and sorted dates

        Raises:
            InvalidParameterError: If a requested column is absent
            EmptyDatasetError: If no record has both a date and an entity
        """
        for col in (date_column, entity_column):
            if col not in records.columns:
                raise InvalidParameterError(
                    f"Column '{col}' not found in records",
                    details={"columns": list(records.columns)},
                )

        if fields is None:
            fields = [c for c in records.columns if c not in (date_column, entity_column)]
        fields = tuple(fields)
        unknown = [f for f in fields if f not in records.columns]
        if unknown:
            raise InvalidParameterError(
                f"Unknown value field(s) {unknown}",
                details={"columns": list(records.columns), "unknown": unknown},
            )

        values: SeriesValues = {}
        seen_dates = set()
        duplicates = 0
        skipped = 0

        dates = records[date_column].tolist()
        entities = records[entity_column].tolist()
        columns = [records[f].to_numpy(dtype=np.float64) for f in fields]

        for row, (date, entity) in enumerate(zip(dates, entities)):
            if not date or not entity:
                skipped += 1
                continue
            by_date = values.setdefault(entity, {})
            if date in by_date:
                duplicates += 1
                continue
            by_date[date] = {name: float(col[row]) for name, col in zip(fields, columns)}
            seen_dates.add(date)

        if skipped:
            logger.warning(f"Skipped {skipped} records without a date or entity")
        if duplicates:
            logger.warning(
                f"Ignored {duplicates} duplicate (entity, date) records; "
                "the first occurrence is kept"
            )
        if not values:
            raise EmptyDatasetError(
                "No record has both a date and an entity",
                details={"records": len(records), "skipped": skipped},
            )

        # dict preserves insertion order, which is first-seen entity order
        series = AlignedSeries(
            entities=tuple(values.keys()),
            dates=tuple(sorted(seen_dates)),
            fields=fields,
            values=values,
        )
        logger.info(
            f"Aligned {series.entry_count()} entries: "
            f"{len(series.entities)} entities x {len(series.dates)} dates"
        )
        return series

    def coverage(self, series: AlignedSeries) -> Dict[str, float]:
        """Fraction of the shared date axis each entity has an entry for."""
        n_dates = len(series.dates)
        if n_dates == 0:
            return {entity: 0.0 for entity in series.entities}
        return {
            entity: len(series.values.get(entity, {})) / n_dates
            for entity in series.entities
        }


class TimeSeriesSplitter:
    """Order-preserving train/test splitting."""

    def __init__(self, save_dir: Optional[str] = None):
        """Initialize splitter with optional save directory."""
        self.save_dir = Path(save_dir) if save_dir else None
        if self.save_dir:
            self.save_dir.mkdir(parents=True, exist_ok=True)

    def train_test_split(
        self,
        n_samples: int,
        train_ratio: float = 0.8,
    ) -> SplitIndices:
        """
        Split an ordered sequence into a leading train range and a
        trailing test range.

        No shuffling: every test index is greater than every train index.

        Args:
            n_samples: Number of ordered samples
            train_ratio: Fraction in (0, 1) assigned to training

        Returns:
            SplitIndices with floor(n * train_ratio) train indices

        Raises:
            InvalidParameterError: If train_ratio is outside (0, 1) or
                n_samples is negative
        """
        check_ratio("train_ratio", train_ratio)
        if n_samples < 0:
            raise InvalidParameterError(
                f"n_samples must be non-negative, got {n_samples}",
                details={"n_samples": n_samples},
            )

        train_end = int(math.floor(n_samples * train_ratio))
        indices = list(range(n_samples))

        metadata = {
            "split_type": "sequential",
            "train_ratio": train_ratio,
            "total_samples": n_samples,
            "train_samples": train_end,
            "test_samples": n_samples - train_end,
            "created_at": datetime.now().isoformat(),
        }
        return SplitIndices(
            train_indices=indices[:train_end],
            test_indices=indices[train_end:],
            metadata=metadata,
        )

    def train_validation_split(
        self,
        n_samples: int,
        validation_ratio: float = 0.1,
    ) -> SplitIndices:
        """
        Hold out the last floor(n * validation_ratio) samples.

        The held-out range is returned as ``test_indices``.

        Raises:
            InvalidParameterError: If validation_ratio is outside (0, 1)
        """
        check_ratio("validation_ratio", validation_ratio)
        if n_samples < 0:
            raise InvalidParameterError(
                f"n_samples must be non-negative, got {n_samples}",
                details={"n_samples": n_samples},
            )

        # floor() applies to the held-out side
        n_val = int(math.floor(n_samples * validation_ratio))
        n_train = n_samples - n_val
        indices = list(range(n_samples))

        metadata = {
            "split_type": "validation_holdout",
            "validation_ratio": validation_ratio,
            "total_samples": n_samples,
            "train_samples": n_train,
            "test_samples": n_val,
            "created_at": datetime.now().isoformat(),
        }
        return SplitIndices(
            train_indices=indices[:n_train],
            test_indices=indices[n_train:],
            metadata=metadata,
        )

    def apply_split(
        self,
        dataset: Union[WindowedDataset, DigitDataset],
        split: SplitIndices,
        one_hot: bool = True,
    ) -> DatasetSplit:
        """
        Apply split indices to get train/test arrays.

        Args:
            dataset: Windowed or digit dataset
            split: SplitIndices with indices
            one_hot: For digit datasets, emit one-hot targets instead of
                class indices

        Returns:
            DatasetSplit owning copies of the selected rows
        """
        if isinstance(dataset, WindowedDataset):
            x, y = dataset.features, dataset.targets
        elif isinstance(dataset, DigitDataset):
            x = dataset.images
            y = dataset.one_hot() if one_hot else dataset.labels
        else:
            raise InvalidParameterError(
                f"Unsupported dataset type: {type(dataset).__name__}"
            )

        if split.train_indices or split.test_indices:
            top = max(split.train_indices + split.test_indices)
            if top >= x.shape[0]:
                raise InvalidParameterError(
                    f"Split index {top} out of range for {x.shape[0]} samples",
                    details={"n_samples": int(x.shape[0]), "max_index": top},
                )

        train = np.asarray(split.train_indices, dtype=np.int64)
        test = np.asarray(split.test_indices, dtype=np.int64)
        result = DatasetSplit(
            _x_train=x[train],
            _y_train=y[train],
            _x_test=x[test],
            _y_test=y[test],
            split=split,
        )
        logger.info(f"Split {x.shape[0]} samples: {len(train)} train / {len(test)} test")
        return result

    def split_dataset(
        self,
        dataset: Union[WindowedDataset, DigitDataset],
        train_ratio: float = 0.8,
    ) -> DatasetSplit:
        """Sequential split of a dataset in one call."""
        split = self.train_test_split(len(dataset), train_ratio)
        if isinstance(dataset, WindowedDataset):
            anchors = dataset.anchor_dates
            if split.train_indices:
                split.metadata["train_start"] = anchors[split.train_indices[0]]
                split.metadata["train_end"] = anchors[split.train_indices[-1]]
            if split.test_indices:
                split.metadata["test_start"] = anchors[split.test_indices[0]]
                split.metadata["test_end"] = anchors[split.test_indices[-1]]
        return self.apply_split(dataset, split)

    def save_split_indices(
        self,
        split: SplitIndices,
        name: str
    ) -> Path:
        """
        Save split indices to JSON file.

        Args:
            split: SplitIndices to save
            name: Name for the split file

        Returns:
            Path to saved file
        """
        if not self.save_dir:
            raise ValueError("No save directory configured")

        file_path = self.save_dir / f"{name}_split.json"
        with open(file_path, "w") as f:
            json.dump(split.to_dict(), f, indent=2)

        logger.info(f"Split indices saved to {file_path}")
        return file_path

    def load_split_indices(self, name: str) -> SplitIndices:
        """
        Load split indices from JSON file.

        Args:
            name: Name of the split file

        Returns:
            SplitIndices loaded from file
        """
        if not self.save_dir:
            raise ValueError("No save directory configured")

        file_path = self.save_dir / f"{name}_split.json"
        if not file_path.exists():
            raise FileNotFoundError(f"Split file not found: {file_path}")

        with open(file_path, "r") as f:
            data = json.load(f)

        return SplitIndices.from_dict(data)

    def validate_no_leakage(
        self,
        anchor_dates: Sequence[str],
        split: SplitIndices
    ) -> Tuple[bool, List[str]]:
        """
        Validate that every test anchor date is after every train anchor.

        Args:
            anchor_dates: Reference date of each sample
            split: SplitIndices to validate

        Returns:
            Tuple of (is_valid, list of issues)
        """
        issues: List[str] = []

        train_times = [anchor_dates[i] for i in split.train_indices]
        test_times = [anchor_dates[i] for i in split.test_indices]

        overlap = set(split.train_indices) & set(split.test_indices)
        if overlap:
            issues.append(f"{len(overlap)} indices appear in both train and test")

        if train_times and test_times and max(train_times) >= min(test_times):
            issues.append(
                f"Training data ({max(train_times)}) overlaps with "
                f"test data ({min(test_times)})"
            )

        is_valid = len(issues) == 0
        return is_valid, issues
