"""Evaluation metrics for single-label and multi-horizon multi-label predictions."""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence
import logging

import numpy as np
from sklearn.metrics import accuracy_score, confusion_matrix

from tabwindow.utils.error_handling import (
    InvalidParameterError,
    ShapeMismatchError,
    check_positive,
)

logger = logging.getLogger(__name__)

# Scores strictly above this count as a predicted increase
DEFAULT_THRESHOLD = 0.5


@dataclass
class MetricsResult:
    """Container for evaluation metrics."""
    metrics: Dict[str, Any]
    metric_type: str
    metadata: Dict[str, Any]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "metrics": self.metrics,
            "metric_type": self.metric_type,
            "metadata": self.metadata,
        }


def _shape_check(y_true: np.ndarray, y_pred: np.ndarray, what: str) -> None:
    if y_true.shape != y_pred.shape:
        raise ShapeMismatchError(
            f"{what}: predictions have shape {y_pred.shape}, labels have shape {y_true.shape}",
            details={"y_true_shape": list(y_true.shape), "y_pred_shape": list(y_pred.shape)},
        )


def _class_input_check(y_true: np.ndarray, y_pred: np.ndarray, what: str) -> None:
    """Raw shapes must agree when both sides are 2-D, example counts otherwise."""
    y_true, y_pred = np.asarray(y_true), np.asarray(y_pred)
    if y_true.ndim == 2 and y_pred.ndim == 2:
        _shape_check(y_true, y_pred, what)
    elif y_true.ndim >= 1 and y_pred.ndim >= 1 and y_true.shape[0] != y_pred.shape[0]:
        _shape_check(y_true, y_pred, what)


class MetricsCalculator:
    """
    Accuracy and confusion statistics.

    Every method is a pure function of its arguments: results are computed
    fresh on each call and nothing is cached between calls.
    """

    def __init__(self, threshold: float = DEFAULT_THRESHOLD):
        """
        Args:
            threshold: Cut-off for multi-label scores; a score counts as 1
                only when strictly greater than it
        """
        self.threshold = threshold

    @staticmethod
    def to_class_indices(y: np.ndarray) -> np.ndarray:
        """
        Class indices from a label array.

        1-D input is taken as class indices; 2-D input (one-hot rows,
        probabilities or logits) is reduced with argmax over the last axis.
        """
        y = np.asarray(y)
        if y.ndim == 1:
            if y.size and not np.all(np.mod(y, 1) == 0):
                raise InvalidParameterError(
                    "1-D labels must be integral class indices; pass class "
                    "scores as a 2-D [N, C] array",
                    details={"dtype": str(y.dtype)},
                )
            return y.astype(np.int64)
        if y.ndim == 2:
            return np.argmax(y, axis=-1).astype(np.int64)
        raise ShapeMismatchError(
            f"Expected 1-D class indices or 2-D class scores, got shape {y.shape}",
            details={"shape": list(y.shape)},
        )

    def accuracy(self, y_true: np.ndarray, y_pred: np.ndarray) -> float:
        """
        Fraction of examples whose predicted class equals the true class.

        Args:
            y_true: [N] class indices or [N, C] one-hot rows
            y_pred: [N] class indices or [N, C] scores

        Returns:
            Accuracy in [0, 1]; 0.0 for empty input

        Raises:
            ShapeMismatchError: If the example counts differ, or two 2-D
                inputs differ in class width
            InvalidParameterError: If 1-D input holds non-integral values
        """
        _class_input_check(y_true, y_pred, "accuracy")
        true_idx = self.to_class_indices(y_true)
        pred_idx = self.to_class_indices(y_pred)
        _shape_check(true_idx, pred_idx, "accuracy")
        if true_idx.size == 0:
            return 0.0
        return float(accuracy_score(true_idx, pred_idx))

    def confusion_matrix(
        self,
        y_true: np.ndarray,
        y_pred: np.ndarray,
        num_classes: int,
    ) -> np.ndarray:
        """
        C x C count matrix; rows are true classes, columns predicted ones.

        Args:
            y_true: [N] class indices or [N, C] one-hot rows
            y_pred: [N] class indices or [N, C] scores
            num_classes: C; classes are the dense integers 0..C-1

        Returns:
            int64 array whose row i sums to the count of true class i

        Raises:
            InvalidParameterError: If num_classes < 1 or a label is outside
                [0, num_classes)
            ShapeMismatchError: If the example counts differ
        """
        check_positive("num_classes", num_classes)
        _class_input_check(y_true, y_pred, "confusion_matrix")
        true_idx = self.to_class_indices(y_true)
        pred_idx = self.to_class_indices(y_pred)
        _shape_check(true_idx, pred_idx, "confusion_matrix")

        for name, idx in (("y_true", true_idx), ("y_pred", pred_idx)):
            if idx.size and (idx.min() < 0 or idx.max() >= num_classes):
                raise InvalidParameterError(
                    f"{name} contains classes outside [0, {num_classes}): "
                    f"min={idx.min()}, max={idx.max()}",
                    details={"num_classes": num_classes},
                )

        if true_idx.size == 0:
            return np.zeros((num_classes, num_classes), dtype=np.int64)
        matrix = confusion_matrix(true_idx, pred_idx, labels=np.arange(num_classes))
        return matrix.astype(np.int64)

    @staticmethod
    def per_class_accuracy(matrix: np.ndarray) -> List[float]:
        """
        Diagonal over row sum for every class.

        A class with no true examples scores 0.0 instead of NaN.
        """
        matrix = np.asarray(matrix)
        if matrix.ndim != 2 or matrix.shape[0] != matrix.shape[1]:
            raise ShapeMismatchError(
                f"Confusion matrix must be square, got shape {matrix.shape}",
                details={"shape": list(matrix.shape)},
            )
        totals = matrix.sum(axis=1)
        correct = np.diag(matrix)
        return [
            float(c / t) if t > 0 else 0.0
            for c, t in zip(correct, totals)
        ]

    def binarize(self, y_pred: np.ndarray) -> np.ndarray:
        """1 where a score is strictly above the threshold, else 0."""
        return (np.asarray(y_pred, dtype=np.float64) > self.threshold).astype(np.int64)

    def binary_accuracy(self, y_true: np.ndarray, y_pred: np.ndarray) -> float:
        """Element-wise accuracy of thresholded multi-label scores."""
        y_true = np.asarray(y_true)
        y_pred = np.asarray(y_pred)
        _shape_check(y_true, y_pred, "binary_accuracy")
        if y_true.size == 0:
            return 0.0
        return float(np.mean(self.binarize(y_pred) == y_true.astype(np.int64)))

    def _horizon_view(
        self,
        y_true: np.ndarray,
        y_pred: np.ndarray,
        n_entities: int,
        horizons: int,
    ) -> np.ndarray:
        """Correctness as a [N, H, S] boolean array."""
        check_positive("horizons", horizons)
        y_true = np.asarray(y_true)
        y_pred = np.asarray(y_pred)
        _shape_check(y_true, y_pred, "per-entity accuracy")
        width = horizons * n_entities
        if y_true.ndim != 2 or y_true.shape[1] != width:
            raise ShapeMismatchError(
                f"Expected [N, {width}] arrays for {horizons} horizons x "
                f"{n_entities} entities, got {y_true.shape}",
                details={
                    "expected_width": width,
                    "shape": list(y_true.shape),
                    "horizons": horizons,
                    "entities": n_entities,
                },
            )
        correct = self.binarize(y_pred) == y_true.astype(np.int64)
        return correct.reshape(y_true.shape[0], horizons, n_entities)

    def per_entity_accuracy(
        self,
        y_true: np.ndarray,
        y_pred: np.ndarray,
        entities: Sequence[str],
        horizons: int,
    ) -> Dict[str, float]:
        """
        Accuracy per entity over every sample and horizon.

        Target position ``(h - 1) * S + s`` belongs to entity ``s``.

        Args:
            y_true: [N, H*S] binary targets
            y_pred: [N, H*S] scores, thresholded with strict ``>``
            entities: Canonical entity order used to build the targets
            horizons: H

        Returns:
            entity -> accuracy, in canonical order; 0.0 when N == 0

        Raises:
            ShapeMismatchError: If shapes disagree with each other or with
                H * S
            InvalidParameterError: If horizons < 1
        """
        entities = list(entities)
        correct = self._horizon_view(y_true, y_pred, len(entities), horizons)
        total = correct.shape[0] * horizons
        hits = correct.sum(axis=(0, 1))
        return {
            entity: float(hits[s] / total) if total else 0.0
            for s, entity in enumerate(entities)
        }

    def per_sample_entity_accuracy(
        self,
        y_true: np.ndarray,
        y_pred: np.ndarray,
        entities: Sequence[str],
        horizons: int,
        entity: str,
        limit: Optional[int] = None,
    ) -> List[float]:
        """
        Accuracy across horizons for one entity, sample by sample.

        Args:
            entity: Entity to report
            limit: Only report the first ``limit`` samples

        Returns:
            One accuracy in [0, 1] per sample
        """
        entities = list(entities)
        if entity not in entities:
            raise InvalidParameterError(
                f"Unknown entity '{entity}'",
                details={"entities": entities},
            )
        correct = self._horizon_view(y_true, y_pred, len(entities), horizons)
        per_sample = correct[:, :, entities.index(entity)].mean(axis=1)
        if limit is not None:
            per_sample = per_sample[:limit]
        return [float(v) for v in per_sample]

    @staticmethod
    def rank_entities(accuracies: Dict[str, float]) -> List[str]:
        """Entities by accuracy, best first; ties keep their input order."""
        return sorted(accuracies, key=lambda e: accuracies[e], reverse=True)

    def classification_report(
        self,
        y_true: np.ndarray,
        y_pred: np.ndarray,
        num_classes: int,
    ) -> MetricsResult:
        """
        Accuracy, confusion matrix and per-class accuracy in one result.

        Args:
            y_true: [N] class indices or [N, C] one-hot rows
            y_pred: [N] class indices or [N, C] scores
            num_classes: C

        Returns:
            MetricsResult of type "classification"
        """
        matrix = self.confusion_matrix(y_true, y_pred, num_classes)
        metrics = {
            "accuracy": self.accuracy(y_true, y_pred),
            "confusion_matrix": matrix.tolist(),
            "per_class_accuracy": self.per_class_accuracy(matrix),
        }
        logger.info(f"Classification accuracy: {metrics['accuracy']:.4f}")
        return MetricsResult(
            metrics=metrics,
            metric_type="classification",
            metadata={"n_samples": int(matrix.sum()), "num_classes": num_classes},
        )

    def multi_label_report(
        self,
        y_true: np.ndarray,
        y_pred: np.ndarray,
        entities: Sequence[str],
        horizons: int,
    ) -> MetricsResult:
        """
        Overall binary accuracy plus per-entity accuracy and ranking.

        Returns:
            MetricsResult of type "multi_label"
        """
        per_entity = self.per_entity_accuracy(y_true, y_pred, entities, horizons)
        metrics = {
            "binary_accuracy": self.binary_accuracy(y_true, y_pred),
            "per_entity_accuracy": per_entity,
            "entity_ranking": self.rank_entities(per_entity),
        }
        logger.info(f"Multi-label binary accuracy: {metrics['binary_accuracy']:.4f}")
        return MetricsResult(
            metrics=metrics,
            metric_type="multi_label",
            metadata={
                "n_samples": int(np.asarray(y_true).shape[0]),
                "horizons": horizons,
                "entities": list(entities),
                "threshold": self.threshold,
            },
        )
