"""Multiclass and regression evaluation metrics.

All metrics are derived from a :class:`ConfusionMatrix` built by folding
``(predicted, actual)`` pairs. Weighted averages weight each class by its
support (number of actual occurrences) over the total observation count.
"""

from __future__ import annotations

import math
from collections import Counter
from dataclasses import dataclass, field
from typing import Hashable, Iterable, Optional, Sequence


@dataclass
class ConfusionMatrix:
    """Counts keyed by ``(actual, predicted)``."""

    counts: Counter = field(default_factory=Counter)

    @classmethod
    def from_pairs(cls, pairs: Iterable[tuple[Hashable, Hashable]]) -> "ConfusionMatrix":
        """Build from ``(predicted, actual)`` pairs."""
        cm = cls()
        for predicted, actual in pairs:
            cm.add(actual, predicted)
        return cm

    def add(self, actual: Hashable, predicted: Hashable, count: int = 1) -> None:
        self.counts[(actual, predicted)] += count

    @property
    def total(self) -> int:
        return sum(self.counts.values())

    @property
    def labels(self) -> list:
        seen = {a for a, _ in self.counts} | {p for _, p in self.counts}
        return sorted(seen, key=lambda x: (str(type(x)), x))

    def true_positives(self, label: Hashable) -> int:
        return self.counts.get((label, label), 0)

    def support(self, label: Hashable) -> int:
        """Number of observations whose actual label is ``label``."""
        return sum(n for (a, _), n in self.counts.items() if a == label)

    def predicted_count(self, label: Hashable) -> int:
        return sum(n for (_, p), n in self.counts.items() if p == label)

    def precision(self, label: Hashable) -> float:
        predicted = self.predicted_count(label)
        return self.true_positives(label) / predicted if predicted else 0.0

    def recall(self, label: Hashable) -> float:
        support = self.support(label)
        return self.true_positives(label) / support if support else 0.0

    def f_measure(self, label: Hashable) -> float:
        p = self.precision(label)
        r = self.recall(label)
        return 2 * p * r / (p + r) if (p + r) > 0 else 0.0

    def accuracy(self) -> float:
        total = self.total
        if not total:
            return 0.0
        correct = sum(n for (a, p), n in self.counts.items() if a == p)
        return correct / total

    def _weighted(self, metric) -> float:
        total = self.total
        if not total:
            return 0.0
        return sum(metric(label) * self.support(label) for label in self.labels) / total

    def weighted_precision(self) -> float:
        return self._weighted(self.precision)

    def weighted_recall(self) -> float:
        return self._weighted(self.recall)

    def weighted_f_measure(self) -> float:
        return self._weighted(self.f_measure)

    def as_table(self) -> dict[str, dict[str, int]]:
        labels = self.labels
        return {
            str(a): {str(p): self.counts.get((a, p), 0) for p in labels}
            for a in labels
        }


def accuracy(pairs: Iterable[tuple[Hashable, Hashable]]) -> float:
    """Fraction of ``(predicted, actual)`` pairs that agree."""
    total = correct = 0
    for predicted, actual in pairs:
        total += 1
        if predicted == actual:
            correct += 1
    return correct / total if total else 0.0


def weighted_f_measure(confusion: ConfusionMatrix) -> float:
    """Support-weighted mean of per-class F1."""
    return confusion.weighted_f_measure()


# ---------------------------------------------------------------------------
# Classification report
# ---------------------------------------------------------------------------

@dataclass
class ClassificationMetrics:
    """Classification report read off a :class:`ConfusionMatrix`.

    ``names`` maps integer labels to display names; any other label is shown
    as ``str(label)``. Scores are derived from the matrix on access.
    """

    confusion: ConfusionMatrix = field(default_factory=ConfusionMatrix)
    names: Sequence[str] = ()

    def label_name(self, label: Hashable) -> str:
        if isinstance(label, int) and 0 <= label < len(self.names):
            return self.names[label]
        return str(label)

    @property
    def accuracy(self) -> float:
        return self.confusion.accuracy()

    @property
    def weighted_f1(self) -> float:
        return self.confusion.weighted_f_measure()

    def _macro(self, metric) -> float:
        labels = self.confusion.labels
        return sum(metric(label) for label in labels) / len(labels) if labels else 0.0

    @property
    def macro_precision(self) -> float:
        return self._macro(self.confusion.precision)

    @property
    def macro_recall(self) -> float:
        return self._macro(self.confusion.recall)

    @property
    def macro_f1(self) -> float:
        return self._macro(self.confusion.f_measure)

    def rows(self) -> list[tuple[str, float, float, float, int]]:
        """``(name, precision, recall, f1, support)`` per label, sorted by name."""
        cm = self.confusion
        out = [
            (self.label_name(label), cm.precision(label), cm.recall(label),
             cm.f_measure(label), cm.support(label))
            for label in cm.labels
        ]
        return sorted(out)

    @property
    def per_class(self) -> dict[str, dict[str, float]]:
        return {
            name: {"precision": p, "recall": r, "f1": f}
            for name, p, r, f, _ in self.rows()
        }

    @property
    def support(self) -> dict[str, int]:
        return {name: n for name, _, _, _, n in self.rows()}

    @property
    def confusion_matrix(self) -> dict[str, dict[str, int]]:
        """Nested ``{actual: {predicted: count}}`` table keyed by name."""
        cm = self.confusion
        labels = cm.labels
        return {
            self.label_name(a): {self.label_name(p): cm.counts.get((a, p), 0) for p in labels}
            for a in labels
        }

    def to_dict(self) -> dict:
        return {
            "accuracy": round(self.accuracy, 4),
            "weighted_f1": round(self.weighted_f1, 4),
            "macro": {
                "precision": round(self.macro_precision, 4),
                "recall": round(self.macro_recall, 4),
                "f1": round(self.macro_f1, 4),
            },
            "classes": {
                name: {"precision": round(p, 4), "recall": round(r, 4),
                       "f1": round(f, 4), "support": n}
                for name, p, r, f, n in self.rows()
            },
            "confusion_matrix": self.confusion_matrix,
        }

    def summary(self) -> str:
        lines = [
            f"Accuracy: {self.accuracy:.2%} | Weighted F1: {self.weighted_f1:.4f}"
            f" | Macro F1: {self.macro_f1:.4f}"
        ]
        for name, p, r, f, n in self.rows():
            lines.append(f"  {name}: P={p:.4f} R={r:.4f} F1={f:.4f} (n={n})")
        return "\n".join(lines)


def compute_metrics(
    y_true: Sequence[Hashable],
    y_pred: Sequence[Hashable],
    names: Optional[Sequence[str]] = None,
) -> ClassificationMetrics:
    """Build a classification report from aligned true and predicted labels.

    Args:
        y_true: Ground truth labels.
        y_pred: Predicted labels.
        names: Optional display names indexed by integer label.
    """
    if len(y_true) != len(y_pred):
        raise ValueError("y_true and y_pred must have the same length")
    cm = ConfusionMatrix.from_pairs(zip(y_pred, y_true))
    return ClassificationMetrics(cm, names=list(names or ()))


# ---------------------------------------------------------------------------
# Regression
# ---------------------------------------------------------------------------

@dataclass
class RegressionMetrics:
    """Error summary for real-valued predictions."""

    count: int = 0
    mean_squared_error: float = 0.0

    @property
    def root_mean_squared_error(self) -> float:
        return math.sqrt(self.mean_squared_error)

    def to_dict(self) -> dict:
        return {
            "count": self.count,
            "mse": round(self.mean_squared_error, 6),
            "rmse": round(self.root_mean_squared_error, 6),
        }


def regression_metrics(pairs: Iterable[tuple[float, float]]) -> RegressionMetrics:
    """MSE over ``(predicted, actual)`` pairs."""
    n = 0
    sq = 0.0
    for predicted, actual in pairs:
        n += 1
        sq += (predicted - actual) ** 2
    return RegressionMetrics(count=n, mean_squared_error=sq / n if n else 0.0)
