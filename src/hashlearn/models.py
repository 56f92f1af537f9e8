"""Data models shared by the text pipeline and the streaming model."""

from __future__ import annotations

import math
from bisect import bisect_left
from dataclasses import dataclass, field
from typing import Iterable, Iterator, Mapping, Protocol, Sequence, Union

from .errors import DimensionMismatchError


@dataclass(frozen=True)
class Document:
    """A raw document: where it came from plus its text."""

    identifier: str
    text: str

    def __post_init__(self) -> None:
        if isinstance(self.text, (bytes, bytearray)):
            object.__setattr__(self, "text", bytes(self.text).decode("utf-8", errors="replace"))


class SparseReadable(Protocol):
    """Read capability of a materialized sparse vector."""

    size: int

    def get(self, index: int) -> float: ...

    def items(self) -> Iterator[tuple[int, float]]: ...


@dataclass(frozen=True)
class SparseVector:
    """Immutable sparse vector stored as sorted indices plus parallel values.

    Attributes:
        size: Dimension of the vector; every index lies in ``[0, size)``.
        indices: Strictly increasing feature indices.
        values: Values aligned with ``indices``.
    """

    size: int
    indices: tuple[int, ...] = ()
    values: tuple[float, ...] = ()

    def __post_init__(self) -> None:
        if len(self.indices) != len(self.values):
            raise ValueError("indices and values must have the same length")
        prev = -1
        for idx in self.indices:
            if idx < 0 or idx >= self.size:
                raise DimensionMismatchError(
                    f"index {idx} out of range for vector of size {self.size}"
                )
            if idx <= prev:
                raise ValueError("indices must be strictly increasing")
            prev = idx

    @classmethod
    def from_dict(cls, size: int, mapping: Mapping[int, float]) -> "SparseVector":
        """Build a vector from an ``{index: value}`` mapping."""
        keys = sorted(mapping)
        return cls(size, tuple(keys), tuple(float(mapping[k]) for k in keys))

    @classmethod
    def from_dense(cls, values: Sequence[float]) -> "SparseVector":
        """Build a vector from a dense sequence, dropping zeros."""
        pairs = [(i, float(v)) for i, v in enumerate(values) if v != 0]
        return cls(
            len(values),
            tuple(i for i, _ in pairs),
            tuple(v for _, v in pairs),
        )

    @property
    def nnz(self) -> int:
        """Number of stored entries."""
        return len(self.indices)

    def get(self, index: int) -> float:
        pos = bisect_left(self.indices, index)
        if pos < len(self.indices) and self.indices[pos] == index:
            return self.values[pos]
        return 0.0

    def items(self) -> Iterator[tuple[int, float]]:
        return zip(self.indices, self.values)

    def to_dense(self) -> list[float]:
        dense = [0.0] * self.size
        for idx, val in self.items():
            dense[idx] = val
        return dense

    def dot(self, other: "SparseVector") -> float:
        """Sparse-sparse dot product via a merge of the sorted indices."""
        if other.size != self.size:
            raise DimensionMismatchError(
                f"cannot multiply vectors of size {self.size} and {other.size}"
            )
        i = j = 0
        total = 0.0
        a_idx, b_idx = self.indices, other.indices
        while i < len(a_idx) and j < len(b_idx):
            if a_idx[i] == b_idx[j]:
                total += self.values[i] * other.values[j]
                i += 1
                j += 1
            elif a_idx[i] < b_idx[j]:
                i += 1
            else:
                j += 1
        return total

    def dot_dense(self, weights: Sequence[float]) -> float:
        """Dot product against a dense weight sequence of the same size."""
        if len(weights) != self.size:
            raise DimensionMismatchError(
                f"vector of size {self.size} does not match {len(weights)} weights"
            )
        return sum(weights[idx] * val for idx, val in self.items())

    def norm(self) -> float:
        return math.sqrt(sum(v * v for v in self.values))

    def to_dict(self) -> dict:
        return {
            "size": self.size,
            "indices": list(self.indices),
            "values": list(self.values),
        }

    @classmethod
    def from_json_dict(cls, data: dict) -> "SparseVector":
        return cls(
            int(data["size"]),
            tuple(int(i) for i in data["indices"]),
            tuple(float(v) for v in data["values"]),
        )


class SparseVectorBuilder:
    """Accumulating counterpart of :class:`SparseVector`.

    Values added at the same index are summed. ``build`` materializes a
    read-only vector and leaves the builder reusable.
    """

    def __init__(self, size: int) -> None:
        self.size = size
        self._acc: dict[int, float] = {}

    def add(self, index: int, value: float = 1.0) -> "SparseVectorBuilder":
        if index < 0 or index >= self.size:
            raise DimensionMismatchError(
                f"index {index} out of range for vector of size {self.size}"
            )
        self._acc[index] = self._acc.get(index, 0.0) + value
        return self

    def __len__(self) -> int:
        return len(self._acc)

    def build(self) -> SparseVector:
        return SparseVector.from_dict(self.size, self._acc)


def cosine_similarity(a: SparseVector, b: SparseVector) -> float:
    """Cosine similarity of two sparse vectors (0.0 if either is empty)."""
    denom = a.norm() * b.norm()
    if denom == 0:
        return 0.0
    return a.dot(b) / denom


Label = Union[int, float]


@dataclass(frozen=True)
class LabeledVector:
    """A label (class index or real target) paired with its features."""

    label: Label
    features: SparseVector

    def to_dict(self) -> dict:
        return {"label": self.label, "features": self.features.to_dict()}


@dataclass
class LabelEncoder:
    """Dense integer encoding for category names.

    Categories are sorted before indexing so the same corpus always yields
    the same encoding.
    """

    classes_: list[str] = field(default_factory=list)

    def fit(self, labels: Iterable[str]) -> "LabelEncoder":
        self.classes_ = sorted(set(labels))
        return self

    @property
    def index(self) -> dict[str, int]:
        return {name: i for i, name in enumerate(self.classes_)}

    def encode(self, label: str) -> int:
        try:
            return self.index[label]
        except KeyError:
            raise ValueError(f"Unknown label: {label}. Known: {self.classes_}") from None

    def encode_many(self, labels: Iterable[str]) -> list[int]:
        mapping = self.index
        out = []
        for label in labels:
            if label not in mapping:
                raise ValueError(f"Unknown label: {label}. Known: {self.classes_}")
            out.append(mapping[label])
        return out

    def decode(self, code: int) -> str:
        return self.classes_[int(code)]

    def to_dict(self) -> dict:
        return {"classes": list(self.classes_)}

    @classmethod
    def from_dict(cls, data: dict) -> "LabelEncoder":
        return cls(classes_=list(data["classes"]))
