"""Value types for training data and the synthetic logistic generator."""

from __future__ import annotations
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence, Union

import numpy as np
import torch

from errors import ValidationError


class DenseVector:
    """Immutable dense vector of float64 values.

    The backing numpy array is marked read-only, so a vector can be shared
    between threads and tasks without copying.
    """

    __slots__ = ("_values",)

    def __init__(self, values: Union[Iterable[float], np.ndarray, torch.Tensor]):
        if isinstance(values, torch.Tensor):
            values = values.detach().cpu().numpy()
        arr = np.array(values, dtype=np.float64).reshape(-1)
        arr.setflags(write=False)
        self._values = arr

    @property
    def size(self) -> int:
        return self._values.shape[0]

    def __len__(self):
        return self.size

    def __getitem__(self, i):
        return float(self._values[i])

    def __iter__(self):
        return (float(v) for v in self._values)

    def __eq__(self, other):
        if not isinstance(other, DenseVector):
            return NotImplemented
        return np.array_equal(self._values, other._values)

    def __reduce__(self):
        return (DenseVector, (self._values,))

    def __hash__(self):
        return hash(self._values.tobytes())

    def __repr__(self):
        return f"DenseVector({self._values.tolist()})"

    def to_numpy(self) -> np.ndarray:
        return self._values

    def to_tensor(self) -> torch.Tensor:
        # copy: torch refuses to wrap read-only buffers without warning
        return torch.tensor(self._values, dtype=torch.float64)

    def dot(self, other: DenseVector) -> float:
        if other.size != self.size:
            raise ValidationError(f"dimension mismatch: {self.size} vs {other.size}")
        return float(self._values @ other._values)


def dense(*values) -> DenseVector:
    """dense(1.0, 2.0) or dense([1.0, 2.0])"""
    if len(values) == 1 and not isinstance(values[0], (int, float)):
        return DenseVector(values[0])
    return DenseVector(values)


@dataclass(frozen=True)
class LabeledPoint:
    """A (label, features) training example"""

    label: float
    features: DenseVector

    def __post_init__(self):
        object.__setattr__(self, "label", float(self.label))
        if not isinstance(self.features, DenseVector):
            object.__setattr__(self, "features", DenseVector(self.features))


def _stack(vectors: Sequence[DenseVector]) -> np.ndarray:
    dims = {v.size for v in vectors}
    if len(dims) > 1:
        raise ValidationError(f"inconsistent feature dimensions across records: {sorted(dims)}")
    return np.stack([v.to_numpy() for v in vectors])


@dataclass
class Partition:
    """One partition's records as a feature matrix and a label vector.

    ``labels`` is None for partitions holding bare feature vectors
    (prediction inputs).
    """

    features: torch.Tensor  # (n, d) float64
    labels: Optional[torch.Tensor] = None  # (n,) float64

    def __len__(self):
        return self.features.shape[0]

    @property
    def num_features(self) -> int:
        return self.features.shape[1] if self.features.dim() == 2 else 0

    @classmethod
    def from_points(cls, points: Sequence[LabeledPoint], num_features: Optional[int] = None) -> Partition:
        if not points:
            return cls(torch.zeros(0, num_features or 0, dtype=torch.float64), torch.zeros(0, dtype=torch.float64))
        X = torch.from_numpy(_stack([p.features for p in points]))
        y = torch.tensor([p.label for p in points], dtype=torch.float64)
        return cls(X, y)

    @classmethod
    def from_vectors(cls, vectors: Sequence[DenseVector], num_features: Optional[int] = None) -> Partition:
        if not vectors:
            return cls(torch.zeros(0, num_features or 0, dtype=torch.float64))
        X = torch.from_numpy(_stack(vectors))
        return cls(X)

    def to_points(self) -> list[LabeledPoint]:
        if self.labels is None:
            raise ValueError("partition has no labels")
        return [LabeledPoint(float(self.labels[i]), DenseVector(self.features[i])) for i in range(len(self))]


def generate_logistic_input(offset: float, scale: float, n_points: int, seed: int) -> list[LabeledPoint]:
    """Generate points where label ~ Bernoulli(sigmoid(offset + scale * x)), x ~ N(0, 1)

    Args:
        offset: Intercept of the generating model
        scale: Weight of the single feature
        n_points: Number of samples
        seed: Random seed for reproducibility
    """
    gen = torch.Generator().manual_seed(seed)
    x = torch.randn(n_points, generator=gen, dtype=torch.float64)
    p = torch.sigmoid(offset + scale * x)
    y = (torch.rand(n_points, generator=gen, dtype=torch.float64) < p).to(torch.float64)
    return [LabeledPoint(float(y[i]), DenseVector([float(x[i])])) for i in range(n_points)]
