"""Trained binary logistic regression model."""

from __future__ import annotations
from typing import Optional, Sequence, Union

import numpy as np
import torch

from data import DenseVector, Partition
from dataset import PartitionedDataset
from errors import ValidationError


def _predict_partition(partition, model: LogisticRegressionModel) -> torch.Tensor:
    X = partition.features if isinstance(partition, Partition) else partition
    return model.predict_tensor(X)


class LogisticRegressionModel:
    """Weights, intercept and decision threshold.

    Instances are never modified after construction; ``with_threshold`` and
    ``clear_threshold`` return new models. Single-vector and batch prediction
    both go through ``predict_tensor``.

    Args:
        weights: Feature weights (without the intercept)
        intercept: Bias term
        threshold: Probability above which the label is 1.0; None returns
            raw probabilities from ``predict``
    """

    def __init__(self, weights, intercept: float = 0.0, threshold: Optional[float] = 0.5):
        self._weights = DenseVector(weights)
        self._intercept = float(intercept)
        self._threshold = None if threshold is None else float(threshold)

    @property
    def weights(self) -> DenseVector:
        return self._weights

    @property
    def intercept(self) -> float:
        return self._intercept

    @property
    def threshold(self) -> Optional[float]:
        return self._threshold

    @property
    def num_features(self) -> int:
        return self._weights.size

    def with_threshold(self, threshold: Optional[float]) -> LogisticRegressionModel:
        return LogisticRegressionModel(self._weights, self._intercept, threshold)

    def clear_threshold(self) -> LogisticRegressionModel:
        return self.with_threshold(None)

    def __repr__(self):
        return (
            f"LogisticRegressionModel(num_features={self.num_features}, "
            f"intercept={self._intercept:.6f}, threshold={self._threshold})"
        )

    # --------------------------- prediction ---------------------------

    def predict_proba_tensor(self, X: torch.Tensor) -> torch.Tensor:
        X = torch.as_tensor(X, dtype=torch.float64)
        if X.dim() == 1:
            X = X.unsqueeze(0)
        if X.shape[1] != self.num_features:
            raise ValidationError(f"expected {self.num_features} features, got {X.shape[1]}")
        w = torch.from_numpy(self._weights.to_numpy().copy())
        return torch.sigmoid(X @ w + self._intercept)

    def predict_tensor(self, X: torch.Tensor) -> torch.Tensor:
        p = self.predict_proba_tensor(X)
        if self._threshold is None:
            return p
        return (p > self._threshold).to(torch.float64)

    def predict(self, data: Union[DenseVector, Sequence, np.ndarray, torch.Tensor, PartitionedDataset]):
        """Predict one vector, a local batch, or a partitioned dataset.

        Returns a float for a single vector, a list of floats for a sequence
        of vectors, a tensor for a tensor/array, and a ``PartitionedDataset``
        of prediction tensors for a partitioned dataset.
        """
        if isinstance(data, PartitionedDataset):
            # the model is published once; each task only carries a reference
            return data.map_partitions(_predict_partition, data.broadcast(self))
        if isinstance(data, DenseVector):
            return float(self.predict_tensor(data.to_tensor())[0])
        if isinstance(data, (torch.Tensor, np.ndarray)):
            X = torch.as_tensor(data, dtype=torch.float64)
            if X.dim() == 1:
                return float(self.predict_tensor(X)[0])
            return self.predict_tensor(X)
        vectors = [v if isinstance(v, DenseVector) else DenseVector(v) for v in data]
        if not vectors:
            return []
        return self.predict_tensor(Partition.from_vectors(vectors).features).tolist()

    def predict_proba(self, vector: DenseVector) -> float:
        return float(self.predict_proba_tensor(vector.to_tensor())[0])
