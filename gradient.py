"""Per-example loss/gradient functions.

A ``Gradient`` is pure: it reads the weight snapshot and the records it is
given and never keeps state between calls, so one instance can be shipped to
every partition and used concurrently.
"""

from __future__ import annotations
from abc import ABC, abstractmethod

import torch
import torch.nn.functional as F

from data import DenseVector, LabeledPoint


class Gradient(ABC):
    """Loss/gradient contract used by the aggregator"""

    # rows per block when folding a partition
    block_size: int = 4096

    def compute(self, point: LabeledPoint, weights: torch.Tensor, intercept: float = 0.0) -> tuple[float, torch.Tensor, float]:
        """Loss and gradient of a single example.

        Returns:
            (loss, gradient w.r.t. weights, gradient w.r.t. intercept)
        """
        X = point.features.to_tensor().unsqueeze(0)
        y = torch.tensor([point.label], dtype=torch.float64)
        grad = torch.zeros_like(weights)
        loss, grad_intercept = self.accumulate(X, y, weights, intercept, grad)
        return loss, grad, grad_intercept

    @abstractmethod
    def accumulate(
        self,
        X: torch.Tensor,
        y: torch.Tensor,
        weights: torch.Tensor,
        intercept: float,
        grad_sum: torch.Tensor,
    ) -> tuple[float, float]:
        """Add the gradients of every row of ``X`` into ``grad_sum`` in place.

        Returns the summed loss and the summed intercept gradient.
        """


class LogisticGradient(Gradient):
    """Log-loss of a binary logistic model with labels in {0, 1}.

    For margin m = w.x + b and p = sigmoid(m):
        loss     = log(1 + exp(m)) - y * m
        gradient = (p - y) * x
    """

    def margins(self, X: torch.Tensor, weights: torch.Tensor, intercept: float) -> torch.Tensor:
        return X @ weights + intercept

    def accumulate(self, X, y, weights, intercept, grad_sum):
        loss_sum = 0.0
        grad_intercept_sum = 0.0
        for start in range(0, X.shape[0], self.block_size):
            Xb = X[start:start + self.block_size]
            yb = y[start:start + self.block_size]
            m = self.margins(Xb, weights, intercept)
            multiplier = torch.sigmoid(m) - yb
            grad_sum.addmv_(Xb.t(), multiplier)
            grad_intercept_sum += float(multiplier.sum())
            # log1p-stabilized for large |m|
            loss_sum += float(F.binary_cross_entropy_with_logits(m, yb, reduction="sum"))
        return loss_sum, grad_intercept_sum

    def __repr__(self):
        return "LogisticGradient()"


def loss_and_gradient(point: LabeledPoint, weights, intercept: float = 0.0) -> tuple[float, DenseVector, float]:
    """Convenience wrapper over ``LogisticGradient.compute`` returning a ``DenseVector``"""
    w = weights.to_tensor() if isinstance(weights, DenseVector) else torch.as_tensor(weights, dtype=torch.float64)
    loss, grad, grad_intercept = LogisticGradient().compute(point, w, intercept)
    return loss, DenseVector(grad), grad_intercept
