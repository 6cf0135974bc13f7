"""Distributed loss/gradient aggregation.

Each evaluation is one scatter/gather over the dataset:
  1) the current weight snapshot is put in the object store once
  2) every partition folds its records into one local accumulator
  3) partial results are summed with a pairwise tree reduction

The task shipped to a partition only holds ``_partition_gradient``, the
``Gradient`` instance and a few scalars; the weights travel as an object
reference, so the task size does not grow with the data or the model.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Optional, TYPE_CHECKING

import torch

from data import Partition
from dataset import PartitionedDataset
from errors import TrainingError
from gradient import Gradient, LogisticGradient
from logger import logger

if TYPE_CHECKING:
    from metrics import MetricsCollector


@dataclass(frozen=True)
class AggregateResult:
    loss_sum: float
    gradient_sum: torch.Tensor
    intercept_gradient_sum: float
    count: int

    def merge(self, other: AggregateResult) -> AggregateResult:
        return AggregateResult(
            self.loss_sum + other.loss_sum,
            self.gradient_sum + other.gradient_sum,
            self.intercept_gradient_sum + other.intercept_gradient_sum,
            self.count + other.count,
        )

    def averaged(self) -> tuple[float, torch.Tensor, float]:
        if self.count == 0:
            raise TrainingError("cannot average over zero examples")
        return (
            self.loss_sum / self.count,
            self.gradient_sum / self.count,
            self.intercept_gradient_sum / self.count,
        )


def sample_seed(seed: int, iteration: int, index: int) -> int:
    return ((seed * 1_000_003 + iteration) * 1_000_003 + index) % (2**63)


def _partition_gradient(
    index: int,
    partition: Partition,
    weights: torch.Tensor,
    intercept: float,
    gradient: Gradient,
    fraction: float,
    seed: int,
    iteration: int,
) -> AggregateResult:
    X, y = partition.features, partition.labels
    if fraction < 1.0 and len(partition) > 0:
        # Bernoulli sampling, independent per partition
        gen = torch.Generator().manual_seed(sample_seed(seed, iteration, index))
        keep = torch.rand(len(partition), generator=gen, dtype=torch.float64) < fraction
        X, y = X[keep], y[keep]
    grad_sum = torch.zeros_like(weights)
    loss_sum, grad_intercept_sum = gradient.accumulate(X, y, weights, intercept, grad_sum)
    return AggregateResult(loss_sum, grad_sum, grad_intercept_sum, X.shape[0])


def _merge(a: AggregateResult, b: AggregateResult) -> AggregateResult:
    return a.merge(b)


class GradientAggregator:
    """Objective/gradient oracle over a partitioned dataset.

    Optimizers see a flat parameter vector ``theta``: the weights, followed by
    the intercept when ``fit_intercept`` is set. The intercept is modeled as a
    constant 1.0 feature without ever materializing the augmented vectors.
    """

    def __init__(
        self,
        dataset: PartitionedDataset,
        num_features: int,
        gradient: Optional[Gradient] = None,
        fit_intercept: bool = False,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.dataset = dataset
        self.num_features = num_features
        self.gradient = gradient or LogisticGradient()
        self.fit_intercept = fit_intercept
        self.metrics = metrics
        self.num_evaluations = 0

    @property
    def dim(self) -> int:
        return self.num_features + (1 if self.fit_intercept else 0)

    @property
    def num_penalized(self) -> int:
        return self.num_features

    def split(self, theta: torch.Tensor) -> tuple[torch.Tensor, float]:
        if self.fit_intercept:
            return theta[: self.num_features].clone(), float(theta[self.num_features])
        return theta.clone(), 0.0

    def join(self, weights: torch.Tensor, intercept: float = 0.0) -> torch.Tensor:
        if self.fit_intercept:
            return torch.cat([weights, torch.tensor([intercept], dtype=torch.float64)])
        return weights.clone()

    def aggregate(
        self,
        weights: torch.Tensor,
        intercept: float = 0.0,
        mini_batch_fraction: float = 1.0,
        seed: int = 0,
        iteration: int = 0,
    ) -> AggregateResult:
        """Sum loss and gradients over every (sampled) record"""
        weights_ref = self.dataset.broadcast(weights.detach().clone())
        result = self.dataset.tree_aggregate(
            _partition_gradient,
            _merge,
            weights_ref,
            float(intercept),
            self.gradient,
            float(mini_batch_fraction),
            int(seed),
            int(iteration),
        )
        self.num_evaluations += 1
        logger.debug(
            f"[aggregate] eval={self.num_evaluations} count={result.count} "
            f"loss_sum={result.loss_sum:.6f} task_bytes={self.dataset.last_task_bytes}"
        )
        if self.metrics:
            self.metrics.record_evaluation(
                self.num_evaluations,
                result.loss_sum / result.count if result.count else float("nan"),
                count=result.count,
                task_bytes=self.dataset.last_task_bytes,
            )
        return result

    def evaluate(
        self,
        theta: torch.Tensor,
        mini_batch_fraction: float = 1.0,
        seed: int = 0,
        iteration: int = 0,
    ) -> tuple[float, torch.Tensor, int]:
        """Summed loss, summed flat gradient and example count at ``theta``"""
        weights, intercept = self.split(theta)
        result = self.aggregate(weights, intercept, mini_batch_fraction, seed, iteration)
        if self.fit_intercept:
            grad = torch.cat([result.gradient_sum, torch.tensor([result.intercept_gradient_sum], dtype=torch.float64)])
        else:
            grad = result.gradient_sum
        return result.loss_sum, grad, result.count

    def __call__(self, theta: torch.Tensor) -> tuple[float, torch.Tensor]:
        """Averaged loss and gradient over the full dataset"""
        loss_sum, grad_sum, count = self.evaluate(theta)
        if count == 0:
            raise TrainingError("cannot evaluate the objective on an empty dataset")
        return loss_sum / count, grad_sum / count
