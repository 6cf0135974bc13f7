"""Training frontends for logistic regression.

``GeneralizedLinearAlgorithm`` validates the data, builds the gradient
oracle and hands iteration off to whichever ``Optimizer`` it holds. The two
concrete frontends only differ in the optimizer they plug in.
"""

from __future__ import annotations
from typing import Optional, Sequence, Union

import torch

from aggregator import GradientAggregator
from config import LBFGSConfig, RuntimeConfig, SGDConfig
from data import DenseVector, LabeledPoint, Partition
from dataset import PartitionedDataset
from errors import ValidationError
from gradient import Gradient, LogisticGradient
from lbfgs import LBFGS
from logger import logger
from metrics import MetricsCollector
from model import LogisticRegressionModel
from optimizer import OptimizationResult, Optimizer
from sgd import GradientDescent
from updater import SimpleUpdater, SquaredL2Updater
from utils import init_ray

Dataset = Union[PartitionedDataset, Sequence[LabeledPoint]]


def _count_invalid_labels(index: int, partition: Partition) -> int:
    if partition.labels is None:
        return len(partition)
    y = partition.labels
    return int(((y != 0.0) & (y != 1.0)).sum())


def _add(a: int, b: int) -> int:
    return a + b


class GeneralizedLinearAlgorithm:
    def __init__(self, optimizer: Optimizer, gradient: Optional[Gradient] = None, runtime: Optional[RuntimeConfig] = None):
        self.optimizer = optimizer
        self.gradient = gradient or LogisticGradient()
        self.runtime = runtime or RuntimeConfig()
        self.add_intercept = False
        self.validate_data = True
        self.metrics: Optional[MetricsCollector] = None
        self.last_result: Optional[OptimizationResult] = None

    def set_intercept(self, add_intercept: bool):
        self.add_intercept = add_intercept
        return self

    def set_validate_data(self, validate_data: bool):
        self.validate_data = validate_data
        return self

    def set_metrics(self, metrics: Optional[MetricsCollector]):
        self.metrics = metrics
        return self

    def _as_dataset(self, data: Dataset) -> PartitionedDataset:
        if isinstance(data, PartitionedDataset):
            return data
        return PartitionedDataset.from_points(
            list(data), num_partitions=self.runtime.num_partitions, max_task_bytes=self.runtime.max_task_bytes
        )

    def _num_features(self, dataset: PartitionedDataset) -> int:
        dims = dataset.feature_dimensions()
        if not dims:
            raise ValidationError("training dataset is empty")
        if len(dims) > 1:
            raise ValidationError(f"inconsistent feature dimensions across records: {sorted(dims)}")
        return dims.pop()

    def _initial_theta(self, oracle: GradientAggregator, initial_weights) -> torch.Tensor:
        d = oracle.num_features
        if initial_weights is None:
            return torch.zeros(oracle.dim, dtype=torch.float64)
        if isinstance(initial_weights, DenseVector):
            w = initial_weights.to_tensor()
        else:
            w = torch.as_tensor(initial_weights, dtype=torch.float64).reshape(-1).clone()
        if w.shape[0] == d:
            return oracle.join(w, 0.0)
        if self.add_intercept and w.shape[0] == d + 1:
            # trailing slot seeds the intercept
            return w
        expected = f"{d} or {d + 1}" if self.add_intercept else f"{d}"
        raise ValidationError(f"initial weights have dimension {w.shape[0]}, expected {expected}")

    def run(self, data: Dataset, initial_weights=None) -> LogisticRegressionModel:
        """Train on ``data``, optionally starting from ``initial_weights``"""
        self.optimizer.validate()
        init_ray(self.runtime.num_cpus)
        dataset = self._as_dataset(data)
        d = self._num_features(dataset)
        if self.validate_data:
            invalid = dataset.tree_aggregate(_count_invalid_labels, _add)
            if invalid:
                raise ValidationError(f"{invalid} labels are not in {{0.0, 1.0}}")

        oracle = GradientAggregator(dataset, d, self.gradient, fit_intercept=self.add_intercept, metrics=self.metrics)
        theta0 = self._initial_theta(oracle, initial_weights)

        name = type(self).__name__
        logger.info(
            f"[{name}] training on {dataset.num_partitions} partitions, "
            f"num_features={d}, intercept={self.add_intercept}"
        )
        if self.metrics:
            self.metrics.start_training()
        result = self.optimizer.optimize(oracle, theta0, metrics=self.metrics)
        if self.metrics:
            self.metrics.stop_training()
            self.metrics.record_final(
                result.num_iterations, result.loss_history[-1] if result.loss_history else None, result.converged
            )
        self.last_result = result

        weights, intercept = oracle.split(result.weights)
        logger.info(
            f"[{name}] done: iterations={result.num_iterations} evaluations={result.num_evaluations} "
            f"converged={result.converged} intercept={intercept:.6f}"
        )
        return LogisticRegressionModel(weights, intercept)


class LogisticRegressionWithSGD(GeneralizedLinearAlgorithm):
    """Logistic regression trained with mini-batch gradient descent"""

    def __init__(
        self,
        step_size: float = 1.0,
        num_iterations: int = 100,
        reg_param: float = 0.0,
        mini_batch_fraction: float = 1.0,
        runtime: Optional[RuntimeConfig] = None,
    ):
        config = SGDConfig(
            step_size=step_size,
            num_iterations=num_iterations,
            reg_param=reg_param,
            mini_batch_fraction=mini_batch_fraction,
        )
        updater = SquaredL2Updater() if reg_param > 0 else SimpleUpdater()
        super().__init__(GradientDescent(updater, config), runtime=runtime)


class LogisticRegressionWithLBFGS(GeneralizedLinearAlgorithm):
    """Logistic regression trained with L-BFGS"""

    def __init__(self, config: Optional[LBFGSConfig] = None, runtime: Optional[RuntimeConfig] = None):
        super().__init__(LBFGS(SquaredL2Updater(), config or LBFGSConfig()), runtime=runtime)

    def set_num_iterations(self, num_iterations: int):
        self.optimizer.set_max_num_iterations(num_iterations)
        return self


def train_sgd(
    data: Dataset,
    num_iterations: int,
    step_size: float = 1.0,
    mini_batch_fraction: float = 1.0,
    reg_param: float = 0.0,
    initial_weights=None,
    intercept: bool = False,
) -> LogisticRegressionModel:
    """Train with gradient descent; L2 regularization is used when ``reg_param > 0``"""
    lr = LogisticRegressionWithSGD(step_size, num_iterations, reg_param, mini_batch_fraction)
    return lr.set_intercept(intercept).run(data, initial_weights)


def train_lbfgs(
    data: Dataset,
    num_corrections: int = 10,
    convergence_tol: float = 1e-6,
    max_evaluations: Optional[int] = None,
    max_num_iterations: int = 100,
    reg_param: float = 0.0,
    initial_weights=None,
    intercept: bool = False,
) -> LogisticRegressionModel:
    config = LBFGSConfig(
        num_corrections=num_corrections,
        convergence_tol=convergence_tol,
        max_num_iterations=max_num_iterations,
        max_evaluations=max_evaluations,
        reg_param=reg_param,
    )
    return LogisticRegressionWithLBFGS(config).set_intercept(intercept).run(data, initial_weights)
