from __future__ import annotations
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional, TYPE_CHECKING

import torch

from errors import NumericalError, ValidationError

if TYPE_CHECKING:
    from aggregator import GradientAggregator
    from metrics import MetricsCollector
    from updater import Updater


@dataclass
class OptimizationResult:
    weights: torch.Tensor
    loss_history: list[float] = field(default_factory=list)
    num_iterations: int = 0
    num_evaluations: int = 0
    converged: bool = False


class Optimizer(ABC):
    """Minimizes the objective exposed by a ``GradientAggregator``"""

    @abstractmethod
    def optimize(
        self,
        oracle: GradientAggregator,
        initial_weights: torch.Tensor,
        metrics: Optional[MetricsCollector] = None,
    ) -> OptimizationResult:
        ...

    def validate(self):
        """Raise ``ValidationError`` for invalid settings"""


def check_reg_param(updater: Updater, reg_param: float):
    if reg_param > 0 and not updater.regularizes:
        raise ValidationError(
            f"reg_param={reg_param} has no effect with {type(updater).__name__}; use SquaredL2Updater"
        )


def check_finite(loss: float, gradient: torch.Tensor, where: str):
    if not math.isfinite(loss):
        raise NumericalError(f"{where}: loss is {loss}")
    if not bool(torch.isfinite(gradient).all()):
        raise NumericalError(f"{where}: gradient contains NaN or Inf")
