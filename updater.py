"""Weight update rules for gradient descent.

An updater owns the step-size schedule and the regularization penalty.
Optimizers only call ``compute``; they never do the update arithmetic
themselves.
"""

from __future__ import annotations
import math
from abc import ABC, abstractmethod
from typing import Optional

import torch


class Updater(ABC):
    # whether reg_param changes the update
    regularizes: bool = False

    @abstractmethod
    def compute(
        self,
        weights_old: torch.Tensor,
        gradient: torch.Tensor,
        step_size: float,
        iteration: int,
        reg_param: float,
        num_penalized: Optional[int] = None,
    ) -> tuple[torch.Tensor, float]:
        """Return new weights and the regularization value at the new weights.

        Args:
            weights_old: Current weights (never modified)
            gradient: Averaged gradient of the data loss
            step_size: Initial step size
            iteration: 1-based iteration index
            reg_param: Regularization strength
            num_penalized: Only the first ``num_penalized`` slots are
                regularized (the intercept slot, when present, is last).
                None regularizes every slot.
        """

    @staticmethod
    def step(step_size: float, iteration: int) -> float:
        return step_size / math.sqrt(iteration)


class SimpleUpdater(Updater):
    """Plain gradient step with a 1/sqrt(iter) schedule, no regularization"""

    def compute(self, weights_old, gradient, step_size, iteration, reg_param, num_penalized=None):
        weights_new = weights_old - self.step(step_size, iteration) * gradient
        return weights_new, 0.0


class SquaredL2Updater(Updater):
    """Gradient step plus L2 shrinkage; penalty is 0.5 * reg_param * ||w||^2"""

    regularizes = True

    def compute(self, weights_old, gradient, step_size, iteration, reg_param, num_penalized=None):
        k = weights_old.shape[0] if num_penalized is None else num_penalized
        step = self.step(step_size, iteration)
        shrink = torch.ones_like(weights_old)
        shrink[:k] = 1.0 - step * reg_param
        weights_new = weights_old * shrink - step * gradient
        penalized = weights_new[:k]
        reg_val = 0.5 * reg_param * float(penalized @ penalized)
        return weights_new, reg_val
