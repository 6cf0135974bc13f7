"""Mini-batch gradient descent driven by the distributed aggregator."""

from __future__ import annotations
from typing import Optional, TYPE_CHECKING

import torch

from config import SGDConfig
from logger import logger
from optimizer import OptimizationResult, Optimizer, check_finite, check_reg_param
from updater import SimpleUpdater, Updater

if TYPE_CHECKING:
    from aggregator import GradientAggregator
    from metrics import MetricsCollector


class GradientDescent(Optimizer):
    """Each iteration makes one aggregator call and one updater call.

    The loss history holds ``data loss + regularization`` per iteration; the
    run stops early when two consecutive entries differ by less than
    ``convergence_tol`` (relative), otherwise after ``num_iterations``.
    """

    def __init__(self, updater: Optional[Updater] = None, config: Optional[SGDConfig] = None):
        self.updater = updater or SimpleUpdater()
        self.config = config or SGDConfig()

    def set_step_size(self, step_size: float) -> GradientDescent:
        self.config.step_size = step_size
        return self

    def set_num_iterations(self, num_iterations: int) -> GradientDescent:
        self.config.num_iterations = num_iterations
        return self

    def set_reg_param(self, reg_param: float) -> GradientDescent:
        self.config.reg_param = reg_param
        return self

    def set_mini_batch_fraction(self, fraction: float) -> GradientDescent:
        self.config.mini_batch_fraction = fraction
        return self

    def set_convergence_tol(self, tol: float) -> GradientDescent:
        self.config.convergence_tol = tol
        return self

    def set_seed(self, seed: int) -> GradientDescent:
        self.config.seed = seed
        return self

    def set_updater(self, updater: Updater) -> GradientDescent:
        self.updater = updater
        return self

    def validate(self):
        self.config.validate()
        check_reg_param(self.updater, self.config.reg_param)

    def optimize(self, oracle, initial_weights, metrics=None):
        cfg = self.config
        self.validate()
        k = oracle.num_penalized
        weights = initial_weights.detach().clone()
        # penalty of the starting point, reported with the first data loss
        _, reg_val = self.updater.compute(weights, torch.zeros_like(weights), 0.0, 1, cfg.reg_param, k)

        history: list[float] = []
        converged = False
        it = 0
        for it in range(1, cfg.num_iterations + 1):
            loss_sum, grad_sum, count = oracle.evaluate(weights, cfg.mini_batch_fraction, cfg.seed, it)
            if count == 0:
                logger.warning(f"[SGD] iter={it} sampled no examples, skipping update")
                continue
            loss = loss_sum / count
            grad = grad_sum / count
            check_finite(loss, grad, f"SGD iteration {it}")

            history.append(loss + reg_val)
            weights, reg_val = self.updater.compute(weights, grad, cfg.step_size, it, cfg.reg_param, k)
            check_finite(reg_val, weights, f"SGD update {it}")

            logger.debug(f"[SGD] iter={it} loss={history[-1]:.6f} count={count}")
            if metrics:
                metrics.record_iteration(it, history[-1])

            if cfg.convergence_tol > 0 and len(history) > 1:
                prev, cur = history[-2], history[-1]
                if abs(prev - cur) <= cfg.convergence_tol * max(abs(cur), 1e-12):
                    converged = True
                    logger.info(f"[SGD] converged after {it} iterations, loss={cur:.6f}")
                    break

        if not converged:
            logger.warning(f"[SGD] reached iteration cap {cfg.num_iterations}")
        if history:
            logger.info(f"[SGD] loss history (first, last): {history[0]:.6f}, {history[-1]:.6f}")
        return OptimizationResult(
            weights=weights,
            loss_history=history,
            num_iterations=it,
            num_evaluations=oracle.num_evaluations,
            converged=converged,
        )
