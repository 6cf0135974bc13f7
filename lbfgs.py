"""Limited-memory BFGS on top of ``torch.optim.LBFGS``.

The aggregator is the objective: every closure call is one distributed
evaluation at the optimizer's current point, including each trial point of
the strong-Wolfe line search. Regularization goes through the ``Updater``
so both optimizers share one penalty definition.
"""

from __future__ import annotations
from typing import Optional, TYPE_CHECKING

import torch

from config import LBFGSConfig
from errors import TrainingError
from logger import logger
from optimizer import OptimizationResult, Optimizer, check_finite, check_reg_param
from updater import SquaredL2Updater, Updater

if TYPE_CHECKING:
    from aggregator import GradientAggregator
    from metrics import MetricsCollector


class LBFGS(Optimizer):
    def __init__(self, updater: Optional[Updater] = None, config: Optional[LBFGSConfig] = None):
        self.updater = updater or SquaredL2Updater()
        self.config = config or LBFGSConfig()

    def set_num_corrections(self, num_corrections: int) -> LBFGS:
        self.config.num_corrections = num_corrections
        return self

    def set_convergence_tol(self, tol: float) -> LBFGS:
        self.config.convergence_tol = tol
        return self

    def set_max_num_iterations(self, n: int) -> LBFGS:
        self.config.max_num_iterations = n
        return self

    def set_max_evaluations(self, n: Optional[int]) -> LBFGS:
        self.config.max_evaluations = n
        return self

    def set_reg_param(self, reg_param: float) -> LBFGS:
        self.config.reg_param = reg_param
        return self

    def set_updater(self, updater: Updater) -> LBFGS:
        self.updater = updater
        return self

    def validate(self):
        self.config.validate()
        check_reg_param(self.updater, self.config.reg_param)

    def _regularization(self, w: torch.Tensor, k: int) -> tuple[float, torch.Tensor]:
        # value at w (zero step), and gradient as w minus a unit step from a zero gradient
        zeros = torch.zeros_like(w)
        _, reg_val = self.updater.compute(w, zeros, 0.0, 1, self.config.reg_param, k)
        shrunk, _ = self.updater.compute(w, zeros, 1.0, 1, self.config.reg_param, k)
        return reg_val, w - shrunk

    def optimize(self, oracle, initial_weights, metrics=None):
        cfg = self.config
        self.validate()
        k = oracle.num_penalized
        budget = cfg.evaluation_budget

        theta = initial_weights.detach().clone().to(torch.float64).requires_grad_(True)
        optimizer = torch.optim.LBFGS(
            [theta],
            lr=1.0,
            max_iter=cfg.max_num_iterations,
            max_eval=budget,
            tolerance_grad=cfg.convergence_tol,
            tolerance_change=cfg.tolerance_change,
            history_size=cfg.num_corrections,
            line_search_fn="strong_wolfe",
        )
        history: list[float] = []

        def closure():
            optimizer.zero_grad()
            # immutable snapshot; torch updates theta in place between calls
            w = theta.detach().clone()
            loss_sum, grad_sum, count = oracle.evaluate(w)
            if count == 0:
                raise TrainingError("cannot evaluate the objective on an empty dataset")
            reg_val, reg_grad = self._regularization(w, k)
            loss = loss_sum / count + reg_val
            grad = grad_sum / count + reg_grad
            check_finite(loss, grad, f"L-BFGS evaluation {len(history) + 1}")
            theta.grad = grad
            history.append(loss)
            logger.debug(f"[LBFGS] eval={len(history)} loss={loss:.8f} |g|_inf={float(grad.abs().max()):.3e}")
            if metrics:
                metrics.record_iteration(len(history), loss)
            return torch.tensor(loss, dtype=torch.float64)

        optimizer.step(closure)

        state = optimizer.state[theta]
        n_iter = state.get("n_iter", 0)
        n_evals = state.get("func_evals", len(history))
        converged = n_iter < cfg.max_num_iterations and n_evals < budget
        if converged:
            logger.info(f"[LBFGS] converged after {n_iter} iterations ({n_evals} evaluations), loss={history[-1]:.6f}")
        else:
            logger.warning(f"[LBFGS] stopped at budget: {n_iter} iterations, {n_evals} evaluations")
        return OptimizationResult(
            weights=theta.detach().clone(),
            loss_history=history,
            num_iterations=n_iter,
            num_evaluations=len(history),
            converged=converged,
        )
