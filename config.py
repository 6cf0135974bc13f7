from __future__ import annotations
from dataclasses import dataclass
from typing import Optional

from errors import ValidationError


@dataclass
class SGDConfig:
    step_size: float = 1.0  # initial step size, decayed as step_size / sqrt(iter)
    num_iterations: int = 100  # iteration cap
    reg_param: float = 0.0  # L2 strength (only used by SquaredL2Updater)
    mini_batch_fraction: float = 1.0  # fraction of each partition sampled per iteration
    convergence_tol: float = 1e-7  # relative loss change to stop early (0 = never)
    seed: int = 42  # base seed for mini-batch sampling

    def validate(self):
        if self.step_size <= 0:
            raise ValidationError(f"step_size must be positive, got {self.step_size}")
        if self.num_iterations <= 0:
            raise ValidationError(f"num_iterations must be positive, got {self.num_iterations}")
        if not 0.0 < self.mini_batch_fraction <= 1.0:
            raise ValidationError(f"mini_batch_fraction must be in (0, 1], got {self.mini_batch_fraction}")
        if self.reg_param < 0:
            raise ValidationError(f"reg_param must be non-negative, got {self.reg_param}")
        if self.convergence_tol < 0:
            raise ValidationError(f"convergence_tol must be non-negative, got {self.convergence_tol}")


@dataclass
class LBFGSConfig:
    num_corrections: int = 10  # history depth of (s, y) curvature pairs
    convergence_tol: float = 1e-6  # stop when max |gradient| falls below this
    tolerance_change: float = 1e-9  # stop when loss/step change falls below this
    max_num_iterations: int = 100
    max_evaluations: Optional[int] = None  # oracle call cap (None = 1.25 * max_num_iterations)
    reg_param: float = 0.0

    def validate(self):
        if self.num_corrections <= 0:
            raise ValidationError(f"num_corrections must be positive, got {self.num_corrections}")
        if self.max_num_iterations <= 0:
            raise ValidationError(f"max_num_iterations must be positive, got {self.max_num_iterations}")
        if self.max_evaluations is not None and self.max_evaluations <= 0:
            raise ValidationError(f"max_evaluations must be positive, got {self.max_evaluations}")
        if self.convergence_tol < 0 or self.tolerance_change < 0:
            raise ValidationError("tolerances must be non-negative")
        if self.reg_param < 0:
            raise ValidationError(f"reg_param must be non-negative, got {self.reg_param}")

    @property
    def evaluation_budget(self) -> int:
        if self.max_evaluations is not None:
            return self.max_evaluations
        return int(self.max_num_iterations * 1.25)


@dataclass
class RuntimeConfig:
    num_partitions: int = 2  # default partition count for from_points/from_tensors
    max_task_bytes: int = 1024 * 1024  # serialized closure limit per task
    num_cpus: Optional[int] = None  # passed to ray.init (None = all cores)
