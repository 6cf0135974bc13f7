from __future__ import annotations
import os
import random
import logging
import sys
from typing import Optional

import numpy as np
import ray
import torch
from ray import cloudpickle

from errors import TaskTooLargeError


def setup_task_logging():
    """Configure logging for Ray tasks (they run in separate worker processes).

    The module-level configuration in logger.py runs on import, but a worker
    may have imported it before its stdout was redirected, so reattach the
    handler if it went missing.
    """
    from logger import DATE_FORMAT, LOG_FORMAT, logger as task_logger

    if not task_logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setLevel(logging.INFO)
        handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT))
        task_logger.addHandler(handler)
        task_logger.setLevel(logging.DEBUG)

    return task_logger


def init_ray(num_cpus: Optional[int] = None):
    """Start (or attach to) a local Ray runtime.

    Workers get this directory on PYTHONPATH so the flat modules unpickle
    there without an install.
    """
    if ray.is_initialized():
        return
    here = os.path.dirname(os.path.abspath(__file__))
    pythonpath = os.pathsep.join(p for p in (here, os.environ.get("PYTHONPATH")) if p)
    ray.init(
        num_cpus=num_cpus,
        ignore_reinit_error=True,
        include_dashboard=False,
        runtime_env={"env_vars": {"PYTHONPATH": pythonpath}},
    )


def set_seed(seed: int = 1337):
    random.seed(seed)
    np.random.seed(seed)
    torch.manual_seed(seed)


def closure_size(fn, *args) -> int:
    """Size in bytes of the pickled task definition (function plus inline arguments)"""
    return len(cloudpickle.dumps((fn, args)))


def check_closure_size(fn, args: tuple, limit: int) -> int:
    size = closure_size(fn, *args)
    if size > limit:
        raise TaskTooLargeError(size, limit)
    return size
