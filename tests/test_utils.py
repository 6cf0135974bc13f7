import torch

from logger import logger
from utils import closure_size, setup_task_logging


def _small(index, part):
    return len(part)


def test_closure_size_counts_captured_state():
    big = torch.zeros(100_000, dtype=torch.float64)

    def captures(index, part):
        return float(big.sum())

    assert closure_size(_small) < 4 * 1024
    assert closure_size(captures) > 100_000 * 8
    assert closure_size(_small, big) > 100_000 * 8


def test_setup_task_logging_reuses_logger():
    assert setup_task_logging() is logger
    assert logger.handlers
