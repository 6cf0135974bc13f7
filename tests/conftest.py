# tests/conftest.py
from __future__ import annotations

import pytest
import ray

from data import generate_logistic_input
from logger import set_level
from utils import init_ray, set_seed

# Y = logistic(A + B * X)
A = 2.0
B = -1.5
N_POINTS = 10000


@pytest.fixture(scope="session", autouse=True)
def ray_session():
    init_ray(num_cpus=2)
    yield
    ray.shutdown()


@pytest.fixture(autouse=True)
def quiet_logger():
    set_level("WARNING")
    set_seed(1337)
    yield
    set_level("INFO")


@pytest.fixture(scope="session")
def train_points():
    return generate_logistic_input(A, B, N_POINTS, 42)


@pytest.fixture(scope="session")
def validation_points():
    return generate_logistic_input(A, B, N_POINTS, 17)


def accuracy(predictions, points) -> float:
    hits = sum(1 for p, lp in zip(predictions, points) if p == lp.label)
    return hits / len(points)
