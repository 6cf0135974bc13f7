import numpy as np
import pytest
import torch

from data import DenseVector, LabeledPoint, Partition, dense, generate_logistic_input
from errors import ValidationError


def test_dense_vector_is_read_only():
    v = dense(1.0, 2.0, 3.0)
    with pytest.raises(ValueError):
        v.to_numpy()[0] = 5.0
    assert list(v) == [1.0, 2.0, 3.0]
    assert v.size == 3


def test_dense_vector_copies_input():
    src = np.array([1.0, 2.0])
    v = DenseVector(src)
    src[0] = 9.0
    assert v[0] == 1.0


def test_dense_vector_equality_and_dot():
    assert dense([1.0, 2.0]) == DenseVector(torch.tensor([1.0, 2.0]))
    assert dense(1.0, 2.0).dot(dense(3.0, 4.0)) == 11.0
    with pytest.raises(ValidationError):
        dense(1.0).dot(dense(1.0, 2.0))


def test_labeled_point_coerces_features():
    p = LabeledPoint(1, [0.5, -0.5])
    assert isinstance(p.features, DenseVector)
    assert p.label == 1.0
    with pytest.raises(AttributeError):
        p.label = 0.0


def test_partition_round_trips_points():
    points = [LabeledPoint(0.0, [1.0, 2.0]), LabeledPoint(1.0, [3.0, 4.0])]
    part = Partition.from_points(points)
    assert len(part) == 2
    assert part.num_features == 2
    assert part.to_points() == points


def test_generate_logistic_input_is_seeded():
    a = generate_logistic_input(2.0, -1.5, 100, 42)
    b = generate_logistic_input(2.0, -1.5, 100, 42)
    c = generate_logistic_input(2.0, -1.5, 100, 17)
    assert a == b
    assert a != c
    assert all(p.label in (0.0, 1.0) and p.features.size == 1 for p in a)


def test_generate_logistic_input_label_rate(train_points):
    # E[sigmoid(2 - 1.5 x)] for x ~ N(0, 1) is roughly 0.81
    rate = sum(p.label for p in train_points) / len(train_points)
    assert 0.77 < rate < 0.85
