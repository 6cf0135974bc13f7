import math

import pytest
import torch

from data import LabeledPoint
from gradient import Gradient, LogisticGradient, loss_and_gradient


def _reference(label, x, w, b):
    m = sum(xi * wi for xi, wi in zip(x, w)) + b
    p = 1.0 / (1.0 + math.exp(-m))
    loss = math.log1p(math.exp(m)) - label * m
    return loss, [(p - label) * xi for xi in x], p - label


@pytest.mark.parametrize("label", [0.0, 1.0])
def test_single_example_matches_formula(label):
    point = LabeledPoint(label, [0.5, -1.0, 2.0])
    w = torch.tensor([0.1, 0.2, -0.3], dtype=torch.float64)
    loss, grad, grad_b = LogisticGradient().compute(point, w, 0.25)

    exp_loss, exp_grad, exp_b = _reference(label, [0.5, -1.0, 2.0], [0.1, 0.2, -0.3], 0.25)
    assert loss == pytest.approx(exp_loss)
    assert grad.tolist() == pytest.approx(exp_grad)
    assert grad_b == pytest.approx(exp_b)


def test_loss_is_stable_for_large_margins():
    w = torch.tensor([1.0], dtype=torch.float64)
    loss_pos, grad_pos, _ = LogisticGradient().compute(LabeledPoint(0.0, [1000.0]), w)
    loss_neg, grad_neg, _ = LogisticGradient().compute(LabeledPoint(1.0, [-1000.0]), w)
    assert loss_pos == pytest.approx(1000.0)
    assert loss_neg == pytest.approx(1000.0)
    assert math.isfinite(grad_pos[0]) and math.isfinite(grad_neg[0])

    loss_ok, _, _ = LogisticGradient().compute(LabeledPoint(1.0, [1000.0]), w)
    assert loss_ok == pytest.approx(0.0, abs=1e-12)


def test_accumulate_equals_sum_of_examples():
    gen = torch.Generator().manual_seed(0)
    X = torch.randn(50, 4, generator=gen, dtype=torch.float64)
    y = (torch.rand(50, generator=gen, dtype=torch.float64) < 0.5).to(torch.float64)
    w = torch.randn(4, generator=gen, dtype=torch.float64)

    g = LogisticGradient()
    g.block_size = 7  # force several blocks
    grad_sum = torch.zeros(4, dtype=torch.float64)
    loss_sum, gb_sum = g.accumulate(X, y, w, -0.3, grad_sum)

    exp_loss, exp_grad, exp_gb = 0.0, torch.zeros(4, dtype=torch.float64), 0.0
    for i in range(50):
        loss, grad, gb = g.compute(LabeledPoint(float(y[i]), X[i]), w, -0.3)
        exp_loss += loss
        exp_grad += grad
        exp_gb += gb
    assert loss_sum == pytest.approx(exp_loss)
    assert torch.allclose(grad_sum, exp_grad)
    assert gb_sum == pytest.approx(exp_gb)


def test_compute_does_not_touch_weights():
    w = torch.tensor([0.5, 0.5], dtype=torch.float64)
    LogisticGradient().compute(LabeledPoint(1.0, [1.0, 1.0]), w)
    assert w.tolist() == [0.5, 0.5]


def test_loss_and_gradient_wrapper():
    loss, grad, gb = loss_and_gradient(LabeledPoint(1.0, [0.0]), [0.0])
    assert loss == pytest.approx(math.log(2.0))
    assert list(grad) == [0.0]
    assert gb == pytest.approx(-0.5)


def test_gradient_is_abstract():
    with pytest.raises(TypeError):
        Gradient()
