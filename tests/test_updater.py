import math

import pytest
import torch

from updater import SimpleUpdater, SquaredL2Updater, Updater


def test_simple_updater_uses_sqrt_decay():
    w = torch.tensor([1.0, 2.0], dtype=torch.float64)
    g = torch.tensor([0.5, -0.5], dtype=torch.float64)
    new, reg = SimpleUpdater().compute(w, g, 2.0, 4, 0.3)
    # step = 2 / sqrt(4) = 1
    assert new.tolist() == pytest.approx([0.5, 2.5])
    assert reg == 0.0
    assert w.tolist() == [1.0, 2.0]


def test_squared_l2_shrinks_and_reports_penalty():
    w = torch.tensor([1.0, 2.0], dtype=torch.float64)
    g = torch.zeros(2, dtype=torch.float64)
    new, reg = SquaredL2Updater().compute(w, g, 0.5, 1, 0.1)
    assert new.tolist() == pytest.approx([0.95, 1.9])
    assert reg == pytest.approx(0.5 * 0.1 * (0.95**2 + 1.9**2))


def test_squared_l2_skips_intercept_slot():
    w = torch.tensor([1.0, 3.0], dtype=torch.float64)
    g = torch.zeros(2, dtype=torch.float64)
    new, reg = SquaredL2Updater().compute(w, g, 1.0, 1, 0.5, num_penalized=1)
    assert new.tolist() == pytest.approx([0.5, 3.0])
    assert reg == pytest.approx(0.5 * 0.5 * 0.25)


def test_zero_step_leaves_weights_and_gives_current_penalty():
    w = torch.tensor([3.0, 4.0], dtype=torch.float64)
    new, reg = SquaredL2Updater().compute(w, torch.zeros(2, dtype=torch.float64), 0.0, 1, 2.0)
    assert torch.equal(new, w)
    assert new is not w
    assert reg == pytest.approx(25.0)


def test_step_schedule():
    assert SimpleUpdater.step(10.0, 1) == 10.0
    assert SimpleUpdater.step(10.0, 9) == pytest.approx(10.0 / 3.0)
    assert SimpleUpdater.step(1.0, 2) == pytest.approx(1 / math.sqrt(2))


def test_updater_is_abstract():
    with pytest.raises(TypeError):
        Updater()
    assert SquaredL2Updater.regularizes and not SimpleUpdater.regularizes
