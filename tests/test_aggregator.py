import pytest
import torch

from aggregator import AggregateResult, GradientAggregator
from dataset import PartitionedDataset
from errors import TrainingError
from gradient import LogisticGradient


@pytest.fixture(scope="module")
def local_sum(train_points):
    X = torch.tensor([[p.features[0]] for p in train_points], dtype=torch.float64)
    y = torch.tensor([p.label for p in train_points], dtype=torch.float64)
    w = torch.tensor([-0.7], dtype=torch.float64)
    grad = torch.zeros(1, dtype=torch.float64)
    loss, gb = LogisticGradient().accumulate(X, y, w, 0.4, grad)
    return loss, grad, gb


@pytest.mark.parametrize("num_partitions", [1, 2, 7])
def test_aggregate_matches_local_fold(train_points, local_sum, num_partitions):
    ds = PartitionedDataset.from_points(train_points, num_partitions=num_partitions)
    agg = GradientAggregator(ds, 1)
    result = agg.aggregate(torch.tensor([-0.7], dtype=torch.float64), 0.4)

    loss, grad, gb = local_sum
    assert result.count == len(train_points)
    assert result.loss_sum == pytest.approx(loss, rel=1e-10)
    assert torch.allclose(result.gradient_sum, grad, rtol=1e-10)
    assert result.intercept_gradient_sum == pytest.approx(gb, rel=1e-10)


def test_aggregate_is_deterministic(train_points):
    ds = PartitionedDataset.from_points(train_points, num_partitions=4)
    agg = GradientAggregator(ds, 1, fit_intercept=True)
    theta = torch.tensor([-1.0, 1.0], dtype=torch.float64)
    a = agg.evaluate(theta)
    b = agg.evaluate(theta)
    assert a[0] == b[0]
    assert torch.equal(a[1], b[1])
    assert agg.num_evaluations == 2


def test_flat_layout_with_intercept(train_points):
    ds = PartitionedDataset.from_points(train_points[:100], num_partitions=2)
    agg = GradientAggregator(ds, 1, fit_intercept=True)
    assert agg.dim == 2
    assert agg.num_penalized == 1
    theta = agg.join(torch.tensor([0.3], dtype=torch.float64), -0.2)
    assert theta.tolist() == pytest.approx([0.3, -0.2])
    w, b = agg.split(theta)
    assert w.tolist() == pytest.approx([0.3]) and b == pytest.approx(-0.2)

    loss, grad = agg(theta)
    result = agg.aggregate(torch.tensor([0.3], dtype=torch.float64), -0.2)
    avg_loss, avg_grad, avg_gb = result.averaged()
    assert loss == pytest.approx(avg_loss)
    assert grad.tolist() == pytest.approx([float(avg_grad[0]), avg_gb])


def test_mini_batch_sampling_is_seeded(train_points):
    ds = PartitionedDataset.from_points(train_points, num_partitions=2)
    agg = GradientAggregator(ds, 1)
    w = torch.zeros(1, dtype=torch.float64)
    a = agg.aggregate(w, mini_batch_fraction=0.1, seed=3, iteration=1)
    b = agg.aggregate(w, mini_batch_fraction=0.1, seed=3, iteration=1)
    c = agg.aggregate(w, mini_batch_fraction=0.1, seed=3, iteration=2)
    assert a.count == b.count and a.loss_sum == b.loss_sum
    assert 700 < a.count < 1300
    assert (c.count, c.loss_sum) != (a.count, a.loss_sum)


def test_weights_are_not_mutated(train_points):
    ds = PartitionedDataset.from_points(train_points[:50], num_partitions=2)
    w = torch.tensor([0.25], dtype=torch.float64)
    GradientAggregator(ds, 1).aggregate(w)
    assert w.tolist() == [0.25]


def test_merge_and_empty_average():
    a = AggregateResult(1.0, torch.tensor([1.0]), 0.5, 2)
    b = AggregateResult(2.0, torch.tensor([3.0]), 0.5, 3)
    m = a.merge(b)
    assert (m.loss_sum, m.gradient_sum.tolist(), m.intercept_gradient_sum, m.count) == (3.0, [4.0], 1.0, 5)
    with pytest.raises(TrainingError):
        AggregateResult(0.0, torch.zeros(1), 0.0, 0).averaged()
