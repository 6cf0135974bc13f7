"""Ray-backed partitioned collection.

A thin adapter over the Ray object store: every partition is one object
reference, user functions run as one remote task per partition, and
partial results are combined with a fixed-shape tree reduction so the
combine order only depends on the number of partitions.
"""

from __future__ import annotations
from typing import Any, Callable, Optional, Sequence

import ray
import ray.exceptions
import torch

from data import DenseVector, LabeledPoint, Partition
from errors import PartitionError
from logger import logger
from utils import check_closure_size, setup_task_logging

DEFAULT_MAX_TASK_BYTES = 1024 * 1024


@ray.remote
def _apply(fn: Callable, index: int, partition: Any, *args):
    try:
        return fn(index, partition, *args)
    except Exception:
        setup_task_logging().exception(f"partition {index} failed")
        raise


@ray.remote
def _combine(comb_op: Callable, left: Any, right: Any):
    return comb_op(left, right)


def _slices(n: int, k: int) -> list[tuple[int, int]]:
    # same boundaries for every call, so a given record always lands in the same partition
    return [((i * n) // k, ((i + 1) * n) // k) for i in range(k)]


class PartitionedDataset:
    """Immutable collection of partitions living in the Ray object store"""

    def __init__(self, refs: Sequence[ray.ObjectRef], max_task_bytes: int = DEFAULT_MAX_TASK_BYTES):
        self._refs = list(refs)
        self.max_task_bytes = max_task_bytes
        self.last_task_bytes = 0

    # --------------------------- construction ---------------------------

    @classmethod
    def from_partitions(cls, partitions: Sequence[Any], max_task_bytes: int = DEFAULT_MAX_TASK_BYTES) -> PartitionedDataset:
        return cls([ray.put(p) for p in partitions], max_task_bytes=max_task_bytes)

    @classmethod
    def from_points(
        cls,
        points: Sequence[LabeledPoint],
        num_partitions: int = 2,
        max_task_bytes: int = DEFAULT_MAX_TASK_BYTES,
    ) -> PartitionedDataset:
        """Split labeled points into ``num_partitions`` contiguous slices"""
        points = list(points)
        d = points[0].features.size if points else 0
        parts = [Partition.from_points(points[a:b], d) for a, b in _slices(len(points), num_partitions)]
        return cls.from_partitions(parts, max_task_bytes=max_task_bytes)

    @classmethod
    def from_vectors(
        cls,
        vectors: Sequence[DenseVector],
        num_partitions: int = 2,
        max_task_bytes: int = DEFAULT_MAX_TASK_BYTES,
    ) -> PartitionedDataset:
        vectors = list(vectors)
        d = vectors[0].size if vectors else 0
        parts = [Partition.from_vectors(vectors[a:b], d) for a, b in _slices(len(vectors), num_partitions)]
        return cls.from_partitions(parts, max_task_bytes=max_task_bytes)

    @classmethod
    def from_tensors(
        cls,
        X: torch.Tensor,
        y: Optional[torch.Tensor] = None,
        num_partitions: int = 2,
        max_task_bytes: int = DEFAULT_MAX_TASK_BYTES,
    ) -> PartitionedDataset:
        X = torch.as_tensor(X, dtype=torch.float64)
        if y is not None:
            y = torch.as_tensor(y, dtype=torch.float64)
        parts = [
            Partition(X[a:b].clone(), None if y is None else y[a:b].clone())
            for a, b in _slices(X.shape[0], num_partitions)
        ]
        return cls.from_partitions(parts, max_task_bytes=max_task_bytes)

    # --------------------------- properties ---------------------------

    @property
    def num_partitions(self) -> int:
        return len(self._refs)

    @property
    def refs(self) -> list[ray.ObjectRef]:
        return list(self._refs)

    # --------------------------- transformations ---------------------------

    def _submit(self, fn: Callable, args: tuple) -> list[ray.ObjectRef]:
        # Object references are resolved by Ray on the worker; only the
        # function and the inline arguments travel with each task.
        inline = tuple(a for a in args if not isinstance(a, ray.ObjectRef))
        self.last_task_bytes = check_closure_size(fn, inline, self.max_task_bytes)
        return [_apply.remote(fn, i, ref, *args) for i, ref in enumerate(self._refs)]

    def map_partitions_with_index(self, fn: Callable, *args) -> PartitionedDataset:
        """Apply ``fn(index, partition, *args)`` to every partition.

        Arguments that are ``ray.ObjectRef`` (see ``broadcast``) are fetched on
        the worker, so large read-only values stay out of the task definition.
        """
        out = PartitionedDataset(self._submit(fn, args), max_task_bytes=self.max_task_bytes)
        out.last_task_bytes = self.last_task_bytes
        return out

    def map_partitions(self, fn: Callable, *args) -> PartitionedDataset:
        return self.map_partitions_with_index(_DropIndex(fn), *args)

    def tree_aggregate(self, seq_op: Callable, comb_op: Callable, *args) -> Any:
        """Run ``seq_op(index, partition, *args)`` everywhere and reduce pairwise.

        Partials are paired (0, 1), (2, 3), ... level by level, so for a fixed
        partition count the summation order never changes between runs.
        """
        level = self._submit(seq_op, args)
        if not level:
            raise PartitionError("cannot aggregate a dataset with no partitions")
        while len(level) > 1:
            nxt = [_combine.remote(comb_op, level[i], level[i + 1]) for i in range(0, len(level) - 1, 2)]
            if len(level) % 2:
                nxt.append(level[-1])
            level = nxt
        return self._get(level[0])

    # --------------------------- actions ---------------------------

    def partitions(self) -> list[Any]:
        return self._get(self._refs)

    def count(self) -> int:
        return self.tree_aggregate(_partition_len, _add)

    def feature_dimensions(self) -> set[int]:
        """Distinct feature dimensions over all non-empty partitions"""
        return self.tree_aggregate(_partition_dims, _union)

    def collect(self) -> list:
        """Bring every record back to the driver, in partition order"""
        out: list = []
        for part in self.partitions():
            if isinstance(part, Partition):
                if part.labels is not None:
                    out.extend(part.to_points())
                else:
                    out.extend(DenseVector(row) for row in part.features)
            elif isinstance(part, torch.Tensor):
                out.extend(float(v) for v in part.reshape(-1))
            else:
                out.extend(part)
        return out

    @staticmethod
    def broadcast(value: Any) -> ray.ObjectRef:
        """Publish a read-only value once for every task of a job"""
        return ray.put(value)

    @staticmethod
    def _get(refs):
        try:
            return ray.get(refs)
        except ray.exceptions.RayTaskError as e:
            logger.error(f"Partition task failed: {e}")
            raise PartitionError(f"partition computation failed: {e}") from e


class _DropIndex:
    """Adapts ``fn(partition, *args)`` to the indexed task signature"""

    def __init__(self, fn: Callable):
        self.fn = fn

    def __call__(self, index: int, partition: Any, *args):
        return self.fn(partition, *args)


def _partition_len(index: int, partition: Any) -> int:
    return len(partition)


def _partition_dims(index: int, partition: Partition) -> set[int]:
    if len(partition) == 0:
        return set()
    return {partition.num_features}


def _add(a, b):
    return a + b


def _union(a: set, b: set) -> set:
    return a | b
