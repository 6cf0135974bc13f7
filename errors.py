"""Exceptions raised by training and prediction."""


class TrainingError(RuntimeError):
    """Base class for every failure surfaced by a training run."""


class ValidationError(TrainingError, ValueError):
    """
    Invalid configuration or input data (dimension mismatch, non-binary
    labels, non-positive iteration count...). Raised before any iteration runs.
    """


class NumericalError(TrainingError):
    """NaN or Inf showed up in an aggregated loss or gradient."""


class PartitionError(TrainingError):
    """A remote partition computation failed."""


class TaskTooLargeError(TrainingError):
    """The serialized task shipped to each partition exceeds the configured limit."""

    def __init__(self, size: int, limit: int):
        super().__init__(f"serialized task is {size} bytes, limit is {limit} bytes")
        self.size = size
        self.limit = limit
