"""
Metrics collection for optimization runs.

Collects events in memory while training and writes them to JSONL at the end
so the hot loop never touches the filesystem.
"""

from __future__ import annotations
import json
import time
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Optional


@dataclass
class MetricEvent:
    """Unified event schema for all metrics."""
    event_type: str  # "iteration", "evaluation", "final"
    step: int
    timestamp: float
    loss: Optional[float] = None
    count: Optional[int] = None
    task_bytes: Optional[int] = None
    converged: Optional[bool] = None
    mode: Optional[str] = None

    def to_dict(self) -> dict:
        """Convert to dictionary, omitting None values."""
        d = asdict(self)
        return {k: v for k, v in d.items() if v is not None}


class MetricsCollector:
    """In-memory metrics collector for one training run."""

    def __init__(self, mode: str, run_id: str):
        self.mode = mode
        self.run_id = run_id
        self.events: list[MetricEvent] = []
        self.start_time: Optional[float] = None
        self.end_time: Optional[float] = None

        self.loss_history: list[tuple[int, float]] = []  # (step, loss)
        self.max_task_bytes = 0

    def start_training(self):
        """Mark training start time."""
        self.start_time = time.time()

    def stop_training(self):
        """Mark training end time."""
        self.end_time = time.time()

    def record_iteration(self, step: int, loss: float):
        """Record the objective value reported by an optimizer iteration."""
        self.events.append(MetricEvent("iteration", step, time.time(), loss=loss, mode=self.mode))
        self.loss_history.append((step, loss))

    def record_evaluation(self, step: int, loss: float, count: int = 0, task_bytes: int = 0):
        """Record one distributed loss/gradient evaluation.

        Args:
            step: Evaluation index within the run
            loss: Averaged data loss (without regularization)
            count: Number of examples that contributed
            task_bytes: Serialized size of the task shipped to each partition
        """
        self.events.append(
            MetricEvent(
                "evaluation",
                step,
                time.time(),
                loss=loss,
                count=count,
                task_bytes=task_bytes if task_bytes > 0 else None,
                mode=self.mode,
            )
        )
        self.max_task_bytes = max(self.max_task_bytes, task_bytes)

    def record_final(self, step: int, loss: Optional[float], converged: bool):
        self.events.append(MetricEvent("final", step, time.time(), loss=loss, converged=converged, mode=self.mode))

    def get_summary(self) -> dict:
        """Return aggregated summary statistics."""
        if not self.events:
            return {}

        evaluations = [e for e in self.events if e.event_type == "evaluation"]
        finals = [e for e in self.events if e.event_type == "final"]

        summary = {
            "mode": self.mode,
            "run_id": self.run_id,
            "total_events": len(self.events),
            "num_evaluations": len(evaluations),
            "max_task_bytes": self.max_task_bytes,
        }

        if self.start_time and self.end_time:
            summary["training_time_sec"] = self.end_time - self.start_time

        if self.loss_history:
            summary["initial_loss"] = self.loss_history[0][1]
            summary["final_loss"] = self.loss_history[-1][1]
            summary["num_iterations"] = len(self.loss_history)

        if finals:
            summary["converged"] = finals[-1].converged

        return summary

    def write_jsonl(self, path: Path):
        """Write all events to a JSONL file.

        Args:
            path: Path to output JSONL file
        """
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, "w") as f:
            for event in self.events:
                event_dict = event.to_dict()
                event_dict["run_id"] = self.run_id
                f.write(json.dumps(event_dict) + "\n")
