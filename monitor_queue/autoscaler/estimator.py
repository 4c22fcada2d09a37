# monitor_queue/autoscaler/estimator.py
from dataclasses import dataclass
from typing import Optional, Protocol, Sequence, Union

Pending = Union[int, Sequence]


@dataclass(frozen=True)
class LoadSample:
    pending: int
    workers: int
    load: Optional[float]  # None when there are no workers

    @property
    def is_bootstrap(self) -> bool:
        return self.load is None


def estimate(pending_jobs: Pending, worker_count: int) -> LoadSample:
    """
    Pending repeatable jobs per worker.

    With no workers the load is undefined and the sample is flagged as
    bootstrap instead of dividing by zero.
    """
    pending = pending_jobs if isinstance(pending_jobs, int) else len(pending_jobs)

    if worker_count <= 0:
        return LoadSample(pending=pending, workers=0, load=None)

    return LoadSample(pending=pending, workers=worker_count, load=pending / worker_count)


class LoadEstimator(Protocol):
    def estimate(self, pending_jobs: Pending, worker_count: int) -> LoadSample:
        ...


class QueueDepthEstimator:
    """Load signal derived only from queue depth; host resources are ignored."""

    def estimate(self, pending_jobs: Pending, worker_count: int) -> LoadSample:
        return estimate(pending_jobs, worker_count)
