# monitor_queue/autoscaler/scaler.py
import math
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from monitor_queue.log_handler.logging_config import get_logger

logger = get_logger(__name__)


class ScaleAction(str, Enum):
    ADD = "add"
    REMOVE = "remove"
    NONE = "none"


@dataclass(frozen=True)
class ScaleDecision:
    action: ScaleAction
    delta: int = 0

    @classmethod
    def noop(cls) -> "ScaleDecision":
        return cls(ScaleAction.NONE, 0)


def decide_scale(
    current_pool_size: int,
    load: Optional[float],
    pending_job_count: int,
    capacity_per_worker: int,
) -> ScaleDecision:
    """
    Map a load signal and pool size to a pool-size change.

    Rules, in priority order:
      - empty pool (or undefined load): add exactly one worker
      - load above capacity: add enough workers for the excess jobs
      - load below capacity: remove workers whose capacity is unused
      - load at capacity: nothing to do
    """
    if capacity_per_worker < 1:
        raise ValueError("capacity_per_worker must be >= 1")

    if current_pool_size <= 0 or load is None:
        return ScaleDecision(ScaleAction.ADD, 1)

    if load > capacity_per_worker:
        excess_jobs = pending_job_count - current_pool_size * capacity_per_worker
        # Fractional loads can round the excess down to nothing
        workers_to_add = max(1, math.ceil(excess_jobs / capacity_per_worker))
        logger.debug(
            f"Load {load:.2f} > {capacity_per_worker}: {excess_jobs} excess jobs, "
            f"adding {workers_to_add} workers"
        )
        return ScaleDecision(ScaleAction.ADD, workers_to_add)

    if load < capacity_per_worker:
        worker_capacity = current_pool_size * capacity_per_worker
        excess_capacity = worker_capacity - pending_job_count
        workers_to_remove = math.floor(excess_capacity / capacity_per_worker)
        workers_to_remove = min(current_pool_size, max(0, workers_to_remove))
        logger.debug(
            f"Load {load:.2f} < {capacity_per_worker}: {excess_capacity} spare capacity, "
            f"removing {workers_to_remove} workers"
        )
        return ScaleDecision(ScaleAction.REMOVE, workers_to_remove)

    return ScaleDecision.noop()
