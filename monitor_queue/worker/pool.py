# monitor_queue/worker/pool.py
from typing import Any, Callable, Dict, List, Protocol

from monitor_queue.autoscaler.scaler import ScaleAction, ScaleDecision
from monitor_queue.log_handler.logging_config import get_logger
from monitor_queue.metrics import POOL_SIZE, WORKER_CLOSE_FAILURES

logger = get_logger(__name__)


class WorkerHandle(Protocol):
    worker_id: str

    def start(self) -> None:
        ...

    async def close(self, timeout: float = 5.0) -> None:
        ...

    def get_status(self) -> Dict[str, Any]:
        ...


class WorkerPool:
    """
    Ordered set of live workers.

    Workers are appended on scale-up and popped from the tail on scale-down,
    so the most recently added worker is always the first one closed.
    """

    def __init__(
        self,
        worker_factory: Callable[[], WorkerHandle],
        close_timeout: float = 5.0,
    ):
        self.worker_factory = worker_factory
        self.close_timeout = close_timeout
        self.workers: List[WorkerHandle] = []

    def __len__(self) -> int:
        return len(self.workers)

    @property
    def size(self) -> int:
        return len(self.workers)

    async def apply(self, decision: ScaleDecision) -> List[str]:
        """
        Realize a scaling decision.

        Returns:
            Ids of workers that failed to close cleanly
        """
        if decision.action == ScaleAction.ADD:
            self.add_workers(decision.delta)
            return []
        if decision.action == ScaleAction.REMOVE:
            return await self.remove_workers(decision.delta)
        return []

    def add_workers(self, count: int) -> None:
        for _ in range(count):
            worker = self.worker_factory()
            worker.start()
            self.workers.append(worker)
            logger.info(f"Added worker {worker.worker_id}, pool size {len(self.workers)}")
        POOL_SIZE.set(len(self.workers))

    async def remove_workers(self, count: int) -> List[str]:
        failures = []

        for _ in range(min(count, len(self.workers))):
            worker = self.workers.pop()
            try:
                await worker.close(timeout=self.close_timeout)
                logger.info(f"Removed worker {worker.worker_id}, pool size {len(self.workers)}")
            except Exception as e:
                # The worker stays dropped from the pool even if it is still running
                failures.append(worker.worker_id)
                WORKER_CLOSE_FAILURES.inc()
                logger.error(f"Error closing worker {worker.worker_id}: {str(e)}")

        POOL_SIZE.set(len(self.workers))
        return failures

    async def close_all(self) -> List[str]:
        """Close every worker, newest first."""
        return await self.remove_workers(len(self.workers))

    def get_worker_stats(self) -> List[Dict[str, Any]]:
        return [worker.get_status() for worker in self.workers]
