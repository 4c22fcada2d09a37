# monitor_queue/worker/worker.py
import asyncio
import time
import uuid
from typing import Any, Awaitable, Callable, Dict, Optional

from monitor_queue.job_queue.broker import RedisQueueBroker
from monitor_queue.job_queue.exceptions import QueueError
from monitor_queue.job_queue.models import RepeatableJob
from monitor_queue.log_handler.logging_config import get_logger
from monitor_queue.metrics import JOBS_PROCESSED
from .exceptions import CloseError

logger = get_logger(__name__)

ProcessFn = Callable[[RepeatableJob], Awaitable[Any]]


class QueueWorker:
    """
    Consumer bound to the job queue.

    Polls the broker for due repeatable jobs, runs them through the
    processing function and hands them back to the broker for rescheduling.
    """

    def __init__(
        self,
        broker: RedisQueueBroker,
        process_fn: ProcessFn,
        poll_interval: float = 0.5,
        worker_id: Optional[str] = None,
    ):
        self.worker_id = worker_id or f"worker-{uuid.uuid4().hex[:8]}"
        self.broker = broker
        self.process_fn = process_fn
        self.poll_interval = poll_interval
        self.is_busy = False
        self.current_job_key: Optional[str] = None
        self.stats = {"jobs_processed": 0, "jobs_failed": 0}
        self._task: Optional[asyncio.Task] = None
        self._stop_event = asyncio.Event()

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.is_running:
            return
        self._stop_event.clear()
        self._task = asyncio.create_task(self._run_loop(), name=self.worker_id)
        logger.info(f"Worker {self.worker_id} started")

    def get_status(self) -> Dict[str, Any]:
        return {
            "worker_id": self.worker_id,
            "is_running": self.is_running,
            "is_busy": self.is_busy,
            "current_job": self.current_job_key,
            **self.stats,
        }

    async def _wait_for_stop(self, timeout: float) -> None:
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            pass

    async def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                job = await self.broker.claim_due_job()
                if job is None:
                    await self._wait_for_stop(self.poll_interval)
                    continue

                await self.process_job(job)

            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Worker {self.worker_id} loop error: {str(e)}")
                await self._wait_for_stop(self.poll_interval)

        logger.info(f"Worker {self.worker_id} stopped")

    async def process_job(self, job: RepeatableJob) -> None:
        """Run one claimed job and return it to the broker's schedule."""
        self.is_busy = True
        self.current_job_key = job.key
        start_time = time.monotonic()

        try:
            await self.process_fn(job)
            self.stats["jobs_processed"] += 1
            JOBS_PROCESSED.labels(outcome="completed").inc()
            logger.debug(
                f"{job.name} completed by {self.worker_id} "
                f"in {time.monotonic() - start_time:.2f}s"
            )
        except asyncio.CancelledError:
            await self._release(job)
            raise
        except Exception as e:
            self.stats["jobs_failed"] += 1
            JOBS_PROCESSED.labels(outcome="failed").inc()
            logger.error(f"Job {job.key} failed on {self.worker_id}: {str(e)}")
        finally:
            self.is_busy = False
            self.current_job_key = None

        # Executions count toward the repeat limit whether or not they succeed
        await self.broker.complete_job(job)

    async def _release(self, job: RepeatableJob) -> None:
        try:
            if await self.broker.release_job(job):
                logger.warning(f"Worker {self.worker_id} cancelled during {job.key}, job released")
        except QueueError as e:
            # The claim lease still expires and makes the job due again
            logger.error(f"Worker {self.worker_id} could not release {job.key}: {str(e)}")

    async def close(self, timeout: float = 5.0) -> None:
        """
        Stop polling and wait for the in-flight job to finish.

        Raises:
            CloseError: if the worker does not stop within the timeout
        """
        self._stop_event.set()

        if self._task is None or self._task.done():
            return

        try:
            await asyncio.wait_for(self._task, timeout=timeout)
        except asyncio.TimeoutError as e:
            # wait_for has already cancelled the task
            raise CloseError(self.worker_id, f"did not stop within {timeout}s") from e
        except Exception as e:
            raise CloseError(self.worker_id, str(e)) from e


def create_worker(
    broker: RedisQueueBroker, process_fn: ProcessFn, poll_interval: float = 0.5
) -> QueueWorker:
    """Create an unstarted worker bound to the broker and processing function."""
    return QueueWorker(broker, process_fn, poll_interval=poll_interval)
