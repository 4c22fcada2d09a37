# monitor_queue/autoscaler/controller.py
import asyncio
from collections import deque
from contextlib import nullcontext
from typing import Any, Callable, Dict, List, Optional

from monitor_queue.config import QueueConfig
from monitor_queue.job_queue.broker import RedisQueueBroker
from monitor_queue.job_queue.models import RepeatableJob
from monitor_queue.log_handler.logging_config import get_logger
from monitor_queue.metrics import QUEUE_LOAD, SCALE_DECISIONS
from monitor_queue.worker.handlers import MonitorPingHandler
from monitor_queue.worker.pool import WorkerHandle, WorkerPool
from monitor_queue.worker.worker import ProcessFn, create_worker
from .estimator import LoadEstimator, QueueDepthEstimator
from .models import QueueStats, ScalingEvent
from .scaler import ScaleAction, ScaleDecision, decide_scale

logger = get_logger(__name__)


class JobQueue:
    """
    Repeatable-job queue with a self-scaling worker pool.

    Every job submission re-reads the queue, estimates the load per worker
    and grows or shrinks the pool to keep that load near the configured
    jobs-per-worker capacity.
    """

    def __init__(
        self,
        config: Optional[QueueConfig] = None,
        broker: Optional[RedisQueueBroker] = None,
        process_fn: Optional[ProcessFn] = None,
        worker_factory: Optional[Callable[[], WorkerHandle]] = None,
        estimator: Optional[LoadEstimator] = None,
        history_size: int = 50,
    ):
        self.config = config or QueueConfig()
        self.broker = broker or RedisQueueBroker(self.config)
        self.process_fn = process_fn or MonitorPingHandler()
        self.estimator = estimator or QueueDepthEstimator()
        self.pool = WorkerPool(
            worker_factory or self._create_worker,
            close_timeout=self.config.worker_close_timeout,
        )
        self.history: deque = deque(maxlen=history_size)
        self._scale_lock = asyncio.Lock() if self.config.serialize_scaling else None
        self._initialized = False

    @classmethod
    async def create(cls, config: Optional[QueueConfig] = None, **kwargs) -> "JobQueue":
        """Build a job queue and run its first scale cycle."""
        queue = cls(config, **kwargs)
        await queue.initialize()
        return queue

    def _create_worker(self) -> WorkerHandle:
        return create_worker(self.broker, self.process_fn, self.config.poll_interval)

    @property
    def pool_size(self) -> int:
        return self.pool.size

    @property
    def capacity_per_worker(self) -> int:
        return self.config.jobs_per_worker

    def _scaling_guard(self):
        if self._scale_lock is None:
            # Unserialized: concurrent cycles may both act on the same excess
            return nullcontext()
        return self._scale_lock

    async def initialize(self) -> None:
        """
        Connect to the broker and size the pool for the jobs already queued.

        Raises:
            BrokerConnectionError: if Redis cannot be reached
        """
        if self._initialized:
            logger.warning("Job queue already initialized")
            return

        await self.broker.connect()
        await self.scale()

        self._initialized = True
        logger.info(f"Job queue {self.config.queue_name} initialized with {self.pool_size} workers")

    async def scale(self) -> ScalingEvent:
        """Run one estimate-and-scale cycle against the current queue contents."""
        async with self._scaling_guard():
            jobs = await self.broker.list_repeatable()
            sample = self.estimator.estimate(jobs, self.pool.size)
            decision = decide_scale(
                self.pool.size, sample.load, sample.pending, self.capacity_per_worker
            )

            pool_size_before = self.pool.size
            failures = await self.pool.apply(decision)

            return self._record(decision, pool_size_before, sample.pending, sample.load, failures)

    def _record(
        self,
        decision: ScaleDecision,
        pool_size_before: int,
        pending: int,
        load: Optional[float],
        failures: List[str],
    ) -> ScalingEvent:
        event = ScalingEvent(
            action=decision.action.value,
            delta=decision.delta,
            pool_size_before=pool_size_before,
            pool_size_after=self.pool.size,
            pending=pending,
            load=load,
            close_failures=failures,
        )
        self.history.append(event)

        SCALE_DECISIONS.labels(action=event.action).inc()
        QUEUE_LOAD.set(load if load is not None else 0)

        load_text = f"{load:.2f}" if load is not None else "n/a"
        if event.pool_size_before != event.pool_size_after:
            logger.info(
                f"Scaled worker pool {event.pool_size_before} -> {event.pool_size_after} "
                f"({event.action} {event.delta}), pending={pending}, load={load_text}"
            )
        else:
            logger.debug(f"No pool change: workers={event.pool_size_after}, pending={pending}, load={load_text}")

        if failures:
            logger.warning(
                f"{len(failures)} workers dropped without a clean shutdown: {', '.join(failures)}"
            )

        return event

    async def submit_job(
        self,
        name: str,
        payload: Dict[str, Any],
        repeat_every_ms: Optional[int] = None,
        repeat_limit: Optional[int] = None,
    ) -> RepeatableJob:
        """
        Add a repeating job and rescale the pool for the new load.

        Raises:
            EnqueueError: if the broker rejects the job; the pool is not touched
        """
        every_ms = self.config.repeat_every_ms if repeat_every_ms is None else repeat_every_ms
        limit = self.config.repeat_limit if repeat_limit is None else repeat_limit

        job = await self.broker.enqueue_repeatable(name, payload, every_ms, limit)
        await self.scale()
        return job

    async def list_jobs(self) -> List[RepeatableJob]:
        """Get pending repeatable jobs; the pool is not rescaled."""
        return await self.broker.list_repeatable()

    async def purge(self) -> bool:
        """
        Remove all jobs and schedules from the queue.

        Workers keep running idle unless scale_down_on_purge is set; otherwise
        they are released by a later scale cycle.
        """
        result = await self.broker.purge_all()

        if self.config.scale_down_on_purge and self.pool.size:
            async with self._scaling_guard():
                pool_size_before = self.pool.size
                decision = ScaleDecision(ScaleAction.REMOVE, pool_size_before)
                failures = await self.pool.apply(decision)
                self._record(decision, pool_size_before, 0, None, failures)

        return result

    async def close(self) -> None:
        """Close every worker and disconnect from the broker."""
        async with self._scaling_guard():
            failures = await self.pool.close_all()
        if failures:
            logger.warning(f"{len(failures)} workers failed to close on shutdown")

        await self.broker.disconnect()
        self._initialized = False
        logger.info(f"Job queue {self.config.queue_name} closed")

    async def get_stats(self) -> QueueStats:
        pending = await self.broker.count_repeatable()
        sample = self.estimator.estimate(pending, self.pool.size)
        return QueueStats(
            pool_size=self.pool.size,
            pending_jobs=pending,
            load=sample.load,
            jobs_per_worker=self.capacity_per_worker,
            recent_events=list(self.history)[-10:],
        )
