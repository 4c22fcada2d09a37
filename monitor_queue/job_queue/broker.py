# monitor_queue/job_queue/broker.py
from typing import Any, Dict, List, Optional

import redis.asyncio as redis
from pydantic import ValidationError
from redis.exceptions import RedisError, WatchError

from monitor_queue.config import QueueConfig
from monitor_queue.log_handler.logging_config import get_logger
from .models import RepeatableJob, now_ms, repeat_key
from .exceptions import (
    BrokerConnectionError,
    EnqueueError,
    QueryError,
    PurgeError,
)

logger = get_logger(__name__)


class RedisQueueBroker:
    """
    Redis-backed store of repeatable jobs.

    Layout:
      {prefix}:{queue}:repeat    hash, repeat key -> job JSON
      {prefix}:{queue}:schedule  sorted set, repeat key -> next run (epoch ms)

    A worker claims a due job by moving its schedule entry one lease into the
    future inside a WATCH transaction, so only one caller wins. Completing the
    job reschedules it until its repeat limit is reached; a claim that is
    never completed expires with the lease.
    """

    def __init__(self, config: QueueConfig, client: Optional[redis.Redis] = None):
        self.config = config
        self.queue_name = config.queue_name
        self.repeat_key = f"{config.key_prefix}:{config.queue_name}:repeat"
        self.schedule_key = f"{config.key_prefix}:{config.queue_name}:schedule"
        self.redis: Optional[redis.Redis] = client

    async def connect(self) -> None:
        """Connect to Redis and verify the broker is reachable."""
        if self.redis is None:
            self.redis = redis.Redis(
                host=self.config.redis_host,
                port=self.config.redis_port,
                password=self.config.redis_password,
                decode_responses=True,
            )

        try:
            await self.redis.ping()
            logger.info(f"Connected to Redis broker at {self.config.redis_url}")
        except (RedisError, OSError) as e:
            logger.error(f"Failed to connect to Redis at {self.config.redis_url}: {str(e)}")
            raise BrokerConnectionError(
                f"Redis broker unreachable at {self.config.redis_url}: {str(e)}"
            ) from e

    async def disconnect(self) -> None:
        if self.redis is not None:
            await self.redis.aclose()
            self.redis = None
            logger.info("Redis broker connection closed")

    def _client(self) -> redis.Redis:
        if self.redis is None:
            raise BrokerConnectionError("Broker is not connected")
        return self.redis

    async def _load(self, key: str) -> Optional[RepeatableJob]:
        raw = await self._client().hget(self.repeat_key, key)
        if raw is None:
            return None
        return RepeatableJob.from_json(raw)

    async def _save(self, job: RepeatableJob, reschedule: bool = True) -> None:
        async with self._client().pipeline(transaction=True) as pipe:
            pipe.hset(self.repeat_key, job.key, job.to_json())
            # nx keeps the current score, including an in-flight claim lease
            pipe.zadd(self.schedule_key, {job.key: job.next_run_at}, nx=not reschedule)
            await pipe.execute()

    async def _delete(self, key: str) -> None:
        async with self._client().pipeline(transaction=True) as pipe:
            pipe.hdel(self.repeat_key, key)
            pipe.zrem(self.schedule_key, key)
            await pipe.execute()

    async def enqueue_repeatable(
        self, name: str, payload: Dict[str, Any], every_ms: int, limit: int
    ) -> RepeatableJob:
        """
        Add a repeating job, or update the schedule with the same name and interval.

        An existing schedule keeps its execution count and run times; if the
        new limit is already used up the schedule is removed.
        """
        try:
            job = RepeatableJob(name=name, payload=payload, every_ms=every_ms, limit=limit)
            job.to_json()
        except (ValidationError, ValueError, TypeError) as e:
            logger.error(f"Rejected job {name}: {str(e)}")
            raise EnqueueError(f"Invalid job {name}: {str(e)}") from e

        try:
            existing = await self._load(job.key)
            if existing is not None:
                job.count = existing.count
                job.next_run_at = existing.next_run_at
                job.last_run_at = existing.last_run_at

                if job.exhausted:
                    await self._delete(job.key)
                    logger.info(
                        f"Job {job.key} already ran {job.count} times, limit {job.limit} reached"
                    )
                    return job

            await self._save(job, reschedule=False)
            logger.info(
                f"Job {job.key} enqueued (every {job.every_ms}ms, limit {job.limit})"
            )
            return job

        except (RedisError, ValidationError) as e:
            logger.error(f"Error enqueueing job {job.key}: {str(e)}")
            raise EnqueueError(f"Failed to enqueue job {job.key}: {str(e)}") from e

    async def list_repeatable(self) -> List[RepeatableJob]:
        """Get all pending repeatable jobs ordered by next run time."""
        try:
            values = await self._client().hvals(self.repeat_key)
        except RedisError as e:
            logger.error(f"Error listing repeatable jobs: {str(e)}")
            raise QueryError(f"Failed to list repeatable jobs: {str(e)}") from e

        jobs = []
        for raw in values:
            try:
                jobs.append(RepeatableJob.from_json(raw))
            except ValidationError as e:
                logger.warning(f"Skipping malformed job entry: {str(e)}")

        jobs.sort(key=lambda job: job.next_run_at)
        return jobs

    async def count_repeatable(self) -> int:
        try:
            return await self._client().hlen(self.repeat_key)
        except RedisError as e:
            logger.error(f"Error counting repeatable jobs: {str(e)}")
            raise QueryError(f"Failed to count repeatable jobs: {str(e)}") from e

    async def purge_all(self) -> bool:
        """Remove every job and schedule from the queue."""
        try:
            await self._client().delete(self.repeat_key, self.schedule_key)
            logger.info(f"Queue {self.queue_name} purged")
            return True
        except RedisError as e:
            logger.error(f"Error purging queue {self.queue_name}: {str(e)}")
            raise PurgeError(f"Failed to purge queue {self.queue_name}: {str(e)}") from e

    async def claim_due_job(self, now: Optional[int] = None) -> Optional[RepeatableJob]:
        """
        Claim the next job whose run time has passed.

        The claim pushes the job's schedule entry out by the claim lease, so
        a job whose worker dies before completing it becomes due again.

        Returns None when nothing is due, another worker won the claim, or
        the job was purged in the meantime.
        """
        now = now_ms() if now is None else now
        client = self._client()

        try:
            async with client.pipeline(transaction=True) as pipe:
                await pipe.watch(self.schedule_key)
                due = await pipe.zrangebyscore(self.schedule_key, "-inf", now, start=0, num=1)
                if not due:
                    return None

                key = due[0]
                pipe.multi()
                pipe.zadd(self.schedule_key, {key: now + self.config.claim_lease_ms})
                await pipe.execute()

            job = await self._load(key)
            if job is None:
                # Schedule entry without a job
                await client.zrem(self.schedule_key, key)
            return job

        except WatchError:
            logger.debug("Schedule changed during claim, retrying on next poll")
            return None
        except RedisError as e:
            logger.error(f"Error claiming due job: {str(e)}")
            raise QueryError(f"Failed to claim due job: {str(e)}") from e

    async def release_job(self, job: RepeatableJob, now: Optional[int] = None) -> bool:
        """
        Hand a claimed job back without counting a run; it is due immediately.

        Returns False when the job is no longer scheduled.
        """
        now = now_ms() if now is None else now

        try:
            changed = await self._client().zadd(
                self.schedule_key, {job.key: now}, xx=True, ch=True
            )
            return bool(changed)
        except RedisError as e:
            logger.error(f"Error releasing job {job.key}: {str(e)}")
            raise EnqueueError(f"Failed to release job {job.key}: {str(e)}") from e

    async def complete_job(
        self, job: RepeatableJob, now: Optional[int] = None
    ) -> Optional[RepeatableJob]:
        """
        Record one execution of a claimed job and reschedule it.

        Returns the rescheduled job, or None when its repeat limit is
        exhausted or it no longer exists.
        """
        now = now_ms() if now is None else now

        try:
            stored = await self._load(job.key)
            if stored is None:
                logger.debug(f"Job {job.key} removed while running")
                return None

            stored.count += 1
            stored.last_run_at = now

            if stored.exhausted:
                await self._delete(stored.key)
                logger.info(f"Job {stored.key} reached its repeat limit ({stored.limit})")
                return None

            stored.next_run_at = now + stored.every_ms
            await self._save(stored)
            return stored

        except RedisError as e:
            logger.error(f"Error completing job {job.key}: {str(e)}")
            raise EnqueueError(f"Failed to reschedule job {job.key}: {str(e)}") from e

    async def get_job(self, name: str, every_ms: int) -> Optional[RepeatableJob]:
        try:
            return await self._load(repeat_key(name, every_ms))
        except RedisError as e:
            raise QueryError(f"Failed to get job {name}: {str(e)}") from e
