import asyncio
from unittest.mock import AsyncMock, patch

import pytest
from prometheus_client import REGISTRY
from redis.exceptions import ConnectionError as RedisConnectionError

from monitor_queue.autoscaler.controller import JobQueue
from monitor_queue.autoscaler.estimator import LoadSample
from monitor_queue.config import QueueConfig
from monitor_queue.job_queue.exceptions import BrokerConnectionError, EnqueueError


def make_queue(config, broker, worker_factory) -> JobQueue:
    return JobQueue(config, broker=broker, worker_factory=worker_factory)


async def enqueue_many(broker, payload, count: int, start: int = 0) -> None:
    for i in range(start, start + count):
        await broker.enqueue_repeatable(f"monitor-{i}", payload, 1000, 100)


@pytest.mark.asyncio
async def test_first_submission_starts_one_worker(config, broker, worker_factory, monitor_payload):
    await broker.connect()
    queue = make_queue(config, broker, worker_factory)

    job = await queue.submit_job("monitor-1", monitor_payload)

    assert queue.pool_size == 1
    assert job.every_ms == config.repeat_every_ms
    assert job.limit == config.repeat_limit
    assert len(await queue.list_jobs()) == 1


@pytest.mark.asyncio
async def test_initialize_bootstraps_pool(config, broker, worker_factory):
    queue = await JobQueue.create(config, broker=broker, worker_factory=worker_factory)

    assert queue.pool_size == 1
    assert queue.history[-1].action == "add"
    assert queue.history[-1].load is None


@pytest.mark.asyncio
async def test_initialize_twice_is_noop(config, broker, worker_factory):
    queue = make_queue(config, broker, worker_factory)

    await queue.initialize()
    await queue.initialize()

    assert queue.pool_size == 1
    assert len(queue.history) == 1


@pytest.mark.asyncio
async def test_scale_up_for_excess_jobs(config, broker, worker_factory, monitor_payload):
    """1 worker, 12 jobs at 5 per worker: 2 workers are added"""
    queue = make_queue(config, broker, worker_factory)
    await queue.initialize()
    await enqueue_many(broker, monitor_payload, 11)

    await queue.submit_job("monitor-11", monitor_payload)

    assert queue.pool_size == 3
    event = queue.history[-1]
    assert event.action == "add"
    assert event.delta == 2
    assert event.pool_size_before == 1
    assert event.pending == 12
    assert event.load == pytest.approx(12.0)


@pytest.mark.asyncio
async def test_scale_down_closes_newest_workers(config, broker, worker_factory, monitor_payload):
    """4 workers, 5 jobs at 5 per worker: the 3 newest workers are closed"""
    queue = make_queue(config, broker, worker_factory)
    await queue.initialize()
    queue.pool.add_workers(3)
    await enqueue_many(broker, monitor_payload, 4)

    await queue.submit_job("monitor-4", monitor_payload)

    assert queue.pool_size == 1
    assert [w.worker_id for w in queue.pool.workers] == ["worker-1"]
    assert [w.closed for w in worker_factory.created] == [False, True, True, True]
    assert queue.history[-1].action == "remove"
    assert queue.history[-1].delta == 3


@pytest.mark.asyncio
async def test_load_at_capacity_keeps_pool(config, broker, worker_factory, monitor_payload):
    queue = make_queue(config, broker, worker_factory)
    await queue.initialize()
    queue.pool.add_workers(1)
    await enqueue_many(broker, monitor_payload, 9)

    await queue.submit_job("monitor-9", monitor_payload)

    assert queue.pool_size == 2
    assert queue.history[-1].action == "none"


@pytest.mark.asyncio
async def test_purge_keeps_workers(config, broker, worker_factory, monitor_payload):
    queue = make_queue(config, broker, worker_factory)
    await queue.initialize()
    queue.pool.add_workers(2)
    await enqueue_many(broker, monitor_payload, 5)

    assert await queue.purge() is True

    assert await queue.list_jobs() == []
    assert queue.pool_size == 3
    assert not any(w.closed for w in worker_factory.created)


@pytest.mark.asyncio
async def test_purge_can_release_workers(config, broker, worker_factory, monitor_payload):
    config = config.model_copy(update={"scale_down_on_purge": True})
    queue = make_queue(config, broker, worker_factory)
    await queue.initialize()
    queue.pool.add_workers(2)
    await enqueue_many(broker, monitor_payload, 5)

    await queue.purge()

    assert queue.pool_size == 0
    assert all(w.closed for w in worker_factory.created)
    assert queue.history[-1].action == "remove"
    assert queue.history[-1].delta == 3


@pytest.mark.asyncio
async def test_close_failure_recorded_in_scaling_event(config, broker, failing_worker_factory, monitor_payload):
    queue = make_queue(config, broker, failing_worker_factory)
    await queue.initialize()
    queue.pool.add_workers(3)
    await enqueue_many(broker, monitor_payload, 4)

    await queue.submit_job("monitor-4", monitor_payload)

    assert queue.pool_size == 1
    event = queue.history[-1]
    assert event.close_failures == ["worker-3"]
    assert event.pool_size_after == 1


@pytest.mark.asyncio
async def test_initialize_fails_when_broker_unreachable(config, broker, redis_client, worker_factory):
    queue = make_queue(config, broker, worker_factory)

    with patch.object(
        redis_client, "ping", AsyncMock(side_effect=RedisConnectionError("Connection refused"))
    ):
        with pytest.raises(BrokerConnectionError):
            await queue.initialize()

    assert queue.pool_size == 0
    assert worker_factory.created == []


@pytest.mark.asyncio
async def test_rejected_job_leaves_pool_alone(config, broker, worker_factory, monitor_payload):
    queue = make_queue(config, broker, worker_factory)
    await queue.initialize()

    with pytest.raises(EnqueueError):
        await queue.submit_job("monitor-1", monitor_payload, repeat_every_ms=0)

    assert queue.pool_size == 1
    assert len(worker_factory.created) == 1
    assert len(queue.history) == 1


@pytest.mark.asyncio
async def test_list_jobs_does_not_scale(config, broker, worker_factory, monitor_payload):
    queue = make_queue(config, broker, worker_factory)
    await queue.initialize()
    await enqueue_many(broker, monitor_payload, 20)

    jobs = await queue.list_jobs()

    assert len(jobs) == 20
    assert queue.pool_size == 1
    assert len(queue.history) == 1


@pytest.mark.asyncio
async def test_concurrent_submissions_do_not_overshoot(config, broker, worker_factory, monitor_payload):
    queue = make_queue(config, broker, worker_factory)
    await queue.initialize()
    await enqueue_many(broker, monitor_payload, 9)

    await asyncio.gather(
        queue.submit_job("monitor-9", monitor_payload),
        queue.submit_job("monitor-10", monitor_payload),
    )

    # 11 jobs at 5 per worker
    assert queue.pool_size == 3


def test_unserialized_scaling_has_no_lock(config, broker, worker_factory):
    config = config.model_copy(update={"serialize_scaling": False})
    queue = make_queue(config, broker, worker_factory)

    assert queue._scale_lock is None


def test_scaling_is_serialized_by_default(broker, worker_factory):
    queue = make_queue(QueueConfig(), broker, worker_factory)

    assert isinstance(queue._scale_lock, asyncio.Lock)


@pytest.mark.asyncio
async def test_unserialized_concurrent_submissions_overshoot(config, broker, worker_factory, monitor_payload):
    """Without the lock both cycles size the pool from the same starting point"""
    config = config.model_copy(update={"serialize_scaling": False})
    queue = make_queue(config, broker, worker_factory)
    await queue.initialize()
    await enqueue_many(broker, monitor_payload, 9)

    apply_decision = queue.pool.apply
    decisions = []
    both_decided = asyncio.Event()

    async def apply_after_both_decide(decision):
        decisions.append(decision)
        if len(decisions) == 2:
            both_decided.set()
        await both_decided.wait()
        return await apply_decision(decision)

    with patch.object(queue.pool, "apply", apply_after_both_decide):
        await asyncio.gather(
            queue.submit_job("monitor-9", monitor_payload),
            queue.submit_job("monitor-10", monitor_payload),
        )

    # 11 jobs need 3 workers; both cycles added workers for a pool of 1
    assert [e.pool_size_before for e in list(queue.history)[-2:]] == [1, 1]
    assert queue.pool_size > 3


@pytest.mark.asyncio
async def test_unserialized_scaling_still_scales(config, broker, worker_factory, monitor_payload):
    config = config.model_copy(update={"serialize_scaling": False})
    queue = make_queue(config, broker, worker_factory)
    await queue.initialize()
    await enqueue_many(broker, monitor_payload, 11)

    await queue.submit_job("monitor-11", monitor_payload)

    assert queue.pool_size == 3


@pytest.mark.asyncio
async def test_custom_load_estimator(config, broker, worker_factory, monitor_payload):
    class BusyEstimator:
        def estimate(self, pending_jobs, worker_count):
            return LoadSample(pending=100, workers=worker_count, load=100 / max(worker_count, 1))

    queue = JobQueue(
        config, broker=broker, worker_factory=worker_factory, estimator=BusyEstimator()
    )
    await queue.initialize()

    await queue.submit_job("monitor-1", monitor_payload)

    assert queue.pool_size == 20


@pytest.mark.asyncio
async def test_get_stats(config, broker, worker_factory, monitor_payload):
    queue = make_queue(config, broker, worker_factory)
    await queue.initialize()
    await enqueue_many(broker, monitor_payload, 11)
    await queue.submit_job("monitor-11", monitor_payload)

    stats = await queue.get_stats()

    assert stats.pool_size == 3
    assert stats.pending_jobs == 12
    assert stats.load == pytest.approx(4.0)
    assert stats.jobs_per_worker == 5
    assert [e.action for e in stats.recent_events] == ["add", "add"]


@pytest.mark.asyncio
async def test_scale_decisions_are_counted(config, broker, worker_factory):
    before = REGISTRY.get_sample_value(
        "monitor_queue_scale_decisions_total", {"action": "add"}
    ) or 0.0
    queue = make_queue(config, broker, worker_factory)

    await queue.initialize()

    after = REGISTRY.get_sample_value("monitor_queue_scale_decisions_total", {"action": "add"})
    assert after == before + 1


@pytest.mark.asyncio
async def test_close_releases_workers(config, broker, worker_factory, monitor_payload):
    queue = make_queue(config, broker, worker_factory)
    await queue.initialize()
    queue.pool.add_workers(2)

    await queue.close()

    assert queue.pool_size == 0
    assert all(w.closed for w in worker_factory.created)
    assert broker.redis is None
