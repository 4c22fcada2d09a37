import itertools

import fakeredis
import pytest

from monitor_queue.config import QueueConfig
from monitor_queue.job_queue.broker import RedisQueueBroker
from monitor_queue.worker.exceptions import CloseError


class FakeWorker:
    """Worker handle that records its lifecycle instead of consuming jobs."""

    def __init__(self, worker_id: str, fail_close: bool = False):
        self.worker_id = worker_id
        self.fail_close = fail_close
        self.started = False
        self.closed = False

    def start(self) -> None:
        self.started = True

    async def close(self, timeout: float = 5.0) -> None:
        if self.fail_close:
            raise CloseError(self.worker_id, "simulated close failure")
        self.closed = True

    def get_status(self):
        return {"worker_id": self.worker_id, "is_running": self.started and not self.closed}


class FakeWorkerFactory:
    """Creates numbered fake workers and remembers every one it made."""

    def __init__(self, failing_ids=()):
        self.failing_ids = set(failing_ids)
        self.created = []
        self._counter = itertools.count(1)

    def __call__(self) -> FakeWorker:
        worker_id = f"worker-{next(self._counter)}"
        worker = FakeWorker(worker_id, fail_close=worker_id in self.failing_ids)
        self.created.append(worker)
        return worker


@pytest.fixture
def config():
    return QueueConfig(queue_name="test-monitors", key_prefix="test", poll_interval=0.01)


@pytest.fixture
def redis_client():
    return fakeredis.FakeAsyncRedis(server=fakeredis.FakeServer(), decode_responses=True)


@pytest.fixture
def broker(config, redis_client):
    return RedisQueueBroker(config, client=redis_client)


@pytest.fixture
def worker_factory():
    return FakeWorkerFactory()


@pytest.fixture
def monitor_payload():
    return {"monitor_id": "monitor-1", "url": "https://example.com", "method": "GET"}


@pytest.fixture
def failing_worker_factory():
    """Third worker created raises on close."""
    return FakeWorkerFactory(failing_ids={"worker-3"})
