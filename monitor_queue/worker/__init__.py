"""Worker module for the monitor queue service.

Workers are asyncio consumers that claim due repeatable jobs from the Redis
broker; the pool grows and shrinks them on behalf of the autoscaler.
"""

from .worker import QueueWorker, create_worker
from .pool import WorkerPool, WorkerHandle
from .handlers import MonitorPingHandler
from .exceptions import WorkerError, CloseError

__all__ = [
    "QueueWorker",
    "create_worker",
    "WorkerPool",
    "WorkerHandle",
    "MonitorPingHandler",
    "WorkerError",
    "CloseError",
]
