from .models import RepeatableJob, now_ms, repeat_key
from .broker import RedisQueueBroker
from .exceptions import (
    QueueError,
    BrokerConnectionError,
    EnqueueError,
    QueryError,
    PurgeError,
)

__all__ = [
    'RepeatableJob',
    'now_ms',
    'repeat_key',
    'RedisQueueBroker',
    'QueueError',
    'BrokerConnectionError',
    'EnqueueError',
    'QueryError',
    'PurgeError',
]
