# monitor_queue/job_queue/exceptions.py
class QueueError(Exception):
    """Base exception for job queue operations"""

    pass


class BrokerConnectionError(QueueError):
    """Raised when the Redis broker cannot be reached"""

    pass


class EnqueueError(QueueError):
    """Raised when the broker rejects a job or the job is malformed"""

    pass


class QueryError(QueueError):
    """Raised when listing repeatable jobs fails"""

    pass


class PurgeError(QueueError):
    """Raised when removing jobs and schedules from the queue fails"""

    pass
