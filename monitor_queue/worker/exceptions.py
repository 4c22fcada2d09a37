# monitor_queue/worker/exceptions.py

class WorkerError(Exception):
    """Base exception for worker operations"""
    pass


class CloseError(WorkerError):
    """Raised when a worker does not shut down cleanly"""

    def __init__(self, worker_id: str, reason: str):
        self.worker_id = worker_id
        self.reason = reason
        super().__init__(f"Worker {worker_id} failed to close: {reason}")
