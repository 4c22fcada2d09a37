# monitor_queue/metrics.py
from prometheus_client import Counter, Gauge

SCALE_DECISIONS = Counter(
    "monitor_queue_scale_decisions",
    "Worker pool scaling decisions made",
    ["action"],
)
POOL_SIZE = Gauge(
    "monitor_queue_worker_pool_size",
    "Current number of workers in the pool",
)
QUEUE_LOAD = Gauge(
    "monitor_queue_load",
    "Pending repeatable jobs per worker at the last scale cycle",
)
WORKER_CLOSE_FAILURES = Counter(
    "monitor_queue_worker_close_failures",
    "Workers dropped from the pool without a clean shutdown",
)
JOBS_PROCESSED = Counter(
    "monitor_queue_jobs_processed",
    "Job executions handled by workers",
    ["outcome"],
)
