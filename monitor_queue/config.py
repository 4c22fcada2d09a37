# monitor_queue/config.py
import os
from typing import Optional

from pydantic import BaseModel, Field


def _env_bool(name: str, default: str) -> bool:
    return os.environ.get(name, default).lower() in ("true", "1", "t", "yes")


class QueueConfig(BaseModel):
    """
    Configuration for the monitor job queue and its worker autoscaler.

    serialize_scaling is on by default: concurrent submissions and purges run
    their estimate-and-scale cycles one at a time. Turning it off restores the
    unlocked behaviour, where two cycles can read the same pool size and both
    add workers for the same excess.
    """

    # Broker connection
    redis_host: str = "127.0.0.1"
    redis_port: int = Field(default=6379, ge=1, le=65535)
    redis_password: Optional[str] = None
    queue_name: str = "monitors"
    key_prefix: str = "monitor_queue"

    # Scaling
    jobs_per_worker: int = Field(default=5, ge=1)
    serialize_scaling: bool = True
    scale_down_on_purge: bool = False

    # Repeat defaults for submitted jobs
    repeat_every_ms: int = Field(default=1000, ge=1)
    repeat_limit: int = Field(default=100, ge=1)

    # Worker behaviour
    poll_interval: float = Field(default=0.5, gt=0)
    # A claimed job becomes due again if it is not completed within the lease
    claim_lease_ms: int = Field(default=360_000, ge=1)
    worker_close_timeout: float = Field(default=5.0, gt=0)

    @property
    def redis_url(self) -> str:
        return f"redis://{self.redis_host}:{self.redis_port}"

    @classmethod
    def from_env(cls) -> "QueueConfig":
        """
        Load configuration from environment variables.

        Unset variables fall back to the field defaults.
        """
        return cls(
            redis_host=os.environ.get("REDIS_HOST", "127.0.0.1"),
            redis_port=int(os.environ.get("REDIS_PORT", "6379")),
            redis_password=os.environ.get("REDIS_PASSWORD") or None,
            queue_name=os.environ.get("QUEUE_NAME", "monitors"),
            key_prefix=os.environ.get("QUEUE_KEY_PREFIX", "monitor_queue"),
            jobs_per_worker=int(os.environ.get("JOBS_PER_WORKER", "5")),
            serialize_scaling=_env_bool("SERIALIZE_SCALING", "true"),
            scale_down_on_purge=_env_bool("SCALE_DOWN_ON_PURGE", "false"),
            repeat_every_ms=int(os.environ.get("JOB_REPEAT_EVERY_MS", "1000")),
            repeat_limit=int(os.environ.get("JOB_REPEAT_LIMIT", "100")),
            poll_interval=float(os.environ.get("WORKER_POLL_INTERVAL", "0.5")),
            claim_lease_ms=int(os.environ.get("CLAIM_LEASE_MS", "360000")),
            worker_close_timeout=float(os.environ.get("WORKER_CLOSE_TIMEOUT", "5.0")),
        )
