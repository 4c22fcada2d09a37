# monitor_queue/autoscaler/models.py
from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, Field


class ScalingEvent(BaseModel):
    action: str
    delta: int = 0
    pool_size_before: int
    pool_size_after: int
    pending: int
    load: Optional[float] = None
    close_failures: List[str] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class QueueStats(BaseModel):
    pool_size: int
    pending_jobs: int
    load: Optional[float] = None
    jobs_per_worker: int
    recent_events: List[ScalingEvent] = Field(default_factory=list)
