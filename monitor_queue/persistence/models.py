# monitor_queue/persistence/models.py
import uuid
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field


class Check(BaseModel):
    """Result of pinging a monitor once."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    monitor_id: str
    status: bool
    status_code: Optional[int] = None
    response_time: Optional[float] = None  # milliseconds
    message: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
