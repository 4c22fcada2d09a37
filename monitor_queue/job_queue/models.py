# monitor_queue/job_queue/models.py
import time
from typing import Dict, Any, Optional

from pydantic import BaseModel, Field


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def repeat_key(name: str, every_ms: int) -> str:
    """Identity of a repeat schedule: one schedule per name and interval."""
    return f"{name}:{every_ms}"


class RepeatableJob(BaseModel):
    name: str = Field(min_length=1)
    payload: Dict[str, Any] = Field(default_factory=dict)
    every_ms: int = Field(gt=0)
    limit: int = Field(gt=0)
    count: int = Field(default=0, ge=0)
    next_run_at: int = Field(default_factory=now_ms)
    last_run_at: Optional[int] = None

    @property
    def key(self) -> str:
        return repeat_key(self.name, self.every_ms)

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.count)

    @property
    def exhausted(self) -> bool:
        return self.count >= self.limit

    def to_json(self) -> str:
        """Serialize for storage in the broker"""
        return self.model_dump_json()

    @classmethod
    def from_json(cls, data) -> "RepeatableJob":
        """Rebuild a job from its stored broker representation"""
        return cls.model_validate_json(data)

    def to_dict(self) -> Dict[str, Any]:
        data = self.model_dump()
        data["key"] = self.key
        return data
