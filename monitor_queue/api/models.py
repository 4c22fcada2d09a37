# monitor_queue/api/models.py
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator


class ApiResponse(BaseModel):
    success: bool = True
    msg: str
    data: Any = None


class CheckCreate(BaseModel):
    status: bool
    status_code: Optional[int] = Field(default=None, ge=100, le=599)
    response_time: float = Field(ge=0)
    message: Optional[str] = Field(default=None, max_length=1024)


class MonitorPayload(BaseModel):
    """Monitor configuration carried by a job and executed by workers."""

    monitor_id: Optional[str] = None
    url: str
    method: str = "GET"
    headers: Dict[str, str] = Field(default_factory=dict)
    timeout: float = Field(default=30, gt=0, le=300)

    @field_validator("url")
    @classmethod
    def url_must_be_http(cls, value: str) -> str:
        if not value.startswith(("http://", "https://")):
            raise ValueError("url must start with http:// or https://")
        return value

    @field_validator("method")
    @classmethod
    def method_upper(cls, value: str) -> str:
        return value.upper()


class JobSubmission(BaseModel):
    name: str = Field(min_length=1, max_length=256)
    payload: MonitorPayload
    repeat_every_ms: Optional[int] = Field(default=None, ge=1)
    repeat_limit: Optional[int] = Field(default=None, ge=1)
