# monitor_queue/api/__init__.py
from .models import ApiResponse, CheckCreate, JobSubmission, MonitorPayload
from .router import router
from .exceptions import (
    ServiceError,
    CheckValidationError,
    service_error_handler,
    validation_error_handler,
)

__all__ = [
    'ApiResponse',
    'CheckCreate',
    'JobSubmission',
    'MonitorPayload',
    'router',
    'ServiceError',
    'CheckValidationError',
    'service_error_handler',
    'validation_error_handler',
]
