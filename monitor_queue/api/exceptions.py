# monitor_queue/api/exceptions.py
from http import HTTPStatus
from typing import Optional

from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from monitor_queue.job_queue.exceptions import (
    QueueError,
    BrokerConnectionError,
    EnqueueError,
)
from monitor_queue.log_handler.logging_config import get_logger

logger = get_logger(__name__)


class ServiceError(HTTPException):
    """Error forwarded to the generic handler, tagged with the failing service."""

    def __init__(
        self,
        detail: str,
        service: Optional[str] = None,
        status_code: int = HTTPStatus.INTERNAL_SERVER_ERROR,
    ):
        super().__init__(status_code=status_code, detail=detail)
        self.service = service


class CheckValidationError(ServiceError):
    def __init__(self, detail: str, service: Optional[str] = None):
        super().__init__(detail, service=service, status_code=HTTPStatus.UNPROCESSABLE_ENTITY)


def queue_error_status(error: QueueError) -> int:
    if isinstance(error, BrokerConnectionError):
        return HTTPStatus.SERVICE_UNAVAILABLE
    if isinstance(error, EnqueueError):
        return HTTPStatus.BAD_REQUEST
    return HTTPStatus.INTERNAL_SERVER_ERROR


def _route_service(request: Request) -> Optional[str]:
    route = request.scope.get("route")
    tags = getattr(route, "tags", None)
    return tags[0] if tags else None


def _envelope(status_code: int, msg: str, service: Optional[str]) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "msg": msg, "service": service},
    )


async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    service = exc.service or _route_service(request)
    if exc.status_code >= 500:
        logger.error(f"{service or 'unknown'} service error: {exc.detail}")
    return _envelope(exc.status_code, str(exc.detail), service)


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report only the first validation failure, like the check schemas do."""
    errors = exc.errors()
    msg = "Validation failed"
    if errors:
        first = errors[0]
        field = first.get("loc", ())[-1] if first.get("loc") else None
        msg = f"{field}: {first.get('msg')}" if field is not None else first.get("msg", msg)
    return _envelope(HTTPStatus.UNPROCESSABLE_ENTITY, msg, _route_service(request))
