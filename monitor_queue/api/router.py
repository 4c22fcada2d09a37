# monitor_queue/api/router.py
import re

from fastapi import APIRouter, Depends, Request

from .models import ApiResponse, CheckCreate, JobSubmission
from .exceptions import CheckValidationError, ServiceError, queue_error_status
from monitor_queue.job_queue.exceptions import QueueError
from monitor_queue.log_handler.logging_config import get_logger
from monitor_queue.autoscaler.controller import JobQueue
from monitor_queue.persistence.repository import CheckRepository

logger = get_logger(__name__)

CHECK_SERVICE = "check"
JOB_SERVICE = "job"

MONITOR_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,64}$")

router = APIRouter()


def get_repository(request: Request) -> CheckRepository:
    return request.app.state.repository


def get_job_queue(request: Request) -> JobQueue:
    return request.app.state.job_queue


def validate_monitor_id(monitor_id: str) -> None:
    if not MONITOR_ID_PATTERN.match(monitor_id):
        raise CheckValidationError(
            "monitorId must be 1-64 letters, digits, '-' or '_'", service=CHECK_SERVICE
        )


@router.post("/checks/{monitor_id}", response_model=ApiResponse, tags=[CHECK_SERVICE])
async def create_check(
    monitor_id: str,
    check: CheckCreate,
    repository: CheckRepository = Depends(get_repository),
):
    """Record a check result for a monitor"""
    validate_monitor_id(monitor_id)

    try:
        created = await repository.create_check({**check.model_dump(), "monitor_id": monitor_id})
    except Exception as e:
        raise ServiceError(str(e), service=CHECK_SERVICE) from e

    return ApiResponse(msg="Check created", data=created.model_dump(mode="json"))


@router.get("/checks/{monitor_id}", response_model=ApiResponse, tags=[CHECK_SERVICE])
async def get_checks(
    monitor_id: str,
    repository: CheckRepository = Depends(get_repository),
):
    """Get all checks recorded for a monitor"""
    validate_monitor_id(monitor_id)

    try:
        checks = await repository.get_checks(monitor_id)
    except Exception as e:
        raise ServiceError(str(e), service=CHECK_SERVICE) from e

    return ApiResponse(
        msg="Checks retrieved", data=[c.model_dump(mode="json") for c in checks]
    )


@router.delete("/checks/{monitor_id}", response_model=ApiResponse, tags=[CHECK_SERVICE])
async def delete_checks(
    monitor_id: str,
    repository: CheckRepository = Depends(get_repository),
):
    """Delete every check recorded for a monitor"""
    validate_monitor_id(monitor_id)

    try:
        deleted_count = await repository.delete_checks(monitor_id)
    except Exception as e:
        raise ServiceError(str(e), service=CHECK_SERVICE) from e

    return ApiResponse(msg="Checks deleted", data={"deletedCount": deleted_count})


@router.post("/jobs", response_model=ApiResponse, tags=[JOB_SERVICE])
async def submit_job(
    submission: JobSubmission,
    job_queue: JobQueue = Depends(get_job_queue),
):
    """
    Schedule a repeating monitor job; the worker pool is rescaled afterwards
    """
    try:
        job = await job_queue.submit_job(
            submission.name,
            submission.payload.model_dump(exclude_none=True),
            repeat_every_ms=submission.repeat_every_ms,
            repeat_limit=submission.repeat_limit,
        )
    except QueueError as e:
        raise ServiceError(str(e), service=JOB_SERVICE, status_code=queue_error_status(e)) from e

    logger.info(f"Job {job.key} submitted, pool size {job_queue.pool_size}")
    return ApiResponse(msg="Job added", data=job.to_dict())


@router.get("/jobs", response_model=ApiResponse, tags=[JOB_SERVICE])
async def list_jobs(job_queue: JobQueue = Depends(get_job_queue)):
    """List pending repeatable jobs"""
    try:
        jobs = await job_queue.list_jobs()
    except QueueError as e:
        raise ServiceError(str(e), service=JOB_SERVICE, status_code=queue_error_status(e)) from e

    return ApiResponse(msg="Jobs retrieved", data=[job.to_dict() for job in jobs])


@router.delete("/jobs", response_model=ApiResponse, tags=[JOB_SERVICE])
async def purge_jobs(job_queue: JobQueue = Depends(get_job_queue)):
    """Remove every job and schedule from the queue"""
    try:
        purged = await job_queue.purge()
    except QueueError as e:
        raise ServiceError(str(e), service=JOB_SERVICE, status_code=queue_error_status(e)) from e

    return ApiResponse(msg="Queue purged", data={"purged": purged})


@router.get("/jobs/stats", response_model=ApiResponse, tags=[JOB_SERVICE])
async def get_job_stats(job_queue: JobQueue = Depends(get_job_queue)):
    """Worker pool size, queue depth and recent scaling events"""
    try:
        stats = await job_queue.get_stats()
    except QueueError as e:
        raise ServiceError(str(e), service=JOB_SERVICE, status_code=queue_error_status(e)) from e

    return ApiResponse(msg="Job queue stats", data=stats.model_dump(mode="json"))
