# monitor_queue/worker/handlers.py
import asyncio
import time
from typing import Any, Dict, Optional

import aiohttp

from monitor_queue.job_queue.models import RepeatableJob
from monitor_queue.log_handler.logging_config import get_logger
from monitor_queue.persistence.repository import CheckRepository

logger = get_logger(__name__)


class MonitorPingHandler:
    """
    Processing function for monitor jobs.

    Sends an HTTP request to the monitor's URL and stores the outcome as a
    check. Network failures become failed checks rather than exceptions, so a
    flaky target never takes its worker down.
    """

    SUPPORTED_METHODS = ["GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS"]
    DEFAULT_TIMEOUT = 30  # seconds

    def __init__(self, repository: Optional[CheckRepository] = None):
        self.repository = repository

    def validate_payload(self, job: RepeatableJob) -> None:
        """Check the monitor payload has a usable URL and method."""
        url = job.payload.get("url")
        if not url:
            raise ValueError(f"Monitor job {job.name} has no 'url' in payload")

        if not url.startswith(("http://", "https://")):
            raise ValueError(
                f"Invalid URL format: {url}. URL must start with http:// or https://"
            )

        method = job.payload.get("method", "GET").upper()
        if method not in self.SUPPORTED_METHODS:
            raise ValueError(
                f"Unsupported HTTP method: {method}. Supported methods: {', '.join(self.SUPPORTED_METHODS)}"
            )

    async def __call__(self, job: RepeatableJob) -> Dict[str, Any]:
        return await self.handle(job)

    async def handle(self, job: RepeatableJob) -> Dict[str, Any]:
        """
        Ping the monitor described by the job payload.

        Returns:
            The check data that was recorded
        """
        self.validate_payload(job)

        url = job.payload["url"]
        method = job.payload.get("method", "GET").upper()
        headers = job.payload.get("headers", {})
        timeout = job.payload.get("timeout", self.DEFAULT_TIMEOUT)
        monitor_id = str(job.payload.get("monitor_id", job.name))

        logger.info(f"Pinging monitor {monitor_id}: {method} {url}")

        start_time = time.monotonic()
        try:
            async with aiohttp.ClientSession() as session:
                async with session.request(
                    method,
                    url,
                    headers=headers,
                    timeout=aiohttp.ClientTimeout(total=timeout),
                ) as response:
                    check_data = {
                        "monitor_id": monitor_id,
                        "status": 200 <= response.status < 300,
                        "status_code": response.status,
                        "response_time": (time.monotonic() - start_time) * 1000,
                        "message": response.reason,
                    }

        except aiohttp.ClientError as e:
            logger.warning(f"Monitor {monitor_id} request failed: {str(e)}")
            check_data = self._failed_check(monitor_id, start_time, str(e))
        except asyncio.TimeoutError:
            logger.warning(f"Monitor {monitor_id} timed out after {timeout} seconds")
            check_data = self._failed_check(
                monitor_id, start_time, f"Request timed out after {timeout} seconds"
            )

        if not check_data["status"]:
            logger.warning(
                f"Monitor {monitor_id} is down: {check_data.get('status_code')} {check_data['message']}"
            )

        if self.repository is not None:
            await self.repository.create_check(check_data)

        return check_data

    def _failed_check(self, monitor_id: str, start_time: float, message: str) -> Dict[str, Any]:
        return {
            "monitor_id": monitor_id,
            "status": False,
            "status_code": None,
            "response_time": (time.monotonic() - start_time) * 1000,
            "message": message,
        }
