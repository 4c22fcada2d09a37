# monitor_queue/persistence/repository.py
import asyncio
from copy import deepcopy
from typing import Any, Dict, List, Protocol

from monitor_queue.log_handler.logging_config import get_logger
from .models import Check

logger = get_logger(__name__)


class CheckRepository(Protocol):
    async def create_check(self, data: Dict[str, Any]) -> Check:
        ...

    async def get_checks(self, monitor_id: str) -> List[Check]:
        ...

    async def delete_checks(self, monitor_id: str) -> int:
        ...


class InMemoryCheckRepository:
    """Process-local check store keyed by monitor id."""

    def __init__(self):
        self.checks: Dict[str, List[Check]] = {}
        self._lock = asyncio.Lock()

    async def create_check(self, data: Dict[str, Any]) -> Check:
        check = Check(**data)
        async with self._lock:
            self.checks.setdefault(check.monitor_id, []).append(check)
        logger.debug(f"Check {check.id} stored for monitor {check.monitor_id}")
        return check

    async def get_checks(self, monitor_id: str) -> List[Check]:
        async with self._lock:
            return deepcopy(self.checks.get(monitor_id, []))

    async def delete_checks(self, monitor_id: str) -> int:
        async with self._lock:
            deleted = self.checks.pop(monitor_id, [])
        logger.info(f"Deleted {len(deleted)} checks for monitor {monitor_id}")
        return len(deleted)
