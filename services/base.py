"""
Lifecycle base for the temp voice services.

The ServiceContainer starts services in dependency order and stops them in
reverse; the internal API's ``/health`` route reads ``health_check()``.
"""

import asyncio
import time
from abc import ABC, abstractmethod
from typing import Any

from utils.logging import get_logger


class BaseService(ABC):
    """
    A named service with a single start and a best-effort stop.

    Subclasses implement ``_initialize_impl`` and may override
    ``_shutdown_impl`` and ``health_details``.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self.logger = get_logger(f"services.{name}")
        self.started_at: float | None = None
        self._initialized = False
        self._lock = asyncio.Lock()

    @property
    def initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> None:
        """Start the service once; concurrent callers wait for the first."""
        async with self._lock:
            if self._initialized:
                return

            try:
                await self._initialize_impl()
            except Exception as e:
                self.logger.exception("Failed to start %s service", self.name, exc_info=e)
                raise
            self._initialized = True
            self.started_at = time.time()
            self.logger.info(f"{self.name} service started")

    async def shutdown(self) -> None:
        """Stop the service. Errors are logged so the remaining services still stop."""
        if not self._initialized:
            return

        try:
            await self._shutdown_impl()
        except Exception as e:
            self.logger.exception("Error while stopping %s service", self.name, exc_info=e)
        finally:
            self._initialized = False
            self.logger.info(f"{self.name} service stopped")

    @abstractmethod
    async def _initialize_impl(self) -> None:
        ...

    async def _shutdown_impl(self) -> None:
        pass

    def health_details(self) -> dict[str, Any]:
        """Service-specific fields merged into the health report."""
        return {}

    async def health_check(self) -> dict[str, Any]:
        report: dict[str, Any] = {
            "service": self.name,
            "status": "healthy" if self._initialized else "stopped",
            "uptime_seconds": (
                int(time.time() - self.started_at) if self._initialized and self.started_at else 0
            ),
        }
        if self._initialized:
            report.update(self.health_details())
        return report
