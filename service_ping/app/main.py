"""
Ping service for Ping Fleet.
"""

import asyncio
from typing import Optional

from fastapi import Query

from shared.base_service import BaseService
from shared.config import ServiceConfig

from .adapters.pong_client import PongClient
from .domain.caller import PingCaller
from .ratelimit.file_limiter import PersistedRateLimiter
from .scheduling.window_scheduler import ScheduleAssignment, WindowScheduler


class PingService(BaseService):
    """Ping service implementation."""

    def __init__(self, config: Optional[ServiceConfig] = None):
        super().__init__("ping", 8080, config)

        self.assignment = ScheduleAssignment(
            machine_id=self.config.machine_id,
            total_machines=self.config.total_machines
        )
        self.rate_limiter = PersistedRateLimiter(
            self.config.rate_limit_file,
            rps_limit=self.config.rps_limit,
            lock_timeout=self.config.lock_timeout_seconds
        )
        self.pong_client = PongClient(
            self.config.pong_service_url,
            timeout=self.config.request_timeout_seconds
        )
        self.caller = PingCaller(
            self.rate_limiter,
            self.pong_client,
            machine_id=self.assignment.machine_id,
            metrics=self.metrics
        )
        self.scheduler = WindowScheduler(self.assignment, self.caller.attempt)

        @self.app.on_event("startup")
        async def _startup():
            if self.config.scheduler_autostart:
                self.scheduler.start()

        @self.app.on_event("shutdown")
        async def _shutdown():
            await self.scheduler.stop()
            await self.caller.close()
            await self.pong_client.close()

        self._setup_ping_routes()

    def _setup_ping_routes(self):
        """Set up ping-specific routes."""

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": "ping",
                "message": "Ping Fleet - Ping Service",
                "version": "1.0.0",
                "machine_id": self.assignment.machine_id,
                "pong_service_url": self.config.pong_service_url
            }

        @self.app.get("/schedule")
        async def schedule():
            """This machine's slot within the fleet's period."""
            return {
                **self.assignment.to_dict(),
                "scheduler": self.scheduler.name,
                "running": self.scheduler.running,
                "ticks": self.scheduler.ticks
            }

        @self.app.get("/ratelimit")
        async def rate_limit_status():
            """Current window of the shared rate limit record."""
            record = await asyncio.to_thread(self.rate_limiter.snapshot)
            return {
                "record_file": str(self.rate_limiter.record_path),
                "rps_limit": self.rate_limiter.rps_limit,
                "window_start": record.window_start if record else None,
                "count": record.count if record else 0
            }

        @self.app.get("/attempts")
        async def recent_attempts(limit: int = Query(default=50, ge=0, le=200)):
            """Most recent ping attempts, newest last."""
            attempts = self.caller.recent_attempts(limit)
            return {
                "attempts": [attempt.to_dict() for attempt in attempts],
                "in_flight": self.caller.in_flight
            }

    async def _check_dependencies(self):
        """Check ping dependencies."""
        dependencies = {}

        try:
            await asyncio.to_thread(self.rate_limiter.snapshot)
            dependencies["rate_limiter"] = "ok"
        except Exception:
            dependencies["rate_limiter"] = "error"

        dependencies["scheduler"] = "running" if self.scheduler.running else "stopped"
        return dependencies


def create_app(config: Optional[ServiceConfig] = None):
    """Create FastAPI application."""
    service = PingService(config)
    return service.app


if __name__ == "__main__":
    service = PingService()
    service.run()
