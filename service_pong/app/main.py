"""
Pong service for Ping Fleet.
"""

from datetime import datetime, timezone
from typing import Optional

from fastapi import Response
from fastapi.responses import PlainTextResponse

from shared.base_service import BaseService
from shared.config import ServiceConfig
from shared.logging import trace_id_var

from .gate.receiver_gate import GateDecision, ReceiverGate


class PongService(BaseService):
    """Pong service implementation."""

    def __init__(self, config: Optional[ServiceConfig] = None):
        super().__init__("pong", 8081, config)
        self.gate = ReceiverGate(
            work_seconds=self.config.simulated_work_seconds,
            metrics=self.metrics
        )
        self._setup_pong_routes()

    def _setup_pong_routes(self):
        """Set up pong-specific routes."""

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": "pong",
                "message": "Ping Fleet - Pong Service",
                "version": "1.0.0"
            }

        @self.app.get("/ping")
        async def handle_ping():
            """Answer World after the simulated work, or 429 while busy."""
            self.logger.info(
                "PongService received the request",
                trace_id=trace_id_var.get(),
                received_at=datetime.now(timezone.utc).isoformat()
            )

            decision = await self.gate.admit()
            self.metrics.increment_counter("pong_requests_total", decision=decision.value)

            if decision is GateDecision.ADMITTED:
                return PlainTextResponse("World")
            return Response(status_code=429)

    async def _check_dependencies(self):
        """Report gate occupancy."""
        return {
            "gate": "busy" if self.gate.in_use >= self.gate.permits else "idle"
        }


def create_app(config: Optional[ServiceConfig] = None):
    """Create FastAPI application."""
    service = PongService(config)
    return service.app


if __name__ == "__main__":
    service = PongService()
    service.run()
