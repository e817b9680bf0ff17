"""
Per-tick ping attempt.

One attempt asks the shared limiter for a token and, when admitted, sends a
single ping to the Pong service in the background. The scheduler only waits
for the limiter decision, never for the outbound call.
"""

import asyncio
import time
from collections import deque
from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Deque, Dict, List, Optional, Set

from shared.errors import LimiterUnavailableError, OutboundFailureError, ReceiverRejectedError
from shared.logging import get_logger, new_trace_id
from shared.metrics import MetricsCollector

from ..adapters.pong_client import PongClient
from ..ratelimit.file_limiter import PersistedRateLimiter


class AttemptOutcome(str, Enum):
    """Terminal outcome of one scheduled attempt."""

    SUCCESS = "success"
    FAILURE = "failure"
    RATE_LIMITED = "rate_limited"
    SKIPPED = "skipped"
    LIMITER_UNAVAILABLE = "limiter_unavailable"


@dataclass
class AttemptRecord:
    """Logged result of one attempt, keyed by its trace ID."""
    trace_id: str
    outcome: AttemptOutcome
    timestamp: str
    detail: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["outcome"] = self.outcome.value
        return payload


class PingCaller:
    """Consult the rate limiter and ping the Pong service when admitted."""

    def __init__(
        self,
        rate_limiter: PersistedRateLimiter,
        pong_client: PongClient,
        machine_id: int,
        metrics: Optional[MetricsCollector] = None,
        history_size: int = 200,
    ):
        self.rate_limiter = rate_limiter
        self.pong_client = pong_client
        self.machine_id = machine_id
        self.metrics = metrics
        self.logger = get_logger("ping.caller").bind(machine_id=machine_id)
        self._history: Deque[AttemptRecord] = deque(maxlen=history_size)
        self._in_flight: Set[asyncio.Task] = set()

    @staticmethod
    def _now() -> str:
        """Return an ISO8601 timestamp in UTC."""
        return datetime.now(timezone.utc).isoformat()

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    def recent_attempts(self, limit: Optional[int] = None) -> List[AttemptRecord]:
        """Most recent attempts, newest last."""
        records = list(self._history)
        if limit is not None:
            records = records[-limit:] if limit > 0 else []
        return records

    async def attempt(self) -> Optional[asyncio.Task]:
        """Run one scheduled attempt.

        Returns the background task carrying the outbound call, or None when
        nothing was sent.
        """
        trace_id = new_trace_id()

        try:
            admitted = await asyncio.to_thread(self.rate_limiter.try_acquire)
        except LimiterUnavailableError as e:
            self._record(trace_id, AttemptOutcome.LIMITER_UNAVAILABLE, e.message)
            return None

        if not admitted:
            self._record(trace_id, AttemptOutcome.SKIPPED, "Request not sent due to rate limit")
            return None

        self.logger.info("PingService sent: hello", trace_id=trace_id, timestamp=self._now())
        task = asyncio.create_task(self._send(trace_id), name=f"ping-{trace_id}")
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)
        return task

    async def _send(self, trace_id: str) -> AttemptRecord:
        start_time = time.perf_counter()
        try:
            body = await self.pong_client.ping(trace_id)
        except ReceiverRejectedError as e:
            return self._record(trace_id, AttemptOutcome.RATE_LIMITED, e.message)
        except OutboundFailureError as e:
            return self._record(trace_id, AttemptOutcome.FAILURE, e.message)
        except Exception as e:
            self.logger.error("Unexpected ping error", trace_id=trace_id, exc_info=True)
            return self._record(trace_id, AttemptOutcome.FAILURE, str(e))
        finally:
            if self.metrics:
                self.metrics.observe_histogram(
                    "ping_outbound_duration_seconds", time.perf_counter() - start_time
                )

        return self._record(trace_id, AttemptOutcome.SUCCESS, body)

    def _record(self, trace_id: str, outcome: AttemptOutcome, detail: Optional[str]) -> AttemptRecord:
        record = AttemptRecord(
            trace_id=trace_id,
            outcome=outcome,
            timestamp=self._now(),
            detail=detail,
        )
        self._history.append(record)

        if self.metrics:
            self.metrics.increment_counter("ping_attempts_total", outcome=outcome.value)

        log = self.logger.warning if outcome is AttemptOutcome.LIMITER_UNAVAILABLE else self.logger.info
        log(
            "Ping attempt finished",
            trace_id=trace_id,
            outcome=outcome.value,
            detail=detail,
            timestamp=record.timestamp
        )
        return record

    async def close(self) -> None:
        """Cancel outbound calls that are still running."""
        tasks = list(self._in_flight)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
