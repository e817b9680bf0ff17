"""
Pong service client for the Ping service.
"""

import httpx
from typing import Optional

from shared.logging import TRACE_ID_HEADER
from shared.errors import OutboundFailureError, ReceiverRejectedError


class PongClient:
    """Client for communicating with the Pong service.

    Calls are never retried: a failed or rejected ping is a terminal outcome
    for that tick, and the next tick is only a second away.
    """

    def __init__(
        self,
        pong_service_url: str,
        timeout: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.pong_service_url = pong_service_url
        self._client = httpx.AsyncClient(
            base_url=pong_service_url,
            timeout=timeout,
            transport=transport
        )

    async def ping(self, trace_id: Optional[str] = None) -> str:
        """Send GET /ping and return the response body."""
        headers = {TRACE_ID_HEADER: trace_id} if trace_id else {}

        try:
            response = await self._client.get("/ping", headers=headers)
        except httpx.TimeoutException as e:
            raise OutboundFailureError(
                "pong",
                "request timed out",
                details={"error": str(e) or type(e).__name__}
            ) from e
        except httpx.HTTPError as e:
            raise OutboundFailureError(
                "pong",
                "service unavailable",
                details={"http_error": str(e) or type(e).__name__}
            ) from e

        if response.status_code == 429:
            raise ReceiverRejectedError("pong", details={"status_code": 429})
        if not response.is_success:
            raise OutboundFailureError(
                "pong",
                f"unexpected status {response.status_code}",
                details={"status_code": response.status_code}
            )

        return response.text

    async def close(self):
        """Close the underlying HTTP client."""
        await self._client.aclose()
