"""
Unit tests for the Pong service client.
"""

import httpx
import pytest

from service_ping.app.adapters.pong_client import PongClient
from shared.errors import OutboundFailureError, ReceiverRejectedError
from shared.logging import TRACE_ID_HEADER


def _client_for(handler) -> PongClient:
    return PongClient("http://pong.test", timeout=1.0, transport=httpx.MockTransport(handler))


class TestPongClient:
    """Test cases for PongClient."""

    @pytest.mark.asyncio
    async def test_ping_returns_body(self):
        """Test a 200 response yields the body text."""
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["method"] = request.method
            seen["trace_id"] = request.headers.get(TRACE_ID_HEADER)
            return httpx.Response(200, text="World")

        client = _client_for(handler)
        try:
            body = await client.ping("trace-123")
        finally:
            await client.close()

        assert body == "World"
        assert seen == {"path": "/ping", "method": "GET", "trace_id": "trace-123"}

    @pytest.mark.asyncio
    async def test_ping_without_trace_id_sends_no_header(self):
        """Test the trace header is optional."""
        def handler(request: httpx.Request) -> httpx.Response:
            assert TRACE_ID_HEADER not in request.headers
            return httpx.Response(200, text="World")

        client = _client_for(handler)
        try:
            assert await client.ping() == "World"
        finally:
            await client.close()

    @pytest.mark.asyncio
    async def test_too_many_requests_is_rejection(self):
        """Test 429 is surfaced distinctly from failures."""
        client = _client_for(lambda request: httpx.Response(429))
        try:
            with pytest.raises(ReceiverRejectedError) as exc_info:
                await client.ping("trace-1")
        finally:
            await client.close()

        assert exc_info.value.details == {"status_code": 429}

    @pytest.mark.asyncio
    async def test_server_error_is_failure(self):
        """Test non-2xx statuses other than 429 are failures."""
        client = _client_for(lambda request: httpx.Response(503))
        try:
            with pytest.raises(OutboundFailureError) as exc_info:
                await client.ping("trace-1")
        finally:
            await client.close()

        assert exc_info.value.details == {"status_code": 503}
        assert "unexpected status 503" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_connection_error_is_failure(self):
        """Test transport errors are wrapped as failures."""
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = _client_for(handler)
        try:
            with pytest.raises(OutboundFailureError) as exc_info:
                await client.ping("trace-1")
        finally:
            await client.close()

        assert "service unavailable" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_timeout_is_failure_not_retry(self):
        """Test a timeout fails once without retrying."""
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            raise httpx.ReadTimeout("timed out", request=request)

        client = _client_for(handler)
        try:
            with pytest.raises(OutboundFailureError) as exc_info:
                await client.ping("trace-1")
        finally:
            await client.close()

        assert len(calls) == 1
        assert "timed out" in exc_info.value.message
