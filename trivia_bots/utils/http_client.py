"""Async HTTP client for the admin backend.

Thin wrapper over ``httpx.AsyncClient``: a base URL and auth headers set
once, JSON in and out, and tenacity retries for failures where the request
probably never reached the server (timeouts, connection errors). HTTP error
statuses are raised immediately.
"""

import logging
from typing import Any

import httpx
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 3
MIN_WAIT = 1  # seconds
MAX_WAIT = 10  # seconds

RETRYABLE = (httpx.TimeoutException, httpx.NetworkError)

retry_network_errors = retry(
    stop=stop_after_attempt(MAX_ATTEMPTS),
    wait=wait_exponential(multiplier=1, min=MIN_WAIT, max=MAX_WAIT),
    retry=retry_if_exception_type(RETRYABLE),
    before_sleep=before_sleep_log(logger, logging.WARNING),
    reraise=True,
)


class AsyncHttpClient:
    """JSON client bound to one service.

    Usage:
        async with AsyncHttpClient("http://localhost:8001", headers={"X-API-Key": key}) as api:
            await api.post_json("/api/v1/sessions", record.to_dict())
    """

    def __init__(
        self,
        base_url: str = "",
        headers: dict[str, str] | None = None,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Args:
            base_url: Prefix for relative request paths
            headers: Sent with every request
            timeout: Per-request timeout in seconds (connect gets half)
            transport: Custom transport, e.g. ``httpx.MockTransport`` in tests
        """
        self._options: dict[str, Any] = {
            "base_url": base_url,
            "headers": headers or {},
            "timeout": httpx.Timeout(timeout, connect=timeout / 2),
            "transport": transport,
            "follow_redirects": True,
        }
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "AsyncHttpClient":
        self._client = httpx.AsyncClient(**self._options)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        client, self._client = self._client, None
        if client is not None:
            await client.aclose()

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError("Client not initialized. Use 'async with' context manager.")
        return self._client

    @retry_network_errors
    async def request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Send a request, retrying network failures.

        Raises:
            httpx.HTTPStatusError: On a 4xx/5xx response (not retried)
            httpx.TransportError: When every attempt failed to get through
        """
        response = await self.client.request(method, url, **kwargs)
        response.raise_for_status()
        return response

    async def post(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("POST", url, **kwargs)

    async def patch(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("PATCH", url, **kwargs)

    async def post_json(self, url: str, data: dict[str, Any]) -> dict[str, Any]:
        return _json_body(await self.post(url, json=data))

    async def patch_json(self, url: str, data: dict[str, Any]) -> dict[str, Any]:
        return _json_body(await self.patch(url, json=data))


def _json_body(response: httpx.Response) -> dict[str, Any]:
    # 204 and empty 200 replies are common for status updates
    return response.json() if response.content else {}
