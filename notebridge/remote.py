"""
Shared HTTP plumbing for the remote content API clients.

Each client owns one httpx.AsyncClient, serializes its requests and maps
HTTP failures to RemoteAPIError.
"""

import asyncio
from typing import Any

import httpx
import structlog

logger = structlog.get_logger(__name__)


class RemoteAPIError(Exception):
    """Raised when a remote content API returns an error response."""

    def __init__(self, service: str, status_code: int | None, context: str, message: str):
        self.service = service
        self.status_code = status_code
        self.context = context
        self.message = message
        super().__init__(f"{service} API Error ({status_code}) during {context}: {message}")


def _error_message(response: httpx.Response) -> str:
    """Best-effort error text from an Atlassian error body."""
    try:
        data = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(data, dict):
        messages = data.get("errorMessages")
        if messages:
            return "; ".join(str(m) for m in messages)
        return str(data.get("message") or data.get("error") or data)
    return str(data)


class RemoteClient:
    """Base class for a JSON REST client."""

    service = "Remote"

    def __init__(
        self,
        base_url: str,
        *,
        headers: dict[str, str] | None = None,
        auth: httpx.Auth | tuple[str, str] | None = None,
        timeout: float = 30.0,
        max_retries: int = 2,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.max_retries = max_retries
        self._lock = asyncio.Lock()
        self._client = httpx.AsyncClient(
            base_url=self.api_base_url(),
            headers={"Content-Type": "application/json", "Accept": "application/json", **(headers or {})},
            auth=auth,
            timeout=httpx.Timeout(timeout, connect=10.0),
            transport=transport,
        )

    def api_base_url(self) -> str:
        return self.base_url

    async def request(self, method: str, url: str, context: str, **kwargs: Any) -> Any:
        """Send a request and return the decoded JSON body (None when empty).

        Raises:
            RemoteAPIError: On an HTTP error status
            httpx.TransportError: When the request still fails after retries
        """
        async with self._lock:
            attempt = 0
            while True:
                try:
                    response = await self._client.request(method, url, **kwargs)
                    break
                except httpx.TransportError as e:
                    if attempt >= self.max_retries:
                        raise
                    attempt += 1
                    logger.warning("remote_request_retry", service=self.service, context=context,
                                   attempt=attempt, error=str(e))

        if response.is_error:
            raise RemoteAPIError(self.service, response.status_code, context, _error_message(response))

        if not response.content:
            return None
        return response.json()

    async def aclose(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()
