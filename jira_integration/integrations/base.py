"""Base tracker client and utilities."""

from typing import Optional, Dict, Any
import logging
from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential, retry_if_exception_type
import httpx

from jira_integration.integrations.errors import (
    AuthenticationError,
    ErrorCode,
    ForbiddenError,
    IntegrationError,
    NotFoundError,
    RateLimitError,
    TrackerAPIError,
)


logger = logging.getLogger(__name__)


def error_text(response: httpx.Response) -> str:
    """Extract a readable error message from a tracker error response."""
    try:
        data = response.json()
    except ValueError:
        return response.text[:500] or f"HTTP {response.status_code}"

    if isinstance(data, dict):
        messages = list(data.get("errorMessages") or [])
        errors = data.get("errors")
        if isinstance(errors, dict):
            messages.extend(f"{field}: {message}" for field, message in errors.items())
        if not messages and data.get("message"):
            messages.append(str(data["message"]))
        if messages:
            return ", ".join(str(m) for m in messages)
    return f"HTTP {response.status_code}"


class BaseTrackerClient:
    """Authenticated HTTP wrapper around a tracker REST API.

    The client is immutable once built: base URL, auth header and timeout are
    fixed for its lifetime. Use it as an async context manager.
    """

    def __init__(
        self,
        api_url: str,
        auth_header: Optional[str] = None,
        timeout: float = 30.0,
        max_attempts: int = 3,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_url = api_url.rstrip("/")
        self.max_attempts = max_attempts

        headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
        }
        if auth_header:
            headers["Authorization"] = auth_header

        self.http_client = httpx.AsyncClient(
            base_url=self.api_url,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def close(self) -> None:
        await self.http_client.aclose()

    async def _send(self, method: str, path: str, **kwargs) -> httpx.Response:
        """Send a request, retrying on transport timeouts."""
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=1, min=1, max=10),
            retry=retry_if_exception_type(httpx.TimeoutException),
            reraise=True,
        ):
            with attempt:
                return await self.http_client.request(method, path, **kwargs)

    async def make_api_request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Any] = None,
    ) -> httpx.Response:
        """Make an API request and translate failures into IntegrationError."""
        try:
            response = await self._send(method, path, params=params, json=json)
        except httpx.TimeoutException as e:
            logger.warning(f"Tracker request timed out: {method} {path}")
            raise IntegrationError(
                f"Request to {self.api_url}{path} timed out",
                code=ErrorCode.TIMEOUT,
                status_code=504,
            ) from e
        except httpx.RequestError as e:
            logger.error(f"Tracker request failed: {method} {path}: {e}")
            raise IntegrationError(
                f"Could not reach {self.api_url}: {e}",
                code=ErrorCode.URL_UNREACHABLE,
                status_code=502,
            ) from e

        if response.status_code < 400:
            return response

        message = error_text(response)
        status = response.status_code
        if status == 401:
            raise AuthenticationError(f"Authentication failed: {message}", upstream_status=status)
        if status == 403:
            raise ForbiddenError(f"Access denied: {message}", upstream_status=status)
        if status == 404:
            raise NotFoundError(f"Resource not found: {path}", details=message, upstream_status=status)
        if status == 429:
            raise RateLimitError(f"Rate limit exceeded: {message}", upstream_status=status)
        raise TrackerAPIError(
            f"API request failed with HTTP {status}: {message}",
            details=message,
            upstream_status=status,
        )

    @staticmethod
    def json_body(response: httpx.Response) -> Any:
        """Decoded JSON body, None for empty responses."""
        if response.status_code == 204 or not response.content:
            return None
        return response.json()
