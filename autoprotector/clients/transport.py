"""HTTP transport for the GitHub API.

``RetryingTransport`` wraps any httpx transport and retries network-level
failures with exponential backoff for up to five minutes in total. It never
looks at status codes; classifying responses is left to the caller.

``ApiTransport`` owns the ``httpx.AsyncClient`` and knows how to turn an
endpoint, an optional bearer token and an optional JSON body into a request.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any

import httpx
from pydantic import BaseModel
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_delay,
)

from autoprotector import __version__
from autoprotector.errors import TransportFailure

log = logging.getLogger(__name__)

ACCEPT = "application/vnd.github.v3+json"
USER_AGENT = f"branch-autoprotector/{__version__}"

# Failures worth repeating. Errors such as UnsupportedProtocol or LocalProtocolError
# come from the request itself and fail the same way every time
RETRYABLE_ERRORS = (httpx.NetworkError, httpx.TimeoutException, httpx.RemoteProtocolError)


@dataclass(frozen=True)
class RetryPolicy:
    """Backoff settings for transient transport failures (seconds)."""

    base_delay: float = 1.0
    factor: float = 2.0
    max_delay: float = 60.0
    total_budget: float = 5 * 60.0

    def backoff(self, attempt_number: int) -> float:
        """Delay after the given (1-based) failed attempt: 1s, 2s, 4s, up to the cap."""
        return min(self.max_delay, self.base_delay * self.factor ** (attempt_number - 1))


class RetryingTransport(httpx.AsyncBaseTransport):
    """Transport decorator retrying ``httpx.TransportError`` under a RetryPolicy."""

    def __init__(
        self,
        wrapped: httpx.AsyncBaseTransport,
        policy: RetryPolicy | None = None,
        sleep=None,
    ) -> None:
        self._wrapped = wrapped
        self._policy = policy or RetryPolicy()
        # Overridable for tests; tenacity defaults to asyncio.sleep
        self._sleep_kwargs = {"sleep": sleep} if sleep is not None else {}

    def _wait(self, retry_state: RetryCallState) -> float:
        # Never sleep past the budget so the final attempt lands right at it
        delay = self._policy.backoff(retry_state.attempt_number)
        elapsed = retry_state.seconds_since_start or 0.0
        return max(0.0, min(delay, self._policy.total_budget - elapsed))

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        retrying = AsyncRetrying(
            retry=retry_if_exception_type(RETRYABLE_ERRORS),
            wait=self._wait,
            stop=stop_after_delay(self._policy.total_budget),
            before_sleep=before_sleep_log(log, logging.WARNING),
            reraise=True,
            **self._sleep_kwargs,
        )
        return await retrying(self._wrapped.handle_async_request, request)

    async def aclose(self) -> None:
        await self._wrapped.aclose()


def _encode_body(body: Any) -> bytes:
    if isinstance(body, BaseModel):
        return body.model_dump_json().encode()
    return json.dumps(body).encode()


class ApiTransport:
    """Executes requests against one GitHub API server."""

    service_name: str = "github"

    def __init__(
        self,
        base_url: str,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        policy: RetryPolicy | None = None,
        timeout: float = 30,
    ) -> None:
        self._base_url = httpx.URL(base_url)
        self._client = httpx.AsyncClient(
            transport=RetryingTransport(transport or httpx.AsyncHTTPTransport(), policy),
            headers={"Accept": ACCEPT, "User-Agent": USER_AGENT},
            timeout=timeout,
        )

    def url_for(self, endpoint: str) -> httpx.URL:
        """Join a relative endpoint (no leading slash) onto the base URL."""
        return self._base_url.join(endpoint)

    async def execute(
        self,
        method: str,
        endpoint: str,
        token: str | None = None,
        body: Any = None,
    ) -> httpx.Response:
        """Send a request and return the raw response, whatever its status."""
        headers = {}
        if token is not None:
            headers["Authorization"] = f"Bearer {token}"
        content = None
        if body is not None:
            content = _encode_body(body)
            headers["Content-Type"] = "application/json"

        url = self.url_for(endpoint)
        try:
            return await self._client.request(method, url, headers=headers, content=content)
        except httpx.TransportError as exc:
            raise TransportFailure(
                self.service_name, f"{method} {url} failed: {exc!r}",
            ) from exc

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()
