"""GitHub API client authenticating as a GitHub App installation.

The client is bound to a single organization. It transparently renews the
installation access token when GitHub rejects it with a 401, and the
underlying transport retries network failures for up to five minutes.

One instance is created at startup and shared by all request handlers; it
is safe to use from any number of concurrent tasks.
"""

from typing import Any, TypeVar

import httpx

from autoprotector.clients.responses import decode_response
from autoprotector.clients.tokens import TokenManager
from autoprotector.clients.transport import ApiTransport, RetryPolicy
from autoprotector.config import GithubSettings
from autoprotector.errors import ClientResponseError
from autoprotector.github_auth import JwtMinter, load_private_key

T = TypeVar("T")


class GitHubClient:
    """GitHub API client with App installation authentication."""

    def __init__(self, transport: ApiTransport, tokens: TokenManager) -> None:
        self._transport = transport
        self._tokens = tokens

    @classmethod
    async def from_settings(
        cls,
        settings: GithubSettings,
        *,
        http_transport: httpx.AsyncBaseTransport | None = None,
        policy: RetryPolicy | None = None,
    ) -> "GitHubClient":
        """Load the App key and obtain the initial installation token.

        Any failure here is fatal: without a token there is nothing to serve.
        """
        private_key = load_private_key(settings.private_key_path)
        minter = JwtMinter(settings.app_id, private_key)
        transport = ApiTransport(settings.base_url, transport=http_transport, policy=policy)
        try:
            tokens = await TokenManager.create(transport, minter, settings.organization)
        except BaseException:
            await transport.aclose()
            raise
        return cls(transport, tokens)

    @property
    def tokens(self) -> TokenManager:
        return self._tokens

    async def request(
        self,
        method: str,
        endpoint: str,
        body: Any = None,
        response_model: type[T] | None = None,
    ) -> T | Any:
        """Make a request to the GitHub API.

        ``endpoint`` is relative to the base URL, without a leading slash
        (example: ``repos/example-organization/example``). On a 401 the token
        is refreshed once and the request retried; a second 401 is returned
        to the caller as a ClientResponseError.
        """
        observed = await self._tokens.current_token()
        try:
            return await self._attempt(method, endpoint, observed, body, response_model)
        except ClientResponseError as exc:
            if exc.status_code != 401:
                raise

        token = await self._tokens.refresh_if_still_current(observed)
        return await self._attempt(method, endpoint, token, body, response_model)

    async def _attempt(
        self, method: str, endpoint: str, token: str, body: Any, response_model: type[T] | None,
    ) -> T | Any:
        response = await self._transport.execute(method, endpoint, token=token, body=body)
        return decode_response(response, response_model)

    async def get(self, endpoint: str, response_model: type[T] | None = None) -> T | Any:
        return await self.request("GET", endpoint, response_model=response_model)

    async def head(self, endpoint: str, response_model: type[T] | None = None) -> T | Any:
        return await self.request("HEAD", endpoint, response_model=response_model)

    async def delete(self, endpoint: str, response_model: type[T] | None = None) -> T | Any:
        return await self.request("DELETE", endpoint, response_model=response_model)

    async def post(self, endpoint: str, body: Any, response_model: type[T] | None = None) -> T | Any:
        return await self.request("POST", endpoint, body, response_model)

    async def put(self, endpoint: str, body: Any, response_model: type[T] | None = None) -> T | Any:
        return await self.request("PUT", endpoint, body, response_model)

    async def patch(self, endpoint: str, body: Any, response_model: type[T] | None = None) -> T | Any:
        return await self.request("PATCH", endpoint, body, response_model)

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._transport.aclose()
