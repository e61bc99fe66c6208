"""Installation access token shared by all concurrent requests.

GitHub does not tell us when an installation token expires in a way we
track; a token is used until a request made with it comes back 401. At that
point every request that saw the same stale token asks for a refresh, and
only the first one actually talks to GitHub.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from autoprotector.clients.responses import decode_response
from autoprotector.clients.transport import ApiTransport
from autoprotector.errors import AutoprotectorError, InstallationBootstrapError
from autoprotector.github_auth import JwtMinter
from autoprotector.models.github import AccessTokenResponse, InstallationResponse

log = logging.getLogger(__name__)


class ReadWriteLock:
    """Asyncio reader/writer lock that prefers writers.

    Readers share the lock. Once a writer is queued, new readers wait, so a
    steady stream of readers cannot starve a pending refresh.
    """

    def __init__(self) -> None:
        self._cond = asyncio.Condition()
        self._readers = 0
        self._writing = False
        self._waiting_writers = 0

    @asynccontextmanager
    async def read(self) -> AsyncIterator[None]:
        async with self._cond:
            await self._cond.wait_for(lambda: not self._writing and not self._waiting_writers)
            self._readers += 1
        try:
            yield
        finally:
            async with self._cond:
                self._readers -= 1
                if not self._readers:
                    self._cond.notify_all()

    @asynccontextmanager
    async def write(self) -> AsyncIterator[None]:
        async with self._cond:
            self._waiting_writers += 1
            try:
                await self._cond.wait_for(lambda: not self._writing and not self._readers)
            finally:
                self._waiting_writers -= 1
                # A cancelled writer may have been holding back readers
                self._cond.notify_all()
            self._writing = True
        try:
            yield
        finally:
            async with self._cond:
                self._writing = False
                self._cond.notify_all()


class TokenManager:
    """Owns the installation token of the configured organization."""

    def __init__(
        self,
        transport: ApiTransport,
        minter: JwtMinter,
        organization: str,
        token: str,
    ) -> None:
        self._transport = transport
        self._minter = minter
        self._organization = organization
        self._token = token
        self._lock = ReadWriteLock()

    @classmethod
    async def create(
        cls, transport: ApiTransport, minter: JwtMinter, organization: str,
    ) -> "TokenManager":
        """Obtain the initial token; raises InstallationBootstrapError on failure."""
        log.info("Requesting GitHub App installation access token")
        token = await bootstrap_installation_token(transport, minter, organization)
        return cls(transport, minter, organization, token)

    async def current_token(self) -> str:
        """Snapshot of the live token, for later comparison without holding the lock."""
        async with self._lock.read():
            return self._token

    async def refresh_if_still_current(self, observed: str) -> str:
        """Refresh the token unless someone else already replaced ``observed``.

        On failure the old token stays in place and the error propagates.
        """
        async with self._lock.write():
            if self._token != observed:
                log.debug("Installation access token already refreshed by another request")
                return self._token

            log.info("GitHub App installation access token has possibly expired, requesting a fresh one")
            self._token = await bootstrap_installation_token(
                self._transport, self._minter, self._organization,
            )
            return self._token


async def bootstrap_installation_token(
    transport: ApiTransport, minter: JwtMinter, organization: str,
) -> str:
    """Look up the organization's installation and mint an access token for it."""
    app_jwt = minter.mint()
    try:
        response = await transport.execute("GET", f"orgs/{organization}/installation", token=app_jwt)
        installation = decode_response(response, InstallationResponse)

        response = await transport.execute(
            "POST", f"app/installations/{installation.id}/access_tokens", token=app_jwt,
        )
        access_token = decode_response(response, AccessTokenResponse)
    except AutoprotectorError as exc:
        raise InstallationBootstrapError(
            f"could not obtain GitHub App installation access token for {organization!r}",
        ) from exc

    log.info("Obtained installation access token for the organization %r", organization)
    return access_token.token
