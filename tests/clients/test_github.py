"""Tests for the GitHub API client: authentication, token renewal and classification."""

import asyncio

import httpx
import pytest

from autoprotector.clients.github import GitHubClient
from autoprotector.clients.transport import RetryPolicy
from autoprotector.errors import (
    ClientResponseError,
    InstallationBootstrapError,
    KeyMaterialError,
    ServerResponseError,
    TransportFailure,
)
from autoprotector.models.github import CreateIssueRequest, CreateIssueResponse
from tests.helpers.fake_github import FakeGitHub

WIDGETS = "/repos/acme/widgets"


def _widgets(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, json={"name": "widgets"})


class TestFromSettings:
    @pytest.mark.asyncio
    async def test_bootstraps_and_uses_installation_token(self, github_settings):
        fake = FakeGitHub(tokens=("abc",))
        fake.routes[("GET", WIDGETS)] = _widgets

        client = await GitHubClient.from_settings(github_settings, http_transport=fake.transport())
        result = await client.get("repos/acme/widgets")
        await client.close()

        assert result == {"name": "widgets"}
        assert [r.url.path for r in fake.requests] == [
            "/orgs/acme/installation",
            "/app/installations/55/access_tokens",
            WIDGETS,
        ]
        assert fake.requests[-1].headers["authorization"] == "Bearer abc"

    @pytest.mark.asyncio
    async def test_bootstrap_failure_is_fatal(self, github_settings):
        fake = FakeGitHub()
        fake.bootstrap_status = 403

        with pytest.raises(InstallationBootstrapError):
            await GitHubClient.from_settings(github_settings, http_transport=fake.transport())

    @pytest.mark.asyncio
    async def test_unreadable_key_is_fatal(self, github_settings, tmp_path):
        settings = github_settings.model_copy(update={"private_key_path": tmp_path / "missing.pem"})
        with pytest.raises(KeyMaterialError):
            await GitHubClient.from_settings(settings, http_transport=FakeGitHub().transport())


class TestRequest:
    @pytest.mark.asyncio
    async def test_expired_token_is_refreshed_once(self, github_settings):
        fake = FakeGitHub(tokens=("abc", "def"))
        fake.routes[("GET", WIDGETS)] = _widgets
        client = await GitHubClient.from_settings(github_settings, http_transport=fake.transport())

        fake.expire_tokens()
        result = await client.get("repos/acme/widgets")

        assert result == {"name": "widgets"}
        assert fake.bootstrap_count == 2
        attempts = fake.requests_to("GET", WIDGETS)
        assert [r.headers["authorization"] for r in attempts] == ["Bearer abc", "Bearer def"]
        assert await client.tokens.current_token() == "def"

    @pytest.mark.asyncio
    async def test_second_unauthorized_is_returned(self, github_settings):
        fake = FakeGitHub()
        fake.routes[("GET", WIDGETS)] = lambda request: httpx.Response(401, json={"message": "no"})
        client = await GitHubClient.from_settings(github_settings, http_transport=fake.transport())

        with pytest.raises(ClientResponseError) as excinfo:
            await client.get("repos/acme/widgets")

        assert excinfo.value.status_code == 401
        assert fake.bootstrap_count == 2
        assert len(fake.requests_to("GET", WIDGETS)) == 2

    @pytest.mark.asyncio
    async def test_other_client_errors_do_not_refresh(self, github_settings):
        fake = FakeGitHub()
        client = await GitHubClient.from_settings(github_settings, http_transport=fake.transport())

        with pytest.raises(ClientResponseError) as excinfo:
            await client.get("repos/acme/missing")

        assert excinfo.value.status_code == 404
        assert excinfo.value.url == "https://api.github.com/repos/acme/missing"
        assert fake.bootstrap_count == 1

    @pytest.mark.asyncio
    async def test_server_error(self, github_settings):
        fake = FakeGitHub()
        fake.routes[("GET", WIDGETS)] = lambda request: httpx.Response(502, text="bad gateway")
        client = await GitHubClient.from_settings(github_settings, http_transport=fake.transport())

        with pytest.raises(ServerResponseError):
            await client.get("repos/acme/widgets")

    @pytest.mark.asyncio
    async def test_empty_response_body(self, github_settings):
        fake = FakeGitHub()
        fake.routes[("DELETE", WIDGETS)] = lambda request: httpx.Response(204)
        client = await GitHubClient.from_settings(github_settings, http_transport=fake.transport())

        assert await client.delete("repos/acme/widgets") == {}

    @pytest.mark.asyncio
    async def test_post_decodes_model(self, github_settings):
        fake = FakeGitHub()
        fake.routes[("POST", f"{WIDGETS}/issues")] = lambda request: httpx.Response(
            201, json={"number": 1, "html_url": "https://github.com/acme/widgets/issues/1"},
        )
        client = await GitHubClient.from_settings(github_settings, http_transport=fake.transport())

        created = await client.post(
            "repos/acme/widgets/issues", CreateIssueRequest(title="hi"), CreateIssueResponse,
        )

        assert created.html_url == "https://github.com/acme/widgets/issues/1"

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_refresh(self, github_settings):
        fake = FakeGitHub()
        fake.routes[("GET", WIDGETS)] = _widgets
        client = await GitHubClient.from_settings(github_settings, http_transport=fake.transport())
        stale = await client.tokens.current_token()

        fake.expire_tokens()
        fake.bootstrap_delay = 0.05
        results = await asyncio.gather(*(client.get("repos/acme/widgets") for _ in range(20)))

        assert results == [{"name": "widgets"}] * 20
        # One bootstrap at startup, one refresh for all twenty callers
        assert fake.bootstrap_count == 2
        assert await client.tokens.current_token() != stale

    @pytest.mark.asyncio
    async def test_failed_refresh_reaches_caller_and_keeps_token(self, github_settings):
        fake = FakeGitHub(tokens=("abc",))
        fake.routes[("GET", WIDGETS)] = _widgets
        client = await GitHubClient.from_settings(github_settings, http_transport=fake.transport())

        fake.expire_tokens()
        fake.bootstrap_status = 500
        with pytest.raises(InstallationBootstrapError) as excinfo:
            await client.get("repos/acme/widgets")

        assert isinstance(excinfo.value.__cause__, ServerResponseError)
        assert len(fake.requests_to("GET", WIDGETS)) == 1
        assert await client.tokens.current_token() == "abc"

    @pytest.mark.asyncio
    async def test_network_failure_outlasting_budget(self, github_settings):
        fake = FakeGitHub()

        def unreachable(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        fake.routes[("GET", WIDGETS)] = unreachable
        client = await GitHubClient.from_settings(
            github_settings,
            http_transport=fake.transport(),
            policy=RetryPolicy(base_delay=0.01, max_delay=0.01, total_budget=0.05),
        )

        with pytest.raises(TransportFailure) as excinfo:
            await client.get("repos/acme/widgets")
        await client.close()

        assert isinstance(excinfo.value.__cause__, httpx.ConnectError)
        assert len(fake.requests_to("GET", WIDGETS)) > 1
        assert fake.bootstrap_count == 1
