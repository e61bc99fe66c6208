"""Shared test fixtures."""

import pytest

from autoprotector.config import GithubSettings
from tests.helpers.fake_github import APP_ID, BASE_URL, ORGANIZATION, TEST_PRIVATE_KEY_PEM


@pytest.fixture
def private_key_file(tmp_path):
    path = tmp_path / "private-key.pem"
    path.write_bytes(TEST_PRIVATE_KEY_PEM)
    return path


@pytest.fixture
def github_settings(tmp_path, private_key_file) -> GithubSettings:
    return GithubSettings(
        base_url=BASE_URL,
        organization=ORGANIZATION,
        app_id=APP_ID,
        private_key_path=private_key_file,
        webhook_secret_file=str(tmp_path / "no-webhook-secret"),
    )
